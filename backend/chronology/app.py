"""
Main application module for the Chronology API.

Sets up the Flask application from Settings, registers the API Blueprint
under /api, and defines the root route and error handlers.

Routes:
- /: Welcome message for the Chronology API.

Error Handlers:
- 404 Not Found: Handles requests for non-existent routes.
- 500 Internal Server Error: Handles internal server errors.

Run locally with:
    flask --app chronology.app:create_app run --debug
"""

import logging

from dotenv import load_dotenv
from flask import Flask

from chronology.blueprints.api.routes import api_bp
from chronology.config import Settings
from chronology.services.utils import create_response

logger = logging.getLogger(__name__)


def create_app(settings: "Settings | None" = None):
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()

    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    app.config["AUTH_JWT_SECRET"] = settings.auth_jwt_secret
    app.config["AUTH_JWT_AUDIENCE"] = settings.auth_jwt_audience
    app.config["ADMIN_USER_IDS"] = settings.admin_user_ids
    app.register_blueprint(api_bp, url_prefix="/api")

    if not settings.auth_jwt_secret:
        logger.warning("AUTH_JWT_SECRET is not set; authenticated routes will reject every request")

    @app.route("/")
    def index():
        return create_response(data={"message": "Welcome to the Chronology API!"})

    @app.errorhandler(404)
    def not_found(error):
        return create_response(error="Not Found", status_code=404)

    @app.errorhandler(500)
    def internal_server_error(error):
        return create_response(error="Internal Server Error", status_code=500)

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    create_app().run(debug=True)
