"""
Authentication middleware for validating bearer JWTs.

require_auth validates the Authorization header, extracts the user id from
the token's 'sub' claim and attaches it to Flask's g object. require_admin
additionally checks the id against the configured admin list.

The signing secret, optional audience and admin ids are read from the app
config (populated from Settings in create_app), never at import time.
"""

from functools import wraps

import jwt
from flask import current_app, g, request

from chronology.services.utils import create_response


def _decode_token(token: str) -> dict:
    secret = current_app.config.get("AUTH_JWT_SECRET")
    if not secret:
        raise jwt.InvalidTokenError("server has no AUTH_JWT_SECRET configured")
    audience = current_app.config.get("AUTH_JWT_AUDIENCE")
    options = {} if audience else {"verify_aud": False}
    return jwt.decode(token, secret, algorithms=["HS256"], audience=audience, options=options)


def _bearer_token() -> "str | None":
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1]


def require_auth(f):
    """
    Decorator that requires a valid JWT in the Authorization header.

    Stores the token's 'sub' claim in g.user_id. Returns 401 if the token is
    missing, malformed, expired or otherwise invalid.

    Usage:
        @api_bp.route("/order/plays")
        @require_auth
        def plays():
            user_id = g.user_id
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return create_response(error="Missing Authorization header", status_code=401)
        if not token:
            return create_response(error="Invalid Authorization header format", status_code=401)

        try:
            payload = _decode_token(token)
        except jwt.ExpiredSignatureError:
            return create_response(error="Token has expired", status_code=401)
        except jwt.InvalidTokenError as e:
            return create_response(error=f"Invalid token: {str(e)}", status_code=401)

        user_id = payload.get("sub")
        if not user_id:
            return create_response(error="Invalid token: missing user ID", status_code=401)

        g.user_id = user_id
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """require_auth plus a 403 unless g.user_id is listed in ADMIN_USER_IDS."""
    @wraps(f)
    def admin_only(*args, **kwargs):
        if g.user_id not in current_app.config.get("ADMIN_USER_IDS", []):
            return create_response(error="Forbidden", status_code=403)
        return f(*args, **kwargs)

    return require_auth(admin_only)


def get_current_user_id():
    """The authenticated user's id from g, or None outside an authenticated request."""
    return getattr(g, "user_id", None)
