"""
Request/response helpers shared by the API blueprint and auth middleware.

Functions:
- parse_and_validate_request(required_fields): Parses the JSON body and checks required fields.
- create_response(data, error, status_code): Wraps data or an error message in a JSON response.
"""
from flask import jsonify, request
from werkzeug.exceptions import BadRequest


def parse_and_validate_request(required_fields):
    """
    Parses the request JSON payload and validates the presence of required fields.

    :param required_fields: A list of strings representing required field names.
    :return: A tuple of (data, error). On success error is None; on failure data
             is None and error holds a message suitable for a 400 response.
    """
    try:
        data = request.get_json(force=True)
        if not data or not isinstance(data, dict):
            raise ValueError("Request payload is empty")

        missing_fields = [field for field in required_fields if field not in data]
        if missing_fields:
            raise ValueError(f"Missing required fields: {', '.join(missing_fields)}")

        return data, None
    except (BadRequest, ValueError) as e:
        return None, str(e)


def create_response(data=None, error=None, status_code=200):
    """
    Creates a JSON response with the provided data or error message.

    :param data: The data to include in the response, if any.
    :param error: The error message to include in the response, if any.
    :param status_code: The HTTP status code for the response (default: 200).
    :return: A (response, status) tuple Flask can return directly.
    """
    response = {}
    if data is not None:
        response["data"] = data
    if error is not None:
        response["error"] = error
    return jsonify(response), status_code
