import logging
from functools import wraps

from flask import jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class BadRequest(ApiError):
    status_code = 400


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class DatabaseNotConfigured(ApiError):
    status_code = 503

    def __init__(self, message="Database is niet geconfigureerd."):
        super().__init__(message)


def validation_details(error: ValidationError):
    return [
        {
            "path": [str(part) for part in issue.get("loc", ())],
            "message": issue.get("msg", ""),
        }
        for issue in error.errors()
    ]


def api_errors(failure_message: str):
    """Turn unexpected exceptions in a route into a logged 500 with a Dutch message."""

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except (ApiError, ValidationError, HTTPException):
                raise
            except Exception:
                logger.exception("%s (%s)", failure_message, view.__name__)
                return jsonify({"error": failure_message}), 500

        return wrapper

    return decorator


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        payload = {"error": error.message}
        if error.details is not None:
            payload["details"] = error.details
        return jsonify(payload), error.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        return jsonify({"error": "Validatiefout", "details": validation_details(error)}), 400
