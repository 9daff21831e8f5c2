from flask import jsonify
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException
import logging

from utils.exceptions import AuthError, Conflict, InternalError, TokenError, Unauthorized

logger = logging.getLogger("session_auth.errors")

HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    415: "UNSUPPORTED_MEDIA_TYPE",
    422: "VALIDATION_ERROR",
    429: "TOO_MANY_REQUESTS",
}


def error_response(error: str, message: str, status: int, details: dict | None = None):
    payload = {"error": error, "message": message, "status": status}
    if details:
        payload["details"] = details
    resp = jsonify(payload)
    resp.status_code = status
    resp.headers["Cache-Control"] = "no-store"
    return resp


def register_error_handlers(app):
    # Marshmallow validation errors map to 422; field messages are safe to return
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        return error_response("VALIDATION_ERROR", "Invalid input", 422, details=err.messages)

    # Token failures of any kind collapse to one indistinguishable 401
    @app.errorhandler(TokenError)
    def handle_token_error(err: TokenError):
        return error_response(Unauthorized.code, Unauthorized.message, Unauthorized.status)

    @app.errorhandler(AuthError)
    def handle_auth_error(err: AuthError):
        if isinstance(err, (Conflict, InternalError)):
            logger.error("Internal auth failure: %s", err.__class__.__name__)
            return error_response(InternalError.code, InternalError.message, 500)
        return error_response(err.code, err.message, err.status)

    # Werkzeug HTTPExceptions (404 routes, 405, malformed requests) keep their status
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = err.code or 500
        if status >= 500:
            return error_response(InternalError.code, InternalError.message, status)
        return error_response(HTTP_CODES.get(status, "BAD_REQUEST"), err.description or "Bad request", status)

    # 500 Internal Error (catch-all). Details go to the log only, in every config.
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        return error_response(InternalError.code, InternalError.message, 500)
