"""
Domain errors for the auth core.

Stores and the token issuer raise the specific subclasses so callers can log
the exact failure kind. The HTTP layer (api/errors.py) only ever renders
``code``, ``message`` and ``status`` -- never ``str(exc)`` of anything else.

Input validation errors are marshmallow's ``ValidationError`` and are not
redefined here.
"""
from __future__ import annotations


class AuthError(Exception):
    """Base class: carries a stable code, a public message and an HTTP status."""

    code = "AUTH_ERROR"
    message = "Authentication error"
    status = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class DuplicateEmail(AuthError):
    code = "DUPLICATE_EMAIL"
    message = "Email already registered"
    status = 409


class InvalidCredentials(AuthError):
    # Same message for unknown email and wrong password.
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"
    status = 401


class NotFound(AuthError):
    code = "NOT_FOUND"
    message = "Resource not found"
    status = 404


class Conflict(AuthError):
    code = "CONFLICT"
    message = "Conflict"
    status = 409


class Unauthorized(AuthError):
    code = "UNAUTHORIZED"
    message = "Unauthorized"
    status = 401


class InternalError(AuthError):
    code = "INTERNAL_ERROR"
    message = "An unexpected error occurred"
    status = 500


class TokenError(Unauthorized):
    """Any token failure. Rendered externally as a plain 401 Unauthorized."""

    kind = "token_error"


class TokenInvalid(TokenError):
    kind = "invalid"


class TokenExpired(TokenError):
    kind = "expired"


class TokenRevoked(TokenError):
    kind = "revoked"


class TokenNotFound(TokenError):
    kind = "not_found"


class InvalidResetToken(AuthError):
    code = "INVALID_RESET_TOKEN"
    message = "Invalid or expired reset token"
    status = 400
