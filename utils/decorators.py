"""
SessionGuard: request-time access-token check.

    NoToken                      -> 401
    Token -> verify -> invalid   -> 401
    Token -> verify -> expired   -> 401
    Token -> verify -> valid     -> g.user_id set, view runs

The token comes from ``Authorization: Bearer <token>`` when that header is
present, otherwise from the access-token cookie. A failure aborts before the
view is called, so a rejected request never executes application code.
"""
from __future__ import annotations

import logging
from functools import wraps

from flask import current_app, g, request

from utils.exceptions import TokenError, TokenInvalid, Unauthorized
from utils.security import AccessClaims, TokenIssuer

logger = logging.getLogger("session_auth.guard")

ACCESS_COOKIE = "access_token"


class SessionGuard:
    def __init__(self, tokens: TokenIssuer, cookie_name: str = ACCESS_COOKIE):
        self.tokens = tokens
        self.cookie_name = cookie_name

    def extract_token(self) -> str | None:
        scheme, _, value = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
        return request.cookies.get(self.cookie_name) or None

    def authenticate(self) -> AccessClaims:
        """Validate the current request's access token and attach the identity to ``g``.

        Raises Unauthorized; the specific token failure is only logged.
        """
        token = self.extract_token()
        if token is None:
            raise Unauthorized()
        try:
            claims = self.tokens.verify(token)
            if not isinstance(claims, AccessClaims):
                raise TokenInvalid("refresh token used as access token")
        except TokenError as exc:
            logger.info("Rejected %s %s: %s token", request.method, request.path, exc.kind)
            raise Unauthorized() from None
        g.user_id = claims.user_id
        g.access_claims = claims
        return claims


def session_required():
    """Decorator: run the view only for a request carrying a valid access token."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            guard: SessionGuard = current_app.extensions["auth"].guard
            guard.authenticate()
            return fn(*args, **kwargs)

        return wrapper

    return decorator
