"""
AuthService: register / login / refresh / logout / current-user.

Every collaborator is passed in at construction (see api.create_app); the
service holds no module-level state. Token delivery (cookies) is the
transport's job: the service returns a SessionResult and the blueprint
decides how to hand the tokens over.

Refresh narrows every failure, whatever its cause, to one Unauthorized.
The precise reason only goes to the log.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from models.schemas.user import UserOutSchema
from models.user import User
from services.credential_store import CredentialStore
from services.refresh_ledger import RefreshLedger
from utils.exceptions import AuthError, TokenError, TokenInvalid, Unauthorized
from utils.security import RefreshClaims, TokenIssuer

logger = logging.getLogger("session_auth.service")

_full_view = UserOutSchema()
_login_view = UserOutSchema(only=("id", "email"))


@dataclass(frozen=True)
class SessionResult:
    user: dict
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


class AuthService:
    def __init__(self, credentials: CredentialStore, tokens: TokenIssuer, ledger: RefreshLedger):
        self.credentials = credentials
        self.tokens = tokens
        self.ledger = ledger

    def _issue(self, user: User, view: dict) -> SessionResult:
        """Mint a pair and persist the refresh jti before anything is returned."""
        access = self.tokens.sign_access(user.id)
        refresh, jti, expires_at = self.tokens.sign_refresh(user.id)
        self.ledger.persist(jti, user.id, expires_at)
        return SessionResult(user=view, access_token=access, refresh_token=refresh, refresh_expires_at=expires_at)

    def register(self, email: str, password: str) -> SessionResult:
        user = self.credentials.register(email, password)
        return self._issue(user, _full_view.dump(user))

    def login(self, email: str, password: str) -> SessionResult:
        user = self.credentials.verify(email, password)
        logger.info("User %s logged in", user.id)
        return self._issue(user, _login_view.dump(user))

    def refresh(self, refresh_token: str | None) -> SessionResult:
        try:
            if not refresh_token:
                raise TokenInvalid("missing refresh token")
            claims = self.tokens.verify(refresh_token)
            if not isinstance(claims, RefreshClaims):
                raise TokenInvalid("not a refresh token")

            record = self.ledger.validate(claims.jti)
            if record.user_id != claims.user_id:
                raise TokenInvalid("refresh token subject mismatch")
            user = self.credentials.get(claims.user_id)

            new_refresh, new_jti, new_expires_at = self.tokens.sign_refresh(user.id)
            self.ledger.rotate(claims.jti, new_jti, user.id, new_expires_at)
            access = self.tokens.sign_access(user.id)
        except TokenError as exc:
            logger.info("Refresh rejected (%s)", exc.kind)
            raise Unauthorized() from None
        except AuthError as exc:
            logger.warning("Refresh rejected (%s)", exc.code)
            raise Unauthorized() from None
        except SQLAlchemyError:
            logger.exception("Refresh failed on storage error")
            raise Unauthorized() from None

        return SessionResult(
            user=_full_view.dump(user),
            access_token=access,
            refresh_token=new_refresh,
            refresh_expires_at=new_expires_at,
        )

    def logout(self, refresh_token: str | None) -> bool:
        """Revoke the presented refresh token's ledger row, if it verifies.

        Returns True when a row was revoked. An absent, invalid or expired
        token is not an error, nor is a storage failure during the revoke:
        logout always succeeds for the caller.
        Already-issued access tokens stay valid until they expire.
        """
        if not refresh_token:
            return False
        try:
            claims = self.tokens.verify(refresh_token)
        except TokenError as exc:
            logger.info("Logout with unusable refresh token (%s)", exc.kind)
            return False
        if not isinstance(claims, RefreshClaims):
            return False
        try:
            revoked = self.ledger.revoke(claims.jti)
        except SQLAlchemyError:
            logger.exception("Logout could not revoke refresh token for user %s", claims.user_id)
            return False
        logger.info("User %s logged out", claims.user_id)
        return revoked

    def logout_all(self, user_id: str) -> int:
        return self.ledger.revoke_all(user_id)

    def current_user(self, user_id: str) -> dict:
        """Public view for the authenticated user; NotFound if the row is gone."""
        return _full_view.dump(self.credentials.get(user_id))
