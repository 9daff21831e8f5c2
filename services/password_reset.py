"""
Password reset with single-use, expiring tokens.

Same shape as refresh rotation: an unguessable token is handed out, the
server keeps only a handle (here the SHA-256 of the token), and consumption
is a conditional UPDATE gated on ``used = false``. A successful reset also
revokes every refresh token of the user.

Delivery of the token is not this module's concern; it goes to a notifier
passed in at construction.
"""
from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Protocol

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from models.base_model import as_utc, utcnow
from models.db_storage import DBStorage
from models.password_reset_token import PasswordResetToken
from models.user import User
from services.credential_store import CredentialStore
from services.refresh_ledger import RefreshLedger
from utils.exceptions import InvalidResetToken

logger = logging.getLogger("session_auth.password_reset")


class ResetNotifier(Protocol):
    def send_reset(self, user: User, token: str) -> None:
        ...


class LoggingResetNotifier:
    """Default notifier: records that a reset was issued, never the token."""

    def send_reset(self, user: User, token: str) -> None:
        logger.info("Password reset issued for user %s (no delivery channel configured)", user.id)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class PasswordResetService:
    def __init__(
        self,
        storage: DBStorage,
        credentials: CredentialStore,
        ledger: RefreshLedger,
        notifier: ResetNotifier | None = None,
        expires: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.credentials = credentials
        self.ledger = ledger
        self.notifier = notifier or LoggingResetNotifier()
        self.expires = expires
        self._clock = clock

    def request_reset(self, email: str) -> None:
        """Issue a reset token if the email is known. Unknown emails are a silent no-op."""
        user = self.credentials.find_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        token = secrets.token_urlsafe(32)
        session = self.storage.get_session()
        try:
            # only the newest token of a user is usable
            session.execute(
                update(PasswordResetToken)
                .where(PasswordResetToken.user_id == user.id, PasswordResetToken.used.is_(False))
                .values(used=True)
                .execution_options(synchronize_session=False)
            )
            session.add(
                PasswordResetToken(
                    token_hash=hash_reset_token(token),
                    user_id=user.id,
                    expires_at=self._clock() + self.expires,
                    used=False,
                    created_at=self._clock(),
                )
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        self.notifier.send_reset(user, token)

    def confirm_reset(self, token: str, new_password: str) -> str:
        """Consume ``token`` and set the new password. Returns the user id."""
        token_hash = hash_reset_token(token or "")
        session = self.storage.get_session()
        try:
            record = (
                session.query(PasswordResetToken)
                .filter(PasswordResetToken.token_hash == token_hash)
                .populate_existing()
                .first()
            )
            if record is None or record.used:
                raise InvalidResetToken()
            if as_utc(record.expires_at) <= self._clock():
                raise InvalidResetToken()

            result = session.execute(
                update(PasswordResetToken)
                .where(PasswordResetToken.token_hash == token_hash, PasswordResetToken.used.is_(False))
                .values(used=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                raise InvalidResetToken()

            user = session.get(User, record.user_id)
            if user is None:
                session.rollback()
                raise InvalidResetToken()
            self.credentials.set_password(user, new_password, commit=False)
            # token use, new hash and session revocation land together or not at all
            revoked = self.ledger.revoke_all(user.id, commit=False)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise

        logger.info("Password reset for user %s; %d session(s) revoked", user.id, revoked)
        return user.id
