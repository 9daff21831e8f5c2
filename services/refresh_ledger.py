"""
RefreshLedger: server-side record of every refresh token ever issued.

The ledger is what makes a refresh token revocable and single-use:

- persist():  insert an unrevoked row for a freshly minted jti
- validate(): NotFound / Revoked / Expired are distinct failure kinds
- rotate():   revoke the old jti and insert the new one as one transaction.
              The revoke is a conditional UPDATE (``revoked = false`` in the
              WHERE clause) and its rowcount decides whether the insert
              happens at all. Two concurrent rotations of the same jti cannot
              both see rowcount == 1, so a replayed token never mints a second
              session.
- revoke() / revoke_all(): idempotent; re-revoking is a no-op.

Rows are never deleted here.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.base_model import as_utc, utcnow
from models.db_storage import DBStorage
from models.refresh_token import RefreshToken
from utils.exceptions import Conflict, TokenExpired, TokenNotFound, TokenRevoked

logger = logging.getLogger("session_auth.ledger")


def _short(jti: str) -> str:
    return f"{jti[:8]}..."


class RefreshLedger:
    def __init__(self, storage: DBStorage, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self._clock = clock

    def persist(self, jti: str, user_id: str, expires_at: datetime) -> RefreshToken:
        record = RefreshToken(jti=jti, user_id=user_id, expires_at=expires_at, revoked=False, created_at=self._clock())
        self.storage.new(record)
        try:
            self.storage.save()
        except IntegrityError:
            logger.error("Refresh jti collision for user %s", user_id)
            raise Conflict("Refresh token identifier already exists") from None
        return record

    def get(self, jti: str) -> RefreshToken | None:
        if not jti:
            return None
        # populate_existing: another thread may have revoked it since this
        # session last loaded the row
        return self.storage.get_session().get(RefreshToken, jti, populate_existing=True)

    def validate(self, jti: str) -> RefreshToken:
        record = self.get(jti)
        if record is None:
            raise TokenNotFound("refresh token not found")
        if record.revoked:
            raise TokenRevoked("refresh token revoked")
        if as_utc(record.expires_at) <= self._clock():
            raise TokenExpired("refresh token expired")
        return record

    def rotate(self, old_jti: str, new_jti: str, user_id: str, new_expires_at: datetime) -> RefreshToken:
        """Atomically consume ``old_jti`` and register ``new_jti``.

        Raises TokenRevoked when the old row was already revoked (or does not
        belong to ``user_id``); nothing is written in that case.
        """
        session = self.storage.get_session()
        try:
            result = session.execute(
                update(RefreshToken)
                .where(
                    RefreshToken.jti == old_jti,
                    RefreshToken.user_id == user_id,
                    RefreshToken.revoked.is_(False),
                )
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                logger.warning("Rotation refused for %s: already revoked (possible replay)", _short(old_jti))
                raise TokenRevoked("refresh token already used")

            record = RefreshToken(
                jti=new_jti,
                user_id=user_id,
                expires_at=new_expires_at,
                revoked=False,
                created_at=self._clock(),
            )
            session.add(record)
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.error("Refresh jti collision during rotation for user %s", user_id)
            raise Conflict("Refresh token identifier already exists") from None
        except SQLAlchemyError:
            session.rollback()
            raise
        logger.info("Rotated refresh token %s -> %s", _short(old_jti), _short(new_jti))
        return record

    def revoke(self, jti: str) -> bool:
        """Revoke a single record. Returns True if this call flipped it."""
        session = self.storage.get_session()
        try:
            result = session.execute(
                update(RefreshToken)
                .where(RefreshToken.jti == jti, RefreshToken.revoked.is_(False))
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        return result.rowcount > 0

    def revoke_all(self, user_id: str, commit: bool = True) -> int:
        """Revoke every unrevoked record of a user. Returns how many flipped.

        With ``commit=False`` the UPDATE joins the caller's open transaction
        and the caller commits or rolls back.
        """
        session = self.storage.get_session()
        try:
            result = session.execute(
                update(RefreshToken)
                .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )
            if commit:
                session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        logger.info("Revoked %d refresh token(s) for user %s", result.rowcount, user_id)
        return result.rowcount
