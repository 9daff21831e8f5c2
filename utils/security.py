"""
security helpers:
- Argon2id password hashing via argon2-cffi
- Access / refresh token signing and verification via PyJWT (HS256)
- Random identifiers for refresh-token jti values

TokenIssuer is stateless: it never touches the database. Whether a refresh
token is still usable is the RefreshLedger's decision, not ours.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Mapping, Tuple, Union

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from utils.exceptions import TokenExpired, TokenInvalid

ACCESS = "access"
REFRESH = "refresh"

ALGORITHM = "HS256"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_jti() -> str:
    """Generate an unguessable token identifier (256 bits of entropy)."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


class PasswordService:
    """Thin wrapper around argon2's PasswordHasher.

    Cost parameters come from config so tests can run with a cheap hasher.
    A dummy hash is computed once so that lookups for unknown emails spend
    the same time hashing as lookups for real ones.
    """

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 4):
        self._ph = PasswordHasher(time_cost=time_cost, memory_cost=memory_cost, parallelism=parallelism)
        self._dummy_hash = self._ph.hash(secrets.token_hex(16))

    def hash(self, password: str) -> str:
        return self._ph.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        try:
            return self._ph.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError):
            # corrupt or foreign hash in the row; treat as a failed login
            return False

    def burn(self, password: str) -> None:
        """Run a verification that always fails, for timing equalization."""
        self.verify(self._dummy_hash, password)

    def needs_rehash(self, password_hash: str) -> bool:
        return self._ph.check_needs_rehash(password_hash)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    issued_at: datetime
    expires_at: datetime
    type: str = ACCESS


@dataclass(frozen=True)
class RefreshClaims:
    user_id: str
    jti: str
    issued_at: datetime
    expires_at: datetime
    type: str = REFRESH


Claims = Union[AccessClaims, RefreshClaims]


class TokenIssuer:
    """Mints and verifies signed access and refresh tokens.

    The signing key is looked up by the ``kid`` header, so adding a second
    key to ``keyring`` is enough to verify tokens signed before a rotation.
    Only ``active_kid`` is used for signing.
    """

    def __init__(
        self,
        secret: str,
        key_id: str = "primary",
        access_expires: timedelta = timedelta(minutes=10),
        refresh_expires: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utcnow,
        keyring: Mapping[str, str] | None = None,
    ):
        if not secret:
            raise ValueError("TokenIssuer requires a signing secret")
        self.active_kid = key_id
        self.keyring: Dict[str, str] = dict(keyring or {})
        self.keyring[key_id] = secret
        self.access_expires = access_expires
        self.refresh_expires = refresh_expires
        self._clock = clock

    def _encode(self, payload: dict) -> str:
        return jwt.encode(
            payload,
            self.keyring[self.active_kid],
            algorithm=ALGORITHM,
            headers={"kid": self.active_kid},
        )

    def sign_access(self, user_id: str) -> str:
        now = self._clock()
        payload = {
            "sub": str(user_id),
            "type": ACCESS,
            "iat": int(now.timestamp()),
            "exp": int((now + self.access_expires).timestamp()),
        }
        return self._encode(payload)

    def sign_refresh(self, user_id: str) -> Tuple[str, str, datetime]:
        """Return ``(token, jti, expires_at)``.

        The jti must be persisted in the ledger before the token is handed out,
        otherwise the token can never be rotated.
        """
        now = self._clock()
        jti = generate_jti()
        expires_at = now + self.refresh_expires
        payload = {
            "sub": str(user_id),
            "type": REFRESH,
            "jti": jti,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return self._encode(payload), jti, expires_at.replace(microsecond=0)

    def verify(self, token: str) -> Claims:
        """Check signature and expiry and return typed claims.

        Raises TokenExpired for a past ``exp`` and TokenInvalid for everything
        else (bad signature, unknown kid, missing claims, unknown type).
        """
        if not token or not isinstance(token, str):
            raise TokenInvalid("missing token")
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise TokenInvalid("malformed token") from exc

        key = self.keyring.get(header.get("kid", ""))
        if key is None:
            raise TokenInvalid("unknown signing key")

        try:
            decoded = jwt.decode(
                token,
                key,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "type", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired("token expired") from exc
        except jwt.PyJWTError as exc:
            raise TokenInvalid("invalid token") from exc

        issued_at = datetime.fromtimestamp(decoded["iat"], tz=timezone.utc)
        expires_at = datetime.fromtimestamp(decoded["exp"], tz=timezone.utc)
        token_type = decoded.get("type")
        if token_type == ACCESS:
            return AccessClaims(user_id=str(decoded["sub"]), issued_at=issued_at, expires_at=expires_at)
        if token_type == REFRESH:
            jti = decoded.get("jti")
            if not jti or not isinstance(jti, str):
                raise TokenInvalid("refresh token without jti")
            return RefreshClaims(
                user_id=str(decoded["sub"]), jti=jti, issued_at=issued_at, expires_at=expires_at
            )
        raise TokenInvalid("unknown token type")
