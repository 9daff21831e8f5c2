"""
CredentialStore: user identity records and password verification.

Emails are normalized (trim + lowercase) before every lookup and insert, and
the stored column carries a unique index, so there is exactly one user per
case-insensitive email even when two registrations race.

verify() fails with the same InvalidCredentials for an unknown email and for
a wrong password, and runs one argon2 verification in both cases.
"""
from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models.db_storage import DBStorage
from models.schemas.common import normalize_email
from models.user import User
from utils.exceptions import DuplicateEmail, InvalidCredentials, NotFound
from utils.security import PasswordService

logger = logging.getLogger("session_auth.credentials")


class CredentialStore:
    def __init__(self, storage: DBStorage, passwords: PasswordService):
        self.storage = storage
        self.passwords = passwords

    def _query(self):
        return self.storage.get_session().query(User)

    def find_by_email(self, email: str) -> User | None:
        email = normalize_email(email)
        if not email:
            return None
        return self._query().filter(func.lower(User.email) == email).first()

    def get(self, user_id: str) -> User:
        user = self.storage.get(User, user_id) if user_id else None
        if user is None:
            raise NotFound("User not found")
        return user

    def register(self, email: str, password: str) -> User:
        email = normalize_email(email)
        if self.find_by_email(email) is not None:
            raise DuplicateEmail()

        user = User(email=email, password_hash=self.passwords.hash(password))
        self.storage.new(user)
        try:
            self.storage.save()
        except IntegrityError:
            # lost a race against a concurrent registration of the same email
            raise DuplicateEmail() from None
        logger.info("Registered user %s", user.id)
        return user

    def verify(self, email: str, password: str) -> User:
        user = self.find_by_email(email)
        if user is None:
            self.passwords.burn(password)
            logger.info("Login failed: unknown email")
            raise InvalidCredentials()
        if not self.passwords.verify(user.password_hash, password):
            logger.info("Login failed: wrong password for user %s", user.id)
            raise InvalidCredentials()

        if self.passwords.needs_rehash(user.password_hash):
            user.password_hash = self.passwords.hash(password)
            self.storage.save()
            logger.info("Upgraded password hash parameters for user %s", user.id)
        return user

    def set_password(self, user: User, password: str, commit: bool = True) -> None:
        """Replace the password hash. Only the reset flow calls this."""
        user.password_hash = self.passwords.hash(password)
        self.storage.new(user)
        if commit:
            self.storage.save()
