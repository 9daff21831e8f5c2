"""
PasswordResetToken model: single-use reset tokens.

Only the SHA-256 of the opaque token is stored. ``used`` flips false -> true
exactly once, through a conditional update, so a token can reset a password
at most once even under concurrent confirmations.
"""
from sqlalchemy import Boolean, Column, ForeignKey, String

from models.base_model import Base, BaseModel, UTCDateTime


class PasswordResetToken(BaseModel, Base):
    __tablename__ = "password_reset_tokens"

    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)

    def __repr__(self):
        return f"<PasswordResetToken id={self.id} used={self.used}>"
