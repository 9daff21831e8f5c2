"""
RefreshToken model: one row per issued refresh token, keyed by the token's jti.
Fields:
- jti (primary key) - the only server-side handle; the token itself is never stored
- user_id (String(36)) - FK to users.id
- revoked (bool) - flips false -> true exactly once (rotation or logout)
- created_at, expires_at

Rows are never deleted by the application; expired and revoked rows stay for
audit and replay detection. Housekeeping may prune by expires_at.
"""
from sqlalchemy import Boolean, Column, ForeignKey, Index, String
from sqlalchemy.sql import func

from models.base_model import Base, UTCDateTime, utcnow


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    jti = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_refresh_tokens_user_revoked", "user_id", "revoked"),
        Index("ix_refresh_tokens_expires_at", "expires_at"),
    )

    def __repr__(self):
        return f"<RefreshToken jti={self.jti[:8]}... revoked={self.revoked}>"
