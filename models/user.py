from sqlalchemy import Column, String

from models.base_model import Base, BaseModel


class User(BaseModel, Base):
    """An end user. ``email`` is stored trimmed and lowercased."""

    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def __repr__(self):
        return f"<User id={self.id}>"
