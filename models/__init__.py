from models.base_model import Base
from models.db_storage import DBStorage
from models.password_reset_token import PasswordResetToken
from models.refresh_token import RefreshToken
from models.user import User

__all__ = ["Base", "DBStorage", "PasswordResetToken", "RefreshToken", "User"]
