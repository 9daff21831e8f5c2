from services.auth_service import AuthService, SessionResult
from services.credential_store import CredentialStore
from services.password_reset import LoggingResetNotifier, PasswordResetService
from services.refresh_ledger import RefreshLedger

__all__ = [
    "AuthService",
    "CredentialStore",
    "LoggingResetNotifier",
    "PasswordResetService",
    "RefreshLedger",
    "SessionResult",
]
