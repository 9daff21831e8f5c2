"""
Environment-aware configuration.

Reads .env (python-dotenv) and exposes one config class per environment.
Required outside development: JWT_SECRET (32+ chars) and DATABASE_URL.
validate_config() enforces that at startup instead of at first request.
"""
import logging
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()  # Read .env if present

logger = logging.getLogger("session_auth.config")

DEV_JWT_SECRET = "dev-secret-change-me-dev-secret-change-me"
MIN_SECRET_LENGTH = 32


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    DEBUG = False
    TESTING = False
    APP_ENV = os.getenv("APP_ENV", "dev")

    PORT = int(os.getenv("PORT", "4000"))
    DATABASE_URL = os.getenv("DATABASE_URL")
    # Browser origin allowed to call the API with credentials (cookies)
    FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")

    JWT_SECRET = os.getenv("JWT_SECRET")
    JWT_KEY_ID = os.getenv("JWT_KEY_ID", "primary")
    ACCESS_TOKEN_EXPIRES = timedelta(minutes=10)
    REFRESH_TOKEN_EXPIRES = timedelta(days=7)
    PASSWORD_RESET_EXPIRES = timedelta(minutes=int(os.getenv("PASSWORD_RESET_EXPIRES_MINUTES", "30")))

    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", True)
    SESSION_COOKIE_SAMESITE = "Lax"

    # argon2id cost; defaults land around 100ms per hash on commodity hardware
    ARGON2_TIME_COST = int(os.getenv("ARGON2_TIME_COST", "3"))
    ARGON2_MEMORY_COST = int(os.getenv("ARGON2_MEMORY_COST", "65536"))
    ARGON2_PARALLELISM = int(os.getenv("ARGON2_PARALLELISM", "4"))

    DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))
    SQLALCHEMY_ECHO = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///session-auth.db")
    JWT_SECRET = os.getenv("JWT_SECRET") or DEV_JWT_SECRET
    # local http development: browsers drop Secure cookies on plain http
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    JWT_SECRET = "testing-secret-testing-secret-testing-secret"
    SESSION_COOKIE_SECURE = False
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 1024
    ARGON2_PARALLELISM = 1
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    DEBUG = False


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def validate_config(config) -> None:
    """Refuse to start with an unusable secret or without a database.

    ``config`` is a mapping (Flask's app.config works).
    """
    secret = config.get("JWT_SECRET")
    if not config.get("DATABASE_URL"):
        raise ValueError("DATABASE_URL is not set")
    if not secret:
        raise ValueError("JWT_SECRET is not set")
    if secret == DEV_JWT_SECRET:
        if not (config.get("DEBUG") or config.get("TESTING")):
            raise ValueError("JWT_SECRET must be set explicitly outside development")
        logger.warning("Using the built-in development JWT secret; never do this in production")
    if len(secret) < MIN_SECRET_LENGTH:
        raise ValueError(f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters")
