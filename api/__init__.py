from __future__ import annotations

import atexit
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Mapping

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config, validate_config
from .errors import register_error_handlers
from models.db_storage import DBStorage
from services.auth_service import AuthService
from services.credential_store import CredentialStore
from services.password_reset import PasswordResetService, ResetNotifier
from services.refresh_ledger import RefreshLedger
from utils.decorators import SessionGuard
from utils.security import PasswordService, TokenIssuer

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Session Auth API",
        "version": "1.0.0",
        "description": "Registration, login and rotating refresh-token sessions.",
    },
    "basePath": "/",
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\".",
        }
    },
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Storages of live apps; disposed by the single atexit hook below
_live_storages: "weakref.WeakSet[DBStorage]" = weakref.WeakSet()


@atexit.register
def _dispose_live_storages() -> None:
    for storage in list(_live_storages):
        storage.dispose()


@dataclass
class AuthComponents:
    """Everything the blueprints need, built once per app."""

    storage: DBStorage
    tokens: TokenIssuer
    credentials: CredentialStore
    ledger: RefreshLedger
    service: AuthService
    guard: SessionGuard
    resets: PasswordResetService


def _configure_logging(level: str) -> None:
    root = logging.getLogger("session_auth")
    root.setLevel(level.upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


def build_components(config: Mapping[str, Any], notifier: ResetNotifier | None = None) -> AuthComponents:
    """Construct storage, issuer and services from config. No globals involved."""
    storage = DBStorage(
        config["DATABASE_URL"],
        echo=config.get("SQLALCHEMY_ECHO", False),
        statement_timeout_ms=config.get("DB_STATEMENT_TIMEOUT_MS"),
    )
    storage.reload()

    passwords = PasswordService(
        time_cost=config["ARGON2_TIME_COST"],
        memory_cost=config["ARGON2_MEMORY_COST"],
        parallelism=config["ARGON2_PARALLELISM"],
    )
    tokens = TokenIssuer(
        config["JWT_SECRET"],
        key_id=config["JWT_KEY_ID"],
        access_expires=config["ACCESS_TOKEN_EXPIRES"],
        refresh_expires=config["REFRESH_TOKEN_EXPIRES"],
    )
    credentials = CredentialStore(storage, passwords)
    ledger = RefreshLedger(storage)
    return AuthComponents(
        storage=storage,
        tokens=tokens,
        credentials=credentials,
        ledger=ledger,
        service=AuthService(credentials, tokens, ledger),
        guard=SessionGuard(tokens),
        resets=PasswordResetService(
            storage, credentials, ledger, notifier=notifier, expires=config["PASSWORD_RESET_EXPIRES"]
        ),
    )


def create_app(
    config_name: str | None = None,
    overrides: Mapping[str, Any] | None = None,
    notifier: ResetNotifier | None = None,
) -> Flask:
    """
    Application factory: creates and configures the Flask app.
      - config chosen by name or APP_ENV, then ``overrides`` applied on top
      - storage, token issuer and services built here and stored in
        app.extensions["auth"]; the engine is disposed at process exit by one shared atexit hook
    """
    app = Flask(__name__)

    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)
    validate_config(app.config)
    _configure_logging(app.config["LOG_LEVEL"])

    # Credentialed CORS: only the configured browser origin may send cookies
    CORS(
        app,
        resources={r"/*": {"origins": app.config["FRONTEND_ORIGIN"]}},
        supports_credentials=True,
    )

    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    register_error_handlers(app)

    components = build_components(app.config, notifier=notifier)
    app.extensions["auth"] = components
    _live_storages.add(components.storage)

    from .health import bp as health_bp
    from .auth import bp as auth_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        components.storage.close()

    @app.after_request
    def add_security_headers(response):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        return response

    @app.route("/")
    def root():
        return {
            "message": "Session Auth API",
            "docs": "/apidocs/",
            "health": "/health",
        }, 200

    logging.getLogger("session_auth.app").info(
        "App created (env=%s, database=%s)", app.config["APP_ENV"], components.storage.engine.url.get_backend_name()
    )
    return app
