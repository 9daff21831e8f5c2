"""
DBStorage: owns the SQLAlchemy engine (the connection pool) and a
thread-scoped session registry.

One instance is built by create_app() from DATABASE_URL and injected into the
services; nothing in the package reaches for a module-level storage object.
Each request thread gets its own session; the app removes it on teardown.
"""
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from models.base_model import Base
from models.password_reset_token import PasswordResetToken
from models.refresh_token import RefreshToken
from models.user import User

logger = logging.getLogger("session_auth.storage")

# Map model names for easy querying
classes = {
    "User": User,
    "RefreshToken": RefreshToken,
    "PasswordResetToken": PasswordResetToken,
}


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


class DBStorage:
    __engine = None
    __session = None

    def __init__(self, database_url: str, echo: bool = False, statement_timeout_ms: int | None = None):
        """Build the engine for ``database_url``.

        statement_timeout_ms bounds every statement: PostgreSQL enforces it
        server-side, SQLite uses it as the lock wait (busy) timeout.
        """
        if not database_url:
            raise ValueError("DBStorage requires a database URL")
        connect_args = {}
        engine_kwargs = {"echo": echo}

        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if statement_timeout_ms:
                connect_args["timeout"] = statement_timeout_ms / 1000
            if _is_memory_sqlite(database_url):
                # one shared connection, otherwise every thread sees an empty DB
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True
            if statement_timeout_ms and database_url.startswith("postgresql"):
                connect_args["options"] = f"-c statement_timeout={int(statement_timeout_ms)}"

        self.__engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)

        if self.__engine.url.get_backend_name() == "sqlite":
            # Enable SQLite foreign keys (needed for ON DELETE CASCADE)
            @event.listens_for(self.__engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

    @property
    def engine(self):
        return self.__engine

    def reload(self):
        """Create tables and start the session registry"""
        Base.metadata.create_all(self.__engine)
        session_factory = sessionmaker(bind=self.__engine, expire_on_commit=False)
        self.__session = scoped_session(session_factory)

    def new(self, obj):
        """Add object to session"""
        self.__session.add(obj)

    def save(self):
        """Commit session; roll back and re-raise on any database error"""
        try:
            self.__session.commit()
        except SQLAlchemyError:
            self.__session.rollback()
            raise

    def get(self, cls, id):
        """Fetch one object by class and primary key"""
        if cls in classes.values():
            return self.__session.get(cls, id)
        return None

    def ping(self) -> bool:
        """Return True when the database answers a trivial query"""
        try:
            with self.__engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False

    def close(self):
        """Remove the current thread's session (request teardown)"""
        if self.__session is not None:
            self.__session.remove()

    def dispose(self):
        """Release pooled connections (process shutdown)"""
        self.close()
        self.__engine.dispose()

    # expose the SQLAlchemy session for advanced querying (conditional updates, filters)
    def get_session(self):
        return self.__session
