"""
=============================================================================
DATABASE MODULE
=============================================================================
Single source of truth for database connections. The crisis ledger, the
emergency alert audit log, users, contacts and chat messages all share this
engine and session factory.
=============================================================================
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url

from app.core.config import settings

# =============================================================================
# DATABASE URL
# Local dev: SQLite file unless DB_HOST / DATABASE_URL are provided in .env
# Production: MySQL via DB_* env vars
# =============================================================================
DATABASE_URL = settings.DATABASE_URL

ENGINE_INIT_ERROR: Exception | None = None
ENGINE_INIT_ERROR_MSG: str | None = None


def _ensure_database_exists(url):
    """Create database if it doesn't exist (for local MySQL development)."""
    database_name = url.database
    if not database_name or url.get_backend_name() == "sqlite":
        return

    server_url = (
        f"{url.drivername}://{url.username}:{(url.password or '')}"
        f"@{url.host}:{url.port}"
    )
    server_engine = create_engine(server_url, isolation_level="AUTOCOMMIT", pool_pre_ping=True)
    try:
        with server_engine.connect() as conn:
            conn.execute(
                text(
                    f"CREATE DATABASE IF NOT EXISTS `{database_name}` "
                    "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
                )
            )
    finally:
        server_engine.dispose()


def _create_engine():
    """Create the SQLAlchemy engine."""
    connect_args = {}
    if make_url(DATABASE_URL).get_backend_name() == "sqlite":
        # Scheduler jobs and request handlers use the engine from different threads
        connect_args["check_same_thread"] = False
    return create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)


# =============================================================================
# ENGINE (single instance for entire application)
# =============================================================================
try:
    engine = _create_engine()
except Exception as exc:  # pragma: no cover - surface initialization errors
    ENGINE_INIT_ERROR = exc
    ENGINE_INIT_ERROR_MSG = f"{exc.__class__.__name__}: {exc}"
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)


def initialize_main_database() -> None:
    url = make_url(DATABASE_URL)
    _ensure_database_exists(url)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
