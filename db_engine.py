"""
Database engine and session management for PortfoProphet.
The SQLite file holds one table of keyed JSON blobs (see models.StoredState).
Every connection runs in WAL mode so a blob rewrite never blocks a reader.
"""

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine
from typing import Optional
import logging

from config import get_settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _apply_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
    except Exception as e:
        logger.warning(f"Could not configure SQLite connection: {e}")
    finally:
        cursor.close()


def get_engine() -> Engine:
    """Return the shared engine, creating it from settings on first use."""
    global _engine
    if _engine is not None:
        return _engine

    settings = get_settings()
    url = settings.database_url
    connect_args = {"check_same_thread": False} if _is_sqlite(url) else {}

    _engine = create_engine(url, echo=settings.db_echo, connect_args=connect_args)
    if _is_sqlite(url):
        event.listen(_engine, "connect", _apply_sqlite_pragmas)
    logger.debug(f"Created database engine for {url}")
    return _engine


def init_db():
    """Create the state table if it does not exist yet."""
    from models import StoredState  # noqa: F401  (registers the table)

    SQLModel.metadata.create_all(get_engine())
    logger.info("Database initialized")


def reset_engine():
    """Dispose the cached engine so the next call picks up new settings."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None
