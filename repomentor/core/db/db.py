"""Database connection and session management.

Wraps a SQLAlchemy engine + sessionmaker. ``get_session()`` is a context
manager that commits on success and rolls back on error, so callers write::

    with db_manager.get_session() as session:
        session.add(row)
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        connect_args = {}
        if database_url.startswith("sqlite"):
            # Session stores are called from worker threads (asyncio.to_thread)
            connect_args["check_same_thread"] = False
            _ensure_sqlite_dir(database_url)

        self.engine = create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info(f"DatabaseManager initialized ({self.engine.dialect.name})")

    def create_tables(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _ensure_sqlite_dir(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        return
    path = database_url[len(prefix):]
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)


def get_database_manager(database_url: Optional[str] = None) -> DatabaseManager:
    """Build a DatabaseManager from an explicit URL, ``DATABASE_URL`` or config."""
    if database_url is None:
        database_url = os.getenv("DATABASE_URL")
    if database_url is None:
        from ..config import get_config_value
        database_url = get_config_value(
            "repomentor", "database", "url", default="sqlite:///data/repomentor.db"
        )
    manager = DatabaseManager(database_url)
    manager.create_tables()
    return manager

