"""
Database engine and session management.

One Database instance is created at startup and shared by every service.
Services open short-lived sessions through ``Database.session()``; each
``with`` block is one transaction (commit on success, rollback on error).

SQLite notes:
    - ``check_same_thread`` is disabled so pooled connections can move
      between Flask request threads and the sweep thread
    - a busy timeout lets concurrent writers queue instead of failing,
      which is what serializes the conditional status updates
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Dict

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.schema import Base
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS = 30


class Database:
    """Database service layer: engine, session factory, schema bootstrap."""

    def __init__(self, url: str, echo: bool = False) -> None:
        """Initialize database connection.

        Args:
            url: Database URL (e.g., "sqlite:///crypto_store.db")
            echo: Log every SQL statement (debugging only)
        """
        self._url = url
        engine_kwargs: Dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
            }
        else:
            engine_kwargs["pool_pre_ping"] = True
            engine_kwargs["pool_recycle"] = 3600

        self._engine = create_engine(url, **engine_kwargs)
        self._session_factory = sessionmaker(
            bind=self._engine,
            class_=Session,
            expire_on_commit=False,
        )
        logger.info(f"Database configured: {self._engine.url.render_as_string(hide_password=True)}")

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for database sessions (one transaction)."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self._engine)
        logger.info("Database schema ensured")

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def dispose(self) -> None:
        """Close pooled connections."""
        self._engine.dispose()
        logger.info("Database connections closed")
