"""Database engine and session handle.

The engine and session factory live on a :class:`Database` instance created
by the application factory and stored on ``app.extensions``.  Nothing here is
module-global apart from the declarative base, so several applications (for
example one per test) can coexist in the same process.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from flask import current_app
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

_LOGGER = logging.getLogger(__name__)
EXTENSION_KEY = "database"


class Base(DeclarativeBase):
    """Declarative base shared by every table in :mod:`dataflow.models.tables`."""


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns one engine and its session factory for the lifetime of an app."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.engine: Engine = create_engine(url, future=True)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )
        _LOGGER.debug("Database handle created for %s", self.engine.url.render_as_string())

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error."""

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
        """Create database tables for all declared models."""

        # Registers every model with ``Base.metadata``.
        from dataflow.models import tables  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def get_database() -> Database:
    """Return the handle bound to the current Flask application."""

    return current_app.extensions[EXTENSION_KEY]


@contextmanager
def session_scope() -> Iterator[Session]:
    """Shortcut for ``get_database().session_scope()`` inside a request."""

    with get_database().session_scope() as session:
        yield session


__all__ = ["Base", "Database", "EXTENSION_KEY", "get_database", "session_scope"]
