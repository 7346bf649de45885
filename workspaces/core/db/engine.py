"""SQLAlchemy engine and session factory for the SQLite store.

The pysqlite driver manages transactions on its own and leaves DDL outside
of them.  Following the SQLAlchemy recipe for SQLite, the driver's handling
is switched off and ``BEGIN`` is emitted explicitly, so that every SQLAlchemy
transaction (including each schema migration) is a real SQLite transaction.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import Engine, event
from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy.orm import Session, sessionmaker


def create_engine(database_url: str, **kwargs: object) -> Engine:
    """Create a SQLite engine with foreign keys enforced on every connection.

    All defaults can be overridden via *kwargs*.
    """
    defaults: dict[str, Any] = {"echo": False}
    defaults.update(kwargs)
    engine = sa_create_engine(database_url, **defaults)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        # Disable pysqlite's own BEGIN handling; see module docstring.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    return engine


def create_sqlite_engine(db_path: str | Path, **kwargs: object) -> Engine:
    """Engine for a file-backed store, creating the parent directory."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{path}", **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to *engine*.

    ``expire_on_commit=False`` so that rows returned by the lifecycle engine
    stay readable after their transaction has been committed.
    """
    return sessionmaker(engine, expire_on_commit=False)
