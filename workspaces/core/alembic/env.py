"""Alembic migration environment.

Uses the connection handed over by ``SchemaMigrator`` through
``config.attributes["connection"]``.  When Alembic is run on its own, the
database path is read from ``WorkspacesSettings`` instead.

Each revision runs in its own transaction and also records its number in
``PRAGMA user_version``, so a failed revision leaves all earlier ones applied.
"""

from __future__ import annotations

from alembic import context
from sqlalchemy import Connection

from workspaces.core.db.engine import create_engine
from workspaces.core.db.tables import Base

config = context.config
target_metadata = Base.metadata


def _configure(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        transactional_ddl=True,
        transaction_per_migration=True,
        render_as_batch=True,
    )


def run_migrations_online() -> None:
    connection: Connection | None = config.attributes.get("connection")
    if connection is not None:
        _configure(connection)
        with context.begin_transaction():
            context.run_migrations()
        return

    from workspaces.core.settings import WorkspacesSettings

    engine = create_engine(WorkspacesSettings().database_url)
    with engine.connect() as connection:
        _configure(connection)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    msg = "Offline (SQL script) migrations are not supported for the workspaces store."
    raise RuntimeError(msg)

run_migrations_online()
