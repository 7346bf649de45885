"""Schema migrations with a mandatory backup.

Wraps Alembic so that every upgrade of the store is preceded by a
point-in-time copy of the database, taken with SQLite's online backup API.
Revision identifiers are zero-padded integers (``"001"``, ``"002"``, ...),
which makes the schema version a plain number that only ever grows.

Stores created before Alembic was adopted carry their version in
``PRAGMA user_version`` only; they are stamped with the matching revision
before the remaining revisions run.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from loguru import logger
from sqlalchemy import Connection, Engine, text

from workspaces.core.errors import SchemaError

ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"


def alembic_config() -> Config:
    """Build an Alembic Config from the package's alembic.ini.

    Both alembic.ini and the alembic/ directory live inside the package,
    so this works whether running from source or from an installed package.
    """
    return Config(str(ALEMBIC_INI))


def revision_id(version: int) -> str:
    return f"{version:03d}"


class SchemaMigrator:
    """Brings a store to the newest schema version.

    ``backup_dir`` defaults to the directory holding the database.
    """

    def __init__(self, engine: Engine, *, backup_dir: Path | None = None) -> None:
        self._engine = engine
        self._backup_dir = backup_dir
        self._config = alembic_config()

    # -- Versions --------------------------------------------------------------

    @property
    def newest_version(self) -> int:
        head = ScriptDirectory.from_config(self._config).get_current_head()
        return int(head) if head is not None else 0

    def current_version(self) -> int:
        with self._engine.connect() as conn:
            return self._read_version(conn)[0]

    @staticmethod
    def _read_version(conn: Connection) -> tuple[int, bool]:
        """Return ``(version, tracked_by_alembic)``."""
        revision = MigrationContext.configure(conn).get_current_revision()
        if revision is not None:
            return int(revision), True
        user_version = conn.execute(text("PRAGMA user_version")).scalar_one()
        return int(user_version), False

    # -- Upgrade ---------------------------------------------------------------

    def upgrade(self) -> int:
        """Apply all pending migrations and return the resulting version.

        Performs no writes at all if the store is already current.  Raises
        ``SchemaError`` if the store is newer than this release, if the backup
        cannot be taken, or if a migration fails.
        """
        newest = self.newest_version
        with self._engine.connect() as conn:
            current, tracked = self._read_version(conn)

        if current > newest:
            msg = (
                f"database seems to be from a more current version of workspaces "
                f"(schema version {current}, newest known {newest})"
            )
            raise SchemaError(msg)
        if current == newest:
            logger.debug("Schema is current (version {})", current)
            return current

        backup_path = self.backup()
        logger.info("Upgrading schema {} -> {} (backup at {})", current, newest, backup_path)

        try:
            with self._engine.connect() as conn:
                self._config.attributes["connection"] = conn
                if current > 0 and not tracked:
                    command.stamp(self._config, revision_id(current))
                    conn.commit()
                command.upgrade(self._config, "head")
        except Exception as exc:
            msg = f"schema migration failed; the pre-migration copy is at {backup_path}: {exc}"
            raise SchemaError(msg) from exc
        finally:
            self._config.attributes.pop("connection", None)

        return self.current_version()

    def backup(self) -> Path:
        """Copy the whole database next to it (or into ``backup_dir``).

        The copy is named ``<stem>-<YYYYmmddTHHMMSS>.db.bak``.
        """
        database = self._engine.url.database
        if not database or database == ":memory:":
            msg = "cannot back up a database that is not file backed"
            raise SchemaError(msg)

        db_path = Path(database)
        target_dir = self._backup_dir or db_path.parent
        stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%S")
        backup_path = target_dir / f"{db_path.stem}-{stamp}.db.bak"

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            raw = self._engine.raw_connection()
            try:
                dest = sqlite3.connect(backup_path)
                try:
                    raw.driver_connection.backup(dest, pages=4)
                finally:
                    dest.close()
            finally:
                raw.close()
        except (OSError, sqlite3.Error) as exc:
            msg = f"could not back up {db_path} to {backup_path}: {exc}"
            raise SchemaError(msg) from exc

        return backup_path
