"""Explicit workspace ids and notification history.

Revision ID: 002
Revises: 001
Create Date: 2023-11-20

Rebuilds ``workspaces`` with an explicit ``id`` primary key (taken over from
the rowid, so existing identities are kept) and adds the ``notifications``
table, whose entries are removed together with their workspace.
"""

from alembic import op

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("ALTER TABLE workspaces RENAME TO workspaces_old")
    op.execute(
        """
        CREATE TABLE workspaces (
            id              INTEGER  NOT NULL PRIMARY KEY,
            filesystem      TEXT     NOT NULL,
            user            TEXT     NOT NULL,
            name            TEXT     NOT NULL,
            expiration_time DATETIME NOT NULL,
            UNIQUE(filesystem, user, name)
        )
        """
    )
    op.execute(
        """
        INSERT INTO workspaces(id, filesystem, user, name, expiration_time)
            SELECT rowid, filesystem, user, name, expiration_time FROM workspaces_old
        """
    )
    op.execute("DROP TABLE workspaces_old")

    # Only takes effect outside a transaction; the engine turns it on for
    # every connection, this keeps raw sqlite3 sessions on the same page.
    op.execute("PRAGMA foreign_keys = ON")
    op.execute(
        """
        CREATE TABLE notifications (
            workspace_id INTEGER  NOT NULL,
            timestamp    DATETIME NOT NULL,
            FOREIGN KEY(workspace_id) REFERENCES workspaces(id) ON DELETE CASCADE
        )
        """
    )
    op.execute("PRAGMA user_version = 2")


def downgrade() -> None:
    op.execute("DROP TABLE notifications")
    op.execute("ALTER TABLE workspaces RENAME TO workspaces_new")
    op.execute(
        """
        CREATE TABLE workspaces (
            filesystem      TEXT     NOT NULL,
            user            TEXT     NOT NULL,
            name            TEXT     NOT NULL,
            expiration_time DATETIME NOT NULL,
            UNIQUE(filesystem, user, name)
        )
        """
    )
    op.execute(
        """
        INSERT INTO workspaces(rowid, filesystem, user, name, expiration_time)
            SELECT id, filesystem, user, name, expiration_time FROM workspaces_new
        """
    )
    op.execute("DROP TABLE workspaces_new")
    op.execute("PRAGMA user_version = 1")
