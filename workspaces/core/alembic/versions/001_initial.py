"""Create the workspaces table.

Revision ID: 001
Revises:
Create Date: 2023-03-04

Workspaces are identified by their (filesystem, user, name) triple and the
implicit SQLite rowid.
"""

from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
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
    op.execute("PRAGMA user_version = 1")


def downgrade() -> None:
    op.execute("DROP TABLE workspaces")
    op.execute("PRAGMA user_version = 0")
