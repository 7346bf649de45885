"""SQLAlchemy ORM models for the SQLite store.

The schema itself is owned by the Alembic revisions under
``workspaces/core/alembic/versions``; these models mirror the newest
revision.  Column names follow the historical schema (``user``,
``expiration_time``) so that stores created by earlier releases keep working.

Uses SQLAlchemy 2.0 declarative style with ``Mapped`` type annotations.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

from sqlalchemy import Column, ForeignKey, Integer, Table, Text, UniqueConstraint
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


_FRACTION = re.compile(r"(\.\d{6})\d+")


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware UTC datetimes stored as ISO-8601 text.

    Values are written as ``YYYY-MM-DD HH:MM:SS.ffffff+00:00`` so that string
    comparison in SQL matches chronological order.  Reading also accepts the
    nanosecond precision written by releases before the move to Python.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> str | None:
        if value is None:
            return None
        if value.tzinfo is None:
            msg = "naive datetimes are not accepted; use an aware UTC datetime"
            raise ValueError(msg)
        return value.astimezone(UTC).isoformat(sep=" ", timespec="microseconds")

    def process_result_value(self, value: str | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        parsed = datetime.fromisoformat(_FRACTION.sub(r"\1", value))
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)


class Base(DeclarativeBase):
    pass


class Workspace(Base):
    __tablename__ = "workspaces"
    __table_args__ = (UniqueConstraint("filesystem", "user", "name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    filesystem: Mapped[str] = mapped_column(Text)
    owner: Mapped[str] = mapped_column("user", Text)
    name: Mapped[str] = mapped_column(Text)
    expiration_time: Mapped[datetime] = mapped_column(UTCDateTime)

    def __repr__(self) -> str:
        return f"Workspace({self.filesystem}/{self.owner}/{self.name}, expires={self.expiration_time:%Y-%m-%d %H:%M})"


# Notification history has no key of its own; entries are only ever appended,
# bulk-deleted by timestamp, or removed by the cascade from ``workspaces``.
# Only the most recent timestamp per workspace matters to the scheduler.
notifications = Table(
    "notifications",
    Base.metadata,
    Column("workspace_id", Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False),
    Column("timestamp", UTCDateTime, nullable=False),
)
