"""Typed access to workspace rows and their notification history.

All SQL lives here, as does the translation of SQLite constraint failures
into domain errors.  The repository never commits: the caller owns the
transaction and decides when the unit of work is complete.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workspaces.core.db.tables import Workspace, notifications
from workspaces.core.errors import WorkspaceExistsError, WorkspaceNotFoundError


def _is_unique_violation(exc: IntegrityError) -> bool:
    return "UNIQUE constraint failed" in str(exc.orig)


class WorkspaceRepository:
    """Repository over one open session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    # -- Workspaces ------------------------------------------------------------

    def add(self, filesystem: str, owner: str, name: str, expiration_time: datetime) -> Workspace:
        """Insert a workspace.  Raises ``WorkspaceExistsError`` on a duplicate triple."""
        workspace = Workspace(filesystem=filesystem, owner=owner, name=name, expiration_time=expiration_time)
        self._db.add(workspace)
        try:
            self._db.flush()
        except IntegrityError as exc:
            if not _is_unique_violation(exc):
                raise
            raise WorkspaceExistsError(filesystem, owner, name) from None
        return workspace

    def find(self, filesystem: str, owner: str, name: str) -> Workspace | None:
        stmt = select(Workspace).where(
            Workspace.filesystem == filesystem,
            Workspace.owner == owner,
            Workspace.name == name,
        )
        return self._db.execute(stmt).scalar_one_or_none()

    def get(self, filesystem: str, owner: str, name: str) -> Workspace:
        """Like ``find``, but raises ``WorkspaceNotFoundError`` if missing."""
        workspace = self.find(filesystem, owner, name)
        if workspace is None:
            raise WorkspaceNotFoundError(filesystem, owner, name)
        return workspace

    def list_workspaces(
        self,
        *,
        owners: Iterable[str] | None = None,
        filesystems: Iterable[str] | None = None,
    ) -> list[Workspace]:
        """All workspaces, optionally filtered, ordered by filesystem, owner and name."""
        stmt = select(Workspace).order_by(Workspace.filesystem, Workspace.owner, Workspace.name)
        if owners is not None:
            stmt = stmt.where(Workspace.owner.in_(list(owners)))
        if filesystems is not None:
            stmt = stmt.where(Workspace.filesystem.in_(list(filesystems)))
        return list(self._db.execute(stmt).scalars().all())

    def rename(self, workspace: Workspace, new_name: str) -> Workspace:
        """Rename in place.  Raises ``WorkspaceExistsError`` if *new_name* is taken.

        A failed flush rolls the session back and expires *workspace*, so its
        key is read up front.
        """
        filesystem, owner = workspace.filesystem, workspace.owner
        workspace.name = new_name
        try:
            self._db.flush()
        except IntegrityError as exc:
            if not _is_unique_violation(exc):
                raise
            raise WorkspaceExistsError(filesystem, owner, new_name) from None
        return workspace

    def delete(self, workspace: Workspace) -> None:
        """Delete a workspace; its notification history goes with it (FK cascade)."""
        self._db.delete(workspace)
        self._db.flush()

    # -- Notification history ----------------------------------------------------

    def log_notification(self, workspace: Workspace, timestamp: datetime) -> None:
        self._db.execute(insert(notifications).values(workspace_id=workspace.id, timestamp=timestamp))

    def last_notification(self, workspace: Workspace) -> datetime | None:
        stmt = (
            select(notifications.c.timestamp)
            .where(notifications.c.workspace_id == workspace.id)
            .order_by(notifications.c.timestamp.desc())
            .limit(1)
        )
        return self._db.execute(stmt).scalar_one_or_none()

    def notification_times(self, workspace: Workspace) -> list[datetime]:
        stmt = (
            select(notifications.c.timestamp)
            .where(notifications.c.workspace_id == workspace.id)
            .order_by(notifications.c.timestamp)
        )
        return list(self._db.execute(stmt).scalars().all())

    def delete_notifications_after(self, workspace: Workspace, instant: datetime) -> int:
        """Drop history entries dated strictly after *instant*; returns the count."""
        stmt = delete(notifications).where(
            notifications.c.workspace_id == workspace.id,
            notifications.c.timestamp > instant,
        )
        return self._db.execute(stmt).rowcount
