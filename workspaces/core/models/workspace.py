"""Read models handed to the presentation layer."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from workspaces.core.models.enums import WorkspaceStatus

WARN_WITHIN = timedelta(days=30)
"""Workspaces expiring sooner than this are flagged in listings."""


class WorkspaceInfo(BaseModel):
    """A workspace row joined with its volume's live properties."""

    model_config = ConfigDict(from_attributes=True)

    filesystem: str
    owner: str
    name: str
    expiration_time: datetime
    status: WorkspaceStatus
    days_left: int
    """Days until expiry, or until deletion once expired."""
    mountpoint: Path | None = None
    referenced: int | None = None
    """Bytes referenced by the volume."""


class FilesystemUsage(BaseModel):
    name: str
    used: int
    available: int
    max_duration_days: int
    retention_days: int
    disabled: bool = False

    @property
    def total(self) -> int:
        return self.used + self.available

    @property
    def fill_ratio(self) -> float:
        return self.used / self.total if self.total else 0.0


def whole_days(delta: timedelta) -> int:
    """Whole days in *delta*, truncated toward zero."""
    return int(delta / timedelta(days=1))


def classify(expiration: datetime, retention: timedelta, now: datetime) -> tuple[WorkspaceStatus, int]:
    """Status and the matching day count for a workspace."""
    if now > expiration + retention:
        return WorkspaceStatus.DELETED_SOON, 0
    if now > expiration:
        return WorkspaceStatus.EXPIRED, whole_days(expiration + retention - now)
    remaining = expiration - now
    if remaining < WARN_WITHIN:
        return WorkspaceStatus.EXPIRING, whole_days(remaining)
    return WorkspaceStatus.ACTIVE, whole_days(remaining)
