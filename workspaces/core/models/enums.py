"""Shared enumerations."""

from __future__ import annotations

from enum import StrEnum


class WorkspaceStatus(StrEnum):
    """Where a workspace stands relative to its expiry and retention."""

    ACTIVE = "active"
    EXPIRING = "expiring"
    """Expires within the warning window."""
    EXPIRED = "expired"
    """Past expiry, read-only, still within retention."""
    DELETED_SOON = "deleted_soon"
    """Past retention; removed by the next maintenance run."""


class MailKind(StrEnum):
    """Kinds of mail sent to workspace owners."""

    CREATED = "created"
    EXTENDED = "extended"
    EXPIRING = "expiring"
    DELETING = "deleting"
    TEST = "test"
