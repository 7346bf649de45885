"""Data models shared by the managers and the CLI."""

from workspaces.core.models.enums import MailKind, WorkspaceStatus
from workspaces.core.models.workspace import FilesystemUsage, WorkspaceInfo, classify, whole_days

__all__ = [
    "FilesystemUsage",
    "MailKind",
    "WorkspaceInfo",
    "WorkspaceStatus",
    "classify",
    "whole_days",
]
