"""Plain-text tables for ``workspaces list`` and ``workspaces filesystems``.

Columns are padded by two spaces, numeric columns are right-aligned, and the
header row is bold.  Colours go through ``click.style``, so they disappear
when output is not a terminal.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

import click

from workspaces.core.models.enums import WorkspaceStatus
from workspaces.core.models.workspace import FilesystemUsage, WorkspaceInfo

GIB = 1 << 30


class WorkspaceColumn(StrEnum):
    NAME = "name"
    USER = "user"
    FS = "fs"
    SIZE = "size"
    EXPIRY = "expiry"
    MOUNTPOINT = "mountpoint"


class FilesystemColumn(StrEnum):
    NAME = "name"
    USED = "used"
    FREE = "free"
    TOTAL = "total"
    DURATION = "duration"
    RETENTION = "retention"


DEFAULT_WORKSPACE_COLUMNS = tuple(WorkspaceColumn)
DEFAULT_FILESYSTEM_COLUMNS = tuple(FilesystemColumn)

_RIGHT_ALIGNED = {
    WorkspaceColumn.SIZE,
    WorkspaceColumn.EXPIRY,
    FilesystemColumn.USED,
    FilesystemColumn.FREE,
    FilesystemColumn.TOTAL,
    FilesystemColumn.DURATION,
    FilesystemColumn.RETENTION,
}


@dataclass(frozen=True)
class Cell:
    text: str
    style: dict[str, object] | None = None


def gib(size: int) -> str:
    return f"{size // GIB}G"


def render_table(headers: Sequence[StrEnum], rows: Sequence[Sequence[Cell]]) -> str:
    """Align *rows* under *headers*.

    Widths are computed on the unstyled text so ANSI escapes do not skew them.
    """
    widths = [len(str(h)) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell.text))

    def fmt(i: int, column: StrEnum, cell: Cell) -> str:
        text = cell.text.rjust(widths[i]) if column in _RIGHT_ALIGNED else cell.text.ljust(widths[i])
        return click.style(text, **cell.style) if cell.style else text  # type: ignore[arg-type]

    lines = ["  ".join(click.style(str(h).upper().ljust(widths[i]), bold=True) for i, h in enumerate(headers))]
    for row in rows:
        lines.append("  ".join(fmt(i, headers[i], cell) for i, cell in enumerate(row)).rstrip())
    return "\n".join(lines)


# -- Workspaces --------------------------------------------------------------------


def _expiry_cell(info: WorkspaceInfo) -> Cell:
    match info.status:
        case WorkspaceStatus.DELETED_SOON:
            return Cell("deleted soon", {"fg": "red", "bold": True})
        case WorkspaceStatus.EXPIRED:
            return Cell(f"deleted in {info.days_left:>2}d", {"fg": "red", "bold": True})
        case WorkspaceStatus.EXPIRING:
            return Cell(f"expires in {info.days_left:>2}d", {"fg": "yellow"})
        case _:
            return Cell(f"expires in {info.days_left:>2}d")


def workspace_row(info: WorkspaceInfo, columns: Sequence[WorkspaceColumn]) -> list[Cell]:
    values = {
        WorkspaceColumn.NAME: lambda: Cell(info.name),
        WorkspaceColumn.USER: lambda: Cell(info.owner),
        WorkspaceColumn.FS: lambda: Cell(info.filesystem),
        WorkspaceColumn.SIZE: lambda: Cell(gib(info.referenced or 0)),
        WorkspaceColumn.EXPIRY: lambda: _expiry_cell(info),
        WorkspaceColumn.MOUNTPOINT: lambda: Cell(str(info.mountpoint or "")),
    }
    return [values[c]() for c in columns]


def render_workspaces(
    infos: Sequence[WorkspaceInfo],
    columns: Sequence[WorkspaceColumn] = DEFAULT_WORKSPACE_COLUMNS,
) -> str:
    return render_table(columns, [workspace_row(info, columns) for info in infos])


# -- Filesystems ---------------------------------------------------------------------


def _usage_style(usage: FilesystemUsage) -> dict[str, object] | None:
    if usage.fill_ratio > 0.9:
        return {"fg": "red"}
    if usage.fill_ratio > 0.75:
        return {"fg": "yellow"}
    if usage.disabled:
        return {"dim": True}
    return None


def filesystem_row(usage: FilesystemUsage, columns: Sequence[FilesystemColumn]) -> list[Cell]:
    values = {
        FilesystemColumn.NAME: usage.name,
        FilesystemColumn.USED: gib(usage.used),
        FilesystemColumn.FREE: gib(usage.available),
        FilesystemColumn.TOTAL: gib(usage.total),
        FilesystemColumn.DURATION: "disabled" if usage.disabled else f"{usage.max_duration_days}d",
        FilesystemColumn.RETENTION: f"{usage.retention_days}d",
    }
    style = _usage_style(usage)
    return [Cell(values[c], style) for c in columns]


def render_filesystems(
    usages: Sequence[FilesystemUsage],
    columns: Sequence[FilesystemColumn] = DEFAULT_FILESYSTEM_COLUMNS,
) -> str:
    return render_table(columns, [filesystem_row(u, columns) for u in usages])
