"""ZFS volume manager.

Runs the ``zfs`` command line tool.  Each workspace is a dataset below its
filesystem's root dataset; ``zfs create -p`` creates the per-user parent on
first use.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

from loguru import logger

from workspaces.core.errors import VolumeError

T = TypeVar("T")

WORKSPACE_MODE = 0o750


class ZfsVolumeManager:
    """``VolumeManager`` backed by the ``zfs`` CLI."""

    def __init__(self, binary: str = "zfs", *, timeout: float | None = None) -> None:
        self._binary = binary
        self._timeout = timeout

    def _run(self, args: Sequence[str], *, volume: str) -> str:
        cmd = [self._binary, *args]
        logger.debug("Running {}", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self._timeout, check=False)
        except (OSError, subprocess.SubprocessError) as exc:
            msg = f"could not run {' '.join(cmd)}: {exc}"
            raise VolumeError(msg, volume=volume) from exc
        if proc.returncode != 0:
            msg = f"{' '.join(cmd)} exited with status {proc.returncode}: {proc.stderr.strip()}"
            raise VolumeError(msg, volume=volume)
        return proc.stdout

    # -- Lifecycle -------------------------------------------------------------

    def create(self, volume: str) -> None:
        self._run(["create", "-p", volume], volume=volume)

    def exists(self, volume: str) -> bool:
        try:
            self._run(["list", "-H", "-o", "name", volume], volume=volume)
        except VolumeError:
            return False
        return True

    def destroy(self, volume: str) -> None:
        if not self.exists(volume):
            logger.info("Volume {} already gone", volume)
            return
        self._run(["destroy", "-r", volume], volume=volume)

    def rename(self, source: str, dest: str) -> None:
        self._run(["rename", source, dest], volume=source)

    def snapshot(self, volume: str) -> None:
        stamp = datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        self._run(["snapshot", "-r", f"{volume}@{stamp}"], volume=volume)

    # -- Properties --------------------------------------------------------------

    def set_property(self, volume: str, key: str, value: str) -> None:
        self._run(["set", f"{key}={value}", volume], volume=volume)

    def get_property(self, volume: str, key: str, parse: Callable[[str], T] = str) -> T:  # type: ignore[assignment]
        # -H: no header, tab separated; -p: exact (parsable) numbers
        raw = self._run(["get", "-Hp", "-o", "value", key, volume], volume=volume).rstrip("\n")
        try:
            return parse(raw)
        except ValueError as exc:
            msg = f"could not parse property {key}={raw!r} of {volume}: {exc}"
            raise VolumeError(msg, volume=volume) from exc

    # -- Permissions -------------------------------------------------------------

    def restrict_to_owner(self, mountpoint: Path, owner: str) -> None:
        try:
            os.chmod(mountpoint, WORKSPACE_MODE)
            shutil.chown(mountpoint, user=owner, group=owner)
        except (OSError, LookupError) as exc:
            msg = f"failed to hand {mountpoint} over to {owner}: {exc}"
            raise VolumeError(msg) from exc
