"""Volume manager interface.

A volume manager owns the storage behind each workspace.  The lifecycle
engine and the maintenance sweep only talk to it through this protocol, so
the backend may be a CLI, a library binding or a daemon.

Volumes are addressed by name, ``{filesystem root}/{owner}/{workspace}``.
Every method raises ``VolumeError`` on failure.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class VolumeManager(Protocol):
    def create(self, volume: str) -> None:
        """Create *volume*, including missing parents."""
        ...

    def destroy(self, volume: str) -> None:
        """Destroy *volume* and its snapshots.  Destroying a missing volume succeeds."""
        ...

    def rename(self, source: str, dest: str) -> None: ...

    def set_property(self, volume: str, key: str, value: str) -> None: ...

    def get_property(self, volume: str, key: str, parse: Callable[[str], T] = str) -> T:
        """Read a property and convert it with *parse*."""
        ...

    def snapshot(self, volume: str) -> None:
        """Recursively snapshot *volume*, named after the current UTC time."""
        ...

    def restrict_to_owner(self, mountpoint: Path, owner: str) -> None:
        """Hand the mounted volume to *owner* and close it to other users."""
        ...
