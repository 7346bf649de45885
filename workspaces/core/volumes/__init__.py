"""Volume managers backing workspaces."""

from workspaces.core.volumes.base import VolumeManager
from workspaces.core.volumes.zfs import ZfsVolumeManager

__all__ = ["VolumeManager", "ZfsVolumeManager"]
