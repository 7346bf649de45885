"""Workspaces - time-bounded, owned storage allocations on ZFS."""

__version__ = "0.4.0"
