"""Domain exceptions.

Managers raise these, never ``SystemExit`` -- mapping them to process exit
codes is the CLI's responsibility.  Each class also derives from the closest
builtin so callers can catch broadly (``LookupError``, ``ValueError``, ...).
"""

from __future__ import annotations


class WorkspacesError(Exception):
    """Base class for every error raised by the workspaces core."""


# -- Caller / policy -----------------------------------------------------------


class InsufficientPrivilegesError(WorkspacesError, PermissionError):
    """The caller is neither the workspace owner nor privileged."""

    def __init__(self, caller: str, owner: str) -> None:
        super().__init__(f"{caller} is not allowed to act on workspaces of {owner}")
        self.caller = caller
        self.owner = owner


class PolicyViolationError(WorkspacesError, ValueError):
    """The request conflicts with the filesystem's policy."""


class FilesystemDisabledError(PolicyViolationError):
    def __init__(self, filesystem: str) -> None:
        super().__init__(f"Filesystem {filesystem} is disabled. Please try another filesystem.")
        self.filesystem = filesystem


class DurationTooLongError(PolicyViolationError):
    def __init__(self, max_days: int) -> None:
        super().__init__(f"Duration can be at most {max_days} days")
        self.max_days = max_days


class UnknownFilesystemError(WorkspacesError, LookupError):
    """No filesystem given, or the given one is not configured."""

    def __init__(self, name: str | None, known: list[str]) -> None:
        if name is None:
            msg = "Please specify a filesystem with `-f <FILESYSTEM>`"
        else:
            msg = f"Invalid filesystem name {name!r}. Please use one of the following: {', '.join(sorted(known))}"
        super().__init__(msg)
        self.name = name
        self.known = known


# -- Store -----------------------------------------------------------------------


class WorkspaceNotFoundError(WorkspacesError, LookupError):
    def __init__(self, filesystem: str, owner: str, name: str) -> None:
        super().__init__(f"Could not find a matching filesystem={filesystem}, user={owner}, name={name}")
        self.filesystem = filesystem
        self.owner = owner
        self.name = name


class WorkspaceExistsError(WorkspacesError, ValueError):
    def __init__(self, filesystem: str, owner: str, name: str) -> None:
        super().__init__(f"Workspace {name} of {owner} already exists on {filesystem}")
        self.filesystem = filesystem
        self.owner = owner
        self.name = name


class SchemaError(WorkspacesError, RuntimeError):
    """The store cannot be brought to the current schema version."""


# -- External resources ------------------------------------------------------------


class VolumeError(WorkspacesError, RuntimeError):
    """A volume manager call failed.

    Raised after the store change it accompanies has been committed, so the
    store stays ahead of the volume until a later sweep or retry catches up.
    """

    def __init__(self, message: str, *, volume: str | None = None) -> None:
        super().__init__(message)
        self.volume = volume


class NotificationError(WorkspacesError):
    """Base class for notification failures."""


class NotificationUserError(NotificationError):
    """The recipient cannot be resolved (unknown user, bad per-user config).

    Recoverable: the sweep logs it and moves on to the next workspace.
    """


class NotificationTransportError(NotificationError):
    """The mail transport failed.  Aborts the sweep."""


# -- Configuration -----------------------------------------------------------------


class ConfigError(WorkspacesError, ValueError):
    """The configuration file is missing, unsafe or invalid."""
