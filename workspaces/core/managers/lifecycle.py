"""Workspace lifecycle: create, extend, expire, rename.

Every operation follows the same shape:

1. check the caller and the filesystem policy,
2. change the store inside one transaction and commit,
3. only then touch the volume, and finally
4. optionally tell the owner (best effort).

A failure in step 3 surfaces as ``VolumeError`` with the store change
already durable.  The store is the source of truth: the next maintenance run,
or simply repeating the operation, brings the volume back in line.

Expiration times only move one way per operation: ``expire`` never pushes
expiry later, ``extend`` never pulls it earlier.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime, timedelta
from pathlib import Path

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from workspaces.core.db.tables import Workspace
from workspaces.core.errors import (
    DurationTooLongError,
    FilesystemDisabledError,
    InsufficientPrivilegesError,
    NotificationError,
    UnknownFilesystemError,
    VolumeError,
)
from workspaces.core.identity import Caller
from workspaces.core.managers.repository import WorkspaceRepository
from workspaces.core.models.enums import MailKind
from workspaces.core.models.workspace import FilesystemUsage, WorkspaceInfo, classify, whole_days
from workspaces.core.notify.mailer import Notifier
from workspaces.core.settings import FilesystemPolicy
from workspaces.core.volumes.base import VolumeManager


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def resolve_filesystem(
    name: str | None,
    filesystems: Mapping[str, FilesystemPolicy],
    default: str | None = None,
) -> str:
    """Pick the filesystem a command applies to.

    In order of preference: the given name, the configured default, or the
    only configured filesystem.  Raises ``UnknownFilesystemError`` if none
    applies or the chosen one is not configured.
    """
    if name is None:
        if default is not None:
            name = default
        elif len(filesystems) == 1:
            name = next(iter(filesystems))
        else:
            raise UnknownFilesystemError(None, list(filesystems))
    if name not in filesystems:
        raise UnknownFilesystemError(name, list(filesystems))
    return name


class LifecycleEngine:
    """Authorized, policy-checked workspace operations.

    Constructed once per invocation with the configured filesystems and the
    collaborators it drives.  ``notifier`` is optional: without SMTP
    configuration no lifecycle mails are sent.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        filesystems: Mapping[str, FilesystemPolicy],
        volumes: VolumeManager,
        *,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._filesystems = filesystems
        self._volumes = volumes
        self._notifier = notifier
        self._clock = clock

    # -- Preconditions -----------------------------------------------------------

    def _policy(self, filesystem: str) -> FilesystemPolicy:
        try:
            return self._filesystems[filesystem]
        except KeyError:
            raise UnknownFilesystemError(filesystem, list(self._filesystems)) from None

    @staticmethod
    def _authorize(caller: Caller, owner: str) -> None:
        if not caller.may_act_for(owner):
            raise InsufficientPrivilegesError(caller.name, owner)

    @staticmethod
    def _check_enabled(caller: Caller, filesystem: str, policy: FilesystemPolicy) -> None:
        if policy.disabled and not caller.privileged:
            raise FilesystemDisabledError(filesystem)

    @staticmethod
    def _check_duration(caller: Caller, policy: FilesystemPolicy, duration: timedelta) -> None:
        if duration > policy.max_duration and not caller.privileged:
            raise DurationTooLongError(whole_days(policy.max_duration))

    def _notify(self, owner: str, kind: MailKind, **template_vars: object) -> None:
        """Send a lifecycle mail; failures are logged, never raised."""
        if self._notifier is None:
            return
        try:
            self._notifier.notify(owner, kind, **template_vars)
        except NotificationError as exc:
            logger.warning("Failed to send {!r} mail to {}: {}", kind.value, owner, exc)

    # -- Create ------------------------------------------------------------------

    def create(self, caller: Caller, filesystem: str, owner: str, name: str, duration: timedelta) -> Workspace:
        """Create a workspace and its volume.

        Raises ``WorkspaceExistsError`` if the workspace already exists; in that
        case nothing is written and no volume is touched.
        """
        policy = self._policy(filesystem)
        self._authorize(caller, owner)
        self._check_enabled(caller, filesystem, policy)
        self._check_duration(caller, policy, duration)

        now = self._clock()
        with self._session_factory() as db:
            repo = WorkspaceRepository(db)
            workspace = repo.add(filesystem, owner, name, now + duration)
            # Count creation as a notification, so the next maintenance run
            # does not immediately remind the owner of a short-lived workspace.
            repo.log_notification(workspace, now)
            db.commit()
        logger.info("Workspace created: {}/{}/{} (expires {})", filesystem, owner, name, workspace.expiration_time)

        self._volumes.create(policy.volume(owner, name))
        mountpoint = self.mountpoint(workspace)
        self._volumes.restrict_to_owner(mountpoint, owner)

        self._notify(
            owner,
            MailKind.CREATED,
            name=name,
            filesystem=filesystem,
            days=whole_days(duration),
            mountpoint=str(mountpoint),
        )
        return workspace

    # -- Expire ------------------------------------------------------------------

    def expire(
        self,
        caller: Caller,
        filesystem: str,
        owner: str,
        name: str,
        *,
        immediate: bool = False,
    ) -> Workspace:
        """Expire a workspace now and make its volume read-only.

        With *immediate*, expiry is backdated by the retention window so the
        next maintenance run deletes the workspace.  An earlier existing
        expiration time is kept.
        """
        policy = self._policy(filesystem)
        self._authorize(caller, owner)

        now = self._clock()
        candidate = now - policy.expired_retention if immediate else now
        with self._session_factory() as db:
            repo = WorkspaceRepository(db)
            workspace = repo.get(filesystem, owner, name)
            workspace.expiration_time = min(workspace.expiration_time, candidate)
            # Silences reminders until the owner extends the workspace again.
            repo.log_notification(workspace, now)
            db.commit()
        logger.info("Workspace expired: {}/{}/{} (immediate={})", filesystem, owner, name, immediate)

        self._volumes.set_property(policy.volume(owner, name), "readonly", "on")
        return workspace

    # -- Extend ------------------------------------------------------------------

    def extend(self, caller: Caller, filesystem: str, owner: str, name: str, duration: timedelta) -> Workspace:
        """Push expiry to at least *duration* from now and make the volume writable."""
        policy = self._policy(filesystem)
        self._authorize(caller, owner)
        self._check_enabled(caller, filesystem, policy)
        self._check_duration(caller, policy, duration)

        now = self._clock()
        with self._session_factory() as db:
            repo = WorkspaceRepository(db)
            workspace = repo.get(filesystem, owner, name)
            workspace.expiration_time = max(workspace.expiration_time, now + duration)
            # Drop history dated after now so reminder checkpoints re-arm
            # against the new expiration.
            dropped = repo.delete_notifications_after(workspace, now)
            if dropped:
                logger.debug("Dropped {} future notification entries of workspace {}", dropped, workspace.id)
            if caller.acts_as_owner(owner):
                repo.log_notification(workspace, now)
            db.commit()
        logger.info("Workspace extended: {}/{}/{} (expires {})", filesystem, owner, name, workspace.expiration_time)

        self._volumes.set_property(policy.volume(owner, name), "readonly", "off")

        self._notify(
            owner,
            MailKind.EXTENDED,
            name=name,
            filesystem=filesystem,
            days=whole_days(workspace.expiration_time - now),
        )
        return workspace

    # -- Rename ------------------------------------------------------------------

    def rename(self, caller: Caller, filesystem: str, owner: str, source: str, dest: str) -> Workspace:
        """Rename a workspace and its volume.

        Raises ``WorkspaceExistsError`` if *dest* is taken; the workspace is left
        unchanged.  If the volume rename fails after the commit, the store keeps
        the new name and ``VolumeError`` is raised; renaming the volume by hand
        restores consistency.
        """
        policy = self._policy(filesystem)
        self._authorize(caller, owner)
        self._check_enabled(caller, filesystem, policy)

        with self._session_factory() as db:
            repo = WorkspaceRepository(db)
            workspace = repo.get(filesystem, owner, source)
            repo.rename(workspace, dest)
            db.commit()
        logger.info("Workspace renamed: {}/{}/{} -> {}", filesystem, owner, source, dest)

        try:
            self._volumes.rename(policy.volume(owner, source), policy.volume(owner, dest))
        except VolumeError:
            logger.error(
                "Workspace {}/{}/{} renamed in the database, but its volume kept the old name",
                filesystem,
                owner,
                dest,
            )
            raise
        return workspace

    # -- Queries -----------------------------------------------------------------

    def list_workspaces(
        self,
        *,
        owners: Iterable[str] | None = None,
        filesystems: Iterable[str] | None = None,
    ) -> list[Workspace]:
        with self._session_factory() as db:
            return WorkspaceRepository(db).list_workspaces(owners=owners, filesystems=filesystems)

    def mountpoint(self, workspace: Workspace) -> Path:
        policy = self._policy(workspace.filesystem)
        return self._volumes.get_property(policy.volume(workspace.owner, workspace.name), "mountpoint", Path)

    def describe(self, workspace: Workspace) -> WorkspaceInfo:
        """Join a row with its volume's mountpoint and size.

        Raises ``VolumeError`` if the volume cannot be inspected.
        """
        policy = self._policy(workspace.filesystem)
        status, days_left = classify(workspace.expiration_time, policy.expired_retention, self._clock())
        volume = policy.volume(workspace.owner, workspace.name)
        return WorkspaceInfo(
            filesystem=workspace.filesystem,
            owner=workspace.owner,
            name=workspace.name,
            expiration_time=workspace.expiration_time,
            status=status,
            days_left=days_left,
            mountpoint=self.mountpoint(workspace),
            referenced=self._volumes.get_property(volume, "referenced", int),
        )

    def filesystem_usage(self, name: str) -> FilesystemUsage:
        policy = self._policy(name)
        return FilesystemUsage(
            name=name,
            used=self._volumes.get_property(policy.root, "used", int),
            available=self._volumes.get_property(policy.root, "available", int),
            max_duration_days=whole_days(policy.max_duration),
            retention_days=whole_days(policy.expired_retention),
            disabled=policy.disabled,
        )
