from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from workspaces.core.errors import (
    ConfigError,
    DurationTooLongError,
    FilesystemDisabledError,
    InsufficientPrivilegesError,
    NotificationError,
    SchemaError,
    UnknownFilesystemError,
    VolumeError,
    WorkspaceExistsError,
    WorkspaceNotFoundError,
    WorkspacesError,
)
from workspaces.core.identity import Caller
from workspaces.core.settings import WorkspacesSettings
from workspaces.core.volumes.base import VolumeManager

if TYPE_CHECKING:
    from workspaces.core.managers.lifecycle import LifecycleEngine
    from workspaces.core.managers.maintenance import MaintenanceSweep
    from workspaces.core.notify.mailer import Notifier

EXIT_CODES: dict[type[WorkspacesError], int] = {
    InsufficientPrivilegesError: 1,
    FilesystemDisabledError: 2,
    DurationTooLongError: 3,
    WorkspaceNotFoundError: 4,
    WorkspaceExistsError: 5,
    UnknownFilesystemError: 6,
    VolumeError: 7,
    NotificationError: 8,
    SchemaError: 9,
    ConfigError: 10,
}


def exit_code(exc: WorkspacesError) -> int:
    """Exit code for *exc*, looked up along its class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in EXIT_CODES:
            return EXIT_CODES[cls]
    return 1


class _WorkspacesGroup(click.Group):
    """Turns domain errors into a message on stderr and an exit code."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except WorkspacesError as exc:
            click.echo(str(exc), err=True)
            ctx.exit(exit_code(exc))


# ---------------------------------------------------------------------------
# Per-invocation state
# ---------------------------------------------------------------------------


@dataclass
class Runtime:
    """Settings and collaborators shared by all commands of one invocation.

    The store is opened (and migrated) lazily, on first use.
    """

    settings: WorkspacesSettings
    caller: Caller
    volumes: VolumeManager
    clock: Callable[[], datetime] | None = None
    config_file: Path | None = None
    _engine: Engine | None = field(default=None, repr=False)
    _session_factory: sessionmaker[Session] | None = field(default=None, repr=False)

    def engine(self) -> Engine:
        if self._engine is None:
            from workspaces.core.db.engine import create_sqlite_engine

            self._engine = create_sqlite_engine(self.settings.db_path)
            click.get_current_context().call_on_close(self._engine.dispose)
        return self._engine

    def session_factory(self) -> sessionmaker[Session]:
        """Open the store, bringing its schema up to date first."""
        if self._session_factory is None:
            from workspaces.core.db.engine import create_session_factory
            from workspaces.core.db.migrate import SchemaMigrator

            SchemaMigrator(self.engine()).upgrade()
            self._session_factory = create_session_factory(self.engine())
        return self._session_factory

    def notifier(self) -> Notifier | None:
        from workspaces.core.notify.mailer import Notifier

        if self.settings.smtp is None:
            return None
        return Notifier.from_settings(self.settings.smtp)

    def _clock_kwargs(self) -> dict[str, Any]:
        return {"clock": self.clock} if self.clock is not None else {}

    def lifecycle(self) -> LifecycleEngine:
        from workspaces.core.managers.lifecycle import LifecycleEngine

        return LifecycleEngine(
            self.session_factory(),
            self.settings.filesystems,
            self.volumes,
            notifier=self.notifier(),
            **self._clock_kwargs(),
        )

    def sweep(self) -> MaintenanceSweep:
        from workspaces.core.managers.maintenance import MaintenanceSweep

        return MaintenanceSweep(
            self.session_factory(),
            self.settings.filesystems,
            self.volumes,
            notifier=self.notifier(),
            **self._clock_kwargs(),
        )

    def filesystem(self, name: str | None) -> str:
        from workspaces.core.managers.lifecycle import resolve_filesystem

        return resolve_filesystem(name, self.settings.filesystems, self.settings.default_filesystem)


pass_runtime = click.make_pass_decorator(Runtime)


@click.group(cls=_WorkspacesGroup)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: WORKSPACES_CONFIG or /etc/workspaces/workspaces.toml).",
)
@click.version_option(package_name="workspaces")
@click.pass_context
def main(ctx: click.Context, config_file: Path | None) -> None:
    """Workspaces - time-limited ZFS datasets for users."""
    from workspaces.core.log import setup_logging
    from workspaces.core.settings import config_path, load_settings

    settings = load_settings(config_file)
    setup_logging(settings.log_level)

    # Tests hand in overrides for the caller, the volume manager and the clock.
    overrides: dict[str, Any] = ctx.obj if isinstance(ctx.obj, dict) else {}
    if "volumes" in overrides:
        volumes = overrides["volumes"]
    else:
        from workspaces.core.volumes.zfs import ZfsVolumeManager

        volumes = ZfsVolumeManager()
    ctx.obj = Runtime(
        settings=settings,
        caller=overrides.get("caller") or Caller.current(),
        volumes=volumes,
        clock=overrides.get("clock"),
        config_file=config_file or config_path(),
    )


def _filesystem_option() -> Callable:
    return click.option(
        "-f",
        "--filesystem",
        default=None,
        help="Filesystem to use (default: the configured default, or the only one).",
    )


def _user_option() -> Callable:
    return click.option("-u", "--user", default=None, help="Owner of the workspace (default: yourself).")


def _duration_option() -> Callable:
    return click.option(
        "-d",
        "--duration",
        type=click.IntRange(min=0),
        required=True,
        help="Duration in days.",
    )


# ---------------------------------------------------------------------------
# Workspace lifecycle
# ---------------------------------------------------------------------------


@main.command()
@_filesystem_option()
@_duration_option()
@_user_option()
@click.argument("name")
@pass_runtime
def create(rt: Runtime, filesystem: str | None, duration: int, user: str | None, name: str) -> None:
    """Create a workspace."""
    engine = rt.lifecycle()
    workspace = engine.create(
        rt.caller,
        rt.filesystem(filesystem),
        user or rt.caller.name,
        name,
        timedelta(days=duration),
    )
    click.echo(f"Created workspace at {engine.mountpoint(workspace)}")


@main.command()
@_filesystem_option()
@_duration_option()
@_user_option()
@click.argument("name")
@pass_runtime
def extend(rt: Runtime, filesystem: str | None, duration: int, user: str | None, name: str) -> None:
    """Extend a workspace (and make it writable again)."""
    workspace = rt.lifecycle().extend(
        rt.caller,
        rt.filesystem(filesystem),
        user or rt.caller.name,
        name,
        timedelta(days=duration),
    )
    click.echo(f"Workspace {name} now expires on {workspace.expiration_time:%Y-%m-%d %H:%M} UTC")


@main.command()
@_filesystem_option()
@_user_option()
@click.option(
    "--delete-on-next-clean",
    is_flag=True,
    default=False,
    help="Backdate expiry so the next maintenance run deletes the workspace.",
)
@click.argument("name")
@pass_runtime
def expire(rt: Runtime, filesystem: str | None, user: str | None, delete_on_next_clean: bool, name: str) -> None:
    """Expire a workspace; it becomes read-only and is deleted after the retention period."""
    rt.lifecycle().expire(
        rt.caller,
        rt.filesystem(filesystem),
        user or rt.caller.name,
        name,
        immediate=delete_on_next_clean,
    )


@main.command()
@_filesystem_option()
@_user_option()
@click.argument("source")
@click.argument("dest")
@pass_runtime
def rename(rt: Runtime, filesystem: str | None, user: str | None, source: str, dest: str) -> None:
    """Rename a workspace."""
    rt.lifecycle().rename(rt.caller, rt.filesystem(filesystem), user or rt.caller.name, source, dest)


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


@main.command(name="list")
@click.option("-u", "--user", "users", multiple=True, help="Only show workspaces of this user (repeatable).")
@click.option("-f", "--filesystem", "filesystems", multiple=True, help="Only show this filesystem (repeatable).")
@click.option(
    "-o",
    "--output",
    "columns",
    multiple=True,
    type=click.Choice(["name", "user", "fs", "size", "expiry", "mountpoint"]),
    help="Columns to show (repeatable).",
)
@pass_runtime
def list_(rt: Runtime, users: tuple[str, ...], filesystems: tuple[str, ...], columns: tuple[str, ...]) -> None:
    """List workspaces."""
    from workspaces.core.reporting import DEFAULT_WORKSPACE_COLUMNS, WorkspaceColumn, render_workspaces

    engine = rt.lifecycle()
    infos = []
    for workspace in engine.list_workspaces(owners=users or None, filesystems=filesystems or None):
        if workspace.filesystem not in rt.settings.filesystems:
            click.echo(f"Skipping {workspace}: filesystem is not configured", err=True)
            continue
        try:
            infos.append(engine.describe(workspace))
        except VolumeError as exc:
            click.echo(f"Failed to get info for {exc.volume or workspace.name}", err=True)

    selected = [WorkspaceColumn(c) for c in columns] or DEFAULT_WORKSPACE_COLUMNS
    click.echo(render_workspaces(infos, selected))


@main.command()
@click.option(
    "-o",
    "--output",
    "columns",
    multiple=True,
    type=click.Choice(["name", "used", "free", "total", "duration", "retention"]),
    help="Columns to show (repeatable).",
)
@pass_runtime
def filesystems(rt: Runtime, columns: tuple[str, ...]) -> None:
    """List filesystems workspaces can be created in."""
    from workspaces.core.reporting import DEFAULT_FILESYSTEM_COLUMNS, FilesystemColumn, render_filesystems

    engine = rt.lifecycle()
    usages = [engine.filesystem_usage(name) for name in sorted(rt.settings.filesystems)]
    selected = [FilesystemColumn(c) for c in columns] or DEFAULT_FILESYSTEM_COLUMNS
    click.echo(render_filesystems(usages, selected))


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@main.command()
@pass_runtime
def maintain(rt: Runtime) -> None:
    """Send reminders, expire and delete workspaces, take snapshots.

    Meant to be run periodically, e.g. by a systemd timer.
    """
    report = rt.sweep().run()
    click.echo(
        f"notified={report.notified} read_only={report.read_only} deleted={report.deleted} "
        f"skipped={report.skipped} failed={report.failed} snapshots={report.snapshotted}"
    )


@main.command(name="notify-test")
@click.argument("user")
@click.option("--to", default=None, help="Send to this address instead of the user's configured one.")
@pass_runtime
def notify_test(rt: Runtime, user: str, to: str | None) -> None:
    """Send a test mail (admins only)."""
    if not rt.caller.privileged:
        raise InsufficientPrivilegesError(rt.caller.name, user)
    notifier = rt.notifier()
    if notifier is None:
        msg = f"SMTP is not configured. Please add an [smtp] block in {rt.config_file}"
        raise ConfigError(msg)
    recipient = notifier.send_test(user, to)
    click.echo(f"Sent test email to {recipient}")


# ---------------------------------------------------------------------------
# Database management
# ---------------------------------------------------------------------------


@main.group()
def db() -> None:
    """Database migration and management commands."""


@db.command()
@pass_runtime
def upgrade(rt: Runtime) -> None:
    """Back up the database and run pending migrations."""
    from workspaces.core.db.migrate import SchemaMigrator

    version = SchemaMigrator(rt.engine()).upgrade()
    click.echo(f"Database at schema version {version}.")


@db.command()
@pass_runtime
def current(rt: Runtime) -> None:
    """Show current and newest known schema version."""
    from workspaces.core.db.migrate import SchemaMigrator

    migrator = SchemaMigrator(rt.engine())
    click.echo(f"current: {migrator.current_version()}")
    click.echo(f"newest:  {migrator.newest_version}")


@db.command()
def history() -> None:
    """Show migration history."""
    from alembic import command

    from workspaces.core.db.migrate import alembic_config

    command.history(alembic_config(), verbose=True)


if __name__ == "__main__":
    main()
