"""Maintenance sweep.

Run periodically (``workspaces maintain`` from a systemd timer or cron).  In
one transaction, for every workspace:

1. remind the owner if a notification checkpoint was crossed,
2. destroy workspaces past their retention window,
3. make expired workspaces read-only.

Afterwards, filesystems with ``snapshot = true`` get a recursive snapshot of
their root.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from workspaces.core.db.tables import Workspace
from workspaces.core.errors import NotificationUserError, VolumeError
from workspaces.core.managers.lifecycle import utcnow
from workspaces.core.managers.repository import WorkspaceRepository
from workspaces.core.notify.mailer import Notifier
from workspaces.core.notify.scheduler import evaluate
from workspaces.core.settings import FilesystemPolicy
from workspaces.core.volumes.base import VolumeManager


@dataclass
class SweepReport:
    notified: int = 0
    deleted: int = 0
    read_only: int = 0
    skipped: int = 0
    """Rows on filesystems missing from the configuration."""
    snapshotted: int = 0
    failed: int = 0
    """Notifications or deletions that failed and will be retried next run."""


class MaintenanceSweep:
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

    def run(self) -> SweepReport:
        """Process every workspace, commit, then snapshot.

        ``NotificationTransportError`` and ``VolumeError`` from making a
        workspace read-only abort the run; the transaction is rolled back and
        the error propagates.
        """
        report = SweepReport()
        now = self._clock()
        if self._notifier is None:
            logger.info("No SMTP configuration, skipping expiry notifications")

        with self._session_factory() as db:
            repo = WorkspaceRepository(db)
            for workspace in repo.list_workspaces():
                policy = self._filesystems.get(workspace.filesystem)
                if policy is None:
                    logger.warning(
                        "Skipping workspace {}/{}/{}: filesystem is not configured",
                        workspace.filesystem,
                        workspace.owner,
                        workspace.name,
                    )
                    report.skipped += 1
                    continue
                self._remind(repo, workspace, policy, now, report)
                self._reconcile(repo, workspace, policy, now, report)
            db.commit()

        for name, policy in self._filesystems.items():
            if policy.snapshot:
                logger.info("Snapshotting filesystem {} ({})", name, policy.root)
                self._volumes.snapshot(policy.root)
                report.snapshotted += 1

        logger.info("Maintenance finished: {}", report)
        return report

    def _remind(
        self,
        repo: WorkspaceRepository,
        workspace: Workspace,
        policy: FilesystemPolicy,
        now: datetime,
        report: SweepReport,
    ) -> None:
        if self._notifier is None:
            return
        reminder = evaluate(
            workspace.expiration_time,
            policy.expiry_notifications_on_days,
            repo.last_notification(workspace),
            now,
            policy.expired_retention,
        )
        if reminder is None:
            return

        try:
            recipient = self._notifier.notify(
                workspace.owner,
                reminder.kind,
                name=workspace.name,
                filesystem=workspace.filesystem,
                days=reminder.days,
            )
        except NotificationUserError as exc:
            logger.error("Could not notify {} about workspace {}: {}", workspace.owner, workspace.name, exc)
            report.failed += 1
            return
        logger.info("Sent {} reminder for {} to {}", reminder.kind.value, workspace, recipient)
        repo.log_notification(workspace, now)
        report.notified += 1

    def _reconcile(
        self,
        repo: WorkspaceRepository,
        workspace: Workspace,
        policy: FilesystemPolicy,
        now: datetime,
        report: SweepReport,
    ) -> None:
        volume = policy.volume(workspace.owner, workspace.name)
        if now > workspace.expiration_time + policy.expired_retention:
            logger.info("Deleting workspace {}", workspace)
            try:
                self._volumes.destroy(volume)
            except VolumeError as exc:
                logger.error("Failed to destroy {}, keeping its record: {}", volume, exc)
                report.failed += 1
                return
            repo.delete(workspace)
            report.deleted += 1
        elif now > workspace.expiration_time:
            self._volumes.set_property(volume, "readonly", "on")
            report.read_only += 1
