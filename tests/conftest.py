"""Shared test fixtures: a migrated SQLite store and in-memory fakes.

Every test gets its own database file under ``tmp_path``, brought to the
newest schema through the real ``SchemaMigrator``.  The volume manager and
the mail transport are replaced by recording fakes, and time comes from a
``FixedClock`` that tests advance explicitly.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TypeVar

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from workspaces.core.db.engine import create_session_factory, create_sqlite_engine
from workspaces.core.db.migrate import SchemaMigrator
from workspaces.core.errors import NotificationTransportError, NotificationUserError, VolumeError
from workspaces.core.managers.lifecycle import LifecycleEngine
from workspaces.core.managers.maintenance import MaintenanceSweep
from workspaces.core.notify.mailer import Notifier
from workspaces.core.settings import FilesystemPolicy

T = TypeVar("T")

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class FakeVolumeManager:
    """In-memory volume manager recording every call.

    Volumes listed in ``failing`` raise ``VolumeError`` on any call.
    """

    volumes: dict[str, dict[str, str]] = field(default_factory=dict)
    calls: list[tuple[str, ...]] = field(default_factory=list)
    failing: set[str] = field(default_factory=set)
    snapshots: list[str] = field(default_factory=list)
    restricted: list[tuple[Path, str]] = field(default_factory=list)
    root_usage: dict[str, str] = field(default_factory=lambda: {"used": str(30 << 30), "available": str(70 << 30)})

    def _check(self, volume: str) -> None:
        if volume in self.failing:
            msg = f"simulated failure on {volume}"
            raise VolumeError(msg, volume=volume)

    def create(self, volume: str) -> None:
        self._check(volume)
        self.calls.append(("create", volume))
        self.volumes[volume] = {"mountpoint": f"/{volume}", "referenced": str(2 << 30), "readonly": "off"}

    def destroy(self, volume: str) -> None:
        self._check(volume)
        self.calls.append(("destroy", volume))
        self.volumes.pop(volume, None)

    def rename(self, source: str, dest: str) -> None:
        self._check(source)
        self.calls.append(("rename", source, dest))
        props = self.volumes.pop(source, {})
        props["mountpoint"] = f"/{dest}"
        self.volumes[dest] = props

    def set_property(self, volume: str, key: str, value: str) -> None:
        self._check(volume)
        self.calls.append(("set", volume, f"{key}={value}"))
        self.volumes.setdefault(volume, {})[key] = value

    def get_property(self, volume: str, key: str, parse: Callable[[str], T] = str) -> T:  # type: ignore[assignment]
        self._check(volume)
        if key in self.root_usage and volume not in self.volumes:
            return parse(self.root_usage[key])
        try:
            return parse(self.volumes[volume][key])
        except KeyError:
            msg = f"no property {key} on {volume}"
            raise VolumeError(msg, volume=volume) from None

    def snapshot(self, volume: str) -> None:
        self._check(volume)
        self.snapshots.append(volume)

    def restrict_to_owner(self, mountpoint: Path, owner: str) -> None:
        self.restricted.append((mountpoint, owner))


@dataclass
class SentMail:
    sender: str
    recipient: str
    subject: str
    body: str


@dataclass
class FakeMailer:
    sent: list[SentMail] = field(default_factory=list)
    broken: bool = False

    def send(self, sender: str, recipient: str, subject: str, body: str) -> None:
        if self.broken:
            msg = "connection refused"
            raise NotificationTransportError(msg)
        self.sent.append(SentMail(sender, recipient, subject, body))


ADDRESSES = {"alice": "alice@example.org", "bob": "bob@example.org"}


def fake_recipient(username: str) -> str:
    try:
        return ADDRESSES[username]
    except KeyError:
        msg = f"User not found: {username}"
        raise NotificationUserError(msg) from None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def volumes() -> FakeVolumeManager:
    return FakeVolumeManager()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def notifier(mailer: FakeMailer) -> Notifier:
    return Notifier(mailer, "Workspaces <workspaces@example.org>", recipients=fake_recipient)


@pytest.fixture
def filesystems() -> dict[str, FilesystemPolicy]:
    return {
        "tank": FilesystemPolicy(
            root="tank/workspaces",
            max_duration=30,
            expired_retention=10,
            expiry_notifications_on_days=[7, 1, -3],
            snapshot=True,
        ),
        "scratch": FilesystemPolicy(
            root="scratch/workspaces",
            max_duration=7,
            expired_retention=3,
            disabled=True,
        ),
    }


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "workspaces.db"


@pytest.fixture
def engine(db_path: Path) -> Iterator[Engine]:
    engine = create_sqlite_engine(db_path)
    SchemaMigrator(engine).upgrade()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def lifecycle(
    session_factory: sessionmaker[Session],
    filesystems: dict[str, FilesystemPolicy],
    volumes: FakeVolumeManager,
    notifier: Notifier,
    clock: FixedClock,
) -> LifecycleEngine:
    return LifecycleEngine(session_factory, filesystems, volumes, notifier=notifier, clock=clock)


@pytest.fixture
def sweep(
    session_factory: sessionmaker[Session],
    filesystems: dict[str, FilesystemPolicy],
    volumes: FakeVolumeManager,
    notifier: Notifier,
    clock: FixedClock,
) -> MaintenanceSweep:
    return MaintenanceSweep(session_factory, filesystems, volumes, notifier=notifier, clock=clock)
