"""Tests for configuration loading."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

import pytest

from workspaces.core import settings as settings_module
from workspaces.core.errors import ConfigError
from workspaces.core.settings import FilesystemPolicy, TlsMode, load_settings

CONFIG = """
db_path = "{db_path}"
default_filesystem = "tank"

[filesystems.tank]
root = "tank/workspaces"
max_duration = 90
expired_retention = 30
expiry_notifications_on_days = [14, -7, 3]
snapshot = true

[filesystems.scratch]
root = "scratch/ws"
max_duration = 7
expired_retention = 1
disabled = true

[smtp]
relay = "mail.example.org:587"
username = "robot"
password = "hunter2"
from = "Workspaces <workspaces@example.org>"
"""


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "workspaces.toml"
    path.write_text(CONFIG.format(db_path=tmp_path / "ws.db"))
    path.chmod(0o600)
    monkeypatch.setenv("WORKSPACES_CONFIG", str(path))
    return path


def test_load(config_file: Path) -> None:
    settings = load_settings(config_file)

    assert settings.db_path == config_file.parent / "ws.db"
    assert settings.default_filesystem == "tank"
    assert settings.log_level == "WARNING"

    tank = settings.filesystems["tank"]
    assert tank.max_duration == timedelta(days=90)
    assert tank.expired_retention == timedelta(days=30)
    assert tank.expiry_notifications_on_days == [timedelta(days=d) for d in (-7, 3, 14)]
    assert tank.snapshot
    assert not tank.disabled
    assert settings.filesystems["scratch"].disabled

    assert settings.smtp is not None
    assert settings.smtp.tls == TlsMode.STARTTLS
    assert settings.smtp.password.get_secret_value() == "hunter2"
    assert str(settings.smtp.from_) == "Workspaces <workspaces@example.org>"
    assert settings.database_url == f"sqlite:///{config_file.parent / 'ws.db'}"


def test_environment_overrides(config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKSPACES_LOG_LEVEL", "DEBUG")
    assert load_settings().log_level == "DEBUG"


def test_permissions_too_liberal(config_file: Path) -> None:
    config_file.chmod(0o644)
    with pytest.raises(ConfigError, match="too liberal"):
        load_settings(config_file)


def test_missing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKSPACES_CONFIG", str(tmp_path / "missing.toml"))
    with pytest.raises(ConfigError, match="could not find"):
        load_settings()


@pytest.mark.parametrize(
    "content",
    [
        "[filesystems.tank\n",
        '[filesystems.tank]\nroot = "tank"\nmax_duration = "long"\nexpired_retention = 1\n',
        '[filesystems.tank]\nmax_duration = 1\nexpired_retention = 1\n',
    ],
)
def test_invalid(config_file: Path, content: str) -> None:
    config_file.write_text(content)
    with pytest.raises(ConfigError, match="error parsing"):
        load_settings(config_file)


def test_no_smtp_section(config_file: Path) -> None:
    config_file.write_text(f'db_path = "{config_file.parent / "ws.db"}"\n')
    settings = load_settings(config_file)
    assert settings.smtp is None
    assert settings.filesystems == {}


def test_policy_volume_name() -> None:
    policy = FilesystemPolicy(root="tank/workspaces", max_duration=1, expired_retention=1)
    assert policy.volume("alice", "data") == "tank/workspaces/alice/data"
    assert policy.expiry_notifications_on_days == []


def test_default_db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    current = tmp_path / "lib" / "workspaces.db"
    legacy = tmp_path / "share" / "workspaces.db"
    monkeypatch.setattr(settings_module, "DB_PATH", current)
    monkeypatch.setattr(settings_module, "LEGACY_DB_PATH", legacy)

    assert settings_module.default_db_path() == current

    legacy.parent.mkdir()
    legacy.touch()
    assert settings_module.default_db_path() == legacy

    current.parent.mkdir()
    current.touch()
    assert settings_module.default_db_path() == current


def test_explicit_path_leaves_environment_alone(config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    other = config_file.parent / "other.toml"
    monkeypatch.setenv("WORKSPACES_CONFIG", str(other))

    settings = load_settings(config_file)

    assert settings.default_filesystem == "tank"
    assert os.environ["WORKSPACES_CONFIG"] == str(other)
