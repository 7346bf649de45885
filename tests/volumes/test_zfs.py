"""Tests for the ZFS backend.  ``subprocess.run`` is mocked; no pool needed."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from workspaces.core.errors import VolumeError
from workspaces.core.volumes import VolumeManager, ZfsVolumeManager

VOLUME = "tank/workspaces/alice/data"


def _done(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def _commands(run) -> list[list[str]]:
    return [call.args[0] for call in run.call_args_list]


@pytest.fixture
def zfs() -> ZfsVolumeManager:
    return ZfsVolumeManager()


def test_is_a_volume_manager(zfs: ZfsVolumeManager) -> None:
    assert isinstance(zfs, VolumeManager)


def test_create(zfs: ZfsVolumeManager) -> None:
    with patch("subprocess.run", return_value=_done()) as run:
        zfs.create(VOLUME)
    assert _commands(run) == [["zfs", "create", "-p", VOLUME]]


def test_rename_and_set(zfs: ZfsVolumeManager) -> None:
    with patch("subprocess.run", return_value=_done()) as run:
        zfs.rename(VOLUME, "tank/workspaces/alice/results")
        zfs.set_property(VOLUME, "readonly", "on")
    assert _commands(run) == [
        ["zfs", "rename", VOLUME, "tank/workspaces/alice/results"],
        ["zfs", "set", "readonly=on", VOLUME],
    ]


def test_destroy(zfs: ZfsVolumeManager) -> None:
    with patch("subprocess.run", return_value=_done(f"{VOLUME}\n")) as run:
        zfs.destroy(VOLUME)
    assert _commands(run) == [
        ["zfs", "list", "-H", "-o", "name", VOLUME],
        ["zfs", "destroy", "-r", VOLUME],
    ]


def test_destroy_missing_volume_succeeds(zfs: ZfsVolumeManager) -> None:
    missing = _done(returncode=1, stderr="dataset does not exist")
    with patch("subprocess.run", return_value=missing) as run:
        zfs.destroy(VOLUME)
    assert len(run.call_args_list) == 1


def test_destroy_failure(zfs: ZfsVolumeManager) -> None:
    busy = _done(returncode=1, stderr="dataset is busy")
    with patch("subprocess.run", side_effect=[_done(VOLUME), busy]):
        with pytest.raises(VolumeError, match="dataset is busy") as exc_info:
            zfs.destroy(VOLUME)
    assert exc_info.value.volume == VOLUME


def test_get_property(zfs: ZfsVolumeManager) -> None:
    with patch("subprocess.run", return_value=_done("/tank/workspaces/alice/data\n")) as run:
        assert zfs.get_property(VOLUME, "mountpoint", Path) == Path("/tank/workspaces/alice/data")
    assert _commands(run) == [["zfs", "get", "-Hp", "-o", "value", "mountpoint", VOLUME]]

    with patch("subprocess.run", return_value=_done("1073741824\n")):
        assert zfs.get_property(VOLUME, "referenced", int) == 1 << 30


def test_get_property_unparsable(zfs: ZfsVolumeManager) -> None:
    with patch("subprocess.run", return_value=_done("-\n")), pytest.raises(VolumeError, match="could not parse"):
        zfs.get_property(VOLUME, "used", int)


def test_snapshot_name(zfs: ZfsVolumeManager) -> None:
    with patch("subprocess.run", return_value=_done()) as run:
        zfs.snapshot("tank/workspaces")
    [cmd] = _commands(run)
    assert cmd[:3] == ["zfs", "snapshot", "-r"]
    assert cmd[3].startswith("tank/workspaces@")
    assert cmd[3].endswith("Z")


def test_missing_binary(zfs: ZfsVolumeManager) -> None:
    with patch("subprocess.run", side_effect=FileNotFoundError("zfs")):
        with pytest.raises(VolumeError, match="could not run"):
            zfs.create(VOLUME)


def test_timeout() -> None:
    zfs = ZfsVolumeManager(timeout=5)
    with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(["zfs"], 5)) as run:
        with pytest.raises(VolumeError):
            zfs.create(VOLUME)
    assert run.call_args.kwargs["timeout"] == 5


def test_restrict_to_owner(zfs: ZfsVolumeManager, tmp_path: Path) -> None:
    with patch("os.chmod") as chmod, patch("shutil.chown") as chown:
        zfs.restrict_to_owner(tmp_path, "alice")
    chmod.assert_called_once_with(tmp_path, 0o750)
    chown.assert_called_once_with(tmp_path, user="alice", group="alice")


def test_restrict_to_unknown_owner(zfs: ZfsVolumeManager, tmp_path: Path) -> None:
    with patch("os.chmod"), patch("shutil.chown", side_effect=LookupError("no such user: nobody-here")):
        with pytest.raises(VolumeError, match="nobody-here"):
            zfs.restrict_to_owner(tmp_path, "nobody-here")
