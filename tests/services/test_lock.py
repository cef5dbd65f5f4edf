import json
import os
import time

import pytest

from bluegreen.errors import PreflightError
from bluegreen.services.lock import DeploymentLock


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def test_lock_acquire_and_release(tmp_path):
    lock = DeploymentLock(str(tmp_path), "app-container", DummyLogger())

    lock.acquire()
    data = json.loads((tmp_path / "app-container.lock").read_text(encoding="utf-8"))
    assert data["pid"] == os.getpid()
    lock.release()

    assert [path.name for path in tmp_path.iterdir()] == []
    assert not (tmp_path / "app-container.lock").exists()


def test_lock_held_by_live_process_blocks(tmp_path):
    (tmp_path / "app-container.lock").write_text(json.dumps({"pid": os.getpid()}), encoding="utf-8")
    lock = DeploymentLock(str(tmp_path), "app-container", DummyLogger())

    with pytest.raises(PreflightError, match="in progress"):
        lock.acquire()


def test_stale_lock_is_replaced(tmp_path, monkeypatch):
    (tmp_path / "app-container.lock").write_text(json.dumps({"pid": 999999}), encoding="utf-8")
    monkeypatch.setattr(DeploymentLock, "_pid_alive", staticmethod(lambda _pid: False))
    lock = DeploymentLock(str(tmp_path), "app-container", DummyLogger())

    lock.acquire()

    assert lock.acquired
    data = json.loads((tmp_path / "app-container.lock").read_text(encoding="utf-8"))
    assert data["pid"] == os.getpid()
    lock.release()


def test_fresh_unreadable_lock_counts_as_held(tmp_path):
    (tmp_path / "app-container.lock").write_text("", encoding="utf-8")
    lock = DeploymentLock(str(tmp_path), "app-container", DummyLogger())

    with pytest.raises(PreflightError, match="lock held by pid unknown"):
        lock.acquire()

    assert not lock.acquired
    assert (tmp_path / "app-container.lock").read_text(encoding="utf-8") == ""
    assert sorted(path.name for path in tmp_path.iterdir()) == ["app-container.lock"]


def test_old_unreadable_lock_is_replaced(tmp_path):
    lock_file = tmp_path / "app-container.lock"
    lock_file.write_text("", encoding="utf-8")
    old = time.time() - 3600
    os.utime(lock_file, (old, old))
    lock = DeploymentLock(str(tmp_path), "app-container", DummyLogger(), unreadable_grace_seconds=60)

    lock.acquire()

    assert json.loads(lock_file.read_text(encoding="utf-8"))["pid"] == os.getpid()
    lock.release()
