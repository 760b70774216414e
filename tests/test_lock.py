from __future__ import annotations

import json
import os
import shutil
import time
from pathlib import Path

import pytest

from harm_work.storage import LockTimeoutError, StateLock
from harm_work.storage.lock import LOCK_INFO_FILENAME


def _plant_lock(lock_dir: Path, *, pid: int, age: float) -> None:
    lock_dir.mkdir(parents=True)
    info = {"pid": pid, "timestamp": time.time() - age, "host": "elsewhere"}
    (lock_dir / LOCK_INFO_FILENAME).write_text(json.dumps(info), encoding="utf-8")


def test_lock_records_holder_and_releases(tmp_path: Path) -> None:
    lock = StateLock(tmp_path / "state.lock")
    with lock:
        assert lock.held
        info = json.loads((lock.path / LOCK_INFO_FILENAME).read_text(encoding="utf-8"))
        assert info["pid"] == os.getpid()
    assert not lock.held
    assert not lock.path.exists()


def test_second_holder_times_out(tmp_path: Path) -> None:
    lock_dir = tmp_path / "state.lock"
    with StateLock(lock_dir):
        contender = StateLock(lock_dir, timeout=0.2, poll_interval=0.01)
        started = time.monotonic()
        with pytest.raises(LockTimeoutError) as excinfo:
            contender.acquire()
        assert time.monotonic() - started >= 0.2
        assert str(lock_dir) in str(excinfo.value)


def test_stale_lock_from_dead_holder_is_reaped(tmp_path: Path) -> None:
    lock_dir = tmp_path / "state.lock"
    _plant_lock(lock_dir, pid=0, age=120)

    with StateLock(lock_dir, timeout=0.5, stale_timeout=30.0) as lock:
        info = json.loads((lock.path / LOCK_INFO_FILENAME).read_text(encoding="utf-8"))
        assert info["pid"] == os.getpid()


def test_old_lock_of_live_process_is_kept(tmp_path: Path) -> None:
    lock_dir = tmp_path / "state.lock"
    _plant_lock(lock_dir, pid=os.getpid(), age=120)

    with pytest.raises(LockTimeoutError):
        StateLock(lock_dir, timeout=0.1, poll_interval=0.01, stale_timeout=30.0).acquire()
    assert lock_dir.exists()


def test_fresh_lock_of_dead_process_is_kept(tmp_path: Path) -> None:
    lock_dir = tmp_path / "state.lock"
    _plant_lock(lock_dir, pid=0, age=1)

    with pytest.raises(LockTimeoutError):
        StateLock(lock_dir, timeout=0.1, poll_interval=0.01, stale_timeout=30.0).acquire()


def test_release_without_acquire_is_noop(tmp_path: Path) -> None:
    lock = StateLock(tmp_path / "state.lock")
    lock.release()
    assert not lock.path.exists()


def test_lock_replaced_during_reaping_survives(tmp_path: Path, monkeypatch) -> None:
    lock_dir = tmp_path / "state.lock"
    _plant_lock(lock_dir, pid=0, age=120)
    judge = StateLock._stale_reason
    calls = []

    def racing_judge(self):
        calls.append(self)
        reason = judge(self)
        if len(calls) == 1:
            # Another waiter reaps the dead lock and takes a fresh one.
            shutil.rmtree(lock_dir)
            _plant_lock(lock_dir, pid=os.getpid(), age=0)
        return reason

    monkeypatch.setattr(StateLock, "_stale_reason", racing_judge)
    contender = StateLock(lock_dir, timeout=0.1, poll_interval=0.01, stale_timeout=30.0)
    with pytest.raises(LockTimeoutError):
        contender.acquire()

    info = json.loads((lock_dir / LOCK_INFO_FILENAME).read_text(encoding="utf-8"))
    assert info["pid"] == os.getpid()
    assert info["host"] == "elsewhere"
    assert not contender.reap_guard.exists()


def test_reaping_waits_for_active_reaper(tmp_path: Path) -> None:
    lock_dir = tmp_path / "state.lock"
    _plant_lock(lock_dir, pid=0, age=120)
    contender = StateLock(lock_dir, timeout=0.1, poll_interval=0.01, stale_timeout=30.0)
    contender.reap_guard.mkdir()

    with pytest.raises(LockTimeoutError):
        contender.acquire()
    assert lock_dir.exists()
    assert contender.reap_guard.exists()


def test_abandoned_reaper_guard_is_cleared(tmp_path: Path) -> None:
    lock_dir = tmp_path / "state.lock"
    _plant_lock(lock_dir, pid=0, age=120)
    lock = StateLock(lock_dir, timeout=0.5, poll_interval=0.01, stale_timeout=30.0)
    lock.reap_guard.mkdir()
    old = time.time() - 120
    os.utime(lock.reap_guard, (old, old))

    with lock:
        info = json.loads((lock.path / LOCK_INFO_FILENAME).read_text(encoding="utf-8"))
        assert info["pid"] == os.getpid()
    assert not lock.reap_guard.exists()
