"""Exclusive advisory lock guarding the work state directory.

The lock is a directory created with ``mkdir`` (atomic on every platform) that
holds a ``lock_info.json`` describing the holder. Locks left behind by dead
processes are cleaned up once they are older than ``stale_timeout``; reaping
is serialized through a sibling ``.reap`` directory so two waiters cannot both
judge the same lock stale and remove a fresh one in between.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import socket
import time
from contextlib import AbstractContextManager
from pathlib import Path
from types import TracebackType
from typing import Type

LOCK_INFO_FILENAME = "lock_info.json"
# Sibling directory held by whichever process is currently reaping a stale lock.
REAP_GUARD_SUFFIX = ".reap"

logger = logging.getLogger(__name__)


class LockTimeoutError(TimeoutError):
    """Raised when the state lock cannot be acquired within the timeout."""


class StateLock(AbstractContextManager["StateLock"]):
    """mkdir-based lock held for the duration of one read-modify-write."""

    def __init__(
        self,
        lock_dir: Path,
        *,
        timeout: float = 5.0,
        poll_interval: float = 0.05,
        stale_timeout: float = 30.0,
    ) -> None:
        self._lock_dir = Path(lock_dir)
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._stale_timeout = stale_timeout
        self._held = False

    @property
    def path(self) -> Path:
        return self._lock_dir

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self) -> "StateLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def acquire(self) -> None:
        deadline = time.monotonic() + self._timeout
        self._lock_dir.parent.mkdir(parents=True, exist_ok=True)
        while True:
            self._cleanup_stale_lock()
            try:
                self._lock_dir.mkdir()
            except FileExistsError:
                if time.monotonic() > deadline:
                    raise LockTimeoutError(
                        f"Unable to acquire work state lock at {self._lock_dir} "
                        f"within {self._timeout:g}s; another harm-work command may be running. "
                        f"If none is, remove {self._lock_dir} and retry."
                    ) from None
                time.sleep(self._poll_interval)
                continue
            self._write_lock_info()
            self._held = True
            return

    def release(self) -> None:
        """Release the lock if held."""

        if not self._held:
            return
        shutil.rmtree(self._lock_dir, ignore_errors=True)
        self._held = False

    @property
    def reap_guard(self) -> Path:
        return self._lock_dir.with_name(self._lock_dir.name + REAP_GUARD_SUFFIX)

    def _cleanup_stale_lock(self) -> None:
        if self._stale_reason() is None:
            return
        guard = self.reap_guard
        try:
            guard.mkdir()
        except FileExistsError:
            if _path_age(guard) > self._stale_timeout:
                logger.warning("Removing abandoned lock reaper guard", extra={"guard": str(guard)})
                _rmdir_quiet(guard)
            return
        try:
            # Another reaper may have replaced the lock since it was first judged.
            reason = self._stale_reason()
            if reason is not None:
                self._remove_stale(reason)
        finally:
            _rmdir_quiet(guard)

    def _stale_reason(self) -> str | None:
        """Why the current lock may be reaped, or None while it looks held."""

        if not self._lock_dir.exists():
            return None
        info_path = self._lock_dir / LOCK_INFO_FILENAME
        try:
            lock_info = json.loads(info_path.read_text(encoding="utf-8"))
            timestamp = float(lock_info.get("timestamp"))
            pid = int(lock_info.get("pid"))
        except (FileNotFoundError, json.JSONDecodeError, TypeError, ValueError, AttributeError):
            # Holder may still be writing its info; only reap once clearly abandoned.
            if _path_age(self._lock_dir) > self._stale_timeout:
                return "unreadable lock info"
            return None

        if (time.time() - timestamp) <= self._stale_timeout:
            return None
        if not self._process_alive(pid):
            return f"holder pid {pid} is gone"
        return None

    def _remove_stale(self, reason: str) -> None:
        logger.warning("Removing stale state lock", extra={"lock": str(self._lock_dir), "reason": reason})
        shutil.rmtree(self._lock_dir, ignore_errors=True)

    @staticmethod
    def _process_alive(pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def _write_lock_info(self) -> None:
        info = {
            "pid": os.getpid(),
            "timestamp": time.time(),
            "host": socket.gethostname(),
        }
        (self._lock_dir / LOCK_INFO_FILENAME).write_text(json.dumps(info), encoding="utf-8")


def _path_age(path: Path) -> float:
    try:
        return time.time() - path.stat().st_mtime
    except FileNotFoundError:
        return 0.0


def _rmdir_quiet(path: Path) -> None:
    try:
        path.rmdir()
    except FileNotFoundError:
        pass


__all__ = ["LockTimeoutError", "StateLock"]
