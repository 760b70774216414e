"""File-resident state store for the enforcement engine.

Every file under the work directory is owned by this module. Mutations of the
enforcement state happen inside :meth:`StateStore.transaction`, which holds the
advisory lock for the whole read-modify-write and writes atomically.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Iterator, TypeVar

from pydantic import BaseModel, ValidationError

from ..clock import month_key, utc_now
from .events import EventLog
from .files import append_jsonl, atomic_write_json, atomic_write_text, iter_jsonl, read_json
from .lock import StateLock
from .models import (
    BreakSession,
    BreakSessionRecord,
    EnforcementState,
    WorkSession,
    WorkSessionRecord,
)

ENFORCEMENT_FILE = "enforcement.json"
WORK_SESSION_FILE = "current_session.json"
BREAK_SESSION_FILE = "current_break.json"
EVENTS_FILE = "events.jsonl"
LOCK_DIR = "state.lock"
TIMER_DIR = "timer"
WORK_TIMER_PID_FILE = "work.pid"

WORK_ARCHIVE_PREFIX = "sessions"
BREAK_ARCHIVE_PREFIX = "breaks"

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _break_stem(started: datetime) -> str:
    return f"break-{started.strftime('%Y%m%dT%H%M%S')}"


class StateCorruptError(RuntimeError):
    """Raised when a state document exists but cannot be parsed."""


class StateStore:
    """Owns the work directory: enforcement state, active sessions and archives."""

    def __init__(
        self,
        root: Path,
        *,
        lock_timeout: float = 5.0,
        stale_timeout: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._root = Path(root).expanduser()
        self._lock_timeout = lock_timeout
        self._stale_timeout = stale_timeout
        self._clock = clock or utc_now
        self._events = EventLog(self._root / EVENTS_FILE)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def enforcement_path(self) -> Path:
        return self._root / ENFORCEMENT_FILE

    @property
    def work_session_path(self) -> Path:
        return self._root / WORK_SESSION_FILE

    @property
    def break_session_path(self) -> Path:
        return self._root / BREAK_SESSION_FILE

    def lock(self) -> StateLock:
        return StateLock(
            self._root / LOCK_DIR,
            timeout=self._lock_timeout,
            stale_timeout=self._stale_timeout,
        )

    @contextmanager
    def transaction(self) -> Iterator[EnforcementState]:
        """Lock, load the enforcement state, yield it, and save it on success.

        If the body raises, nothing is written and the previous state stays on
        disk untouched.
        """

        with self.lock():
            state = self.load_enforcement()
            yield state
            self.save_enforcement(state)

    # Enforcement state -------------------------------------------------

    def load_enforcement(self) -> EnforcementState:
        state = self._load(self.enforcement_path, EnforcementState)
        return state if state is not None else EnforcementState()

    def save_enforcement(self, state: EnforcementState) -> None:
        state.updated = self._clock()
        # Re-validate so an invalid obligation combination never reaches disk.
        checked = EnforcementState.model_validate(state.model_dump())
        atomic_write_json(self.enforcement_path, checked.model_dump(mode="json"))

    # Active sessions ---------------------------------------------------

    def load_work_session(self) -> WorkSession | None:
        return self._load(self.work_session_path, WorkSession)

    def save_work_session(self, session: WorkSession) -> None:
        atomic_write_json(self.work_session_path, session.model_dump(mode="json"))

    def clear_work_session(self) -> None:
        self.work_session_path.unlink(missing_ok=True)

    def load_break_session(self) -> BreakSession | None:
        return self._load(self.break_session_path, BreakSession)

    def save_break_session(self, session: BreakSession) -> None:
        atomic_write_json(self.break_session_path, session.model_dump(mode="json"))

    def clear_break_session(self) -> None:
        self.break_session_path.unlink(missing_ok=True)

    def timer_marker_path(self, started: datetime) -> Path:
        """Exit-status file a detached break timer writes for the break started at ``started``."""

        return self._root / TIMER_DIR / f"{_break_stem(started)}.exit"

    def timer_pid_path(self, started: datetime) -> Path:
        return self._root / TIMER_DIR / f"{_break_stem(started)}.pid"

    @property
    def work_timer_pid_path(self) -> Path:
        return self._root / TIMER_DIR / WORK_TIMER_PID_FILE

    def save_timer_pid(self, path: Path, pid: int) -> None:
        atomic_write_text(path, f"{pid}\n")

    def load_timer_pid(self, path: Path) -> int | None:
        try:
            raw = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring malformed timer pid file", extra={"path": str(path)})
            return None

    def clear_break_timer_files(self, started: datetime | None = None) -> None:
        """Remove the exit marker and pid file of one break, or of every break when ``started`` is None."""

        if started is not None:
            self.timer_marker_path(started).unlink(missing_ok=True)
            self.timer_pid_path(started).unlink(missing_ok=True)
            return
        for path in (self._root / TIMER_DIR).glob("break-*"):
            path.unlink(missing_ok=True)

    # Archives ----------------------------------------------------------

    def archive_path(self, prefix: str, month: str) -> Path:
        return self._root / f"{prefix}_{month}.jsonl"

    def append_work_record(self, record: WorkSessionRecord) -> Path:
        target = self.archive_path(WORK_ARCHIVE_PREFIX, month_key(record.end_time))
        append_jsonl(target, record.model_dump(mode="json"))
        return target

    def append_break_record(self, record: BreakSessionRecord) -> Path:
        target = self.archive_path(BREAK_ARCHIVE_PREFIX, month_key(record.end_time))
        append_jsonl(target, record.model_dump(mode="json"))
        return target

    def archived_months(self, prefix: str) -> list[str]:
        months = []
        for path in self._root.glob(f"{prefix}_*.jsonl"):
            months.append(path.stem[len(prefix) + 1 :])
        return sorted(months)

    def work_records(self, months: Iterable[str]) -> list[WorkSessionRecord]:
        return self._read_archive(WORK_ARCHIVE_PREFIX, months, WorkSessionRecord)

    def break_records(self, months: Iterable[str]) -> list[BreakSessionRecord]:
        return self._read_archive(BREAK_ARCHIVE_PREFIX, months, BreakSessionRecord)

    # Maintenance -------------------------------------------------------

    def reset(self) -> None:
        """Drop active sessions and start over with a fresh enforcement state."""

        with self.lock():
            self.clear_work_session()
            self.clear_break_session()
            self.clear_break_timer_files()
            self.save_enforcement(EnforcementState())

    # Helpers -----------------------------------------------------------

    def _load(self, path: Path, model: type[ModelT]) -> ModelT | None:
        try:
            data = read_json(path)
        except ValueError as exc:
            raise StateCorruptError(
                f"{exc}. Run `harm-work work reset --force` to start from a clean state."
            ) from exc
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise StateCorruptError(
                f"Invalid {model.__name__} in {path}: {exc}. "
                "Run `harm-work work reset --force` to start from a clean state."
            ) from exc

    def _read_archive(
        self,
        prefix: str,
        months: Iterable[str],
        model: type[ModelT],
    ) -> list[ModelT]:
        records: list[ModelT] = []
        for month in months:
            path = self.archive_path(prefix, month)
            for entry in iter_jsonl(path):
                try:
                    records.append(model.model_validate(entry))
                except ValidationError as exc:
                    logger.warning(
                        "Skipping invalid archive record",
                        extra={"path": str(path), "error": str(exc)},
                    )
        return records


__all__ = [
    "BREAK_ARCHIVE_PREFIX",
    "StateCorruptError",
    "StateStore",
    "WORK_ARCHIVE_PREFIX",
]
