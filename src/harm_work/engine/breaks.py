"""Break session manager."""

from __future__ import annotations

import asyncio
import logging
import sys
import warnings
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ..clock import SessionClock
from ..config import LaunchMode, WorkSettings, load_settings
from ..storage import BreakEnd, BreakSession, BreakSessionRecord, BreakType, StateStore
from ..timer.launcher import TimerExecutionResult, TimerLaunchError, TimerLauncher, read_exit_marker
from ..timer.policy import SkipMode, UsageError, parse_skip_mode
from .state_machine import BreakFinish, EnforcementMachine, NoActiveSessionError, Phase

logger = logging.getLogger(__name__)

# Extra time a popup timer gets to report back before the break is treated as interrupted.
POPUP_GRACE_SECONDS = 120


class UnscheduledBreakWarning(UserWarning):
    """Issued when a break starts without a pending obligation; it clears nothing."""


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def parse_break_type(value: str | BreakType | None) -> BreakType | None:
    if value is None or isinstance(value, BreakType):
        return value
    try:
        parsed = BreakType(value.strip().lower())
    except ValueError as exc:
        raise UsageError(f"Invalid break type '{value}' (expected short, long or custom)") from exc
    if parsed is BreakType.NONE:
        raise UsageError("Break type must be short, long or custom")
    return parsed


@dataclass(slots=True)
class BreakOutcome:
    """Result of starting (and, unless backgrounded, finishing) a break."""

    session: BreakSession
    scheduled: bool
    launch_mode: LaunchMode
    record: BreakSessionRecord | None = None
    obligation_cleared: bool = False
    exit_status: int | None = None

    @property
    def running(self) -> bool:
        return self.record is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.session.type.value,
            "planned_duration_seconds": self.session.planned_duration_seconds,
            "skip_mode": self.session.skip_mode,
            "scheduled": self.scheduled,
            "launch_mode": self.launch_mode.value,
            "running": self.running,
            "exit_status": self.exit_status,
            "record": self.record.model_dump(mode="json") if self.record else None,
            "obligation_cleared": self.obligation_cleared,
        }


@dataclass(slots=True)
class BreakStatus:
    phase: Phase
    session: BreakSession | None
    elapsed_seconds: int
    remaining_seconds: int
    break_required: bool
    break_type_required: BreakType
    settled: BreakSessionRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "active": self.session is not None,
            "type": self.session.type.value if self.session else None,
            "planned_duration_seconds": self.session.planned_duration_seconds if self.session else None,
            "elapsed_seconds": self.elapsed_seconds,
            "remaining_seconds": self.remaining_seconds,
            "break_required": self.break_required,
            "break_type_required": self.break_type_required.value,
            "settled": self.settled.model_dump(mode="json") if self.settled else None,
        }


class BreakSessionManager:
    """Starts breaks, runs the timer process, and settles the obligation afterwards."""

    def __init__(
        self,
        store: StateStore,
        *,
        settings_provider: Callable[[], WorkSettings] = load_settings,
        launcher: TimerLauncher | None = None,
        clock: SessionClock | None = None,
        stdin_isatty: Callable[[], bool] | None = None,
    ) -> None:
        self._machine = EnforcementMachine(store, clock)
        self._settings = settings_provider
        self._launcher = launcher or TimerLauncher()
        self._stdin_isatty = stdin_isatty or sys.stdin.isatty

    @property
    def machine(self) -> EnforcementMachine:
        return self._machine

    def resolve_launch_mode(self, requested: LaunchMode | str | None, settings: WorkSettings) -> LaunchMode:
        try:
            mode = LaunchMode(requested) if requested is not None else settings.break_launch_mode
        except ValueError as exc:
            raise UsageError(f"Invalid launch mode '{requested}'") from exc
        if mode is LaunchMode.AUTO:
            return LaunchMode.INLINE if self._stdin_isatty() else LaunchMode.BACKGROUND
        return mode

    def start(
        self,
        break_type: str | BreakType | None = None,
        *,
        duration: int | None = None,
        launch_mode: LaunchMode | str | None = None,
        skip_mode: SkipMode | str | None = None,
    ) -> BreakOutcome:
        settings = self._settings()
        parsed_type = parse_break_type(break_type)
        if duration is not None and duration < 1:
            raise UsageError("Break duration must be at least 1 second")
        if parsed_type is BreakType.CUSTOM and duration is None:
            raise UsageError("A custom break needs an explicit --duration")
        mode = self.resolve_launch_mode(launch_mode, settings)
        policy = parse_skip_mode(skip_mode) if skip_mode is not None else settings.break_skip_mode

        started = self._machine.begin_break(
            break_type=parsed_type,
            duration=duration,
            durations={BreakType.SHORT: settings.break_short, BreakType.LONG: settings.break_long},
            pomodoros_until_long=settings.pomodoros_until_long,
            skip_mode=policy,
        )
        session = started.session
        if not started.scheduled:
            warnings.warn(
                UnscheduledBreakWarning(
                    "No break was required; this break will not clear any obligation."
                ),
                stacklevel=2,
            )
        logger.info(
            "Break started",
            extra={
                "type": session.type.value,
                "planned_duration_seconds": session.planned_duration_seconds,
                "launch_mode": mode.value,
            },
        )

        outcome = BreakOutcome(session=session, scheduled=started.scheduled, launch_mode=mode)
        store = self._machine.store
        # No other break is active, so any timer files left behind are stale.
        store.clear_break_timer_files()
        try:
            if mode is LaunchMode.BACKGROUND:
                pid = self._launcher.launch_background(
                    session.planned_duration_seconds,
                    session.type.value,
                    session.skip_mode,
                    exit_marker=store.timer_marker_path(session.start_time),
                    notify=settings.notifications,
                )
                store.save_timer_pid(store.timer_pid_path(session.start_time), pid)
                return outcome
            result = self._run_timer(session, mode, notify=settings.notifications)
        except TimerLaunchError:
            self._machine.abandon_break(expected_start=session.start_time)
            store.clear_break_timer_files(session.start_time)
            logger.warning("Break abandoned: its timer could not be started")
            raise

        outcome.exit_status = result.returncode
        finished = self._finish(session, BreakEnd.from_exit_status(result.returncode), settings)
        outcome.record = finished.record
        outcome.obligation_cleared = finished.obligation_cleared
        return outcome

    def stop(self, *, ended_by: BreakEnd = BreakEnd.MANUAL) -> BreakOutcome:
        """Finish the active break out-of-band (background timer, killed terminal, ...).

        A background timer that already reported back settles the break with its
        own exit status and finish time; one still running is cancelled.
        """

        settings = self._settings()
        store = self._machine.store
        session = store.load_break_session()
        if session is None:
            raise NoActiveSessionError("No active break. Start one with `harm-work break start`.")

        exit_status = None
        end_time = None
        pid = store.load_timer_pid(store.timer_pid_path(session.start_time))
        if pid is not None:
            reported = self._background_exit(session)
            if reported is not None:
                exit_status, end_time = reported
                ended_by = BreakEnd.from_exit_status(exit_status)
            elif self._launcher.cancel_background(pid):
                logger.info("Background break timer cancelled", extra={"pid": pid})

        finished = self._finish(session, ended_by, settings, end_time=end_time)
        store.clear_break_timer_files(session.start_time)
        return BreakOutcome(
            session=session,
            scheduled=session.satisfies_obligation,
            launch_mode=LaunchMode.BACKGROUND,
            record=finished.record,
            obligation_cleared=finished.obligation_cleared,
            exit_status=exit_status,
        )

    def status(self) -> BreakStatus:
        settled = self._settle_background()
        snapshot = self._machine.snapshot()
        session = snapshot.break_session
        elapsed = remaining = 0
        if session is not None:
            elapsed = self._machine.clock.seconds_since(session.start_time)
            remaining = max(0, session.planned_duration_seconds - elapsed)
        return BreakStatus(
            phase=snapshot.phase,
            session=session,
            elapsed_seconds=elapsed,
            remaining_seconds=remaining,
            break_required=snapshot.state.break_required,
            break_type_required=snapshot.state.break_type_required,
            settled=settled.record if settled else None,
        )

    def _background_exit(self, session: BreakSession) -> tuple[int, datetime] | None:
        """Exit status and finish time reported by the break's background timer, if any."""

        marker = self._machine.store.timer_marker_path(session.start_time)
        status = read_exit_marker(marker)
        if status is None:
            return None
        try:
            reported = datetime.fromtimestamp(int(marker.stat().st_mtime), tz=timezone.utc)
        except FileNotFoundError:
            return None
        now = self._machine.clock.now()
        return status, min(max(reported, session.start_time), now)

    def _settle_background(self) -> BreakFinish | None:
        store = self._machine.store
        session = store.load_break_session()
        if session is None or store.load_timer_pid(store.timer_pid_path(session.start_time)) is None:
            return None
        reported = self._background_exit(session)
        if reported is None:
            return None
        status, end_time = reported
        try:
            finished = self._finish(
                session, BreakEnd.from_exit_status(status), self._settings(), end_time=end_time
            )
        except NoActiveSessionError:
            # Another command settled it first.
            return None
        store.clear_break_timer_files(session.start_time)
        return finished

    def _run_timer(self, session: BreakSession, mode: LaunchMode, *, notify: bool) -> TimerExecutionResult:
        duration = session.planned_duration_seconds
        break_type = session.type.value
        if mode is LaunchMode.POPUP:
            terminal = self._launcher.popup_terminal()
            if terminal is not None:
                marker = self._machine.store.timer_marker_path(session.start_time)
                self._launcher.launch_popup(
                    terminal,
                    duration,
                    break_type,
                    session.skip_mode,
                    exit_marker=marker,
                    notify=notify,
                )
                return _run_sync(
                    self._launcher.wait_for_marker(marker, timeout=duration + POPUP_GRACE_SECONDS)
                )
            logger.info("No terminal window available for the break timer; running inline")
        return _run_sync(self._launcher.run_inline(duration, break_type, session.skip_mode, notify=notify))

    def _finish(
        self,
        session: BreakSession,
        ended_by: BreakEnd,
        settings: WorkSettings,
        *,
        end_time: datetime | None = None,
    ) -> BreakFinish:
        finished = self._machine.finish_break(
            expected_start=session.start_time,
            end_time=end_time or self._machine.clock.now(),
            ended_by=ended_by,
            archive=settings.track_breaks,
        )
        logger.info(
            "Break finished",
            extra={
                "ended_by": ended_by.value,
                "completed_fully": finished.record.completed_fully,
                "obligation_cleared": finished.obligation_cleared,
            },
        )
        return finished


__all__ = [
    "BreakOutcome",
    "BreakSessionManager",
    "BreakStatus",
    "UnscheduledBreakWarning",
    "parse_break_type",
]
