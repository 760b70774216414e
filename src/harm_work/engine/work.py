"""Work session manager."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from ..clock import SessionClock, format_duration, is_early_stop
from ..config import WorkSettings, load_settings
from ..interaction import NonInteractivePrompter, Prompter
from ..notify import Notifier, notify_best_effort
from ..storage import BreakType, StateStore, WorkSession, WorkSessionRecord
from ..timer.launcher import TimerLaunchError, WorkTimerLauncher
from ..timer.policy import UsageError
from .state_machine import EnforcementMachine, NoActiveSessionError, Phase

logger = logging.getLogger(__name__)


def focus_score(violations: int) -> int:
    """1-10 rating of the current session; every project switch costs two points."""

    return max(1, 10 - 2 * violations)


@dataclass(slots=True)
class WorkStatus:
    phase: Phase
    session: WorkSession | None
    elapsed_seconds: int
    remaining_seconds: int
    project: str
    violations: int
    break_required: bool
    break_type_required: BreakType
    pomodoro_count: int

    @property
    def focus_score(self) -> int:
        return focus_score(self.violations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "active": self.session is not None,
            "goal": self.session.goal if self.session else None,
            "start_time": self.session.start_time.isoformat() if self.session else None,
            "planned_duration": self.session.planned_duration if self.session else None,
            "elapsed_seconds": self.elapsed_seconds,
            "remaining_seconds": self.remaining_seconds,
            "project": self.project,
            "violations": self.violations,
            "focus_score": self.focus_score,
            "break_required": self.break_required,
            "break_type_required": self.break_type_required.value,
            "pomodoro_count": self.pomodoro_count,
        }


class WorkSessionManager:
    """Starts and stops work sessions on top of the enforcement machine."""

    def __init__(
        self,
        store: StateStore,
        *,
        settings_provider: Callable[[], WorkSettings] = load_settings,
        prompter: Prompter | None = None,
        clock: SessionClock | None = None,
        notifier: Notifier | None = None,
        timer_launcher: WorkTimerLauncher | None = None,
    ) -> None:
        self._machine = EnforcementMachine(store, clock)
        self._settings = settings_provider
        self._prompter = prompter or NonInteractivePrompter()
        self._notifier = notifier
        self._timer_launcher = timer_launcher or WorkTimerLauncher()

    @property
    def machine(self) -> EnforcementMachine:
        return self._machine

    def start(
        self,
        goal: str = "",
        *,
        planned_duration: int | None = None,
        project: str | None = None,
    ) -> WorkSession:
        settings = self._settings()
        planned = planned_duration if planned_duration is not None else settings.work_duration
        if planned < 1:
            raise UsageError("Planned duration must be at least 1 second")
        bound_project = project if project is not None else Path.cwd().name

        session = self._machine.begin_work(
            goal=goal,
            planned_duration=planned,
            project=bound_project,
            require_break=settings.require_break,
        )
        logger.info(
            "Work session started",
            extra={
                "goal": session.goal,
                "project": session.project,
                "pomodoro_count": session.pomodoro_count,
            },
        )
        # Left behind by a session that was never stopped.
        self._machine.store.work_timer_pid_path.unlink(missing_ok=True)
        if settings.notifications:
            self._start_timer(session, settings)
            focus = f" on {session.goal}" if session.goal else ""
            notify_best_effort(
                self._notifier,
                "Work session started",
                f"{format_duration(session.planned_duration)} of focus{focus}. Break required after.",
            )
        return session

    def _start_timer(self, session: WorkSession, settings: WorkSettings) -> None:
        if not settings.work_timer:
            return
        store = self._machine.store
        try:
            pid = self._timer_launcher.launch(
                session.planned_duration,
                reminder_interval=settings.work_reminder_interval,
                goal=session.goal,
                session_file=store.work_session_path,
                started=session.model_dump(mode="json")["start_time"],
            )
        except TimerLaunchError as exc:
            # The session itself is fine without reminders.
            logger.warning("Work timer unavailable", extra={"error": str(exc)})
            return
        store.save_timer_pid(store.work_timer_pid_path, pid)

    def _stop_timer(self, elapsed: int, planned_duration: int) -> None:
        store = self._machine.store
        path = store.work_timer_pid_path
        pid = store.load_timer_pid(path)
        if pid is None:
            return
        # Past the planned end the timer has exited and its pid may belong to someone else.
        if elapsed < planned_duration and self._timer_launcher.cancel(pid):
            logger.info("Work timer cancelled", extra={"pid": pid})
        path.unlink(missing_ok=True)

    def stop(self, reason: str | None = None) -> WorkSessionRecord | None:
        """Stop the active session.

        Returns None when the user declined to confirm an early stop; the
        session then keeps running.
        """

        settings = self._settings()
        session = self._machine.store.load_work_session()
        if session is None:
            raise NoActiveSessionError(
                "No active work session. Start one with `harm-work work start`."
            )

        clock = self._machine.clock
        elapsed = clock.seconds_since(session.start_time)
        termination_reason = reason
        if (
            is_early_stop(elapsed, session.planned_duration)
            and settings.confirm_early_stop
            and self._prompter.interactive
        ):
            question = (
                f"Only {format_duration(elapsed)} of {format_duration(session.planned_duration)} "
                "done. Stop early anyway?"
            )
            if not self._prompter.confirm(question, default=False):
                logger.info("Early stop cancelled by user")
                return None
            if termination_reason is None:
                termination_reason = self._prompter.ask("Reason for stopping early (optional)") or None

        record = self._machine.finish_work(
            expected_start=session.start_time,
            end_time=clock.now(),
            termination_reason=termination_reason,
            pomodoros_until_long=settings.pomodoros_until_long,
        )
        logger.info(
            "Work session stopped",
            extra={
                "duration_seconds": record.duration_seconds,
                "early_stop": record.early_stop,
            },
        )
        self._stop_timer(elapsed, session.planned_duration)
        if settings.notifications:
            state = self._machine.store.load_enforcement()
            notify_best_effort(
                self._notifier,
                "Work session complete",
                f"{format_duration(record.duration_seconds)} of focus. "
                f"Time for a {state.break_type_required.value} break.",
            )
        return record

    def status(self) -> WorkStatus:
        snapshot = self._machine.snapshot()
        session = snapshot.work_session
        elapsed = remaining = 0
        if session is not None:
            elapsed = self._machine.clock.seconds_since(session.start_time)
            remaining = max(0, session.planned_duration - elapsed)
        state = snapshot.state
        return WorkStatus(
            phase=snapshot.phase,
            session=session,
            elapsed_seconds=elapsed,
            remaining_seconds=remaining,
            project=state.project,
            violations=state.violations,
            break_required=state.break_required,
            break_type_required=state.break_type_required,
            pomodoro_count=state.pomodoro_count,
        )

    def reset_violations(self) -> int:
        return self._machine.reset_violations()

    def reset_pomodoros(self) -> int:
        return self._machine.reset_pomodoros()


__all__ = ["WorkSessionManager", "WorkStatus", "focus_score"]
