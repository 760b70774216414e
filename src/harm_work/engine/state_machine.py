"""Enforcement state machine.

Phases are derived from what is on disk: an active break file means
``on_break``, an active work session file means ``working``, a pending
obligation means ``break_pending``, anything else is ``idle``. Every transition
runs inside one :meth:`StateStore.transaction`, so concurrent commands
serialize on the store lock instead of racing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Mapping

from ..clock import SessionClock
from ..storage import (
    BreakEnd,
    BreakSession,
    BreakSessionRecord,
    BreakType,
    EnforcementState,
    StateStore,
    WorkSession,
    WorkSessionRecord,
)
from ..timer.policy import SkipMode, resolve_skip_mode

logger = logging.getLogger(__name__)

COMPONENT = "state_machine"


class StateConflictError(RuntimeError):
    """Raised when an operation does not fit the current session state."""


class SessionAlreadyActiveError(StateConflictError):
    """Raised when starting a session while one is already running."""


class NoActiveSessionError(StateConflictError):
    """Raised when stopping a session that is not running."""


class BreakRequiredError(RuntimeError):
    """Raised when new work is started while a break obligation is pending."""


class Phase(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    BREAK_PENDING = "break_pending"
    ON_BREAK = "on_break"


def derive_phase(state: EnforcementState, *, work_active: bool, break_active: bool) -> Phase:
    if break_active:
        return Phase.ON_BREAK
    if work_active:
        return Phase.WORKING
    if state.break_required:
        return Phase.BREAK_PENDING
    return Phase.IDLE


def required_break_type(pomodoro_count: int, pomodoros_until_long: int) -> BreakType:
    """Every ``pomodoros_until_long``-th completed session earns a long break."""

    if pomodoro_count > 0 and pomodoro_count % pomodoros_until_long == 0:
        return BreakType.LONG
    return BreakType.SHORT


@dataclass(slots=True)
class Snapshot:
    """Point-in-time view of the enforcement state and active sessions."""

    state: EnforcementState
    work_session: WorkSession | None
    break_session: BreakSession | None

    @property
    def phase(self) -> Phase:
        return derive_phase(
            self.state,
            work_active=self.work_session is not None,
            break_active=self.break_session is not None,
        )


@dataclass(slots=True)
class BreakStart:
    session: BreakSession
    scheduled: bool


@dataclass(slots=True)
class BreakFinish:
    record: BreakSessionRecord
    obligation_cleared: bool
    archived: bool
    state: EnforcementState


class EnforcementMachine:
    """The only writer of enforcement state; managers drive it."""

    def __init__(self, store: StateStore, clock: SessionClock | None = None) -> None:
        self._store = store
        self._clock = clock or SessionClock()

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def clock(self) -> SessionClock:
        return self._clock

    def snapshot(self) -> Snapshot:
        return Snapshot(
            state=self._store.load_enforcement(),
            work_session=self._store.load_work_session(),
            break_session=self._store.load_break_session(),
        )

    # Work ----------------------------------------------------------------

    def begin_work(
        self,
        *,
        goal: str,
        planned_duration: int,
        project: str,
        require_break: bool = True,
    ) -> WorkSession:
        waived: BreakType | None = None
        with self._store.transaction() as state:
            if self._store.load_break_session() is not None:
                raise StateConflictError(
                    "A break is in progress. Finish it with `harm-work break stop` before starting work."
                )
            if state.break_required:
                if require_break:
                    raise BreakRequiredError(
                        f"A {state.break_type_required.value} break is required before starting "
                        "a new work session. Run `harm-work break start` and let it finish."
                    )
                waived = state.break_type_required
                state.clear_break()
            if self._store.load_work_session() is not None:
                raise SessionAlreadyActiveError(
                    "A work session is already active. Stop it with `harm-work work stop` first."
                )

            session = WorkSession(
                start_time=self._clock.now(),
                goal=goal,
                pomodoro_count=state.pomodoro_count + 1,
                planned_duration=planned_duration,
                project=project,
            )
            self._store.save_work_session(session)
            state.project = session.project
            state.violations = 0

        if waived is not None:
            self._store.events.append(
                "break_waived", component=COMPONENT, level="warning", break_type=waived
            )
        self._store.events.append(
            "work_started",
            component=COMPONENT,
            goal=session.goal,
            project=session.project,
            pomodoro_count=session.pomodoro_count,
            planned_duration=session.planned_duration,
        )
        return session

    def finish_work(
        self,
        *,
        expected_start: datetime | None,
        end_time: datetime,
        termination_reason: str | None,
        pomodoros_until_long: int,
    ) -> WorkSessionRecord:
        """Archive the active work session and raise the break obligation.

        ``expected_start`` pins the session observed before the lock was taken;
        if it has since been stopped or replaced, nothing is written.
        """

        with self._store.transaction() as state:
            session = self._store.load_work_session()
            if session is None or (
                expected_start is not None and session.start_time != expected_start
            ):
                raise NoActiveSessionError(
                    "No active work session (it may have just been stopped by another command). "
                    "Start one with `harm-work work start`."
                )
            record = WorkSessionRecord.from_session(
                session,
                end_time=end_time,
                termination_reason=termination_reason,
                violations=state.violations,
            )
            self._store.append_work_record(record)

            break_type = required_break_type(session.pomodoro_count, pomodoros_until_long)
            state.pomodoro_count = session.pomodoro_count
            state.require_break(break_type)
            state.last_session_end = end_time
            state.project = ""
            # The obligation must be on disk before the session file goes away.
            self._store.save_enforcement(state)
            self._store.clear_work_session()

        self._store.events.append(
            "work_stopped",
            component=COMPONENT,
            duration_seconds=record.duration_seconds,
            early_stop=record.early_stop,
            reason=record.termination_reason,
            break_required=break_type,
        )
        return record

    # Breaks --------------------------------------------------------------

    def begin_break(
        self,
        *,
        break_type: BreakType | None,
        duration: int | None,
        durations: Mapping[BreakType, int],
        pomodoros_until_long: int,
        skip_mode: SkipMode,
    ) -> BreakStart:
        with self._store.transaction() as state:
            if self._store.load_work_session() is not None:
                raise StateConflictError(
                    "A work session is active. Stop it with `harm-work work stop` before taking a break."
                )
            if self._store.load_break_session() is not None:
                raise SessionAlreadyActiveError(
                    "A break is already in progress. Finish it with `harm-work break stop`."
                )

            scheduled = state.break_required
            if break_type is None:
                if scheduled:
                    break_type = state.break_type_required
                else:
                    break_type = required_break_type(state.pomodoro_count, pomodoros_until_long)
            planned = duration if duration is not None else durations[break_type]

            satisfies = scheduled and planned >= durations[state.break_type_required]
            session = BreakSession(
                start_time=self._clock.now(),
                type=break_type,
                planned_duration_seconds=planned,
                satisfies_obligation=satisfies,
                skip_mode=resolve_skip_mode(skip_mode, break_type.value).value,
            )
            self._store.save_break_session(session)

        self._store.events.append(
            "break_started",
            component=COMPONENT,
            break_type=session.type,
            planned_duration_seconds=session.planned_duration_seconds,
            scheduled=scheduled,
            satisfies_obligation=satisfies,
        )
        return BreakStart(session=session, scheduled=scheduled)

    def finish_break(
        self,
        *,
        expected_start: datetime | None,
        end_time: datetime,
        ended_by: BreakEnd,
        archive: bool = True,
    ) -> BreakFinish:
        with self._store.transaction() as state:
            session = self._store.load_break_session()
            if session is None or (
                expected_start is not None and session.start_time != expected_start
            ):
                raise NoActiveSessionError(
                    "No active break (it may have just been stopped by another command). "
                    "Start one with `harm-work break start`."
                )
            record = BreakSessionRecord.from_session(session, end_time=end_time, ended_by=ended_by)
            if archive:
                self._store.append_break_record(record)

            cleared = state.break_required and record.completed_fully and session.satisfies_obligation
            if cleared:
                state.clear_break()
            state.last_break_end = end_time
            self._store.save_enforcement(state)
            self._store.clear_break_session()

        self._store.events.append(
            "break_stopped",
            component=COMPONENT,
            break_type=record.type,
            duration_seconds=record.duration_seconds,
            completed_fully=record.completed_fully,
            ended_by=record.ended_by,
            obligation_cleared=cleared,
        )
        return BreakFinish(record=record, obligation_cleared=cleared, archived=archive, state=state)

    def abandon_break(self, *, expected_start: datetime) -> bool:
        """Drop a break whose timer never ran.

        Nothing is archived and the obligation is left as it was. Returns False
        when the break was already finished or replaced.
        """

        with self._store.lock():
            session = self._store.load_break_session()
            if session is None or session.start_time != expected_start:
                return False
            self._store.clear_break_session()

        self._store.events.append(
            "break_abandoned",
            component=COMPONENT,
            level="warning",
            break_type=session.type,
            planned_duration_seconds=session.planned_duration_seconds,
        )
        return True

    # Counters ------------------------------------------------------------

    def record_violation(self, destination: str) -> EnforcementState | None:
        """Count a switch away from the bound project.

        Returns the updated state, or None when the switch turned out to be
        allowed once the state was re-read under the lock.
        """

        with self._store.transaction() as state:
            if state.project and state.project != destination:
                state.violations += 1
                return state
        return None

    def reset_violations(self) -> int:
        with self._store.transaction() as state:
            previous = state.violations
            state.violations = 0
        self._store.events.append("violations_reset", component=COMPONENT, previous=previous)
        return previous

    def reset_pomodoros(self) -> int:
        with self._store.transaction() as state:
            previous = state.pomodoro_count
            state.pomodoro_count = 0
        self._store.events.append("pomodoro_reset", component=COMPONENT, previous=previous)
        return previous

    def reset(self) -> None:
        self._store.reset()
        self._store.events.append("state_reset", component=COMPONENT, level="warning")


__all__ = [
    "BreakFinish",
    "BreakRequiredError",
    "BreakStart",
    "EnforcementMachine",
    "NoActiveSessionError",
    "Phase",
    "SessionAlreadyActiveError",
    "Snapshot",
    "StateConflictError",
    "derive_phase",
    "required_break_type",
]
