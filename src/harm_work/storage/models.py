"""Persisted models for enforcement state, sessions and archive records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..clock import is_completed_fully, is_early_stop


class BreakType(str, Enum):
    NONE = "none"
    SHORT = "short"
    LONG = "long"
    CUSTOM = "custom"


class BreakEnd(str, Enum):
    """How a break came to an end."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    INTERRUPTED = "interrupted"
    MANUAL = "manual"

    @classmethod
    def from_exit_status(cls, status: int) -> "BreakEnd":
        if status == 0:
            return cls.COMPLETED
        if status == 1:
            return cls.SKIPPED
        return cls.INTERRUPTED


class EnforcementState(BaseModel):
    """The single mutable enforcement record kept per machine."""

    project: str = Field(default="", description="Project bound to the active work session.")
    violations: int = Field(default=0, ge=0, description="Warned or blocked project switches.")
    break_required: bool = False
    break_type_required: BreakType = BreakType.NONE
    last_session_end: datetime | None = None
    last_break_end: datetime | None = None
    pomodoro_count: int = Field(default=0, ge=0, description="Completed work sessions.")
    updated: datetime | None = None

    @field_validator("break_type_required")
    @classmethod
    def _reject_custom_requirement(cls, value: BreakType) -> BreakType:
        if value is BreakType.CUSTOM:
            raise ValueError("A required break must be 'short' or 'long'")
        return value

    @model_validator(mode="after")
    def _check_obligation(self) -> "EnforcementState":
        if self.break_required and self.break_type_required is BreakType.NONE:
            raise ValueError("break_required is set but no break type is required")
        if not self.break_required and self.break_type_required is not BreakType.NONE:
            raise ValueError("break_type_required is set without a pending break")
        return self

    def require_break(self, break_type: BreakType) -> None:
        self.break_required = True
        self.break_type_required = break_type

    def clear_break(self) -> None:
        self.break_required = False
        self.break_type_required = BreakType.NONE


class WorkSession(BaseModel):
    """The active work session, present only while one is running."""

    start_time: datetime
    goal: str = ""
    pomodoro_count: int = Field(default=1, ge=1)
    planned_duration: int = Field(..., ge=1, description="Planned length in seconds.")
    project: str = ""

    @field_validator("goal", "project")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class WorkSessionRecord(WorkSession):
    """Immutable archive entry written when a work session stops."""

    model_config = ConfigDict(frozen=True)

    end_time: datetime
    duration_seconds: int = Field(..., ge=0)
    early_stop: bool
    termination_reason: str | None = None
    violations: int = Field(default=0, ge=0, description="Project switches counted during the session.")

    @classmethod
    def from_session(
        cls,
        session: WorkSession,
        *,
        end_time: datetime,
        termination_reason: str | None = None,
        violations: int = 0,
    ) -> "WorkSessionRecord":
        duration = max(0, int((end_time - session.start_time).total_seconds()))
        return cls(
            **session.model_dump(),
            end_time=end_time,
            duration_seconds=duration,
            early_stop=is_early_stop(duration, session.planned_duration),
            termination_reason=termination_reason,
            violations=violations,
        )


class BreakSession(BaseModel):
    """The active break, present only while one is running."""

    start_time: datetime
    type: BreakType
    planned_duration_seconds: int = Field(..., ge=1)
    satisfies_obligation: bool = Field(
        default=False,
        description="Whether finishing this break fully clears the pending obligation.",
    )
    skip_mode: str = "always"

    @field_validator("type")
    @classmethod
    def _reject_none(cls, value: BreakType) -> BreakType:
        if value is BreakType.NONE:
            raise ValueError("A break must be 'short', 'long' or 'custom'")
        return value


class BreakSessionRecord(BaseModel):
    """Immutable archive entry written when a break stops."""

    model_config = ConfigDict(frozen=True)

    start_time: datetime
    end_time: datetime
    type: BreakType
    planned_duration_seconds: int = Field(..., ge=1)
    duration_seconds: int = Field(..., ge=0)
    completed_fully: bool
    ended_by: BreakEnd = BreakEnd.MANUAL
    satisfies_obligation: bool = False

    @classmethod
    def from_session(
        cls,
        session: BreakSession,
        *,
        end_time: datetime,
        ended_by: BreakEnd,
    ) -> "BreakSessionRecord":
        duration = max(0, int((end_time - session.start_time).total_seconds()))
        return cls(
            start_time=session.start_time,
            end_time=end_time,
            type=session.type,
            planned_duration_seconds=session.planned_duration_seconds,
            duration_seconds=duration,
            completed_fully=is_completed_fully(duration, session.planned_duration_seconds),
            ended_by=ended_by,
            satisfies_obligation=session.satisfies_obligation,
        )


__all__ = [
    "BreakEnd",
    "BreakSession",
    "BreakSessionRecord",
    "BreakType",
    "EnforcementState",
    "WorkSession",
    "WorkSessionRecord",
]
