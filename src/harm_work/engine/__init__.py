"""Enforcement engine: state machine, session managers, guard and reporter."""

from .breaks import BreakOutcome, BreakSessionManager, BreakStatus, UnscheduledBreakWarning
from .guard import ProjectSwitchGuard, SwitchAction, SwitchDecision
from .reporter import ComplianceReport, ComplianceReporter, ReportPeriod, WorkStats
from .state_machine import (
    BreakRequiredError,
    EnforcementMachine,
    NoActiveSessionError,
    Phase,
    SessionAlreadyActiveError,
    StateConflictError,
)
from .work import WorkSessionManager, WorkStatus

__all__ = [
    "BreakOutcome",
    "BreakRequiredError",
    "BreakSessionManager",
    "BreakStatus",
    "ComplianceReport",
    "ComplianceReporter",
    "EnforcementMachine",
    "NoActiveSessionError",
    "Phase",
    "ProjectSwitchGuard",
    "ReportPeriod",
    "SessionAlreadyActiveError",
    "StateConflictError",
    "SwitchAction",
    "SwitchDecision",
    "UnscheduledBreakWarning",
    "WorkSessionManager",
    "WorkStats",
    "WorkStatus",
]
