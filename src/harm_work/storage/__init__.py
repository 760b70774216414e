"""Persistent state store for harm-work."""

from .events import EventLog
from .lock import LockTimeoutError, StateLock
from .models import (
    BreakEnd,
    BreakSession,
    BreakSessionRecord,
    BreakType,
    EnforcementState,
    WorkSession,
    WorkSessionRecord,
)
from .store import StateCorruptError, StateStore

__all__ = [
    "BreakEnd",
    "BreakSession",
    "BreakSessionRecord",
    "BreakType",
    "EnforcementState",
    "EventLog",
    "LockTimeoutError",
    "StateCorruptError",
    "StateLock",
    "StateStore",
    "WorkSession",
    "WorkSessionRecord",
]
