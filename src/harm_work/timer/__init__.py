"""Break timer process: countdown, skip policy and launcher."""

from .countdown import BreakCountdown, CountdownResult, TerminalRenderer
from .launcher import (
    FakeTimerLauncher,
    FakeWorkTimerLauncher,
    TimerExecutionResult,
    TimerLaunchError,
    TimerLauncher,
    WorkTimerLauncher,
)
from .policy import SkipMode, UsageError, can_skip_now, resolve_skip_mode
from .terminal import TerminalSpec, detect_terminal

__all__ = [
    "BreakCountdown",
    "CountdownResult",
    "FakeTimerLauncher",
    "FakeWorkTimerLauncher",
    "SkipMode",
    "TerminalRenderer",
    "TerminalSpec",
    "TimerExecutionResult",
    "TimerLaunchError",
    "TimerLauncher",
    "UsageError",
    "WorkTimerLauncher",
    "can_skip_now",
    "detect_terminal",
    "resolve_skip_mode",
]
