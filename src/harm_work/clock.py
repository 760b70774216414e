"""Session clock: wall-clock sampling and duration math."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable


def utc_now() -> datetime:
    """Return the current UTC time truncated to whole seconds."""

    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass(slots=True)
class SessionClock:
    """Injectable pair of clocks.

    ``wall`` stamps records and measures session durations. ``monotonic`` drives
    countdowns, where wall-clock jumps must not skew elapsed time.
    """

    wall: Callable[[], datetime] = field(default=utc_now)
    monotonic: Callable[[], float] = field(default=time.monotonic)

    def now(self) -> datetime:
        return self.wall()

    def seconds_since(self, start: datetime, end: datetime | None = None) -> int:
        """Whole seconds between ``start`` and ``end`` (default: now), never negative."""

        finish = end if end is not None else self.now()
        return max(0, int((finish - start).total_seconds()))


def is_early_stop(duration_seconds: int, planned_seconds: int) -> bool:
    """True when a work session ended before 80% of its plan (exactly 80% is not early)."""

    return duration_seconds * 5 < planned_seconds * 4


def is_completed_fully(duration_seconds: int, planned_seconds: int) -> bool:
    """True when a break reached at least 80% of its plan."""

    return duration_seconds * 5 >= planned_seconds * 4


def percent_elapsed(elapsed: float, total: float) -> int:
    if total <= 0:
        return 100
    return min(100, int(elapsed * 100 // total))


def format_duration(seconds: int) -> str:
    """Render seconds as ``1h 05m`` / ``25m 00s`` / ``42s``."""

    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def format_clock(seconds: float) -> str:
    """Render seconds as ``mm:ss``."""

    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


def month_key(moment: datetime) -> str:
    """Archive partition (``YYYY-MM``) for a timestamp, in local time."""

    return moment.astimezone().strftime("%Y-%m")


__all__ = [
    "SessionClock",
    "format_clock",
    "format_duration",
    "is_completed_fully",
    "is_early_stop",
    "month_key",
    "percent_elapsed",
    "utc_now",
]
