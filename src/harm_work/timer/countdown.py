"""Break countdown loop and its terminal rendering."""

from __future__ import annotations

import sys
import time
from enum import IntEnum
from typing import Callable, TextIO

from ..clock import format_clock, percent_elapsed
from .policy import SkipMode, UsageError, can_skip_now, describe_skip_mode, resolve_skip_mode

BAR_WIDTH = 50
COMPLETION_PAUSE_SECONDS = 3.0


class CountdownResult(IntEnum):
    """Process exit status for each way a countdown can end."""

    COMPLETED = 0
    SKIPPED = 1


class TerminalRenderer:
    """Draws the countdown on a text stream, redrawing the progress line in place."""

    def __init__(self, stream: TextIO | None = None, *, bar_width: int = BAR_WIDTH) -> None:
        self._stream = stream or sys.stdout
        self._bar_width = bar_width
        try:
            self._tty = self._stream.isatty()
        except (AttributeError, ValueError):
            self._tty = False

    def _write(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()

    def header(self, break_type: str, duration: int, skip_mode: SkipMode) -> None:
        if self._tty:
            self._write("\033[2J\033[H")
        minutes = duration / 60
        shown = f"{minutes:g} minute{'s' if minutes != 1 else ''}"
        self._write(
            "=" * 44 + "\n"
            + "BREAK TIME".center(44) + "\n"
            + "=" * 44 + "\n\n"
            + f"  Type: {break_type} break\n"
            + f"  Duration: {shown}\n"
            + f"  {describe_skip_mode(skip_mode)}\n\n"
        )

    def progress(self, elapsed: float, total: float) -> None:
        percent = percent_elapsed(elapsed, total)
        filled = self._bar_width * percent // 100
        bar = "█" * filled + "░" * (self._bar_width - filled)
        remaining = format_clock(max(0.0, total - elapsed))
        self._write(f"\r  [{bar}] {percent:3d}% | {remaining} remaining ")

    def refused(self, skip_mode: SkipMode, percent: int) -> None:
        if skip_mode is SkipMode.NEVER:
            detail = "This break cannot be skipped."
        else:
            detail = f"Break is {percent}% complete (50% required)."
        self._write(f"\n\n  Cannot skip yet! {detail}\n  Continuing break...\n\n")

    def skipped(self, elapsed: float, total: float) -> None:
        self._write(
            f"\n\n  Break interrupted! ({format_clock(elapsed)} of {format_clock(total)})\n"
        )

    def completed(self, break_type: str) -> None:
        self._write(
            "\n\n" + "=" * 44 + "\n"
            + "BREAK COMPLETE".center(44) + "\n"
            + "=" * 44 + "\n"
            + f"  Your {break_type} break is over. Ready to get back to work!\n"
        )

    def closing(self, seconds: float) -> None:
        if seconds > 0:
            self._write(f"  Closing in {seconds:g} seconds...\n")


class BreakCountdown:
    """Counts a break down on a monotonic clock, one tick at a time.

    Signal handlers only flip a flag through :meth:`request_skip`; the loop
    decides on its next tick whether the skip policy allows leaving early.
    """

    def __init__(
        self,
        duration: int,
        break_type: str,
        skip_mode: SkipMode | str,
        *,
        renderer: TerminalRenderer | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        tick: float = 1.0,
        completion_pause: float = COMPLETION_PAUSE_SECONDS,
        on_complete: Callable[[], object] | None = None,
    ) -> None:
        if duration < 1:
            raise UsageError("Break duration must be at least 1 second")
        self._duration = duration
        self._break_type = break_type
        self._skip_mode = resolve_skip_mode(skip_mode, break_type)
        self._renderer = renderer or TerminalRenderer()
        self._clock = clock
        self._sleep = sleep
        self._tick = tick
        self._completion_pause = completion_pause
        self._on_complete = on_complete
        self._skip_requested = False
        self._aborted = False
        self._refusals = 0

    @property
    def skip_mode(self) -> SkipMode:
        return self._skip_mode

    @property
    def refusals(self) -> int:
        """How many skip requests the policy turned down."""

        return self._refusals

    def request_skip(self, *_: object) -> None:
        """Ask to end the break early; usable directly as a signal handler."""

        self._skip_requested = True

    def abort(self, *_: object) -> None:
        """End immediately regardless of policy (the terminal went away)."""

        self._aborted = True

    def run(self) -> CountdownResult:
        self._renderer.header(self._break_type, self._duration, self._skip_mode)
        start = self._clock()
        while True:
            elapsed = self._clock() - start
            if elapsed >= self._duration:
                break
            if self._aborted:
                return CountdownResult.SKIPPED
            if self._skip_requested:
                self._skip_requested = False
                if can_skip_now(self._skip_mode, elapsed, self._duration):
                    self._renderer.skipped(elapsed, self._duration)
                    return CountdownResult.SKIPPED
                self._refusals += 1
                self._renderer.refused(self._skip_mode, percent_elapsed(elapsed, self._duration))
            self._renderer.progress(elapsed, self._duration)
            self._sleep(min(self._tick, self._duration - elapsed))

        self._renderer.progress(self._duration, self._duration)
        self._renderer.completed(self._break_type)
        if self._on_complete is not None:
            self._on_complete()
        self._renderer.closing(self._completion_pause)
        if self._completion_pause > 0:
            self._sleep(self._completion_pause)
        return CountdownResult.COMPLETED


__all__ = ["BreakCountdown", "CountdownResult", "TerminalRenderer"]
