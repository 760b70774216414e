"""Work session timer process: ``python -m harm_work.timer.work_timer``.

Sleeps through a work session in the background, sending focus reminders every
``--reminder-interval`` seconds and one notification when the planned duration
runs out. Before each notification it re-reads ``--session-file``; once that no
longer names the session it was started for, the process exits quietly.
Stopping the session sends SIGTERM, which ends the process with the default
action.
"""

from __future__ import annotations

import argparse
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from ..clock import SessionClock, format_duration
from ..notify import Notifier, notify_best_effort
from ..storage.files import read_json

USAGE_EXIT_STATUS = 2


@dataclass(slots=True)
class WorkTimerOptions:
    duration: int
    reminder_interval: int = 0
    goal: str = ""
    session_file: Path | None = None
    started: str | None = None


def reminder_schedule(duration: int, interval: int) -> list[int]:
    """Elapsed seconds at which focus reminders fire, strictly before the session ends."""

    if interval <= 0:
        return []
    return list(range(interval, duration, interval))


def session_is_current(session_file: Path | None, started: str | None) -> bool:
    if session_file is None:
        return True
    try:
        data = read_json(session_file)
    except (OSError, ValueError):
        return False
    if data is None:
        return False
    return started is None or data.get("start_time") == started


def run_work_timer(
    options: WorkTimerOptions,
    *,
    notifier: Notifier | None = None,
    clock: SessionClock | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    clock = clock or SessionClock()
    start = clock.monotonic()

    def _sleep_until(elapsed: int) -> None:
        remaining = start + elapsed - clock.monotonic()
        if remaining > 0:
            sleep(remaining)

    for at in reminder_schedule(options.duration, options.reminder_interval):
        _sleep_until(at)
        if not session_is_current(options.session_file, options.started):
            return 0
        notify_best_effort(
            notifier,
            "Focus reminder",
            f"You've been working for {format_duration(at)}. Keep going!",
        )

    _sleep_until(options.duration)
    if not session_is_current(options.session_file, options.started):
        return 0
    focus = f" on {options.goal}" if options.goal else ""
    notify_best_effort(
        notifier,
        "Work session complete",
        f"{format_duration(options.duration)} of focus{focus}. Time for a break!",
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harm-work-timer",
        description="Notify when a work session's planned duration runs out.",
    )
    parser.add_argument("--duration", type=int, required=True, help="Planned length in seconds")
    parser.add_argument(
        "--reminder-interval",
        type=int,
        default=0,
        help="Seconds between focus reminders (0 disables them)",
    )
    parser.add_argument("--goal", default="", help="Goal shown in the completion notification")
    parser.add_argument("--session-file", type=Path, help="Active session document to watch")
    parser.add_argument("--started", help="start_time of the session this timer belongs to")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return 0 if exc.code in (0, None) else USAGE_EXIT_STATUS
    if args.duration < 1 or args.reminder_interval < 0:
        parser.print_usage(sys.stderr)
        print("harm-work-timer: error: durations must be positive", file=sys.stderr)
        return USAGE_EXIT_STATUS
    options = WorkTimerOptions(
        duration=args.duration,
        reminder_interval=args.reminder_interval,
        goal=args.goal,
        session_file=args.session_file,
        started=args.started,
    )
    return run_work_timer(options, notifier=Notifier())


__all__ = [
    "WorkTimerOptions",
    "build_parser",
    "main",
    "reminder_schedule",
    "run_work_timer",
    "session_is_current",
]


if __name__ == "__main__":
    sys.exit(main())
