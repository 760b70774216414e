"""Break timer process: ``harm-break-timer`` / ``python -m harm_work.timer``.

Exit status: 0 when the break ran to completion, 1 when it was skipped or
interrupted, 2 on invalid arguments. The process never touches the work state
store; with ``--exit-marker`` it also records its exit status in that file for
a launcher watching from another terminal.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path

from ..clock import SessionClock
from ..notify import Notifier, notify_best_effort
from ..storage.files import atomic_write_text
from .countdown import COMPLETION_PAUSE_SECONDS, BreakCountdown, CountdownResult
from .policy import SkipMode, UsageError, resolve_skip_mode

logger = logging.getLogger(__name__)

USAGE_EXIT_STATUS = 2
BREAK_TYPES = ("short", "long", "custom")


@dataclass(slots=True)
class TimerOptions:
    duration: int
    break_type: str
    skip_mode: SkipMode
    exit_marker: Path | None = None
    notify: bool = True
    completion_pause: float = COMPLETION_PAUSE_SECONDS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harm-break-timer",
        description="Run a break countdown. Exit status: 0 completed, 1 skipped, 2 invalid arguments.",
    )
    parser.add_argument("duration_pos", nargs="?", metavar="DURATION", help="Break length in seconds")
    parser.add_argument("type_pos", nargs="?", metavar="TYPE", help="short, long or custom")
    parser.add_argument("skip_mode_pos", nargs="?", metavar="SKIP_MODE", help="never, always, after50 or type-based")
    parser.add_argument("--duration", dest="duration", help="Break length in seconds (>= 1)")
    parser.add_argument("--type", dest="break_type", help="Break type: short, long or custom")
    parser.add_argument("--skip-mode", dest="skip_mode", help="never, always, after50 or type-based")
    parser.add_argument("--exit-marker", type=Path, help="File that receives the exit status")
    parser.add_argument("--no-notify", action="store_true", help="Skip the desktop notification")
    parser.add_argument(
        "--completion-pause",
        type=float,
        default=COMPLETION_PAUSE_SECONDS,
        help="Seconds to keep the completion screen up (default: %(default)s)",
    )
    return parser


def resolve_options(args: argparse.Namespace) -> TimerOptions:
    raw_duration = args.duration if args.duration is not None else args.duration_pos
    break_type = args.break_type if args.break_type is not None else args.type_pos
    raw_mode = args.skip_mode if args.skip_mode is not None else args.skip_mode_pos

    if raw_duration is None:
        raise UsageError("a break duration is required")
    try:
        duration = int(raw_duration)
    except ValueError as exc:
        raise UsageError(f"duration must be an integer number of seconds, got '{raw_duration}'") from exc
    if duration < 1:
        raise UsageError("duration must be at least 1 second")

    break_type = (break_type or "short").strip().lower()
    if break_type not in BREAK_TYPES:
        raise UsageError(f"invalid break type '{break_type}' (expected one of: {', '.join(BREAK_TYPES)})")

    skip_mode = resolve_skip_mode(raw_mode or SkipMode.ALWAYS, break_type)
    if args.completion_pause < 0:
        raise UsageError("completion pause must not be negative")
    return TimerOptions(
        duration=duration,
        break_type=break_type,
        skip_mode=skip_mode,
        exit_marker=args.exit_marker,
        notify=not args.no_notify,
        completion_pause=args.completion_pause,
    )


def _write_marker(marker: Path | None, status: int) -> None:
    if marker is None:
        return
    try:
        atomic_write_text(marker, f"{status}\n")
    except OSError as exc:
        logger.error("Could not write timer exit marker", extra={"marker": str(marker), "error": str(exc)})


def run_timer(
    options: TimerOptions,
    countdown: BreakCountdown | None = None,
    *,
    clock: SessionClock | None = None,
) -> int:
    clock = clock or SessionClock()
    notifier = Notifier() if options.notify else None

    def _announce() -> None:
        notify_best_effort(
            notifier,
            "Break complete",
            f"Your {options.break_type} break is over. Time to get back to work!",
        )

    countdown = countdown or BreakCountdown(
        options.duration,
        options.break_type,
        options.skip_mode,
        clock=clock.monotonic,
        completion_pause=options.completion_pause,
        on_complete=_announce,
    )

    handled = [signal.SIGINT, signal.SIGTERM]
    previous = {signum: signal.signal(signum, countdown.request_skip) for signum in handled}
    if hasattr(signal, "SIGHUP"):
        previous[signal.SIGHUP] = signal.signal(signal.SIGHUP, countdown.abort)
    try:
        result = countdown.run()
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    status = int(result)
    _write_marker(options.exit_marker, status)
    return status


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return 0 if exc.code in (0, None) else USAGE_EXIT_STATUS
    try:
        options = resolve_options(args)
    except UsageError as exc:
        parser.print_usage(sys.stderr)
        print(f"harm-break-timer: error: {exc}", file=sys.stderr)
        _write_marker(args.exit_marker, USAGE_EXIT_STATUS)
        return USAGE_EXIT_STATUS
    return run_timer(options)


__all__ = ["CountdownResult", "TimerOptions", "build_parser", "main", "resolve_options", "run_timer"]


if __name__ == "__main__":
    sys.exit(main())
