"""harm-work command line interface."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import warnings
from datetime import date
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from . import __version__
from .clock import format_duration
from .config import (
    ConfigError,
    LaunchMode,
    WorkSettings,
    effective_options,
    get_option,
    load_settings,
    set_option,
    unset_option,
)
from .engine import (
    BreakRequiredError,
    BreakSessionManager,
    ComplianceReporter,
    ProjectSwitchGuard,
    ReportPeriod,
    StateConflictError,
    UnscheduledBreakWarning,
    WorkSessionManager,
)
from .engine.reporter import render_report, render_stats
from .interaction import Prompter, detect_prompter
from .notify import Notifier
from .storage import LockTimeoutError, StateCorruptError, StateStore
from .timer.launcher import TimerLauncher, TimerLaunchError, WorkTimerLauncher
from .timer.policy import UsageError

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"

_ERROR_EXIT_CODES: tuple[tuple[type[BaseException], int], ...] = (
    (UsageError, 2),
    (ConfigError, 2),
    (BreakRequiredError, 1),
    (StateConflictError, 1),
    (TimerLaunchError, 1),
    (LockTimeoutError, 3),
    (StateCorruptError, 3),
)
_HANDLED_ERRORS = tuple(error_type for error_type, _ in _ERROR_EXIT_CODES)


def configure_logging(level: str, log_file: Path | None = None) -> None:
    """Configure root logging: console at ``level``, optional rotating file at INFO."""

    console = logging.StreamHandler()
    console.setLevel(getattr(logging, level, logging.WARNING))
    handlers: list[logging.Handler] = [console]
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=1_000_000,
                backupCount=3,
                encoding="utf-8",
            )
        except OSError as exc:
            print(f"warning: file logging disabled ({exc})", file=sys.stderr)
        else:
            file_handler.setLevel(logging.INFO)
            handlers.append(file_handler)
    logging.basicConfig(
        level=min(logging.INFO, console.level),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def load_store(settings: WorkSettings) -> StateStore:
    return StateStore(settings.state_dir, lock_timeout=settings.lock_timeout)


def make_prompter() -> Prompter:
    return detect_prompter()


def make_launcher() -> TimerLauncher:
    return TimerLauncher()


def make_notifier() -> Notifier:
    return Notifier()


def make_work_timer() -> WorkTimerLauncher:
    return WorkTimerLauncher()


def _emit(args: argparse.Namespace, payload: Any, text: str) -> None:
    if getattr(args, "json", False):
        print(json.dumps(payload, indent=2, default=str))
    else:
        print(text)


# work ---------------------------------------------------------------------


def _work_manager(settings: WorkSettings) -> WorkSessionManager:
    return WorkSessionManager(
        load_store(settings),
        prompter=make_prompter(),
        notifier=make_notifier(),
        timer_launcher=make_work_timer(),
    )


def cmd_work_start(args: argparse.Namespace) -> int:
    settings = load_settings()
    planned = args.duration
    if args.minutes is not None:
        planned = args.minutes * 60
    session = _work_manager(settings).start(
        " ".join(args.goal),
        planned_duration=planned,
        project=args.project,
    )
    text = (
        f"Work session #{session.pomodoro_count} started"
        + (f": {session.goal}" if session.goal else "")
        + f"\n  Project: {session.project or '-'}"
        + f"\n  Planned: {format_duration(session.planned_duration)}"
    )
    _emit(args, session.model_dump(mode="json"), text)
    return 0


def cmd_work_stop(args: argparse.Namespace) -> int:
    settings = load_settings()
    manager = _work_manager(settings)
    record = manager.stop(args.reason)
    if record is None:
        _emit(args, {"stopped": False}, "Work session continues.")
        return 0
    state = manager.machine.store.load_enforcement()
    lines = [f"Work session stopped after {format_duration(record.duration_seconds)}."]
    if record.early_stop:
        lines.append(
            f"  Early stop: less than 80% of the planned {format_duration(record.planned_duration)}."
        )
    if state.break_required:
        lines.append(
            f"  A {state.break_type_required.value} break is now required. "
            "Run `harm-work break start`."
        )
    payload = record.model_dump(mode="json")
    payload["break_type_required"] = state.break_type_required.value
    _emit(args, payload, "\n".join(lines))
    return 0


def cmd_work_status(args: argparse.Namespace) -> int:
    settings = load_settings()
    status = _work_manager(settings).status()
    if status.session is not None:
        text = "\n".join(
            [
                f"Working: {status.session.goal or '(no goal)'}",
                f"  Project: {status.project or '-'}",
                f"  Elapsed: {format_duration(status.elapsed_seconds)}"
                f" / {format_duration(status.session.planned_duration)}",
                f"  Remaining: {format_duration(status.remaining_seconds)}",
                f"  Violations: {status.violations} (focus score {status.focus_score}/10)",
            ]
        )
    elif status.break_required:
        text = (
            f"No active work session. A {status.break_type_required.value} break is required "
            "before the next one."
        )
    else:
        text = "No active work session."
    _emit(args, status.to_dict(), text)
    return 0


def cmd_work_stats(args: argparse.Namespace) -> int:
    settings = load_settings()
    stats = ComplianceReporter(load_store(settings)).work_stats(ReportPeriod.named(args.period))
    _emit(args, stats.model_dump(mode="json"), render_stats(stats))
    return 0


def cmd_work_violations(args: argparse.Namespace) -> int:
    settings = load_settings()
    manager = _work_manager(settings)
    if args.reset:
        previous = manager.reset_violations()
        _emit(args, {"violations": 0, "previous": previous}, f"Violations reset (was {previous}).")
        return 0
    violations = manager.status().violations
    _emit(args, {"violations": violations}, str(violations))
    return 0


def cmd_work_reset_pomodoros(args: argparse.Namespace) -> int:
    settings = load_settings()
    previous = _work_manager(settings).reset_pomodoros()
    _emit(args, {"pomodoro_count": 0, "previous": previous}, f"Pomodoro count reset (was {previous}).")
    return 0


def cmd_work_reset(args: argparse.Namespace) -> int:
    if not args.force:
        raise UsageError(
            "Resetting drops the active session and any pending break; re-run with --force."
        )
    settings = load_settings()
    _work_manager(settings).machine.reset()
    _emit(args, {"reset": True}, "Work state reset.")
    return 0


# break --------------------------------------------------------------------


def _break_manager(settings: WorkSettings) -> BreakSessionManager:
    return BreakSessionManager(load_store(settings), launcher=make_launcher())


def _describe_break_result(outcome) -> str:
    if outcome.record is None:
        return (
            f"{outcome.session.type.value.capitalize()} break started "
            f"({format_duration(outcome.session.planned_duration_seconds)}). "
            "Finish it with `harm-work break stop`."
        )
    record = outcome.record
    lines = [
        f"Break ended ({record.ended_by.value}) after {format_duration(record.duration_seconds)}"
        f" of {format_duration(record.planned_duration_seconds)}."
    ]
    if outcome.obligation_cleared:
        lines.append("  Break requirement satisfied. You can start working again.")
    elif record.satisfies_obligation and not record.completed_fully:
        lines.append("  Break stopped early; a break is still required.")
    return "\n".join(lines)


def cmd_break_start(args: argparse.Namespace) -> int:
    settings = load_settings()
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", UnscheduledBreakWarning)
        outcome = _break_manager(settings).start(
            args.type,
            duration=args.duration,
            launch_mode=args.launch_mode,
            skip_mode=args.skip_mode,
        )
    for warning in caught:
        print(f"warning: {warning.message}", file=sys.stderr)
    _emit(args, outcome.to_dict(), _describe_break_result(outcome))
    return 0


def cmd_break_stop(args: argparse.Namespace) -> int:
    settings = load_settings()
    outcome = _break_manager(settings).stop()
    _emit(args, outcome.to_dict(), _describe_break_result(outcome))
    return 0


def cmd_break_status(args: argparse.Namespace) -> int:
    settings = load_settings()
    status = _break_manager(settings).status()
    if status.session is not None:
        text = (
            f"On a {status.session.type.value} break: "
            f"{format_duration(status.remaining_seconds)} remaining "
            f"of {format_duration(status.session.planned_duration_seconds)}."
        )
    elif status.break_required:
        text = f"A {status.break_type_required.value} break is required."
    else:
        text = "No break in progress."
    if status.settled is not None:
        record = status.settled
        text = (
            f"Background break ended ({record.ended_by.value}) after "
            f"{format_duration(record.duration_seconds)}.\n{text}"
        )
    _emit(args, status.to_dict(), text)
    return 0


# guard / report / options ---------------------------------------------------


def cmd_guard(args: argparse.Namespace) -> int:
    settings = load_settings()
    guard = ProjectSwitchGuard(load_store(settings))
    decision = guard.check(args.to_project, current=args.from_project)
    if args.json:
        print(json.dumps(decision.to_dict(), indent=2))
    elif decision.message:
        print(decision.message, file=sys.stderr)
    return 0 if decision.allowed else 1


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date '{value}' (expected YYYY-MM-DD)") from exc


def cmd_report(args: argparse.Namespace) -> int:
    settings = load_settings()
    if args.since or args.until:
        today = date.today()
        period = ReportPeriod.between(args.since or today.replace(day=1), args.until or today)
    else:
        period = ReportPeriod.for_month(args.month)
    report = ComplianceReporter(load_store(settings)).report(period)
    _emit(args, report.model_dump(mode="json"), render_report(report))
    return 0


def cmd_options_show(args: argparse.Namespace) -> int:
    options = effective_options(load_settings())
    text = "\n".join(f"{name} = {value}" for name, value in options.items())
    _emit(args, options, text)
    return 0


def cmd_options_get(args: argparse.Namespace) -> int:
    value = get_option(args.key, load_settings())
    _emit(args, {args.key: value}, str(value))
    return 0


def cmd_options_set(args: argparse.Namespace) -> int:
    value = set_option(args.key, args.value)
    _emit(args, {args.key: value}, f"{args.key} = {value}")
    return 0


def cmd_options_unset(args: argparse.Namespace) -> int:
    removed = unset_option(args.key)
    _emit(
        args,
        {"key": args.key, "removed": removed},
        f"{args.key} reset to default." if removed else f"{args.key} was not set.",
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="harm-work", description="Work/break enforcement")
    parser.add_argument("--json", action="store_true", help="Output JSON")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    p_work = sub.add_parser("work", help="Work sessions")
    work = p_work.add_subparsers(dest="work_cmd")

    p_start = work.add_parser("start", help="Start a work session")
    p_start.add_argument("goal", nargs="*", help="What you are working on")
    duration = p_start.add_mutually_exclusive_group()
    duration.add_argument("--duration", type=int, help="Planned length in seconds")
    duration.add_argument("--minutes", type=int, help="Planned length in minutes")
    p_start.add_argument("--project", help="Project to bind (default: current directory name)")
    p_start.set_defaults(func=cmd_work_start)

    p_stop = work.add_parser("stop", help="Stop the active work session")
    p_stop.add_argument("--reason", help="Why the session ended")
    p_stop.set_defaults(func=cmd_work_stop)

    p_status = work.add_parser("status", help="Show the active work session")
    p_status.set_defaults(func=cmd_work_status)

    p_stats = work.add_parser("stats", help="Summarize archived work sessions")
    p_stats.add_argument("period", nargs="?", default="today", choices=["today", "week", "month"])
    p_stats.set_defaults(func=cmd_work_stats)

    p_violations = work.add_parser("violations", help="Show or reset the violation counter")
    p_violations.add_argument("--reset", action="store_true")
    p_violations.set_defaults(func=cmd_work_violations)

    p_pomodoros = work.add_parser("reset-pomodoros", help="Reset the pomodoro counter")
    p_pomodoros.set_defaults(func=cmd_work_reset_pomodoros)

    p_reset = work.add_parser("reset", help="Discard all work state (recovery)")
    p_reset.add_argument("--force", action="store_true")
    p_reset.set_defaults(func=cmd_work_reset)

    p_break = sub.add_parser("break", help="Breaks")
    brk = p_break.add_subparsers(dest="break_cmd")

    p_bstart = brk.add_parser("start", help="Start a break and run its timer")
    p_bstart.add_argument("--type", choices=["short", "long", "custom"])
    p_bstart.add_argument("--duration", type=int, help="Length in seconds (required for custom)")
    p_bstart.add_argument(
        "--skip-mode",
        choices=["never", "always", "after50", "type-based"],
        help="Override the configured skip policy",
    )
    launch = p_bstart.add_mutually_exclusive_group()
    for mode in (LaunchMode.INLINE, LaunchMode.POPUP, LaunchMode.BACKGROUND):
        launch.add_argument(
            f"--{mode.value}",
            dest="launch_mode",
            action="store_const",
            const=mode.value,
            help=f"Run the timer {mode.value}",
        )
    p_bstart.set_defaults(func=cmd_break_start, launch_mode=None)

    p_bstop = brk.add_parser("stop", help="Finish the active break")
    p_bstop.set_defaults(func=cmd_break_stop)

    p_bstatus = brk.add_parser("status", help="Show the active break")
    p_bstatus.set_defaults(func=cmd_break_status)

    p_guard = sub.add_parser("guard", help="Check a project switch (shell directory hook)")
    p_guard.add_argument("--to", dest="to_project", required=True, help="Destination project")
    p_guard.add_argument("--from", dest="from_project", help="Project being left")
    p_guard.set_defaults(func=cmd_guard)

    p_report = sub.add_parser("report", help="Break compliance report")
    p_report.add_argument("--month", help="YYYY-MM (default: current month)")
    p_report.add_argument("--since", type=_parse_date, help="First day (YYYY-MM-DD)")
    p_report.add_argument("--until", type=_parse_date, help="Last day (YYYY-MM-DD)")
    p_report.set_defaults(func=cmd_report)

    p_options = sub.add_parser("options", help="Show or change configuration")
    options = p_options.add_subparsers(dest="options_cmd")
    p_show = options.add_parser("show", help="List every option")
    p_show.set_defaults(func=cmd_options_show)
    p_get = options.add_parser("get", help="Print one option")
    p_get.add_argument("key")
    p_get.set_defaults(func=cmd_options_get)
    p_set = options.add_parser("set", help="Persist an option to config.yaml")
    p_set.add_argument("key")
    p_set.add_argument("value")
    p_set.set_defaults(func=cmd_options_set)
    p_unset = options.add_parser("unset", help="Remove an option from config.yaml")
    p_unset.add_argument("key")
    p_unset.set_defaults(func=cmd_options_unset)

    return parser


def _exit_code_for(exc: BaseException) -> int | None:
    for error_type, code in _ERROR_EXIT_CODES:
        if isinstance(exc, error_type):
            return code
    return None


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 2

    try:
        settings = load_settings()
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level, settings.log_path)

    try:
        return args.func(args)
    except _HANDLED_ERRORS as exc:
        code = _exit_code_for(exc)
        logger.info("Command failed", extra={"command": args.cmd, "error": str(exc)})
        print(f"error: {exc}", file=sys.stderr)
        return code if code is not None else 1


if __name__ == "__main__":
    sys.exit(main())
