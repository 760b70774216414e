"""harm-work diagnostics CLI: dump raw state, archives and audit events as JSON."""

from __future__ import annotations

import argparse
import json

from harm_work.config import ConfigError, WorkSettings, load_settings
from harm_work.storage import StateCorruptError, StateStore
from harm_work.storage.store import BREAK_ARCHIVE_PREFIX, WORK_ARCHIVE_PREFIX


def load_store(settings: WorkSettings) -> StateStore:
    return StateStore(settings.state_dir, lock_timeout=settings.lock_timeout)


def _settings() -> WorkSettings:
    try:
        return load_settings()
    except ConfigError as exc:
        print(f"Configuration invalid: {exc}")
        raise SystemExit(2)


def cmd_state(args: argparse.Namespace) -> None:
    store = load_store(_settings())
    try:
        state = store.load_enforcement()
        work = store.load_work_session()
        brk = store.load_break_session()
    except StateCorruptError as exc:
        print(f"State unreadable: {exc}")
        raise SystemExit(1)
    payload = {
        "work_dir": str(store.root),
        "enforcement": state.model_dump(mode="json"),
        "work_session": work.model_dump(mode="json") if work else None,
        "break_session": brk.model_dump(mode="json") if brk else None,
        "locked": store.lock().path.exists(),
    }
    print(json.dumps(payload, indent=2))


def _months(store: StateStore, prefix: str, month: str | None) -> list[str]:
    if month:
        return [month]
    return store.archived_months(prefix)


def cmd_sessions(args: argparse.Namespace) -> None:
    store = load_store(_settings())
    records = store.work_records(_months(store, WORK_ARCHIVE_PREFIX, args.month))
    print(json.dumps([record.model_dump(mode="json") for record in records], indent=2))


def cmd_breaks(args: argparse.Namespace) -> None:
    store = load_store(_settings())
    records = store.break_records(_months(store, BREAK_ARCHIVE_PREFIX, args.month))
    print(json.dumps([record.model_dump(mode="json") for record in records], indent=2))


def cmd_months(args: argparse.Namespace) -> None:
    store = load_store(_settings())
    payload = {
        "sessions": store.archived_months(WORK_ARCHIVE_PREFIX),
        "breaks": store.archived_months(BREAK_ARCHIVE_PREFIX),
    }
    print(json.dumps(payload, indent=2))


def cmd_events(args: argparse.Namespace) -> None:
    store = load_store(_settings())
    events = store.events.read(event=args.event, limit=args.limit)
    print(json.dumps(events, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="harm-work diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_state = sub.add_parser("state", help="Show enforcement state and active sessions")
    p_state.set_defaults(func=cmd_state)

    p_sessions = sub.add_parser("sessions", help="List archived work session records")
    p_sessions.add_argument("--month", help="YYYY-MM (default: every archived month)")
    p_sessions.set_defaults(func=cmd_sessions)

    p_breaks = sub.add_parser("breaks", help="List archived break records")
    p_breaks.add_argument("--month", help="YYYY-MM (default: every archived month)")
    p_breaks.set_defaults(func=cmd_breaks)

    p_months = sub.add_parser("months", help="List months that have archives")
    p_months.set_defaults(func=cmd_months)

    p_events = sub.add_parser("events", help="List audit log events")
    p_events.add_argument("--event", help="Only events with this name")
    p_events.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the latest N events",
    )
    p_events.set_defaults(func=cmd_events)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
