from __future__ import annotations

import json
from pathlib import Path

import pytest

from harm_work.clock import SessionClock
from harm_work.timer.work_timer import (
    WorkTimerOptions,
    main,
    reminder_schedule,
    run_work_timer,
    session_is_current,
)

STARTED = "2026-03-10T12:00:00Z"


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def notify(self, title: str, message: str) -> None:
        self.sent.append((title, message))


class FakeMonotonic:
    """Monotonic clock that only moves when the timer sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _session_file(path: Path, started: str = STARTED) -> Path:
    path.write_text(json.dumps({"start_time": started, "goal": "docs"}), encoding="utf-8")
    return path


def _run(options: WorkTimerOptions, monotonic: FakeMonotonic, notifier: RecordingNotifier, on_sleep=None) -> int:
    def sleep(seconds: float) -> None:
        monotonic.sleep(seconds)
        if on_sleep is not None:
            on_sleep(monotonic.now)

    return run_work_timer(
        options,
        notifier=notifier,
        clock=SessionClock(monotonic=monotonic),
        sleep=sleep,
    )


@pytest.mark.parametrize(
    ("duration", "interval", "expected"),
    [
        (1500, 0, []),
        (1500, 600, [600, 1200]),
        (1800, 600, [600, 1200]),
        (300, 600, []),
    ],
)
def test_reminder_schedule(duration: int, interval: int, expected: list[int]) -> None:
    assert reminder_schedule(duration, interval) == expected


def test_reminders_then_completion(tmp_path: Path) -> None:
    monotonic = FakeMonotonic()
    notifier = RecordingNotifier()
    options = WorkTimerOptions(
        duration=1500,
        reminder_interval=600,
        goal="docs",
        session_file=_session_file(tmp_path / "current_session.json"),
        started=STARTED,
    )

    assert _run(options, monotonic, notifier) == 0

    assert monotonic.sleeps == [600, 600, 300]
    assert [title for title, _ in notifier.sent] == [
        "Focus reminder",
        "Focus reminder",
        "Work session complete",
    ]
    assert notifier.sent[0][1] == "You've been working for 10m 00s. Keep going!"
    assert "on docs" in notifier.sent[-1][1]


def test_timer_exits_quietly_once_session_stops(tmp_path: Path) -> None:
    session_file = _session_file(tmp_path / "current_session.json")
    monotonic = FakeMonotonic()
    notifier = RecordingNotifier()

    def stop_after_first_reminder(now: float) -> None:
        if now > 600:
            session_file.unlink(missing_ok=True)

    options = WorkTimerOptions(
        duration=1500, reminder_interval=600, session_file=session_file, started=STARTED
    )
    assert _run(options, monotonic, notifier, stop_after_first_reminder) == 0
    assert [title for title, _ in notifier.sent] == ["Focus reminder"]


def test_timer_ignores_replaced_session(tmp_path: Path) -> None:
    session_file = _session_file(tmp_path / "current_session.json", "2026-03-10T13:00:00Z")
    notifier = RecordingNotifier()

    options = WorkTimerOptions(duration=60, session_file=session_file, started=STARTED)
    assert _run(options, FakeMonotonic(), notifier) == 0
    assert notifier.sent == []


def test_session_is_current(tmp_path: Path) -> None:
    path = tmp_path / "current_session.json"
    assert session_is_current(None, STARTED) is True
    assert session_is_current(path, STARTED) is False
    _session_file(path)
    assert session_is_current(path, STARTED) is True
    assert session_is_current(path, None) is True
    assert session_is_current(path, "2026-03-10T13:00:00Z") is False
    path.write_text("{not json", encoding="utf-8")
    assert session_is_current(path, STARTED) is False


@pytest.mark.parametrize(
    "argv",
    [
        ["--duration", "0"],
        ["--duration", "60", "--reminder-interval", "-5"],
        ["--duration", "soon"],
        [],
    ],
)
def test_main_rejects_bad_arguments(argv: list[str], capsys) -> None:
    assert main(argv) == 2
    assert "usage: harm-work-timer" in capsys.readouterr().err
