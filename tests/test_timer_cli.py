from __future__ import annotations

import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

from harm_work.clock import SessionClock
from harm_work.timer.__main__ import build_parser, main, resolve_options, run_timer
from harm_work.timer.countdown import CountdownResult
from harm_work.timer.policy import SkipMode, UsageError

REPO_ROOT = Path(__file__).resolve().parents[1]


def _timer_env() -> dict[str, str]:
    env = os.environ.copy()
    env["PYTHONPATH"] = str(REPO_ROOT / "src") + os.pathsep + env.get("PYTHONPATH", "")
    env["PYTHONUNBUFFERED"] = "1"
    return env


def _timer_cmd(*args: str) -> list[str]:
    return [sys.executable, "-m", "harm_work.timer", *args]


class StubCountdown:
    def __init__(self, result: CountdownResult) -> None:
        self._result = result
        self.ran = False

    def request_skip(self, *_: object) -> None:
        pass

    def abort(self, *_: object) -> None:
        pass

    def run(self) -> CountdownResult:
        self.ran = True
        return self._result


def test_positional_and_flag_arguments_agree() -> None:
    parser = build_parser()
    positional = resolve_options(parser.parse_args(["300", "short", "never"]))
    flags = resolve_options(parser.parse_args(["--duration", "300", "--type", "short", "--skip-mode", "never"]))

    assert positional.duration == flags.duration == 300
    assert positional.break_type == flags.break_type == "short"
    assert positional.skip_mode is flags.skip_mode is SkipMode.NEVER


def test_type_based_is_resolved_before_running() -> None:
    options = resolve_options(build_parser().parse_args(["--duration", "900", "--type", "long", "--skip-mode", "type-based"]))
    assert options.skip_mode is SkipMode.AFTER50


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["0", "short", "always"],
        ["abc", "short", "always"],
        ["60", "lunch", "always"],
        ["60", "short", "sometimes"],
        ["--duration", "60", "--completion-pause", "-1"],
    ],
)
def test_invalid_arguments_raise_usage_error(argv: list[str]) -> None:
    with pytest.raises(UsageError):
        resolve_options(build_parser().parse_args(argv))


def test_main_returns_two_and_writes_marker_on_bad_args(tmp_path: Path, capsys) -> None:
    marker = tmp_path / "timer.exit"
    assert main(["--duration", "-5", "--exit-marker", str(marker)]) == 2
    assert marker.read_text(encoding="utf-8").strip() == "2"
    assert "duration must be at least 1 second" in capsys.readouterr().err


def test_main_returns_two_on_unknown_flag() -> None:
    assert main(["--bogus"]) == 2


def test_run_timer_writes_exit_marker(tmp_path: Path) -> None:
    marker = tmp_path / "nested" / "timer.exit"
    options = resolve_options(
        build_parser().parse_args(["60", "short", "always", "--no-notify", "--exit-marker", str(marker)])
    )
    countdown = StubCountdown(CountdownResult.SKIPPED)

    assert run_timer(options, countdown) == 1
    assert countdown.ran
    assert marker.read_text(encoding="utf-8").strip() == "1"


def test_run_timer_counts_down_on_injected_monotonic_clock(capsys) -> None:
    readings = iter([0.0])

    def monotonic() -> float:
        return next(readings, 60.0)

    options = resolve_options(
        build_parser().parse_args(["60", "short", "never", "--no-notify", "--completion-pause", "0"])
    )
    started = time.monotonic()

    assert run_timer(options, clock=SessionClock(monotonic=monotonic)) == 0
    assert time.monotonic() - started < 5
    assert "complete" in capsys.readouterr().out.lower()


def test_run_timer_restores_signal_handlers() -> None:
    before = signal.getsignal(signal.SIGTERM)
    options = resolve_options(build_parser().parse_args(["60", "short", "always", "--no-notify"]))
    assert run_timer(options, StubCountdown(CountdownResult.COMPLETED)) == 0
    assert signal.getsignal(signal.SIGTERM) is before


def test_timer_process_completes(tmp_path: Path) -> None:
    marker = tmp_path / "timer.exit"
    process = subprocess.run(
        _timer_cmd("--duration", "1", "--type", "short", "--skip-mode", "never",
                   "--no-notify", "--completion-pause", "0", "--exit-marker", str(marker)),
        capture_output=True,
        text=True,
        env=_timer_env(),
        timeout=30,
    )
    assert process.returncode == 0
    assert "BREAK COMPLETE" in process.stdout
    assert marker.read_text(encoding="utf-8").strip() == "0"


def test_timer_process_rejects_invalid_arguments() -> None:
    process = subprocess.run(
        _timer_cmd("--duration", "0", "--type", "short"),
        capture_output=True,
        text=True,
        env=_timer_env(),
        timeout=30,
    )
    assert process.returncode == 2
    assert "usage:" in process.stderr


def _start_timer(*args: str) -> subprocess.Popen:
    process = subprocess.Popen(
        _timer_cmd(*args),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=_timer_env(),
    )
    # The header is printed after the signal handlers are installed.
    for line in process.stdout:
        if "BREAK TIME" in line:
            break
    return process


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
def test_interrupt_skips_when_policy_allows() -> None:
    process = _start_timer("--duration", "30", "--type", "short", "--skip-mode", "always", "--no-notify")
    process.send_signal(signal.SIGINT)
    try:
        assert process.wait(timeout=10) == 1
    finally:
        process.kill()
        process.communicate()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
def test_interrupt_is_refused_when_policy_forbids() -> None:
    process = _start_timer(
        "--duration", "2", "--type", "long", "--skip-mode", "never", "--no-notify", "--completion-pause", "0"
    )
    process.send_signal(signal.SIGINT)
    try:
        assert process.wait(timeout=15) == 0
        stdout, _ = process.communicate()
        assert "Cannot skip yet!" in stdout
    finally:
        process.kill()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
def test_hangup_aborts_even_unskippable_break() -> None:
    process = _start_timer("--duration", "30", "--type", "long", "--skip-mode", "never", "--no-notify")
    process.send_signal(signal.SIGHUP)
    try:
        assert process.wait(timeout=10) == 1
    finally:
        process.kill()
        process.communicate()
