"""Launch the break timer process and collect its exit status."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from .policy import SkipMode
from .terminal import TerminalSpec, detect_terminal
from .utils import sanitize_environment, signal_process, spawn_detached

logger = logging.getLogger(__name__)

# Exit status reported when a popup timer never wrote its marker.
MARKER_TIMEOUT_STATUS = 124

# Ends a detached timer regardless of its skip policy.
CANCEL_SIGNAL = getattr(signal, "SIGHUP", signal.SIGTERM)

# Pids handed out by the fakes; never signalled.
FAKE_PID_BASE = 40000


class TimerLaunchError(RuntimeError):
    """Raised when the break timer process cannot be started."""


@dataclass(slots=True)
class TimerExecutionResult:
    """Holds the outcome of one break timer run."""

    args: tuple[str, ...]
    returncode: int

    @property
    def completed(self) -> bool:
        return self.returncode == 0


def _prepare_marker(marker: Path) -> None:
    marker.parent.mkdir(parents=True, exist_ok=True)
    marker.unlink(missing_ok=True)


def read_exit_marker(marker: Path) -> int | None:
    try:
        raw = marker.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    try:
        return int(raw)
    except ValueError:
        # Written atomically, so a non-integer means someone else wrote it.
        logger.warning("Ignoring malformed timer exit marker", extra={"marker": str(marker)})
        return None


class TimerLauncher:
    """Run ``harm-break-timer`` inline, or in a new terminal window."""

    def __init__(self, command: Sequence[str] | None = None) -> None:
        self._command = list(command) if command else [sys.executable, "-m", "harm_work.timer"]

    @property
    def command(self) -> list[str]:
        return list(self._command)

    def build_args(
        self,
        duration: int,
        break_type: str,
        skip_mode: SkipMode | str,
        *,
        exit_marker: Path | None = None,
        notify: bool = True,
    ) -> list[str]:
        mode = skip_mode.value if isinstance(skip_mode, SkipMode) else str(skip_mode)
        args = [
            *self._command,
            "--duration",
            str(duration),
            "--type",
            str(break_type),
            "--skip-mode",
            mode,
        ]
        if exit_marker is not None:
            args.extend(["--exit-marker", str(exit_marker)])
        if not notify:
            args.append("--no-notify")
        return args

    def popup_terminal(self) -> TerminalSpec | None:
        return detect_terminal()

    async def run_inline(
        self,
        duration: int,
        break_type: str,
        skip_mode: SkipMode | str,
        *,
        notify: bool = True,
    ) -> TimerExecutionResult:
        """Run the timer in this terminal and wait for it.

        Ctrl+C reaches every process in the foreground group, so the parent
        ignores SIGINT while waiting and leaves the decision to the timer.
        """

        args = self.build_args(duration, break_type, skip_mode, notify=notify)
        return await self._invoke(args)

    async def _invoke(self, args: Sequence[str]) -> TimerExecutionResult:
        restore = None
        if threading.current_thread() is threading.main_thread():
            restore = signal.signal(signal.SIGINT, signal.SIG_IGN)
        try:
            try:
                process = await asyncio.create_subprocess_exec(*args, env=sanitize_environment())
            except OSError as exc:
                raise TimerLaunchError(f"Could not start break timer: {exc}") from exc
            returncode = await process.wait()
        finally:
            if restore is not None:
                signal.signal(signal.SIGINT, restore)
        return TimerExecutionResult(args=tuple(args), returncode=returncode)

    def launch_popup(
        self,
        terminal: TerminalSpec,
        duration: int,
        break_type: str,
        skip_mode: SkipMode | str,
        *,
        exit_marker: Path,
        notify: bool = True,
    ) -> tuple[str, ...]:
        """Open a detached terminal window running the timer; returns the launch command."""

        _prepare_marker(exit_marker)
        args = self.build_args(duration, break_type, skip_mode, exit_marker=exit_marker, notify=notify)
        cmd = terminal.wrap(args)
        try:
            spawn_detached(cmd)
        except OSError as exc:
            raise TimerLaunchError(f"Could not open {terminal.name}: {exc}") from exc
        logger.info("Break timer opened in new window", extra={"terminal": terminal.name})
        return tuple(cmd)

    def launch_background(
        self,
        duration: int,
        break_type: str,
        skip_mode: SkipMode | str,
        *,
        exit_marker: Path,
        notify: bool = True,
    ) -> int:
        """Start the timer with no terminal attached and return its pid.

        The timer reports back only through ``exit_marker``.
        """

        _prepare_marker(exit_marker)
        args = self.build_args(duration, break_type, skip_mode, exit_marker=exit_marker, notify=notify)
        try:
            pid = spawn_detached(args)
        except OSError as exc:
            raise TimerLaunchError(f"Could not start break timer: {exc}") from exc
        logger.info("Break timer started in background", extra={"pid": pid})
        return pid

    def cancel_background(self, pid: int) -> bool:
        return signal_process(pid, CANCEL_SIGNAL)

    async def wait_for_marker(
        self,
        exit_marker: Path,
        *,
        timeout: float,
        poll_interval: float = 1.0,
    ) -> TimerExecutionResult:
        deadline = time.monotonic() + timeout
        while True:
            status = read_exit_marker(exit_marker)
            if status is not None:
                exit_marker.unlink(missing_ok=True)
                return TimerExecutionResult(args=(str(exit_marker),), returncode=status)
            if time.monotonic() >= deadline:
                logger.warning(
                    "Break timer did not report back before the deadline",
                    extra={"marker": str(exit_marker), "timeout": timeout},
                )
                return TimerExecutionResult(args=(str(exit_marker),), returncode=MARKER_TIMEOUT_STATUS)
            await asyncio.sleep(poll_interval)


class FakeTimerLauncher(TimerLauncher):
    """Test double that returns scripted exit statuses instead of spawning processes."""

    def __init__(  # type: ignore[override]
        self,
        returncodes: Iterable[int] | None = None,
        *,
        terminal: TerminalSpec | None = None,
    ) -> None:
        self._returncodes = list(returncodes or [])
        self._invocations: list[tuple[str, ...]] = []
        self._command = ["/tmp/fake-harm-break-timer"]
        self._terminal = terminal
        self.popups: list[tuple[str, ...]] = []
        self.background: list[tuple[str, ...]] = []
        self.cancelled: list[int] = []

    def popup_terminal(self) -> TerminalSpec | None:  # type: ignore[override]
        return self._terminal

    async def _invoke(self, args: Sequence[str]) -> TimerExecutionResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        returncode = self._returncodes.pop(0) if self._returncodes else 0
        return TimerExecutionResult(args=tuple(args), returncode=returncode)

    def launch_popup(  # type: ignore[override]
        self,
        terminal: TerminalSpec,
        duration: int,
        break_type: str,
        skip_mode: SkipMode | str,
        *,
        exit_marker: Path,
        notify: bool = True,
    ) -> tuple[str, ...]:
        args = self.build_args(duration, break_type, skip_mode, exit_marker=exit_marker, notify=notify)
        self._invocations.append(tuple(args))
        self.popups.append(tuple(terminal.wrap(args)))
        returncode = self._returncodes.pop(0) if self._returncodes else 0
        exit_marker.parent.mkdir(parents=True, exist_ok=True)
        exit_marker.write_text(f"{returncode}\n", encoding="utf-8")
        return self.popups[-1]

    def launch_background(  # type: ignore[override]
        self,
        duration: int,
        break_type: str,
        skip_mode: SkipMode | str,
        *,
        exit_marker: Path,
        notify: bool = True,
    ) -> int:
        args = self.build_args(duration, break_type, skip_mode, exit_marker=exit_marker, notify=notify)
        self._invocations.append(tuple(args))
        self.background.append(tuple(args))
        return FAKE_PID_BASE + len(self.background)

    def cancel_background(self, pid: int) -> bool:  # type: ignore[override]
        self.cancelled.append(pid)
        return True

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


class WorkTimerLauncher:
    """Start and stop the detached work session timer."""

    def __init__(self, command: Sequence[str] | None = None) -> None:
        self._command = (
            list(command) if command else [sys.executable, "-m", "harm_work.timer.work_timer"]
        )

    @property
    def command(self) -> list[str]:
        return list(self._command)

    def build_args(
        self,
        duration: int,
        *,
        reminder_interval: int = 0,
        goal: str = "",
        session_file: Path | None = None,
        started: str | None = None,
    ) -> list[str]:
        args = [
            *self._command,
            "--duration",
            str(duration),
            "--reminder-interval",
            str(reminder_interval),
        ]
        if goal:
            args.extend(["--goal", goal])
        if session_file is not None:
            args.extend(["--session-file", str(session_file)])
        if started is not None:
            args.extend(["--started", started])
        return args

    def launch(
        self,
        duration: int,
        *,
        reminder_interval: int = 0,
        goal: str = "",
        session_file: Path | None = None,
        started: str | None = None,
    ) -> int:
        """Start the timer detached from this terminal and return its pid."""

        args = self.build_args(
            duration,
            reminder_interval=reminder_interval,
            goal=goal,
            session_file=session_file,
            started=started,
        )
        try:
            pid = spawn_detached(args)
        except OSError as exc:
            raise TimerLaunchError(f"Could not start work timer: {exc}") from exc
        logger.info("Work timer started", extra={"pid": pid})
        return pid

    def cancel(self, pid: int) -> bool:
        return signal_process(pid, signal.SIGTERM)


class FakeWorkTimerLauncher(WorkTimerLauncher):
    """Records work timer launches and cancellations instead of spawning processes."""

    def __init__(self, *, fail: bool = False) -> None:  # type: ignore[override]
        self._command = ["/tmp/fake-harm-work-timer"]
        self._fail = fail
        self.launches: list[tuple[str, ...]] = []
        self.cancelled: list[int] = []

    def launch(self, duration: int, **options) -> int:  # type: ignore[override]
        if self._fail:
            raise TimerLaunchError("Could not start work timer: scripted failure")
        self.launches.append(tuple(self.build_args(duration, **options)))
        return FAKE_PID_BASE + len(self.launches)

    def cancel(self, pid: int) -> bool:  # type: ignore[override]
        self.cancelled.append(pid)
        return True


__all__ = [
    "FakeTimerLauncher",
    "FakeWorkTimerLauncher",
    "MARKER_TIMEOUT_STATUS",
    "TimerExecutionResult",
    "TimerLaunchError",
    "TimerLauncher",
    "WorkTimerLauncher",
    "read_exit_marker",
]
