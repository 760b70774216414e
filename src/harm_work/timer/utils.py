"""Utility helpers for launching the break timer and other helper processes."""

from __future__ import annotations

import os
import subprocess
from typing import Mapping, Sequence

# A timer started with these set would drop into a REPL or debugger instead of exiting.
_SANITIZED_VARS = {
    "PYTHONINSPECT",
    "PYTHONSTARTUP",
    "PYTHONBREAKPOINT",
}


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for subprocess execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env["PYTHONUNBUFFERED"] = "1"
    if additional:
        env.update(additional)
    return env


def spawn_detached(args: Sequence[str]) -> int:
    """Start ``args`` in its own session with no stdio attached; returns the pid.

    Raises ``OSError`` when the executable cannot be started.
    """

    process = subprocess.Popen(
        list(args),
        env=sanitize_environment(),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    return process.pid


def signal_process(pid: int, signum: int) -> bool:
    """Send ``signum`` to ``pid``; False when no such process is ours to signal."""

    if pid <= 0:
        return False
    try:
        os.kill(pid, signum)
    except (ProcessLookupError, PermissionError):
        return False
    return True


def applescript_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
