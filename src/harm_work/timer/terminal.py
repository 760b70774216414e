"""Terminal emulator detection for popup break timers."""

from __future__ import annotations

import os
import shlex
import shutil
import sys
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from .utils import applescript_quote

# (executable, arguments placed before the command to run)
_LINUX_TERMINALS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("gnome-terminal", ("--title=Break Time", "--")),
    ("konsole", ("--hide-menubar", "-e")),
    ("xfce4-terminal", ("--title=Break Time", "-x")),
    ("xterm", ("-title", "Break Time", "-e")),
)


@dataclass(slots=True, frozen=True)
class TerminalSpec:
    name: str
    executable: str
    prefix: tuple[str, ...] = ()

    def wrap(self, args: Sequence[str]) -> list[str]:
        """Command that opens a new window running ``args``."""

        if self.name == "Terminal.app":
            script = (
                'tell application "Terminal"\n'
                f"  do script {applescript_quote(shlex.join(args))}\n"
                "  activate\n"
                "end tell"
            )
            return [self.executable, "-e", script]
        return [self.executable, *self.prefix, *args]


def is_remote_session(env: Mapping[str, str] | None = None) -> bool:
    env = os.environ if env is None else env
    return any(env.get(key) for key in ("SSH_CONNECTION", "SSH_CLIENT", "SSH_TTY"))


def detect_terminal(
    *,
    platform: str | None = None,
    env: Mapping[str, str] | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> TerminalSpec | None:
    """Find a terminal emulator able to open a new window, or None.

    Remote (SSH) sessions and Linux sessions without a display never get a popup.
    """

    platform = platform or sys.platform
    env = os.environ if env is None else env
    if is_remote_session(env):
        return None

    if platform == "darwin":
        binary = which("osascript")
        return TerminalSpec("Terminal.app", binary) if binary else None

    if not (env.get("DISPLAY") or env.get("WAYLAND_DISPLAY")):
        return None
    for name, prefix in _LINUX_TERMINALS:
        binary = which(name)
        if binary:
            return TerminalSpec(name, binary, prefix)
    return None


__all__ = ["TerminalSpec", "detect_terminal", "is_remote_session"]
