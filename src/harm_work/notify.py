"""Best-effort desktop notifications."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from typing import Callable

from .timer.utils import applescript_quote, sanitize_environment

logger = logging.getLogger(__name__)

NOTIFY_TIMEOUT_SECONDS = 5


class NotifierUnavailableError(RuntimeError):
    """Raised when no notification tool exists for this platform."""


class Notifier:
    """Send desktop notifications through ``osascript`` (macOS) or ``notify-send`` (Linux)."""

    def __init__(
        self,
        platform: str | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self._platform = platform or sys.platform
        self._which = which

    def command(self, title: str, message: str) -> list[str]:
        if self._platform == "darwin":
            binary = self._which("osascript")
            if binary is None:
                raise NotifierUnavailableError("osascript not found on PATH")
            script = (
                f"display notification {applescript_quote(message)} "
                f"with title {applescript_quote(title)} sound name \"Glass\""
            )
            return [binary, "-e", script]

        binary = self._which("notify-send")
        if binary is None:
            raise NotifierUnavailableError("notify-send not found on PATH (install libnotify)")
        return [binary, "--app-name=harm-work", "--urgency=normal", title, message]

    def notify(self, title: str, message: str) -> None:
        cmd = self.command(title, message)
        try:
            subprocess.run(
                cmd,
                check=False,
                timeout=NOTIFY_TIMEOUT_SECONDS,
                env=sanitize_environment(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise NotifierUnavailableError(f"{cmd[0]} failed: {exc}") from exc


def notify_best_effort(notifier: Notifier | None, title: str, message: str) -> bool:
    """Send a notification, logging instead of raising when it cannot be delivered."""

    if notifier is None:
        return False
    try:
        notifier.notify(title, message)
    except NotifierUnavailableError as exc:
        logger.debug("Notification skipped", extra={"title": title, "reason": str(exc)})
        return False
    return True


__all__ = ["Notifier", "NotifierUnavailableError", "notify_best_effort"]
