"""Append-only audit event log (one JSON object per line)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from .files import append_jsonl, iter_jsonl

logger = logging.getLogger(__name__)

_LEVELS = {"debug", "info", "warning", "error"}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class EventLog:
    """Best-effort audit sink; a failed append is logged, never raised."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def append(
        self,
        event: str,
        *,
        component: str,
        level: str = "info",
        **fields: Any,
    ) -> dict[str, Any] | None:
        payload: dict[str, Any] = {
            "ts": _timestamp(),
            "level": level if level in _LEVELS else "info",
            "component": component,
            "event": event,
        }
        for key, value in fields.items():
            if value is None:
                continue
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Enum):
                value = value.value
            payload[key] = value

        try:
            append_jsonl(self._path, payload)
        except OSError as exc:
            logger.warning(
                "Failed to append audit event",
                extra={"event": event, "path": str(self._path), "error": str(exc)},
            )
            return None
        return payload

    def read(self, *, event: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        entries = [entry for entry in self._iter() if event is None or entry.get("event") == event]
        if limit is not None and limit > 0:
            entries = entries[-limit:]
        return entries

    def _iter(self) -> Iterator[dict[str, Any]]:
        return iter_jsonl(self._path)


__all__ = ["EventLog"]
