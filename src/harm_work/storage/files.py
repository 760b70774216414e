"""Low-level file helpers: atomic document writes and append-only JSONL logs."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterator, Mapping

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` atomically (temp file in the same directory + rename).

    Readers observe either the previous content or the new content, never a
    partial write.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=".tmp_state_",
        suffix=target.suffix or ".json",
        text=True,
    )
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except BaseException:
        try:
            temp_path.unlink()
        except OSError:
            pass
        raise


def atomic_write_json(path: Path, payload: Mapping[str, Any]) -> None:
    atomic_write_text(path, json.dumps(payload, indent=2, sort_keys=True) + "\n")


def read_json(path: Path) -> dict[str, Any] | None:
    """Return the JSON object stored at ``path``, or None when the file is absent.

    Raises ``ValueError`` when the file exists but does not hold a JSON object.
    """

    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return data


def append_jsonl(path: Path, record: Mapping[str, Any]) -> None:
    """Append one self-contained JSON line.

    A single ``write`` on an ``O_APPEND`` descriptor keeps concurrent appenders
    from interleaving within a line.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    line = (json.dumps(record, sort_keys=True, separators=(",", ":")) + "\n").encode("utf-8")
    fd = os.open(target, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
    try:
        written = os.write(fd, line)
        if written != len(line):
            raise OSError(f"Short write appending to {target} ({written}/{len(line)} bytes)")
        os.fsync(fd)
    finally:
        os.close(fd)


def iter_jsonl(path: Path) -> Iterator[dict[str, Any]]:
    """Yield each JSON object line in ``path``; malformed lines are skipped."""

    target = Path(path)
    if not target.exists():
        return
    with target.open("r", encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(
                    "Skipping malformed archive line",
                    extra={"path": str(target), "line": lineno},
                )
                continue
            if isinstance(entry, dict):
                yield entry


__all__ = ["append_jsonl", "atomic_write_json", "atomic_write_text", "iter_jsonl", "read_json"]
