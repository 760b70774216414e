"""Skip policy for break countdowns."""

from __future__ import annotations

from enum import Enum


class UsageError(ValueError):
    """Raised for invalid command arguments (exit status 2)."""


class SkipMode(str, Enum):
    NEVER = "never"
    ALWAYS = "always"
    AFTER50 = "after50"
    TYPE_BASED = "type-based"


def parse_skip_mode(value: str | SkipMode) -> SkipMode:
    if isinstance(value, SkipMode):
        return value
    try:
        return SkipMode(str(value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(mode.value for mode in SkipMode)
        raise UsageError(f"Invalid skip mode '{value}' (expected one of: {choices})") from exc


def resolve_skip_mode(mode: str | SkipMode, break_type: str) -> SkipMode:
    """Collapse ``type-based`` into a concrete mode before the countdown starts.

    Short breaks may be skipped at any time; long and custom breaks must reach
    the halfway point first.
    """

    resolved = parse_skip_mode(mode)
    if resolved is not SkipMode.TYPE_BASED:
        return resolved
    return SkipMode.ALWAYS if str(break_type) == "short" else SkipMode.AFTER50


def can_skip_now(mode: SkipMode, elapsed: float, total: float) -> bool:
    if mode is SkipMode.NEVER:
        return False
    if mode is SkipMode.ALWAYS:
        return True
    if mode is SkipMode.AFTER50:
        return elapsed * 2 >= total
    raise UsageError("type-based skip mode must be resolved before checking skips")


def describe_skip_mode(mode: SkipMode) -> str:
    if mode is SkipMode.NEVER:
        return "This break cannot be skipped"
    if mode is SkipMode.AFTER50:
        return "Press Ctrl+C after 50% to skip"
    return "Press Ctrl+C to skip"


__all__ = [
    "SkipMode",
    "UsageError",
    "can_skip_now",
    "describe_skip_mode",
    "parse_skip_mode",
    "resolve_skip_mode",
]
