from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from harm_work.clock import SessionClock
from harm_work.config import WorkSettings
from harm_work.storage import StateStore
from harm_work.timer.launcher import FakeTimerLauncher


class FakeWallClock:
    """Wall clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: int) -> None:
        self.current += timedelta(seconds=seconds)


class SettingsFactory:
    """settings_provider stand-in whose toggles tests can flip between calls."""

    def __init__(self, work_dir: Path) -> None:
        self.overrides: dict[str, Any] = {"work_dir": work_dir, "notifications": False}

    def update(self, **values: Any) -> None:
        self.overrides.update(values)

    def __call__(self) -> WorkSettings:
        return WorkSettings(**self.overrides)


class AdvancingLauncher(FakeTimerLauncher):
    """Fake timer that lets ``seconds`` of wall time pass before reporting back."""

    def __init__(self, wall_clock: FakeWallClock, seconds: int, returncodes=None, *, terminal=None) -> None:
        super().__init__(returncodes, terminal=terminal)
        self._wall_clock = wall_clock
        self._seconds = seconds

    async def _invoke(self, args):
        self._wall_clock.advance(self._seconds)
        return await super()._invoke(args)

    def launch_popup(self, terminal, *args, **kwargs):
        self._wall_clock.advance(self._seconds)
        return super().launch_popup(terminal, *args, **kwargs)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for key in list(os.environ):
        if key.startswith("HARM_"):
            monkeypatch.delenv(key, raising=False)
    home = tmp_path / "home"
    monkeypatch.setenv("HARM_CLI_HOME", str(home))
    return home


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture
def session_clock(wall_clock: FakeWallClock) -> SessionClock:
    return SessionClock(wall=wall_clock)


@pytest.fixture
def store(work_dir: Path, wall_clock: FakeWallClock) -> StateStore:
    return StateStore(work_dir, lock_timeout=2.0, clock=wall_clock)


@pytest.fixture
def settings(work_dir: Path) -> SettingsFactory:
    return SettingsFactory(work_dir)


@pytest.fixture
def make_launcher(wall_clock: FakeWallClock):
    def factory(seconds: int, returncodes=None, *, terminal=None) -> AdvancingLauncher:
        return AdvancingLauncher(wall_clock, seconds, returncodes, terminal=terminal)

    return factory
