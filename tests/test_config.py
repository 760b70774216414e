from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from harm_work.config import (
    ConfigError,
    LaunchMode,
    config_file_path,
    effective_options,
    get_option,
    load_settings,
    read_config_file,
    set_option,
    unset_option,
)
from harm_work.timer.policy import SkipMode


def test_defaults(isolated_home: Path) -> None:
    settings = load_settings()
    assert settings.work_duration == 1500
    assert settings.break_short == 300
    assert settings.break_long == 900
    assert settings.pomodoros_until_long == 4
    assert settings.require_break is True
    assert settings.block_project_switch is False
    assert settings.confirm_early_stop is False
    assert settings.track_breaks is True
    assert settings.break_skip_mode is SkipMode.ALWAYS
    assert settings.break_launch_mode is LaunchMode.AUTO
    assert settings.work_timer is True
    assert settings.work_reminder_interval == 1800
    assert settings.state_dir == isolated_home / "work"
    assert settings.log_path == isolated_home / "logs" / "harm-work.log"


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("HARM_STRICT_BLOCK_PROJECT_SWITCH", "1")
    monkeypatch.setenv("HARM_WORK_DURATION", "3000")
    monkeypatch.setenv("HARM_BREAK_SKIP_MODE", "type-based")
    monkeypatch.setenv("HARM_LOG_LEVEL", "debug")

    settings = load_settings()
    assert settings.block_project_switch is True
    assert settings.work_duration == 3000
    assert settings.break_skip_mode is SkipMode.TYPE_BASED
    assert settings.log_level == "DEBUG"


def test_config_file_values_and_precedence(isolated_home: Path, monkeypatch) -> None:
    isolated_home.mkdir(parents=True)
    (isolated_home / "config.yaml").write_text(
        yaml.safe_dump({"break_short": 120, "require_break": False, "work_duration": 600}),
        encoding="utf-8",
    )
    monkeypatch.setenv("HARM_WORK_DURATION", "900")

    settings = load_settings()
    assert settings.break_short == 120
    assert settings.require_break is False
    assert settings.work_duration == 900


def test_explicit_config_file(tmp_path: Path, monkeypatch) -> None:
    target = tmp_path / "elsewhere.yaml"
    target.write_text("break_long: 1200\n", encoding="utf-8")
    monkeypatch.setenv("HARM_CONFIG_FILE", str(target))

    assert config_file_path() == target
    assert load_settings().break_long == 1200


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("HARM_WORK_DURATION", "0"),
        ("HARM_BREAK_SKIP_MODE", "sometimes"),
        ("HARM_LOG_LEVEL", "LOUD"),
        ("HARM_LOCK_TIMEOUT", "0"),
        ("HARM_WORK_REMINDER", "-1"),
    ],
)
def test_invalid_environment_raises_config_error(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError):
        load_settings()


def test_malformed_yaml_raises_config_error(isolated_home: Path) -> None:
    isolated_home.mkdir(parents=True)
    (isolated_home / "config.yaml").write_text("break_short: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings()


def test_set_option_validates_and_persists(isolated_home: Path) -> None:
    assert set_option("block-project-switch", "true") is True
    assert set_option("break_skip_mode", "after50") == "after50"

    assert read_config_file() == {"block_project_switch": True, "break_skip_mode": "after50"}
    settings = load_settings()
    assert settings.block_project_switch is True
    assert get_option("break_skip_mode", settings) == "after50"


def test_set_option_rejects_bad_values() -> None:
    with pytest.raises(ConfigError):
        set_option("work_duration", "-3")
    with pytest.raises(ConfigError):
        set_option("no_such_option", "1")
    assert read_config_file() == {}


def test_work_timer_options(monkeypatch) -> None:
    monkeypatch.setenv("HARM_WORK_TIMER", "0")
    monkeypatch.setenv("HARM_WORK_REMINDER", "0")
    settings = load_settings()
    assert settings.work_timer is False
    assert settings.work_reminder_interval == 0

    assert set_option("work-reminder-interval", "900") == 900
    monkeypatch.delenv("HARM_WORK_REMINDER")
    assert load_settings().work_reminder_interval == 900


def test_unset_option() -> None:
    set_option("break_long", "600")
    assert load_settings().break_long == 600

    assert unset_option("break_long") is True
    assert unset_option("break_long") is False
    assert load_settings().break_long == 900


def test_effective_options_are_json_friendly(isolated_home: Path) -> None:
    options = effective_options(load_settings())
    assert "home" not in options
    assert options["work_dir"] == str(isolated_home / "work")
    assert options["break_launch_mode"] == "auto"
    assert options["require_break"] is True
