"""Configuration management for harm-work."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from .storage.files import atomic_write_text
from .timer.policy import SkipMode

DEFAULT_HOME = Path("~/.harm-cli")
CONFIG_FILENAME = "config.yaml"


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded, validated, or updated."""


class LaunchMode(str, Enum):
    AUTO = "auto"
    INLINE = "inline"
    POPUP = "popup"
    BACKGROUND = "background"


def resolve_home() -> Path:
    return Path(os.environ.get("HARM_CLI_HOME") or DEFAULT_HOME).expanduser()


def config_file_path() -> Path:
    """Location of the YAML config file (``HARM_CONFIG_FILE`` overrides)."""

    explicit = os.environ.get("HARM_CONFIG_FILE")
    if explicit:
        return Path(explicit).expanduser()
    return resolve_home() / CONFIG_FILENAME


class WorkSettings(BaseSettings):
    """Runtime configuration sourced from environment, optional .env, and config.yaml."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    home: Path = Field(default=DEFAULT_HOME, validation_alias="HARM_CLI_HOME")
    work_dir: Path | None = Field(default=None, validation_alias="HARM_WORK_DIR")
    log_level: str = Field(default="WARNING", validation_alias="HARM_LOG_LEVEL")
    log_file: Path | None = Field(default=None, validation_alias="HARM_LOG_FILE")

    work_duration: int = Field(default=1500, validation_alias="HARM_WORK_DURATION")
    break_short: int = Field(default=300, validation_alias="HARM_BREAK_SHORT")
    break_long: int = Field(default=900, validation_alias="HARM_BREAK_LONG")
    pomodoros_until_long: int = Field(default=4, validation_alias="HARM_POMODOROS_UNTIL_LONG")

    block_project_switch: bool = Field(
        default=False, validation_alias="HARM_STRICT_BLOCK_PROJECT_SWITCH"
    )
    require_break: bool = Field(default=True, validation_alias="HARM_STRICT_REQUIRE_BREAK")
    confirm_early_stop: bool = Field(
        default=False, validation_alias="HARM_STRICT_CONFIRM_EARLY_STOP"
    )
    track_breaks: bool = Field(default=True, validation_alias="HARM_STRICT_TRACK_BREAKS")

    break_skip_mode: SkipMode = Field(default=SkipMode.ALWAYS, validation_alias="HARM_BREAK_SKIP_MODE")
    break_launch_mode: LaunchMode = Field(
        default=LaunchMode.AUTO, validation_alias="HARM_BREAK_LAUNCH_MODE"
    )
    notifications: bool = Field(default=True, validation_alias="HARM_WORK_NOTIFICATIONS")
    work_timer: bool = Field(default=True, validation_alias="HARM_WORK_TIMER")
    work_reminder_interval: int = Field(default=1800, validation_alias="HARM_WORK_REMINDER")
    distraction_threshold: int = Field(default=3, validation_alias="HARM_DISTRACTION_THRESHOLD")
    lock_timeout: float = Field(default=5.0, validation_alias="HARM_LOCK_TIMEOUT")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=config_file_path()),
            file_secret_settings,
        )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "HARM_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator(
        "work_duration",
        "break_short",
        "break_long",
        "pomodoros_until_long",
        "distraction_threshold",
    )
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value

    @field_validator("work_reminder_interval")
    @classmethod
    def _validate_reminder_interval(cls, value: int) -> int:
        if value < 0:
            raise ValueError("HARM_WORK_REMINDER must be >= 0 (0 disables reminders)")
        return value

    @field_validator("lock_timeout")
    @classmethod
    def _validate_lock_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("HARM_LOCK_TIMEOUT must be > 0")
        return value

    @property
    def state_dir(self) -> Path:
        """Directory holding the enforcement state, session files and archives."""

        if self.work_dir is not None:
            return self.work_dir.expanduser()
        return self.home.expanduser() / "work"

    @property
    def log_path(self) -> Path:
        if self.log_file is not None:
            return self.log_file.expanduser()
        return self.home.expanduser() / "logs" / "harm-work.log"

    def break_duration(self, break_type: str) -> int | None:
        if break_type == "short":
            return self.break_short
        if break_type == "long":
            return self.break_long
        return None


def load_settings(**overrides: Any) -> WorkSettings:
    """Return a fresh settings instance.

    Nothing is cached: every operation calls this so toggles changed between
    commands take effect immediately.
    """

    try:
        return WorkSettings(**overrides)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML in {config_file_path()}: {exc}") from exc


OPTION_NAMES: tuple[str, ...] = tuple(name for name in WorkSettings.model_fields if name != "home")


def _require_option(key: str) -> str:
    normalized = key.strip().lower().replace("-", "_")
    if normalized not in OPTION_NAMES:
        raise ConfigError(
            f"Unknown option '{key}'. Known options: {', '.join(OPTION_NAMES)}"
        )
    return normalized


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    target = path or config_file_path()
    if not target.exists():
        return {}
    try:
        document = yaml.safe_load(target.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML in {target}: {exc}") from exc
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigError(f"{target} must contain a mapping of option names to values")
    return document


def _write_config_file(document: dict[str, Any], path: Path | None = None) -> Path:
    target = path or config_file_path()
    atomic_write_text(target, yaml.safe_dump(document, sort_keys=True, default_flow_style=False))
    return target


def effective_options(settings: WorkSettings | None = None) -> dict[str, Any]:
    """Return every option with its effective value, JSON-friendly."""

    current = settings or load_settings()
    dumped = current.model_dump(mode="json")
    dumped["work_dir"] = str(current.state_dir)
    dumped["log_file"] = str(current.log_path)
    return {name: dumped[name] for name in OPTION_NAMES}


def get_option(key: str, settings: WorkSettings | None = None) -> Any:
    name = _require_option(key)
    return effective_options(settings)[name]


def set_option(key: str, value: Any, path: Path | None = None) -> Any:
    """Validate ``value`` for ``key`` and persist it to the config file.

    Returns the normalized value that was written.
    """

    name = _require_option(key)
    try:
        validated = WorkSettings.model_validate({name: value})
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for {name}: {exc.errors()[0]['msg']}") from exc
    normalized = validated.model_dump(mode="json")[name]

    document = read_config_file(path)
    document[name] = normalized
    _write_config_file(document, path)
    return normalized


def unset_option(key: str, path: Path | None = None) -> bool:
    name = _require_option(key)
    document = read_config_file(path)
    if name not in document:
        return False
    del document[name]
    _write_config_file(document, path)
    return True


__all__ = [
    "ConfigError",
    "LaunchMode",
    "OPTION_NAMES",
    "WorkSettings",
    "config_file_path",
    "effective_options",
    "get_option",
    "load_settings",
    "read_config_file",
    "resolve_home",
    "set_option",
    "unset_option",
]
