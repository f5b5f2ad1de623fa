"""Configuration management for the service watchdog."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
import os
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid; always raised before any mutation."""


def _default_root() -> Path:
    if os.name == "nt":
        return Path(os.environ.get("ProgramData", r"C:\ProgramData")) / "ServiceWatchdog"
    return Path("/opt/service-watchdog")


def _default_event_log_path() -> Path:
    if os.name == "nt":
        return Path(os.environ.get("ProgramData", r"C:\ProgramData")) / "ServiceWatchdogEvents"
    return Path("/var/lib/service-watchdog/events")


class WatchdogSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    root_directory: Path = Field(default_factory=_default_root, validation_alias="WATCHDOG_ROOT")
    trigger_name: str = Field(default="ServiceWatchdog", validation_alias="WATCHDOG_TRIGGER_NAME")
    interval_minutes: int = Field(default=15, validation_alias="WATCHDOG_INTERVAL_MINUTES")
    legacy_trigger_name: str | None = Field(
        default=None, validation_alias="WATCHDOG_LEGACY_TRIGGER_NAME"
    )
    reporting_field: str | None = Field(default=None, validation_alias="WATCHDOG_REPORTING_FIELD")
    event_source: str = Field(default="ServiceWatchdog", validation_alias="WATCHDOG_EVENT_SOURCE")
    event_log_path: Path = Field(
        default_factory=_default_event_log_path, validation_alias="WATCHDOG_EVENT_LOG_PATH"
    )
    services_file: Path | None = Field(default=None, validation_alias="WATCHDOG_SERVICES_FILE")
    missing_reference_policy: Literal["halt", "report_only"] = Field(
        default="halt", validation_alias="WATCHDOG_MISSING_REFERENCE_POLICY"
    )
    sink_command: str = Field(default="ninjarmm-cli", validation_alias="WATCHDOG_SINK_COMMAND")
    backend: Literal["auto", "windows", "systemd"] = Field(
        default="auto", validation_alias="WATCHDOG_BACKEND"
    )
    log_level: str = Field(default="INFO", validation_alias="WATCHDOG_LOG_LEVEL")
    log_file: bool = Field(default=True, validation_alias="WATCHDOG_LOG_FILE")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "WATCHDOG_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("interval_minutes")
    @classmethod
    def _validate_interval(cls, value: int) -> int:
        if value < 1:
            raise ValueError("WATCHDOG_INTERVAL_MINUTES must be >= 1")
        return value

    @field_validator("legacy_trigger_name", "reporting_field", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> WatchdogSettings:
    """Return cached settings instance."""

    settings = WatchdogSettings()
    settings.root_directory = settings.root_directory.expanduser().resolve()
    settings.event_log_path = settings.event_log_path.expanduser().resolve()
    if settings.services_file is not None:
        settings.services_file = settings.services_file.expanduser().resolve()
    return settings


__all__ = ["ConfigurationError", "WatchdogSettings", "get_settings"]
