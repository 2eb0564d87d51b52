"""Configuration loading and validation for the conversation engine."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
from typing import Any

from platformdirs import user_config_path
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from .exceptions import ConfigValidationError

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = user_config_path("codechat")
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

DEFAULT_SUMMARY_PROMPT = (
    "Analyze if this message indicates a new conversation topic. If it does, "
    "extract a 2-3 word title that captures the new topic. Format your response "
    "as a JSON object with one fields: 'title' (string). Only include these "
    "fields, no other text."
)


class SessionConfig(BaseModel):
    """Defaults applied to a session before the handshake reports its own."""

    default_approval_mode: str = "default"
    plan_mode: bool = False

    @field_validator("default_approval_mode", mode="before")
    @classmethod
    def _validate_approval_mode(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("default_approval_mode must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("default_approval_mode must not be empty.")
        return normalized


class TelemetryConfig(BaseModel):
    """Fire-and-forget telemetry reporting for user input."""

    enabled: bool = True
    event_name: str = "send"


class SummaryConfig(BaseModel):
    """Background derivation of a short session title."""

    enabled: bool = True
    system_prompt: str = DEFAULT_SUMMARY_PROMPT

    @field_validator("system_prompt", mode="before")
    @classmethod
    def _validate_prompt(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("system_prompt must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("system_prompt must not be empty.")
        return normalized


class QueueConfig(BaseModel):
    """Handling of input submitted while a request cycle is executing."""

    enabled: bool = True
    separator: str = "\n"


class AttachmentsConfig(BaseModel):
    """Size limits for file and image context attachments."""

    max_image_bytes: int = Field(default=10 * 1024 * 1024, ge=1, le=100 * 1024 * 1024)
    max_file_bytes: int = Field(default=2 * 1024 * 1024, ge=1, le=100 * 1024 * 1024)


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/codechat/engine.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("log_file_path must not be empty.")
        return normalized


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    session: SessionConfig = SessionConfig()
    telemetry: TelemetryConfig = TelemetryConfig()
    summary: SummaryConfig = SummaryConfig()
    queue: QueueConfig = QueueConfig()
    attachments: AttachmentsConfig = AttachmentsConfig()
    logging: LoggingConfig = LoggingConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def default_config() -> dict[str, dict[str, Any]]:
    """Return a deep copy of validated default config data."""
    return deepcopy(DEFAULT_CONFIG)


def validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fall back to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump()
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (
            Exception
        ) as exc:  # noqa: BLE001 - we must not crash on invalid user config.
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = (
        _deep_merge(DEFAULT_CONFIG, raw_data)
        if isinstance(raw_data, dict)
        else default_config()
    )
    return validate_config(merged)
