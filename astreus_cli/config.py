"""Configuration loading and validation for the Astreus chat client."""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
import logging
import os
from pathlib import Path
import tomllib
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigValidationError
from .providers import PROVIDERS, get_default_model

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "astreus"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

PROVIDER_ENV_VAR = "ASTREUS_PROVIDER"
MODEL_ENV_VAR = "ASTREUS_MODEL"


def _require_text(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


class AppConfig(BaseModel):
    """Application metadata and diagnostics."""

    title: str = "Astreus"
    debug: bool = False

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, value: Any) -> str:
        return _require_text(value)


class AgentSettings(BaseModel):
    """Provider, model and agent behaviour."""

    provider: str = "openai"
    model: str = ""
    system_prompt: str = ""
    timeout_seconds: int = Field(default=300, ge=1, le=3600)
    max_tool_iterations: int = Field(default=10, ge=1, le=100)
    tools_enabled: bool = True
    memory_enabled: bool = True
    retries: int = Field(default=1, ge=0, le=10)

    @field_validator("provider", mode="before")
    @classmethod
    def _validate_provider(cls, value: Any) -> str:
        normalized = _require_text(value).lower()
        if normalized not in PROVIDERS:
            raise ValueError(
                f"Unsupported provider {normalized!r}; expected one of {PROVIDERS}."
            )
        return normalized

    @field_validator("model", "system_prompt", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()

    @model_validator(mode="after")
    def _default_model(self) -> AgentSettings:
        if not self.model:
            self.model = get_default_model(self.provider)
        return self


class SessionsConfig(BaseModel):
    """Where session records, the current pointer and graphs live."""

    directory: str = "~/.astreus/sessions"
    current_session_path: str = "~/.astreus/current-session"
    graphs_directory: str = "~/.astreus/graphs"

    @field_validator("*", mode="before")
    @classmethod
    def _validate_path(cls, value: Any) -> str:
        return _require_text(value)


class EnvConfig(BaseModel):
    """Credential file location."""

    path: str = ".env"

    @field_validator("path", mode="before")
    @classmethod
    def _validate_path(cls, value: Any) -> str:
        return _require_text(value)


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/astreus/app.log"

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
        return _require_text(value)


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    agent: AgentSettings = AgentSettings()
    sessions: SessionsConfig = SessionsConfig()
    env: EnvConfig = EnvConfig()
    logging: LoggingConfig = LoggingConfig()


def _build_default_config() -> dict[str, dict[str, Any]]:
    data = Config().model_dump()
    # An empty model lets a provider-only override pick that provider's default.
    data["agent"]["model"] = ""
    return data


DEFAULT_CONFIG: dict[str, dict[str, Any]] = _build_default_config()


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


def _apply_env_overrides(
    data: dict[str, Any], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Overlay ``ASTREUS_PROVIDER`` / ``ASTREUS_MODEL`` onto the agent section."""
    agent = dict(data.get("agent") or {})
    provider = environ.get(PROVIDER_ENV_VAR, "").strip()
    model = environ.get(MODEL_ENV_VAR, "").strip()
    if provider:
        if provider != agent.get("provider"):
            agent["model"] = ""
        agent["provider"] = provider
    if model:
        agent["model"] = model
    return {**data, "agent": agent}


def _safe_default_config() -> dict[str, dict[str, Any]]:
    return Config.model_validate(deepcopy(DEFAULT_CONFIG)).model_dump()


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fall back to safe defaults when possible."""
    try:
        return Config.model_validate(raw).model_dump()
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults and env, then validate.

    ``config_path`` and ``environ`` are intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = _deep_merge(DEFAULT_CONFIG, raw_data)
    merged = _apply_env_overrides(merged, os.environ if environ is None else environ)
    return _validate_config(merged)
