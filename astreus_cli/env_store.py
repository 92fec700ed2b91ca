"""Credential and settings persistence to a local ``.env`` file."""

from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass
import logging
import os
from pathlib import Path

from dotenv import dotenv_values, load_dotenv, set_key

from .providers import get_env_key_name

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettingItem:
    """One editable environment setting shown in the settings modal."""

    key: str
    label: str
    secret: bool = False


@dataclass(frozen=True)
class SettingCategory:
    name: str
    items: tuple[SettingItem, ...]


SETTING_CATEGORIES: tuple[SettingCategory, ...] = (
    SettingCategory(
        "OpenAI",
        (
            SettingItem("OPENAI_API_KEY", "API Key", secret=True),
            SettingItem("OPENAI_BASE_URL", "Base URL"),
        ),
    ),
    SettingCategory(
        "Anthropic",
        (
            SettingItem("ANTHROPIC_API_KEY", "API Key", secret=True),
            SettingItem("ANTHROPIC_BASE_URL", "Base URL"),
        ),
    ),
    SettingCategory(
        "Gemini",
        (
            SettingItem("GEMINI_API_KEY", "API Key", secret=True),
            SettingItem("GEMINI_BASE_URL", "Base URL"),
        ),
    ),
    SettingCategory(
        "Ollama",
        (
            SettingItem("OLLAMA_HOST", "Host"),
            SettingItem("OLLAMA_BASE_URL", "Base URL"),
        ),
    ),
    SettingCategory(
        "Defaults",
        (
            SettingItem("ASTREUS_PROVIDER", "Provider"),
            SettingItem("ASTREUS_MODEL", "Model"),
        ),
    ),
)


def mask_secret(value: str) -> str:
    """Render a secret as its first and last four characters."""
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


class EnvStore:
    """Read and rewrite single keys of a dotenv file.

    Writes also update ``environ`` so a freshly saved credential is visible
    to the provider clients without restarting.
    """

    def __init__(
        self,
        path: str | Path = ".env",
        environ: MutableMapping[str, str] | None = None,
    ) -> None:
        self.path = Path(path).expanduser()
        self._environ = os.environ if environ is None else environ

    @property
    def environ(self) -> MutableMapping[str, str]:
        return self._environ

    def load(self) -> None:
        """Load the file into the environment without clobbering set values."""
        if not self.path.exists():
            return
        if self._environ is os.environ:
            load_dotenv(self.path, override=False)
            return
        for key, value in dotenv_values(self.path).items():
            if value is not None:
                self._environ.setdefault(key, value)

    def get(self, key: str) -> str:
        return self._environ.get(key, "")

    def set(self, key: str, value: str) -> None:
        """Set ``key`` in the environment and replace or append it on disk."""
        self._environ[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        set_key(self.path, key, value, quote_mode="never")
        if os.name == "posix":
            try:
                self.path.chmod(0o600)
            except OSError as exc:
                LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", self.path, exc)
        LOGGER.info("env.key.saved", extra={"event": "env.key.saved", "key": key})

    def save_api_key(self, provider: str, api_key: str) -> str:
        """Persist ``provider``'s credential and return the variable name used."""
        key_name = get_env_key_name(provider)
        self.set(key_name, api_key)
        return key_name

    def has_api_key(self, provider: str) -> bool:
        return bool(self.get(get_env_key_name(provider)))
