"""Static provider catalog: credential keys, default and fallback models."""

from __future__ import annotations

PROVIDERS: tuple[str, ...] = ("openai", "claude", "gemini", "ollama")

ENV_KEY_MAP: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "ollama": "OLLAMA_HOST",
}

BASE_URL_ENV_MAP: dict[str, str] = {
    "openai": "OPENAI_BASE_URL",
    "claude": "ANTHROPIC_BASE_URL",
    "gemini": "GEMINI_BASE_URL",
    "ollama": "OLLAMA_BASE_URL",
}

DEFAULT_BASE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "claude": "https://api.anthropic.com/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai",
    "ollama": "http://localhost:11434",
}

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o",
    "claude": "claude-sonnet-4-20250514",
    "gemini": "gemini-pro",
    "ollama": "llama3",
}

FALLBACK_MODELS: dict[str, tuple[str, ...]] = {
    "openai": ("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-4", "gpt-3.5-turbo"),
    "claude": ("claude-sonnet-4-20250514", "claude-3-5-sonnet-20241022"),
    "gemini": ("gemini-pro", "gemini-pro-vision"),
    "ollama": ("llama3", "llama2", "mistral", "codellama"),
}


def get_default_model(provider: str) -> str:
    """Return the default model for ``provider`` (OpenAI's when unknown)."""
    return DEFAULT_MODELS.get(provider, DEFAULT_MODELS["openai"])


def get_env_key_name(provider: str) -> str:
    """Return the environment variable holding ``provider``'s credential."""
    return ENV_KEY_MAP.get(provider, "OPENAI_API_KEY")


def fallback_models(provider: str) -> list[str]:
    return list(FALLBACK_MODELS.get(provider, FALLBACK_MODELS["openai"]))
