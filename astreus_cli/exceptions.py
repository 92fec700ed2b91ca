"""Domain exception hierarchy for the Astreus chat client."""

from __future__ import annotations

API_KEY_SIGNATURES = ("api key", "api_key")


class AstreusError(RuntimeError):
    """Base class for all domain-level client errors."""


class ConfigValidationError(AstreusError):
    """Raised when configuration cannot be validated safely."""


class AgentError(AstreusError):
    """Raised when the agent runtime cannot complete a request."""


class AgentNotReadyError(AgentError):
    """Raised when a turn is dispatched before an agent handle exists."""


class ProviderError(AgentError):
    """Raised when a model provider rejects or fails a request."""


class ProviderConnectionError(ProviderError):
    """Raised when the provider endpoint cannot be reached."""


class CredentialMissingError(ProviderError):
    """Raised when a provider API key is absent or rejected.

    Messages always contain the phrase ``API key`` so that the turn
    controller recognises them as credential failures.
    """


class ToolError(AstreusError):
    """Raised when a tool plugin is misconfigured."""


class SessionError(AstreusError):
    """Raised when a session record cannot be written."""


def is_api_key_error(message: object) -> bool:
    """Return True when an error message looks like a missing credential.

    This is a bare substring match, so unrelated errors quoting the phrase
    also match.
    """
    text = str(message or "").lower()
    return any(signature in text for signature in API_KEY_SIGNATURES)
