"""Top-level package for astreus-cli."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import AstreusApp
    from .attachments import Attachment, AttachmentResolver
    from .commands import CommandRouter
    from .config import ensure_config_dir, load_config
    from .controller import TurnController
    from .exceptions import (
        AgentError,
        AstreusError,
        ConfigValidationError,
        CredentialMissingError,
        SessionError,
    )
    from .session_store import Message, Session, SessionStore
    from .state import StateManager, TurnPhase

__all__ = [
    "AgentError",
    "AstreusApp",
    "AstreusError",
    "Attachment",
    "AttachmentResolver",
    "CommandRouter",
    "ConfigValidationError",
    "CredentialMissingError",
    "Message",
    "Session",
    "SessionError",
    "SessionStore",
    "StateManager",
    "TurnController",
    "TurnPhase",
    "ensure_config_dir",
    "load_config",
]

_LAZY_EXPORTS: dict[str, str] = {
    "AstreusApp": ".app",
    "Attachment": ".attachments",
    "AttachmentResolver": ".attachments",
    "CommandRouter": ".commands",
    "ensure_config_dir": ".config",
    "load_config": ".config",
    "TurnController": ".controller",
    "AgentError": ".exceptions",
    "AstreusError": ".exceptions",
    "ConfigValidationError": ".exceptions",
    "CredentialMissingError": ".exceptions",
    "SessionError": ".exceptions",
    "Message": ".session_store",
    "Session": ".session_store",
    "SessionStore": ".session_store",
    "StateManager": ".state",
    "TurnPhase": ".state",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so the UI stack loads only when it is used."""
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(module_name, __name__), name)
