"""Slash-command catalog, suggestion filtering and submit-time resolution."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Command:
    """Static catalog entry used only for matching."""

    name: str
    description: str
    aliases: tuple[str, ...] = ()

    def matches(self, token: str) -> bool:
        return token == self.name or token in self.aliases

    def prefixed_by(self, token: str) -> bool:
        return any(label.startswith(token) for label in (self.name, *self.aliases))


COMMANDS: tuple[Command, ...] = (
    Command("model", "Change model"),
    Command("provider", "Change provider"),
    Command("sessions", "Manage sessions", ("session",)),
    Command("new", "New session"),
    Command("attach", "Attach file or folder", ("add", "a")),
    Command("attachments", "Show attachments"),
    Command("clear-attachments", "Clear attachments", ("ca",)),
    Command("pwd", "Show working directory"),
    Command("cd", "Set or reset working directory"),
    Command("tools", "List tools"),
    Command("graph", "Graph status", ("status",)),
    Command("settings", "Settings"),
    Command("clear", "Clear chat"),
    Command("help", "Show help"),
    Command("exit", "Exit", ("quit", "q")),
)


@dataclass(frozen=True)
class ParsedCommand:
    """Result of splitting ``/name args`` into its parts."""

    name: str
    args: str

    @property
    def has_args(self) -> bool:
        return bool(self.args)


def _normalize_token(partial: str) -> str:
    return partial.strip().lstrip("/").lower()


def filter_commands(
    partial: str, catalog: tuple[Command, ...] = COMMANDS
) -> list[Command]:
    """Return catalog entries whose name or an alias contains ``partial``.

    Entries with a name or alias starting with the token come first; the
    catalog's declaration order is kept within each group.
    """
    token = _normalize_token(partial)
    if not token:
        return list(catalog)
    hits = [
        command
        for command in catalog
        if any(token in label for label in (command.name, *command.aliases))
    ]
    prefixed = [command for command in hits if command.prefixed_by(token)]
    return prefixed + [command for command in hits if command not in prefixed]


def find_command(
    token: str, catalog: tuple[Command, ...] = COMMANDS
) -> Command | None:
    """Return the entry whose name or alias equals ``token`` exactly."""
    normalized = _normalize_token(token)
    for command in catalog:
        if command.matches(normalized):
            return command
    return None


def parse_command(text: str) -> ParsedCommand | None:
    """Split ``/name args`` into name and arguments; None for non-commands."""
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    head, _, rest = stripped[1:].partition(" ")
    return ParsedCommand(name=head.lower(), args=rest.strip())


def suggestion_token(text: str) -> str | None:
    """Return the partial command token while suggestions should be shown."""
    if not text.startswith("/") or " " in text:
        return None
    return text[1:]


class CommandRouter:
    """Track the suggestion list and its highlighted entry for the input box."""

    def __init__(self, catalog: tuple[Command, ...] = COMMANDS) -> None:
        self.catalog = catalog
        self.highlighted = 0
        self._token: str | None = None

    @property
    def active(self) -> bool:
        return self._token is not None and bool(self.suggestions)

    @property
    def suggestions(self) -> list[Command]:
        if self._token is None:
            return []
        return filter_commands(self._token, self.catalog)

    def update(self, text: str) -> None:
        """Recompute suggestions for the current input buffer."""
        token = suggestion_token(text)
        if token != self._token:
            self.highlighted = 0
        self._token = token

    def move(self, delta: int) -> None:
        """Move the highlight by ``delta``, wrapping at either end."""
        count = len(self.suggestions)
        if count:
            self.highlighted = (self.highlighted + delta) % count

    def highlighted_command(self) -> Command | None:
        suggestions = self.suggestions
        if not suggestions:
            return None
        return suggestions[min(self.highlighted, len(suggestions) - 1)]

    def accept(self) -> str | None:
        """Return ``/<name>`` for the highlighted suggestion, if any."""
        command = self.highlighted_command()
        if command is None:
            return None
        return f"/{command.name}"

    def resolve(self, text: str) -> str:
        """Apply highlighted-suggestion substitution to a submitted line.

        Exact names and aliases are returned as typed; a bare partial token
        is replaced by the highlighted candidate's canonical ``/name``.
        """
        trimmed = text.strip()
        if not trimmed.startswith("/") or " " in trimmed:
            return trimmed
        if find_command(trimmed, self.catalog) is not None:
            return trimmed
        candidates = filter_commands(trimmed, self.catalog)
        if not candidates:
            return trimmed
        index = min(self.highlighted, len(candidates) - 1)
        return f"/{candidates[index].name}"

    def reset(self) -> None:
        self._token = None
        self.highlighted = 0


def looks_like_command(text: str) -> bool:
    """True for ``/token ...`` input that names or partially names a command.

    ``/`` followed by a single path segment that matches nothing in the
    catalog (``/tmp``) is not a command, so it can still be read as a path.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return False
    head = stripped[1:].split(" ", 1)[0]
    if "/" in head:
        return False
    return not head or bool(filter_commands(head))
