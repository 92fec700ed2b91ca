"""Up/down recall of previously submitted prompts."""

from __future__ import annotations


class InputHistory:
    """Cursor over past entries, remembering the draft being typed."""

    def __init__(self) -> None:
        self._entries: list[str] = []
        self._index = -1
        self._draft = ""

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    @property
    def browsing(self) -> bool:
        return self._index != -1

    def replace(self, entries: list[str]) -> None:
        self._entries = list(entries)
        self.reset()

    def add(self, entry: str) -> None:
        if entry:
            self._entries.append(entry)
        self.reset()

    def reset(self) -> None:
        self._index = -1

    def up(self, current: str) -> str | None:
        """Return the previous entry, or None when there is nothing older."""
        if not self._entries:
            return None
        if self._index == -1:
            self._draft = current
            self._index = len(self._entries) - 1
        elif self._index > 0:
            self._index -= 1
        else:
            return None
        return self._entries[self._index]

    def down(self) -> str | None:
        """Return the next entry, the saved draft past the end, or None."""
        if self._index == -1:
            return None
        if self._index < len(self._entries) - 1:
            self._index += 1
            return self._entries[self._index]
        self._index = -1
        return self._draft
