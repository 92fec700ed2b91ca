"""Message bubble widget for transcript rendering."""

from __future__ import annotations

from typing import Any

from rich.markdown import Markdown
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import Static

ROLE_LABELS = {"user": "You", "assistant": "Astreus", "system": "System"}


class MessageBubble(Vertical):
    """Render a single transcript entry with a role header."""

    DEFAULT_CSS = """
    MessageBubble {
        height: auto;
    }
    MessageBubble > #header-block {
        padding: 0;
        text-style: bold;
    }
    MessageBubble > #content-block {
        height: auto;
    }
    MessageBubble.role-system > #content-block {
        color: $text-muted;
    }
    """

    def __init__(self, content: str, role: str, message_id: str = "", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.message_content = content
        self.role = role
        self.message_id = message_id
        self.add_class(f"role-{role}")
        self._content_widget: Static | None = None

    @property
    def role_prefix(self) -> str:
        return ROLE_LABELS.get(self.role, self.role.title())

    def compose(self) -> ComposeResult:
        self._content_widget = Static("", id="content-block")
        if self.role != "system":
            yield Static(self.role_prefix, id="header-block")
        yield self._content_widget

    def on_mount(self) -> None:
        self._refresh_content()

    def _refresh_content(self) -> None:
        if self._content_widget is None:
            return
        text = self.message_content.rstrip()
        if not text:
            self._content_widget.update("")
        elif self.role == "assistant":
            self._content_widget.update(Markdown(text))
        else:
            # Plain text keeps paths and brackets in user/system lines literal.
            self._content_widget.update(Text(text))

    def set_content(self, content: str) -> None:
        """Replace the content and rerender."""
        if content == self.message_content:
            return
        self.message_content = content
        self._refresh_content()
