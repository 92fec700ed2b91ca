"""Scrollable transcript view kept in step with the controller's messages."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from textual.containers import VerticalScroll

from .message import MessageBubble

STREAMING_ID = "__streaming__"


class ConversationView(VerticalScroll):
    """A scrollable container that hosts message bubbles.

    ``sync`` diffs the rendered bubbles against the transcript by message id,
    so rerendering after every controller change only mounts what is new.
    A single trailing bubble shows the in-flight turn's partial text.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._rendered: list[MessageBubble] = []
        self._streaming: MessageBubble | None = None

    def _add_bubble(self, content: str, role: str, message_id: str) -> MessageBubble:
        bubble = MessageBubble(content=content, role=role, message_id=message_id)
        self.mount(bubble)
        return bubble

    def sync(self, messages: Sequence[Any], streaming_text: str = "") -> None:
        """Render ``messages`` (objects with id/role/content) plus partial text."""
        ids = [m.id for m in messages]
        rendered_ids = [b.message_id for b in self._rendered]
        if ids[: len(rendered_ids)] != rendered_ids:
            # Transcript was replaced (clear, new session, rollback).
            for bubble in self._rendered:
                bubble.remove()
            self._rendered = []
        grew = False
        for message in messages[len(self._rendered):]:
            self._rendered.append(self._add_bubble(message.content, message.role, message.id))
            grew = True

        if streaming_text:
            if self._streaming is None:
                self._streaming = self._add_bubble(streaming_text, "assistant", STREAMING_ID)
            else:
                self._streaming.set_content(streaming_text)
                if grew:
                    self.move_child(self._streaming, after=self._rendered[-1])
            grew = True
        elif self._streaming is not None:
            self._streaming.remove()
            self._streaming = None

        if grew:
            self.scroll_end(animate=False)
