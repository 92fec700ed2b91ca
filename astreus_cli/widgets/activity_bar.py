"""Activity bar showing turn progress and keyboard shortcut hints."""

from __future__ import annotations

from typing import Any

from textual.app import ComposeResult
from textual.timer import Timer
from textual.widgets import Label, Static

_ANIMATION_FRAMES: tuple[str, ...] = (
    "·······",
    "●······",
    "·●·····",
    "··●····",
    "···●···",
    "····●··",
    "·····●·",
    "······●",
)

SHORTCUT_HINTS = "enter send · tab complete · ↑↓ history · esc interrupt · ctrl+c quit"
IDLE_HINT = "? for shortcuts"


def format_activity(
    *,
    elapsed_seconds: int,
    token_estimate: int,
    active_tool: str | None,
    thinking: bool,
) -> str:
    """Return the right-hand summary for an in-flight turn."""
    if active_tool:
        label = f"Running {active_tool}"
    elif thinking:
        label = "Thinking"
    else:
        label = "Streaming"
    return f"{label}  {elapsed_seconds}s  ~{token_estimate} tokens  (esc to interrupt)"


class ActivityBar(Static):
    """Render the turn animation on the left and hints or progress on the right."""

    DEFAULT_CSS = """
    ActivityBar {
        layout: horizontal;
        height: 1;
        padding: 0 1;
    }
    ActivityBar #activity_left {
        width: auto;
        margin-right: 2;
    }
    ActivityBar #activity_right {
        width: 1fr;
        color: $text-muted;
    }
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._animation_timer: Timer | None = None
        self._frame_index = 0
        self._left_label: Label | None = None
        self._right_label: Label | None = None

    def compose(self) -> ComposeResult:
        yield Label("", id="activity_left")
        yield Label(IDLE_HINT, id="activity_right")

    def on_mount(self) -> None:
        self._left_label = self.query_one("#activity_left", Label)
        self._right_label = self.query_one("#activity_right", Label)

    def show_idle(self, show_shortcuts: bool) -> None:
        self.stop_activity()
        if self._right_label is not None:
            self._right_label.update(SHORTCUT_HINTS if show_shortcuts else IDLE_HINT)

    def show_progress(self, text: str) -> None:
        if self._animation_timer is None:
            self._frame_index = 0
            self._animation_timer = self.set_interval(0.12, self._advance_frame)
            self._update_left()
        if self._right_label is not None:
            self._right_label.update(text)

    def stop_activity(self) -> None:
        if self._animation_timer is not None:
            self._animation_timer.stop()
            self._animation_timer = None
        if self._left_label is not None:
            self._left_label.update("")

    def _advance_frame(self) -> None:
        self._frame_index = (self._frame_index + 1) % len(_ANIMATION_FRAMES)
        self._update_left()

    def _update_left(self) -> None:
        if self._left_label is not None:
            self._left_label.update(_ANIMATION_FRAMES[self._frame_index])
