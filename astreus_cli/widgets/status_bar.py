"""Status bar widget for provider, model and session telemetry."""

from __future__ import annotations

from pathlib import Path

from textual import events
from textual.app import ComposeResult
from textual.message import Message
from textual.widgets import Label, Static


def shorten_path(path: Path, home: Path | None = None) -> str:
    """Render ``path`` with the home directory collapsed to ``~``."""
    home = home or Path.home()
    try:
        relative = path.relative_to(home)
    except ValueError:
        return str(path)
    return "~" if str(relative) == "." else f"~/{relative}"


class StatusBar(Static):
    """Render compact runtime status information.

    Segments (left to right):
        ollama · llama3  |  Session: Chat 2024-05-01 10:00:00  |  Turns: 3  |  ~/src/app
    """

    DEFAULT_CSS = """
    StatusBar {
        layout: horizontal;
        height: auto;
    }
    StatusBar Label {
        margin-right: 1;
    }
    StatusBar #status_directory {
        color: $text-muted;
    }
    """

    class ModelPickerRequested(Message):
        """Posted when the model segment is clicked."""

    def compose(self) -> ComposeResult:
        yield Label("—", id="status_model")
        yield Label("|")
        yield Label("Session: —", id="status_session")
        yield Label("|")
        yield Label("Turns: 0", id="status_turns")
        yield Label("|")
        yield Label("", id="status_directory")

    def on_mount(self) -> None:
        self._lbl_model = self.query_one("#status_model", Label)
        self._lbl_session = self.query_one("#status_session", Label)
        self._lbl_turns = self.query_one("#status_turns", Label)
        self._lbl_directory = self.query_one("#status_directory", Label)

    def set_status(
        self,
        *,
        provider: str,
        model: str,
        session_name: str | None,
        turn_count: int,
        working_directory: Path,
    ) -> None:
        self._lbl_model.update(f"{provider} · {model or '—'}")
        self._lbl_session.update(f"Session: {session_name or '—'}")
        self._lbl_turns.update(f"Turns: {turn_count}")
        self._lbl_directory.update(shorten_path(working_directory))

    def on_click(self, event: events.Click) -> None:
        event.stop()
        self.post_message(self.ModelPickerRequested())
