"""Modal screens for pickers, credentials, sessions and settings."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import Input, OptionList, Static

from .env_store import SETTING_CATEGORIES, SettingItem, mask_secret
from .session_store import SessionSummary

DIALOG_CSS = """
    align: center middle;
}

.dialog {
    width: 70;
    max-height: 26;
    height: auto;
    padding: 1 2;
    border: round $panel;
    background: $surface;
}

.dialog-title {
    padding-bottom: 1;
    text-style: bold;
}

.dialog-help {
    padding-top: 1;
    color: $text-muted;
}

.dialog Input {
    width: 100%;
}
"""


def _dialog_css(screen_name: str) -> str:
    return f"{screen_name} {{{DIALOG_CSS}"


def _selected_index(event: OptionList.OptionSelected) -> int:
    index = getattr(event, "option_index", None)
    if index is None:
        index = getattr(event, "index", -1)
    try:
        return int(index if index is not None else -1)
    except (TypeError, ValueError):
        return -1


class PickerScreen(ModalScreen[str | None]):
    """Pick one string from a list, starting at ``selected_index``."""

    CSS = _dialog_css("PickerScreen")
    BINDINGS = [Binding("escape", "cancel", "Close", show=False)]

    def __init__(self, title: str, options: Sequence[str], selected_index: int = 0) -> None:
        super().__init__()
        self._title = title
        self._options = list(options)
        self._selected_index = selected_index

    def compose(self) -> ComposeResult:
        with Container(classes="dialog"):
            yield Static(self._title, classes="dialog-title")
            yield OptionList(*self._options, id="picker-options")
            yield Static("Enter/click to select | Esc to cancel", classes="dialog-help")

    def on_mount(self) -> None:
        options = self.query_one("#picker-options", OptionList)
        if self._options:
            options.highlighted = max(0, min(self._selected_index, len(self._options) - 1))
        options.focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        selected = _selected_index(event)
        if 0 <= selected < len(self._options):
            event.stop()
            self.dismiss(self._options[selected])

    def action_cancel(self) -> None:
        self.dismiss(None)


class TextPromptScreen(ModalScreen[str | None]):
    """Prompt for a single line; Escape dismisses with None."""

    CSS = _dialog_css("TextPromptScreen")
    BINDINGS = [Binding("escape", "cancel", "Close", show=False)]

    def __init__(
        self,
        title: str,
        placeholder: str = "",
        *,
        value: str = "",
        password: bool = False,
        help_text: str = "Enter to confirm | Esc to cancel",
    ) -> None:
        super().__init__()
        self._title = title
        self._placeholder = placeholder
        self._value = value
        self._password = password
        self._help_text = help_text

    def compose(self) -> ComposeResult:
        with Container(classes="dialog"):
            yield Static(self._title, classes="dialog-title")
            yield Input(
                value=self._value,
                placeholder=self._placeholder,
                password=self._password,
                id="text-prompt-input",
            )
            yield Static(self._help_text, classes="dialog-help")

    def on_mount(self) -> None:
        self.query_one("#text-prompt-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "text-prompt-input":
            return
        event.stop()
        self.dismiss(event.value.strip())

    def action_cancel(self) -> None:
        self.dismiss(None)


class ApiKeyScreen(TextPromptScreen):
    """Masked credential prompt. Empty input or Escape abandons the turn."""

    CSS = _dialog_css("ApiKeyScreen")

    def __init__(self, provider: str, env_key: str) -> None:
        super().__init__(
            f"API key required for {provider}",
            placeholder=env_key,
            password=True,
            help_text=f"Saved to .env as {env_key} | Enter to save | Esc to cancel",
        )


SessionActionKind = Literal["select", "new", "rename", "delete"]


@dataclass(frozen=True)
class SessionAction:
    kind: SessionActionKind
    session_id: str = ""
    name: str = ""


class SessionsScreen(ModalScreen[SessionAction | None]):
    """Session manager: select, create, rename or delete stored sessions.

    Delete asks for ``y``/``n`` confirmation before dismissing.
    """

    CSS = _dialog_css("SessionsScreen")
    BINDINGS = [
        Binding("escape", "cancel", "Close", show=False),
        Binding("n", "new", "New", show=False),
        Binding("r", "rename", "Rename", show=False),
        Binding("d", "delete", "Delete", show=False),
        Binding("y", "confirm", "Confirm", show=False),
    ]

    HELP = "Enter select | n new | r rename | d delete | Esc close"

    def __init__(self, sessions: Sequence[SessionSummary], selected_index: int = 0) -> None:
        super().__init__()
        self._sessions = list(sessions)
        self._selected_index = selected_index
        self._pending_delete: SessionSummary | None = None

    @staticmethod
    def label(summary: SessionSummary) -> str:
        return f"{summary.name}  ({summary.message_count} messages)"

    def compose(self) -> ComposeResult:
        with Container(classes="dialog"):
            yield Static("Sessions", classes="dialog-title")
            yield OptionList(*(self.label(s) for s in self._sessions), id="session-options")
            yield Static(self.HELP, id="session-help", classes="dialog-help")

    def on_mount(self) -> None:
        options = self.query_one("#session-options", OptionList)
        if self._sessions:
            options.highlighted = max(0, min(self._selected_index, len(self._sessions) - 1))
        options.focus()

    def _highlighted(self) -> SessionSummary | None:
        index = self.query_one("#session-options", OptionList).highlighted
        if index is None or not 0 <= index < len(self._sessions):
            return None
        return self._sessions[index]

    def _set_help(self, text: str) -> None:
        self.query_one("#session-help", Static).update(text)

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        selected = _selected_index(event)
        if 0 <= selected < len(self._sessions) and self._pending_delete is None:
            event.stop()
            self.dismiss(SessionAction("select", self._sessions[selected].id))

    def _cancel_delete(self) -> bool:
        if self._pending_delete is None:
            return False
        self._pending_delete = None
        self._set_help(self.HELP)
        return True

    def action_new(self) -> None:
        # "n" doubles as the "no" answer while a delete awaits confirmation.
        if self._cancel_delete():
            return
        self.dismiss(SessionAction("new"))

    def action_rename(self) -> None:
        summary = self._highlighted()
        if summary is None:
            return

        def renamed(name: str | None) -> None:
            if name:
                self.dismiss(SessionAction("rename", summary.id, name))

        self.app.push_screen(TextPromptScreen("Rename session", value=summary.name), renamed)

    def action_delete(self) -> None:
        summary = self._highlighted()
        if summary is None:
            return
        self._pending_delete = summary
        self._set_help(f"Delete '{summary.name}'? (y/n)")

    def action_confirm(self) -> None:
        if self._pending_delete is not None:
            self.dismiss(SessionAction("delete", self._pending_delete.id))

    def action_cancel(self) -> None:
        if self._cancel_delete():
            return
        self.dismiss(None)


def settings_rows(values: dict[str, str]) -> list[tuple[SettingItem, str]]:
    """Flatten the setting catalog into ``(item, label)`` rows."""
    rows: list[tuple[SettingItem, str]] = []
    for category in SETTING_CATEGORIES:
        for item in category.items:
            raw = values.get(item.key, "")
            shown = mask_secret(raw) if item.secret else (raw or "(not set)")
            rows.append((item, f"{category.name} {item.label}: {shown}"))
    return rows


class SettingsScreen(ModalScreen[tuple[str, str] | None]):
    """Edit one environment setting; dismisses with ``(key, value)``."""

    CSS = _dialog_css("SettingsScreen")
    BINDINGS = [Binding("escape", "cancel", "Close", show=False)]

    def __init__(self, values: dict[str, str]) -> None:
        super().__init__()
        self._values = dict(values)
        self._rows = settings_rows(self._values)

    def compose(self) -> ComposeResult:
        with Container(classes="dialog"):
            yield Static("Settings", classes="dialog-title")
            yield OptionList(*(label for _, label in self._rows), id="settings-options")
            yield Static("Enter to edit | Esc to close", classes="dialog-help")

    def on_mount(self) -> None:
        self.query_one("#settings-options", OptionList).focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        selected = _selected_index(event)
        if not 0 <= selected < len(self._rows):
            return
        event.stop()
        item = self._rows[selected][0]

        def edited(value: str | None) -> None:
            if value is not None:
                self.dismiss((item.key, value))

        self.app.push_screen(
            TextPromptScreen(
                item.key,
                value="" if item.secret else self._values.get(item.key, ""),
                password=item.secret,
            ),
            edited,
        )

    def action_cancel(self) -> None:
        self.dismiss(None)
