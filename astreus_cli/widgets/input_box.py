"""Input row with the prompt field, command suggestions and pending attachments."""

from __future__ import annotations

from collections.abc import Sequence

from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import Input, OptionList, Static

from ..attachments import Attachment, attachment_preview
from ..commands import Command


class InputBox(Vertical):
    """Prompt field with the slash-command menu and attachment strip below it."""

    DEFAULT_CSS = """
    InputBox {
        height: auto;
    }
    InputBox #attachments_bar {
        color: $accent;
        height: auto;
    }
    InputBox #slash_menu {
        max-height: 10;
        margin-top: 1;
    }
    InputBox .hidden {
        display: none;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("", id="attachments_bar", classes="hidden")
        yield Input(
            placeholder="Type a message, / for commands, or paste a path to attach",
            id="message_input",
        )
        yield OptionList(id="slash_menu", classes="hidden")

    def show_suggestions(self, commands: Sequence[Command], highlighted: int) -> None:
        menu = self.query_one("#slash_menu", OptionList)
        if not commands:
            menu.add_class("hidden")
            menu.clear_options()
            return
        menu.clear_options()
        for command in commands:
            aliases = f" ({', '.join('/' + a for a in command.aliases)})" if command.aliases else ""
            menu.add_option(f"/{command.name}{aliases}  {command.description}")
        menu.highlighted = min(highlighted, len(commands) - 1)
        menu.remove_class("hidden")

    def show_attachments(self, attachments: Sequence[Attachment]) -> None:
        bar = self.query_one("#attachments_bar", Static)
        if not attachments:
            bar.add_class("hidden")
            bar.update("")
            return
        bar.update("  ".join(attachment_preview(a) for a in attachments))
        bar.remove_class("hidden")
