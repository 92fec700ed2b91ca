"""Compact log of the tools executed during the current turn."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from rich.text import Text
from textual.widgets import Static

RESULT_PREVIEW_CHARS = 60


def tool_display_name(tool_name: str) -> str:
    """``list_directory`` -> ``List Directory``."""
    return " ".join(part[:1].upper() + part[1:] for part in tool_name.split("_") if part)


def result_preview(result: str | None, limit: int = RESULT_PREVIEW_CHARS) -> str:
    """First line of ``result``, cut to ``limit`` characters."""
    if not result:
        return ""
    line = result.strip().splitlines()[0] if result.strip() else ""
    return line[:limit] + "..." if len(line) > limit else line


class ToolCallsView(Static):
    """Render ``✓ Tool Name  preview`` lines plus the running tool, if any."""

    DEFAULT_CSS = """
    ToolCallsView {
        height: auto;
        padding: 0 1;
        color: $text-muted;
        border-left: solid $warning;
    }
    ToolCallsView.hidden {
        display: none;
    }
    """

    def show_tools(self, executed: Sequence[Any], active_tool: str | None = None) -> None:
        """``executed`` items carry a raw tool ``name`` and its ``result``."""
        if not executed and not active_tool:
            self.add_class("hidden")
            self.update("")
            return
        text = Text()
        for index, tool in enumerate(executed):
            if index:
                text.append("\n")
            text.append("✓ ", style="green")
            text.append(tool_display_name(tool.name), style="bold")
            preview = result_preview(tool.result)
            if preview:
                text.append(f"  {preview}", style="dim")
        if active_tool:
            if executed:
                text.append("\n")
            text.append("… ", style="yellow")
            text.append(tool_display_name(active_tool), style="bold")
        self.update(text)
        self.remove_class("hidden")
