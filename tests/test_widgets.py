"""Unit tests for individual widget classes and their formatting helpers."""

from __future__ import annotations

from pathlib import Path
import unittest

try:
    from astreus_cli.screens import settings_rows
    from astreus_cli.widgets.activity_bar import IDLE_HINT, format_activity
    from astreus_cli.widgets.message import MessageBubble
    from astreus_cli.widgets.status_bar import shorten_path
    from astreus_cli.widgets.tool_calls import result_preview, tool_display_name
except ModuleNotFoundError:
    MessageBubble = None  # type: ignore[assignment,misc]
    format_activity = None  # type: ignore[assignment]
    IDLE_HINT = ""
    shorten_path = None  # type: ignore[assignment]
    result_preview = None  # type: ignore[assignment]
    tool_display_name = None  # type: ignore[assignment]
    settings_rows = None  # type: ignore[assignment]


@unittest.skipIf(MessageBubble is None, "textual is not installed")
class MessageBubbleTests(unittest.TestCase):
    """Validate MessageBubble content management."""

    def test_role_prefixes(self) -> None:
        assert MessageBubble is not None
        self.assertEqual(MessageBubble("", "user").role_prefix, "You")
        self.assertEqual(MessageBubble("", "assistant").role_prefix, "Astreus")
        self.assertEqual(MessageBubble("", "system").role_prefix, "System")

    def test_role_class_applied(self) -> None:
        assert MessageBubble is not None
        bubble = MessageBubble("hi", "assistant", message_id="m1")
        self.assertIn("role-assistant", bubble.classes)
        self.assertEqual(bubble.message_id, "m1")

    def test_set_content_before_mount(self) -> None:
        assert MessageBubble is not None
        bubble = MessageBubble("initial", "user")
        bubble.set_content("updated")
        self.assertEqual(bubble.message_content, "updated")


@unittest.skipIf(format_activity is None, "textual is not installed")
class ActivityFormattingTests(unittest.TestCase):
    def test_running_tool_takes_precedence(self) -> None:
        text = format_activity(
            elapsed_seconds=3, token_estimate=12, active_tool="Read File", thinking=True
        )
        self.assertTrue(text.startswith("Running Read File  3s  ~12 tokens"))

    def test_thinking_then_streaming(self) -> None:
        thinking = format_activity(
            elapsed_seconds=0, token_estimate=0, active_tool=None, thinking=True
        )
        streaming = format_activity(
            elapsed_seconds=1, token_estimate=5, active_tool=None, thinking=False
        )
        self.assertTrue(thinking.startswith("Thinking"))
        self.assertTrue(streaming.startswith("Streaming"))
        self.assertIn("esc to interrupt", streaming)

    def test_idle_hint(self) -> None:
        self.assertEqual(IDLE_HINT, "? for shortcuts")


@unittest.skipIf(tool_display_name is None, "textual is not installed")
class ToolFormattingTests(unittest.TestCase):
    def test_display_name(self) -> None:
        self.assertEqual(tool_display_name("list_directory"), "List Directory")
        self.assertEqual(tool_display_name("read_file"), "Read File")

    def test_result_preview_uses_first_line_and_truncates(self) -> None:
        self.assertEqual(result_preview("line one\nline two"), "line one")
        self.assertEqual(result_preview("x" * 70), "x" * 60 + "...")
        self.assertEqual(result_preview(None), "")
        self.assertEqual(result_preview("   "), "")


@unittest.skipIf(shorten_path is None, "textual is not installed")
class StatusFormattingTests(unittest.TestCase):
    def test_home_is_collapsed(self) -> None:
        home = Path("/home/tester")
        self.assertEqual(shorten_path(Path("/home/tester/src/app"), home), "~/src/app")
        self.assertEqual(shorten_path(home, home), "~")
        self.assertEqual(shorten_path(Path("/opt/app"), home), "/opt/app")


@unittest.skipIf(settings_rows is None, "textual is not installed")
class SettingsRowsTests(unittest.TestCase):
    def test_secrets_are_masked(self) -> None:
        rows = dict(
            (item.key, label)
            for item, label in settings_rows({"OPENAI_API_KEY": "sk-1234567890abcd"})
        )
        self.assertEqual(rows["OPENAI_API_KEY"], "OpenAI API Key: sk-1...abcd")
        self.assertEqual(rows["OLLAMA_HOST"], "Ollama Host: (not set)")


if __name__ == "__main__":
    unittest.main()
