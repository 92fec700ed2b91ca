"""Main Textual application for the Astreus terminal chat client."""

from __future__ import annotations

from collections.abc import Coroutine
import logging
import sys
from typing import Any

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import Key
from textual.screen import ModalScreen
from textual.widgets import Input, OptionList

from .agent import AgentRuntime
from .config import load_config
from .controller import TurnController
from .env_store import SETTING_CATEGORIES, EnvStore
from .file_tools import FileTools
from .logging_utils import configure_logging
from .providers import PROVIDERS, get_env_key_name
from .screens import (
    ApiKeyScreen,
    PickerScreen,
    SessionAction,
    SessionsScreen,
    SettingsScreen,
)
from .session_store import SessionStore
from .state import ModalKind
from .widgets import (
    ActivityBar,
    ConversationView,
    InputBox,
    StatusBar,
    ToolCallsView,
)
from .widgets.activity_bar import format_activity
from .widgets.tool_calls import tool_display_name

LOGGER = logging.getLogger(__name__)


def build_controller(config: dict[str, dict[str, Any]], env: EnvStore) -> TurnController:
    """Wire the session store, agent runtime and file tools from config."""
    sessions = config["sessions"]
    store = SessionStore(sessions["directory"], sessions["current_session_path"])
    runtime = AgentRuntime(
        sessions["graphs_directory"],
        env.environ,
        timeout=float(config["agent"]["timeout_seconds"]),
    )
    return TurnController(
        config=config,
        store=store,
        runtime=runtime,
        env=env,
        file_tools=FileTools(),
    )


class AstreusApp(App[None]):
    """Chat TUI driving an agent with file tools and persistent sessions."""

    CSS = """
    Screen {
        layout: vertical;
        background: $background;
    }

    #app-root {
        layout: vertical;
        width: 100%;
        height: 1fr;
    }

    #conversation {
        height: 1fr;
        padding: 1;
    }

    #tool_calls {
        margin: 0 1;
    }

    InputBox {
        padding: 0 1;
        border-top: solid $panel;
        background: $surface;
    }

    #status_bar {
        padding: 0 1;
        border-top: solid $panel;
        background: $surface;
    }

    #activity_bar {
        background: $surface;
    }

    MessageBubble {
        width: 100%;
        margin: 0 0 1 0;
        padding: 0 1;
    }

    MessageBubble.role-user {
        border-left: thick $primary;
    }

    MessageBubble.role-assistant {
        border-left: thick $accent;
    }

    MessageBubble.role-system {
        border-left: thick $panel;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", priority=True),
        Binding("escape", "interrupt", "Interrupt", show=False),
        Binding("tab", "accept_suggestion", "Complete", show=False, priority=True),
    ]

    def __init__(
        self,
        config: dict[str, dict[str, Any]] | None = None,
        controller: TurnController | None = None,
    ) -> None:
        if config is None:
            config = load_config()
            env = EnvStore(config["env"]["path"])
            env.load()
            # Reload so ASTREUS_PROVIDER/ASTREUS_MODEL from the .env file apply.
            config = load_config()
        else:
            env = EnvStore(config["env"]["path"])
        self.config = config
        configure_logging(self.config["logging"])
        LOGGER.info(
            "app.python",
            extra={
                "event": "app.python",
                "executable": sys.executable,
                "version": sys.version.split()[0],
            },
        )
        self.controller = controller or build_controller(self.config, env)
        self._open_modal: ModalKind | None = None
        self._last_input = ""

        self._w_input: Input | None = None
        self._w_input_box: InputBox | None = None
        self._w_conversation: ConversationView | None = None
        self._w_tools: ToolCallsView | None = None
        self._w_status: StatusBar | None = None
        self._w_activity: ActivityBar | None = None
        super().__init__()

    def compose(self) -> ComposeResult:
        with Container(id="app-root"):
            yield ConversationView(id="conversation")
            yield ToolCallsView("", id="tool_calls", classes="hidden")
            yield InputBox()
            yield StatusBar(id="status_bar")
            yield ActivityBar(id="activity_bar")

    async def on_mount(self) -> None:
        self.title = str(self.config["app"]["title"])
        self._w_input = self.query_one("#message_input", Input)
        self._w_input_box = self.query_one(InputBox)
        self._w_conversation = self.query_one(ConversationView)
        self._w_tools = self.query_one(ToolCallsView)
        self._w_status = self.query_one("#status_bar", StatusBar)
        self._w_activity = self.query_one("#activity_bar", ActivityBar)
        self._w_input.focus()

        self.controller.subscribe(self._refresh_view)
        self._refresh_view()
        self._spawn(self.controller.initialize())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        self.controller.tasks.spawn(coro)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _refresh_view(self) -> None:
        """Project controller state onto the widgets."""
        if self._w_conversation is None:
            return
        controller = self.controller
        turn = controller.turn
        in_flight = controller.in_flight

        self._w_conversation.sync(
            controller.messages, turn.accumulated_text if in_flight else ""
        )
        tools = self._w_tools or self.query_one(ToolCallsView)
        tools.show_tools(
            controller.executed_tools, turn.active_tool if in_flight else None
        )
        activity = self._w_activity or self.query_one("#activity_bar", ActivityBar)
        if in_flight:
            activity.show_progress(
                format_activity(
                    elapsed_seconds=turn.elapsed_seconds,
                    token_estimate=turn.token_estimate,
                    active_tool=tool_display_name(turn.active_tool) if turn.active_tool else None,
                    thinking=turn.thinking,
                )
            )
        elif controller.initializing:
            activity.show_progress("Starting agent...")
        else:
            activity.show_idle(controller.show_shortcuts)

        status = self._w_status or self.query_one("#status_bar", StatusBar)
        status.set_status(
            provider=controller.provider,
            model=controller.model,
            session_name=controller.session.name if controller.session else None,
            turn_count=controller.turn_count,
            working_directory=controller.working_directory,
        )
        input_box = self._w_input_box or self.query_one(InputBox)
        router = controller.router
        input_box.show_suggestions(
            router.suggestions if router.active else [], router.highlighted
        )
        input_box.show_attachments(controller.attachments.pending)

        if controller.exit_requested:
            self.exit()
            return
        self._sync_modal()

    # ------------------------------------------------------------------
    # Modals
    # ------------------------------------------------------------------

    def _sync_modal(self) -> None:
        kind = self.controller.modal
        if kind is None or self._open_modal is not None:
            return
        controller = self.controller
        self._open_modal = kind
        if kind is ModalKind.MODEL:
            self.push_screen(
                PickerScreen("Select model", controller.models, controller.select_index),
                self._on_model_picked,
            )
        elif kind is ModalKind.PROVIDER:
            self.push_screen(
                PickerScreen("Select provider", PROVIDERS, controller.select_index),
                self._on_provider_picked,
            )
        elif kind is ModalKind.API_KEY:
            self.push_screen(
                ApiKeyScreen(controller.provider, get_env_key_name(controller.provider)),
                self._on_api_key_entered,
            )
        elif kind is ModalKind.SESSIONS:
            self.push_screen(
                SessionsScreen(controller.sessions, controller.select_index),
                self._on_session_action,
            )
        elif kind is ModalKind.SETTINGS:
            values = {
                item.key: controller.env.get(item.key)
                for category in SETTING_CATEGORIES
                for item in category.items
            }
            self.push_screen(SettingsScreen(values), self._on_setting_edited)

    def _modal_closed(self) -> None:
        self._open_modal = None
        if self._w_input is not None:
            self._w_input.focus()

    def _on_model_picked(self, model: str | None) -> None:
        self._modal_closed()
        if model:
            self.controller.set_model(model)
        else:
            self.controller.close_modal()

    def _on_provider_picked(self, provider: str | None) -> None:
        self._modal_closed()
        if provider:
            self.controller.set_provider(provider)
        else:
            self.controller.close_modal()

    def _on_api_key_entered(self, api_key: str | None) -> None:
        self._modal_closed()
        if api_key is None:
            self.controller.cancel_credential()
            return
        self._spawn(self.controller.submit_credential(api_key))

    def _on_setting_edited(self, edited: tuple[str, str] | None) -> None:
        self._modal_closed()
        self.controller.close_modal()
        if edited is not None:
            key, value = edited
            self.controller.save_setting(key, value)

    def _on_session_action(self, action: SessionAction | None) -> None:
        self._modal_closed()
        if action is None:
            self.controller.close_modal()
            return
        self._spawn(self._apply_session_action(action))

    async def _apply_session_action(self, action: SessionAction) -> None:
        try:
            await self._run_session_action(action)
        except Exception as exc:  # noqa: BLE001 - session failures become notifications.
            self.controller.report_error(exc, event="session.action.failed")

    async def _run_session_action(self, action: SessionAction) -> None:
        controller = self.controller
        if action.kind == "select":
            await controller.select_session(action.session_id)
        elif action.kind == "new":
            await controller.new_session()
        elif action.kind == "rename":
            controller.modal = None
            await controller.rename_session(action.session_id, action.name)
            await controller.open_sessions()
        elif action.kind == "delete":
            controller.modal = None
            await controller.delete_session(action.session_id)
            await controller.open_sessions()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id != "message_input":
            return
        value = event.value
        # Pastes and drag-and-drop arrive as multi-character changes.
        pasted = len(value) - len(self._last_input) > 1
        self._last_input = value
        if self.controller.on_input_changed(value, pasted=pasted):
            event.input.value = ""

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "message_input":
            return
        controller = self.controller
        if controller.modal is not None or controller.initializing or controller.busy:
            return
        value = event.value
        event.input.value = ""
        self._spawn(controller.submit(value))

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        if event.option_list.id != "slash_menu":
            return
        event.stop()
        router = self.controller.router
        router.highlighted = event.option_index
        self._complete_suggestion()

    def _complete_suggestion(self) -> bool:
        accepted = self.controller.router.accept()
        if accepted is None or self._w_input is None:
            return False
        self._set_input(accepted)
        self._w_input.focus()
        return True

    def _set_input(self, value: str) -> None:
        if self._w_input is None:
            return
        self._last_input = value
        self._w_input.value = value
        self._w_input.cursor_position = len(value)

    def on_status_bar_model_picker_requested(
        self, event: StatusBar.ModelPickerRequested
    ) -> None:
        controller = self.controller
        if controller.modal is None and not controller.busy and not controller.initializing:
            self._spawn(controller.handle_command("/model"))

    def on_key(self, event: Key) -> None:
        """Up/Down move through suggestions, or through prompt history."""
        if event.key not in {"up", "down"} or isinstance(self.screen, ModalScreen):
            return
        if self._w_input is None or not self._w_input.has_focus:
            return
        controller = self.controller
        delta = -1 if event.key == "up" else 1
        if controller.router.active:
            controller.router.move(delta)
            self._refresh_view()
            event.stop()
            return
        history = controller.history
        recalled = history.up(self._w_input.value) if delta < 0 else history.down()
        if recalled is not None:
            self._set_input(recalled)
            event.stop()

    def action_accept_suggestion(self) -> None:
        if isinstance(self.screen, ModalScreen):
            self.screen.focus_next()
            return
        if not self._complete_suggestion():
            self.screen.focus_next()

    def action_interrupt(self) -> None:
        controller = self.controller
        if controller.interrupt():
            return
        if controller.router.active:
            controller.router.reset()
            self._refresh_view()

    async def on_unmount(self) -> None:
        await self.controller.shutdown()
