"""Turn and session controller behind the chat UI.

The controller owns every piece of mutable conversation state: the visible
transcript, the single in-flight turn, the current session, the agent and
graph handles, pending attachments and the tool working directory.  The
presentation layer subscribes to change notifications and renders a
read-only projection of it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import json
import logging
import math
import os
from pathlib import Path
import time
import traceback
from typing import Any, Protocol

from .agent import AgentConfig, GraphConfig
from .attachments import (
    Attachment,
    AttachmentKind,
    AttachmentResolver,
    attachment_preview,
    attachments_to_agent_format,
    expand_path,
    strip_quotes,
)
from .commands import COMMANDS, CommandRouter, find_command, parse_command
from .env_store import EnvStore
from .exceptions import AgentNotReadyError, SessionError, is_api_key_error
from .file_tools import FileTools, build_file_tools_plugin
from .history import InputHistory
from .prompts import build_system_prompt
from .providers import PROVIDERS, get_default_model
from .session_store import PERSISTED_ROLES, Message, Session, SessionStore, SessionSummary
from .state import IN_FLIGHT_PHASES, ModalKind, StateManager, TurnPhase
from .task_manager import TaskManager
from .turn_stream import TurnEvent, TurnStream

LOGGER = logging.getLogger(__name__)

TICKER_TASK = "elapsed_ticker"
GRAPH_DESCRIPTION = "Astreus CLI chat session"
INTERRUPTED_MARKER = "\n\n[Interrupted]"


class AgentRuntimeLike(Protocol):
    async def create_agent(self, config: AgentConfig) -> Any: ...

    async def find_graph(self, graph_id: str, agent: Any) -> Any | None: ...

    def create_graph(self, config: GraphConfig, agent: Any, graph_id: str | None = None) -> Any: ...

    def clear_llm_instances(self) -> None: ...

    async def list_models(self, provider: str) -> list[str]: ...


@dataclass
class TurnState:
    """Working state of the one in-flight turn."""

    accumulated_text: str = ""
    token_estimate: int = 0
    elapsed_seconds: int = 0
    active_tool: str | None = None
    thinking: bool = False
    interrupted: bool = False
    settled: bool = False
    started_at: float = 0.0

    @property
    def finished(self) -> bool:
        return self.interrupted or self.settled


@dataclass(frozen=True)
class ExecutedTool:
    name: str
    result: str | None = None


def payload_text(payload: Any) -> str:
    """Best-effort text from a per-task result payload."""
    if payload is None:
        return ""
    parsed = payload
    if isinstance(payload, str):
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            return payload
    if isinstance(parsed, dict):
        text = parsed.get("response") or parsed.get("content")
        if text:
            return str(text)
        if "response" in parsed or "content" in parsed:
            return ""
        return json.dumps(parsed, indent=2, default=str)
    return payload if isinstance(payload, str) else str(payload)


class TurnController:
    """State machine for turns, commands, credentials and sessions."""

    def __init__(
        self,
        *,
        config: dict[str, dict[str, Any]],
        store: SessionStore,
        runtime: AgentRuntimeLike,
        env: EnvStore,
        file_tools: FileTools | None = None,
        tasks: TaskManager | None = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = 1.0,
    ) -> None:
        agent_settings = config["agent"]
        self.config = config
        self.store = store
        self.runtime = runtime
        self.env = env
        self.file_tools = file_tools or FileTools()
        self.tasks = tasks or TaskManager()
        self.state = StateManager()
        self.router = CommandRouter()
        self.history = InputHistory()
        self.attachments = AttachmentResolver(on_working_directory=self._on_working_directory)

        self.provider: str = agent_settings["provider"]
        self.model: str = agent_settings["model"]
        self.models: list[str] = []
        self.sessions: list[SessionSummary] = []
        self.debug = bool(config["app"].get("debug")) or bool(os.environ.get("DEBUG"))

        self.messages: list[Message] = []
        self.executed_tools: list[ExecutedTool] = []
        self.turn = TurnState()
        self.turn_count = 0
        self.session: Session | None = None
        self.agent: Any | None = None
        self.graph: Any | None = None

        self.modal: ModalKind | None = None
        self.select_index = 0
        self.pending_input: str | None = None
        self.initializing = True
        self.show_shortcuts = False
        self.exit_requested = False

        self._stream: TurnStream | None = None
        self._listeners: list[Callable[[], None]] = []
        self._clock = clock
        self._tick_interval = tick_interval

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def phase(self) -> TurnPhase:
        return self.state.phase

    @property
    def busy(self) -> bool:
        return self.state.phase != TurnPhase.IDLE

    @property
    def in_flight(self) -> bool:
        return self.state.in_flight

    @property
    def working_directory(self) -> Path:
        return self.file_tools.working_directory

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ------------------------------------------------------------------
    # Transcript and persistence
    # ------------------------------------------------------------------

    def _append(self, role: str, content: str) -> Message:
        message = Message(role=role, content=content)
        self.messages.append(message)
        return message

    def add_system(self, content: str) -> None:
        self._append("system", content)
        self._notify()

    async def _persist(self) -> None:
        session = self.session
        if session is None:
            return
        session.messages = [m for m in self.messages if m.role in PERSISTED_ROLES]
        session.model = self.model
        session.provider = self.provider
        snapshot = session.model_copy(deep=True)
        try:
            saved = await asyncio.to_thread(self.store.save, snapshot)
        except SessionError as exc:
            LOGGER.error("session.save.failed", extra={"event": "session.save.failed", "reason": str(exc)})
            self._append("system", f"Error: {exc}")
            return
        session.updated_at = saved.updated_at

    def _format_error(self, exc: BaseException) -> str:
        message = str(exc) or exc.__class__.__name__
        if self.debug:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            return f"Error: {message}\n{stack}"
        return f"Error: {message}"

    def report_error(self, exc: BaseException, *, event: str = "controller.action.failed") -> None:
        """Log a failed action and surface it as a system notification."""
        LOGGER.warning(event, extra={"event": event, "error_type": exc.__class__.__name__, "reason": str(exc)})
        self.modal = None
        self.add_system(self._format_error(exc))

    # ------------------------------------------------------------------
    # Agent and graph lifecycle
    # ------------------------------------------------------------------

    async def _create_agent(self) -> Any:
        settings = self.config["agent"]
        agent = await self.runtime.create_agent(
            AgentConfig(
                name="astreus-cli",
                model=self.model,
                provider=self.provider,
                system_prompt=settings.get("system_prompt") or build_system_prompt(),
                tools_enabled=settings.get("tools_enabled", True),
                memory_enabled=settings.get("memory_enabled", True),
                max_tool_iterations=settings.get("max_tool_iterations", 10),
                retries=settings.get("retries", 1),
            )
        )
        await agent.register_plugin(build_file_tools_plugin(self.file_tools))
        return agent

    async def _ensure_agent(self) -> Any:
        """Return an agent built for the current provider and model."""
        agent = self.agent
        if agent is not None and agent.model == self.model and agent.provider == self.provider:
            return agent
        LOGGER.info(
            "agent.replace",
            extra={"event": "agent.replace", "provider": self.provider, "model": self.model},
        )
        agent = await self._create_agent()
        self.agent = agent
        if self.graph is not None:
            self.graph.bind_agent(agent)
        elif self.session is not None:
            await self._attach_graph()
        return agent

    def _graph_config(self, session: Session) -> GraphConfig:
        return GraphConfig(
            name=session.name or "Chat Session",
            description=GRAPH_DESCRIPTION,
            max_concurrency=1,
            auto_link=True,
            timeout_seconds=self.config["agent"].get("timeout_seconds", 300),
        )

    async def _find_graph(self, handle: str, agent: Any) -> Any | None:
        """Look up a saved graph; a record that fails to load counts as absent."""
        try:
            return await self.runtime.find_graph(handle, agent)
        except Exception as exc:  # noqa: BLE001 - an unreadable graph is replaced by a fresh one.
            LOGGER.warning(
                "graph.load.failed",
                extra={"event": "graph.load.failed", "graph_id": handle, "reason": str(exc)},
            )
            agent.clear_context()
            return None

    async def _attach_graph(self, *, reuse: bool = True) -> None:
        """Find the session's graph by handle or create and persist one."""
        session, agent = self.session, self.agent
        self.graph = None
        if session is None or agent is None:
            return
        graph = None
        if reuse and session.conversation_handle:
            graph = await self._find_graph(session.conversation_handle, agent)
        if graph is None:
            graph = self.runtime.create_graph(
                self._graph_config(session), agent, graph_id=session.conversation_handle
            )
            handle = await graph.save()
            if handle and handle != session.conversation_handle:
                session.conversation_handle = handle
                await self._persist()
        self.graph = graph

    async def initialize(self) -> None:
        """Load the current session, then build the agent and its graph."""
        try:
            self.session = await asyncio.to_thread(self.store.get_or_create_current)
            self.messages = list(self.session.messages)
            self.history.replace([m.content for m in self.messages if m.role == "user"])
            self.turn_count = len(self.messages) // 2
            self.agent = await self._create_agent()
            await self._attach_graph()
        except Exception as exc:  # noqa: BLE001 - startup failures become notifications.
            LOGGER.warning("controller.init.failed", extra={"event": "controller.init.failed", "reason": str(exc)})
            if is_api_key_error(exc):
                self.modal = ModalKind.API_KEY
            else:
                self._append("system", self._format_error(exc))
        finally:
            self.initializing = False
            self._notify()

    async def refresh_models(self) -> list[str]:
        self.models = await self.runtime.list_models(self.provider)
        return self.models

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def on_input_changed(self, text: str, *, pasted: bool = False) -> bool:
        """Track suggestions; a pasted path becomes an attachment.

        Returns True when the input was consumed as an attachment and the
        buffer should be cleared.
        """
        self.router.update(text)
        consumed = False
        if pasted and self.modal is None:
            attachment = self.attachments.detect(text, self.file_tools.launch_directory)
            if attachment is not None:
                self.attachments.add(attachment)
                consumed = True
                self.router.reset()
        self._notify()
        return consumed

    async def submit(self, raw: str) -> bool:
        """Handle a submitted input line.

        Returns False when the input is rejected: a modal is open, startup
        has not finished, a turn is in flight or the line is blank.
        """
        if self.modal is not None or self.initializing or self.busy:
            return False
        resolved = self.router.resolve(raw)
        self.router.reset()
        self.history.reset()
        if not resolved:
            return False

        if resolved == "?":
            self.show_shortcuts = not self.show_shortcuts
            self._notify()
            return True
        self.show_shortcuts = False

        attachment = self.attachments.detect(resolved, self.file_tools.launch_directory)
        if attachment is not None:
            self.attachments.add(attachment)
            self._notify()
            return True

        self.history.add(resolved)

        if resolved.startswith("/"):
            await self.handle_command(resolved)
            return True

        await self.run_turn(resolved)
        return True

    # ------------------------------------------------------------------
    # Turn lifecycle
    # ------------------------------------------------------------------

    def _compose_prompt(self, text: str, attachments: list[Attachment]) -> str:
        prompt = text
        working_directory = self.file_tools.working_directory
        if working_directory != self.file_tools.launch_directory.resolve():
            prompt = (
                f"[IMPORTANT: Working directory is set to: {working_directory}. "
                "All file operations should be relative to this directory or use "
                f"absolute paths within it.]\n\n{prompt}"
            )
        if attachments:
            listing = "\n".join(
                f"- {a['name'] or a['path']} ({a['type']})"
                for a in attachments_to_agent_format(attachments)
            )
            prompt = f"{prompt}\n\n[Attached files:\n{listing}]"
        return prompt

    def _open_stream(
        self, agent: Any, prompt: str, attachments: list[Attachment]
    ) -> tuple[TurnStream, str | None]:
        descriptors = attachments_to_agent_format(attachments) or None
        timeout = self.config["agent"].get("timeout_seconds", 300)
        graph = self.graph
        if graph is None:
            async def ask(on_chunk: Callable[[str], None], on_tool_call: Callable[..., None]) -> Any:
                return await agent.ask(
                    prompt, on_chunk=on_chunk, on_tool_call=on_tool_call, attachments=descriptors
                )

            return TurnStream(ask).start(self._spawn), None

        node_id = graph.add_task_node(
            f"Turn-{self.turn_count + 1}",
            prompt,
            stream=True,
            metadata={
                "tools_enabled": self.config["agent"].get("tools_enabled", True),
                "attachments": descriptors,
                "working_directory": str(self.file_tools.working_directory),
            },
        )

        def run(on_chunk: Callable[[str], None], on_tool_call: Callable[..., None]) -> Awaitable[Any]:
            return graph.run(stream=True, timeout=timeout, on_chunk=on_chunk, on_tool_call=on_tool_call)

        return TurnStream(run).start(self._spawn), node_id

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        return self.tasks.spawn(coro)

    def _start_ticker(self, turn: TurnState) -> None:
        async def tick() -> None:
            while True:
                await asyncio.sleep(self._tick_interval)
                if self.turn is not turn or turn.finished:
                    return
                turn.elapsed_seconds = int(self._clock() - turn.started_at)
                self._notify()

        self.tasks.spawn(tick(), name=TICKER_TASK)

    def _stop_ticker(self, turn: TurnState) -> None:
        if self.turn is turn:
            self.tasks.stop(TICKER_TASK)

    def _apply_event(self, turn: TurnState, event: TurnEvent) -> None:
        """Apply a chunk or tool event unless the turn is already over."""
        if turn.finished or self.turn is not turn:
            return
        if event.kind == "chunk":
            if not event.text:
                return
            turn.accumulated_text += event.text
            turn.token_estimate = math.ceil(len(turn.accumulated_text) / 4)
            turn.thinking = False
            if self.state.phase == TurnPhase.SENDING:
                self.state.set(TurnPhase.STREAMING)
        elif event.kind == "tool":
            if event.tool_status == "start":
                turn.active_tool = event.tool_name
                turn.thinking = False
            else:
                turn.active_tool = None
                self.executed_tools.append(ExecutedTool(event.tool_name, event.tool_result))
        self._notify()

    async def run_turn(self, text: str) -> None:
        """Drive one turn from Sending to Idle."""
        if not await self.state.transition_if(TurnPhase.IDLE, TurnPhase.SENDING):
            return
        turn = TurnState(thinking=True, started_at=self._clock())
        self.turn = turn
        self.executed_tools = []
        stream: TurnStream | None = None
        try:
            self._append("user", text)
            await self._persist()
            attachments = self.attachments.take()
            self._start_ticker(turn)
            self._notify()
            LOGGER.info("turn.start", extra={"event": "turn.start", "turn": self.turn_count + 1})

            agent = await self._ensure_agent()
            if agent is None:
                raise AgentNotReadyError("Agent not ready")
            if turn.finished or self.turn is not turn:
                return
            stream, node_id = self._open_stream(agent, self._compose_prompt(text, attachments), attachments)
            self._stream = stream
            completed = False
            result: Any = None
            async for event in stream:
                if event.kind == "complete":
                    completed, result = True, event.result
                elif event.kind == "failure" and event.error is not None:
                    raise event.error
                else:
                    self._apply_event(turn, event)
            if turn.finished or self.turn is not turn:
                return
            if not completed:
                raise AgentNotReadyError("Turn ended without a result")
            await self._settle(turn, text, node_id, result)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - every turn failure ends as a notification.
            if turn.finished or self.turn is not turn:
                return
            await self._fail(turn, text, exc)
        finally:
            if stream is not None and self._stream is stream:
                self._stream = None
            if self.turn is turn:
                self._stop_ticker(turn)
                turn.active_tool = None
                turn.thinking = False
                if self.state.phase in IN_FLIGHT_PHASES or self.state.phase == TurnPhase.SETTLING:
                    self.state.set(TurnPhase.IDLE)
            self._notify()

    async def _settle(self, turn: TurnState, text: str, node_id: str | None, result: Any) -> None:
        self.state.set(TurnPhase.SETTLING)
        final = turn.accumulated_text

        if node_id is None:
            if not final and result:
                final = payload_text(result)
            final = final or "No response received"
        else:
            errors = getattr(result, "errors", None) or {}
            if result is not None and not getattr(result, "success", True) and errors:
                messages = [str(message) for message in errors.values() if message]
                if messages:
                    joined = ", ".join(messages)
                    if is_api_key_error(joined):
                        await self._suspend_for_credential(turn, text)
                        return
                    final = f"{final}\n\n[Error: {joined}]" if final else f"Error: {joined}"
            results = getattr(result, "results", None) or {}
            if not final and results:
                payload = results.get(node_id) or next(iter(results.values()))
                final = payload_text(payload)

        turn.settled = True
        self._stop_ticker(turn)
        turn.accumulated_text = ""
        self.turn_count += 1
        if final:
            self._append("assistant", final)
        else:
            self._append("system", "No response from model")
        await self._persist()
        self.state.set(TurnPhase.IDLE)
        LOGGER.info("turn.complete", extra={"event": "turn.complete", "turn": self.turn_count})

    async def _fail(self, turn: TurnState, text: str, exc: BaseException) -> None:
        if is_api_key_error(exc):
            await self._suspend_for_credential(turn, text)
            return
        LOGGER.warning(
            "turn.failed",
            extra={"event": "turn.failed", "error_type": exc.__class__.__name__},
        )
        turn.settled = True
        self._stop_ticker(turn)
        turn.accumulated_text = ""
        self._append("system", self._format_error(exc))
        self.state.set(TurnPhase.IDLE)

    async def _suspend_for_credential(self, turn: TurnState, text: str) -> None:
        """Roll back the user message and ask for a key."""
        turn.settled = True
        self._stop_ticker(turn)
        turn.accumulated_text = ""
        turn.token_estimate = 0
        for index in range(len(self.messages) - 1, -1, -1):
            if self.messages[index].role == "user":
                del self.messages[index]
                break
        self.pending_input = text
        self.modal = ModalKind.API_KEY
        self.state.set(TurnPhase.AWAITING_CREDENTIAL)
        await self._persist()
        LOGGER.info("turn.credential.requested", extra={"event": "turn.credential.requested", "provider": self.provider})

    def interrupt(self) -> bool:
        """Cancel the in-flight turn, keeping any partial text."""
        if not self.state.in_flight:
            return False
        turn = self.turn
        turn.interrupted = True
        self._stop_ticker(turn)
        partial = turn.accumulated_text
        turn.accumulated_text = ""
        turn.active_tool = None
        turn.thinking = False
        if partial:
            self._append("assistant", partial + INTERRUPTED_MARKER)
        else:
            self._append("system", "Interrupted")
        self.state.set(TurnPhase.INTERRUPTED)
        self.state.set(TurnPhase.IDLE)
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        if partial:
            self.tasks.spawn(self._persist())
        LOGGER.info("turn.interrupted", extra={"event": "turn.interrupted", "partial_chars": len(partial)})
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Credential recovery
    # ------------------------------------------------------------------

    async def submit_credential(self, api_key: str) -> None:
        """Save a key and replay the suspended turn; a blank key abandons it."""
        key = api_key.strip()
        if not key:
            self.cancel_credential()
            return
        try:
            await asyncio.to_thread(self.env.save_api_key, self.provider, key)
        except OSError as exc:
            self.cancel_credential()
            self.report_error(exc, event="credential.save.failed")
            return
        self._append("system", "API key saved to .env")
        self.modal = None
        pending, self.pending_input = self.pending_input, None
        if self.state.phase == TurnPhase.AWAITING_CREDENTIAL:
            self.state.set(TurnPhase.IDLE)
        self.runtime.clear_llm_instances()
        self.agent = None
        self._notify()
        if pending:
            await self.run_turn(pending)
            return
        try:
            await self._ensure_agent()
        except Exception as exc:  # noqa: BLE001 - surfaced as a notification.
            if is_api_key_error(exc):
                self.modal = ModalKind.API_KEY
            else:
                self._append("system", self._format_error(exc))
            self._notify()

    def cancel_credential(self) -> None:
        self.modal = None
        self.pending_input = None
        if self.state.phase == TurnPhase.AWAITING_CREDENTIAL:
            self.state.set(TurnPhase.IDLE)
        self._notify()

    # ------------------------------------------------------------------
    # Modals, model and provider
    # ------------------------------------------------------------------

    def close_modal(self) -> None:
        if self.modal is ModalKind.API_KEY:
            self.cancel_credential()
            return
        self.modal = None
        self._notify()

    def set_model(self, model: str) -> None:
        self.model = model
        self.modal = None
        self._append("system", f"Model: {model}")
        self._notify()

    def set_provider(self, provider: str) -> None:
        self.provider = provider
        self.model = get_default_model(provider)
        self.models = []
        self.modal = None
        self._append("system", f"Provider: {provider}")
        self._notify()

    def save_setting(self, key: str, value: str) -> None:
        try:
            self.env.set(key, value)
        except OSError as exc:
            self.report_error(exc, event="setting.save.failed")
            return
        self.runtime.clear_llm_instances()
        self._append("system", f"Saved {key}")
        self._notify()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def list_sessions(self) -> list[SessionSummary]:
        return self.store.list()

    def _reset_for_session(self, session: Session, messages: list[Message]) -> None:
        self.executed_tools = []
        self.session = session
        self.messages = list(messages)
        self.turn_count = len(self.messages) // 2
        self.history.replace([m.content for m in self.messages if m.role == "user"])
        if self.agent is not None:
            self.agent.clear_context()

    async def new_session(self, name: str | None = None) -> Session:
        """Create a session, select it and give it a fresh graph."""
        session = await asyncio.to_thread(
            self.store.create, name, model=self.model, provider=self.provider
        )
        self._reset_for_session(session, [])
        await self._attach_graph(reuse=False)
        self.modal = None
        self._append("system", f"New session: {session.name}")
        self._notify()
        return session

    async def select_session(self, session_id: str) -> bool:
        """Switch to a stored session and its graph."""
        session = await asyncio.to_thread(self.store.load, session_id)
        if session is None:
            self.modal = None
            self._append("system", f"Session not found: {session_id}")
            self._notify()
            return False
        await asyncio.to_thread(self.store.set_current, session.id)
        self._reset_for_session(session, session.messages)
        await self._attach_graph()
        self.modal = None
        self._notify()
        return True

    async def rename_session(self, session_id: str, name: str) -> bool:
        renamed = await asyncio.to_thread(self.store.rename, session_id, name)
        if renamed and self.session is not None and self.session.id == session_id:
            self.session.name = name.strip() or self.session.name
        self._notify()
        return renamed

    async def delete_session(self, session_id: str) -> bool:
        deleted = await asyncio.to_thread(self.store.delete, session_id)
        if deleted and self.session is not None and self.session.id == session_id:
            await self.new_session()
        self._notify()
        return deleted

    # ------------------------------------------------------------------
    # Working directory
    # ------------------------------------------------------------------

    def _on_working_directory(self, directory: Path) -> None:
        self.file_tools.set_working_directory(directory)

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    def _command_handlers(self) -> dict[str, Callable[[str], Awaitable[None]]]:
        return {
            "model": self._cmd_model,
            "provider": self._cmd_provider,
            "sessions": self._cmd_sessions,
            "new": self._cmd_new,
            "attach": self._cmd_attach,
            "attachments": self._cmd_attachments,
            "clear-attachments": self._cmd_clear_attachments,
            "pwd": self._cmd_pwd,
            "cd": self._cmd_cd,
            "tools": self._cmd_tools,
            "graph": self._cmd_graph,
            "settings": self._cmd_settings,
            "clear": self._cmd_clear,
            "help": self._cmd_help,
            "exit": self._cmd_exit,
        }

    async def handle_command(self, text: str) -> None:
        parsed = parse_command(text)
        if parsed is None:
            return
        command = find_command(parsed.name)
        if command is None:
            self.add_system(f"Unknown: {parsed.name}")
            return
        LOGGER.info("command.dispatch", extra={"event": "command.dispatch", "command": command.name})
        try:
            await self._command_handlers()[command.name](parsed.args)
        except Exception as exc:  # noqa: BLE001 - a failed command becomes a notification.
            self.report_error(exc, event="command.failed")
            return
        self._notify()

    async def _cmd_model(self, args: str) -> None:
        if args:
            self.set_model(args.split()[0])
            return
        models = await self.refresh_models()
        self.select_index = models.index(self.model) if self.model in models else 0
        self.modal = ModalKind.MODEL

    async def _cmd_provider(self, args: str) -> None:
        name = args.split()[0].lower() if args else ""
        if name in PROVIDERS:
            self.set_provider(name)
            return
        self.select_index = PROVIDERS.index(self.provider) if self.provider in PROVIDERS else 0
        self.modal = ModalKind.PROVIDER

    async def _cmd_sessions(self, _args: str) -> None:
        await self.open_sessions()

    async def open_sessions(self) -> list[SessionSummary]:
        """Open the session manager with the current session preselected."""
        summaries = await asyncio.to_thread(self.list_sessions)
        self.sessions = summaries
        current = self.session.id if self.session else None
        ids = [summary.id for summary in summaries]
        self.select_index = ids.index(current) if current in ids else 0
        self.modal = ModalKind.SESSIONS
        self._notify()
        return summaries

    async def _cmd_new(self, args: str) -> None:
        await self.new_session(args or None)

    async def _cmd_attach(self, args: str) -> None:
        if not args:
            self._append("system", "Usage: /attach <path>")
            return
        raw = strip_quotes(args)
        path = expand_path(raw, self.file_tools.launch_directory)
        if not path.exists():
            self._append("system", f"File not found: {raw}")
            return
        if self.attachments.contains(path):
            self._append("system", f"Already attached: {path.name or path}")
            return
        attachment = self.attachments.add_path(path)
        if attachment is None:
            self._append("system", f"File not found: {raw}")
            return
        message = f"Attached: {attachment_preview(attachment)}"
        if attachment.kind is AttachmentKind.FOLDER:
            message += f"\nWorking directory set to: {self.file_tools.working_directory}"
        self._append("system", message)

    async def _cmd_attachments(self, _args: str) -> None:
        pending = self.attachments.pending
        if not pending:
            self._append("system", "No attachments")
            return
        listing = "\n".join(f"{i}. {attachment_preview(a)}" for i, a in enumerate(pending, start=1))
        self._append("system", f"Attachments:\n{listing}")

    async def _cmd_clear_attachments(self, _args: str) -> None:
        self.attachments.clear()
        self._append("system", "Attachments cleared")

    async def _cmd_pwd(self, _args: str) -> None:
        self._append("system", f"Working directory: {self.file_tools.working_directory}")

    async def _cmd_cd(self, args: str) -> None:
        if not args:
            self.file_tools.reset_working_directory()
            self._append("system", f"Working directory reset to: {self.file_tools.working_directory}")
            return
        target = strip_quotes(args)
        if self.file_tools.set_working_directory(target):
            self._append("system", f"Working directory set to: {self.file_tools.working_directory}")
        else:
            self._append("system", f"Not a directory: {target}")

    async def _cmd_tools(self, _args: str) -> None:
        if self.agent is None:
            self._append("system", "Agent not ready or tools not supported")
            return
        tools = self.agent.get_tools()
        if not tools:
            self._append("system", "No tools registered")
            return
        listing = "\n".join(f"• {tool.name}: {tool.description}" for tool in tools)
        self._append("system", f"Registered tools ({len(tools)}):\n{listing}")

    async def _cmd_graph(self, _args: str) -> None:
        session_name = self.session.name if self.session else "none"
        wd = self.file_tools.working_directory
        if self.graph is None:
            self._append(
                "system",
                f"Session: {session_name}\nGraph: not initialized\nWorking directory: {wd}",
            )
            return
        lines = [
            f"Session: {session_name}",
            f"Graph Status: {self.graph.status}",
            f"Nodes: {len(self.graph.nodes)}",
            f"Turns: {self.turn_count}",
            f"Working directory: {wd}",
        ]
        self._append("system", "\n".join(lines))

    async def _cmd_settings(self, _args: str) -> None:
        self.select_index = 0
        self.modal = ModalKind.SETTINGS

    async def _cmd_clear(self, _args: str) -> None:
        self.messages = []
        self.executed_tools = []
        self.turn_count = 0
        if self.agent is not None:
            self.agent.clear_context()
        await self._persist()

    async def _cmd_help(self, _args: str) -> None:
        self._append("system", " ".join(f"/{command.name}" for command in COMMANDS))

    async def _cmd_exit(self, _args: str) -> None:
        self.exit_requested = True

    async def shutdown(self) -> None:
        if self._stream is not None:
            self._stream.close()
        await self.tasks.cancel_all()
