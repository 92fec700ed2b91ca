"""Conversational agent: model client, tool plugins and memory."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import inspect
import logging
from typing import Any

from ..attachments import render_attachment_context
from ..exceptions import AgentError, CredentialMissingError, ToolError
from .llm import LLMClient, LLMFactory
from .plugins import PluginTool, ToolPlugin

LOGGER = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Any]
ToolCallCallback = Callable[..., Any]


@dataclass
class AgentConfig:
    """Construction parameters for an :class:`Agent`."""

    name: str
    model: str
    provider: str
    system_prompt: str = ""
    tools_enabled: bool = True
    memory_enabled: bool = True
    max_tool_iterations: int = 10
    retries: int = 1
    retry_backoff_seconds: float = 0.5


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


class Agent:
    """Stateful agent that streams replies and runs tool calls."""

    def __init__(self, config: AgentConfig, llm_factory: LLMFactory) -> None:
        self.config = config
        self._llm_factory = llm_factory
        self._plugins: dict[str, ToolPlugin] = {}
        self._memory: list[dict[str, Any]] = []

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def provider(self) -> str:
        return self.config.provider

    async def register_plugin(self, plugin: ToolPlugin) -> None:
        if plugin.name in self._plugins:
            raise ToolError(f"Plugin {plugin.name!r} is already registered.")
        self._plugins[plugin.name] = plugin
        LOGGER.info(
            "agent.plugin.registered",
            extra={
                "event": "agent.plugin.registered",
                "plugin": plugin.name,
                "tools": len(plugin.tools),
            },
        )

    def get_tools(self) -> list[PluginTool]:
        return [tool for plugin in self._plugins.values() for tool in plugin.tools]

    def _find_tool(self, name: str) -> PluginTool | None:
        for tool in self.get_tools():
            if tool.name == name:
                return tool
        return None

    def clear_context(self) -> None:
        self._memory.clear()

    def get_context(self) -> list[dict[str, Any]]:
        return [dict(item) for item in self._memory]

    def load_context(self, messages: list[dict[str, Any]]) -> None:
        self._memory = [
            {"role": m["role"], "content": m.get("content", "")}
            for m in messages
            if m.get("role") in {"user", "assistant"}
        ]

    def _llm(self) -> LLMClient:
        return self._llm_factory.get(self.config.provider, self.config.model)

    def _build_user_message(
        self, prompt: str, attachments: list[dict[str, Any]] | None
    ) -> dict[str, Any]:
        content = prompt
        images: list[str] = []
        if attachments:
            context = render_attachment_context(attachments)
            if context:
                content = f"{prompt}\n\n{context}"
            images = [a["path"] for a in attachments if a.get("type") == "image"]
        message: dict[str, Any] = {"role": "user", "content": content}
        if images:
            message["images"] = images
        return message

    async def _stream_once(
        self,
        request: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        on_chunk: ChunkCallback | None,
    ) -> tuple[str, list[dict[str, Any]]]:
        content = ""
        calls: list[dict[str, Any]] = []
        for attempt in range(self.config.retries + 1):
            content, calls = "", []
            try:
                async for chunk in self._llm().stream_chat(request, tools):
                    if chunk.kind == "content":
                        content += chunk.text
                        if on_chunk is not None:
                            await _maybe_await(on_chunk(chunk.text))
                    else:
                        calls.append(
                            {"id": chunk.call_id, "name": chunk.tool_name, "arguments": chunk.tool_args}
                        )
                return content, calls
            except asyncio.CancelledError:
                LOGGER.info("agent.request.cancelled", extra={"event": "agent.request.cancelled"})
                raise
            except AgentError as exc:
                # Retrying after partial output would duplicate streamed text.
                if (
                    content
                    or attempt >= self.config.retries
                    or isinstance(exc, CredentialMissingError)
                ):
                    raise
                LOGGER.warning(
                    "agent.request.retry",
                    extra={
                        "event": "agent.request.retry",
                        "attempt": attempt + 1,
                        "error_type": exc.__class__.__name__,
                    },
                )
                await asyncio.sleep(self.config.retry_backoff_seconds * (attempt + 1))
        return content, calls

    async def ask(
        self,
        prompt: str,
        *,
        on_chunk: ChunkCallback | None = None,
        on_tool_call: ToolCallCallback | None = None,
        attachments: list[dict[str, Any]] | None = None,
        use_tools: bool | None = None,
    ) -> str:
        """Answer ``prompt``, running requested tools until the model stops.

        ``on_tool_call(name, args, status, result=None)`` fires with ``start``
        before and ``end`` after each tool runs.
        """
        tools_on = self.config.tools_enabled if use_tools is None else use_tools
        tool_schemas = [t.to_schema() for t in self.get_tools()] if tools_on else []

        request: list[dict[str, Any]] = []
        if self.config.system_prompt:
            request.append({"role": "system", "content": self.config.system_prompt})
        if self.config.memory_enabled:
            request.extend(self.get_context())
        request.append(self._build_user_message(prompt, attachments))

        final_content = ""
        for iteration in range(self.config.max_tool_iterations):
            content, calls = await self._stream_once(request, tool_schemas, on_chunk)
            final_content += content
            if not calls:
                break
            request.append({"role": "assistant", "content": content, "tool_calls": calls})
            for call in calls:
                name, args = call["name"], call["arguments"]
                LOGGER.info(
                    "agent.tool.call",
                    extra={"event": "agent.tool.call", "tool": name, "iteration": iteration + 1},
                )
                if on_tool_call is not None:
                    await _maybe_await(on_tool_call(name, args, "start"))
                tool = self._find_tool(name)
                if tool is None:
                    result_text = f"Error: Unknown tool: {name}"
                else:
                    result_text = (await tool.run(args)).as_text()
                if on_tool_call is not None:
                    await _maybe_await(on_tool_call(name, args, "end", result_text))
                request.append(
                    {"role": "tool", "name": name, "tool_call_id": call["id"], "content": result_text}
                )

        if self.config.memory_enabled:
            self._memory.append({"role": "user", "content": prompt})
            self._memory.append({"role": "assistant", "content": final_content})
        return final_content
