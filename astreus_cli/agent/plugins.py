"""Tool plugin contract shared by the agent runtime and tool providers."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import cached_property
import inspect
import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

LOGGER = logging.getLogger(__name__)


class ToolOutcome(BaseModel):
    """Structured result of a tool call. Tools report failures here."""

    success: bool
    data: str | None = None
    error: str | None = None

    def as_text(self) -> str:
        if self.success:
            return self.data or ""
        return f"Error: {self.error or 'unknown error'}"


class ParamsSchema(BaseModel):
    """Base class for tool parameter schemas."""

    model_config = ConfigDict(extra="ignore")


ToolHandler = Callable[[Any], "ToolOutcome | Awaitable[ToolOutcome]"]


@dataclass
class PluginTool:
    """A callable tool: name, description, typed parameters and a handler."""

    name: str
    description: str
    params_schema: type[ParamsSchema]
    handler: ToolHandler

    @cached_property
    def parameters(self) -> dict[str, Any]:
        """JSON schema for the parameters without pydantic-only keys."""
        raw = self.params_schema.model_json_schema()
        cleaned = {
            k: v for k, v in raw.items() if k not in ("$defs", "title", "$schema", "definitions")
        }
        cleaned.setdefault("type", "object")
        cleaned.setdefault("properties", {})
        cleaned.setdefault("required", [])
        for prop in cleaned["properties"].values():
            if isinstance(prop, dict):
                prop.pop("title", None)
        return cleaned

    def to_schema(self) -> dict[str, Any]:
        """Return the function-calling schema understood by chat providers."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    async def run(self, arguments: dict[str, Any] | str | None) -> ToolOutcome:
        """Validate ``arguments`` and invoke the handler."""
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as exc:
                return ToolOutcome(success=False, error=f"Invalid arguments: {exc}")
        try:
            params = self.params_schema.model_validate(arguments or {})
        except ValidationError as exc:
            return ToolOutcome(success=False, error=f"Invalid arguments: {exc}")
        if inspect.iscoroutinefunction(self.handler):
            return await self.handler(params)
        # Blocking file I/O runs in the thread pool to keep the UI loop free.
        result = await asyncio.to_thread(self.handler, params)
        if inspect.isawaitable(result):
            result = await result
        return result


@dataclass
class ToolPlugin:
    """A named bundle of tools registered with an agent."""

    name: str
    version: str
    description: str = ""
    tools: list[PluginTool] = field(default_factory=list)

    def get(self, tool_name: str) -> PluginTool | None:
        for tool in self.tools:
            if tool.name == tool_name:
                return tool
        return None
