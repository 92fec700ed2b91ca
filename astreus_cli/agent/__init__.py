"""In-process agent runtime: LLM clients, tool plugins, agents and graphs."""

from __future__ import annotations

from .agent import Agent, AgentConfig
from .graph import Graph, GraphConfig, GraphRunResult, GraphStore, TaskNode
from .plugins import ParamsSchema, PluginTool, ToolOutcome, ToolPlugin
from .runtime import AgentRuntime

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentRuntime",
    "Graph",
    "GraphConfig",
    "GraphRunResult",
    "GraphStore",
    "ParamsSchema",
    "PluginTool",
    "TaskNode",
    "ToolOutcome",
    "ToolPlugin",
]
