"""Durable conversation graphs: ordered task nodes plus agent memory."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
from typing import Any
from uuid import uuid4

from .agent import Agent, ChunkCallback, ToolCallCallback

LOGGER = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class GraphConfig:
    name: str
    description: str = ""
    max_concurrency: int = 1
    auto_link: bool = True
    timeout_seconds: float = 300


@dataclass
class TaskNode:
    """One turn queued on a graph."""

    id: str
    name: str
    prompt: str
    stream: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)
    status: str = "pending"
    result: str | None = None
    error: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TaskNode:
        known = {k: raw[k] for k in cls.__dataclass_fields__ if k in raw}
        return cls(**known)


@dataclass
class GraphRunResult:
    success: bool
    errors: dict[str, str] = field(default_factory=dict)
    results: dict[str, Any] = field(default_factory=dict)


class GraphStore:
    """One JSON file per graph under ``directory``."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def path(self, graph_id: str) -> Path:
        return self.directory / f"{graph_id}.json"

    def read(self, graph_id: str) -> dict[str, Any] | None:
        target = self.path(graph_id)
        if not target.exists():
            return None
        try:
            payload = json.loads(target.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning(
                "graph.record.skipped",
                extra={"event": "graph.record.skipped", "graph_id": graph_id, "reason": str(exc)},
            )
            return None
        return payload if isinstance(payload, dict) else None

    def write(self, graph_id: str, payload: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.path(graph_id)
        temp = target.with_name(f".{target.name}.{uuid4().hex[:8]}.tmp")
        temp.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        if os.name == "posix":
            temp.chmod(0o600)
        os.replace(temp, target)


class Graph:
    """Ordered task nodes executed one at a time by a single agent."""

    def __init__(
        self,
        config: GraphConfig,
        agent: Agent,
        store: GraphStore,
        graph_id: str | None = None,
    ) -> None:
        self.config = config
        self.agent = agent
        self._store = store
        self._id = graph_id or f"graph-{uuid4().hex[:12]}"
        self._nodes: list[TaskNode] = []
        self._running = False
        self.created_at = _now_iso()

    @property
    def id(self) -> str:
        return self._id

    @property
    def nodes(self) -> list[TaskNode]:
        return list(self._nodes)

    @property
    def status(self) -> str:
        if self._running:
            return "running"
        if not self._nodes:
            return "idle"
        if any(node.status == "failed" for node in self._nodes[-1:]):
            return "failed"
        if any(node.status == "pending" for node in self._nodes):
            return "pending"
        return "completed"

    def bind_agent(self, agent: Agent) -> None:
        """Run future nodes with ``agent``, carrying the conversation over."""
        if agent is not self.agent:
            agent.load_context(self.agent.get_context())
            self.agent = agent

    def add_task_node(
        self,
        name: str,
        prompt: str,
        *,
        stream: bool = True,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        node = TaskNode(
            id=f"node-{uuid4().hex[:12]}",
            name=name,
            prompt=prompt,
            stream=stream,
            metadata=dict(metadata or {}),
        )
        if self.config.auto_link and self._nodes:
            node.depends_on.append(self._nodes[-1].id)
        self._nodes.append(node)
        return node.id

    async def _run_node(
        self,
        node: TaskNode,
        stream: bool,
        on_chunk: ChunkCallback | None,
        on_tool_call: ToolCallCallback | None,
    ) -> str:
        return await self.agent.ask(
            node.prompt,
            on_chunk=on_chunk if stream and node.stream else None,
            on_tool_call=on_tool_call,
            attachments=node.metadata.get("attachments") or None,
            use_tools=node.metadata.get("tools_enabled"),
        )

    async def run(
        self,
        *,
        stream: bool = True,
        timeout: float | None = None,
        on_chunk: ChunkCallback | None = None,
        on_tool_call: ToolCallCallback | None = None,
    ) -> GraphRunResult:
        """Execute every pending node in order.

        Node failures are reported in ``errors`` keyed by node id; the graph
        itself only raises on cancellation.
        """
        limit = timeout or self.config.timeout_seconds
        outcome = GraphRunResult(success=True)
        self._running = True
        try:
            for node in [n for n in self._nodes if n.status == "pending"]:
                node.status = "running"
                try:
                    text = await asyncio.wait_for(
                        self._run_node(node, stream, on_chunk, on_tool_call), limit
                    )
                except asyncio.TimeoutError:
                    node.status, node.error = "failed", f"Task timed out after {limit:g}s"
                except asyncio.CancelledError:
                    node.status, node.error = "failed", "cancelled"
                    raise
                except Exception as exc:  # noqa: BLE001 - node failures are reported, not raised.
                    node.status, node.error = "failed", str(exc)
                else:
                    node.status, node.result = "completed", text
                    outcome.results[node.id] = {"response": text, "model": self.agent.model}
                    continue
                outcome.success = False
                outcome.errors[node.id] = node.error or "failed"
                LOGGER.warning(
                    "graph.node.failed",
                    extra={"event": "graph.node.failed", "graph_id": self._id, "node_id": node.id},
                )
        finally:
            self._running = False
        await self.save()
        return outcome

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self._id,
            "name": self.config.name,
            "description": self.config.description,
            "max_concurrency": self.config.max_concurrency,
            "auto_link": self.config.auto_link,
            "timeout_seconds": self.config.timeout_seconds,
            "created_at": self.created_at,
            "updated_at": _now_iso(),
            "nodes": [asdict(node) for node in self._nodes],
            "memory": self.agent.get_context(),
        }

    async def save(self) -> str:
        """Persist the graph and return its stable id."""
        await asyncio.to_thread(self._store.write, self._id, self.to_dict())
        return self._id

    @classmethod
    async def find_by_id(cls, graph_id: str, agent: Agent, store: GraphStore) -> Graph | None:
        """Reload a saved graph and restore ``agent``'s memory from it.

        A record with malformed fields is treated as missing.
        """
        payload = await asyncio.to_thread(store.read, graph_id)
        if payload is None:
            return None
        try:
            config = GraphConfig(
                name=str(payload.get("name") or "Chat Session"),
                description=str(payload.get("description") or ""),
                max_concurrency=int(payload.get("max_concurrency") or 1),
                auto_link=bool(payload.get("auto_link", True)),
                timeout_seconds=float(payload.get("timeout_seconds") or 300),
            )
            nodes = [
                TaskNode.from_dict(raw) for raw in payload.get("nodes") or [] if isinstance(raw, dict)
            ]
            memory = [
                m for m in payload.get("memory") or [] if isinstance(m, dict) and "role" in m
            ]
        except (TypeError, ValueError) as exc:
            LOGGER.warning(
                "graph.record.invalid",
                extra={"event": "graph.record.invalid", "graph_id": graph_id, "reason": str(exc)},
            )
            return None
        graph = cls(config, agent, store, graph_id=graph_id)
        graph.created_at = str(payload.get("created_at") or graph.created_at)
        graph._nodes = nodes
        agent.load_context(memory)
        return graph
