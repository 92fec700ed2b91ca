"""Facade the turn controller uses to obtain agents and graphs."""

from __future__ import annotations

from collections.abc import Mapping
import logging

from ..providers import fallback_models
from .agent import Agent, AgentConfig
from .graph import Graph, GraphConfig, GraphStore
from .llm import LLMFactory, OllamaLLM

LOGGER = logging.getLogger(__name__)


class AgentRuntime:
    """Create agents, locate graphs and manage cached model clients."""

    def __init__(
        self,
        graphs_directory: str,
        environ: Mapping[str, str],
        timeout: float = 300,
        llm_factory: LLMFactory | None = None,
    ) -> None:
        self.graph_store = GraphStore(graphs_directory)
        self.llm_factory = llm_factory or LLMFactory(environ, timeout=timeout)

    async def create_agent(self, config: AgentConfig) -> Agent:
        LOGGER.info(
            "agent.created",
            extra={"event": "agent.created", "provider": config.provider, "model": config.model},
        )
        return Agent(config, self.llm_factory)

    async def find_graph(self, graph_id: str, agent: Agent) -> Graph | None:
        return await Graph.find_by_id(graph_id, agent, self.graph_store)

    def create_graph(self, config: GraphConfig, agent: Agent, graph_id: str | None = None) -> Graph:
        return Graph(config, agent, self.graph_store, graph_id=graph_id)

    def clear_llm_instances(self) -> None:
        self.llm_factory.clear()

    async def list_models(self, provider: str) -> list[str]:
        """Installed models for Ollama, the static list for everyone else."""
        if provider == "ollama":
            client = self.llm_factory.get("ollama", "")
            if isinstance(client, OllamaLLM):
                try:
                    names = await client.list_models()
                except Exception as exc:  # noqa: BLE001 - fall back to the static list.
                    LOGGER.info(
                        "agent.models.fallback",
                        extra={"event": "agent.models.fallback", "reason": str(exc)},
                    )
                else:
                    if names:
                        return names
        return fallback_models(provider)
