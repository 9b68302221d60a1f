"""Knowledge-graph service client (Graphiti search and queued episode ingestion)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from agent_relay.config import KnowledgeGraphConfig
from agent_relay.core.errors import KnowledgeGraphError
from agent_relay.log import get_logger
from agent_relay.services.base import HttpService

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class GraphNode:
    name: str
    summary: str = ""


@dataclass(frozen=True, slots=True)
class GraphEdge:
    fact: str


@dataclass(frozen=True, slots=True)
class GraphSearchResult:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.nodes and not self.edges


@dataclass(frozen=True, slots=True)
class Episode:
    name: str
    body: str
    source_description: str
    reference_time: datetime
    source: str = "message"


class KnowledgeGraph(ABC):
    """Keyed text search over remembered entities and facts, plus episode ingestion."""

    @abstractmethod
    async def search(self, text: str) -> GraphSearchResult:
        ...

    @abstractmethod
    async def add_episode(self, episode: Episode) -> None:
        ...


class GraphitiClient(HttpService, KnowledgeGraph):
    """Searches Graphiti directly; episodes go through the request queue."""

    def __init__(self, config: KnowledgeGraphConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(
            timeout=config.timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self._config = config

    @property
    def service_name(self) -> str:
        return "knowledge_graph"

    async def search(self, text: str) -> GraphSearchResult:
        try:
            response = await self.client.post(
                self._config.search_url,
                json={"text": text},
                headers={"Authorization": f"Bearer {self._config.api_key}"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise KnowledgeGraphError(f"Graphiti search failed: {e}") from e
        return parse_search_result(data)

    async def add_episode(self, episode: Episode) -> None:
        job = {
            "url": self._config.episode_url,
            "method": "POST",
            "headers": {
                "Authorization": f"Bearer {self._config.api_key}",
                "Content-Type": "application/json",
            },
            "payload": {
                "name": episode.name,
                "episode_body": episode.body,
                "source": episode.source,
                "source_description": episode.source_description,
                "reference_time": episode.reference_time.isoformat(),
            },
        }
        try:
            response = await self.client.post(
                self._config.queue_url,
                json=job,
                headers={"Authorization": f"Bearer {self._config.queue_api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise KnowledgeGraphError(f"Graphiti enqueue failed: {e}") from e
        logger.info("episode_queued", name=episode.name)


def parse_search_result(data: Any) -> GraphSearchResult:
    results = data.get("results", data) if isinstance(data, dict) else None
    if not isinstance(results, dict):
        return GraphSearchResult()
    nodes = [
        GraphNode(name=str(n.get("name", "")), summary=str(n.get("summary", "")))
        for n in results.get("nodes") or []
        if isinstance(n, dict)
    ]
    edges = [
        GraphEdge(fact=str(e["fact"]))
        for e in results.get("edges") or []
        if isinstance(e, dict) and e.get("fact")
    ]
    return GraphSearchResult(nodes=nodes, edges=edges)
