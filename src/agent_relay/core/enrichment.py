"""Best-effort knowledge-graph side calls.

Both capabilities swallow and log their own failures: a failed lookup means the
session simply starts without extra context, and a failed episode is dropped.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from agent_relay.ai.client import LLMService
from agent_relay.core.clock import Clock, utc_now
from agent_relay.log import get_logger
from agent_relay.messenger.base import ResponseChannel
from agent_relay.models.conversation import UserTurn
from agent_relay.models.event import Event, Sender
from agent_relay.services.knowledge_graph import Episode, GraphSearchResult, KnowledgeGraph

logger = get_logger(__name__)

RETRIEVING_NOTICE = "🔍 Retrieving context from previous interactions..."
STALE_LOCATION_CAVEAT = (
    "If there are any location information provided, it is probably outdated "
    "and you should confirm the user's location if it is required."
)


def format_enrichment(
    result: GraphSearchResult,
    subject: str,
    max_entities: int = 5,
    max_facts: int = 5,
) -> str | None:
    """Render search hits as a block appended to the system prompt, or None if empty."""
    entities = "\n".join(f"- {node.name}: {node.summary}" for node in result.nodes[:max_entities])
    facts = "\n".join(f"- {edge.fact}" for edge in result.edges[:max_facts])
    if not entities and not facts:
        return None

    text = f"Here are relevant facts about {subject} from the previous conversations:\n\n"
    if entities:
        text += f"🧠 Entities:\n{entities}\n\n"
    if facts:
        text += f"🔗 Relationships:\n{facts}\n\n"
    return text + STALE_LOCATION_CAVEAT


class ContextEnricher:
    """Looks up what the knowledge graph remembers about the sender."""

    def __init__(
        self,
        graph: KnowledgeGraph | None,
        channel: ResponseChannel,
        max_entities: int = 5,
        max_facts: int = 5,
        progress_notices: bool = True,
    ):
        self._graph = graph
        self._channel = channel
        self._max_entities = max_entities
        self._max_facts = max_facts
        self._progress_notices = progress_notices

    async def try_enrich(self, event: Event) -> str | None:
        sender = event.sender
        if not sender.is_human:
            return None

        if self._progress_notices and event.has_recipients:
            await self._channel.notify(event, RETRIEVING_NOTICE)

        name = sender.display_name
        if not name:
            logger.info("enrichment_skipped", reason="no_display_name")
            return None
        if self._graph is None:
            return None

        try:
            result = await self._graph.search(name)
        except Exception as e:
            logger.warning("enrichment_failed", name=name, error=str(e))
            return None

        logger.info(
            "enrichment_found",
            name=name,
            node_count=len(result.nodes),
            edge_count=len(result.edges),
        )
        return format_enrichment(
            result,
            subject=sender.first_name or sender.user_id or name,
            max_entities=self._max_entities,
            max_facts=self._max_facts,
        )


class EpisodeLogger:
    """Records a finished exchange as a knowledge-graph episode, in the background."""

    def __init__(self, graph: KnowledgeGraph | None, llm: LLMService, clock: Clock = utc_now):
        self._graph = graph
        self._llm = llm
        self._clock = clock
        self._pending: set[asyncio.Task[Any]] = set()

    def submit(
        self,
        session_id: str,
        turn_count: int,
        sender: Sender,
        agent_id: str,
        user_turn: UserTurn,
        has_audio_input: bool = False,
    ) -> None:
        """Schedule ``try_log`` without waiting for it."""
        if self._graph is None:
            return
        self._track(
            self.try_log(session_id, turn_count, sender, agent_id, user_turn, has_audio_input)
        )

    async def try_log(
        self,
        session_id: str,
        turn_count: int,
        sender: Sender,
        agent_id: str,
        user_turn: UserTurn,
        has_audio_input: bool = False,
    ) -> Episode | None:
        if self._graph is None:
            return None

        if has_audio_input:
            audio = user_turn.first_audio()
            try:
                text = await self._llm.transcribe(audio.data, audio.format) if audio else ""
            except Exception as e:
                logger.warning("stt_failed", session_id=session_id, error=str(e))
                return None
        else:
            text = user_turn.first_text()

        display_name = sender.username or sender.first_name or "User"
        episode = Episode(
            name=f"{session_id}_{turn_count}",
            body=f"{display_name}: {text}",
            source_description=f"Chat with AI Agent {agent_id}",
            reference_time=self._clock(),
        )
        try:
            await self._graph.add_episode(episode)
        except Exception as e:
            logger.warning("episode_log_failed", episode=episode.name, error=str(e))
            return None
        return episode

    async def drain(self) -> None:
        """Wait for every scheduled episode to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _track(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
