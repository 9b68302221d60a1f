"""Application wiring: builds every collaborator and injects it into the event handler."""

from __future__ import annotations

from datetime import timedelta

from agent_relay.agents.registry import AgentRegistry
from agent_relay.ai.handler import EventHandler
from agent_relay.ai.tools.registry import ToolRegistry
from agent_relay.config import AppConfig
from agent_relay.core.enrichment import ContextEnricher, EpisodeLogger
from agent_relay.core.session import SessionResolver
from agent_relay.log import get_logger
from agent_relay.messenger.models import OutgoingReply
from agent_relay.models.event import Event
from agent_relay.services.service_manager import ServiceManager
from agent_relay.storage.conversation_repo import ConversationRepository
from agent_relay.storage.database import Database

logger = get_logger(__name__)


class AgentRelayApp:
    """Top-level application object."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.conversation_repo = ConversationRepository(self.db)
        self.service_manager = ServiceManager(config)
        self.agent_registry = AgentRegistry(config.agents, config.orchestrator)
        self.tool_registry = ToolRegistry(self.service_manager.get_tool_gateway())

        graph = self.service_manager.get_knowledge_graph()
        channel = self.service_manager.get_delivery()
        llm = self.service_manager.get_llm()
        orchestrator = config.orchestrator

        self.episode_logger = EpisodeLogger(graph, llm)
        self.session_resolver = SessionResolver(
            self.conversation_repo,
            ContextEnricher(
                graph,
                channel,
                max_entities=config.knowledge_graph.max_entities,
                max_facts=config.knowledge_graph.max_facts,
                progress_notices=orchestrator.progress_notices,
            ),
            staleness=timedelta(hours=orchestrator.staleness_hours),
        )
        self.handler = EventHandler(
            agents=self.agent_registry,
            repo=self.conversation_repo,
            llm=llm,
            tools=self.tool_registry,
            channel=channel,
            sessions=self.session_resolver,
            episodes=self.episode_logger,
            max_model_calls=orchestrator.max_model_calls,
            progress_notices=orchestrator.progress_notices,
        )

    async def start(self) -> None:
        """Open the log store and the service clients."""
        await self.db.initialize()
        await self.service_manager.start_all()
        logger.info("agent_relay_started", agents=self.agent_registry.ids())

    async def stop(self) -> None:
        """Let background episodes finish, then close everything."""
        await self.episode_logger.drain()
        await self.service_manager.stop_all()
        await self.db.close()
        logger.info("agent_relay_stopped")

    async def handle_event(self, event: Event) -> OutgoingReply | None:
        return await self.handler.handle(event)

    async def __aenter__(self) -> AgentRelayApp:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
