"""Service lifecycle manager."""

from __future__ import annotations

from agent_relay.ai.client import LiteLLMClient
from agent_relay.ai.tools.mcp import McpToolGateway
from agent_relay.config import AppConfig
from agent_relay.log import get_logger
from agent_relay.messenger.integration import IntegrationChannel
from agent_relay.services.base import Service
from agent_relay.services.knowledge_graph import GraphitiClient

logger = get_logger(__name__)


class ServiceManager:
    """Manages startup and shutdown of the HTTP collaborators."""

    def __init__(self, config: AppConfig):
        self._llm = LiteLLMClient(config.llm, timezone=config.timezone)
        self._tool_gateway = McpToolGateway(config.tool_gateway)
        self._delivery = IntegrationChannel(config.delivery)
        self._knowledge_graph = (
            GraphitiClient(config.knowledge_graph) if config.knowledge_graph.enabled else None
        )

    def get_llm(self) -> LiteLLMClient:
        return self._llm

    def get_tool_gateway(self) -> McpToolGateway:
        return self._tool_gateway

    def get_delivery(self) -> IntegrationChannel:
        return self._delivery

    def get_knowledge_graph(self) -> GraphitiClient | None:
        return self._knowledge_graph

    def _services(self) -> list[Service]:
        services: list[Service] = [self._llm, self._tool_gateway, self._delivery]
        if self._knowledge_graph is not None:
            services.append(self._knowledge_graph)
        return services

    async def start_all(self) -> None:
        for service in self._services():
            await service.start()
        logger.info("all_services_started")

    async def stop_all(self) -> None:
        """Stop all services; a failing service does not keep the others open."""
        for service in self._services():
            try:
                await service.stop()
            except Exception as e:
                logger.error("service_stop_error", service=service.service_name, error=str(e))
        logger.info("all_services_stopped")

    async def health_check_all(self) -> dict[str, bool]:
        return {service.service_name: await service.health_check() for service in self._services()}
