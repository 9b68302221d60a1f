"""Per-agent tool schema built from the gateway catalog."""

from __future__ import annotations

from typing import Any

from agent_relay.ai.tools.base import ToolGateway
from agent_relay.log import get_logger

logger = get_logger(__name__)

# Capabilities served by the model provider itself rather than the gateway.
BUILTIN_TOOLS: dict[str, dict[str, Any]] = {
    "google_search": {"googleSearch": {}},
    "google_maps": {"googleMaps": {}},
    "google_url_context": {"urlContext": {}},
}


class ToolRegistry:
    """Filters the gateway's tools down to an agent's allow-list."""

    def __init__(self, gateway: ToolGateway):
        self._gateway = gateway

    @property
    def gateway(self) -> ToolGateway:
        return self._gateway

    async def schema_for(self, allowed_tools: list[str]) -> list[dict[str, Any]]:
        """Tool definitions for the model: allowed gateway tools, then allowed built-ins."""
        if not allowed_tools:
            return []

        allowed = set(allowed_tools)
        catalog = await self._gateway.list_tools()
        schema = [spec.to_api_dict() for spec in catalog if spec.name in allowed]

        builtins = [dict(BUILTIN_TOOLS[name]) for name in allowed_tools if name in BUILTIN_TOOLS]
        if builtins:
            logger.info("builtin_tools_added", tools=[n for n in allowed_tools if n in BUILTIN_TOOLS])
        schema.extend(builtins)
        return schema
