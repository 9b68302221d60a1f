"""Tool gateway backed by a remote MCP server over streamable HTTP."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncIterator, Callable

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client
from mcp.shared.exceptions import McpError

from agent_relay.ai.tools.base import ToolGateway, ToolSpec
from agent_relay.config import ToolGatewayConfig
from agent_relay.core.errors import ToolGatewayError
from agent_relay.log import get_logger
from agent_relay.services.base import Service

logger = get_logger(__name__)

_SCHEMA_NOISE = ("additionalProperties", "$schema")

SessionFactory = Callable[[], AbstractAsyncContextManager[ClientSession]]


class McpToolGateway(Service, ToolGateway):
    """Lists and calls tools on a remote MCP server.

    Each operation opens its own initialized ``ClientSession`` and closes it
    afterwards, so no connection outlives a request. Anything the SDK or the
    transport raises surfaces as ``ToolGatewayError``.
    """

    def __init__(self, config: ToolGatewayConfig, session_factory: SessionFactory | None = None):
        self._config = config
        self._session_factory = session_factory or self._open_session
        self._running = False

    @property
    def service_name(self) -> str:
        return "tool_gateway"

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def health_check(self) -> bool:
        return self._running

    @asynccontextmanager
    async def _open_session(self) -> AsyncIterator[ClientSession]:
        async with streamablehttp_client(
            self._config.url,
            headers={"x-api-key": self._config.api_key},
            timeout=timedelta(seconds=self._config.timeout),
        ) as (read, write, _):
            async with ClientSession(read, write) as session:
                await session.initialize()
                yield session

    async def list_tools(self) -> list[ToolSpec]:
        try:
            async with self._session_factory() as session:
                result = await session.list_tools()
        except Exception as e:
            raise _gateway_error(e) from e

        return [
            ToolSpec(
                name=tool.name,
                description=tool.description or "",
                parameters={k: v for k, v in (tool.inputSchema or {}).items() if k not in _SCHEMA_NOISE},
            )
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        logger.info("tool_execute", tool=name)
        try:
            async with self._session_factory() as session:
                result = await session.call_tool(name, arguments)
        except Exception as e:
            raise _gateway_error(e) from e

        if result.isError:
            # The model still gets the tool's own error text as the result content.
            logger.warning("tool_reported_error", tool=name)
        return result.model_dump(mode="json", exclude_none=True)


def _gateway_error(error: BaseException) -> ToolGatewayError:
    # Task groups inside the transport wrap single failures in exception groups.
    while isinstance(error, BaseExceptionGroup) and len(error.exceptions) == 1:
        error = error.exceptions[0]
    if isinstance(error, McpError):
        return ToolGatewayError(f"MCP error {error.error.code}: {error.error.message}")
    return ToolGatewayError(f"MCP request failed: {error}")
