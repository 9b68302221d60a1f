"""Tool schema entries and the abstract tool gateway."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """One tool as advertised by the gateway."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the chat-completions function tool format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolGateway(ABC):
    """Executes named tools on behalf of the model."""

    @abstractmethod
    async def list_tools(self) -> list[ToolSpec]:
        """Full catalog of tools the gateway can run."""
        ...

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """Run one tool and return its raw result; raises ToolGatewayError on failure."""
        ...
