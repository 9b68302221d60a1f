"""Registry of configured agents."""

from __future__ import annotations

from dataclasses import dataclass

from agent_relay.config import AgentConfig, OrchestratorConfig


@dataclass(frozen=True, slots=True)
class Agent:
    """An agent descriptor with prompt and model defaults resolved."""

    config: AgentConfig
    model: str
    system_prompt: str

    @property
    def agent_id(self) -> str:
        return self.config.agent_id

    @property
    def allowed_tools(self) -> list[str]:
        return self.config.allowed_tools

    @property
    def voice(self) -> str | None:
        return self.config.voice


class AgentRegistry:
    """Looks up agent descriptors by id."""

    def __init__(self, agents: list[AgentConfig], defaults: OrchestratorConfig):
        self._agents: dict[str, AgentConfig] = {a.agent_id: a for a in agents}
        self._defaults = defaults

    async def get(self, agent_id: str) -> Agent | None:
        config = self._agents.get(agent_id)
        if config is None:
            return None
        return Agent(
            config=config,
            model=config.model or self._defaults.default_model,
            system_prompt=config.system_prompt or self._defaults.default_system_prompt,
        )

    def ids(self) -> list[str]:
        return list(self._agents.keys())
