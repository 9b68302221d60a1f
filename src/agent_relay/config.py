"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_AGENT_EXTENSIONS = 16


class AgentConfig(BaseModel):
    """Agent descriptor: prompt, model and the tools the agent may call."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    agent_id: str
    name: str = ""
    description: str = ""
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    allowed_tools: list[str] = Field(default_factory=list)
    voice: Optional[str] = None
    extensions: dict[str, str] = Field(default_factory=dict)

    @field_validator("extensions")
    @classmethod
    def _bound_extensions(cls, value: dict[str, str]) -> dict[str, str]:
        if len(value) > MAX_AGENT_EXTENSIONS:
            raise ValueError(f"at most {MAX_AGENT_EXTENSIONS} extension keys are allowed")
        return value


class LLMConfig(BaseModel):
    base_url: str = "http://localhost:4000"
    api_key: str = ""
    timeout: float = 120
    max_attempts: int = Field(default=3, ge=1)
    backoff_base: float = 0.5  # seconds, doubled per attempt
    tts_model: str = "gemini-2.5-flash-preview-tts"
    tts_voice: str = "Sulafat"
    tts_format: str = "mp3"
    stt_model: str = "gemini-2.5-flash-lite"


class ToolGatewayConfig(BaseModel):
    url: str = "http://localhost:8000/api/mcp"
    api_key: str = ""
    timeout: float = 60


class KnowledgeGraphConfig(BaseModel):
    enabled: bool = True
    search_url: str = "http://localhost:8001/api/search"
    episode_url: str = "http://localhost:8001/api/add-episode"
    queue_url: str = "http://localhost:8002/enqueue"
    api_key: str = ""
    queue_api_key: str = ""
    timeout: float = 30
    max_entities: int = 5
    max_facts: int = 5


class DeliveryConfig(BaseModel):
    url: str = "http://localhost:3000/api/send-response"
    api_key: str = ""
    timeout: float = 30


class OrchestratorConfig(BaseModel):
    staleness_hours: float = 3
    max_model_calls: int = Field(default=10, ge=1)
    default_model: str = "gemini-2.5-flash"
    default_system_prompt: str = "You are a helpful AI Agent."
    progress_notices: bool = True


class StorageConfig(BaseModel):
    db_path: str = "./data/agent_relay.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    data_dir: str = "./data"
    timezone: str = "Asia/Singapore"
    agents: list[AgentConfig]
    llm: LLMConfig = Field(default_factory=LLMConfig)
    tool_gateway: ToolGatewayConfig = Field(default_factory=ToolGatewayConfig)
    knowledge_graph: KnowledgeGraphConfig = Field(default_factory=KnowledgeGraphConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {value}") from e
        return value

    @model_validator(mode="after")
    def _unique_agents(self) -> AppConfig:
        if not self.agents:
            raise ValueError("at least one agent must be configured")
        ids = [agent.agent_id for agent in self.agents]
        duplicates = sorted({agent_id for agent_id in ids if ids.count(agent_id) > 1})
        if duplicates:
            raise ValueError(f"duplicate agent ids: {', '.join(duplicates)}")
        return self


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
