"""Language-model service client for an OpenAI-compatible (LiteLLM) proxy."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agent_relay.ai.conversation import sanitize_assistant_message
from agent_relay.config import LLMConfig
from agent_relay.core.clock import Clock, time_grounding_text, utc_now
from agent_relay.core.errors import ModelInvocationError, ModelResponseError, SpeechError
from agent_relay.log import get_logger
from agent_relay.messenger.models import AudioOutput
from agent_relay.models.conversation import SystemTurn, Turn
from agent_relay.services.base import HttpService

logger = get_logger(__name__)

TRANSCRIPTION_PROMPT = "Please provide a complete transcription of the speech in this audio clip."


class Usage(BaseModel):
    model_config = ConfigDict(extra="allow")

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Choice(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: Optional[dict[str, Any]] = None
    finish_reason: Optional[str] = None


class ChatCompletion(BaseModel):
    """The subset of a chat-completions response the orchestrator relies on."""

    model_config = ConfigDict(extra="allow")

    choices: list[Choice] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)

    @field_validator("usage", mode="before")
    @classmethod
    def _default_usage(cls, value: Any) -> Any:
        # Some providers send "usage": null.
        return {} if value is None else value

    @property
    def first_choice(self) -> Choice:
        return self.choices[0]


class LLMService(ABC):
    """Abstract language-model backend."""

    @abstractmethod
    async def complete(
        self,
        model: str,
        conversation: Sequence[Turn],
        tools: list[dict[str, Any]] | None = None,
    ) -> ChatCompletion:
        """Return a validated completion with at least one choice carrying a message."""
        ...

    @abstractmethod
    async def speak(self, text: str, voice: str | None = None) -> AudioOutput:
        ...

    @abstractmethod
    async def transcribe(self, data: str, format: str = "ogg") -> str:
        ...


class LiteLLMClient(HttpService, LLMService):
    """Chat completions, speech synthesis and transcription over HTTP.

    ``complete`` retries transport errors, non-2xx statuses and malformed payloads
    with exponential backoff (``backoff_base`` seconds, doubled per attempt) and
    raises ``ModelInvocationError`` once ``max_attempts`` are spent. A system turn
    with the current local time is appended to every request; it is never logged.
    """

    def __init__(
        self,
        config: LLMConfig,
        timezone: str = "UTC",
        clock: Clock = utc_now,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(
            timeout=config.timeout,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {config.api_key}",
            },
            transport=transport,
        )
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._timezone = timezone
        self._clock = clock
        self._sleep = sleep

    @property
    def service_name(self) -> str:
        return "llm"

    async def complete(
        self,
        model: str,
        conversation: Sequence[Turn],
        tools: list[dict[str, Any]] | None = None,
    ) -> ChatCompletion:
        time_turn = SystemTurn.from_texts(time_grounding_text(self._clock(), self._timezone))
        payload: dict[str, Any] = {
            "model": model,
            "messages": [turn.to_payload() for turn in conversation] + [time_turn.to_payload()],
        }
        if tools:
            payload["tools"] = tools

        max_attempts = self._config.max_attempts
        last_error: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            logger.debug(
                "api_request",
                model=model,
                attempt=attempt,
                message_count=len(payload["messages"]),
                tool_count=len(tools or []),
            )
            try:
                completion = await self._post_completion(payload)
            except (httpx.HTTPError, ValueError, ModelResponseError) as e:
                last_error = e
                logger.warning(
                    "model_attempt_failed",
                    model=model,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e),
                )
                if attempt < max_attempts:
                    await self._sleep(self._config.backoff_base * 2 ** (attempt - 1))
                continue

            logger.debug(
                "api_response",
                model=model,
                finish_reason=completion.first_choice.finish_reason,
                prompt_tokens=completion.usage.prompt_tokens,
                completion_tokens=completion.usage.completion_tokens,
            )
            return completion

        logger.error("model_invocation_exhausted", model=model, attempts=max_attempts)
        raise ModelInvocationError(max_attempts, last_error) from last_error

    async def _post_completion(self, payload: dict[str, Any]) -> ChatCompletion:
        response = await self.client.post(f"{self._base_url}/chat/completions", json=payload)
        response.raise_for_status()
        completion = ChatCompletion.model_validate(response.json())
        if not completion.choices or completion.first_choice.message is None:
            raise ModelResponseError(f"Invalid LLM response: {response.text[:500]}")
        try:
            sanitize_assistant_message(completion.first_choice.message)
        except ValidationError as e:
            raise ModelResponseError(f"Invalid assistant message: {e}") from e
        return completion

    async def speak(self, text: str, voice: str | None = None) -> AudioOutput:
        payload = {
            "model": self._config.tts_model,
            "messages": [{"role": "user", "content": text}],
            "modalities": ["audio"],
            "audio": {"voice": voice or self._config.tts_voice, "format": self._config.tts_format},
        }
        try:
            response = await self.client.post(f"{self._base_url}/audio/speech", json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SpeechError(f"TTS request failed: {e}") from e

        audio = ((data.get("choices") or [{}])[0].get("message") or {}).get("audio") or {}
        if not audio.get("data"):
            raise SpeechError("TTS response missing audio data")
        return AudioOutput(data=audio["data"], format=audio.get("format") or self._config.tts_format)

    async def transcribe(self, data: str, format: str = "ogg") -> str:
        payload = {
            "model": self._config.stt_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": TRANSCRIPTION_PROMPT},
                        {"type": "input_audio", "input_audio": {"data": data, "format": format}},
                    ],
                }
            ],
        }
        try:
            response = await self.client.post(f"{self._base_url}/chat/completions", json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SpeechError(f"Audio transcription request failed: {e}") from e

        message = ((body.get("choices") or [{}])[0].get("message")) or {}
        return message.get("content") or ""
