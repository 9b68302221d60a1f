from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

import pytest
import pytest_asyncio

from agent_relay.ai.client import ChatCompletion, LLMService
from agent_relay.ai.tools.base import ToolGateway, ToolSpec
from agent_relay.messenger.base import ResponseChannel
from agent_relay.messenger.models import AudioOutput, OutgoingMessage
from agent_relay.models.conversation import Turn
from agent_relay.models.event import Event
from agent_relay.storage.conversation_repo import ConversationRepository
from agent_relay.storage.database import Database

NOW = datetime(2026, 10, 18, 6, 30, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock; advance it to simulate time passing between requests."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


def completion(
    content: str | None = None,
    finish_reason: str = "stop",
    tool_calls: list[dict[str, Any]] | None = None,
    **extra: Any,
) -> ChatCompletion:
    """Build a chat-completions response with one choice."""
    message: dict[str, Any] = {"role": "assistant", "content": content, **extra}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return ChatCompletion.model_validate(
        {
            "choices": [{"message": message, "finish_reason": finish_reason}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17},
        }
    )


def tool_call(call_id: str, name: str, arguments: str = "{}") -> dict[str, Any]:
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


class ScriptedLLM(LLMService):
    """Returns queued completions in order and records every conversation it saw."""

    def __init__(self, responses: Sequence[ChatCompletion] = ()) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.spoken: list[tuple[str, str | None]] = []
        self.speak_error: Exception | None = None
        self.transcribe_error: Exception | None = None

    async def complete(self, model, conversation, tools=None) -> ChatCompletion:
        self.calls.append({"model": model, "conversation": list(conversation), "tools": tools})
        if not self.responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        return self.responses.pop(0)

    async def speak(self, text: str, voice: str | None = None) -> AudioOutput:
        self.spoken.append((text, voice))
        if self.speak_error is not None:
            raise self.speak_error
        return AudioOutput(data="c3BlZWNo", format="mp3")

    async def transcribe(self, data: str, format: str = "ogg") -> str:
        if self.transcribe_error is not None:
            raise self.transcribe_error
        return "transcribed speech"


class FakeGateway(ToolGateway):
    """In-memory tool catalog; ``results`` maps tool name to a value or an exception."""

    def __init__(self, tools: Sequence[ToolSpec] = (), results: dict[str, Any] | None = None) -> None:
        self.tools = list(tools)
        self.results = results or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def list_tools(self) -> list[ToolSpec]:
        return list(self.tools)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        result = self.results.get(name, {"result": {"content": [{"type": "text", "text": "ok"}]}})
        if isinstance(result, Exception):
            raise result
        return result


class RecordingChannel(ResponseChannel):
    """Collects every delivered batch instead of sending it."""

    def __init__(self) -> None:
        self.deliveries: list[list[OutgoingMessage]] = []

    async def deliver(self, event: Event, messages: Sequence[OutgoingMessage]) -> None:
        self.deliveries.append(list(messages))

    @property
    def texts(self) -> list[str | None]:
        return [message.text for batch in self.deliveries for message in batch]


@pytest.fixture
def clock() -> FakeClock:
    """Provide a settable clock fixed at a known instant."""
    return FakeClock()


@pytest_asyncio.fixture
async def db():
    """Provide an initialized in-memory database."""
    database = Database(":memory:")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def repo(db: Database, clock: FakeClock) -> ConversationRepository:
    """Provide a conversation log sharing the test clock."""
    return ConversationRepository(db, clock=clock)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory for events; keyword arguments override the defaults."""

    def _make(
        text: str | None = "hello",
        *,
        user_id: str | None = "u-1",
        agent_id: str = "general",
        is_bot: bool | None = False,
        recipients: list[dict[str, Any]] | None = None,
        messages: list[dict[str, Any]] | None = None,
        metadata: dict[str, Any] | None = None,
        **sender: Any,
    ) -> Event:
        return Event.model_validate(
            {
                "id": "evt-1",
                "timestamp": NOW.isoformat(),
                "agentId": agent_id,
                "sender": {
                    "source": "telegram",
                    "is_bot": is_bot,
                    "user_id": user_id,
                    "chat_id": "c-1",
                    "first_name": "Ada",
                    "username": "ada",
                    **sender,
                },
                "messages": messages if messages is not None else [{"type": "text", "text": text}],
                "recipients": recipients or [],
                "metadata": metadata or {},
            }
        )

    return _make


def payloads(conversation: Sequence[Turn]) -> list[dict[str, Any]]:
    return [turn.to_payload() for turn in conversation]
