"""Conversation turns in the chat-completions message format.

Turns are immutable once built. They are stored in the log as their JSON payload and
replayed by parsing that payload back through ``TURN_ADAPTER``.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class _Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON payload sent to the model and stored in the log."""
        return self.model_dump(mode="json", exclude_none=True)


class ImageUrl(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    format: str = ""


class InputAudio(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: str
    format: str = ""


class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


class AudioContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["input_audio"] = "input_audio"
    input_audio: InputAudio


ContentPart = Annotated[Union[TextContent, ImageContent, AudioContent], Field(discriminator="type")]


class FunctionCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    arguments: str = "{}"  # JSON-encoded

    @field_validator("arguments", mode="before")
    @classmethod
    def _encode_arguments(cls, value: Any) -> Any:
        if value is None:
            return "{}"
        if isinstance(value, dict):
            return json.dumps(value)
        return value


class ToolCall(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    type: str = "function"
    function: FunctionCall
    index: Optional[int] = None


class ThinkingBlock(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    type: str = "thinking"
    thinking: str = ""


class SystemTurn(_Turn):
    role: Literal["system"] = "system"
    content: tuple[ContentPart, ...]

    @classmethod
    def from_texts(cls, *texts: str) -> SystemTurn:
        return cls(content=tuple(TextContent(text=text) for text in texts if text))


class UserTurn(_Turn):
    role: Literal["user"] = "user"
    content: tuple[ContentPart, ...]

    def first_text(self) -> str:
        return next((c.text for c in self.content if isinstance(c, TextContent)), "")

    def first_audio(self) -> InputAudio | None:
        return next((c.input_audio for c in self.content if isinstance(c, AudioContent)), None)


class AssistantTurn(_Turn):
    # Providers attach extra members (images, reasoning_content, ...); keep them verbatim.
    model_config = ConfigDict(frozen=True, extra="allow")

    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    tool_calls: Optional[tuple[ToolCall, ...]] = None
    thinking_blocks: Optional[tuple[ThinkingBlock, ...]] = None

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload.setdefault("content", None)
        return payload

    @property
    def requested_tools(self) -> tuple[ToolCall, ...]:
        return self.tool_calls or ()


class ToolTurn(_Turn):
    role: Literal["tool"] = "tool"
    content: str
    tool_call_id: str


Turn = Annotated[Union[SystemTurn, UserTurn, AssistantTurn, ToolTurn], Field(discriminator="role")]
Conversation = list[Turn]

TURN_ADAPTER: TypeAdapter[Turn] = TypeAdapter(Turn)


def parse_turn(payload: str | bytes) -> Turn:
    """Parse one stored turn payload."""
    return TURN_ADAPTER.validate_json(payload)
