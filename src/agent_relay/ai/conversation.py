"""Build conversation turns from inbound events and from the conversation log."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from pydantic import ValidationError

from agent_relay.core.types import PartType
from agent_relay.log import get_logger
from agent_relay.models.conversation import (
    AssistantTurn,
    AudioContent,
    ContentPart,
    ImageContent,
    ImageUrl,
    InputAudio,
    TextContent,
    Turn,
    UserTurn,
    parse_turn,
)
from agent_relay.models.event import Event, MessagePart
from agent_relay.storage.models import ConversationRecord

logger = get_logger(__name__)

_SIGNATURE_FIELDS = ("signature",)


def build_user_turn(event: Event, parts: Sequence[MessagePart] | None = None) -> UserTurn:
    """Convert the event's message parts into one multi-modal user turn.

    *parts* replaces ``event.messages`` when directives have already been stripped.
    Blank text, images without a URL and audio without data are dropped. A location
    attached to the event becomes a leading text entry.
    """
    content: list[ContentPart] = []

    location = event.metadata.location
    if location is not None and location.geocode_information:
        content.append(TextContent(text=f"I am currently at:\n{location.geocode_information}"))

    for part in event.messages if parts is None else parts:
        if part.type == PartType.TEXT and part.text and part.text.strip():
            content.append(TextContent(text=part.text))
        elif part.type == PartType.IMAGE and part.image and part.image.url.strip():
            content.append(
                ImageContent(image_url=ImageUrl(url=part.image.url, format=part.image.format))
            )
        elif part.type == PartType.AUDIO and part.audio and part.audio.data.strip():
            content.append(
                AudioContent(input_audio=InputAudio(data=part.audio.data, format=part.audio.format))
            )

    return UserTurn(content=tuple(content))


def replay_turns(records: Iterable[ConversationRecord]) -> list[Turn]:
    """Rebuild the in-memory conversation from logged records, in log order."""
    turns: list[Turn] = []
    for record in records:
        try:
            turns.append(parse_turn(record.message))
        except ValidationError as e:
            logger.error("turn_parse_failed", record_id=record.id, error=str(e))
    return turns


def sanitize_assistant_message(message: dict[str, Any]) -> AssistantTurn:
    """Build an assistant turn from a raw model message, dropping reasoning signatures."""
    cleaned = dict(message)
    blocks = cleaned.get("thinking_blocks")
    if isinstance(blocks, list):
        cleaned["thinking_blocks"] = [
            {k: v for k, v in block.items() if k not in _SIGNATURE_FIELDS}
            for block in blocks
            if isinstance(block, dict)
        ]
    cleaned["role"] = "assistant"
    return AssistantTurn.model_validate(cleaned)
