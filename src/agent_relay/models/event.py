"""Inbound event model shared by every channel integration."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from agent_relay.core.errors import EventValidationError
from agent_relay.core.types import PartType


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True, populate_by_name=True)


class ImageRef(_Frozen):
    url: str = ""
    format: str = ""


class AudioBlob(_Frozen):
    data: str = ""  # base64
    format: str = ""


class MessagePart(_Frozen):
    type: PartType
    text: Optional[str] = None
    image: Optional[ImageRef] = None
    audio: Optional[AudioBlob] = None


class Sender(_Frozen):
    source: Optional[str] = None  # channel the event arrived on
    is_bot: Optional[bool] = None
    id: Optional[str] = None
    message_id: Optional[str] = None
    user_id: Optional[str] = None
    chat_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_human(self) -> bool:
        """Only senders explicitly flagged as non-bots get enrichment and progress notices."""
        return self.is_bot is False

    @property
    def display_name(self) -> str | None:
        for candidate in (self.first_name, self.username):
            if candidate and candidate.strip():
                return candidate.strip()
        return None


class Recipient(_Frozen):
    channel: str = ""
    id: Optional[str] = None
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))
    chat_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("chat_id", "chatId"))
    message_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("message_id", "messageId")
    )


class Location(_Frozen):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geocode_information: Optional[str] = None


class EventMetadata(_Frozen):
    session_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("session_id", "sessionId")
    )
    placeholder_message_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("placeholder_message_id", "placeholderMessageId"),
    )
    location: Optional[Location] = None


class Event(_Frozen):
    id: str
    timestamp: datetime
    agent_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("agent_id", "agentId"))
    sender: Sender = Field(default_factory=Sender)
    messages: tuple[MessagePart, ...] = ()
    recipients: tuple[Recipient, ...] = ()
    metadata: EventMetadata = Field(default_factory=EventMetadata)

    @property
    def has_recipients(self) -> bool:
        return bool(self.recipients)

    @property
    def has_audio_input(self) -> bool:
        return any(part.type == PartType.AUDIO for part in self.messages)


def validate_event(event: Event) -> None:
    """Reject events that cannot be processed at all.

    Raises EventValidationError before any side effect happens.
    """
    if not event.sender.source:
        raise EventValidationError("Invalid Event: missing sender source")
    if not event.messages:
        raise EventValidationError("Invalid Event: missing messages")
    if not event.agent_id:
        raise EventValidationError("No agent specified")

    for part in event.messages:
        if part.type == PartType.TEXT and not part.text:
            raise EventValidationError("Text Event missing text")

    for recipient in event.recipients:
        if not recipient.channel:
            raise EventValidationError("Recipient missing channel")
        if recipient.channel == "telegram" and not recipient.chat_id:
            raise EventValidationError("Telegram recipient must have chat_id")
        if recipient.channel != "telegram" and not recipient.id:
            raise EventValidationError(f'Recipient for channel "{recipient.channel}" must have id')
