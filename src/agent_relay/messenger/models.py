"""Outbound message models shared by the delivery channel and the caller reply."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Optional


@dataclass(frozen=True, slots=True)
class AudioOutput:
    data: str  # base64
    format: str = "mp3"


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    type: Literal["text", "audio"]
    text: Optional[str] = None
    audio: Optional[AudioOutput] = None
    placeholder_message_id: Optional[str] = None
    edit_message: bool = False

    @classmethod
    def of_text(cls, text: str) -> OutgoingMessage:
        return cls(type="text", text=text)

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value not in (None, False)}


@dataclass(frozen=True, slots=True)
class OutgoingReply:
    """Reply returned to the caller when the event names no recipients."""

    id: str
    messages: list[OutgoingMessage]
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "messages": [message.to_dict() for message in self.messages],
            "metadata": dict(self.metadata),
        }
