"""Abstract outbound delivery interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Sequence

from agent_relay.messenger.models import OutgoingMessage
from agent_relay.models.event import Event


class ResponseChannel(ABC):
    """Pushes outgoing messages to the recipients named by an event.

    To add a new delivery backend, subclass this and implement ``deliver``.
    """

    @abstractmethod
    async def deliver(self, event: Event, messages: Sequence[OutgoingMessage]) -> None:
        """Send messages to every recipient of ``event``."""
        ...

    async def send(
        self,
        event: Event,
        messages: OutgoingMessage | Sequence[OutgoingMessage],
        include_placeholder: bool = False,
        edit_message: bool = False,
    ) -> None:
        """Deliver one or more messages, correlating the first with the placeholder message."""
        batch = [messages] if isinstance(messages, OutgoingMessage) else list(messages)
        if not batch or not event.has_recipients:
            return

        placeholder_id = event.metadata.placeholder_message_id
        if include_placeholder and placeholder_id is not None:
            batch[0] = replace(batch[0], placeholder_message_id=placeholder_id, edit_message=edit_message)
        await self.deliver(event, batch)

    async def notify(self, event: Event, text: str) -> None:
        """Progress notice that edits the placeholder message in place."""
        await self.send(
            event,
            OutgoingMessage.of_text(text),
            include_placeholder=event.metadata.placeholder_message_id is not None,
            edit_message=True,
        )
