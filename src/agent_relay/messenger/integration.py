"""Delivery through the channel-integration HTTP endpoint."""

from __future__ import annotations

from typing import Any, Sequence

import httpx

from agent_relay.config import DeliveryConfig
from agent_relay.log import get_logger
from agent_relay.messenger.base import ResponseChannel
from agent_relay.messenger.models import OutgoingMessage
from agent_relay.models.event import Event
from agent_relay.services.base import HttpService

logger = get_logger(__name__)


class IntegrationChannel(HttpService, ResponseChannel):
    """Posts outgoing messages to the integration service, which fans out per channel."""

    def __init__(self, config: DeliveryConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(
            timeout=config.timeout,
            headers={"Content-Type": "application/json", "x-api-key": config.api_key},
            transport=transport,
        )
        self._url = config.url

    @property
    def service_name(self) -> str:
        return "delivery"

    async def deliver(self, event: Event, messages: Sequence[OutgoingMessage]) -> None:
        payload = build_delivery_payload(event, messages)
        try:
            response = await self.client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            # Not retried.
            logger.error("delivery_failed", event_id=event.id, error=str(e))
            return
        logger.debug("delivery_sent", event_id=event.id, message_count=len(messages))


# Field names expected by the integration endpoint.
_WIRE_KEYS = {
    "user_id": "userId",
    "chat_id": "chatId",
    "agent_id": "agentId",
    "placeholder_message_id": "placeholderMessageId",
    "edit_message": "editMessage",
}


def _wire(fields: dict[str, Any]) -> dict[str, Any]:
    return {_WIRE_KEYS.get(key, key): value for key, value in fields.items() if value is not None}


def build_delivery_payload(event: Event, messages: Sequence[OutgoingMessage]) -> dict[str, Any]:
    recipients = [
        _wire({"channel": r.channel, "id": r.id, "user_id": r.user_id, "chat_id": r.chat_id})
        for r in event.recipients
    ]
    return {
        "id": event.id,
        "recipients": recipients,
        "messages": [_wire(message.to_dict()) for message in messages],
        "metadata": _wire({"source": event.sender.source, "agent_id": event.agent_id}),
    }
