import pytest

from agent_relay.core.errors import EventValidationError
from agent_relay.models.event import Event, validate_event

BASE = {
    "id": "evt-1",
    "timestamp": "2026-10-18T06:30:00Z",
    "agentId": "general",
    "sender": {"source": "telegram", "is_bot": False, "user_id": 42, "chat_id": -100, "first_name": "Ada"},
    "messages": [{"type": "text", "text": "hi"}],
}


def _event(**overrides) -> Event:
    return Event.model_validate({**BASE, **overrides})


class TestEventModel:
    def test_numeric_ids_are_coerced_to_strings(self) -> None:
        event = _event()

        assert event.sender.user_id == "42"
        assert event.sender.chat_id == "-100"
        assert event.agent_id == "general"

    def test_camel_case_metadata(self) -> None:
        event = _event(metadata={"sessionId": "s-1", "placeholderMessageId": 7})

        assert event.metadata.session_id == "s-1"
        assert event.metadata.placeholder_message_id == "7"

    def test_audio_input(self) -> None:
        assert not _event().has_audio_input
        assert _event(messages=[{"type": "audio", "audio": {"data": "b2dn", "format": "ogg"}}]).has_audio_input

    def test_human_requires_explicit_false(self) -> None:
        assert _event().sender.is_human
        assert not _event(sender={"source": "web"}).sender.is_human


class TestValidateEvent:
    def test_valid(self) -> None:
        validate_event(_event(recipients=[{"channel": "telegram", "chatId": "c-1"}, {"channel": "web", "id": "w-1"}]))

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"sender": {"is_bot": False}}, "missing sender source"),
            ({"messages": []}, "missing messages"),
            ({"agentId": None}, "No agent specified"),
            ({"messages": [{"type": "text", "text": ""}]}, "Text Event missing text"),
            ({"recipients": [{"id": "x"}]}, "Recipient missing channel"),
            ({"recipients": [{"channel": "telegram", "id": "x"}]}, "Telegram recipient must have chat_id"),
            ({"recipients": [{"channel": "whatsapp", "chat_id": "x"}]}, 'channel "whatsapp" must have id'),
        ],
    )
    def test_invalid(self, overrides: dict, message: str) -> None:
        with pytest.raises(EventValidationError, match=message):
            validate_event(_event(**overrides))
