import json

import pytest

from agent_relay.ai.conversation import build_user_turn, replay_turns, sanitize_assistant_message
from agent_relay.core.commands import parse_event
from agent_relay.core.types import Role
from agent_relay.models.conversation import (
    AssistantTurn,
    AudioContent,
    ImageContent,
    SystemTurn,
    TextContent,
    ToolTurn,
    UserTurn,
)
from agent_relay.storage.models import TurnContext


class TestBuildUserTurn:
    """Event parts to a multi-modal user turn."""

    def test_mixed_parts_in_order(self, make_event) -> None:
        event = make_event(
            messages=[
                {"type": "text", "text": "what is this?"},
                {"type": "image", "image": {"url": "https://img/cat.png", "format": "png"}},
                {"type": "audio", "audio": {"data": "b2dn", "format": "ogg"}},
            ]
        )

        turn = build_user_turn(event)

        assert isinstance(turn.content[0], TextContent)
        assert isinstance(turn.content[1], ImageContent)
        assert turn.content[1].image_url.url == "https://img/cat.png"
        assert isinstance(turn.content[2], AudioContent)
        assert turn.content[2].input_audio.format == "ogg"

    def test_drops_empty_parts(self, make_event) -> None:
        event = make_event(
            messages=[
                {"type": "text", "text": "keep"},
                {"type": "image", "image": {"url": "  "}},
                {"type": "audio", "audio": {"data": ""}},
                {"type": "image"},
            ]
        )

        turn = build_user_turn(event)

        assert len(turn.content) == 1

    def test_uses_parts_with_directives_removed(self, make_event) -> None:
        event = make_event("[a:weather-bot] what's the forecast")

        turn = build_user_turn(event, parse_event(event).parts)

        assert turn.first_text() == "what's the forecast"

    def test_location_becomes_leading_text(self, make_event) -> None:
        event = make_event(
            "nearest cafe?",
            metadata={"location": {"latitude": 1.3, "longitude": 103.8, "geocode_information": "Orchard Rd"}},
        )

        turn = build_user_turn(event)

        assert turn.content[0].text == "I am currently at:\nOrchard Rd"
        assert turn.content[1].text == "nearest cafe?"

    def test_payload_shape(self, make_event) -> None:
        turn = build_user_turn(make_event("hi"))

        assert turn.to_payload() == {"role": "user", "content": [{"type": "text", "text": "hi"}]}


class TestSanitizeAssistantMessage:
    def test_strips_thinking_signatures(self) -> None:
        turn = sanitize_assistant_message(
            {
                "role": "assistant",
                "content": "done",
                "thinking_blocks": [{"type": "thinking", "thinking": "hmm", "signature": "abc"}],
            }
        )

        payload = turn.to_payload()
        assert payload["thinking_blocks"] == [{"type": "thinking", "thinking": "hmm"}]

    def test_keeps_provider_extras_and_null_content(self) -> None:
        turn = sanitize_assistant_message(
            {"content": None, "reasoning_content": "step 1", "tool_calls": [
                {"id": "call-1", "type": "function", "function": {"name": "get_forecast", "arguments": "{}"}}
            ]}
        )

        payload = turn.to_payload()
        assert payload["role"] == "assistant"
        assert payload["content"] is None
        assert payload["reasoning_content"] == "step 1"
        assert turn.requested_tools[0].function.name == "get_forecast"


class TestReplay:
    """Logged turns replay to the same payloads they were built from."""

    @pytest.mark.asyncio
    async def test_replay_preserves_every_turn_kind(self, repo) -> None:
        context = TurnContext(model="m", session_id="s-1", agent_id="general", user_id="u-1")
        turns = [
            SystemTurn.from_texts("You are general.", "Facts about Ada"),
            UserTurn.model_validate(
                {
                    "content": [
                        {"type": "text", "text": "look"},
                        {"type": "image_url", "image_url": {"url": "https://img/1.png", "format": "png"}},
                    ]
                }
            ),
            sanitize_assistant_message(
                {
                    "content": None,
                    "tool_calls": [
                        {"id": "call-1", "type": "function", "function": {"name": "t", "arguments": "{\"a\": 1}"}}
                    ],
                }
            ),
            ToolTurn(content=json.dumps([{"type": "text", "text": "ok"}], indent=2), tool_call_id="call-1"),
            AssistantTurn(content="All done."),
        ]
        for turn in turns:
            await repo.append(turn, context)

        records = await repo.read_session("s-1")
        replayed = replay_turns(records)

        assert [r.role for r in records] == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
        assert [t.to_payload() for t in replayed] == [t.to_payload() for t in turns]

    @pytest.mark.asyncio
    async def test_unparsable_rows_are_skipped(self, repo, db) -> None:
        context = TurnContext(model="m", session_id="s-1")
        await repo.append(AssistantTurn(content="first"), context)
        await db.conn.execute(
            "UPDATE conversation_history SET message = ? WHERE session_id = ?", ("{not json", "s-1")
        )
        await db.conn.commit()
        await repo.append(AssistantTurn(content="second"), context)

        replayed = replay_turns(await repo.read_session("s-1"))

        assert [t.content for t in replayed] == ["second"]
