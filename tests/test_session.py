import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from agent_relay.agents.registry import Agent
from agent_relay.config import AgentConfig
from agent_relay.core.commands import parse_event
from agent_relay.core.session import SessionAction, SessionResolver, decide_session
from agent_relay.core.types import Role, SessionCommand
from agent_relay.models.conversation import AssistantTurn, SystemTurn, UserTurn
from agent_relay.storage.models import ConversationRecord, TurnContext
from conftest import NOW


def _record(age: timedelta, agent_id: str = "general", session_id: str = "s-old") -> ConversationRecord:
    return ConversationRecord(
        id="r-1",
        role=Role.USER,
        message=json.dumps({"role": "user", "content": [{"type": "text", "text": "hi"}]}),
        model="m",
        timestamp=NOW - age,
        session_id=session_id,
        agent_id=agent_id,
        user_id="u-1",
    )


def _agent(agent_id: str = "general", prompt: str = "You are general.") -> Agent:
    return Agent(config=AgentConfig(agent_id=agent_id), model="gemini-2.5-flash", system_prompt=prompt)


class TestDecideSession:
    """Reset / continue / switch decision for user-bound requests."""

    def test_new_command_resets(self) -> None:
        decision = decide_session(SessionCommand.NEW, None, [_record(timedelta(minutes=1))], NOW)

        assert decision.action == SessionAction.RESET
        assert decision.reason == "command"

    def test_no_history_resets(self) -> None:
        decision = decide_session(None, None, [], NOW)

        assert decision.action == SessionAction.RESET
        assert decision.reason == "no_history"

    @pytest.mark.parametrize(
        ("age", "expected"),
        [
            (timedelta(hours=2, minutes=59), SessionAction.CONTINUE),
            (timedelta(hours=3), SessionAction.CONTINUE),
            (timedelta(hours=3, seconds=1), SessionAction.RESET),
            (timedelta(hours=4), SessionAction.RESET),
        ],
    )
    def test_staleness_boundary(self, age: timedelta, expected: SessionAction) -> None:
        decision = decide_session(None, None, [_record(age)], NOW)

        assert decision.action == expected

    def test_staleness_threshold_is_configurable(self) -> None:
        decision = decide_session(None, None, [_record(timedelta(minutes=31))], NOW, timedelta(minutes=30))

        assert decision.action == SessionAction.RESET

    def test_override_of_a_different_agent_switches(self) -> None:
        decision = decide_session(None, "weather-bot", [_record(timedelta(minutes=5))], NOW)

        assert decision.action == SessionAction.CONTINUE_WITH_AGENT_SWITCH
        assert len(decision.history) == 1

    def test_override_of_the_same_agent_continues(self) -> None:
        decision = decide_session(None, "general", [_record(timedelta(minutes=5))], NOW)

        assert decision.action == SessionAction.CONTINUE

    def test_stale_history_wins_over_override(self) -> None:
        decision = decide_session(None, "weather-bot", [_record(timedelta(hours=5))], NOW)

        assert decision.action == SessionAction.RESET
        assert decision.reason == "stale"


@pytest.fixture
def enricher() -> AsyncMock:
    mock = AsyncMock()
    mock.try_enrich = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def resolver(repo, enricher, clock) -> SessionResolver:
    return SessionResolver(repo, enricher, clock=clock)


async def _seed(repo, session_id: str, agent_id: str = "general", user_id: str | None = "u-1") -> None:
    context = TurnContext(model="m", session_id=session_id, agent_id=agent_id, user_id=user_id)
    await repo.append(SystemTurn.from_texts("You are general."), context)
    await repo.append(UserTurn.model_validate({"content": [{"type": "text", "text": "hi"}]}), context)
    await repo.append(AssistantTurn(content="hello!"), context)


class TestSessionResolver:
    """Resolution against a real conversation log."""

    @pytest.mark.asyncio
    async def test_first_contact_creates_session_with_enriched_system_turn(
        self, resolver, repo, enricher, make_event
    ) -> None:
        enricher.try_enrich.return_value = "Here are relevant facts about Ada"
        event = make_event("hello")

        session = await resolver.resolve(event, parse_event(event), _agent())

        assert session.action == SessionAction.RESET
        assert len(session.conversation) == 1
        system = session.conversation[0]
        assert isinstance(system, SystemTurn)
        assert [c.text for c in system.content] == ["You are general.", "Here are relevant facts about Ada"]

        logged = await repo.read_session(session.session_id)
        assert [r.role for r in logged] == [Role.SYSTEM]
        assert logged[0].user_id == "u-1"

    @pytest.mark.asyncio
    async def test_continue_replays_history(self, resolver, repo, clock, enricher, make_event) -> None:
        await _seed(repo, "s-1")
        clock.advance(timedelta(minutes=10))
        event = make_event("and again")

        session = await resolver.resolve(event, parse_event(event), _agent())

        assert session.action == SessionAction.CONTINUE
        assert session.session_id == "s-1"
        assert [t.role for t in session.conversation] == ["system", "user", "assistant"]
        enricher.try_enrich.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_session_starts_fresh(self, resolver, repo, clock, make_event) -> None:
        await _seed(repo, "s-1")
        clock.advance(timedelta(hours=4))
        event = make_event("back again")

        session = await resolver.resolve(event, parse_event(event), _agent())

        assert session.action == SessionAction.RESET
        assert session.session_id != "s-1"
        assert len(session.conversation) == 1

    @pytest.mark.asyncio
    async def test_new_command_ignores_fresh_history(self, resolver, repo, clock, make_event) -> None:
        await _seed(repo, "s-1")
        clock.advance(timedelta(minutes=1))
        event = make_event("hello [s:new]")

        session = await resolver.resolve(event, parse_event(event), _agent())

        assert session.action == SessionAction.RESET
        assert session.session_id != "s-1"

    @pytest.mark.asyncio
    async def test_agent_switch_appends_new_system_turn(self, resolver, repo, clock, make_event) -> None:
        await _seed(repo, "s-1", agent_id="general")
        clock.advance(timedelta(minutes=5))
        event = make_event("[a:weather-bot] what's the forecast")

        session = await resolver.resolve(
            event, parse_event(event), _agent("weather-bot", "You forecast weather.")
        )

        assert session.action == SessionAction.CONTINUE_WITH_AGENT_SWITCH
        assert session.session_id == "s-1"
        assert [t.role for t in session.conversation] == ["system", "user", "assistant", "system"]
        assert session.conversation[-1].content[0].text == "You forecast weather."

        logged = await repo.read_session("s-1")
        assert logged[-1].role == Role.SYSTEM
        assert logged[-1].agent_id == "weather-bot"

    @pytest.mark.asyncio
    async def test_anonymous_request_continues_metadata_session(self, resolver, repo, make_event) -> None:
        await _seed(repo, "s-anon", user_id=None)
        event = make_event("hi", user_id=None, metadata={"sessionId": "s-anon"})

        session = await resolver.resolve(event, parse_event(event), _agent())

        assert session.action == SessionAction.CONTINUE
        assert session.session_id == "s-anon"
        assert len(session.conversation) == 3

    @pytest.mark.asyncio
    async def test_anonymous_unknown_session_keeps_its_id(self, resolver, enricher, make_event) -> None:
        event = make_event("hi", user_id=None, metadata={"sessionId": "s-new"})

        session = await resolver.resolve(event, parse_event(event), _agent())

        assert session.action == SessionAction.RESET
        assert session.session_id == "s-new"
        enricher.try_enrich.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_anonymous_without_session_gets_generated_id(self, resolver, make_event) -> None:
        event = make_event("hi", user_id=None)

        session = await resolver.resolve(event, parse_event(event), _agent())

        assert session.action == SessionAction.RESET
        assert session.session_id
