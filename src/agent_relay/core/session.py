"""Session resolution: start a fresh conversation or continue the current one.

A user's session is the session id of their most recently logged turn. It expires
once the gap since that turn exceeds the staleness threshold (a gap exactly equal to
the threshold still continues). Requests without a user id continue the session id
they carry, if any.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional, Sequence

from agent_relay.agents.registry import Agent
from agent_relay.ai.conversation import replay_turns
from agent_relay.core.clock import Clock, utc_now
from agent_relay.core.commands import ParsedEvent
from agent_relay.core.enrichment import ContextEnricher
from agent_relay.core.types import SessionCommand
from agent_relay.log import get_logger
from agent_relay.models.conversation import SystemTurn, Turn
from agent_relay.models.event import Event
from agent_relay.storage.conversation_repo import ConversationRepository
from agent_relay.storage.models import ConversationRecord, TurnContext

logger = get_logger(__name__)

DEFAULT_STALENESS = timedelta(hours=3)


class SessionAction(StrEnum):
    RESET = "reset"
    CONTINUE = "continue"
    CONTINUE_WITH_AGENT_SWITCH = "continue_with_agent_switch"


@dataclass(frozen=True, slots=True)
class SessionDecision:
    action: SessionAction
    reason: str
    history: tuple[ConversationRecord, ...] = ()


@dataclass
class ResolvedSession:
    session_id: str
    action: SessionAction
    conversation: list[Turn] = field(default_factory=list)


def decide_session(
    session_command: Optional[SessionCommand],
    agent_override: Optional[str],
    history: Sequence[ConversationRecord],
    now: datetime,
    staleness: timedelta = DEFAULT_STALENESS,
) -> SessionDecision:
    """Pick the action for a user-bound request from the latest session's turns."""
    if session_command == SessionCommand.NEW:
        return SessionDecision(SessionAction.RESET, "command")
    if not history:
        return SessionDecision(SessionAction.RESET, "no_history")

    latest = history[-1]
    if now - latest.timestamp > staleness:
        return SessionDecision(SessionAction.RESET, "stale")

    if agent_override and agent_override != latest.agent_id:
        return SessionDecision(SessionAction.CONTINUE_WITH_AGENT_SWITCH, "agent_override", tuple(history))
    return SessionDecision(SessionAction.CONTINUE, "active", tuple(history))


class SessionResolver:
    """Decides the active session for a request and builds its starting conversation."""

    def __init__(
        self,
        repo: ConversationRepository,
        enricher: ContextEnricher,
        staleness: timedelta = DEFAULT_STALENESS,
        clock: Clock = utc_now,
    ):
        self._repo = repo
        self._enricher = enricher
        self._staleness = staleness
        self._clock = clock

    async def resolve(self, event: Event, parsed: ParsedEvent, agent: Agent) -> ResolvedSession:
        user_id = event.sender.user_id
        if user_id:
            return await self._resolve_for_user(event, parsed, agent, user_id)
        return await self._resolve_anonymous(event, agent)

    async def _resolve_for_user(
        self, event: Event, parsed: ParsedEvent, agent: Agent, user_id: str
    ) -> ResolvedSession:
        history: list[ConversationRecord] = []
        if parsed.session_command != SessionCommand.NEW:
            history = await self._repo.read_latest_session_by_user(user_id)

        decision = decide_session(
            parsed.session_command,
            parsed.agent_override,
            history,
            self._clock(),
            self._staleness,
        )

        match decision.action:
            case SessionAction.RESET:
                session_id = new_session_id()
                system_turn = await self._system_turn(event, agent, session_id, enrich=True)
                logger.info("session_reset", session_id=session_id, reason=decision.reason)
                return ResolvedSession(session_id, decision.action, [system_turn])

            case SessionAction.CONTINUE:
                session_id = _session_of(decision.history)
                logger.info("session_continued", session_id=session_id, turns=len(decision.history))
                return ResolvedSession(session_id, decision.action, replay_turns(decision.history))

            case SessionAction.CONTINUE_WITH_AGENT_SWITCH:
                session_id = _session_of(decision.history)
                conversation = replay_turns(decision.history)
                conversation.append(await self._system_turn(event, agent, session_id, enrich=True))
                logger.info(
                    "agent_switched",
                    session_id=session_id,
                    previous_agent=decision.history[-1].agent_id,
                    agent_id=agent.agent_id,
                )
                return ResolvedSession(session_id, decision.action, conversation)

            case _:
                raise ValueError(f"Unknown session action: {decision.action}")

    async def _resolve_anonymous(self, event: Event, agent: Agent) -> ResolvedSession:
        session_id = event.metadata.session_id
        if session_id:
            history = await self._repo.read_session(session_id)
            if history:
                logger.info("session_continued", session_id=session_id, turns=len(history))
                return ResolvedSession(session_id, SessionAction.CONTINUE, replay_turns(history))
        else:
            session_id = new_session_id()

        system_turn = await self._system_turn(event, agent, session_id, enrich=False)
        logger.info("session_reset", session_id=session_id, reason="anonymous")
        return ResolvedSession(session_id, SessionAction.RESET, [system_turn])

    async def _system_turn(self, event: Event, agent: Agent, session_id: str, enrich: bool) -> SystemTurn:
        """Build and log the system turn that opens (or re-targets) a session."""
        enrichment = await self._enricher.try_enrich(event) if enrich else None
        turn = SystemTurn.from_texts(agent.system_prompt, enrichment or "")
        await self._repo.append(
            turn,
            TurnContext(
                model=agent.model,
                session_id=session_id,
                agent_id=agent.agent_id,
                user_id=event.sender.user_id,
                chat_id=event.sender.chat_id,
            ),
        )
        return turn


def new_session_id() -> str:
    return str(uuid.uuid4())


def _session_of(history: Sequence[ConversationRecord]) -> str:
    return str(history[-1].session_id)
