"""Event handler: event -> agent -> session -> conversation -> model/tool loop -> reply."""

from __future__ import annotations

from agent_relay.agents.registry import Agent, AgentRegistry
from agent_relay.ai.client import LLMService
from agent_relay.ai.conversation import build_user_turn
from agent_relay.ai.tool_runner import MAX_MODEL_CALLS, LoopResult, Notifier, ToolLoop
from agent_relay.ai.tools.registry import ToolRegistry
from agent_relay.core.commands import parse_event
from agent_relay.core.enrichment import EpisodeLogger
from agent_relay.core.errors import AgentNotFoundError
from agent_relay.core.session import ResolvedSession, SessionResolver
from agent_relay.log import bind_request_context, get_logger
from agent_relay.messenger.base import ResponseChannel
from agent_relay.messenger.models import OutgoingMessage, OutgoingReply
from agent_relay.models.conversation import Turn, UserTurn
from agent_relay.models.event import Event, validate_event
from agent_relay.storage.conversation_repo import ConversationRepository
from agent_relay.storage.models import TurnContext

logger = get_logger(__name__)

THINKING_NOTICE = "🤔 Thinking it through and preparing your reply..."


class EventHandler:
    """Handles one inbound event end-to-end.

    Returns the reply when the event names no recipients; otherwise the reply is
    pushed to the recipients and ``None`` is returned.
    """

    def __init__(
        self,
        agents: AgentRegistry,
        repo: ConversationRepository,
        llm: LLMService,
        tools: ToolRegistry,
        channel: ResponseChannel,
        sessions: SessionResolver,
        episodes: EpisodeLogger,
        max_model_calls: int = MAX_MODEL_CALLS,
        progress_notices: bool = True,
    ):
        self._agents = agents
        self._repo = repo
        self._llm = llm
        self._tools = tools
        self._channel = channel
        self._sessions = sessions
        self._episodes = episodes
        self._max_model_calls = max_model_calls
        self._progress_notices = progress_notices

    async def handle(self, event: Event) -> OutgoingReply | None:
        validate_event(event)
        parsed = parse_event(event)

        agent_id = parsed.agent_override or event.agent_id
        if parsed.agent_override:
            logger.info("agent_overridden", default_agent=event.agent_id, agent_id=agent_id)
        agent = await self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)

        with bind_request_context(event_id=event.id, agent_id=agent.agent_id):
            session = await self._sessions.resolve(event, parsed, agent)

            with bind_request_context(session_id=session.session_id):
                context = TurnContext(
                    model=agent.model,
                    session_id=session.session_id,
                    agent_id=agent.agent_id,
                    user_id=event.sender.user_id,
                    chat_id=event.sender.chat_id,
                )
                user_turn = build_user_turn(event, parsed.parts)
                await self._repo.append(user_turn, context)
                conversation: list[Turn] = [*session.conversation, user_turn]

                notify = self._notifier(event)
                loop = ToolLoop(
                    self._llm,
                    self._tools.gateway,
                    self._repo,
                    max_model_calls=self._max_model_calls,
                    notify=notify,
                )
                tool_schema = await self._tools.schema_for(agent.allowed_tools)
                result = await loop.run(conversation, agent.model, tool_schema, context)
                logger.info(
                    "loop_completed",
                    model_calls=result.model_calls,
                    tool_calls=result.tool_calls,
                )

                if notify is not None:
                    await notify(THINKING_NOTICE)
                return await self._reply(event, agent, session, user_turn, conversation, result)

    async def _reply(
        self,
        event: Event,
        agent: Agent,
        session: ResolvedSession,
        user_turn: UserTurn,
        conversation: list[Turn],
        result: LoopResult,
    ) -> OutgoingReply | None:
        outgoing = [OutgoingMessage.of_text(result.text)]

        if event.has_audio_input:
            try:
                audio = await self._llm.speak(result.text, agent.voice)
                outgoing.append(OutgoingMessage(type="audio", audio=audio))
            except Exception as e:
                logger.warning("tts_failed", error=str(e))

        if not event.has_recipients:
            return OutgoingReply(
                id=event.id,
                messages=outgoing,
                metadata={"agent_id": agent.agent_id, "session_id": session.session_id},
            )

        await self._channel.send(
            event,
            outgoing,
            include_placeholder=event.metadata.placeholder_message_id is not None,
        )
        if event.sender.is_human:
            self._episodes.submit(
                session_id=session.session_id,
                turn_count=len(conversation),
                sender=event.sender,
                agent_id=agent.agent_id,
                user_turn=user_turn,
                has_audio_input=event.has_audio_input,
            )
        return None

    def _notifier(self, event: Event) -> Notifier | None:
        if not (self._progress_notices and event.sender.is_human and event.has_recipients):
            return None

        async def _notify(text: str) -> None:
            await self._channel.notify(event, text)

        return _notify
