"""Iterative model/tool loop that drives one request to a final assistant reply."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from agent_relay.ai.client import LLMService
from agent_relay.ai.conversation import sanitize_assistant_message
from agent_relay.ai.tools.base import ToolGateway
from agent_relay.core.errors import ToolLoopExceededError
from agent_relay.core.types import LoopState
from agent_relay.log import get_logger
from agent_relay.models.conversation import AssistantTurn, ToolCall, ToolTurn, Turn
from agent_relay.storage.conversation_repo import ConversationRepository
from agent_relay.storage.models import TurnContext

logger = get_logger(__name__)

MAX_MODEL_CALLS = 10
STOP_REASON = "stop"

Notifier = Callable[[str], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class LoopResult:
    text: str
    model_calls: int
    tool_calls: int


class ToolLoop:
    """Alternates model calls and tool executions until the model answers.

    States: AWAITING_MODEL calls the model and logs its turn; EXECUTING_TOOLS runs
    the requested calls one at a time, in request order, logging one tool turn per
    call; DONE ends the loop with the assistant's text. A turn with tool calls
    always executes them. A turn without tool calls ends the loop only on a
    ``stop`` finish reason with non-null content; otherwise the model is asked again.
    """

    def __init__(
        self,
        llm: LLMService,
        gateway: ToolGateway,
        repo: ConversationRepository,
        max_model_calls: int = MAX_MODEL_CALLS,
        notify: Notifier | None = None,
    ):
        self._llm = llm
        self._gateway = gateway
        self._repo = repo
        self._max_model_calls = max_model_calls
        self._notify = notify

    async def run(
        self,
        conversation: list[Turn],
        model: str,
        tools: list[dict[str, Any]],
        context: TurnContext,
    ) -> LoopResult:
        """Run to completion, appending every new turn to *conversation* and the log."""
        state = LoopState.AWAITING_MODEL
        model_calls = 0
        tool_calls = 0
        pending: tuple[ToolCall, ...] = ()
        last_text: str | None = None
        final_text = ""

        while state != LoopState.DONE:
            match state:
                case LoopState.AWAITING_MODEL:
                    if model_calls >= self._max_model_calls:
                        logger.warning("tool_loop_exhausted", model_calls=model_calls)
                        if not last_text:
                            raise ToolLoopExceededError(self._max_model_calls)
                        final_text = last_text
                        state = LoopState.DONE
                        continue

                    turn, finish_reason = await self._call_model(conversation, model, tools, context)
                    model_calls += 1
                    if turn.content:
                        last_text = turn.content

                    if turn.requested_tools:
                        pending = turn.requested_tools
                        state = LoopState.EXECUTING_TOOLS
                    elif finish_reason == STOP_REASON and turn.content is not None:
                        final_text = turn.content
                        state = LoopState.DONE
                    else:
                        logger.info("model_continue", finish_reason=finish_reason)

                case LoopState.EXECUTING_TOOLS:
                    logger.info("tool_calls_detected", count=len(pending))
                    if self._notify is not None:
                        await self._notify(f"🛠 Resolving {len(pending)} tool call(s)")
                    for call in pending:
                        tool_turn = await self._execute(call)
                        await self._repo.append(tool_turn, context)
                        conversation.append(tool_turn)
                    tool_calls += len(pending)
                    pending = ()
                    state = LoopState.AWAITING_MODEL

        return LoopResult(text=final_text, model_calls=model_calls, tool_calls=tool_calls)

    async def _call_model(
        self,
        conversation: list[Turn],
        model: str,
        tools: list[dict[str, Any]],
        context: TurnContext,
    ) -> tuple[AssistantTurn, str | None]:
        completion = await self._llm.complete(model, conversation, tools or None)
        choice = completion.first_choice
        turn = sanitize_assistant_message(choice.message or {})
        usage = completion.usage
        await self._repo.append(
            turn,
            replace(
                context,
                finish_reason=choice.finish_reason,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            ),
        )
        conversation.append(turn)
        return turn, choice.finish_reason

    async def _execute(self, call: ToolCall) -> ToolTurn:
        name = call.function.name
        arguments = parse_tool_arguments(call)
        try:
            result = await self._gateway.call_tool(name, arguments)
        except Exception as e:
            logger.error("tool_call_failed", tool=name, tool_call_id=call.id, error=str(e))
            result = {"error": str(e)}

        content = extract_tool_content(result)
        return ToolTurn(
            content=json.dumps(content, indent=2, ensure_ascii=False, default=str),
            tool_call_id=call.id,
        )


def parse_tool_arguments(call: ToolCall) -> dict[str, Any]:
    """Decode the call's JSON arguments; anything but a JSON object becomes ``{}``."""
    raw = call.function.arguments or "{}"
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError:
        logger.error("tool_arguments_invalid", tool=call.function.name, arguments=raw[:500])
        return {}
    if not isinstance(arguments, dict):
        logger.error("tool_arguments_invalid", tool=call.function.name, arguments=raw[:500])
        return {}
    return arguments


def extract_tool_content(result: Any) -> list[Any]:
    """Normalise a tool result: ``result.content``, else ``content``, else ``messages``, else the raw result."""
    if isinstance(result, dict):
        inner = result.get("result")
        for candidate in (
            inner.get("content") if isinstance(inner, dict) else None,
            result.get("content"),
            result.get("messages"),
        ):
            if candidate is not None:
                return candidate if isinstance(candidate, list) else [candidate]
    return [result]
