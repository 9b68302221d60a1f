"""Exception hierarchy for event handling."""

from __future__ import annotations


class AgentRelayError(Exception):
    """Base class for all errors raised while handling an event."""


class EventValidationError(AgentRelayError, ValueError):
    """The inbound event is missing required fields or is malformed."""


class AgentNotFoundError(EventValidationError):
    def __init__(self, agent_id: str):
        super().__init__(f"No agent found for id {agent_id}")
        self.agent_id = agent_id


class ModelResponseError(AgentRelayError):
    """The model service answered, but the payload has no usable choice."""


class ModelInvocationError(AgentRelayError):
    """Every attempt to call the model service failed."""

    def __init__(self, attempts: int, last_error: BaseException | None):
        super().__init__(f"Model request failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ToolGatewayError(AgentRelayError):
    """The tool gateway could not execute a call or list its tools."""


class ToolLoopExceededError(AgentRelayError):
    def __init__(self, max_model_calls: int):
        super().__init__(f"Tool loop exceeded {max_model_calls} model calls without a reply")
        self.max_model_calls = max_model_calls


class KnowledgeGraphError(AgentRelayError):
    pass


class SpeechError(AgentRelayError):
    pass
