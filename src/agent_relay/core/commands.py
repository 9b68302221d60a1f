"""Inline directive parsing for user text.

Users steer a conversation with bracketed directives anywhere in a message:
``[s:new]`` (or ``[s:n]``) starts a fresh session and ``[a:weather-bot]`` routes the
message to another agent. Several directives can share one group, separated by
semicolons: ``[s:new;a:weather-bot]``. Keys and control values match
case-insensitively; the agent id keeps its original casing. Unknown directives are
ignored, but every bracket group is stripped from the text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from agent_relay.core.types import PartType, SessionCommand
from agent_relay.models.event import Event, MessagePart

_DIRECTIVE_GROUP = re.compile(r"\[([^\]]+)\]")
_SESSION_NEW_VALUES = frozenset({"new", "n"})


@dataclass(frozen=True, slots=True)
class ParsedText:
    clean_text: str
    session_command: Optional[SessionCommand] = None
    agent_override: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ParsedEvent:
    """Directives of every text part, plus the parts with directives removed."""

    parts: tuple[MessagePart, ...]
    session_command: Optional[SessionCommand] = None
    agent_override: Optional[str] = None


def parse_message(raw: str | None) -> ParsedText:
    text = (raw or "").strip()
    session_command: Optional[SessionCommand] = None
    agent_override: Optional[str] = None

    for match in _DIRECTIVE_GROUP.finditer(text):
        for directive in match.group(1).split(";"):
            key, _, value = directive.partition(":")
            key = key.strip().lower()
            value = value.strip()
            if key == "s" and value.lower() in _SESSION_NEW_VALUES:
                session_command = SessionCommand.NEW
            elif key == "a" and value:
                agent_override = value

    clean_text = _DIRECTIVE_GROUP.sub("", text).strip()
    return ParsedText(clean_text, session_command, agent_override)


def parse_event(event: Event) -> ParsedEvent:
    """Strip directives from every text part; later parts win on conflicting overrides."""
    parts: list[MessagePart] = []
    session_command: Optional[SessionCommand] = None
    agent_override: Optional[str] = None

    for part in event.messages:
        if part.type != PartType.TEXT:
            parts.append(part)
            continue
        parsed = parse_message(part.text)
        session_command = parsed.session_command or session_command
        agent_override = parsed.agent_override or agent_override
        parts.append(part.model_copy(update={"text": parsed.clean_text}))

    return ParsedEvent(tuple(parts), session_command, agent_override)
