"""Append-only conversation log backed by SQLite."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

from agent_relay.core.clock import Clock, utc_now
from agent_relay.core.types import Role
from agent_relay.log import get_logger
from agent_relay.models.conversation import Turn
from agent_relay.storage.database import Database
from agent_relay.storage.models import ConversationRecord, TurnContext

logger = get_logger(__name__)


class ConversationRepository:
    """Append and replay conversation turns, ordered by time within a session."""

    def __init__(self, db: Database, clock: Clock = utc_now):
        self._db = db
        self._clock = clock

    async def append(self, turn: Turn, context: TurnContext) -> ConversationRecord:
        """Persist one turn. Storage errors propagate to the caller."""
        record = ConversationRecord(
            id=str(uuid.uuid4()),
            role=Role(turn.role),
            message=json.dumps(turn.to_payload(), ensure_ascii=False),
            model=context.model,
            timestamp=self._clock().replace(microsecond=0),
            session_id=context.session_id,
            agent_id=context.agent_id,
            user_id=context.user_id,
            chat_id=context.chat_id,
            finish_reason=context.finish_reason,
            prompt_tokens=context.prompt_tokens,
            completion_tokens=context.completion_tokens,
            total_tokens=context.total_tokens,
        )
        await self._db.conn.execute(
            """INSERT INTO conversation_history
               (id, model, finish_reason, role, completion_tokens, prompt_tokens, total_tokens,
                user_id, chat_id, session_id, agent_id, timestamp, message)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.id,
                record.model,
                record.finish_reason or "",
                record.role.value,
                record.completion_tokens,
                record.prompt_tokens,
                record.total_tokens,
                record.user_id,
                record.chat_id,
                record.session_id,
                record.agent_id,
                int(record.timestamp.timestamp()),
                record.message,
            ),
        )
        await self._db.conn.commit()
        logger.debug(
            "turn_logged",
            role=record.role.value,
            session_id=record.session_id,
            agent_id=record.agent_id,
        )
        return record

    async def read_latest_session_by_user(self, user_id: str) -> list[ConversationRecord]:
        """All turns of the user's most recently active session, oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM conversation_history
               WHERE session_id = (
                   SELECT session_id FROM conversation_history
                   WHERE user_id = ? AND session_id IS NOT NULL
                   ORDER BY timestamp DESC, seq DESC
                   LIMIT 1
               )
               ORDER BY timestamp ASC, seq ASC""",
            (str(user_id),),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def read_session(self, session_id: str) -> list[ConversationRecord]:
        """All turns logged under ``session_id``, oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM conversation_history
               WHERE session_id = ?
               ORDER BY timestamp ASC, seq ASC""",
            (session_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row) -> ConversationRecord:
        return ConversationRecord(
            id=row["id"],
            role=Role(row["role"]),
            message=row["message"],
            model=row["model"],
            timestamp=datetime.fromtimestamp(row["timestamp"], tz=timezone.utc),
            session_id=row["session_id"],
            agent_id=row["agent_id"],
            user_id=row["user_id"],
            chat_id=row["chat_id"],
            finish_reason=row["finish_reason"] or None,
            prompt_tokens=row["prompt_tokens"],
            completion_tokens=row["completion_tokens"],
            total_tokens=row["total_tokens"],
        )
