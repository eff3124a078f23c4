"""Session continuity: caller session ids mapped to remote conversations.

Key format: ``session:{session_id}`` holding a JSON SessionRecord.
The TTL slides forward on every recorded turn, so active sessions stay
alive and idle ones are reclaimed by the store.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..models import SessionRecord
from ..store.base import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "session:"


class SessionContextStore:
    """Reads and writes session records through a KeyValueStore."""

    def __init__(self, store: KeyValueStore, ttl_seconds: int = 86400, max_documents: int = 50):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.max_documents = max_documents

    @staticmethod
    def key_for(session_id: str) -> str:
        return f"{KEY_PREFIX}{session_id}"

    async def load(self, session_id: str) -> Optional[SessionRecord]:
        """Return the full session record, or None for an unknown session."""
        data = await self.store.get_json(self.key_for(session_id))
        if data is None:
            return None
        try:
            return SessionRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Discarding malformed session {session_id}: {e}")
            await self.store.delete(self.key_for(session_id))
            return None

    async def resume(self, session_id: str) -> Optional[str]:
        """Return the conversation id recorded for a session, if any."""
        record = await self.load(session_id)
        return record.conversation_id if record else None

    async def record(
        self,
        session_id: str,
        conversation_id: str,
        document_refs: Optional[list[str]] = None,
        count_turn: bool = True,
        agent_id: Optional[str] = None,
        last_message_id: Optional[str] = None,
    ) -> SessionRecord:
        """Upsert a session after a turn.

        Document refs are appended (oldest dropped beyond the cap) and the
        TTL is refreshed. A different conversation id replaces the old one
        and starts a fresh document list. ``agent_id`` and
        ``last_message_id`` are only overwritten when given.
        """
        record = await self.load(session_id)
        if record is None or record.conversation_id != conversation_id:
            if record is not None:
                logger.info(
                    f"Session {session_id} moved from conversation "
                    f"{record.conversation_id} to {conversation_id}"
                )
            record = SessionRecord(session_id=session_id, conversation_id=conversation_id)

        record.add_documents(list(document_refs or []), self.max_documents)
        if count_turn:
            record.turn_count += 1
        if agent_id:
            record.agent_id = agent_id
        if last_message_id:
            record.last_message_id = last_message_id
        record.updated_at = datetime.now(timezone.utc)

        await self.store.set_json(self.key_for(session_id), record.to_dict(), self.ttl_seconds)
        logger.debug(f"Recorded session {session_id} -> {conversation_id}")
        return record

    async def extend(self, session_id: str, ttl_seconds: Optional[int] = None) -> bool:
        """Refresh a session's TTL without changing its data."""
        return await self.store.expire(self.key_for(session_id), ttl_seconds or self.ttl_seconds) == 1

    async def delete(self, session_id: str) -> bool:
        deleted = await self.store.delete(self.key_for(session_id)) > 0
        if deleted:
            logger.info(f"Deleted session {session_id}")
        return deleted

    async def list_sessions(self) -> list[SessionRecord]:
        """All live sessions, most recently updated first."""
        records = []
        for key in await self.store.keys(f"{KEY_PREFIX}*"):
            record = await self.load(key[len(KEY_PREFIX):])
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.updated_at, reverse=True)
