"""Session record persisted through the key/value store."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionRecord:
    """Maps a caller-chosen session id to a remote conversation.

    ``agent_id``, ``created_at`` and ``last_message_id`` describe the
    conversation itself; ``created_at`` is reset when the session moves
    to a new conversation.
    """

    session_id: str
    conversation_id: str
    document_refs: list[str] = field(default_factory=list)
    turn_count: int = 0
    updated_at: datetime = field(default_factory=_utcnow)
    agent_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    last_message_id: Optional[str] = None

    def add_documents(self, refs: list[str], cap: int) -> None:
        """Append document refs, dropping the oldest beyond ``cap``."""
        self.document_refs.extend(refs)
        if cap >= 0 and len(self.document_refs) > cap:
            del self.document_refs[: len(self.document_refs) - cap]

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "conversation_id": self.conversation_id,
            "document_refs": list(self.document_refs),
            "turn_count": self.turn_count,
            "updated_at": self.updated_at.isoformat(),
            "agent_id": self.agent_id,
            "created_at": self.created_at.isoformat(),
            "last_message_id": self.last_message_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionRecord":
        updated_at = datetime.fromisoformat(data["updated_at"])
        created_at = data.get("created_at")
        return cls(
            session_id=data["session_id"],
            conversation_id=data["conversation_id"],
            document_refs=list(data.get("document_refs") or []),
            turn_count=int(data.get("turn_count", 0)),
            updated_at=updated_at,
            agent_id=data.get("agent_id"),
            created_at=datetime.fromisoformat(created_at) if created_at else updated_at,
            last_message_id=data.get("last_message_id"),
        )
