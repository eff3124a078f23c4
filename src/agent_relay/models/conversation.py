"""Conversation, turn and context models."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

AGENT_MESSAGE_TYPES = frozenset({"agent_message", "assistant_message"})


class TurnStatus(str, Enum):
    """Status of the agent's side of a turn, as reported by the platform."""

    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "TurnStatus":
        """Map the platform's status strings onto TurnStatus.

        Unknown or missing values count as still in progress.
        """
        value = (raw or "").lower()
        if value in ("completed", "complete", "succeeded"):
            return cls.COMPLETED
        if value in ("failed", "error"):
            return cls.FAILED
        if value in ("cancelled", "canceled"):
            return cls.CANCELLED
        if value == "created":
            return cls.CREATED
        return cls.IN_PROGRESS

    @property
    def is_terminal(self) -> bool:
        return self in (TurnStatus.COMPLETED, TurnStatus.FAILED, TurnStatus.CANCELLED)


class TurnState(str, Enum):
    """States of one orchestrated turn."""

    IDLE = "idle"
    CONVERSATION_ENSURED = "conversation_ensured"
    MESSAGE_SUBMITTED = "message_submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            TurnState.COMPLETED,
            TurnState.FAILED,
            TurnState.TIMED_OUT,
            TurnState.CANCELLED,
        )


@dataclass
class MessageVersion:
    """One version of a message inside a conversation message group."""

    id: Optional[str]
    type: str
    status: TurnStatus
    content: Optional[str] = None
    parent_message_id: Optional[str] = None
    error: Any = None

    @property
    def is_agent(self) -> bool:
        return self.type in AGENT_MESSAGE_TYPES

    @classmethod
    def from_platform(cls, data: dict[str, Any]) -> "MessageVersion":
        return cls(
            id=data.get("sId") or data.get("id"),
            type=data.get("type", ""),
            status=TurnStatus.parse(data.get("status")),
            content=data.get("content"),
            parent_message_id=data.get("parentMessageId"),
            error=data.get("error"),
        )


# A conversation's content: ordered groups, each an ordered list of versions
MessageGroups = list[list[MessageVersion]]


@dataclass
class PendingTurn:
    """In-memory record of a turn being polled. Never persisted."""

    conversation_id: str
    message_id: Optional[str]
    started_at: float
    deadline: float
    attempt: int = 0


@dataclass
class UserContext:
    """User fields the platform requires on every message.

    Passed through verbatim; the relay does not interpret them.
    """

    username: str = "Anonymous User"
    timezone: str = "UTC"
    email: str = ""
    fullname: str = ""

    def to_payload(self) -> dict[str, str]:
        return {
            "username": self.username,
            "timezone": self.timezone,
            "email": self.email,
            "fullname": self.fullname,
        }


@dataclass(frozen=True)
class DocumentContext:
    """Reference to a processed document, optionally with extracted text."""

    ref: str
    name: Optional[str] = None
    text: Optional[str] = None
    kind: str = field(default="document", init=False)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.ref}
        if self.name:
            payload["name"] = self.name
        if self.text:
            payload["text"] = self.text
        return payload


@dataclass(frozen=True)
class TextContext:
    """Free-form text note attached to a turn."""

    value: str
    label: Optional[str] = None
    kind: str = field(default="text", init=False)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"value": self.value}
        if self.label:
            payload["label"] = self.label
        return payload


ContextItem = Union[DocumentContext, TextContext]


def build_context_payload(items: list[ContextItem], max_chars: int) -> dict[str, Any]:
    """Render context items into the message "context" payload.

    Raises:
        ValueError: On an invalid item or if the rendered payload is larger
            than ``max_chars`` characters.
    """
    documents = []
    notes = []
    for item in items:
        if isinstance(item, DocumentContext):
            if not item.ref:
                raise ValueError("Document context requires a non-empty ref")
            documents.append(item.to_payload())
        elif isinstance(item, TextContext):
            if not item.value:
                raise ValueError("Text context requires a non-empty value")
            notes.append(item.to_payload())
        else:
            raise ValueError(f"Unsupported context item: {type(item).__name__}")

    payload: dict[str, Any] = {}
    if documents:
        payload["documents"] = documents
    if notes:
        payload["notes"] = notes

    size = len(json.dumps(payload))
    if size > max_chars:
        raise ValueError(f"Context payload is {size} characters, limit is {max_chars}")
    return payload


@dataclass
class TurnResult:
    """Normalized result of a completed turn."""

    text: str
    conversation_id: str
    message_id: Optional[str]
    completed_at: datetime
    agent_id: str = ""
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "conversation_id": self.conversation_id,
            "message_id": self.message_id,
            "completed_at": self.completed_at.isoformat(),
            "agent_id": self.agent_id,
            "attempts": self.attempts,
        }
