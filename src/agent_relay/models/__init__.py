"""Data models for the agent relay."""

from .agent import AgentConfig
from .conversation import (
    ContextItem,
    DocumentContext,
    MessageGroups,
    MessageVersion,
    PendingTurn,
    TextContext,
    TurnResult,
    TurnState,
    TurnStatus,
    UserContext,
    build_context_payload,
)
from .session import SessionRecord

__all__ = [
    "AgentConfig",
    "ContextItem",
    "DocumentContext",
    "MessageGroups",
    "MessageVersion",
    "PendingTurn",
    "SessionRecord",
    "TextContext",
    "TurnResult",
    "TurnState",
    "TurnStatus",
    "UserContext",
    "build_context_payload",
]
