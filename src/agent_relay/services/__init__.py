"""Service components built on the key/value store."""

from .agent_cache import AgentConfigCache
from .session_context import SessionContextStore

__all__ = [
    "AgentConfigCache",
    "SessionContextStore",
]
