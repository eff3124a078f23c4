"""Agent platform clients."""

from .base import ConversationClient
from .dust import DustConversationClient

__all__ = [
    "ConversationClient",
    "DustConversationClient",
]
