"""Base class for agent platform clients."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..models import AgentConfig, MessageGroups, UserContext


class ConversationClient(ABC):
    """Abstract client for an agent platform's conversation API.

    Every method is a single network round-trip with no local state.
    Retries are left to the caller.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the platform name."""
        ...

    @abstractmethod
    async def create_conversation(self, agent_id: str) -> str:
        """Create a conversation and return its id.

        Raises:
            AgentPlatformError: AuthenticationError, AgentNotFoundError,
                RateLimitError or PlatformTransportError.
        """
        ...

    @abstractmethod
    async def post_message(
        self,
        conversation_id: str,
        agent_id: str,
        text: str,
        user_context: UserContext,
        context: Optional[dict[str, Any]] = None,
        output_format: Optional[str] = None,
    ) -> Optional[str]:
        """Post a user message and return its id.

        The id is None when the platform does not echo one back.

        Raises:
            ValueError: If ``text`` is empty.
            AgentPlatformError: If the platform rejects the message.
        """
        ...

    @abstractmethod
    async def fetch_conversation(self, conversation_id: str) -> MessageGroups:
        """Fetch the conversation's message groups, oldest first."""
        ...

    @abstractmethod
    async def get_agent_config(self, agent_id: str) -> AgentConfig:
        """Look up a single agent.

        Raises:
            AgentNotFoundError: If the platform has no such agent.
        """
        ...

    @abstractmethod
    async def list_agents(self, view: Optional[str] = None, limit: int = 10) -> list[AgentConfig]:
        """List agents visible to the workspace."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None
