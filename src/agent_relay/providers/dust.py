"""Dust assistant API client."""

import logging
from typing import Any, Optional

import httpx

from ..config import DEFAULT_API_URL
from ..exceptions import (
    AgentNotFoundError,
    AgentPlatformError,
    AuthenticationError,
    ConversationNotFoundError,
    PlatformTransportError,
    RateLimitError,
)
from ..models import AgentConfig, MessageGroups, MessageVersion, UserContext
from .base import ConversationClient

logger = logging.getLogger(__name__)


def _response_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]


class DustConversationClient(ConversationClient):
    """Conversation client for the Dust assistant API."""

    def __init__(
        self,
        api_key: Optional[str],
        workspace_id: Optional[str],
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_key: Workspace API key.
            workspace_id: Workspace id (the ``w`` path segment).
            api_url: Base API URL, without the workspace part.
            timeout: Request timeout in seconds.
            transport: Custom httpx transport, mainly for tests.
        """
        self.api_key = api_key
        self.workspace_id = workspace_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def name(self) -> str:
        return "dust"

    @property
    def base_url(self) -> str:
        return f"{self.api_url}/w/{self.workspace_id}/assistant"

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            if not self.api_key:
                raise AuthenticationError("DUST_API_KEY is not set in environment variables")
            if not self.workspace_id:
                raise AuthenticationError("DUST_WORKSPACE_ID is not set in environment variables")
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        not_found: type[AgentPlatformError] = AgentPlatformError,
        agent_id: str = "",
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"Dust {method} {path} transport error: {e}")
            raise PlatformTransportError(f"Request to {path} failed: {e}") from e

        status = response.status_code
        if status >= 400:
            detail = _response_detail(response)
            message = f"Dust {method} {path} failed: {status}"
            logger.error(f"{message} - {detail}")
            if status in (401, 403):
                raise AuthenticationError(message, status, detail)
            if status == 404:
                if not_found is AgentNotFoundError:
                    raise AgentNotFoundError(
                        f"Agent with ID {agent_id} not found", agent_id, status, detail
                    )
                raise not_found(message, status_code=status, detail=detail)
            if status == 429:
                raise RateLimitError(message, status, detail)
            raise AgentPlatformError(message, status, detail, is_retryable=status >= 500)

        try:
            return response.json()
        except ValueError as e:
            raise AgentPlatformError(
                f"Dust {method} {path} returned invalid JSON", status, response.text[:500]
            ) from e

    async def create_conversation(self, agent_id: str) -> str:
        logger.info(f"Creating new conversation for agent {agent_id}")
        data = await self._request(
            "POST", "/conversations", not_found=AgentNotFoundError, agent_id=agent_id, json={}
        )

        conversation = data.get("conversation") or {}
        conversation_id = conversation.get("sId") or conversation.get("id")
        if not conversation_id:
            raise AgentPlatformError(
                "Failed to get conversation ID from response", detail=data
            )
        logger.info(f"Created new conversation with ID: {conversation_id}")
        return str(conversation_id)

    async def post_message(
        self,
        conversation_id: str,
        agent_id: str,
        text: str,
        user_context: UserContext,
        context: Optional[dict[str, Any]] = None,
        output_format: Optional[str] = None,
    ) -> Optional[str]:
        if not text or not text.strip():
            raise ValueError("Message text must not be empty")

        payload: dict[str, Any] = {
            "assistant": agent_id,
            "content": text,
            "mentions": [],
            "context": {**user_context.to_payload(), **(context or {})},
        }
        if output_format:
            payload["outputFormat"] = output_format

        logger.info(
            f"Sending message to conversation {conversation_id} "
            f"(agent {agent_id}, {len(text)} chars)"
        )
        data = await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            not_found=ConversationNotFoundError,
            json=payload,
        )

        message = data.get("message") or {}
        message_id = message.get("sId") or message.get("id")
        if not message_id:
            logger.warning(f"No message ID echoed for conversation {conversation_id}")
            return None
        return str(message_id)

    async def fetch_conversation(self, conversation_id: str) -> MessageGroups:
        data = await self._request(
            "GET", f"/conversations/{conversation_id}", not_found=ConversationNotFoundError
        )
        content = (data.get("conversation") or {}).get("content") or []
        groups: MessageGroups = []
        for group in content:
            if not isinstance(group, list):
                continue
            groups.append(
                [MessageVersion.from_platform(version) for version in group if isinstance(version, dict)]
            )
        return groups

    async def get_agent_config(self, agent_id: str) -> AgentConfig:
        logger.info(f"Fetching agent configuration for {agent_id}")
        data = await self._request(
            "GET",
            f"/agent_configurations/{agent_id}",
            not_found=AgentNotFoundError,
            agent_id=agent_id,
        )
        return AgentConfig.from_platform(data, fallback_id=agent_id)

    async def list_agents(self, view: Optional[str] = None, limit: int = 10) -> list[AgentConfig]:
        params: dict[str, Any] = {}
        if view:
            params["view"] = view
        if limit > 0:
            params["limit"] = limit

        data = await self._request("GET", "/agent_configurations", params=params)
        agents = [
            AgentConfig.from_platform(agent)
            for agent in data.get("agentConfigurations") or []
            if isinstance(agent, dict)
        ]
        logger.info(f"Found {len(agents)} agent configurations")
        return agents

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
