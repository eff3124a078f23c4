"""Relay manager wiring settings, store, client and orchestrator together."""

import logging
from typing import Any, Optional

from .config import Settings
from .core.orchestrator import ConversationOrchestrator
from .models import AgentConfig, ContextItem, SessionRecord, TurnResult, UserContext
from .providers import ConversationClient, DustConversationClient
from .services import AgentConfigCache, SessionContextStore
from .store import KeyValueStore, StoreSelector

logger = logging.getLogger(__name__)


class AgentRelay:
    """Entry point for talking to remote agents.

    This class provides a unified interface for:
    - Running turns against an agent, with session continuity
    - Looking up and listing agent configurations (cached)
    - Ending sessions and reporting component status

    Build it with ``await AgentRelay.create(settings)`` and close it when
    done, or use it as an async context manager.
    """

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        client: ConversationClient,
        orchestrator: Optional[ConversationOrchestrator] = None,
    ):
        self.settings = settings
        self.store = store
        self.client = client
        self.agent_cache = AgentConfigCache(store, client, ttl_seconds=settings.agent_cache_ttl)
        self.sessions = SessionContextStore(
            store,
            ttl_seconds=settings.session_ttl,
            max_documents=settings.session_max_documents,
        )
        self.orchestrator = orchestrator or ConversationOrchestrator(
            client,
            sessions=self.sessions,
            agent_cache=self.agent_cache,
            user_context=UserContext(
                username=settings.username,
                timezone=settings.timezone,
                email=settings.email,
                fullname=settings.fullname,
            ),
            poll_interval_ms=settings.poll_interval_ms,
            max_attempts=settings.max_poll_attempts,
            max_turn_seconds=settings.max_turn_seconds,
            max_context_chars=settings.max_context_chars,
        )
        self._closed = False

    @classmethod
    async def create(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        client: Optional[ConversationClient] = None,
    ) -> "AgentRelay":
        """Build a relay from settings.

        Args:
            settings: Relay settings. If None, read from the environment.
            store: Key/value store to use. If None, a StoreSelector is built
                according to ``settings.store_mode``.
            client: Platform client. If None, a DustConversationClient is built.
        """
        settings = settings or Settings.from_env()
        if store is None:
            store = await StoreSelector.create(settings)
        if client is None:
            client = DustConversationClient(
                api_key=settings.api_key,
                workspace_id=settings.workspace_id,
                api_url=settings.api_url,
                timeout=settings.request_timeout,
            )
        logger.info(f"AgentRelay initialized with store {store.name} and client {client.name}")
        return cls(settings, store, client)

    def _resolve_agent(self, agent_id: Optional[str]) -> str:
        resolved = agent_id or self.settings.default_agent_id
        if not resolved:
            raise ValueError("No agent id given and DUST_AGENT_IDS is not configured")
        return resolved

    async def run_turn(
        self,
        prompt: str,
        agent_id: Optional[str] = None,
        *,
        session_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        document_refs: Optional[list[str]] = None,
        context_items: Optional[list[ContextItem]] = None,
        **kwargs: Any,
    ) -> TurnResult:
        """Send a prompt to an agent and wait for its reply.

        Args:
            prompt: The user message.
            agent_id: Agent to talk to. If None, the first configured agent.
            session_id: Session whose conversation should be continued.
            conversation_id: Explicit conversation to continue.
            document_refs: Document references to attach.
            context_items: Additional context items to attach.
            **kwargs: Passed to ``ConversationOrchestrator.run_turn``
                (poll overrides, output_format, user_context, cancel_event).

        Raises:
            ValueError: If no agent can be resolved or the input is invalid.
            TurnError: If the turn does not complete.
        """
        return await self.orchestrator.run_turn(
            self._resolve_agent(agent_id),
            prompt,
            session_id=session_id,
            conversation_id=conversation_id,
            document_refs=document_refs,
            context_items=context_items,
            **kwargs,
        )

    async def get_agent_info(self, agent_id: Optional[str] = None, force_refresh: bool = False) -> AgentConfig:
        """Get an agent's configuration through the cache."""
        return await self.agent_cache.get(self._resolve_agent(agent_id), force_refresh=force_refresh)

    async def list_agents(self, view: Optional[str] = None, limit: int = 10) -> list[AgentConfig]:
        """List agents visible to the workspace, caching each of them."""
        return await self.agent_cache.refresh_all(view=view, limit=limit)

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        return await self.sessions.load(session_id)

    async def end_session(self, session_id: str) -> bool:
        """Forget a session; its remote conversation is left untouched."""
        return await self.sessions.delete(session_id)

    def status(self) -> dict[str, Any]:
        """Get relay status for monitoring."""
        store_status = self.store.status() if isinstance(self.store, StoreSelector) else {"backend": self.store.name}
        return {
            "client": self.client.name,
            "store": store_status,
            "agents_configured": list(self.settings.agent_ids),
            "default_agent": self.settings.default_agent_id,
            "turns": self.orchestrator.get_stats(),
            "agent_cache": self.agent_cache.get_stats(),
        }

    async def close(self) -> None:
        """Release the client and the store. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.client.close()
        await self.store.close()
        logger.info("AgentRelay closed")

    async def __aenter__(self) -> "AgentRelay":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
