"""Agent configuration caching with TTL."""

import logging
from typing import Optional

from ..models import AgentConfig
from ..providers.base import ConversationClient
from ..store.base import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "agent_config:"


class AgentConfigCache:
    """Memoizes agent configurations in the key/value store.

    Lookup failures propagate unchanged; a stale entry is never served
    after its TTL.
    """

    def __init__(self, store: KeyValueStore, client: ConversationClient, ttl_seconds: int = 300):
        self.store = store
        self.client = client
        self.ttl_seconds = ttl_seconds
        self._fetch_count = 0
        self._hits = 0

    @staticmethod
    def key_for(agent_id: str) -> str:
        return f"{KEY_PREFIX}{agent_id}"

    async def get(self, agent_id: str, force_refresh: bool = False) -> AgentConfig:
        """Get an agent's configuration, fetching it on a miss.

        Args:
            agent_id: The agent to look up.
            force_refresh: Bypass the cache and fetch fresh data.

        Raises:
            AgentNotFoundError: If the platform has no such agent.
            AgentPlatformError: If the lookup fails.
        """
        key = self.key_for(agent_id)
        if not force_refresh:
            cached = await self.store.get_json(key)
            if cached is not None:
                self._hits += 1
                logger.debug(f"Using cached agent configuration for {agent_id}")
                return AgentConfig.from_dict(cached)

        config = await self.client.get_agent_config(agent_id)
        self._fetch_count += 1
        await self.put(config, alias=agent_id)
        return config

    async def put(self, config: AgentConfig, alias: Optional[str] = None) -> None:
        """Store a configuration under its id (and under ``alias`` if it differs)."""
        payload = config.to_dict()
        await self.store.set_json(self.key_for(config.id), payload, self.ttl_seconds)
        if alias and alias != config.id:
            await self.store.set_json(self.key_for(alias), payload, self.ttl_seconds)
        logger.info(f"Updated cache for agent {config.id}")

    async def refresh_all(self, view: Optional[str] = None, limit: int = 10) -> list[AgentConfig]:
        """List agents from the platform and cache every one of them."""
        agents = await self.client.list_agents(view=view, limit=limit)
        for agent in agents:
            if agent.id:
                await self.put(agent)
        return agents

    async def invalidate(self, agent_id: str) -> bool:
        return await self.store.delete(self.key_for(agent_id)) > 0

    def get_stats(self) -> dict:
        return {
            "hits": self._hits,
            "fetch_count": self._fetch_count,
            "ttl_seconds": self.ttl_seconds,
        }
