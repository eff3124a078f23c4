"""Shared store backed by a Redis server."""

import asyncio
import logging
import re
from typing import Any, Awaitable, Optional, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..exceptions import StoreUnavailableError
from .base import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_GLOB_SPECIALS = re.compile(r"([?\[\]\\])")


def to_scan_pattern(pattern: str) -> str:
    """Escape every Redis glob metacharacter except ``*``."""
    return _GLOB_SPECIALS.sub(r"\\\1", pattern)


class RedisStore(KeyValueStore):
    """KeyValueStore over a Redis connection pool.

    Every connection-level failure surfaces as StoreUnavailableError so the
    selector can tell infrastructure failure apart from a plain miss.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        connect_timeout: float = 2.0,
        socket_timeout: Optional[float] = 5.0,
        default_ttl: Optional[int] = None,
        client: Optional[Any] = None,
    ):
        """Initialize the store.

        Args:
            url: Redis URL; ``rediss://`` enables TLS, credentials go in the URL.
            connect_timeout: Socket connect timeout in seconds.
            socket_timeout: Per-command socket timeout in seconds.
            default_ttl: TTL applied when ``set`` is called without one.
            client: Pre-built client, mainly for tests.
        """
        self.url = url
        self.default_ttl = default_ttl or None
        self._client = client or redis.Redis.from_url(
            url,
            socket_connect_timeout=connect_timeout,
            socket_timeout=socket_timeout,
            decode_responses=True,
        )
        super().__init__()

    @property
    def name(self) -> str:
        return "redis"

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Redis {operation} failed: {e}")
            raise StoreUnavailableError(
                f"Redis {operation} failed: {e}", {"operation": operation}
            ) from e

    async def get(self, key: str) -> Optional[str]:
        value = await self._call("get", self._client.get(key))
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        ttl = ttl or self.default_ttl
        result = await self._call("set", self._client.set(key, value, ex=ttl))
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call("delete", self._client.delete(*keys)))

    async def expire(self, key: str, ttl: int) -> int:
        return int(await self._call("expire", self._client.expire(key, ttl)))

    async def ttl(self, key: str) -> int:
        return int(await self._call("ttl", self._client.ttl(key)))

    async def exists(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call("exists", self._client.exists(*keys)))

    async def keys(self, pattern: str = "*") -> list[str]:
        async def collect() -> list[str]:
            found = []
            async for key in self._client.scan_iter(match=to_scan_pattern(pattern)):
                found.append(key.decode("utf-8") if isinstance(key, bytes) else key)
            return found

        return await self._call("keys", collect())

    async def flush(self) -> bool:
        await self._call("flushdb", self._client.flushdb())
        logger.warning("Cleared all Redis cache entries")
        return True

    async def ping(self) -> bool:
        return bool(await self._call("ping", self._client.ping()))

    async def close(self) -> None:
        if self.closed:
            return
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            logger.error(f"Error during Redis disconnection: {e}")
        logger.info("Disconnected from Redis")
        self._notify_closed()
