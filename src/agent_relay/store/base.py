"""Key/value store interface shared by the local and remote backends.

Values are strings (JSON-encoded where structured); a miss is ``None``.
TTLs are whole seconds, matching the remote cache protocol.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# ttl() sentinels
TTL_NO_EXPIRY = -1
TTL_MISSING = -2


def compile_key_pattern(pattern: str) -> "re.Pattern[str]":
    """Compile a key pattern where ``*`` matches any run of characters."""
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + "$", re.DOTALL)


class Lifecycle:
    """Close notification for a store; the only lifecycle event is "closed"."""

    def __init__(self) -> None:
        self._close_callbacks: list[Callable[[], Any]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on_close(self, callback: Callable[[], Any]) -> None:
        """Register a callback to run once the store is closed."""
        self._close_callbacks.append(callback)

    def _notify_closed(self) -> None:
        self._closed = True
        for callback in self._close_callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Close callback failed: {e}")


class KeyValueStore(Lifecycle, ABC):
    """Abstract base class for key/value stores with per-key expiry."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend name used in logs and status reports."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for ``key``, or None if missing or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Store ``value``, replacing any previous value and expiry."""
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        ...

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> int:
        """Reset the TTL of an existing key. Returns 1 if it existed, else 0."""
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Remaining seconds, TTL_NO_EXPIRY, or TTL_MISSING."""
        ...

    @abstractmethod
    async def exists(self, *keys: str) -> int:
        """Count how many of ``keys`` currently exist."""
        ...

    @abstractmethod
    async def keys(self, pattern: str = "*") -> list[str]:
        """List keys matching ``pattern`` (``*`` is the only wildcard)."""
        ...

    @abstractmethod
    async def flush(self) -> bool:
        """Remove every key."""
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Check the backend is reachable."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release timers and connections. Safe to call more than once."""
        ...

    async def get_json(self, key: str) -> Any:
        """Get and deserialize a JSON value. Undecodable values count as a miss."""
        value = await self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"JSON deserialization error for {key}: {e}")
            return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Serialize and store a JSON value."""
        return await self.set(key, json.dumps(value), ttl)
