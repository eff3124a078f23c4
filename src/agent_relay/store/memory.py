"""In-process LRU store with per-key expiry."""

import asyncio
import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from .base import TTL_MISSING, TTL_NO_EXPIRY, KeyValueStore, compile_key_pattern

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: str
    expires_at: Optional[float]
    generation: int


class MemoryStore(KeyValueStore):
    """Bounded LRU cache with a timer per expiring key.

    Expired entries are removed by their timer, and reads also check the
    deadline so an entry is never served past its TTL even if the timer
    has not fired yet. Overwriting or deleting a key cancels its timer.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.default_ttl = default_ttl or None
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._generation = 0
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        super().__init__()

    @property
    def name(self) -> str:
        return "memory"

    def __len__(self) -> int:
        return len(self._entries)

    # Internal helpers (caller holds the lock)

    def _cancel_timer(self, key: str) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def _remove(self, key: str) -> bool:
        self._cancel_timer(key)
        return self._entries.pop(key, None) is not None

    def _live_entry(self, key: str) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            self._remove(key)
            return None
        return entry

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.expires_at is not None and now >= entry.expires_at
        ]
        for key in expired:
            self._remove(key)

    def _arm_timer(self, key: str, ttl: int, generation: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: lazy expiry on access still applies
            return
        self._timers[key] = loop.call_later(ttl, self._on_timer, key, generation)

    def _on_timer(self, key: str, generation: int) -> None:
        with self._lock:
            entry = self._entries.get(key)
            # A newer value owns this key now; its own timer handles it
            if entry is None or entry.generation != generation:
                return
            self._timers.pop(key, None)
            del self._entries[key]
            logger.debug(f"Expired key {key}")

    def _store(self, key: str, value: str, ttl: Optional[int]) -> None:
        self._cancel_timer(key)
        self._generation += 1
        expires_at = self._clock() + ttl if ttl else None

        if key in self._entries:
            self._entries.move_to_end(key)
        else:
            self._purge_expired()
            while len(self._entries) >= self.max_entries:
                oldest, _ = self._entries.popitem(last=False)
                self._cancel_timer(oldest)
                self.evictions += 1
                logger.debug(f"Evicted least recently used key {oldest}")

        self._entries[key] = _Entry(value=value, expires_at=expires_at, generation=self._generation)
        if ttl:
            self._arm_timer(key, ttl, self._generation)

    # KeyValueStore

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        with self._lock:
            self._store(key, value, ttl or self.default_ttl)
        return True

    async def delete(self, *keys: str) -> int:
        with self._lock:
            removed = 0
            for key in keys:
                if self._live_entry(key) is not None and self._remove(key):
                    removed += 1
            return removed

    async def expire(self, key: str, ttl: int) -> int:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return 0
            if ttl <= 0:
                self._remove(key)
                return 1
            self._store(key, entry.value, ttl)
            return 1

    async def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return TTL_MISSING
            if entry.expires_at is None:
                return TTL_NO_EXPIRY
            return max(0, math.ceil(entry.expires_at - self._clock()))

    async def exists(self, *keys: str) -> int:
        with self._lock:
            return sum(1 for key in keys if self._live_entry(key) is not None)

    async def keys(self, pattern: str = "*") -> list[str]:
        with self._lock:
            self._purge_expired()
            if pattern == "*":
                return list(self._entries.keys())
            regex = compile_key_pattern(pattern)
            return [key for key in self._entries if regex.match(key)]

    async def flush(self) -> bool:
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._entries.clear()
        return True

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        if self.closed:
            return
        await self.flush()
        logger.info("MemoryStore closed")
        self._notify_closed()

    def get_stats(self) -> dict:
        """Get cache statistics."""
        total_requests = self.hits + self.misses
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "timers": len(self._timers),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hits / total_requests if total_requests > 0 else 0,
            "default_ttl": self.default_ttl,
        }
