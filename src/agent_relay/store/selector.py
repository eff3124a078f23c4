"""Store selection with automatic fallback from the remote to the local store."""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..config import Settings
from ..exceptions import StoreUnavailableError
from .base import KeyValueStore
from .memory import MemoryStore
from .redis_store import RedisStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreMode(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class StoreHealth:
    """Failure tracking for the remote store. Lives for the process only."""

    mode: StoreMode
    consecutive_failures: int = 0
    last_failure_at: Optional[float] = None


class StoreSelector(KeyValueStore):
    """KeyValueStore facade that picks the local or remote backend per call.

    While in remote mode every remote failure is counted; the failing call
    itself is served by the local store. Once ``failure_threshold`` failures
    land within ``failure_window`` seconds the selector switches to local
    mode and probes the remote store every ``probe_interval`` seconds until
    it answers again.

    Switching is lossy: entries are never copied between the two stores.
    """

    def __init__(
        self,
        local: KeyValueStore,
        remote: Optional[KeyValueStore] = None,
        mode: StoreMode = StoreMode.LOCAL,
        failure_threshold: int = 3,
        failure_window: float = 60.0,
        probe_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if mode is StoreMode.REMOTE and remote is None:
            raise ValueError("Remote mode requires a remote store")
        self.local = local
        self.remote = remote
        self.health = StoreHealth(mode=mode)
        self.failure_threshold = failure_threshold
        self.failure_window = failure_window
        self.probe_interval = probe_interval
        self._clock = clock
        self._sleep = sleep
        self._health_lock: Optional[asyncio.Lock] = None
        self._probe_task: Optional[asyncio.Task] = None
        super().__init__()

    @classmethod
    async def create(
        cls,
        settings: Settings,
        local: Optional[KeyValueStore] = None,
        remote: Optional[KeyValueStore] = None,
    ) -> "StoreSelector":
        """Build a selector according to ``settings.store_mode``.

        ``local`` forces the in-process store, ``remote`` forces Redis, and
        ``auto`` tries Redis within the connect timeout and falls back to
        the local store if it does not answer.
        """
        local = local or MemoryStore(
            max_entries=settings.cache_max_entries,
            default_ttl=settings.cache_default_ttl,
        )
        options = dict(
            failure_threshold=settings.store_failure_threshold,
            failure_window=settings.store_failure_window,
            probe_interval=settings.store_probe_interval,
        )

        if settings.store_mode == "local":
            logger.info("Using in-process store (forced by configuration)")
            return cls(local, remote, mode=StoreMode.LOCAL, **options)

        remote = remote or RedisStore(
            settings.redis_url,
            connect_timeout=settings.redis_connect_timeout,
            default_ttl=settings.cache_default_ttl,
        )

        if settings.store_mode == "remote":
            logger.info("Using Redis store (forced by configuration)")
            return cls(local, remote, mode=StoreMode.REMOTE, **options)

        try:
            await asyncio.wait_for(remote.ping(), timeout=settings.redis_connect_timeout)
        except (StoreUnavailableError, asyncio.TimeoutError) as e:
            logger.warning(f"Redis not reachable at startup ({str(e) or 'timeout'}), using in-process store")
            selector = cls(local, remote, mode=StoreMode.LOCAL, **options)
            selector._start_probe()
            return selector

        logger.info("Connected to Redis, using shared store")
        return cls(local, remote, mode=StoreMode.REMOTE, **options)

    @property
    def name(self) -> str:
        return f"selector({self.current.name})"

    @property
    def mode(self) -> StoreMode:
        return self.health.mode

    @property
    def current(self) -> KeyValueStore:
        """The backend that will serve the next call."""
        if self.health.mode is StoreMode.REMOTE and self.remote is not None:
            return self.remote
        return self.local

    # Health tracking

    def _lock(self) -> asyncio.Lock:
        # Bound to the running loop on first use
        if self._health_lock is None:
            self._health_lock = asyncio.Lock()
        return self._health_lock

    async def _record_failure(self, error: StoreUnavailableError) -> None:
        async with self._lock():
            now = self._clock()
            health = self.health
            if (
                health.last_failure_at is not None
                and now - health.last_failure_at > self.failure_window
            ):
                health.consecutive_failures = 0
            health.consecutive_failures += 1
            health.last_failure_at = now

            if (
                health.mode is StoreMode.REMOTE
                and health.consecutive_failures >= self.failure_threshold
            ):
                health.mode = StoreMode.LOCAL
                logger.warning(
                    f"Redis failed {health.consecutive_failures} times in a row "
                    f"(last: {error.message}); switching to in-process store"
                )
                self._start_probe()

    async def _record_success(self) -> None:
        if self.health.consecutive_failures == 0:
            return
        async with self._lock():
            self.health.consecutive_failures = 0

    def _start_probe(self) -> None:
        if self.remote is None or self.closed:
            return
        if self._probe_task is not None and not self._probe_task.done():
            return
        self._probe_task = asyncio.create_task(self._probe_loop())

    async def _probe_loop(self) -> None:
        remote = self.remote
        if remote is None:
            return
        while not self.closed:
            await self._sleep(self.probe_interval)
            try:
                reachable = await remote.ping()
            except StoreUnavailableError:
                logger.debug("Redis probe failed, staying on in-process store")
                continue
            if not reachable:
                continue
            async with self._lock():
                self.health.mode = StoreMode.REMOTE
                self.health.consecutive_failures = 0
            logger.info("Redis reachable again, switching back to shared store")
            return

    async def _run(self, call: Callable[[KeyValueStore], Awaitable[T]]) -> T:
        if self.health.mode is StoreMode.REMOTE and self.remote is not None:
            try:
                result = await call(self.remote)
            except StoreUnavailableError as e:
                await self._record_failure(e)
            else:
                await self._record_success()
                return result
        return await call(self.local)

    # KeyValueStore

    async def get(self, key: str) -> Optional[str]:
        return await self._run(lambda store: store.get(key))

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        return await self._run(lambda store: store.set(key, value, ttl))

    async def delete(self, *keys: str) -> int:
        return await self._run(lambda store: store.delete(*keys))

    async def expire(self, key: str, ttl: int) -> int:
        return await self._run(lambda store: store.expire(key, ttl))

    async def ttl(self, key: str) -> int:
        return await self._run(lambda store: store.ttl(key))

    async def exists(self, *keys: str) -> int:
        return await self._run(lambda store: store.exists(*keys))

    async def keys(self, pattern: str = "*") -> list[str]:
        return await self._run(lambda store: store.keys(pattern))

    async def flush(self) -> bool:
        return await self._run(lambda store: store.flush())

    async def ping(self) -> bool:
        return await self._run(lambda store: store.ping())

    async def close(self) -> None:
        if self.closed:
            return
        if self._probe_task is not None and not self._probe_task.done():
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
        await self.local.close()
        if self.remote is not None:
            await self.remote.close()
        logger.info("Store selector closed")
        self._notify_closed()

    def status(self) -> dict[str, Any]:
        """Get store status for monitoring."""
        return {
            "mode": self.health.mode.value,
            "backend": self.current.name,
            "consecutive_failures": self.health.consecutive_failures,
            "last_failure_at": self.health.last_failure_at,
            "probing": self._probe_task is not None and not self._probe_task.done(),
            "remote_configured": self.remote is not None,
        }
