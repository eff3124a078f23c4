"""Key/value stores: in-process, Redis, and the selector in front of both."""

from .base import TTL_MISSING, TTL_NO_EXPIRY, KeyValueStore, Lifecycle
from .memory import MemoryStore
from .redis_store import RedisStore
from .selector import StoreHealth, StoreMode, StoreSelector

__all__ = [
    "KeyValueStore",
    "Lifecycle",
    "MemoryStore",
    "RedisStore",
    "StoreHealth",
    "StoreMode",
    "StoreSelector",
    "TTL_MISSING",
    "TTL_NO_EXPIRY",
]
