"""Runtime settings for the agent relay, read from the environment."""

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://dust.tt/api/v1"

STORE_MODES = ("auto", "local", "remote")

POSITIVE_FIELDS = (
    "request_timeout",
    "redis_connect_timeout",
    "store_failure_threshold",
    "store_failure_window",
    "store_probe_interval",
    "cache_max_entries",
    "cache_default_ttl",
    "poll_interval_ms",
    "max_poll_attempts",
    "max_turn_seconds",
    "agent_cache_ttl",
    "session_ttl",
    "session_max_documents",
    "max_context_chars",
)


def load_env_file() -> Optional[str]:
    """Load the first .env file found in the usual locations.

    Looks next to the entry point, in its parent, in the working directory
    and next to this package, in that order.

    Returns:
        The path that was loaded, or None if no .env file was found.
    """
    main_dir = os.path.dirname(os.path.abspath(sys.argv[0]))
    env_locations = [
        os.path.join(main_dir, ".env"),
        os.path.join(os.path.dirname(main_dir), ".env"),
        os.path.join(os.getcwd(), ".env"),
        os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"),
    ]

    for env_path in env_locations:
        if os.path.exists(env_path):
            logger.info(f"Loading .env from {env_path}")
            load_dotenv(env_path)
            return env_path

    logger.debug("No .env file found in expected locations")
    return None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class Settings:
    """All tunables of the relay.

    Defaults match the platform's published limits; every field can be
    overridden through the environment (see ``from_env``).
    """

    # Agent platform
    api_url: str = DEFAULT_API_URL
    api_key: Optional[str] = None
    workspace_id: Optional[str] = None
    agent_ids: list[str] = field(default_factory=list)
    username: str = "Anonymous User"
    timezone: str = "UTC"
    email: str = ""
    fullname: str = ""
    request_timeout: float = 30.0

    # Key/value store
    store_mode: str = "auto"
    redis_url: str = "redis://localhost:6379/0"
    redis_connect_timeout: float = 2.0
    store_failure_threshold: int = 3
    store_failure_window: float = 60.0
    store_probe_interval: float = 30.0
    cache_max_entries: int = 1000
    cache_default_ttl: int = 3600

    # Orchestration
    poll_interval_ms: int = 2000
    max_poll_attempts: int = 30
    max_turn_seconds: float = 120.0
    agent_cache_ttl: int = 300
    session_ttl: int = 86400
    session_max_documents: int = 50
    max_context_chars: int = 200_000

    debug: bool = False

    def __post_init__(self) -> None:
        if self.store_mode not in STORE_MODES:
            raise ValueError(
                f"store_mode must be one of {', '.join(STORE_MODES)}, got {self.store_mode!r}"
            )
        for name in POSITIVE_FIELDS:
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)!r}")

    @property
    def default_agent_id(self) -> Optional[str]:
        """First configured agent id, used when a caller omits one."""
        return self.agent_ids[0] if self.agent_ids else None

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "Settings":
        """Build settings from environment variables.

        Args:
            load_dotenv_file: Load a .env file before reading the environment.

        Returns:
            A validated Settings instance.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        if load_dotenv_file:
            load_env_file()

        agent_ids = [
            agent_id.strip()
            for agent_id in os.getenv("DUST_AGENT_IDS", "").split(",")
            if agent_id.strip()
        ]

        api_key = os.getenv("DUST_API_KEY")
        if api_key:
            logger.info(f"DUST_API_KEY found (length: {len(api_key)})")
        else:
            logger.warning("DUST_API_KEY not found in environment")

        return cls(
            api_url=os.getenv("DUST_API_URL", DEFAULT_API_URL).rstrip("/"),
            api_key=api_key,
            workspace_id=os.getenv("DUST_WORKSPACE_ID"),
            agent_ids=agent_ids,
            username=os.getenv("DUST_USERNAME", "Anonymous User"),
            timezone=os.getenv("DUST_TIMEZONE", "UTC"),
            email=os.getenv("DUST_EMAIL", ""),
            fullname=os.getenv("DUST_FULLNAME", ""),
            request_timeout=_env_float("DUST_REQUEST_TIMEOUT", 30.0),
            store_mode=os.getenv("RELAY_STORE_MODE", "auto").strip().lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            redis_connect_timeout=_env_float("RELAY_REDIS_CONNECT_TIMEOUT", 2.0),
            store_failure_threshold=_env_int("RELAY_STORE_FAILURE_THRESHOLD", 3),
            store_failure_window=_env_float("RELAY_STORE_FAILURE_WINDOW", 60.0),
            store_probe_interval=_env_float("RELAY_STORE_PROBE_INTERVAL", 30.0),
            cache_max_entries=_env_int("RELAY_CACHE_MAX_ENTRIES", 1000),
            cache_default_ttl=_env_int("RELAY_CACHE_DEFAULT_TTL", 3600),
            poll_interval_ms=_env_int("RELAY_POLL_INTERVAL_MS", 2000),
            max_poll_attempts=_env_int("RELAY_MAX_POLL_ATTEMPTS", 30),
            max_turn_seconds=_env_float("RELAY_MAX_TURN_SECONDS", 120.0),
            agent_cache_ttl=_env_int("RELAY_AGENT_CACHE_TTL", 300),
            session_ttl=_env_int("RELAY_SESSION_TTL", 86400),
            session_max_documents=_env_int("RELAY_SESSION_MAX_DOCUMENTS", 50),
            max_context_chars=_env_int("RELAY_MAX_CONTEXT_CHARS", 200_000),
            debug=bool(os.getenv("RELAY_DEBUG")),
        )
