"""
Health check entry point: builds the relay and reports its status.
"""

import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from . import __version__
from .config import Settings
from .exceptions import RelayError
from .manager import AgentRelay

logger = logging.getLogger(__name__)

LOG_DIR = "~/.agent-relay/logs"


def configure_logging(settings: Optional[Settings] = None, log_dir: str = LOG_DIR) -> str:
    """Send logs to stderr and a rotating file. Returns the log file path."""
    log_dir = os.path.expanduser(log_dir)
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "agent-relay.log")

    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
        RotatingFileHandler(
            log_file,
            mode="a",
            encoding="utf-8",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        ),
    ]

    debug = settings.debug if settings is not None else bool(os.getenv("RELAY_DEBUG"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )

    logger.info(f"Logging to file: {log_file}")
    return log_file


async def health_check(settings: Settings, relay: Optional[AgentRelay] = None) -> dict[str, Any]:
    """Resolve every configured agent and collect the relay status.

    Agent lookups warm the agent cache. A failed lookup is reported, not raised.
    """
    relay = relay or await AgentRelay.create(settings)
    async with relay:
        agents: dict[str, Any] = {}
        for agent_id in settings.agent_ids:
            try:
                config = await relay.get_agent_info(agent_id)
                agents[agent_id] = {"ok": True, "name": config.name, "model": config.model}
            except RelayError as e:
                logger.warning(f"Agent {agent_id} could not be resolved: {e}")
                agents[agent_id] = {"ok": False, **e.to_dict()}

        report = relay.status()
        report["version"] = __version__
        report["agents"] = agents
        return report


def main() -> None:
    """Main entry point."""
    configure_logging()
    logger.info(f"Starting agent relay health check v{__version__}")

    try:
        settings = Settings.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if settings.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        report = asyncio.run(health_check(settings))
    except KeyboardInterrupt:
        logger.info("Health check stopped by user")
        sys.exit(1)

    print(json.dumps(report, indent=2, default=str))
    sys.exit(0)


if __name__ == "__main__":
    main()
