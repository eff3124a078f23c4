"""Agent Relay - run conversations with remote AI agents behind a resilient cache"""

__version__ = "1.0.0"

from .config import Settings
from .exceptions import (
    AgentNotFoundError,
    AgentPlatformError,
    AgentUnavailableError,
    RelayError,
    SubmissionFailedError,
    TurnCancelledError,
    TurnError,
    TurnTimeoutError,
    UpstreamTurnFailedError,
)
from .manager import AgentRelay
from .models import DocumentContext, TextContext, TurnResult, UserContext

__all__ = [
    "AgentNotFoundError",
    "AgentPlatformError",
    "AgentRelay",
    "AgentUnavailableError",
    "DocumentContext",
    "RelayError",
    "Settings",
    "SubmissionFailedError",
    "TextContext",
    "TurnCancelledError",
    "TurnError",
    "TurnResult",
    "TurnTimeoutError",
    "UpstreamTurnFailedError",
    "UserContext",
]
