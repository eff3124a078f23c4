"""Error taxonomy for the agent relay."""

from typing import Any, Optional


class RelayError(Exception):
    """Base exception for all relay errors."""

    kind = "relay_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error for the tool layer."""
        return {"error": self.kind, "message": self.message, **self.details}


class StoreUnavailableError(RelayError):
    """Raised when the remote cache backend cannot be reached."""

    kind = "store_unavailable"


# Platform (upstream) errors


class AgentPlatformError(RelayError):
    """Base exception for errors reported by the agent platform."""

    kind = "upstream"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Any = None,
        is_retryable: bool = False,
    ):
        super().__init__(message, {"status_code": status_code, "detail": detail})
        self.status_code = status_code
        self.detail = detail
        self.is_retryable = is_retryable


class AuthenticationError(AgentPlatformError):
    """Raised when the platform rejects our credentials."""

    kind = "authentication_failed"

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message, status_code, detail, is_retryable=False)


class RateLimitError(AgentPlatformError):
    """Raised when rate limited by the platform."""

    kind = "rate_limited"

    def __init__(self, message: str, status_code: Optional[int] = 429, detail: Any = None):
        super().__init__(message, status_code, detail, is_retryable=True)


class AgentNotFoundError(AgentPlatformError):
    """Raised when the platform has no agent with the requested id."""

    kind = "agent_not_found"

    def __init__(
        self, message: str, agent_id: str = "", status_code: Optional[int] = 404, detail: Any = None
    ):
        super().__init__(message, status_code, detail, is_retryable=False)
        self.agent_id = agent_id
        self.details["agent_id"] = agent_id


class ConversationNotFoundError(AgentPlatformError):
    """Raised when a conversation id is unknown to the platform."""

    kind = "conversation_not_found"

    def __init__(self, message: str, status_code: Optional[int] = 404, detail: Any = None):
        super().__init__(message, status_code, detail, is_retryable=False)


class PlatformTransportError(AgentPlatformError):
    """Raised when the request never got an HTTP response."""

    kind = "transport_error"

    def __init__(self, message: str, detail: Any = None):
        super().__init__(message, None, detail, is_retryable=True)


# Turn (orchestration) errors


class TurnError(RelayError):
    """Base exception for a turn that did not complete."""

    kind = "turn_failed"

    def __init__(
        self,
        message: str,
        agent_id: str = "",
        conversation_id: Optional[str] = None,
        message_id: Optional[str] = None,
        attempts: int = 0,
        upstream: Optional[AgentPlatformError] = None,
    ):
        details: dict[str, Any] = {"agent_id": agent_id}
        if conversation_id:
            details["conversation_id"] = conversation_id
        if message_id:
            details["message_id"] = message_id
        if attempts:
            details["attempts"] = attempts
        if upstream is not None:
            details["upstream"] = upstream.to_dict()
        super().__init__(message, details)
        self.agent_id = agent_id
        self.conversation_id = conversation_id
        self.message_id = message_id
        self.attempts = attempts
        self.upstream = upstream


class AgentUnavailableError(TurnError):
    """Raised when a conversation could not be started with the agent."""

    kind = "agent_unavailable"


class SubmissionFailedError(TurnError):
    """Raised when posting the message failed; the conversation is still usable."""

    kind = "submission_failed"


class TurnTimeoutError(TurnError):
    """Raised when polling ran out of attempts."""

    kind = "timed_out"


class TurnCancelledError(TurnError):
    """Raised when the caller cancelled the turn."""

    kind = "cancelled"


class UpstreamTurnFailedError(TurnError):
    """Raised when the agent's own turn ended as failed or cancelled."""

    kind = "upstream_turn_failed"

    def __init__(self, message: str, status: str = "failed", reason: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status = status
        self.reason = reason
        self.details["status"] = status
        if reason is not None:
            self.details["reason"] = reason
