"""Orchestrator driving one agent turn from submission to reply."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from ..exceptions import (
    AgentNotFoundError,
    AgentPlatformError,
    AgentUnavailableError,
    SubmissionFailedError,
    TurnCancelledError,
    TurnTimeoutError,
    UpstreamTurnFailedError,
)
from ..models import (
    ContextItem,
    DocumentContext,
    MessageGroups,
    MessageVersion,
    PendingTurn,
    TurnResult,
    TurnState,
    TurnStatus,
    UserContext,
    build_context_payload,
)
from ..providers.base import ConversationClient
from ..services.agent_cache import AgentConfigCache
from ..services.session_context import SessionContextStore

logger = logging.getLogger(__name__)


def locate_agent_reply(groups: MessageGroups, message_id: Optional[str]) -> Optional[MessageVersion]:
    """Find the latest version of the agent reply to ``message_id``.

    Matching order: an agent message whose parent is ``message_id``, then
    the first agent group after the group holding ``message_id``. Only when
    the platform did not echo a message id do we fall back to position:
    the newest agent group after the opening one.
    """
    if message_id:
        for group in reversed(groups):
            if group and group[-1].is_agent and group[-1].parent_message_id == message_id:
                return group[-1]

        for index, group in enumerate(groups):
            if any(version.id == message_id for version in group):
                for later in groups[index + 1 :]:
                    if later and later[-1].is_agent:
                        return later[-1]
                return None
        return None

    for group in reversed(groups[1:]):
        if group and group[-1].is_agent:
            return group[-1]
    return None


@dataclass
class _TurnRun:
    """Tracks the state of one turn. Terminal states are absorbing."""

    agent_id: str
    state: TurnState = TurnState.IDLE
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None

    def advance(self, new_state: TurnState) -> None:
        if self.state.is_terminal:
            raise RuntimeError(f"Turn already ended in {self.state.value}, cannot move to {new_state.value}")
        logger.debug(f"Turn for {self.agent_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state


class ConversationOrchestrator:
    """Runs agent turns: ensure conversation, submit, poll until terminal.

    Only the fetch step is ever repeated. Conversation creation and message
    submission happen at most once per turn, so a slow agent costs
    repeated reads and never duplicates a user message.
    """

    def __init__(
        self,
        client: ConversationClient,
        sessions: Optional[SessionContextStore] = None,
        agent_cache: Optional[AgentConfigCache] = None,
        user_context: Optional[UserContext] = None,
        poll_interval_ms: int = 2000,
        max_attempts: int = 30,
        max_turn_seconds: float = 120.0,
        max_context_chars: int = 200_000,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.sessions = sessions
        self.agent_cache = agent_cache
        self.user_context = user_context or UserContext()
        self.poll_interval_ms = poll_interval_ms
        self.max_attempts = max_attempts
        self.max_turn_seconds = max_turn_seconds
        self.max_context_chars = max_context_chars
        self._sleep = sleep
        self._clock = clock

        # Statistics
        self.total_turns = 0
        self.completed_turns = 0
        self.failed_turns = 0

    def polling_budget(
        self, poll_interval_ms: Optional[int] = None, max_attempts: Optional[int] = None
    ) -> tuple[float, int]:
        """Resolve the poll interval (seconds) and attempt budget for a turn.

        Per-call overrides are clamped so interval x attempts never exceeds
        ``max_turn_seconds``.

        Raises:
            ValueError: If an override is not positive.
        """
        interval_ms = self.poll_interval_ms if poll_interval_ms is None else poll_interval_ms
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if interval_ms <= 0:
            raise ValueError(f"poll_interval_ms must be positive, got {interval_ms}")
        if attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {attempts}")

        ceiling_ms = int(self.max_turn_seconds * 1000)
        interval_ms = min(interval_ms, ceiling_ms)
        if interval_ms * attempts > ceiling_ms:
            clamped = max(1, ceiling_ms // interval_ms)
            logger.warning(
                f"Polling budget {interval_ms}ms x {attempts} exceeds "
                f"{self.max_turn_seconds:.0f}s ceiling, limiting to {clamped} attempts"
            )
            attempts = clamped
        return interval_ms / 1000, attempts

    async def run_turn(
        self,
        agent_id: str,
        prompt: str,
        *,
        session_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        document_refs: Optional[list[str]] = None,
        context_items: Optional[list[ContextItem]] = None,
        user_context: Optional[UserContext] = None,
        poll_interval_ms: Optional[int] = None,
        max_attempts: Optional[int] = None,
        output_format: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TurnResult:
        """Run one turn against an agent and return its reply.

        Args:
            agent_id: Agent to talk to.
            prompt: User message; must not be empty.
            session_id: Caller session; its recorded conversation is reused.
            conversation_id: Explicit conversation to continue; wins over the session.
            document_refs: Document references folded into the message context.
            context_items: Additional typed context items.
            user_context: Overrides the default user fields.
            poll_interval_ms: Per-call poll interval override.
            max_attempts: Per-call poll attempt override.
            output_format: Forwarded to the platform as ``outputFormat``.
            cancel_event: Set it to stop the turn at the next poll boundary.

        Returns:
            TurnResult with the reply text and conversation/message ids.

        Raises:
            ValueError: On invalid input, before any network call.
            AgentNotFoundError: If the agent does not exist.
            AgentUnavailableError: If no conversation could be started.
            SubmissionFailedError: If the message could not be posted.
            TurnTimeoutError: If polling ran out of attempts.
            TurnCancelledError: If ``cancel_event`` was set.
            UpstreamTurnFailedError: If the agent's turn failed remotely.
            AgentPlatformError: If polling hit a non-retryable platform error.
        """
        if not agent_id:
            raise ValueError("agent_id is required")
        if not prompt or not prompt.strip():
            raise ValueError("prompt must not be empty")

        refs = list(document_refs or [])
        items: list[ContextItem] = [DocumentContext(ref=ref) for ref in refs]
        items.extend(context_items or [])
        context = build_context_payload(items, self.max_context_chars)
        interval, attempts = self.polling_budget(poll_interval_ms, max_attempts)

        self.total_turns += 1
        run = _TurnRun(agent_id=agent_id)
        try:
            result = await self._drive(
                run,
                prompt,
                session_id=session_id,
                conversation_id=conversation_id,
                context=context,
                user_context=user_context or self.user_context,
                output_format=output_format,
                interval=interval,
                attempts=attempts,
                cancel_event=cancel_event,
            )
        except BaseException as e:
            self.failed_turns += 1
            if not run.state.is_terminal:
                cancelled = isinstance(e, asyncio.CancelledError)
                run.advance(TurnState.CANCELLED if cancelled else TurnState.FAILED)
            raise

        self.completed_turns += 1
        if self.sessions is not None and session_id:
            await self.sessions.record(
                session_id,
                result.conversation_id,
                refs,
                agent_id=result.agent_id,
                last_message_id=result.message_id,
            )
        return result

    async def _drive(
        self,
        run: _TurnRun,
        prompt: str,
        *,
        session_id: Optional[str],
        conversation_id: Optional[str],
        context: dict[str, Any],
        user_context: UserContext,
        output_format: Optional[str],
        interval: float,
        attempts: int,
        cancel_event: Optional[asyncio.Event],
    ) -> TurnResult:
        agent_id = run.agent_id

        if self.agent_cache is not None:
            try:
                await self.agent_cache.get(agent_id)
            except AgentNotFoundError:
                run.advance(TurnState.FAILED)
                raise
            except AgentPlatformError as e:
                run.advance(TurnState.FAILED)
                raise AgentUnavailableError(
                    f"Could not resolve agent {agent_id}: {e.message}", agent_id=agent_id, upstream=e
                ) from e

        # Idle -> ConversationEnsured
        if conversation_id is None and self.sessions is not None and session_id:
            conversation_id = await self.sessions.resume(session_id)
            if conversation_id:
                logger.info(f"Session {session_id} continues conversation {conversation_id}")

        if conversation_id:
            logger.info(f"Using existing conversation with ID: {conversation_id}")
        else:
            try:
                conversation_id = await self.client.create_conversation(agent_id)
            except AgentPlatformError as e:
                run.advance(TurnState.FAILED)
                raise AgentUnavailableError(
                    f"Failed to create conversation with agent {agent_id}: {e.message}",
                    agent_id=agent_id,
                    upstream=e,
                ) from e
            if self.sessions is not None and session_id:
                await self.sessions.record(
                    session_id, conversation_id, count_turn=False, agent_id=agent_id
                )

        run.conversation_id = conversation_id
        run.advance(TurnState.CONVERSATION_ENSURED)

        # ConversationEnsured -> MessageSubmitted
        try:
            message_id = await self.client.post_message(
                conversation_id,
                agent_id,
                prompt,
                user_context,
                context=context,
                output_format=output_format,
            )
        except AgentPlatformError as e:
            run.advance(TurnState.FAILED)
            raise SubmissionFailedError(
                f"Failed to send message to conversation {conversation_id}: {e.message}",
                agent_id=agent_id,
                conversation_id=conversation_id,
                upstream=e,
            ) from e

        run.message_id = message_id
        run.advance(TurnState.MESSAGE_SUBMITTED)

        reply, attempts_made = await self._poll(run, interval, attempts, cancel_event)
        run.advance(TurnState.COMPLETED)
        logger.info(
            f"Agent {agent_id} completed turn in conversation {conversation_id} "
            f"after {attempts_made} attempts"
        )
        return TurnResult(
            text=reply.content or "",
            conversation_id=conversation_id,
            message_id=message_id,
            completed_at=datetime.now(timezone.utc),
            agent_id=agent_id,
            attempts=attempts_made,
        )

    async def _poll(
        self,
        run: _TurnRun,
        interval: float,
        max_attempts: int,
        cancel_event: Optional[asyncio.Event],
    ) -> tuple[MessageVersion, int]:
        if run.conversation_id is None:
            raise RuntimeError("Cannot poll before a conversation is ensured")
        started_at = self._clock()
        pending = PendingTurn(
            conversation_id=run.conversation_id,
            message_id=run.message_id,
            started_at=started_at,
            deadline=started_at + self.max_turn_seconds,
        )
        run.advance(TurnState.POLLING)

        def cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        def cancel() -> TurnCancelledError:
            run.advance(TurnState.CANCELLED)
            logger.info(f"Turn in conversation {pending.conversation_id} cancelled after {pending.attempt} attempts")
            return TurnCancelledError(
                "Turn cancelled by caller",
                agent_id=run.agent_id,
                conversation_id=pending.conversation_id,
                message_id=pending.message_id,
                attempts=pending.attempt,
            )

        while pending.attempt < max_attempts:
            if cancelled():
                raise cancel()
            await self._sleep(interval)
            if cancelled():
                raise cancel()
            if self._clock() > pending.deadline:
                logger.warning(f"Turn deadline of {self.max_turn_seconds:.0f}s passed")
                break

            pending.attempt += 1
            try:
                groups = await self.client.fetch_conversation(pending.conversation_id)
            except AgentPlatformError as e:
                if not e.is_retryable:
                    run.advance(TurnState.FAILED)
                    raise
                logger.warning(f"Polling attempt {pending.attempt} failed, will retry: {e.message}")
                continue

            reply = locate_agent_reply(groups, pending.message_id)
            if reply is None or not reply.status.is_terminal:
                status = reply.status.value if reply else "not yet present"
                logger.debug(
                    f"Waiting for agent response ({status}, attempt {pending.attempt}/{max_attempts})"
                )
                continue

            if reply.status is TurnStatus.COMPLETED:
                return reply, pending.attempt

            run.advance(TurnState.FAILED)
            logger.warning(f"Agent turn ended as {reply.status.value}: {reply.error}")
            raise UpstreamTurnFailedError(
                f"Agent turn {reply.status.value}",
                status=reply.status.value,
                reason=reply.error,
                agent_id=run.agent_id,
                conversation_id=pending.conversation_id,
                message_id=pending.message_id,
                attempts=pending.attempt,
            )

        run.advance(TurnState.TIMED_OUT)
        logger.error(f"Timed out waiting for agent response after {pending.attempt} attempts")
        raise TurnTimeoutError(
            f"Timed out waiting for agent response after {pending.attempt} attempts",
            agent_id=run.agent_id,
            conversation_id=pending.conversation_id,
            message_id=pending.message_id,
            attempts=pending.attempt,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about turns run so far."""
        return {
            "total_turns": self.total_turns,
            "completed": self.completed_turns,
            "failed": self.failed_turns,
            "success_rate": self.completed_turns / self.total_turns if self.total_turns > 0 else 0,
        }
