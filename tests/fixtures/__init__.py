"""Test fixtures for the agent relay tests."""

import asyncio
import re
from typing import Any, Optional, Union
from unittest.mock import AsyncMock, MagicMock

from agent_relay.exceptions import AgentNotFoundError
from agent_relay.models import AgentConfig, MessageGroups, MessageVersion, TurnStatus, UserContext
from agent_relay.providers.base import ConversationClient


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested delays and advances a FakeClock instead of waiting."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)
        # Let other tasks run without waiting in real time
        await asyncio.sleep(0)


def user_version(message_id: str = "M1") -> MessageVersion:
    return MessageVersion(id=message_id, type="user_message", status=TurnStatus.CREATED, content="hello")


def agent_version(
    status: str = "completed",
    content: Optional[str] = "Hi there",
    parent_message_id: Optional[str] = "M1",
    message_id: str = "A1",
    error: Any = None,
) -> MessageVersion:
    return MessageVersion(
        id=message_id,
        type="agent_message",
        status=TurnStatus.parse(status),
        content=content,
        parent_message_id=parent_message_id,
        error=error,
    )


def conversation(*agent_statuses: str, message_id: str = "M1") -> MessageGroups:
    """Groups for a fresh conversation: the user message, then one agent group.

    Each status becomes a version of the agent message, latest last.
    """
    groups: MessageGroups = [[user_version(message_id)]]
    if agent_statuses:
        groups.append(
            [agent_version(status, parent_message_id=message_id) for status in agent_statuses]
        )
    return groups


FetchStep = Union[MessageGroups, Exception]


class FakeConversationClient(ConversationClient):
    """Scripted ConversationClient that records every call.

    ``fetch_script`` is consumed one step per fetch; the last step repeats.
    A step that is an exception is raised instead of returned.
    """

    def __init__(
        self,
        conversation_id: str = "C1",
        message_id: Optional[str] = "M1",
        fetch_script: Optional[list[FetchStep]] = None,
        create_error: Optional[Exception] = None,
        post_error: Optional[Exception] = None,
        agents: Optional[list[AgentConfig]] = None,
        agent_error: Optional[Exception] = None,
    ):
        self.conversation_id = conversation_id
        self.message_id = message_id
        self.fetch_script = list(fetch_script or [conversation("completed")])
        self.create_error = create_error
        self.post_error = post_error
        self.agents = {agent.id: agent for agent in (agents or [])}
        self.agent_error = agent_error

        self.created: list[str] = []
        self.posted: list[dict[str, Any]] = []
        self.fetched: list[str] = []
        self.agent_lookups: list[str] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    async def create_conversation(self, agent_id: str) -> str:
        self.created.append(agent_id)
        if self.create_error is not None:
            raise self.create_error
        return self.conversation_id

    async def post_message(
        self,
        conversation_id: str,
        agent_id: str,
        text: str,
        user_context: UserContext,
        context: Optional[dict[str, Any]] = None,
        output_format: Optional[str] = None,
    ) -> Optional[str]:
        self.posted.append(
            {
                "conversation_id": conversation_id,
                "agent_id": agent_id,
                "text": text,
                "user_context": user_context,
                "context": context,
                "output_format": output_format,
            }
        )
        if self.post_error is not None:
            raise self.post_error
        return self.message_id

    async def fetch_conversation(self, conversation_id: str) -> MessageGroups:
        self.fetched.append(conversation_id)
        index = min(len(self.fetched), len(self.fetch_script)) - 1
        step = self.fetch_script[index]
        if isinstance(step, Exception):
            raise step
        return step

    async def get_agent_config(self, agent_id: str) -> AgentConfig:
        self.agent_lookups.append(agent_id)
        if self.agent_error is not None:
            raise self.agent_error
        if self.agents and agent_id not in self.agents:
            raise AgentNotFoundError(f"Agent with ID {agent_id} not found", agent_id)
        return self.agents.get(agent_id) or AgentConfig(id=agent_id, name=f"Agent {agent_id}")

    async def list_agents(self, view: Optional[str] = None, limit: int = 10) -> list[AgentConfig]:
        return list(self.agents.values())[:limit]

    async def close(self) -> None:
        self.closed = True


def make_agent(agent_id: str = "agent-1", **overrides: Any) -> AgentConfig:
    fields: dict[str, Any] = dict(
        id=agent_id,
        name=f"Agent {agent_id}",
        description="Test agent",
        capabilities=frozenset({"search"}),
        model="gpt-4o",
        provider="openai",
        status="active",
    )
    fields.update(overrides)
    return AgentConfig(**fields)


def create_mock_redis() -> MagicMock:
    """Create a mock redis.asyncio client whose commands all succeed."""
    client = MagicMock()
    client.get = AsyncMock(return_value="value")
    client.set = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    client.expire = AsyncMock(return_value=1)
    client.ttl = AsyncMock(return_value=42)
    client.exists = AsyncMock(return_value=2)
    client.flushdb = AsyncMock(return_value=True)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


def redis_glob_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a Redis MATCH glob (``*``, ``?``, ``[...]``, ``\\`` escapes) to a regex."""
    out = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            out.append(".*")
        elif char == "?":
            out.append(".")
        elif char == "[" and "]" in pattern[i + 1:]:
            end = pattern.index("]", i + 1)
            body = pattern[i + 1:end]
            negate = body.startswith("^")
            if negate:
                body = body[1:]
            out.append("[" + ("^" if negate else "") + body.replace("\\", "\\\\") + "]")
            i = end + 1
            continue
        else:
            out.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


def create_keyspace_redis(keys: list[str]) -> MagicMock:
    """Create a mock redis client whose SCAN MATCH follows Redis glob rules."""
    client = create_mock_redis()

    async def scan_iter(match="*"):
        regex = redis_glob_regex(match)
        for key in keys:
            if regex.match(key):
                yield key

    client.scan_iter = MagicMock(side_effect=scan_iter)
    return client


class EchoConversationClient(FakeConversationClient):
    """Client with one conversation per create; each reply echoes its prompt.

    A reply completes on the ``steps_to_complete``-th fetch of its conversation.
    """

    def __init__(self, steps_to_complete: int = 2, **kwargs: Any):
        super().__init__(**kwargs)
        self.steps_to_complete = steps_to_complete
        self.prompts: dict[str, str] = {}
        self.fetch_counts: dict[str, int] = {}

    async def create_conversation(self, agent_id: str) -> str:
        self.created.append(agent_id)
        conversation_id = f"C{len(self.created)}"
        await asyncio.sleep(0)
        return conversation_id

    async def post_message(self, conversation_id: str, agent_id: str, text: str, *args: Any, **kwargs: Any):
        await super().post_message(conversation_id, agent_id, text, *args, **kwargs)
        self.prompts[conversation_id] = text
        await asyncio.sleep(0)
        return f"{conversation_id}-M"

    async def fetch_conversation(self, conversation_id: str) -> MessageGroups:
        self.fetched.append(conversation_id)
        count = self.fetch_counts[conversation_id] = self.fetch_counts.get(conversation_id, 0) + 1
        message_id = f"{conversation_id}-M"
        status = "completed" if count >= self.steps_to_complete else "in_progress"
        reply = agent_version(
            status,
            content=f"Echo: {self.prompts[conversation_id]}",
            parent_message_id=message_id,
            message_id=f"{conversation_id}-A",
        )
        return [[user_version(message_id)], [reply]]
