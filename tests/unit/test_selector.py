"""Unit tests for store selection and fallback."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from agent_relay.config import Settings
from agent_relay.services import AgentConfigCache
from agent_relay.store import MemoryStore, RedisStore, StoreMode, StoreSelector
from tests.fixtures import FakeClock, FakeConversationClient, FakeSleep, create_mock_redis, make_agent


async def wait_forever(_seconds):
    await asyncio.Event().wait()


def failing(client):
    """Make every data command and ping on the mock client fail."""
    for command in ("get", "set", "delete", "expire", "ttl", "exists", "ping"):
        setattr(client, command, AsyncMock(side_effect=RedisConnectionError("Connection refused")))


async def refused(*args, **kwargs):
    """Fail like a dropped connection, after yielding to other tasks."""
    await asyncio.sleep(0)
    raise RedisConnectionError("Connection refused")


def build(client, sleep=wait_forever, **kwargs):
    local = MemoryStore()
    remote = RedisStore(client=client)
    selector = StoreSelector(local, remote, mode=StoreMode.REMOTE, sleep=sleep, **kwargs)
    return selector, local


class TestStoreSelector:
    """Test suite for StoreSelector."""

    def test_remote_mode_requires_remote(self):
        """Test remote mode cannot be selected without a remote store."""
        with pytest.raises(ValueError):
            StoreSelector(MemoryStore(), None, mode=StoreMode.REMOTE)

    @pytest.mark.asyncio
    async def test_healthy_remote_serves_calls(self):
        """Test calls go to the remote store while it is healthy."""
        client = create_mock_redis()
        selector, local = build(client)

        assert await selector.get("key") == "value"
        assert selector.current is selector.remote
        client.get.assert_awaited_once_with("key")
        await selector.close()

    @pytest.mark.asyncio
    async def test_failed_call_served_locally(self):
        """Test a remote failure is absorbed and the local store answers."""
        client = create_mock_redis()
        failing(client)
        selector, local = build(client)

        assert await selector.set("key", "value") is True
        assert await selector.get("key") == "value"
        assert await local.get("key") == "value"
        assert selector.health.consecutive_failures == 2
        assert selector.mode is StoreMode.REMOTE
        await selector.close()

    @pytest.mark.asyncio
    async def test_switches_to_local_after_threshold(self):
        """Test consecutive failures flip the selector to the local store."""
        client = create_mock_redis()
        failing(client)
        selector, _ = build(client, failure_threshold=3)

        for _ in range(3):
            await selector.get("key")

        assert selector.mode is StoreMode.LOCAL
        assert selector.status()["probing"] is True

        # Local mode no longer touches the remote store
        await selector.get("key")
        assert client.get.await_count == 3
        await selector.close()

    @pytest.mark.asyncio
    async def test_failure_window_resets_count(self):
        """Test failures spread beyond the window do not accumulate."""
        clock = FakeClock()
        client = create_mock_redis()
        failing(client)
        selector, _ = build(client, failure_threshold=3, failure_window=60, clock=clock)

        await selector.get("key")
        clock.advance(61)
        await selector.get("key")
        await selector.get("key")

        assert selector.health.consecutive_failures == 2
        assert selector.mode is StoreMode.REMOTE
        await selector.close()

    @pytest.mark.asyncio
    async def test_success_resets_count(self):
        """Test a successful remote call clears the failure count."""
        client = create_mock_redis()
        client.get = AsyncMock(side_effect=[RedisConnectionError("refused"), "value"])
        selector, _ = build(client)

        await selector.get("key")
        assert selector.health.consecutive_failures == 1

        assert await selector.get("key") == "value"
        assert selector.health.consecutive_failures == 0
        await selector.close()

    @pytest.mark.asyncio
    async def test_probe_switches_back_to_remote(self):
        """Test the probe returns to the remote store once it answers."""
        client = create_mock_redis()
        failing(client)
        sleep = FakeSleep()
        selector, _ = build(client, sleep=sleep, failure_threshold=1, probe_interval=30)

        client.ping = AsyncMock(side_effect=[RedisConnectionError("refused"), True])
        await selector.get("key")
        assert selector.mode is StoreMode.LOCAL

        await selector._probe_task

        assert selector.mode is StoreMode.REMOTE
        assert selector.health.consecutive_failures == 0
        assert sleep.calls == [30, 30]
        await selector.close()

    @pytest.mark.asyncio
    async def test_close_stops_probe_and_closes_stores(self):
        """Test close cancels the probe and closes both backends."""
        client = create_mock_redis()
        failing(client)
        selector, local = build(client, failure_threshold=1)
        await selector.get("key")
        probe = selector._probe_task

        await selector.close()
        await selector.close()

        assert probe.cancelled()
        assert local.closed is True
        assert selector.remote.closed is True
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_failures_switch_once(self, caplog):
        """Test failures landing together cross the threshold exactly once."""
        client = create_mock_redis()
        client.set = AsyncMock(side_effect=refused)
        selector, local = build(client, failure_threshold=3)

        results = await asyncio.gather(*(selector.set(f"key-{i}", str(i)) for i in range(6)))

        assert results == [True] * 6
        assert client.set.await_count == 6
        assert selector.health.consecutive_failures == 6
        assert selector.mode is StoreMode.LOCAL
        assert sorted(await local.keys("key-*")) == [f"key-{i}" for i in range(6)]
        switches = [r for r in caplog.records if "switching to in-process store" in r.getMessage()]
        assert len(switches) == 1
        probe = selector._probe_task
        assert probe is not None and not probe.done()

        await asyncio.gather(*(selector.get(f"key-{i}") for i in range(6)))
        assert selector._probe_task is probe
        await selector.close()

    def test_lock_created_inside_running_loop(self):
        """Test a selector built outside any loop works in one started later."""
        client = create_mock_redis()
        failing(client)
        selector, _ = build(client, failure_threshold=5)

        assert selector._health_lock is None
        assert asyncio.run(selector.get("key")) is None
        assert selector.health.consecutive_failures == 1

    def test_status(self):
        """Test the status report."""
        selector, _ = build(create_mock_redis())

        status = selector.status()

        assert status["mode"] == "remote"
        assert status["backend"] == "redis"
        assert status["consecutive_failures"] == 0
        assert status["probing"] is False
        assert status["remote_configured"] is True


class TestStoreSelectorCreate:
    """Test building a selector from settings."""

    @pytest.mark.asyncio
    async def test_local_mode(self):
        """Test local mode never builds a Redis client."""
        selector = await StoreSelector.create(Settings(store_mode="local"))

        assert selector.mode is StoreMode.LOCAL
        assert selector.remote is None
        await selector.close()

    @pytest.mark.asyncio
    async def test_remote_mode(self):
        """Test forced remote mode starts on the remote store without a ping."""
        client = create_mock_redis()
        remote = RedisStore(client=client)

        selector = await StoreSelector.create(Settings(store_mode="remote"), remote=remote)

        assert selector.mode is StoreMode.REMOTE
        client.ping.assert_not_awaited()
        await selector.close()

    @pytest.mark.asyncio
    async def test_auto_mode_connects(self):
        """Test auto mode uses Redis when it answers at startup."""
        client = create_mock_redis()

        selector = await StoreSelector.create(Settings(store_mode="auto"), remote=RedisStore(client=client))

        assert selector.mode is StoreMode.REMOTE
        client.ping.assert_awaited_once()
        await selector.close()

    @pytest.mark.asyncio
    async def test_auto_mode_falls_back(self):
        """Test auto mode falls back to the local store when Redis is down."""
        client = create_mock_redis()
        failing(client)

        selector = await StoreSelector.create(Settings(store_mode="auto"), remote=RedisStore(client=client))

        assert selector.mode is StoreMode.LOCAL
        assert selector.status()["probing"] is True
        assert await selector.set("key", "value") is True
        assert await selector.get("key") == "value"
        await selector.close()

    @pytest.mark.asyncio
    async def test_auto_mode_ping_timeout(self):
        """Test a hanging Redis ping counts as unreachable."""
        client = create_mock_redis()
        client.ping = AsyncMock(side_effect=asyncio.TimeoutError())
        settings = Settings(store_mode="auto", redis_connect_timeout=0.05)

        selector = await StoreSelector.create(settings, remote=RedisStore(client=client))

        assert selector.mode is StoreMode.LOCAL
        await selector.close()

    @pytest.mark.asyncio
    async def test_agent_cache_over_fallback_store(self):
        """Test agent configs are cached locally when Redis is down at startup."""
        client = create_mock_redis()
        failing(client)
        selector = await StoreSelector.create(Settings(store_mode="auto"), remote=RedisStore(client=client))
        platform = FakeConversationClient(agents=[make_agent("agent-1")])
        cache = AgentConfigCache(selector, platform)

        first = await cache.get("agent-1")
        second = await cache.get("agent-1")

        assert first == second == make_agent("agent-1")
        assert cache.get_stats()["fetch_count"] == 1
        assert platform.agent_lookups == ["agent-1"]
        assert await selector.local.exists(AgentConfigCache.key_for("agent-1")) == 1
        client.get.assert_not_awaited()
        client.set.assert_not_awaited()
        await selector.close()
