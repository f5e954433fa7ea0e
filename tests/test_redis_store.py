"""
Redis-specific edge store behaviour: key layout, corruption handling and
error wrapping.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import fakeredis.aioredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tacticbandit.core.config import RedisConfig
from tacticbandit.core.exceptions import (
    DataCorruptionError,
    StorageConnectionError,
    StorageError,
)
from tacticbandit.core.models import DecisionRecord
from tacticbandit.core.redis_store import RedisEdgeStore


@pytest.fixture
def client():
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def redis_store(client, clock):
    return RedisEdgeStore(config=RedisConfig(key_prefix="tb"), client=client, clock=clock)


class TestKeyLayout:

    @pytest.mark.asyncio
    async def test_edge_hash_and_index(self, redis_store, client, clock):
        await redis_store.write_edge("Discovery", "OpenQuestion", 2.0, 1.0)

        edge = await client.hgetall("tb:edge:Discovery:OpenQuestion")
        assert float(edge["alpha"]) == 2.0
        assert float(edge["beta"]) == 1.0
        assert edge["count"] == "1"
        assert float(edge["last_updated"]) == clock().timestamp()

        assert await client.zscore("tb:step:Discovery:tactics", "OpenQuestion") == clock().timestamp()
        assert await client.hexists("tb:step:Discovery", "created_at")
        assert await client.hexists("tb:tactic:OpenQuestion", "created_at")

    @pytest.mark.asyncio
    async def test_separator_in_names_does_not_collide(self, redis_store):
        await redis_store.write_edge("a:b", "c", 5.0, 1.0)
        await redis_store.write_edge("a", "b:c", 1.0, 5.0)
        (first,) = await redis_store.fetch_edges("a:b")
        (second,) = await redis_store.fetch_edges("a")
        assert (first.tactic_name, first.alpha) == ("c", 5.0)
        assert (second.tactic_name, second.alpha) == ("b:c", 1.0)

    @pytest.mark.asyncio
    async def test_decision_stream_entry(self, redis_store, client):
        record = DecisionRecord("conv", "Discovery", "OpenQuestion", True, "ucb", propensity=1.0)
        await redis_store.append_decision(record)
        entries = await client.xrange("tb:decisions")
        assert len(entries) == 1
        payload = json.loads(entries[0][1]["record"])
        assert payload["id"] == record.id
        assert payload["propensity"] == 1.0


class TestCorruption:

    @pytest.mark.asyncio
    async def test_corrupt_edge_raises(self, redis_store, client):
        await redis_store.ensure_edge("s", "t")
        await client.hset("tb:edge:s:t", "alpha", "not-a-number")
        with pytest.raises(DataCorruptionError):
            await redis_store.fetch_edges("s")

    @pytest.mark.asyncio
    async def test_stale_index_entry_skipped(self, redis_store, client):
        await redis_store.ensure_edge("s", "t")
        await client.zadd("tb:step:s:tactics", {"ghost": 1.0})
        edges = await redis_store.fetch_edges("s")
        assert [e.tactic_name for e in edges] == ["t"]

    @pytest.mark.asyncio
    async def test_corrupt_decision_skipped(self, redis_store, client):
        await client.xadd("tb:decisions", {"record": "{broken"})
        record = DecisionRecord("conv", "s", "t", False, "ts")
        await redis_store.append_decision(record)
        assert await redis_store.list_decisions() == [record]


class TestErrorWrapping:

    def _failing_store(self, exc):
        client = MagicMock()
        client.zrange = AsyncMock(side_effect=exc)
        client.xrange = AsyncMock(side_effect=exc)
        client.ping = AsyncMock(side_effect=exc)
        return RedisEdgeStore(config=RedisConfig(), client=client)

    @pytest.mark.asyncio
    async def test_connection_error_wrapped(self):
        store = self._failing_store(RedisConnectionError("refused"))
        with pytest.raises(StorageConnectionError):
            await store.fetch_edges("s")

    @pytest.mark.asyncio
    async def test_generic_error_wrapped(self):
        store = self._failing_store(RuntimeError("boom"))
        with pytest.raises(StorageError) as exc_info:
            await store.list_decisions()
        assert exc_info.value.context["operation"] == "list_decisions"

    @pytest.mark.asyncio
    async def test_health_check(self, redis_store):
        assert await redis_store.check_health() is True
        assert await self._failing_store(RedisConnectionError("down")).check_health() is False


@pytest.mark.requires_redis
class TestLiveRedis:

    @pytest.mark.asyncio
    async def test_round_trip(self, clock):
        import uuid
        store = RedisEdgeStore(
            config=RedisConfig(key_prefix=f"tb-test-{uuid.uuid4().hex}"),
            clock=clock,
        )
        try:
            await store.write_edge("Discovery", "OpenQuestion", 3.0, 1.0)
            (edge,) = await store.fetch_edges("Discovery")
            assert (edge.alpha, edge.beta, edge.count) == (3.0, 1.0, 1)
            await store.delete_edges("Discovery", ["OpenQuestion"])
        finally:
            await store.close()
