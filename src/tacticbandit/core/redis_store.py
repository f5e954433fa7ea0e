"""
Async Redis Edge Store
======================
Redis-backed implementation of EdgeStore using `redis.asyncio`.

Key layout (names are percent-encoded so ':' inside a step or tactic name
cannot collide with the separators):

    {prefix}:step:{step}                  hash   created_at
    {prefix}:tactic:{tactic}              hash   created_at
    {prefix}:edge:{step}:{tactic}         hash   tactic_name, alpha, beta, count, last_updated, cost
    {prefix}:step:{step}:tactics          zset   tactic -> last_updated (epoch seconds, +inf if unknown)
    {prefix}:decisions                    stream one entry per DecisionRecord (field "record", JSON)

The per-step sorted set doubles as the adjacency list and as the range index
used by TTL pruning (ZRANGEBYSCORE). Each public method maps to one
pipeline round trip where possible; no WATCH/MULTI guards the
read-modify-write of an update, so concurrent updates of the same edge are
last-writer-wins.
"""

import json
import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from loguru import logger

from .config import RedisConfig
from .edge_store import Clock, EdgeStore
from .exceptions import DataCorruptionError, StorageError, wrap_storage_exception
from .models import DecisionRecord, EdgeSnapshot


def _ts(value: Optional[datetime]) -> float:
    return value.timestamp() if value is not None else math.inf


def _ts_field(value: Optional[datetime]) -> str:
    return repr(value.timestamp()) if value is not None else ""


class RedisEdgeStore(EdgeStore):
    """
    Edge store on Redis.

    Pass an explicit ``client`` for tests/DI; otherwise a client is built from
    ``RedisConfig`` with a shared connection pool.
    """

    backend_name = "redis"
    _pool: Optional[ConnectionPool] = None

    def __init__(
        self,
        config: Optional[RedisConfig] = None,
        client: Optional[redis.Redis] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(clock)
        self.config = config or RedisConfig()
        self.prefix = self.config.key_prefix
        if client is not None:
            self.redis_client = client
        else:
            self._initialize_from_pool()

    def _initialize_from_pool(self):
        """Initialize Redis client from connection pool."""
        if RedisEdgeStore._pool is None:
            logger.info(f"Initializing Redis edge store pool: {self.config.url}")

            kwargs = {
                "max_connections": self.config.max_connections,
                "socket_timeout": self.config.socket_timeout,
                "decode_responses": True,
            }
            if self.config.password:
                kwargs["password"] = self.config.password

            RedisEdgeStore._pool = ConnectionPool.from_url(self.config.url, **kwargs)

        self.redis_client = redis.Redis(connection_pool=RedisEdgeStore._pool)

    async def close(self):
        """Close the client connection."""
        if self.redis_client:
            await self.redis_client.aclose()

    # --- Keys ---

    def _step_key(self, step: str) -> str:
        return f"{self.prefix}:step:{quote(step, safe='')}"

    def _tactic_key(self, tactic: str) -> str:
        return f"{self.prefix}:tactic:{quote(tactic, safe='')}"

    def _edge_key(self, step: str, tactic: str) -> str:
        return f"{self.prefix}:edge:{quote(step, safe='')}:{quote(tactic, safe='')}"

    def _index_key(self, step: str) -> str:
        return f"{self._step_key(step)}:tactics"

    @property
    def _decision_stream(self) -> str:
        return f"{self.prefix}:decisions"

    def _fail(self, operation: str, step: str, exc: Exception) -> StorageError:
        logger.error(f"Redis edge store {operation} failed for step '{step}': {exc}")
        return wrap_storage_exception("redis", operation, exc)

    def _merge_nodes(self, pipe, step: str, tactic: str, now: datetime) -> None:
        created = now.isoformat()
        pipe.hsetnx(self._step_key(step), "created_at", created)
        pipe.hsetnx(self._tactic_key(tactic), "created_at", created)

    def _parse_edge(self, step: str, tactic: str, raw: Dict[str, str]) -> EdgeSnapshot:
        try:
            return EdgeSnapshot.from_dict({"tactic_name": tactic, **raw})
        except (TypeError, ValueError) as e:
            raise DataCorruptionError(
                resource_id=self._edge_key(step, tactic),
                reason=f"Invalid edge hash: {e}",
            )

    # --- Edges ---

    async def ensure_edge(self, step: str, tactic: str, now: Optional[datetime] = None) -> EdgeSnapshot:
        now = now or self.now()
        edge_key = self._edge_key(step, tactic)
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                self._merge_nodes(pipe, step, tactic, now)
                pipe.hsetnx(edge_key, "tactic_name", tactic)
                pipe.hsetnx(edge_key, "alpha", "1.0")
                pipe.hsetnx(edge_key, "beta", "1.0")
                pipe.hsetnx(edge_key, "count", "0")
                pipe.hsetnx(edge_key, "last_updated", _ts_field(now))
                pipe.hsetnx(edge_key, "cost", "0.0")
                pipe.zadd(self._index_key(step), {tactic: _ts(now)}, nx=True)
                pipe.hgetall(edge_key)
                results = await pipe.execute()
        except Exception as e:
            raise self._fail("ensure_edge", step, e)
        return self._parse_edge(step, tactic, results[-1] or {})

    async def fetch_edges(self, step: str) -> List[EdgeSnapshot]:
        try:
            tactics = await self.redis_client.zrange(self._index_key(step), 0, -1)
            if not tactics:
                return []
            async with self.redis_client.pipeline(transaction=False) as pipe:
                for tactic in tactics:
                    pipe.hgetall(self._edge_key(step, tactic))
                rows = await pipe.execute()
        except Exception as e:
            raise self._fail("fetch_edges", step, e)

        edges = []
        for tactic, raw in zip(tactics, rows):
            if not raw:
                # Index entry without an edge hash: removed mid-flight
                continue
            edges.append(self._parse_edge(step, tactic, raw))
        return edges

    async def write_edge(
        self,
        step: str,
        tactic: str,
        alpha: float,
        beta: float,
        now: Optional[datetime] = None,
    ) -> None:
        now = now or self.now()
        edge_key = self._edge_key(step, tactic)
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                self._merge_nodes(pipe, step, tactic, now)
                pipe.hset(edge_key, mapping={
                    "tactic_name": tactic,
                    "alpha": repr(float(alpha)),
                    "beta": repr(float(beta)),
                    "last_updated": _ts_field(now),
                })
                pipe.hsetnx(edge_key, "cost", "0.0")
                pipe.hincrby(edge_key, "count", 1)
                pipe.zadd(self._index_key(step), {tactic: _ts(now)})
                await pipe.execute()
        except Exception as e:
            raise self._fail("write_edge", step, e)

    async def delete_edges(self, step: str, tactic_names: Iterable[str]) -> int:
        names = sorted(set(tactic_names))
        if not names:
            return 0
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.delete(*[self._edge_key(step, t) for t in names])
                pipe.zrem(self._index_key(step), *names)
                deleted, _ = await pipe.execute()
        except Exception as e:
            raise self._fail("delete_edges", step, e)
        return int(deleted or 0)

    async def delete_edges_older_than(self, step: str, threshold: datetime) -> int:
        try:
            expired = await self.redis_client.zrangebyscore(
                self._index_key(step), "-inf", f"({threshold.timestamp()!r}"
            )
        except Exception as e:
            raise self._fail("delete_edges_older_than", step, e)
        if not expired:
            return 0
        return await self.delete_edges(step, expired)

    async def put_edge(self, step: str, edge: EdgeSnapshot) -> None:
        edge_key = self._edge_key(step, edge.tactic_name)
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                self._merge_nodes(pipe, step, edge.tactic_name, self.now())
                pipe.hset(edge_key, mapping={
                    "tactic_name": edge.tactic_name,
                    "alpha": repr(float(edge.alpha)),
                    "beta": repr(float(edge.beta)),
                    "count": str(int(edge.count)),
                    "last_updated": _ts_field(edge.last_updated),
                    "cost": repr(float(edge.cost or 0.0)),
                })
                pipe.zadd(self._index_key(step), {edge.tactic_name: _ts(edge.last_updated)})
                await pipe.execute()
        except Exception as e:
            raise self._fail("put_edge", step, e)

    async def set_cost(self, step: str, tactic: str, cost: float) -> None:
        await self.ensure_edge(step, tactic)
        try:
            await self.redis_client.hset(self._edge_key(step, tactic), "cost", repr(float(cost)))
        except Exception as e:
            raise self._fail("set_cost", step, e)

    # --- Decisions ---

    async def append_decision(self, record: DecisionRecord) -> None:
        kwargs = {}
        if self.config.decision_stream_maxlen:
            kwargs = {"maxlen": self.config.decision_stream_maxlen, "approximate": True}
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                self._merge_nodes(pipe, record.step, record.tactic, record.created_at)
                pipe.xadd(
                    self._decision_stream,
                    {"record": json.dumps(record.to_dict(), default=str)},
                    **kwargs,
                )
                await pipe.execute()
        except Exception as e:
            raise self._fail("append_decision", record.step, e)

    async def list_decisions(
        self,
        step: Optional[str] = None,
        conversation_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[DecisionRecord]:
        try:
            entries = await self.redis_client.xrange(self._decision_stream, "-", "+")
        except Exception as e:
            raise self._fail("list_decisions", step or "*", e)

        records = []
        for entry_id, fields in entries:
            try:
                record = DecisionRecord.from_dict(json.loads(fields["record"]))
            except (KeyError, TypeError, ValueError) as e:
                # Skip the entry rather than failing the whole scan
                logger.warning(f"Corrupt decision entry {entry_id}: {e}")
                continue
            if step is not None and record.step != step:
                continue
            if conversation_id is not None and record.conversation_id != conversation_id:
                continue
            records.append(record)

        if limit is not None and limit >= 0:
            records = records[-limit:] if limit else []
        return records

    async def check_health(self) -> bool:
        """Ping Redis to check connectivity."""
        try:
            return await self.redis_client.ping()
        except Exception:
            return False
