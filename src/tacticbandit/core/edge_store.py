"""
Edge Store Adapter
==================
Persistence boundary for the learned (step -> tactic) edges and the decision
log.

The graph is small and regular:

    (Step {name, created_at}) -[edge {alpha, beta, count, last_updated, cost}]-> (Tactic {name, created_at})
    (DecisionRecord) -> Step, -> chosen Tactic

Every operation is individually atomic. There are no cross-operation
transactions: two concurrent read-modify-write cycles on the same edge can
lose one update (last writer wins). Edges of different pairs never interfere.

Backends:
    InMemoryEdgeStore   process-local, RLock-guarded dicts (tests, single worker)
    RedisEdgeStore      redis.asyncio backend (see redis_store.py)
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from .models import DecisionRecord, EdgeSnapshot

Clock = Callable[[], datetime]


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class EdgeStore(ABC):
    """Async interface every edge backend implements."""

    backend_name: str = "abstract"

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or _utc_clock

    def now(self) -> datetime:
        return self._clock()

    @abstractmethod
    async def ensure_edge(self, step: str, tactic: str, now: Optional[datetime] = None) -> EdgeSnapshot:
        """Create Step, Tactic and edge with a Beta(1, 1) prior if absent; return current state."""

    @abstractmethod
    async def fetch_edges(self, step: str) -> List[EdgeSnapshot]:
        """All outgoing edges of ``step``."""

    @abstractmethod
    async def write_edge(
        self,
        step: str,
        tactic: str,
        alpha: float,
        beta: float,
        now: Optional[datetime] = None,
    ) -> None:
        """Overwrite alpha/beta, increment count, set last_updated."""

    @abstractmethod
    async def delete_edges(self, step: str, tactic_names: Iterable[str]) -> int:
        """Remove the named edges of ``step``. Returns how many were removed."""

    @abstractmethod
    async def delete_edges_older_than(self, step: str, threshold: datetime) -> int:
        """Remove edges of ``step`` whose last_updated is before ``threshold``."""

    @abstractmethod
    async def put_edge(self, step: str, edge: EdgeSnapshot) -> None:
        """Write a complete edge, creating nodes as needed."""

    @abstractmethod
    async def set_cost(self, step: str, tactic: str, cost: float) -> None:
        """Set the cost penalty of an edge, creating it if absent."""

    @abstractmethod
    async def append_decision(self, record: DecisionRecord) -> None:
        """Append one immutable decision record."""

    @abstractmethod
    async def list_decisions(
        self,
        step: Optional[str] = None,
        conversation_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[DecisionRecord]:
        """Decision records oldest first, optionally filtered; ``limit`` keeps the newest."""

    async def close(self) -> None:
        return None


@dataclass
class _Node:
    name: str
    created_at: datetime


class InMemoryEdgeStore(EdgeStore):
    """
    Process-local edge store.

    Thread-safety: each method holds a reentrant lock for its own duration
    only, mirroring the per-statement atomicity of a graph database.
    """

    backend_name = "memory"

    def __init__(self, clock: Optional[Clock] = None) -> None:
        super().__init__(clock)
        self._lock = threading.RLock()
        self._steps: Dict[str, _Node] = {}
        self._tactics: Dict[str, _Node] = {}
        self._edges: Dict[Tuple[str, str], EdgeSnapshot] = {}
        self._decisions: List[DecisionRecord] = []

    # ---- Nodes ---------------------------------------------------- #

    def _merge_nodes(self, step: str, tactic: str, now: datetime) -> None:
        """Create Step/Tactic nodes if absent (must hold lock)."""
        self._steps.setdefault(step, _Node(step, now))
        self._tactics.setdefault(tactic, _Node(tactic, now))

    @property
    def step_names(self) -> List[str]:
        with self._lock:
            return list(self._steps)

    @property
    def tactic_names(self) -> List[str]:
        with self._lock:
            return list(self._tactics)

    # ---- Edges ---------------------------------------------------- #

    async def ensure_edge(self, step: str, tactic: str, now: Optional[datetime] = None) -> EdgeSnapshot:
        now = now or self.now()
        with self._lock:
            self._merge_nodes(step, tactic, now)
            edge = self._edges.get((step, tactic))
            if edge is None:
                edge = EdgeSnapshot(tactic_name=tactic, last_updated=now)
                self._edges[(step, tactic)] = edge
                logger.debug(f"Created edge {step} -> {tactic}")
            return replace(edge)

    async def fetch_edges(self, step: str) -> List[EdgeSnapshot]:
        with self._lock:
            return [replace(e) for (s, _), e in self._edges.items() if s == step]

    async def write_edge(
        self,
        step: str,
        tactic: str,
        alpha: float,
        beta: float,
        now: Optional[datetime] = None,
    ) -> None:
        now = now or self.now()
        with self._lock:
            self._merge_nodes(step, tactic, now)
            edge = self._edges.get((step, tactic)) or EdgeSnapshot(tactic_name=tactic)
            self._edges[(step, tactic)] = replace(
                edge,
                alpha=float(alpha),
                beta=float(beta),
                count=edge.count + 1,
                last_updated=now,
            )

    async def delete_edges(self, step: str, tactic_names: Iterable[str]) -> int:
        removed = 0
        with self._lock:
            for name in set(tactic_names):
                if self._edges.pop((step, name), None) is not None:
                    removed += 1
        return removed

    async def delete_edges_older_than(self, step: str, threshold: datetime) -> int:
        with self._lock:
            expired = [
                key for key, e in self._edges.items()
                if key[0] == step and e.last_updated is not None and e.last_updated < threshold
            ]
            for key in expired:
                del self._edges[key]
        return len(expired)

    async def put_edge(self, step: str, edge: EdgeSnapshot) -> None:
        with self._lock:
            self._merge_nodes(step, edge.tactic_name, self.now())
            self._edges[(step, edge.tactic_name)] = replace(edge)

    async def set_cost(self, step: str, tactic: str, cost: float) -> None:
        now = self.now()
        with self._lock:
            self._merge_nodes(step, tactic, now)
            edge = self._edges.get((step, tactic)) or EdgeSnapshot(tactic_name=tactic, last_updated=now)
            self._edges[(step, tactic)] = replace(edge, cost=float(cost))

    # ---- Decisions ------------------------------------------------ #

    async def append_decision(self, record: DecisionRecord) -> None:
        with self._lock:
            self._merge_nodes(record.step, record.tactic, record.created_at)
            self._decisions.append(record)

    async def list_decisions(
        self,
        step: Optional[str] = None,
        conversation_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[DecisionRecord]:
        with self._lock:
            records = [
                r for r in self._decisions
                if (step is None or r.step == step)
                and (conversation_id is None or r.conversation_id == conversation_id)
            ]
        if limit is not None and limit >= 0:
            records = records[-limit:] if limit else []
        return records
