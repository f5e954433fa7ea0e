"""
Data Model
==========
Plain dataclasses passed between the edge stores, the ranking policies and the
TacticBandit orchestrator.

    EdgeSnapshot    current (step -> tactic) Beta posterior as read from a store
    RankedTactic    one scored entry of a recommendation
    Recommendation  ordered RankedTactic list plus the step/policy it came from
    Outcome         what the reflection handler reports after a tactic ran
    DecisionRecord  immutable log entry for off-policy evaluation
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .exceptions import UnknownPolicyError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> Optional[datetime]:
    """ISO string / epoch seconds / datetime -> tz-aware datetime (or None)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return None
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    if isinstance(value, str):
        try:
            return _parse_ts(float(value))
        except ValueError:
            return _parse_ts(datetime.fromisoformat(value))
    return None


class PolicyName(str, Enum):
    """Closed set of ranking policies."""
    UCB = "ucb"
    THOMPSON = "ts"
    HYBRID = "hybrid"

    @classmethod
    def resolve(cls, value: Any) -> "PolicyName":
        """Map a policy name or alias to its enum member."""
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower()
        aliases = {
            "ucb": cls.UCB,
            "ucb1": cls.UCB,
            "ts": cls.THOMPSON,
            "thompson": cls.THOMPSON,
            "thompson_sampling": cls.THOMPSON,
            "hybrid": cls.HYBRID,
        }
        if key not in aliases:
            raise UnknownPolicyError(value, [m.value for m in cls])
        return aliases[key]


@dataclass
class EdgeSnapshot:
    """Learned state of one Step -> Tactic edge."""
    tactic_name: str
    alpha: float = 1.0
    beta: float = 1.0
    count: int = 0
    last_updated: Optional[datetime] = None
    cost: float = 0.0

    def to_dict(self) -> dict:
        return {
            "tactic_name": self.tactic_name,
            "alpha": self.alpha,
            "beta": self.beta,
            "count": self.count,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "cost": self.cost,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "EdgeSnapshot":
        return cls(
            tactic_name=str(d.get("tactic_name", "")),
            alpha=float(d.get("alpha", 1.0)),
            beta=float(d.get("beta", 1.0)),
            count=int(float(d.get("count", 0) or 0)),
            last_updated=_parse_ts(d.get("last_updated")),
            cost=float(d.get("cost", 0.0) or 0.0),
        )


@dataclass
class RankedTactic:
    tactic_name: str
    estimated_success_probability: float
    score: float
    decay_factor: float = 1.0
    cost: float = 0.0
    propensity: Optional[float] = None
    uncertainty: Optional[float] = None

    def to_dict(self) -> dict:
        d = {
            "tactic_name": self.tactic_name,
            "estimated_success_probability": self.estimated_success_probability,
            "score": self.score,
            "decay_factor": self.decay_factor,
            "cost": self.cost,
            "propensity": self.propensity,
        }
        if self.uncertainty is not None:
            d["uncertainty"] = self.uncertainty
        return d

    def snapshot(self) -> dict:
        """Subset persisted with a DecisionRecord."""
        return {
            "tactic_name": self.tactic_name,
            "estimated_success_probability": self.estimated_success_probability,
            "propensity": self.propensity,
        }


@dataclass
class Recommendation:
    """
    Ranked, propensity-annotated tactics for one step.

    Behaves like a read-only sequence of RankedTactic so callers can iterate,
    index and test it for emptiness directly.
    """
    step: str
    policy: PolicyName
    tactics: List[RankedTactic] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utcnow)

    def __iter__(self) -> Iterator[RankedTactic]:
        return iter(self.tactics)

    def __len__(self) -> int:
        return len(self.tactics)

    def __getitem__(self, index):
        return self.tactics[index]

    def __bool__(self) -> bool:
        return bool(self.tactics)

    @property
    def tactic_names(self) -> List[str]:
        return [t.tactic_name for t in self.tactics]

    def find(self, tactic_name: str) -> Optional[RankedTactic]:
        for t in self.tactics:
            if t.tactic_name == tactic_name:
                return t
        return None

    def to_list(self) -> List[dict]:
        return [t.to_dict() for t in self.tactics]

    @classmethod
    def empty(cls, step: str, policy: PolicyName) -> "Recommendation":
        return cls(step=step, policy=policy, tactics=[])


@dataclass
class Outcome:
    """Outcome report from the reflection service."""
    conversation_id: str
    step: str
    tactic: str
    success: bool
    recommendation: Optional[Recommendation] = None
    eligibility: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class DecisionRecord:
    """
    Append-only decision log entry.

    propensity is None when the chosen tactic was not part of a tracked
    recommendation; such records are excluded from propensity-weighted
    evaluation.
    """
    conversation_id: str
    step: str
    tactic: str
    success: bool
    policy: str
    propensity: Optional[float] = None
    recommended: Optional[List[Dict[str, Any]]] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "step": self.step,
            "tactic": self.tactic,
            "success": self.success,
            "policy": self.policy,
            "propensity": self.propensity,
            "recommended": self.recommended,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "DecisionRecord":
        propensity = d.get("propensity")
        return cls(
            id=str(d.get("id") or uuid.uuid4()),
            conversation_id=str(d.get("conversation_id", "")),
            step=str(d.get("step", "")),
            tactic=str(d.get("tactic", "")),
            success=bool(d.get("success", False)),
            policy=str(d.get("policy", PolicyName.UCB.value)),
            propensity=float(propensity) if propensity is not None else None,
            recommended=d.get("recommended"),
            created_at=_parse_ts(d.get("created_at")) or utcnow(),
        )
