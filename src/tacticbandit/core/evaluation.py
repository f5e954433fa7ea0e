"""
Off-Policy Evaluation
=====================
Estimates how a candidate ranking policy would have performed, using only
the logged DecisionRecords.

    IPS    V = (1/n) Σ w_i r_i
    SNIPS  V = Σ w_i r_i / Σ w_i
    w_i = π_target(a_i | x_i) / p_i   (p_i = logged propensity, optionally clipped)

Records without a positive logged propensity were not drawn from a tracked
recommendation (operator overrides, manual picks) and are never weighted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

import numpy as np
from loguru import logger

from .edge_store import EdgeStore
from .models import DecisionRecord

TargetPolicy = Callable[[DecisionRecord], float]


def usable_records(records: Iterable[DecisionRecord]) -> List[DecisionRecord]:
    """Records with a positive, finite logged propensity."""
    return [
        r for r in records
        if r.propensity is not None and math.isfinite(r.propensity) and r.propensity > 0
    ]


def greedy_target(record: DecisionRecord) -> float:
    """
    Deterministic candidate policy: pick the tactic with the highest logged
    estimated success probability (ties by name). 1.0 if that is the logged
    tactic, else 0.0.
    """
    candidates = [
        c for c in (record.recommended or [])
        if c.get("tactic_name") and c.get("estimated_success_probability") is not None
    ]
    if not candidates:
        return 0.0
    best = min(
        candidates,
        key=lambda c: (-float(c["estimated_success_probability"]), c["tactic_name"]),
    )
    return 1.0 if best["tactic_name"] == record.tactic else 0.0


@dataclass
class EvaluationReport:
    n_records: int
    n_used: int
    logged_value: float
    ips: float
    snips: float
    effective_sample_size: float

    def to_dict(self) -> dict:
        return {
            "n_records": self.n_records,
            "n_used": self.n_used,
            "logged_value": self.logged_value,
            "ips": self.ips,
            "snips": self.snips,
            "effective_sample_size": self.effective_sample_size,
        }


class OffPolicyEvaluator:
    """
    IPS / SNIPS estimators over a fixed batch of decision records.

    ``clip`` caps each importance weight. Estimates over an empty usable set
    are NaN.
    """

    def __init__(self, records: Iterable[DecisionRecord], clip: Optional[float] = None):
        self.records = list(records)
        self.usable = usable_records(self.records)
        self.clip = clip
        self._rewards = np.array([1.0 if r.success else 0.0 for r in self.usable], dtype=float)
        self._propensities = np.array([r.propensity for r in self.usable], dtype=float)

    def _weights(self, target: TargetPolicy) -> np.ndarray:
        probs = np.array([float(target(r)) for r in self.usable], dtype=float)
        weights = probs / self._propensities
        if self.clip is not None:
            weights = np.minimum(weights, self.clip)
        return weights

    def logged_value(self) -> float:
        """Mean observed reward of the logging policy."""
        if not self.usable:
            return math.nan
        return float(self._rewards.mean())

    def ips(self, target: TargetPolicy) -> float:
        if not self.usable:
            return math.nan
        return float(np.mean(self._weights(target) * self._rewards))

    def snips(self, target: TargetPolicy) -> float:
        if not self.usable:
            return math.nan
        weights = self._weights(target)
        total = weights.sum()
        if total <= 0:
            return math.nan
        return float((weights * self._rewards).sum() / total)

    def effective_sample_size(self, target: TargetPolicy) -> float:
        """(Σw)² / Σw², the number of records the estimate is effectively based on."""
        if not self.usable:
            return 0.0
        weights = self._weights(target)
        denom = float((weights ** 2).sum())
        if denom <= 0:
            return 0.0
        return float(weights.sum() ** 2 / denom)

    def report(self, target: TargetPolicy) -> EvaluationReport:
        return EvaluationReport(
            n_records=len(self.records),
            n_used=len(self.usable),
            logged_value=self.logged_value(),
            ips=self.ips(target),
            snips=self.snips(target),
            effective_sample_size=self.effective_sample_size(target),
        )


async def evaluate_decisions(
    store: EdgeStore,
    target: TargetPolicy = greedy_target,
    step: Optional[str] = None,
    clip: Optional[float] = None,
) -> EvaluationReport:
    """Load the decision log from ``store`` and evaluate ``target`` on it."""
    records = await store.list_decisions(step=step)
    report = OffPolicyEvaluator(records, clip=clip).report(target)
    logger.info(
        f"Off-policy evaluation over {report.n_used}/{report.n_records} records"
        f"{f' for step {step!r}' if step else ''}: "
        f"logged={report.logged_value:.4f} ips={report.ips:.4f} snips={report.snips:.4f}"
    )
    return report
