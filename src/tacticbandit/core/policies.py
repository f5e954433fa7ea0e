"""
Ranking Policies
================
Three interchangeable ways of turning a step's edges into a ranked list:

  UCB1-with-decay   mean + c * sqrt(ln(total_plays + 1) / n)
  Thompson          one Beta(α, β) draw per edge, ranked by the draw
  Hybrid            wE·mean + wU·uncertainty − wC·cost + wR·recency

Every policy decays α/β by recency first and clamps them to a positive floor,
so no division or draw ever sees a degenerate posterior.

``rank()`` returns the full ordering with propensity unset; ``finalize_ranking``
truncates it and assigns propensities over the truncated set only.

Public API:
    policy = build_policy(PolicyName.UCB, config.bandit)
    ranked = finalize_ranking(policy.rank(edges, now), limit=3)
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger

from .config import BanditConfig, HybridWeights
from .decay import decay_factor
from .models import EdgeSnapshot, PolicyName, RankedTactic
from .sampling import sample_beta


# ------------------------------------------------------------------ #
#  Beta distribution helpers                                          #
# ------------------------------------------------------------------ #

def _beta_mean(alpha: float, beta: float) -> float:
    """E[p] = α / (α + β)."""
    total = alpha + beta
    if total <= 0:
        return 0.5
    return alpha / total


def _beta_variance(alpha: float, beta: float) -> float:
    """Var[p] = αβ / ((α+β)²(α+β+1))."""
    total = alpha + beta
    if total <= 0:
        return 0.25
    return (alpha * beta) / (total * total * (total + 1.0))


def _beta_std(alpha: float, beta: float) -> float:
    return math.sqrt(max(_beta_variance(alpha, beta), 0.0))


# ------------------------------------------------------------------ #
#  Policy base                                                        #
# ------------------------------------------------------------------ #

class RankingPolicy(ABC):
    """Common ranking interface shared by all policies."""

    name: PolicyName

    def __init__(self, half_life_hours: float = 168.0, epsilon: float = 1e-6) -> None:
        self.half_life_hours = half_life_hours
        self.epsilon = epsilon

    def _decayed(self, edge: EdgeSnapshot, now: datetime) -> tuple[float, float, float]:
        """Decayed and clamped (alpha, beta, factor) for one edge."""
        factor = decay_factor(edge.last_updated, now, self.half_life_hours)
        alpha = edge.alpha * factor
        beta = edge.beta * factor
        if not math.isfinite(alpha) or alpha < self.epsilon:
            alpha = self.epsilon
        if not math.isfinite(beta) or beta < self.epsilon:
            beta = self.epsilon
        return alpha, beta, factor

    @staticmethod
    def _sorted(ranked: List[RankedTactic]) -> List[RankedTactic]:
        # Name as tie-breaker keeps equal scores in a stable, repeatable order
        return sorted(ranked, key=lambda r: (-r.score, r.tactic_name))

    @abstractmethod
    def rank(self, edges: Sequence[EdgeSnapshot], now: datetime) -> List[RankedTactic]:
        """Score every edge and return them best-first (no truncation)."""


class UCBPolicy(RankingPolicy):
    name = PolicyName.UCB

    def __init__(
        self,
        exploration_constant: float = 0.25,
        half_life_hours: float = 168.0,
        epsilon: float = 1e-6,
    ) -> None:
        super().__init__(half_life_hours, epsilon)
        self.exploration_constant = exploration_constant

    def rank(self, edges: Sequence[EdgeSnapshot], now: datetime) -> List[RankedTactic]:
        decayed = [(e, *self._decayed(e, now)) for e in edges]
        # exploration budget counts stored plays, before decay
        total_plays = sum(max(1.0, e.alpha + e.beta) for e in edges)
        log_term = math.log(total_plays + 1.0)

        ranked = []
        for edge, alpha, beta, factor in decayed:
            n = max(1.0, alpha + beta)
            mean = _beta_mean(alpha, beta)
            bonus = self.exploration_constant * math.sqrt(log_term / n)
            ranked.append(RankedTactic(
                tactic_name=edge.tactic_name,
                estimated_success_probability=mean,
                score=mean + bonus,
                decay_factor=factor,
                cost=edge.cost or 0.0,
            ))
        return self._sorted(ranked)


class ThompsonPolicy(RankingPolicy):
    """
    Ranks by one posterior draw per edge. Two calls on identical state may
    order differently; estimated_success_probability is the posterior mean,
    not the draw.
    """

    name = PolicyName.THOMPSON

    def __init__(
        self,
        half_life_hours: float = 168.0,
        epsilon: float = 1e-6,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        super().__init__(half_life_hours, epsilon)
        self.rng = rng

    def rank(self, edges: Sequence[EdgeSnapshot], now: datetime) -> List[RankedTactic]:
        ranked = []
        for edge in edges:
            alpha, beta, factor = self._decayed(edge, now)
            draw = sample_beta(alpha, beta, rng=self.rng, floor=self.epsilon)
            ranked.append(RankedTactic(
                tactic_name=edge.tactic_name,
                estimated_success_probability=_beta_mean(alpha, beta),
                score=draw,
                decay_factor=factor,
                cost=edge.cost or 0.0,
            ))
        return self._sorted(ranked)


class HybridPolicy(RankingPolicy):
    name = PolicyName.HYBRID

    def __init__(
        self,
        weights: Optional[HybridWeights] = None,
        half_life_hours: float = 168.0,
        epsilon: float = 1e-6,
    ) -> None:
        super().__init__(half_life_hours, epsilon)
        self.weights = weights or HybridWeights()

    def rank(self, edges: Sequence[EdgeSnapshot], now: datetime) -> List[RankedTactic]:
        w = self.weights
        ranked = []
        for edge in edges:
            alpha, beta, factor = self._decayed(edge, now)
            mean = _beta_mean(alpha, beta)
            uncertainty = _beta_std(alpha, beta)
            cost = edge.cost or 0.0
            score = (
                w.exploitation * mean
                + w.uncertainty * uncertainty
                - w.cost * cost
                + w.recency * factor
            )
            ranked.append(RankedTactic(
                tactic_name=edge.tactic_name,
                estimated_success_probability=mean,
                score=score,
                decay_factor=factor,
                cost=cost,
                uncertainty=uncertainty,
            ))
        return self._sorted(ranked)


def build_policy(
    name: PolicyName,
    config: Optional[BanditConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> RankingPolicy:
    """Instantiate the policy for ``name`` with the bandit configuration."""
    config = config or BanditConfig()
    name = PolicyName.resolve(name)
    if name is PolicyName.UCB:
        return UCBPolicy(config.exploration_constant, config.half_life_hours, config.epsilon)
    if name is PolicyName.THOMPSON:
        return ThompsonPolicy(config.half_life_hours, config.epsilon, rng=rng)
    return HybridPolicy(config.hybrid_weights, config.half_life_hours, config.epsilon)


def finalize_ranking(ranked: List[RankedTactic], limit: int) -> List[RankedTactic]:
    """
    Truncate to ``max(1, min(limit, len(ranked)))`` entries and assign
    propensities proportional to max(score, 0) over the kept entries.

    Falls back to uniform propensities when no kept score is positive, so the
    result always sums to 1.
    """
    if not ranked:
        return []
    kept = ranked[:max(1, min(limit, len(ranked)))]
    weights = [max(r.score, 0.0) if math.isfinite(r.score) else 0.0 for r in kept]
    total = sum(weights)
    if total <= 0:
        logger.debug(f"No positive scores among {len(kept)} tactics; using uniform propensity")
        weights = [1.0] * len(kept)
        total = float(len(kept))
    for r, w in zip(kept, weights):
        r.propensity = w / total
    return kept
