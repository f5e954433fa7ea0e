"""
Tactic Bandit Orchestrator
==========================
Recommend / update / prune loop for one decision point of a guided dialogue.

    recommend(step)              fetch edges -> TTL prune -> rank -> truncate -> Top-K prune
    update_after_outcome(o)      ensure edge -> normalize credit -> decayed Beta update -> log decision

Everything here is best-effort intelligence layered on top of a live
conversation: store failures are logged and swallowed, ``recommend`` fails
open with an empty Recommendation and ``update_after_outcome`` drops the
learning signal. Nothing raises into the caller.

Concurrency:
    No locks around the read-modify-write of an edge. Two outcomes for the
    same (step, tactic) pair landing at once can lose one increment. Do not
    retry ``update_after_outcome`` after an ambiguous failure: a retried
    update may double-count.

Usage:
    bandit = TacticBandit(InMemoryEdgeStore(), config.bandit)
    rec = await bandit.recommend("Discovery")
    await bandit.update_after_outcome(Outcome("conv-1", "Discovery", rec[0].tactic_name, True, rec))
"""

from __future__ import annotations

import math
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
from loguru import logger

from .config import BanditConfig, TacticBanditConfig, validate_bandit_config
from .credit import canonicalize_tactic_name, normalize_eligibility
from .decay import decay_counts
from .edge_store import EdgeStore
from .exceptions import TacticBanditError, UnknownPolicyError, ValidationError
from .models import DecisionRecord, EdgeSnapshot, Outcome, PolicyName, Recommendation
from .policies import RankingPolicy, _beta_mean, _beta_std, build_policy, finalize_ranking


class TacticBandit:
    """
    Decayed Beta-Bernoulli bandit over the tactics of each step.

    The configuration is fixed at construction. ``rng`` seeds Thompson
    sampling; ``clock`` defaults to the store's clock.
    """

    def __init__(
        self,
        store: EdgeStore,
        config: Optional[Union[BanditConfig, TacticBanditConfig]] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if isinstance(config, TacticBanditConfig):
            config = config.bandit
        self.config: BanditConfig = validate_bandit_config(config or BanditConfig())
        self.store = store
        self.rng = rng
        self._clock = clock or store.now
        self.default_policy = PolicyName.resolve(self.config.policy)
        self._policies: Dict[PolicyName, RankingPolicy] = {}

        self._lock = threading.RLock()
        self._stats: Dict[str, int] = {
            "recommendations_served": 0,
            "recommendations_empty": 0,
            "updates_applied": 0,
            "updates_failed": 0,
            "decisions_logged": 0,
            "pruned_ttl": 0,
            "pruned_top_k": 0,
        }

    # ══════════════════════════════════════════════════════════════════
    # Internals
    # ══════════════════════════════════════════════════════════════════

    def _now(self) -> datetime:
        return self._clock()

    def _count(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._stats[key] += amount

    def _tactic_key(self, name: str) -> str:
        if self.config.canonicalize_names:
            return canonicalize_tactic_name(name)
        return name

    def _resolve_policy(self, policy: Any) -> PolicyName:
        if policy is None:
            return self.default_policy
        try:
            return PolicyName.resolve(policy)
        except UnknownPolicyError:
            logger.warning(
                f"Unknown policy '{policy}', falling back to '{self.default_policy.value}'"
            )
            return self.default_policy

    def _policy(self, name: PolicyName) -> RankingPolicy:
        if name not in self._policies:
            self._policies[name] = build_policy(name, self.config, rng=self.rng)
        return self._policies[name]

    def _empty(self, step: str, policy: PolicyName) -> Recommendation:
        self._count("recommendations_empty")
        return Recommendation.empty(step, policy)

    # ══════════════════════════════════════════════════════════════════
    # Recommend
    # ══════════════════════════════════════════════════════════════════

    async def recommend(
        self,
        step: str,
        context: Optional[Dict[str, Any]] = None,
        policy: Optional[Union[str, PolicyName]] = None,
        max_recommendations: Optional[int] = None,
    ) -> Recommendation:
        """
        Rank the tactics of ``step`` and return the best few.

        Args:
            step: Step name. Empty names yield an empty Recommendation.
            context: Accepted for interface compatibility; only logged.
            policy: Per-call policy override (name or PolicyName).
            max_recommendations: Per-call truncation override.

        Returns:
            Recommendation whose propensities sum to 1, or an empty one when
            the step has no edges or the store is unavailable.
        """
        policy_name = self._resolve_policy(policy)
        if not step:
            return self._empty(step or "", policy_name)
        if context:
            logger.debug(f"recommend('{step}') context keys: {sorted(context)}")

        now = self._now()
        try:
            edges = await self.store.fetch_edges(step)
        except Exception as e:
            logger.warning(f"Could not fetch edges for step '{step}', returning none: {e}")
            return self._empty(step, policy_name)

        if not edges:
            return self._empty(step, policy_name)

        threshold = self._ttl_threshold(now)
        if threshold is not None:
            fresh = [e for e in edges if e.last_updated is None or e.last_updated >= threshold]
            if len(fresh) != len(edges):
                await self.prune_expired(step, now=now)
            edges = fresh
            if not edges:
                return self._empty(step, policy_name)

        limit = max_recommendations if max_recommendations is not None else self.config.max_recommendations
        try:
            ranked = self._policy(policy_name).rank(edges, now)
            tactics = finalize_ranking(ranked, limit)
        except Exception as e:
            logger.error(f"Ranking failed for step '{step}' under '{policy_name.value}': {e}")
            return self._empty(step, policy_name)

        await self.prune_to_top_k(step, policy=policy_name)

        self._count("recommendations_served")
        logger.debug(
            f"recommend('{step}', {policy_name.value}) -> "
            f"{[(t.tactic_name, round(t.score, 4)) for t in tactics]}"
        )
        return Recommendation(step=step, policy=policy_name, tactics=tactics, generated_at=now)

    # ══════════════════════════════════════════════════════════════════
    # Update
    # ══════════════════════════════════════════════════════════════════

    async def update_after_outcome(self, outcome: Outcome) -> None:
        """
        Apply one observed outcome.

        Credit from ``outcome.eligibility`` (normalized to sum to 1, full
        credit to the chosen tactic when missing or degenerate) is added to
        alpha on success or to beta on failure, after decaying each credited
        edge to now. One DecisionRecord is appended. Errors are logged only.
        """
        step = outcome.step
        tactic = self._tactic_key(outcome.tactic) if outcome.tactic else outcome.tactic
        if not step or not tactic:
            logger.warning(
                f"Ignoring outcome without step/tactic (conversation={outcome.conversation_id})"
            )
            return

        try:
            now = self._now()
            await self.store.ensure_edge(step, tactic, now)

            credits = normalize_eligibility(outcome.eligibility, tactic)
            if self.config.canonicalize_names:
                merged: Dict[str, float] = {}
                for name, credit in credits.items():
                    key = canonicalize_tactic_name(name)
                    merged[key] = merged.get(key, 0.0) + credit
                credits = merged

            for credited, credit in credits.items():
                edge = await self.store.ensure_edge(step, credited, now)
                alpha, beta, factor = decay_counts(
                    edge.alpha, edge.beta, edge.last_updated, now, self.config.half_life_hours
                )
                new_alpha = alpha + (credit if outcome.success else 0.0)
                new_beta = beta + (0.0 if outcome.success else credit)
                await self.store.write_edge(step, credited, new_alpha, new_beta, now)
                logger.debug(
                    f"{step} -> {credited}: decay={factor:.4f} credit={credit:.4f} "
                    f"alpha {edge.alpha:.4f}->{new_alpha:.4f} beta {edge.beta:.4f}->{new_beta:.4f}"
                )

            await self.store.append_decision(self._decision_record(outcome, tactic, now))
        except Exception as e:
            self._count("updates_failed")
            detail = e.to_dict() if isinstance(e, TacticBanditError) else str(e)
            logger.error(f"Outcome update failed for {step} -> {tactic}: {detail}")
            return

        self._count("updates_applied")
        self._count("decisions_logged")

    def _decision_record(self, outcome: Outcome, tactic: str, now: datetime) -> DecisionRecord:
        rec = outcome.recommendation
        propensity = None
        recommended = None
        policy = self.default_policy.value
        if rec is not None:
            policy = rec.policy.value if isinstance(rec.policy, PolicyName) else str(rec.policy)
            recommended = [t.snapshot() for t in rec]
            match = rec.find(tactic)
            if match is not None:
                propensity = match.propensity
        return DecisionRecord(
            conversation_id=str(outcome.conversation_id),
            step=outcome.step,
            tactic=tactic,
            success=bool(outcome.success),
            policy=policy,
            propensity=propensity,
            recommended=recommended,
            created_at=now,
        )

    # ══════════════════════════════════════════════════════════════════
    # Pruning
    # ══════════════════════════════════════════════════════════════════

    async def prune_expired(self, step: str, now: Optional[datetime] = None) -> int:
        """Delete edges of ``step`` not updated within the TTL. Returns the count removed."""
        threshold = self._ttl_threshold(now or self._now())
        if threshold is None:
            return 0
        try:
            removed = await self.store.delete_edges_older_than(step, threshold)
        except Exception as e:
            logger.warning(f"TTL pruning failed for step '{step}': {e}")
            return 0
        if removed:
            self._count("pruned_ttl", removed)
            logger.info(f"TTL pruned {removed} edge(s) from step '{step}'")
        return removed

    def _ttl_threshold(self, now: datetime) -> Optional[datetime]:
        """Cutoff for TTL expiry, or None when nothing can expire."""
        if not self.config.ttl_enabled:
            return None
        try:
            return now - timedelta(hours=self.config.ttl_hours)
        except OverflowError:
            # TTL reaches past datetime.min
            return None

    async def prune_to_top_k(
        self,
        step: str,
        policy: Optional[Union[str, PolicyName]] = None,
        k: Optional[int] = None,
    ) -> int:
        """
        Re-rank every edge of ``step`` (no truncation) and delete all but the
        top ``k``. Returns the count removed.
        """
        limit = k if k is not None else self.config.top_k_per_step
        policy_name = self._resolve_policy(policy)
        try:
            edges = await self.store.fetch_edges(step)
            if len(edges) <= limit:
                return 0
            ranked = self._policy(policy_name).rank(edges, self._now())
            victims = [r.tactic_name for r in ranked[max(limit, 0):]]
            removed = await self.store.delete_edges(step, victims)
        except Exception as e:
            logger.warning(f"Top-K pruning failed for step '{step}': {e}")
            return 0
        if removed:
            self._count("pruned_top_k", removed)
            logger.info(f"Top-K pruned {removed} edge(s) from step '{step}' (k={limit})")
        return removed

    # ══════════════════════════════════════════════════════════════════
    # Operator helpers & diagnostics
    # ══════════════════════════════════════════════════════════════════

    async def seed_tactic(
        self,
        step: str,
        tactic: str,
        alpha: float = 1.0,
        beta: float = 1.0,
        cost: float = 0.0,
    ) -> EdgeSnapshot:
        """
        Register ``tactic`` for ``step`` with an explicit prior, replacing any
        learned state. Store errors propagate.
        """
        if not step or not tactic:
            raise ValidationError("step/tactic", "must be non-empty")
        for field_name, value in (("alpha", alpha), ("beta", beta)):
            if not (math.isfinite(value) and value > 0):
                raise ValidationError(field_name, "must be a positive finite number", value)
        if not math.isfinite(cost):
            raise ValidationError("cost", "must be finite", cost)

        edge = EdgeSnapshot(
            tactic_name=self._tactic_key(tactic),
            alpha=float(alpha),
            beta=float(beta),
            count=0,
            last_updated=self._now(),
            cost=float(cost),
        )
        await self.store.put_edge(step, edge)
        logger.info(f"Seeded {step} -> {edge.tactic_name} with Beta({alpha}, {beta}), cost={cost}")
        return edge

    async def set_tactic_cost(self, step: str, tactic: str, cost: float) -> None:
        """Set the hybrid-policy cost penalty of an edge. Store errors propagate."""
        if not math.isfinite(cost):
            raise ValidationError("cost", "must be finite", cost)
        await self.store.set_cost(step, self._tactic_key(tactic), float(cost))

    async def step_summary(self, step: str) -> List[Dict[str, Any]]:
        """Decayed posterior of every edge of ``step``, best mean first."""
        now = self._now()
        try:
            edges = await self.store.fetch_edges(step)
        except Exception as e:
            logger.warning(f"step_summary('{step}') unavailable: {e}")
            return []

        eps = self.config.epsilon
        rows = []
        for edge in edges:
            alpha, beta, factor = decay_counts(
                edge.alpha, edge.beta, edge.last_updated, now, self.config.half_life_hours
            )
            alpha, beta = max(alpha, eps), max(beta, eps)
            rows.append({
                **edge.to_dict(),
                "decay_factor": factor,
                "decayed_alpha": alpha,
                "decayed_beta": beta,
                "mean": _beta_mean(alpha, beta),
                "uncertainty": _beta_std(alpha, beta),
            })
        rows.sort(key=lambda r: (-r["mean"], r["tactic_name"]))
        return rows

    def get_stats(self) -> Dict[str, Any]:
        """Counters for monitoring."""
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
        stats["policy"] = self.default_policy.value
        stats["store_backend"] = self.store.backend_name
        return stats
