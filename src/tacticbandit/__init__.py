"""
TacticBandit - Adaptive Tactic Recommendation
=============================================

A decayed Beta-Bernoulli multi-armed bandit that learns, per conversation
step, which tactic most reliably advances a guided dialogue.

Key Features:
    - Recency decay of evidence with a configurable half-life
    - UCB1, Thompson sampling and weighted hybrid ranking policies
    - Eligibility-trace credit assignment across several tactics
    - TTL and Top-K pruning keep each step's fan-out bounded
    - Append-only decision log with propensities for off-policy evaluation

Quick Start:
    from tacticbandit import TacticBandit, InMemoryEdgeStore, Outcome

    bandit = TacticBandit(InMemoryEdgeStore())
    await bandit.seed_tactic("Discovery", "OpenQuestion")
    rec = await bandit.recommend("Discovery")
    await bandit.update_after_outcome(
        Outcome("conv-1", "Discovery", rec[0].tactic_name, success=True, recommendation=rec)
    )

Version: 1.0.0
"""

__version__ = "1.0.0"

from tacticbandit.core import (
    BanditConfig,
    DecisionRecord,
    EdgeSnapshot,
    EdgeStore,
    InMemoryEdgeStore,
    OffPolicyEvaluator,
    Outcome,
    PolicyName,
    RankedTactic,
    Recommendation,
    RedisEdgeStore,
    TacticBandit,
    TacticBanditConfig,
    build_engine,
    load_config,
)
from tacticbandit.logging_setup import configure_logging

__all__ = [
    "__version__",
    "BanditConfig",
    "DecisionRecord",
    "EdgeSnapshot",
    "EdgeStore",
    "InMemoryEdgeStore",
    "OffPolicyEvaluator",
    "Outcome",
    "PolicyName",
    "RankedTactic",
    "Recommendation",
    "RedisEdgeStore",
    "TacticBandit",
    "TacticBanditConfig",
    "build_engine",
    "configure_logging",
    "load_config",
]
