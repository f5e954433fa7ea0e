"""
Tactic Bandit Core Module
=========================
Engine pieces of the adaptive tactic recommender.

Learning:
    - decay_factor: Half-life recency weight for Beta pseudo-counts
    - sample_gamma / sample_beta: Marsaglia-Tsang samplers for Thompson sampling
    - UCBPolicy / ThompsonPolicy / HybridPolicy: Interchangeable ranking policies
    - normalize_eligibility / build_eligibility_trace: Credit assignment

Storage:
    - EdgeStore: Async persistence interface for (step -> tactic) edges
    - InMemoryEdgeStore: Process-local backend
    - RedisEdgeStore: redis.asyncio backend

Orchestration:
    - TacticBandit: recommend / update_after_outcome / pruning
    - OffPolicyEvaluator: IPS and SNIPS over the decision log
"""

from .config import (
    BanditConfig,
    HybridWeights,
    RedisConfig,
    TacticBanditConfig,
    get_config,
    load_config,
    reset_config,
)
from .container import Container, build_engine, build_store
from .credit import build_eligibility_trace, canonicalize_tactic_name, normalize_eligibility
from .decay import decay_counts, decay_factor
from .edge_store import EdgeStore, InMemoryEdgeStore
from .engine import TacticBandit
from .evaluation import (
    EvaluationReport,
    OffPolicyEvaluator,
    evaluate_decisions,
    greedy_target,
    usable_records,
)
from .exceptions import (
    ConfigurationError,
    StorageError,
    TacticBanditError,
    UnknownPolicyError,
    ValidationError,
)
from .models import (
    DecisionRecord,
    EdgeSnapshot,
    Outcome,
    PolicyName,
    RankedTactic,
    Recommendation,
)
from .policies import (
    HybridPolicy,
    RankingPolicy,
    ThompsonPolicy,
    UCBPolicy,
    build_policy,
    finalize_ranking,
)
from .redis_store import RedisEdgeStore
from .sampling import sample_beta, sample_gamma

__all__ = [
    "BanditConfig",
    "HybridWeights",
    "RedisConfig",
    "TacticBanditConfig",
    "get_config",
    "load_config",
    "reset_config",
    "Container",
    "build_engine",
    "build_store",
    "build_eligibility_trace",
    "canonicalize_tactic_name",
    "normalize_eligibility",
    "decay_counts",
    "decay_factor",
    "EdgeStore",
    "InMemoryEdgeStore",
    "RedisEdgeStore",
    "TacticBandit",
    "EvaluationReport",
    "OffPolicyEvaluator",
    "evaluate_decisions",
    "greedy_target",
    "usable_records",
    "ConfigurationError",
    "StorageError",
    "TacticBanditError",
    "UnknownPolicyError",
    "ValidationError",
    "DecisionRecord",
    "EdgeSnapshot",
    "Outcome",
    "PolicyName",
    "RankedTactic",
    "Recommendation",
    "HybridPolicy",
    "RankingPolicy",
    "ThompsonPolicy",
    "UCBPolicy",
    "build_policy",
    "finalize_ranking",
    "sample_beta",
    "sample_gamma",
]
