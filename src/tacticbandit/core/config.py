"""
Tactic Bandit Configuration System
==================================
Centralized, validated configuration with environment variable overrides.

Priority: ENV > YAML > defaults. The resulting TacticBanditConfig is frozen and
handed to the TacticBandit orchestrator at construction; nothing reads the
environment after that.
"""

import os
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

import yaml

from tacticbandit.core.exceptions import ConfigurationError
from tacticbandit.core.models import PolicyName


@dataclass(frozen=True)
class HybridWeights:
    """Weights of the hybrid score. Non-negative; need not sum to 1."""
    exploitation: float = 0.6
    uncertainty: float = 0.2
    cost: float = 0.1
    recency: float = 0.1


@dataclass(frozen=True)
class BanditConfig:
    half_life_hours: float = 168.0  # 7 days
    max_recommendations: int = 3
    exploration_constant: float = 0.25
    policy: PolicyName = PolicyName.UCB
    top_k_per_step: int = 8
    ttl_hours: Optional[float] = 720.0  # 30 days; None or <= 0 disables
    hybrid_weights: HybridWeights = field(default_factory=HybridWeights)
    epsilon: float = 1e-6
    canonicalize_names: bool = False
    eligibility_trace_decay: float = 0.5
    store_backend: str = "memory"  # "memory" | "redis"

    @property
    def ttl_enabled(self) -> bool:
        return self.ttl_hours is not None and self.ttl_hours > 0


@dataclass(frozen=True)
class RedisConfig:
    url: str = "redis://localhost:6379/0"
    key_prefix: str = "tactic_bandit"
    max_connections: int = 10
    socket_timeout: int = 5
    password: Optional[str] = None
    decision_stream_maxlen: Optional[int] = None


@dataclass(frozen=True)
class ObservabilityConfig:
    log_level: str = "INFO"


@dataclass(frozen=True)
class TacticBanditConfig:
    """Root configuration object."""
    version: str = "1.0"
    bandit: BanditConfig = field(default_factory=BanditConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)


SUPPORTED_BACKENDS = ("memory", "redis")


def _env_override(key: str, default):
    """Check for TACTIC_BANDIT_<KEY> environment variable override."""
    env_key = f"TACTIC_BANDIT_{key.upper()}"
    val = os.environ.get(env_key)
    if val is None:
        return default
    # Type coercion based on the default's type
    if isinstance(default, bool):
        return val.lower() in ("true", "1", "yes")
    if isinstance(default, int):
        return int(val)
    if isinstance(default, float):
        return float(val)
    return val


def _parse_optional_positive_int(value: Optional[object]) -> Optional[int]:
    """Parse positive int values. Non-positive/invalid values become None."""
    if value is None:
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _parse_hybrid_weights(raw) -> HybridWeights:
    """
    Build HybridWeights from a mapping, a sequence or a "wE,wU,wC,wR" string.

    Missing or unparsable positions keep their default.
    """
    defaults = HybridWeights()
    order = ("exploitation", "uncertainty", "cost", "recency")
    if raw is None:
        return defaults
    if isinstance(raw, dict):
        values = {name: raw.get(name, getattr(defaults, name)) for name in order}
    else:
        if isinstance(raw, str):
            parts = [p.strip() for p in raw.split(",")]
        else:
            parts = list(raw)
        values = {}
        for i, name in enumerate(order):
            try:
                values[name] = float(parts[i])
            except (IndexError, TypeError, ValueError):
                values[name] = getattr(defaults, name)
    try:
        weights = HybridWeights(**{k: float(v) for k, v in values.items()})
    except (TypeError, ValueError) as e:
        raise ConfigurationError("hybrid_weights", f"weights must be numeric: {e}")
    for name in order:
        if getattr(weights, name) < 0:
            raise ConfigurationError(
                "hybrid_weights", f"weight '{name}' must be non-negative",
                {"value": getattr(weights, name)},
            )
    return weights


def validate_bandit_config(bandit: BanditConfig) -> BanditConfig:
    """Raise ConfigurationError for values the engine cannot run with."""
    if not bandit.half_life_hours or bandit.half_life_hours <= 0:
        raise ConfigurationError("half_life_hours", "must be positive")
    if bandit.max_recommendations < 1:
        raise ConfigurationError("max_recommendations", "must be at least 1")
    if bandit.top_k_per_step < 1:
        raise ConfigurationError("top_k_per_step", "must be at least 1")
    if bandit.exploration_constant < 0:
        raise ConfigurationError("exploration_constant", "must be non-negative")
    if bandit.epsilon <= 0:
        raise ConfigurationError("epsilon", "must be positive")
    if not 0.0 <= bandit.eligibility_trace_decay <= 1.0:
        raise ConfigurationError("eligibility_trace_decay", "must be within [0, 1]")
    if bandit.store_backend not in SUPPORTED_BACKENDS:
        raise ConfigurationError(
            "store_backend",
            f"unsupported backend '{bandit.store_backend}'",
            {"supported": list(SUPPORTED_BACKENDS)},
        )
    return bandit


def load_config(path: Optional[Path] = None) -> TacticBanditConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    Priority: ENV > YAML > defaults.

    Args:
        path: Path to config.yaml. If None, searches ./config.yaml and the repo root.

    Returns:
        Validated TacticBanditConfig instance.

    Raises:
        ConfigurationError: If a value is out of range or the policy is unknown.
        FileNotFoundError: If path is explicitly set and does not exist.
    """
    if path is None:
        candidates = [
            Path("config.yaml"),
            Path(__file__).parent.parent.parent.parent / "config.yaml",
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break
    elif not Path(path).exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    loaded = {}
    if path is not None and Path(path).exists():
        with open(path) as f:
            loaded = yaml.safe_load(f) or {}

    raw = loaded.get("tactic_bandit") or {}

    # Build bandit config
    bandit_raw = raw.get("bandit") or {}
    policy_name = _env_override("POLICY", str(bandit_raw.get("policy", "ucb")))
    weights_env = os.environ.get("TACTIC_BANDIT_HYBRID_WEIGHTS")
    ttl_raw = os.environ.get("TACTIC_BANDIT_TTL_HOURS", bandit_raw.get("ttl_hours", 720.0))
    ttl_hours = float(ttl_raw) if ttl_raw is not None else None

    bandit = BanditConfig(
        half_life_hours=_env_override("HALF_LIFE_HOURS", float(bandit_raw.get("half_life_hours", 168.0))),
        max_recommendations=_env_override("MAX_RECOMMENDATIONS", int(bandit_raw.get("max_recommendations", 3))),
        exploration_constant=_env_override("EXPLORATION_CONSTANT", float(bandit_raw.get("exploration_constant", 0.25))),
        policy=PolicyName.resolve(policy_name),
        top_k_per_step=_env_override("TOP_K_PER_STEP", int(bandit_raw.get("top_k_per_step", 8))),
        ttl_hours=ttl_hours,
        hybrid_weights=_parse_hybrid_weights(
            weights_env if weights_env is not None else bandit_raw.get("hybrid_weights")
        ),
        epsilon=float(bandit_raw.get("epsilon", 1e-6)),
        canonicalize_names=_env_override("CANONICALIZE_NAMES", bool(bandit_raw.get("canonicalize_names", False))),
        eligibility_trace_decay=_env_override(
            "ELIGIBILITY_TRACE_DECAY", float(bandit_raw.get("eligibility_trace_decay", 0.5))
        ),
        store_backend=_env_override("STORE_BACKEND", bandit_raw.get("store_backend", "memory")),
    )
    validate_bandit_config(bandit)

    # Build redis config
    redis_raw = raw.get("redis") or {}
    redis = RedisConfig(
        url=_env_override("REDIS_URL", redis_raw.get("url", "redis://localhost:6379/0")),
        key_prefix=redis_raw.get("key_prefix", "tactic_bandit"),
        max_connections=redis_raw.get("max_connections", 10),
        socket_timeout=redis_raw.get("socket_timeout", 5),
        password=_env_override("REDIS_PASSWORD", redis_raw.get("password")),
        decision_stream_maxlen=_parse_optional_positive_int(
            os.environ.get("TACTIC_BANDIT_DECISION_STREAM_MAXLEN", redis_raw.get("decision_stream_maxlen"))
        ),
    )

    # Build observability config
    obs_raw = raw.get("observability") or {}
    observability = ObservabilityConfig(
        log_level=_env_override("LOG_LEVEL", obs_raw.get("log_level", "INFO")),
    )

    return TacticBanditConfig(
        version=str(raw.get("version", "1.0")),
        bandit=bandit,
        redis=redis,
        observability=observability,
    )


# Module-level singleton (lazy-loaded)
_CONFIG: Optional[TacticBanditConfig] = None


def get_config() -> TacticBanditConfig:
    """Get or initialize the global config singleton."""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def reset_config():
    """Reset the global config singleton (useful for testing)."""
    global _CONFIG
    _CONFIG = None
