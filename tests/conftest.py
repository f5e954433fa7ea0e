import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np
import pytest


# Ensure local src/ package imports work without editable install.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow-running (use pytest -m 'not slow' to skip)"
    )
    config.addinivalue_line(
        "markers",
        "requires_redis: mark test as requiring a running Redis instance"
    )


def pytest_addoption(parser):
    """Add custom command-line options for pytest."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests"
    )


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is passed; skip live-Redis tests when none is reachable."""
    run_slow = config.getoption("--run-slow", default=False)
    skip_slow = pytest.mark.skip(reason="Slow test skipped. Use --run-slow to run.")
    skip_redis = pytest.mark.skip(
        reason="Redis not available. Start Redis with: docker run -p 6379:6379 redis"
    )
    redis_available = None

    for item in items:
        if "slow" in item.keywords and not run_slow:
            item.add_marker(skip_slow)
        if "requires_redis" in item.keywords:
            if redis_available is None:
                redis_available = _check_redis_available()
            if not redis_available:
                item.add_marker(skip_redis)


def _check_redis_available() -> bool:
    """Check if Redis is available for live tests."""
    try:
        import redis
        client = redis.Redis(host="localhost", port=6379, socket_timeout=2)
        client.ping()
        client.close()
        return True
    except Exception:
        return False


# =============================================================================
# Fixtures
# =============================================================================

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Reset config state and TACTIC_BANDIT_* env vars between tests."""
    import os
    from tacticbandit.core.config import reset_config

    for key in list(os.environ):
        if key.startswith("TACTIC_BANDIT_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(12345)


@pytest.fixture
def memory_store(clock):
    from tacticbandit.core.edge_store import InMemoryEdgeStore
    return InMemoryEdgeStore(clock=clock)


@pytest.fixture
def no_ttl_config():
    from tacticbandit.core.config import BanditConfig
    return BanditConfig(ttl_hours=None)


@pytest.fixture
def bandit(memory_store, no_ttl_config, rng, clock):
    from tacticbandit.core.engine import TacticBandit
    return TacticBandit(memory_store, no_ttl_config, rng=rng, clock=clock)
