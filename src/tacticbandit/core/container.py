"""
Dependency Container
====================
Builds the edge store for the configured backend and wires it into a
TacticBandit.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import TacticBanditConfig, get_config
from .edge_store import Clock, EdgeStore, InMemoryEdgeStore
from .engine import TacticBandit
from .exceptions import ConfigurationError
from .redis_store import RedisEdgeStore


@dataclass
class Container:
    """Wired application dependencies."""
    config: TacticBanditConfig
    store: EdgeStore
    bandit: TacticBandit

    async def close(self) -> None:
        await self.store.close()


def build_store(config: TacticBanditConfig, clock: Optional[Clock] = None) -> EdgeStore:
    """Instantiate the store named by ``config.bandit.store_backend``."""
    backend = config.bandit.store_backend
    if backend == "memory":
        return InMemoryEdgeStore(clock=clock)
    if backend == "redis":
        return RedisEdgeStore(config=config.redis, clock=clock)
    raise ConfigurationError("store_backend", f"unsupported backend '{backend}'")


def build_engine(
    config: Optional[TacticBanditConfig] = None,
    store: Optional[EdgeStore] = None,
    rng: Optional[np.random.Generator] = None,
    clock: Optional[Clock] = None,
) -> Container:
    """
    Build and wire all dependencies.

    Args:
        config: Validated config (defaults to ``get_config()``).
        store: Pre-built store, bypassing backend selection.
        rng: Generator for Thompson sampling.
        clock: Time source shared by the store and the bandit.
    """
    config = config or get_config()
    store = store or build_store(config, clock=clock)
    bandit = TacticBandit(store, config.bandit, rng=rng, clock=clock)
    return Container(config=config, store=store, bandit=bandit)
