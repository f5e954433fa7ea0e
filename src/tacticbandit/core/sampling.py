"""
Gamma / Beta Samplers
=====================
Marsaglia & Tsang (2000) rejection sampler for Gamma(k, 1) and the Beta draw
built from two Gamma variates. Used by the Thompson-sampling policy.

Normal and uniform variates come from a ``numpy.random.Generator`` so callers
(and tests) can pass a seeded generator for reproducible draws.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

BETA_FLOOR: float = 1e-6

_DEFAULT_RNG: Optional[np.random.Generator] = None


def default_rng() -> np.random.Generator:
    """Process-wide generator used when no explicit rng is supplied."""
    global _DEFAULT_RNG
    if _DEFAULT_RNG is None:
        _DEFAULT_RNG = np.random.default_rng()
    return _DEFAULT_RNG


def sample_gamma(shape: float, rng: Optional[np.random.Generator] = None) -> float:
    """
    Draw from Gamma(shape, scale=1).

    For shape < 1 the draw is taken from Gamma(shape + 1) and scaled by
    U^(1/shape). shape <= 0 (or NaN) is degenerate and returns 0.0.
    """
    rng = rng or default_rng()
    k = float(shape)
    if not k > 0:
        return 0.0
    if k < 1.0:
        u = rng.random()
        return sample_gamma(k + 1.0, rng) * math.pow(u, 1.0 / k)

    d = k - 1.0 / 3.0
    c = 1.0 / math.sqrt(9.0 * d)
    while True:
        x = rng.standard_normal()
        v = 1.0 + c * x
        if v <= 0.0:
            continue
        v = v * v * v
        u = rng.random()
        if u < 1.0 - 0.0331 * (x * x) * (x * x):
            return d * v
        if u == 0.0 or math.log(u) < 0.5 * x * x + d * (1.0 - v + math.log(v)):
            return d * v


def sample_beta(
    a: float,
    b: float,
    rng: Optional[np.random.Generator] = None,
    floor: float = BETA_FLOOR,
) -> float:
    """
    Draw from Beta(a, b) as X / (X + Y), X ~ Gamma(a), Y ~ Gamma(b).

    Both parameters are clamped to ``floor`` first. If both Gamma draws
    underflow to zero the posterior mean is returned instead.
    """
    rng = rng or default_rng()
    aa = max(float(a), floor) if math.isfinite(a) else floor
    bb = max(float(b), floor) if math.isfinite(b) else floor
    x = sample_gamma(aa, rng)
    y = sample_gamma(bb, rng)
    total = x + y
    if total <= 0.0 or not math.isfinite(total):
        return aa / (aa + bb)
    return min(1.0, max(0.0, x / total))
