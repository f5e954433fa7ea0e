"""
Recency Decay
=============
Exponential half-life decay applied to Beta pseudo-counts before every ranking
and every update:

    factor = 2 ^ (-Δt / half_life),   Δt = max(0, now - last_updated)

An edge with no recorded update has nothing to forget, so its factor is 1.0.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional, Union

Timestamp = Union[datetime, int, float]

SECONDS_PER_HOUR: float = 3600.0


def _epoch_seconds(value: Optional[Timestamp]) -> Optional[float]:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = float(value)
        return value if math.isfinite(value) else None
    return None


def decay_factor(
    last_updated: Optional[Timestamp],
    now: Optional[Timestamp] = None,
    half_life_hours: float = 168.0,
) -> float:
    """
    Recency weight in (0, 1] for evidence last touched at ``last_updated``.

    Timestamps may be datetimes (naive ones are read as UTC) or epoch seconds.
    Returns 1.0 when ``last_updated`` is missing/invalid or the half-life is
    not a positive finite number.
    """
    last = _epoch_seconds(last_updated)
    if last is None:
        return 1.0
    try:
        half_life = float(half_life_hours)
    except (TypeError, ValueError):
        return 1.0
    if not math.isfinite(half_life) or half_life <= 0:
        return 1.0

    current = _epoch_seconds(now if now is not None else datetime.now(timezone.utc))
    if current is None:
        return 1.0

    delta = max(0.0, current - last)
    factor = math.pow(2.0, -delta / (half_life * SECONDS_PER_HOUR))
    # 2^-x underflows to 0.0 for very stale edges; keep the factor positive
    return max(factor, math.ulp(0.0))


def decay_counts(
    alpha: float,
    beta: float,
    last_updated: Optional[Timestamp],
    now: Optional[Timestamp] = None,
    half_life_hours: float = 168.0,
) -> tuple[float, float, float]:
    """Return (decayed_alpha, decayed_beta, factor)."""
    factor = decay_factor(last_updated, now, half_life_hours)
    return alpha * factor, beta * factor, factor
