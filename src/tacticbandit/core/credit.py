"""
Credit Assignment
=================
Turns an outcome into per-tactic credit.

Credit maps are eligibility traces: several tactics used during one turn can
share responsibility for the outcome. Whatever the caller supplies is
normalized so the credited amounts always add up to exactly one observation.
"""

from __future__ import annotations

import math
import re
from numbers import Real
from typing import Any, Dict, Mapping, Optional, Sequence

from loguru import logger

UNKNOWN_TACTIC = "unknown"
MAX_TACTIC_NAME_LENGTH = 64

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def canonicalize_tactic_name(text: Any) -> str:
    """
    Normalize a free-text tactic label ("Offer Case-Study!") to a stable key
    ("offer_case_study"). Empty results map to ``"unknown"``.
    """
    if text is None:
        return UNKNOWN_TACTIC
    slug = _NON_ALNUM.sub("_", str(text).lower()).strip("_")
    return slug[:MAX_TACTIC_NAME_LENGTH].rstrip("_") or UNKNOWN_TACTIC


def _valid_credit(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    value = float(value)
    return math.isfinite(value) and value > 0


def normalize_eligibility(
    eligibility: Optional[Mapping[str, Any]],
    chosen_tactic: str,
) -> Dict[str, float]:
    """
    Normalize a tactic -> credit mapping to sum to 1.0.

    Entries with empty names or non-positive / non-numeric credit are dropped.
    If nothing usable remains the chosen tactic receives full credit.
    """
    if not isinstance(eligibility, Mapping):
        if eligibility is not None:
            logger.debug(f"Ignoring non-mapping eligibility {type(eligibility).__name__}")
        return {chosen_tactic: 1.0}

    entries = [
        (str(name), float(credit))
        for name, credit in eligibility.items()
        if name is not None and str(name) and _valid_credit(credit)
    ]
    if not entries:
        return {chosen_tactic: 1.0}

    total = sum(credit for _, credit in entries)
    if not math.isfinite(total) or total <= 0:
        return {chosen_tactic: 1.0}

    normalized: Dict[str, float] = {}
    for name, credit in entries:
        normalized[name] = normalized.get(name, 0.0) + credit / total
    return normalized


def build_eligibility_trace(
    tactics: Sequence[str],
    trace_decay: float = 0.5,
) -> Dict[str, float]:
    """
    Eligibility trace over the tactics used in a turn, oldest first.

    The most recent tactic gets weight 1, the previous one ``trace_decay``,
    then ``trace_decay**2`` and so on. Repeated tactics accumulate. The result
    is unnormalized; pass it to ``normalize_eligibility`` (the engine does).
    """
    lam = min(1.0, max(0.0, float(trace_decay)))
    trace: Dict[str, float] = {}
    weight = 1.0
    for name in reversed([t for t in tactics if t]):
        if weight <= 0:
            break
        trace[name] = trace.get(name, 0.0) + weight
        weight *= lam
    return trace
