"""
Tests for credit normalization, eligibility traces and tactic name canonicalization.
"""

import math

import pytest
from hypothesis import given, strategies as st

from tacticbandit.core.credit import (
    build_eligibility_trace,
    canonicalize_tactic_name,
    normalize_eligibility,
)


class TestNormalizeEligibility:

    def test_none_gives_full_credit_to_chosen(self):
        assert normalize_eligibility(None, "OpenQuestion") == {"OpenQuestion": 1.0}

    def test_non_mapping_ignored(self):
        assert normalize_eligibility(["a", "b"], "a") == {"a": 1.0}

    def test_normalizes_to_one(self):
        credits = normalize_eligibility({"a": 2, "b": 6}, "a")
        assert credits == {"a": pytest.approx(0.25), "b": pytest.approx(0.75)}

    @pytest.mark.parametrize("bad", [
        {"a": 0},
        {"a": -1.0},
        {"a": float("nan")},
        {"a": float("inf")},
        {"a": True},
        {"a": "0.5"},
        {"": 1.0},
        {},
    ])
    def test_degenerate_falls_back(self, bad):
        assert normalize_eligibility(bad, "chosen") == {"chosen": 1.0}

    def test_invalid_entries_dropped_valid_kept(self):
        credits = normalize_eligibility({"a": 1.0, "b": -5, "c": None, "d": 3.0}, "a")
        assert set(credits) == {"a", "d"}
        assert credits["d"] == pytest.approx(0.75)

    def test_chosen_tactic_may_be_absent(self):
        """Credit goes where the trace says, even if not to the nominal tactic."""
        assert normalize_eligibility({"other": 1.0}, "chosen") == {"other": 1.0}

    @given(st.dictionaries(
        st.text(min_size=1, max_size=8),
        st.floats(min_value=1e-6, max_value=1e6),
        min_size=1,
        max_size=10,
    ))
    def test_sum_is_one(self, eligibility):
        credits = normalize_eligibility(eligibility, "x")
        assert math.isclose(sum(credits.values()), 1.0, rel_tol=1e-9)
        assert all(v > 0 for v in credits.values())


class TestEligibilityTrace:

    def test_most_recent_weighs_most(self):
        trace = build_eligibility_trace(["Rapport", "OpenQuestion", "Summary"], trace_decay=0.5)
        assert trace == {"Summary": 1.0, "OpenQuestion": 0.5, "Rapport": 0.25}

    def test_repeats_accumulate(self):
        trace = build_eligibility_trace(["a", "b", "a"], trace_decay=0.5)
        assert trace == {"a": 1.25, "b": 0.5}

    def test_zero_decay_credits_only_last(self):
        assert build_eligibility_trace(["a", "b", "c"], trace_decay=0.0) == {"c": 1.0}

    def test_empty_names_skipped(self):
        assert build_eligibility_trace(["a", "", None]) == {"a": 1.0}

    def test_feeds_normalization(self):
        credits = normalize_eligibility(build_eligibility_trace(["a", "b"], 0.5), "b")
        assert credits == {"b": pytest.approx(2 / 3), "a": pytest.approx(1 / 3)}


class TestCanonicalizeTacticName:

    @pytest.mark.parametrize("raw,expected", [
        ("Offer Case-Study!", "offer_case_study"),
        ("  OpenQuestion  ", "openquestion"),
        ("Ask__about   budget", "ask_about_budget"),
        ("!!!", "unknown"),
        ("", "unknown"),
        (None, "unknown"),
        (42, "42"),
    ])
    def test_canonical_forms(self, raw, expected):
        assert canonicalize_tactic_name(raw) == expected

    def test_truncated_to_64(self):
        assert len(canonicalize_tactic_name("x" * 200)) == 64

    @given(st.text(max_size=100))
    def test_idempotent(self, text):
        once = canonicalize_tactic_name(text)
        assert canonicalize_tactic_name(once) == once
