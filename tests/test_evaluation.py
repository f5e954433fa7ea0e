"""
Tests for off-policy evaluation over the decision log.
"""

import math

import pytest

from tacticbandit.core.evaluation import (
    EvaluationReport,
    OffPolicyEvaluator,
    evaluate_decisions,
    greedy_target,
    usable_records,
)
from tacticbandit.core.models import DecisionRecord


def record(tactic, success, propensity, recommended=None):
    if recommended is None:
        recommended = [
            {"tactic_name": "a", "estimated_success_probability": 0.8, "propensity": 0.6},
            {"tactic_name": "b", "estimated_success_probability": 0.5, "propensity": 0.4},
        ]
    return DecisionRecord(
        conversation_id="c",
        step="Discovery",
        tactic=tactic,
        success=success,
        policy="ucb",
        propensity=propensity,
        recommended=recommended,
    )


def logging_policy(r):
    return r.propensity


class TestUsableRecords:

    def test_drops_missing_and_non_positive(self):
        records = [record("a", True, 0.6), record("x", True, None), record("b", False, 0.0)]
        assert [r.tactic for r in usable_records(records)] == ["a"]


class TestGreedyTarget:

    def test_picks_highest_estimate(self):
        assert greedy_target(record("a", True, 0.6)) == 1.0
        assert greedy_target(record("b", True, 0.4)) == 0.0

    def test_tie_broken_by_name(self):
        tied = [
            {"tactic_name": "z", "estimated_success_probability": 0.5},
            {"tactic_name": "m", "estimated_success_probability": 0.5},
        ]
        assert greedy_target(record("m", True, 0.5, recommended=tied)) == 1.0

    def test_no_snapshot(self):
        assert greedy_target(record("a", True, None, recommended=[])) == 0.0


class TestOffPolicyEvaluator:

    def test_logging_policy_recovers_logged_value(self):
        records = [record("a", True, 0.6), record("b", False, 0.4), record("a", True, 0.6), record("b", True, 0.4)]
        ev = OffPolicyEvaluator(records)
        assert ev.logged_value() == pytest.approx(0.75)
        assert ev.ips(logging_policy) == pytest.approx(0.75)
        assert ev.snips(logging_policy) == pytest.approx(0.75)

    def test_greedy_ips_and_snips(self):
        records = [record("a", True, 0.5), record("b", False, 0.5), record("a", False, 0.5), record("b", True, 0.5)]
        ev = OffPolicyEvaluator(records)
        # weights: 2, 0, 2, 0 ; rewards 1, 0, 0, 1
        assert ev.ips(greedy_target) == pytest.approx(0.5)
        assert ev.snips(greedy_target) == pytest.approx(0.5)
        assert ev.effective_sample_size(greedy_target) == pytest.approx(2.0)

    def test_clipping(self):
        records = [record("a", True, 0.1), record("b", False, 0.9)]
        unclipped = OffPolicyEvaluator(records).ips(greedy_target)
        clipped = OffPolicyEvaluator(records, clip=2.0).ips(greedy_target)
        assert unclipped == pytest.approx(5.0)
        assert clipped == pytest.approx(1.0)

    def test_no_usable_records(self):
        ev = OffPolicyEvaluator([record("x", True, None)])
        assert math.isnan(ev.logged_value())
        assert math.isnan(ev.ips(greedy_target))
        assert math.isnan(ev.snips(greedy_target))
        assert ev.effective_sample_size(greedy_target) == 0.0

    def test_target_never_matches(self):
        ev = OffPolicyEvaluator([record("b", True, 0.4)])
        assert ev.ips(greedy_target) == 0.0
        assert math.isnan(ev.snips(greedy_target))

    def test_report(self):
        records = [record("a", True, 0.6), record("x", False, None)]
        report = OffPolicyEvaluator(records).report(greedy_target)
        assert isinstance(report, EvaluationReport)
        assert (report.n_records, report.n_used) == (2, 1)
        assert report.to_dict()["ips"] == pytest.approx(1 / 0.6)


class TestEvaluateDecisions:

    @pytest.mark.asyncio
    async def test_reads_store(self, memory_store):
        await memory_store.append_decision(record("a", True, 0.6))
        await memory_store.append_decision(record("b", False, None))
        report = await evaluate_decisions(memory_store, step="Discovery")
        assert report.n_records == 2
        assert report.n_used == 1
        assert report.ips == pytest.approx(1 / 0.6)
