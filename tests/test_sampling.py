"""
Tests for the Gamma / Beta samplers.
"""

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from tacticbandit.core.sampling import sample_beta, sample_gamma


class TestSampleGamma:

    def test_degenerate_shape_returns_zero(self, rng):
        assert sample_gamma(0.0, rng) == 0.0
        assert sample_gamma(-2.0, rng) == 0.0
        assert sample_gamma(float("nan"), rng) == 0.0

    @pytest.mark.parametrize("shape", [0.3, 1.0, 2.5, 9.0])
    def test_mean_matches_shape(self, shape):
        rng = np.random.default_rng(7)
        draws = np.array([sample_gamma(shape, rng) for _ in range(20000)])
        assert (draws >= 0).all()
        # Gamma(k, 1) has mean k and variance k
        tolerance = 4 * np.sqrt(shape / len(draws))
        assert abs(draws.mean() - shape) < tolerance

    def test_seeded_generator_is_reproducible(self):
        a = [sample_gamma(2.0, np.random.default_rng(1)) for _ in range(3)]
        b = [sample_gamma(2.0, np.random.default_rng(1)) for _ in range(3)]
        assert a == b


class TestSampleBeta:

    @settings(max_examples=200, deadline=None)
    @given(
        st.floats(min_value=1e-6, max_value=1e4),
        st.floats(min_value=1e-6, max_value=1e4),
        st.integers(min_value=0, max_value=2**32 - 1),
    )
    def test_within_unit_interval(self, a, b, seed):
        x = sample_beta(a, b, np.random.default_rng(seed))
        assert 0.0 <= x <= 1.0

    @pytest.mark.parametrize("a,b", [(1.0, 1.0), (5.0, 1.0), (2.0, 8.0), (0.5, 0.5)])
    def test_mean_converges(self, a, b):
        rng = np.random.default_rng(2024)
        n = 10000
        draws = np.array([sample_beta(a, b, rng) for _ in range(n)])
        expected = a / (a + b)
        std = np.sqrt(a * b / ((a + b) ** 2 * (a + b + 1)))
        assert abs(draws.mean() - expected) < 5 * std / np.sqrt(n)

    def test_non_positive_parameters_clamped(self, rng):
        for _ in range(50):
            x = sample_beta(0.0, -3.0, rng)
            assert 0.0 <= x <= 1.0

    def test_non_finite_parameters_clamped(self, rng):
        x = sample_beta(float("nan"), float("inf"), rng)
        assert 0.0 <= x <= 1.0
