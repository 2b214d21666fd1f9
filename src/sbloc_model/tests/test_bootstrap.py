# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Tests for bootstrap resampling.
"""

import unittest
from unittest.mock import patch

import numpy as np

from ..errors import EmptyInputError
from ..montecarlo import bootstrap
from ..montecarlo.bootstrap import (
    align_series,
    block_bootstrap,
    correlated_block_bootstrap,
    correlated_bootstrap,
    lag_one_autocorrelation,
    optimal_block_length,
    simple_bootstrap,
)


class TestSimpleBootstrap(unittest.TestCase):
    """Tests for simple_bootstrap."""

    def setUp(self):
        self.returns = [0.10, -0.05, 0.08, 0.12, -0.02]

    def test_length_and_membership(self):
        """Every draw comes from the input and the length is exact."""
        rng = np.random.default_rng(1)
        for target in (0, 1, 7, 250):
            out = simple_bootstrap(self.returns, target, rng)
            self.assertEqual(len(out), target)
            for value in out:
                self.assertIn(value, self.returns)

    def test_empty_input_raises(self):
        with self.assertRaises(EmptyInputError):
            simple_bootstrap([], 10, np.random.default_rng(0))

    def test_same_seed_same_draws(self):
        a = simple_bootstrap(self.returns, 50, np.random.default_rng(7))
        b = simple_bootstrap(self.returns, 50, np.random.default_rng(7))
        np.testing.assert_array_equal(a, b)


class TestOptimalBlockLength(unittest.TestCase):
    """Tests for optimal_block_length."""

    def test_short_series(self):
        """Series under 12 observations use max(3, n // 2)."""
        self.assertEqual(optimal_block_length([0.1] * 5), 3)
        self.assertEqual(optimal_block_length([0.1, 0.2] * 5), 5)
        self.assertEqual(optimal_block_length([0.1, 0.2, 0.3] * 3 + [0.0, 0.1]), 5)

    def test_bounds_on_random_series(self):
        rng = np.random.default_rng(3)
        for n in (12, 20, 40, 100, 500):
            returns = rng.normal(0.07, 0.15, size=n)
            length = optimal_block_length(returns)
            self.assertGreaterEqual(length, 3)
            self.assertLessEqual(length, max(3, n // 4))

    def test_autocorrelated_series_gets_longer_blocks(self):
        rng = np.random.default_rng(11)
        noise = rng.normal(size=400)
        persistent = np.empty(400)
        persistent[0] = noise[0]
        for i in range(1, 400):
            persistent[i] = 0.9 * persistent[i - 1] + noise[i]
        self.assertGreater(optimal_block_length(persistent), optimal_block_length(noise))

    def test_constant_series(self):
        """Zero variance means no autocorrelation, so the minimum block."""
        self.assertEqual(optimal_block_length([0.05] * 40), 3)

    def test_constant_series_with_inexact_mean(self):
        self.assertEqual(optimal_block_length([0.03] * 30), 3)

    def test_perfect_autocorrelation_uses_quarter_length(self):
        with patch.object(bootstrap, 'lag_one_autocorrelation', return_value=1.0):
            self.assertEqual(optimal_block_length([0.0] * 40), 10)


class TestLagOneAutocorrelation(unittest.TestCase):

    def test_constant_series_is_zero(self):
        self.assertEqual(lag_one_autocorrelation([0.03] * 10), 0.0)

    def test_near_constant_series_is_zero(self):
        self.assertEqual(lag_one_autocorrelation([0.03] * 30 + [0.03 + 1e-17]), 0.0)

    def test_alternating_series_is_negative(self):
        self.assertLess(lag_one_autocorrelation([1.0, -1.0] * 10), -0.9)


class TestBlockBootstrap(unittest.TestCase):
    """Tests for block_bootstrap."""

    def setUp(self):
        self.returns = np.arange(20, dtype=float)

    def test_exact_length(self):
        rng = np.random.default_rng(5)
        for block_length in (1, 3, 7, 20):
            for target in (0, 1, 5, 33):
                out = block_bootstrap(self.returns, target, rng, block_length)
                self.assertEqual(len(out), target)

    def test_blocks_are_contiguous(self):
        out = block_bootstrap(self.returns, 9, np.random.default_rng(2), block_length=3)
        for start in range(0, 9, 3):
            block = out[start:start + 3]
            np.testing.assert_array_equal(np.diff(block), [1.0, 1.0])

    def test_full_length_block_is_whole_series(self):
        """With block_length == n the only valid start is 0."""
        out = block_bootstrap(self.returns, 12, np.random.default_rng(9), block_length=20)
        np.testing.assert_array_equal(out, self.returns[:12])

    def test_block_length_clamped_to_series(self):
        out = block_bootstrap(self.returns, 12, np.random.default_rng(9), block_length=500)
        np.testing.assert_array_equal(out, self.returns[:12])

    def test_automatic_block_length(self):
        out = block_bootstrap(self.returns, 30, np.random.default_rng(4))
        self.assertEqual(len(out), 30)
        self.assertTrue(set(out) <= set(self.returns))

    def test_empty_input_raises(self):
        with self.assertRaises(EmptyInputError):
            block_bootstrap([], 5, np.random.default_rng(0), 3)


class TestCorrelatedBootstrap(unittest.TestCase):
    """Tests for the shared-index multi-asset bootstraps."""

    def setUp(self):
        base = np.arange(10, dtype=float)
        self.series = [base, base * 10]

    def test_same_historical_year_for_all_assets(self):
        out = correlated_bootstrap(self.series, 25, np.random.default_rng(6))
        self.assertEqual(out.shape, (2, 25))
        np.testing.assert_array_equal(out[1], out[0] * 10)

    def test_block_variant_shares_blocks(self):
        out = correlated_block_bootstrap(self.series, 17, np.random.default_rng(6), block_length=4)
        self.assertEqual(out.shape, (2, 17))
        np.testing.assert_array_equal(out[1], out[0] * 10)

    def test_unequal_lengths_use_recent_common_window(self):
        aligned = align_series([np.arange(12, dtype=float), np.arange(10, dtype=float)])
        self.assertEqual(aligned.shape, (2, 10))
        np.testing.assert_array_equal(aligned[0], np.arange(2, 12))

    def test_empty_series_raises(self):
        with self.assertRaises(EmptyInputError):
            correlated_bootstrap([[0.1, 0.2], []], 5, np.random.default_rng(0))


if __name__ == '__main__':
    unittest.main()
