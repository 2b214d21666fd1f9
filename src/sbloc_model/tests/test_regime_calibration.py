# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Tests for regime calibration.
"""

import unittest

import numpy as np

from ..errors import InsufficientDataError
from ..montecarlo import regime_calibration
from ..montecarlo.regime_calibration import (
    BUCKET_FALLBACK_PARAMS,
    DEFAULT_REGIME_PARAMS,
    CalibrationMode,
    ClassifiedReturns,
    ParamsSource,
    Regime,
    RegimeParams,
    RegimeParamsMap,
    calibrate_asset,
    calibrate_regime_model,
    calculate_portfolio_regime_params,
    classify_regimes,
    estimate_regime_params,
    validate_regime_params,
)


def _history(seed=21, size=60):
    return np.random.default_rng(seed).normal(0.08, 0.16, size=size)


class TestClassifyRegimes(unittest.TestCase):
    """Tests for classify_regimes."""

    def test_requires_ten_observations(self):
        with self.assertRaises(InsufficientDataError):
            classify_regimes([0.05] * 9)

    def test_percentile_buckets(self):
        returns = np.linspace(-0.3, 0.3, 20)
        classified = classify_regimes(returns)
        self.assertEqual(len(classified.crash), 2)
        self.assertEqual(len(classified.bear), 4)
        self.assertEqual(len(classified.bull), 14)
        self.assertLess(max(classified.crash), min(classified.bear))
        self.assertLess(max(classified.bear), min(classified.bull))

    def test_every_return_is_classified(self):
        returns = _history()
        classified = classify_regimes(returns)
        total = len(classified.bull) + len(classified.bear) + len(classified.crash)
        self.assertEqual(total, len(returns))


class TestEstimateRegimeParams(unittest.TestCase):
    """Tests for estimate_regime_params."""

    def test_sample_statistics(self):
        classified = ClassifiedReturns(
            bull=(0.10, 0.20, 0.15),
            bear=(-0.05, -0.10, -0.03),
            crash=(-0.30, -0.40),
        )
        params = estimate_regime_params(classified)
        self.assertAlmostEqual(params.bull.mean, 0.15)
        self.assertAlmostEqual(params.bull.stddev, np.std([0.10, 0.20, 0.15], ddof=1))
        self.assertAlmostEqual(params.crash.mean, -0.35)

    def test_thin_bucket_falls_back_for_that_regime_only(self):
        classified = ClassifiedReturns(
            bull=(0.10, 0.20, 0.15),
            bear=(-0.05, -0.10),
            crash=(-0.30,),
        )
        params = estimate_regime_params(classified)
        self.assertEqual(params.crash, BUCKET_FALLBACK_PARAMS.crash)
        self.assertAlmostEqual(params.bull.mean, 0.15)
        self.assertAlmostEqual(params.bear.mean, -0.075)

    def test_zero_variance_bucket_gets_floor(self):
        classified = ClassifiedReturns(
            bull=(0.10, 0.10, 0.10),
            bear=(-0.05, -0.10),
            crash=(-0.30, -0.35),
        )
        params = estimate_regime_params(classified)
        self.assertEqual(params.bull.stddev, regime_calibration.MIN_REGIME_STDDEV)


class TestConservativeCalibration(unittest.TestCase):
    """Conservative mode must be more pessimistic and more volatile."""

    def test_conservative_is_more_pessimistic(self):
        for seed in range(5):
            returns = _history(seed=seed)
            historical = calibrate_regime_model(returns, CalibrationMode.HISTORICAL)
            conservative = calibrate_regime_model(returns, CalibrationMode.CONSERVATIVE)

            self.assertLessEqual(conservative.bull.mean, historical.bull.mean)
            self.assertLess(conservative.bear.mean, historical.bear.mean)
            self.assertLess(conservative.crash.mean, historical.crash.mean)
            for regime in (Regime.BULL, Regime.BEAR, Regime.CRASH):
                self.assertGreater(conservative[regime].stddev, historical[regime].stddev)

    def test_adjustment_amounts(self):
        returns = _history()
        historical = calibrate_regime_model(returns, "historical")
        conservative = calibrate_regime_model(returns, "conservative")
        self.assertAlmostEqual(
            conservative.bull.mean, historical.bull.mean - max(0.01, historical.bull.stddev)
        )
        self.assertAlmostEqual(conservative.bear.mean, historical.bear.mean - 0.02)
        self.assertAlmostEqual(conservative.crash.mean, historical.crash.mean - 0.03)
        self.assertAlmostEqual(conservative.bull.stddev, historical.bull.stddev * 1.15)
        self.assertAlmostEqual(conservative.bear.stddev, historical.bear.stddev * 1.20)
        self.assertAlmostEqual(conservative.crash.stddev, historical.crash.stddev * 1.25)


class TestPortfolioRegimeParams(unittest.TestCase):
    """Tests for calculate_portfolio_regime_params."""

    def setUp(self):
        self.stocks = RegimeParamsMap(
            bull=RegimeParams(0.14, 0.15),
            bear=RegimeParams(-0.10, 0.22),
            crash=RegimeParams(-0.35, 0.30),
        )
        self.bonds = RegimeParamsMap(
            bull=RegimeParams(0.04, 0.05),
            bear=RegimeParams(0.02, 0.06),
            crash=RegimeParams(0.05, 0.08),
        )

    def test_single_asset_unchanged(self):
        result = calculate_portfolio_regime_params([self.stocks], [1.0], [[1.0]])
        for regime in (Regime.BULL, Regime.BEAR, Regime.CRASH):
            self.assertEqual(result[regime].mean, self.stocks[regime].mean)
            self.assertAlmostEqual(result[regime].stddev, self.stocks[regime].stddev, places=12)

    def test_weighted_mean(self):
        result = calculate_portfolio_regime_params(
            [self.stocks, self.bonds], [0.6, 0.4], np.eye(2)
        )
        self.assertAlmostEqual(result.bull.mean, 0.6 * 0.14 + 0.4 * 0.04)

    def test_perfect_correlation_is_weighted_stddev(self):
        result = calculate_portfolio_regime_params(
            [self.stocks, self.bonds], [0.6, 0.4], [[1.0, 1.0], [1.0, 1.0]]
        )
        self.assertAlmostEqual(result.bull.stddev, 0.6 * 0.15 + 0.4 * 0.05)

    def test_diversification_reduces_stddev(self):
        result = calculate_portfolio_regime_params(
            [self.stocks, self.bonds], [0.6, 0.4], [[1.0, 0.2], [0.2, 1.0]]
        )
        expected = np.sqrt(
            (0.6 * 0.15) ** 2 + (0.4 * 0.05) ** 2 + 2 * 0.6 * 0.4 * 0.15 * 0.05 * 0.2
        )
        self.assertAlmostEqual(result.bull.stddev, expected)
        self.assertLess(result.bull.stddev, 0.6 * 0.15 + 0.4 * 0.05)

    def test_shape_mismatch_raises(self):
        with self.assertRaises(ValueError):
            calculate_portfolio_regime_params([self.stocks, self.bonds], [0.5, 0.5], np.eye(3))


class TestCalibrateAsset(unittest.TestCase):
    """Tests for the fallback-aware calibrate_asset."""

    def test_short_history_uses_defaults(self):
        with self.assertLogs(regime_calibration.logger, level='WARNING'):
            result = calibrate_asset("spy", [0.10, -0.05, 0.08, 0.12, -0.02])
        self.assertIs(result.source, ParamsSource.DEFAULT)
        self.assertTrue(result.used_fallback)
        self.assertEqual(result.params, DEFAULT_REGIME_PARAMS)
        self.assertEqual(result.issues[0].kind, "insufficient_data")

    def test_short_history_conservative_adjusts_defaults(self):
        result = calibrate_asset("spy", [0.1] * 3, CalibrationMode.CONSERVATIVE)
        self.assertTrue(result.used_fallback)
        self.assertLess(result.params.bear.mean, DEFAULT_REGIME_PARAMS.bear.mean)

    def test_degenerate_history_uses_defaults(self):
        """A history with a negative bull regime is rejected."""
        with self.assertLogs(regime_calibration.logger, level='WARNING'):
            result = calibrate_asset("falling", np.linspace(-0.5, -0.1, 20))
        self.assertIs(result.source, ParamsSource.DEFAULT)
        self.assertIn("negative_bull_mean", [i.kind for i in result.issues])

    def test_good_history_is_calibrated(self):
        result = calibrate_asset("equity", _history())
        self.assertIs(result.source, ParamsSource.CALIBRATED)
        self.assertFalse(result.used_fallback)
        self.assertGreater(result.params.bull.mean, result.params.bear.mean)

    def test_to_dict(self):
        data = calibrate_asset("spy", [0.1] * 3).to_dict()
        self.assertEqual(data["source"], "default")
        self.assertEqual(set(data["params"]), {"bull", "bear", "crash"})


class TestValidateRegimeParams(unittest.TestCase):

    def test_defaults_are_valid(self):
        self.assertEqual(validate_regime_params(DEFAULT_REGIME_PARAMS), [])

    def test_inverted_hierarchy_is_error(self):
        params = RegimeParamsMap(
            bull=RegimeParams(0.02, 0.10),
            bear=RegimeParams(0.05, 0.10),
            crash=RegimeParams(-0.20, 0.20),
        )
        issues = validate_regime_params(params)
        self.assertIn(("inverted_hierarchy", "error"), [(i.kind, i.severity) for i in issues])

    def test_small_spread_is_warning(self):
        params = RegimeParamsMap(
            bull=RegimeParams(0.05, 0.10),
            bear=RegimeParams(0.02, 0.10),
            crash=RegimeParams(-0.20, 0.20),
        )
        issues = validate_regime_params(params)
        self.assertEqual([(i.kind, i.severity) for i in issues], [("insufficient_spread", "warning")])


if __name__ == '__main__':
    unittest.main()
