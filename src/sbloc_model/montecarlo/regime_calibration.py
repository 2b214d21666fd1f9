# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Regime calibration from historical returns.

Derives bull/bear/crash return distributions for an asset by classifying its
historical returns against percentile thresholds (not a maximum-likelihood
fit), then optionally applies a conservative stress adjustment. Portfolio
level parameters combine per-asset parameters through the full covariance
of the weighted assets.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence, Tuple

import numpy as np

from ..errors import InsufficientDataError

logger = logging.getLogger(__name__)

MIN_CALIBRATION_OBSERVATIONS = 10
MIN_BUCKET_OBSERVATIONS = 2
CRASH_PERCENTILE = 10
BEAR_PERCENTILE = 30

# Floor for a per-regime standard deviation estimated from a constant bucket
MIN_REGIME_STDDEV = 0.01

MAX_REASONABLE_STDDEV = 0.80
MIN_BULL_BEAR_SPREAD = 0.05


class Regime(str, Enum):
    """Market regime of the Markov chain, in transition-row order."""
    BULL = "bull"
    BEAR = "bear"
    CRASH = "crash"


REGIMES: Tuple[Regime, ...] = (Regime.BULL, Regime.BEAR, Regime.CRASH)


class CalibrationMode(str, Enum):
    HISTORICAL = "historical"
    CONSERVATIVE = "conservative"


class ParamsSource(str, Enum):
    CALIBRATED = "calibrated"
    DEFAULT = "default"


@dataclass(frozen=True)
class RegimeParams:
    """Return distribution for one regime.

    Attributes:
        mean: Expected annual return as decimal (e.g., 0.12 for 12%)
        stddev: Annual standard deviation as decimal
    """
    mean: float
    stddev: float

    def __post_init__(self):
        if self.stddev < 0:
            raise ValueError(f"Regime stddev cannot be negative: {self.stddev}")


@dataclass(frozen=True)
class RegimeParamsMap:
    """Return distribution for each of the three regimes."""
    bull: RegimeParams
    bear: RegimeParams
    crash: RegimeParams

    def __getitem__(self, regime) -> RegimeParams:
        return getattr(self, Regime(regime).value)

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            regime.value: {"mean": self[regime].mean, "stddev": self[regime].stddev}
            for regime in REGIMES
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, float]]) -> 'RegimeParamsMap':
        return cls(**{
            regime.value: RegimeParams(float(data[regime.value]["mean"]),
                                       float(data[regime.value]["stddev"]))
            for regime in REGIMES
        })


# Long-run S&P 500 regime estimates, used when an asset has too little
# history to calibrate or its calibration is degenerate.
DEFAULT_REGIME_PARAMS = RegimeParamsMap(
    bull=RegimeParams(0.12, 0.12),
    bear=RegimeParams(-0.08, 0.20),
    crash=RegimeParams(-0.30, 0.35),
)

# Substituted for a single regime whose bucket has fewer than two observations.
BUCKET_FALLBACK_PARAMS = RegimeParamsMap(
    bull=RegimeParams(0.10, 0.12),
    bear=RegimeParams(-0.05, 0.15),
    crash=RegimeParams(-0.25, 0.30),
)


@dataclass(frozen=True)
class ClassifiedReturns:
    """Historical returns split by regime, in original order within each bucket."""
    bull: Tuple[float, ...]
    bear: Tuple[float, ...]
    crash: Tuple[float, ...]

    def __getitem__(self, regime) -> Tuple[float, ...]:
        return getattr(self, Regime(regime).value)


@dataclass(frozen=True)
class ValidationIssue:
    kind: str
    message: str
    severity: str  # 'warning' or 'error'


@dataclass(frozen=True)
class CalibrationResult:
    """Regime parameters for one asset, tagged with where they came from.

    Attributes:
        params: Parameters used by the simulation
        source: ``calibrated`` when derived from the asset's history,
            ``default`` when the built-in parameters were substituted
        issues: Validation findings and fallback reasons
    """
    params: RegimeParamsMap
    source: ParamsSource
    issues: Tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def used_fallback(self) -> bool:
        return self.source is ParamsSource.DEFAULT

    def to_dict(self) -> Dict:
        return {
            "params": self.params.to_dict(),
            "source": self.source.value,
            "issues": [
                {"kind": i.kind, "message": i.message, "severity": i.severity}
                for i in self.issues
            ],
        }


def classify_regimes(returns: Sequence[float]) -> ClassifiedReturns:
    """Split returns into crash / bear / bull buckets.

    Returns below the 10th percentile are crash years, returns from the 10th
    up to the 30th percentile are bear years, everything else is bull.

    Raises:
        InsufficientDataError: If fewer than 10 observations are supplied
    """
    if len(returns) < MIN_CALIBRATION_OBSERVATIONS:
        raise InsufficientDataError(
            f"Regime classification needs at least {MIN_CALIBRATION_OBSERVATIONS} "
            f"observations, got {len(returns)}"
        )

    arr = np.asarray(returns, dtype=float)
    crash_threshold = float(np.percentile(arr, CRASH_PERCENTILE))
    bear_threshold = float(np.percentile(arr, BEAR_PERCENTILE))

    bull: List[float] = []
    bear: List[float] = []
    crash: List[float] = []
    for r in arr:
        r = float(r)
        if r < crash_threshold:
            crash.append(r)
        elif r < bear_threshold:
            bear.append(r)
        else:
            bull.append(r)

    return ClassifiedReturns(tuple(bull), tuple(bear), tuple(crash))


def _bucket_params(values: Sequence[float], fallback: RegimeParams) -> RegimeParams:
    if len(values) < MIN_BUCKET_OBSERVATIONS:
        return fallback
    mean = float(np.mean(values))
    stddev = float(np.std(values, ddof=1))
    if not (math.isfinite(mean) and math.isfinite(stddev)):
        return fallback
    return RegimeParams(mean, max(stddev, MIN_REGIME_STDDEV))


def estimate_regime_params(classified: ClassifiedReturns) -> RegimeParamsMap:
    """Mean and sample standard deviation per regime bucket.

    A bucket with fewer than two observations gets the built-in default for
    that regime only; the other regimes keep their estimates.
    """
    return RegimeParamsMap(**{
        regime.value: _bucket_params(classified[regime], BUCKET_FALLBACK_PARAMS[regime])
        for regime in REGIMES
    })


def apply_conservative_adjustment(params: RegimeParamsMap) -> RegimeParamsMap:
    """Stress-adjust regime parameters.

    - Bull: mean reduced by one stddev (at least 1pp), stddev +15%
    - Bear: mean reduced by 2pp, stddev +20%
    - Crash: mean reduced by 3pp, stddev +25%
    """
    return RegimeParamsMap(
        bull=RegimeParams(
            params.bull.mean - max(0.01, params.bull.stddev),
            params.bull.stddev * 1.15,
        ),
        bear=RegimeParams(params.bear.mean - 0.02, params.bear.stddev * 1.20),
        crash=RegimeParams(params.crash.mean - 0.03, params.crash.stddev * 1.25),
    )


def calibrate_regime_model(returns: Sequence[float],
                           mode: CalibrationMode = CalibrationMode.HISTORICAL) -> RegimeParamsMap:
    """Historical returns to regime parameters for the given mode.

    Raises:
        InsufficientDataError: If fewer than 10 observations are supplied
    """
    params = estimate_regime_params(classify_regimes(returns))
    if CalibrationMode(mode) is CalibrationMode.CONSERVATIVE:
        return apply_conservative_adjustment(params)
    return params


def validate_regime_params(params: RegimeParamsMap) -> List[ValidationIssue]:
    """Sanity checks on calibrated parameters.

    Errors (negative bull mean, bull not above bear, extreme bull volatility)
    mean the calibration should not be used. Warnings are reported only.
    """
    issues: List[ValidationIssue] = []

    if params.bull.mean < 0:
        issues.append(ValidationIssue(
            "negative_bull_mean",
            f"Bull mean is negative ({params.bull.mean:.1%})",
            "error",
        ))
    if params.bull.mean <= params.bear.mean:
        issues.append(ValidationIssue(
            "inverted_hierarchy",
            f"Bull mean ({params.bull.mean:.1%}) <= bear mean ({params.bear.mean:.1%})",
            "error",
        ))
    if params.bear.mean <= params.crash.mean:
        issues.append(ValidationIssue(
            "inverted_hierarchy",
            f"Bear mean ({params.bear.mean:.1%}) <= crash mean ({params.crash.mean:.1%})",
            "warning",
        ))
    if params.bull.stddev > MAX_REASONABLE_STDDEV:
        issues.append(ValidationIssue(
            "extreme_volatility",
            f"Bull stddev is extreme ({params.bull.stddev:.1%} > {MAX_REASONABLE_STDDEV:.0%})",
            "error",
        ))
    if params.bear.stddev > MAX_REASONABLE_STDDEV:
        issues.append(ValidationIssue(
            "extreme_volatility",
            f"Bear stddev is extreme ({params.bear.stddev:.1%} > {MAX_REASONABLE_STDDEV:.0%})",
            "warning",
        ))
    spread = params.bull.mean - params.bear.mean
    if spread < MIN_BULL_BEAR_SPREAD:
        issues.append(ValidationIssue(
            "insufficient_spread",
            f"Bull/bear spread is only {spread:.1%}",
            "warning",
        ))
    return issues


def calibrate_asset(asset_id: str,
                    returns: Sequence[float],
                    mode: CalibrationMode = CalibrationMode.HISTORICAL) -> CalibrationResult:
    """Calibrate one asset, falling back to defaults instead of failing.

    Validation runs on the historical estimate so that the conservative
    adjustment, which can legitimately push the bull mean below zero, does
    not by itself trigger a fallback.
    """
    mode = CalibrationMode(mode)

    def _for_mode(params: RegimeParamsMap) -> RegimeParamsMap:
        if mode is CalibrationMode.CONSERVATIVE:
            return apply_conservative_adjustment(params)
        return params

    if len(returns) < MIN_CALIBRATION_OBSERVATIONS:
        message = (f"{len(returns)} observations (< {MIN_CALIBRATION_OBSERVATIONS}); "
                   f"using default regime parameters")
        logger.warning("Regime calibration for %s: %s", asset_id, message)
        return CalibrationResult(
            params=_for_mode(DEFAULT_REGIME_PARAMS),
            source=ParamsSource.DEFAULT,
            issues=(ValidationIssue("insufficient_data", message, "error"),),
        )

    historical = estimate_regime_params(classify_regimes(returns))
    issues = tuple(validate_regime_params(historical))

    if any(issue.severity == "error" for issue in issues):
        logger.warning(
            "Regime calibration for %s is degenerate, using defaults: %s",
            asset_id, "; ".join(i.message for i in issues),
        )
        return CalibrationResult(
            params=_for_mode(DEFAULT_REGIME_PARAMS),
            source=ParamsSource.DEFAULT,
            issues=issues,
        )

    if issues:
        logger.warning(
            "Regime calibration for %s: %s",
            asset_id, "; ".join(i.message for i in issues),
        )
    return CalibrationResult(params=_for_mode(historical),
                             source=ParamsSource.CALIBRATED,
                             issues=issues)


def calculate_portfolio_regime_params(asset_params: Sequence[RegimeParamsMap],
                                      weights: Sequence[float],
                                      correlation_matrix) -> RegimeParamsMap:
    """Combine per-asset regime parameters into portfolio parameters.

    For each regime the mean is the weighted sum of asset means and the
    variance is ``sum_i sum_j w_i w_j s_i s_j rho_ij``.

    Args:
        asset_params: Regime parameters per asset
        weights: Portfolio weights in the same order
        correlation_matrix: NxN asset correlation matrix
    """
    w = np.asarray(weights, dtype=float)
    corr = np.asarray(correlation_matrix, dtype=float)
    if corr.shape != (len(w), len(w)):
        raise ValueError(
            f"Correlation matrix shape {corr.shape} doesn't match {len(w)} weights"
        )

    result = {}
    for regime in REGIMES:
        means = np.array([p[regime].mean for p in asset_params])
        stddevs = np.array([p[regime].stddev for p in asset_params])
        mean = float(w @ means)
        # Var = (w*s)^T * Corr * (w*s)
        scaled = w * stddevs
        variance = float(scaled @ corr @ scaled)
        result[regime.value] = RegimeParams(mean, math.sqrt(max(variance, 0.0)))
    return RegimeParamsMap(**result)
