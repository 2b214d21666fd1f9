# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Monte Carlo simulation module for SBLOC planning.

This module provides Monte Carlo simulation of a multi-asset portfolio, and
the line of credit drawn against it, using bootstrap resampling of historical
returns or a calibrated bull/bear/crash regime-switching model.
"""

from .config import (
    AssetConfig,
    PortfolioConfig,
    ResamplingMethod,
    SimulationConfig,
    SuccessBasis,
)
from .bootstrap import (
    block_bootstrap,
    correlated_block_bootstrap,
    correlated_bootstrap,
    optimal_block_length,
    simple_bootstrap,
)
from .regime_calibration import (
    CalibrationMode,
    CalibrationResult,
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
from .regime_switching import (
    DEFAULT_TRANSITION_MATRIX,
    TransitionMatrix,
    generate_correlated_regime_returns,
    generate_regime_returns,
    next_regime,
)
from .correlation import cholesky_or_identity, estimate_correlation_matrix
from .results import (
    LoanSummary,
    MarginCallStats,
    SimulationOutput,
    SimulationStatistics,
    SimulationStatus,
    YearlyEventStats,
    YearlyPercentiles,
)
from .simulator import MonteCarloSimulator
from .worker import SimulationWorker

__all__ = [
    'AssetConfig',
    'PortfolioConfig',
    'ResamplingMethod',
    'SimulationConfig',
    'SuccessBasis',
    'block_bootstrap',
    'correlated_block_bootstrap',
    'correlated_bootstrap',
    'optimal_block_length',
    'simple_bootstrap',
    'CalibrationMode',
    'CalibrationResult',
    'ParamsSource',
    'Regime',
    'RegimeParams',
    'RegimeParamsMap',
    'calibrate_asset',
    'calibrate_regime_model',
    'calculate_portfolio_regime_params',
    'classify_regimes',
    'estimate_regime_params',
    'validate_regime_params',
    'DEFAULT_TRANSITION_MATRIX',
    'TransitionMatrix',
    'generate_correlated_regime_returns',
    'generate_regime_returns',
    'next_regime',
    'cholesky_or_identity',
    'estimate_correlation_matrix',
    'LoanSummary',
    'MarginCallStats',
    'SimulationOutput',
    'SimulationStatistics',
    'SimulationStatus',
    'YearlyEventStats',
    'YearlyPercentiles',
    'MonteCarloSimulator',
    'SimulationWorker',
]
