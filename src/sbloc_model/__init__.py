# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Monte Carlo engine for securities-backed line of credit (SBLOC) planning.

Simulates a portfolio and the loan drawn against it over many market paths
and reports terminal value distributions, percentile bands, success rates
and the margin-call, forced-liquidation and failure risk of the loan.
"""

from .errors import ConfigurationError, EmptyInputError, InsufficientDataError, SimulationError
from .montecarlo import (
    AssetConfig,
    MonteCarloSimulator,
    PortfolioConfig,
    SimulationConfig,
    SimulationOutput,
    SimulationWorker,
)
from .sbloc import SBLOCConfig

__version__ = "0.1.0"

__all__ = [
    'ConfigurationError',
    'EmptyInputError',
    'InsufficientDataError',
    'SimulationError',
    'AssetConfig',
    'MonteCarloSimulator',
    'PortfolioConfig',
    'SimulationConfig',
    'SimulationOutput',
    'SimulationWorker',
    'SBLOCConfig',
]
