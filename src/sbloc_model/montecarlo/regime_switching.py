# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Regime-switching return generation.

Markets move between bull, bear and crash regimes according to a Markov
transition matrix; each year's return is drawn from the current regime's
normal distribution. For multi-asset portfolios one regime path is shared by
all assets and the per-asset draws are correlated through a Cholesky factor.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from .correlation import cholesky_or_identity, correlated_normal_samples
from .regime_calibration import DEFAULT_REGIME_PARAMS, REGIMES, Regime, RegimeParamsMap

ROW_SUM_TOLERANCE = 1e-9


class TransitionMatrix:
    """Row-stochastic 3x3 matrix of regime transition probabilities.

    Rows and columns are ordered bull, bear, crash. Diagonal entries are
    ordinary probabilities of staying in the same regime.

    Example:
        >>> matrix = TransitionMatrix([[0.97, 0.025, 0.005],
        ...                            [0.03, 0.95, 0.02],
        ...                            [0.10, 0.30, 0.60]])
        >>> matrix.row(Regime.CRASH)
        array([0.1, 0.3, 0.6])
    """

    def __init__(self, probabilities):
        matrix = np.array(probabilities, dtype=float)
        if matrix.shape != (3, 3):
            raise ValueError(f"Transition matrix must be 3x3, got shape {matrix.shape}")
        if not np.all(np.isfinite(matrix)) or np.any(matrix < 0):
            raise ValueError("Transition probabilities must be finite and non-negative")
        row_sums = matrix.sum(axis=1)
        if not np.all(np.abs(row_sums - 1.0) <= ROW_SUM_TOLERANCE):
            raise ValueError(f"Transition matrix rows must sum to 1, got {row_sums.tolist()}")
        matrix.setflags(write=False)
        self._matrix = matrix

    @property
    def probabilities(self) -> np.ndarray:
        return self._matrix

    def row(self, regime) -> np.ndarray:
        return self._matrix[REGIMES.index(Regime(regime))]

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            src.value: {dst.value: float(p) for dst, p in zip(REGIMES, self.row(src))}
            for src in REGIMES
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, float]]) -> 'TransitionMatrix':
        return cls([[data[src.value][dst.value] for dst in REGIMES] for src in REGIMES])

    def __eq__(self, other) -> bool:
        return isinstance(other, TransitionMatrix) and np.array_equal(self._matrix, other._matrix)

    def __repr__(self) -> str:
        return f"TransitionMatrix({self._matrix.tolist()})"


# Bull markets persist, bear markets persist less, crashes are short-lived.
DEFAULT_TRANSITION_MATRIX = TransitionMatrix([
    [0.97, 0.025, 0.005],  # from bull
    [0.03, 0.95, 0.02],    # from bear
    [0.10, 0.30, 0.60],    # from crash
])


@dataclass(frozen=True)
class RegimeReturns:
    """Single-asset regime path and its returns."""
    returns: np.ndarray
    regimes: List[Regime]


@dataclass(frozen=True)
class CorrelatedRegimeReturns:
    """Multi-asset returns, shape (num_assets, years), on one shared regime path."""
    returns: np.ndarray
    regimes: List[Regime]


def next_regime(current, matrix: TransitionMatrix, rng) -> Regime:
    """Markov transition from ``current`` using one uniform draw.

    Walks the current regime's row cumulatively: below the bull probability
    selects bull, below bull + bear selects bear, anything else crash.
    """
    probs = matrix.row(current)
    r = rng.random()
    if r < probs[0]:
        return Regime.BULL
    if r < probs[0] + probs[1]:
        return Regime.BEAR
    return Regime.CRASH


def generate_regime_path(years: int,
                         rng,
                         initial_regime=Regime.BULL,
                         matrix: Optional[TransitionMatrix] = None) -> List[Regime]:
    """Regime for each year, starting in ``initial_regime``."""
    matrix = matrix or DEFAULT_TRANSITION_MATRIX
    regimes = []
    current = Regime(initial_regime)
    for _ in range(years):
        regimes.append(current)
        current = next_regime(current, matrix, rng)
    return regimes


def generate_regime_returns(years: int,
                            rng: np.random.Generator,
                            initial_regime=Regime.BULL,
                            matrix: Optional[TransitionMatrix] = None,
                            params: Optional[RegimeParamsMap] = None) -> RegimeReturns:
    """Single-asset regime-switching returns.

    Each year records the current regime, draws that regime's normal return,
    then transitions.
    """
    matrix = matrix or DEFAULT_TRANSITION_MATRIX
    params = params or DEFAULT_REGIME_PARAMS

    returns = np.empty(years)
    regimes = []
    current = Regime(initial_regime)
    for year in range(years):
        regimes.append(current)
        regime_params = params[current]
        returns[year] = rng.normal(regime_params.mean, regime_params.stddev)
        current = next_regime(current, matrix, rng)

    return RegimeReturns(returns=returns, regimes=regimes)


def generate_correlated_regime_returns(years: int,
                                       num_assets: int,
                                       correlation_matrix,
                                       rng: np.random.Generator,
                                       asset_regime_params: Sequence[RegimeParamsMap],
                                       initial_regime=Regime.BULL,
                                       matrix: Optional[TransitionMatrix] = None,
                                       cholesky_factor: Optional[np.ndarray] = None
                                       ) -> CorrelatedRegimeReturns:
    """Multi-asset regime-switching returns on one shared regime path.

    The full regime path is drawn first, then each year draws one correlated
    sample per asset using that asset's own parameters for the year's regime.

    Args:
        years: Number of years to generate
        num_assets: Number of assets
        correlation_matrix: NxN asset correlation matrix
        rng: Random generator
        asset_regime_params: Regime parameters per asset
        initial_regime: Regime of the first year
        matrix: Transition matrix, default when None
        cholesky_factor: Precomputed factor of ``correlation_matrix``; saves
            refactoring the same matrix on every iteration

    Returns:
        CorrelatedRegimeReturns with returns of shape (num_assets, years)
    """
    if len(asset_regime_params) != num_assets:
        raise ValueError(
            f"Expected regime parameters for {num_assets} assets, got {len(asset_regime_params)}"
        )
    if cholesky_factor is None:
        cholesky_factor, _ = cholesky_or_identity(correlation_matrix)

    regimes = generate_regime_path(years, rng, initial_regime, matrix)

    per_regime = {
        regime: (
            np.array([p[regime].mean for p in asset_regime_params]),
            np.array([p[regime].stddev for p in asset_regime_params]),
        )
        for regime in REGIMES
    }

    returns = np.empty((num_assets, years))
    for year, regime in enumerate(regimes):
        means, stddevs = per_regime[regime]
        returns[:, year] = correlated_normal_samples(cholesky_factor, means, stddevs, rng)

    return CorrelatedRegimeReturns(returns=returns, regimes=regimes)
