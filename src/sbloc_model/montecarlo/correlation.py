# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Correlation helpers for multi-asset return generation.

Estimates asset correlations from historical series and prepares the
Cholesky factor used to draw correlated normal samples. A matrix that is not
positive definite is replaced by the identity (uncorrelated assets) rather
than failing the run.
"""

import logging
from typing import Sequence, Tuple

import numpy as np
import pandas as pd

from .bootstrap import align_series

logger = logging.getLogger(__name__)


def estimate_correlation_matrix(series: Sequence[Sequence[float]]) -> np.ndarray:
    """Pearson correlation of the assets over their common recent window.

    Pairs that cannot be estimated (constant series, fewer than two common
    observations) are treated as uncorrelated.
    """
    aligned = align_series(series)
    n = aligned.shape[0]
    if aligned.shape[1] < 2:
        return np.eye(n)

    corr = pd.DataFrame(aligned.T).corr().to_numpy()
    corr = np.nan_to_num(corr, nan=0.0)
    corr = np.clip(corr, -1.0, 1.0)
    np.fill_diagonal(corr, 1.0)
    return corr


def cholesky_or_identity(correlation_matrix) -> Tuple[np.ndarray, bool]:
    """Lower Cholesky factor L with L @ L.T == correlation_matrix.

    Returns:
        Tuple of (factor, used_fallback). When the matrix is not positive
        definite or contains non-finite entries the factor is the identity
        and ``used_fallback`` is True.
    """
    matrix = np.asarray(correlation_matrix, dtype=float)
    n = matrix.shape[0]
    if not np.all(np.isfinite(matrix)):
        logger.warning("Correlation matrix has non-finite entries; assuming uncorrelated assets")
        return np.eye(n), True
    try:
        return np.linalg.cholesky(matrix), False
    except np.linalg.LinAlgError:
        logger.warning("Correlation matrix is not positive definite; assuming uncorrelated assets")
        return np.eye(n), True


def correlated_normal_samples(cholesky_factor: np.ndarray,
                              means: np.ndarray,
                              stddevs: np.ndarray,
                              rng: np.random.Generator) -> np.ndarray:
    """One correlated draw per asset: R_i = mu_i + sigma_i * (L @ z)_i."""
    uncorrelated_z = rng.standard_normal(cholesky_factor.shape[0])
    correlated_z = cholesky_factor @ uncorrelated_z
    return means + stddevs * correlated_z
