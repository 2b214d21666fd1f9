# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Bootstrap resampling of historical returns.

Provides the return paths for the ``simple`` and ``block`` resampling
methods:
- Simple bootstrap: IID draws with replacement
- Block bootstrap: contiguous overlapping blocks, preserving short-range
  serial correlation

The correlated variants draw a single index sequence and apply it to every
asset, so each simulated year uses the same historical year for all assets
and the cross-asset correlation in the data carries over.

Every function takes the random generator explicitly; nothing here touches
global random state.
"""

import math
from typing import Optional, Sequence

import numpy as np

from ..errors import EmptyInputError

MIN_BLOCK_LENGTH = 3
MIN_OBSERVATIONS_FOR_AUTOCORRELATION = 12


def _as_array(returns: Sequence[float]) -> np.ndarray:
    arr = np.asarray(returns, dtype=float)
    if arr.size == 0:
        raise EmptyInputError("Cannot bootstrap from an empty return series")
    return arr


def simple_bootstrap(returns: Sequence[float],
                     target_length: int,
                     rng: np.random.Generator) -> np.ndarray:
    """Draw ``target_length`` returns uniformly with replacement.

    Args:
        returns: Historical return series
        target_length: Number of returns to generate
        rng: Random generator

    Returns:
        Array of resampled returns

    Raises:
        EmptyInputError: If ``returns`` is empty
    """
    arr = _as_array(returns)
    indices = rng.integers(0, arr.size, size=target_length)
    return arr[indices]


def lag_one_autocorrelation(returns: Sequence[float]) -> float:
    """First-order autocorrelation, or 0.0 for a constant series."""
    arr = np.asarray(returns, dtype=float)
    if arr.size < 2:
        return 0.0
    if np.ptp(arr) == 0:
        return 0.0
    mean = arr.mean()
    centered = arr - mean
    denominator = float(np.dot(centered, centered))
    # rounding in the mean leaves residue for near-constant series
    if not math.isfinite(denominator) or denominator <= 1e-12 * arr.size * max(1.0, mean * mean):
        return 0.0
    rho = float(np.dot(centered[:-1], centered[1:])) / denominator
    return rho if math.isfinite(rho) else 0.0


def optimal_block_length(returns: Sequence[float]) -> int:
    """Automatic block length for the moving-block bootstrap.

    Uses the first-order autocorrelation rho of the series:
    ``g = 2|rho| / (1 - rho^2)`` and ``ceil((1.5 n)^(1/3) * g^(1/3))``,
    clamped to ``[3, n // 4]``.

    Series shorter than 12 observations return ``max(3, n // 2)`` since the
    autocorrelation estimate is unreliable; a perfectly correlated series
    returns ``n // 4``.
    """
    n = len(returns)
    if n < MIN_OBSERVATIONS_FOR_AUTOCORRELATION:
        return max(MIN_BLOCK_LENGTH, n // 2)

    rho = lag_one_autocorrelation(returns)
    max_block = n // 4
    if rho * rho >= 1:
        return max_block

    g = 2 * abs(rho) / (1 - rho * rho)
    block_length = math.ceil((1.5 * n) ** (1 / 3) * g ** (1 / 3))
    return int(min(max(block_length, MIN_BLOCK_LENGTH), max_block))


def _resolve_block_length(n: int, block_length: Optional[int], returns) -> int:
    if block_length is None:
        block_length = optimal_block_length(returns)
    return max(1, min(int(block_length), n))


def _block_indices(n: int,
                   target_length: int,
                   block_length: int,
                   rng: np.random.Generator) -> np.ndarray:
    indices = np.empty(target_length, dtype=np.int64)
    filled = 0
    while filled < target_length:
        start = int(rng.integers(0, n - block_length + 1))
        take = min(block_length, target_length - filled)
        indices[filled:filled + take] = np.arange(start, start + take)
        filled += take
    return indices


def block_bootstrap(returns: Sequence[float],
                    target_length: int,
                    rng: np.random.Generator,
                    block_length: Optional[int] = None) -> np.ndarray:
    """Moving-block bootstrap.

    Repeatedly picks a uniformly random start in ``[0, n - block_length]``
    and appends that contiguous block, truncating the last block so the
    output has exactly ``target_length`` values.

    Args:
        returns: Historical return series
        target_length: Number of returns to generate
        rng: Random generator
        block_length: Block length. Clamped to the series length. Chosen by
            ``optimal_block_length`` when omitted.

    Raises:
        EmptyInputError: If ``returns`` is empty
    """
    arr = _as_array(returns)
    block = _resolve_block_length(arr.size, block_length, arr)
    return arr[_block_indices(arr.size, target_length, block, rng)]


def align_series(series: Sequence[Sequence[float]]) -> np.ndarray:
    """Stack return series on their most recent common window.

    Returns:
        Array of shape (num_assets, common_length)

    Raises:
        EmptyInputError: If any series is empty
    """
    arrays = [_as_array(s) for s in series]
    common = min(a.size for a in arrays)
    return np.vstack([a[a.size - common:] for a in arrays])


def correlated_bootstrap(series: Sequence[Sequence[float]],
                         target_length: int,
                         rng: np.random.Generator) -> np.ndarray:
    """Simple bootstrap applying one shared index draw to every asset.

    Returns:
        Array of shape (num_assets, target_length)
    """
    aligned = align_series(series)
    indices = rng.integers(0, aligned.shape[1], size=target_length)
    return aligned[:, indices]


def correlated_block_bootstrap(series: Sequence[Sequence[float]],
                               target_length: int,
                               rng: np.random.Generator,
                               block_length: Optional[int] = None) -> np.ndarray:
    """Block bootstrap applying the same blocks to every asset.

    When no block length is given, the automatic length is computed on the
    equal-weighted average of the aligned series.

    Returns:
        Array of shape (num_assets, target_length)
    """
    aligned = align_series(series)
    n = aligned.shape[1]
    block = _resolve_block_length(n, block_length, aligned.mean(axis=0))
    return aligned[:, _block_indices(n, target_length, block, rng)]
