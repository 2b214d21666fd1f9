# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""Configuration for Monte Carlo simulations."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..errors import ConfigurationError
from ..sbloc.config import SBLOCConfig
from .regime_calibration import CalibrationMode, Regime
from .regime_switching import TransitionMatrix

MIN_ITERATIONS = 1_000
MAX_ITERATIONS = 100_000
MIN_TIME_HORIZON = 10
MAX_TIME_HORIZON = 50
MIN_ASSETS = 2
MAX_ASSETS = 5
WEIGHT_TOLERANCE = 0.001
DEFAULT_BATCH_SIZE = 1_000


class ResamplingMethod(str, Enum):
    SIMPLE = "simple"
    BLOCK = "block"
    REGIME = "regime"


class SuccessBasis(str, Enum):
    """Whether success compares nominal or inflation-adjusted terminal values."""
    NOMINAL = "nominal"
    REAL = "real"


def _enum_value(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(repr(m.value) for m in enum_cls)
        raise ConfigurationError(
            f"{field_name} must be one of {allowed}, got {value!r}"
        ) from None


def _is_int(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


@dataclass
class SimulationConfig:
    """Configuration for a Monte Carlo run.

    Attributes:
        iterations: Number of Monte Carlo iterations (1,000 - 100,000)
        time_horizon: Years simulated per iteration (10 - 50)
        initial_value: Portfolio value at year 0
        resampling_method: ``simple``, ``block`` or ``regime``
        regime_calibration: ``historical`` or ``conservative``, used by the
            regime method
        inflation_adjusted: Report values in real (today's) terms
        inflation_rate: Annual inflation used for the adjustment
        seed: Seed for the run's random generator. A seed is drawn and
            reported on the output when None.
        block_size: Block length for the block bootstrap, chosen
            automatically when None
        batch_size: Iterations between progress reports and cancellation
            checks
        success_basis: ``nominal`` or ``real`` comparison of terminal value
            against initial value
        initial_regime: Starting regime for the regime method
        transition_matrix: Regime transition matrix, default when None
        sbloc: Line of credit drawn against the portfolio, if any
    """
    iterations: int = 10_000
    time_horizon: int = 30
    initial_value: float = 1_000_000.0
    resampling_method: ResamplingMethod = ResamplingMethod.SIMPLE
    regime_calibration: CalibrationMode = CalibrationMode.HISTORICAL
    inflation_adjusted: bool = False
    inflation_rate: float = 0.03
    seed: Optional[int] = None
    block_size: Optional[int] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    success_basis: SuccessBasis = SuccessBasis.NOMINAL
    initial_regime: Regime = Regime.BULL
    transition_matrix: Optional[TransitionMatrix] = None
    sbloc: Optional[SBLOCConfig] = None

    def __post_init__(self):
        if not _is_int(self.iterations) or not MIN_ITERATIONS <= self.iterations <= MAX_ITERATIONS:
            raise ConfigurationError(
                f"iterations must be an integer between {MIN_ITERATIONS:,} and "
                f"{MAX_ITERATIONS:,}, got {self.iterations!r}"
            )
        if not _is_int(self.time_horizon) or not MIN_TIME_HORIZON <= self.time_horizon <= MAX_TIME_HORIZON:
            raise ConfigurationError(
                f"time_horizon must be an integer between {MIN_TIME_HORIZON} and "
                f"{MAX_TIME_HORIZON} years, got {self.time_horizon!r}"
            )
        if not math.isfinite(self.initial_value) or self.initial_value <= 0:
            raise ConfigurationError(
                f"initial_value must be a positive amount, got {self.initial_value!r}"
            )
        self.resampling_method = _enum_value(
            ResamplingMethod, self.resampling_method, "resampling_method"
        )
        self.regime_calibration = _enum_value(
            CalibrationMode, self.regime_calibration, "regime_calibration"
        )
        self.success_basis = _enum_value(SuccessBasis, self.success_basis, "success_basis")
        self.initial_regime = _enum_value(Regime, self.initial_regime, "initial_regime")
        if not math.isfinite(self.inflation_rate) or self.inflation_rate <= -1:
            raise ConfigurationError(
                f"inflation_rate must be greater than -1, got {self.inflation_rate!r}"
            )
        if self.seed is not None and (not _is_int(self.seed) or self.seed < 0):
            raise ConfigurationError(f"seed must be a non-negative integer, got {self.seed!r}")
        if self.block_size is not None and (not _is_int(self.block_size) or self.block_size < 1):
            raise ConfigurationError(
                f"block_size must be a positive integer, got {self.block_size!r}"
            )
        if not _is_int(self.batch_size) or self.batch_size < 1:
            raise ConfigurationError(
                f"batch_size must be a positive integer, got {self.batch_size!r}"
            )
        if self.transition_matrix is not None and not isinstance(self.transition_matrix,
                                                                 TransitionMatrix):
            raise ConfigurationError("transition_matrix must be a TransitionMatrix")
        if self.sbloc is not None and not isinstance(self.sbloc, SBLOCConfig):
            raise ConfigurationError("sbloc must be an SBLOCConfig")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationConfig':
        """Build a config from a JSON-style dict.

        ``sbloc`` and ``transition_matrix`` may be given as nested dicts.
        """
        data = dict(data)
        sbloc = data.pop("sbloc", None)
        matrix = data.pop("transition_matrix", None)
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown simulation settings: {', '.join(unknown)}")
        try:
            if isinstance(matrix, dict):
                matrix = TransitionMatrix.from_dict(matrix)
            elif matrix is not None:
                matrix = TransitionMatrix(matrix)
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Invalid transition_matrix: {e}") from e
        return cls(
            **data,
            transition_matrix=matrix,
            sbloc=SBLOCConfig.from_dict(sbloc) if isinstance(sbloc, dict) else sbloc,
        )


@dataclass(frozen=True)
class AssetConfig:
    """A portfolio holding and its return history.

    Attributes:
        asset_id: Stable identifier for the asset
        weight: Portfolio weight (0 - 1)
        historical_returns: Annual returns ordered by period. Stored as a
            tuple so the series cannot change once loaded.
    """
    asset_id: str
    weight: float
    historical_returns: Tuple[float, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(
            self, "historical_returns", tuple(float(r) for r in self.historical_returns)
        )
        if not self.asset_id:
            raise ConfigurationError("Every asset needs a non-empty asset_id")
        if not 0 <= self.weight <= 1:
            raise ConfigurationError(
                f"Weight for asset '{self.asset_id}' must be between 0 and 1, got {self.weight}"
            )
        if not self.historical_returns:
            raise ConfigurationError(
                f"Asset '{self.asset_id}' has an empty historical return series"
            )
        if not all(math.isfinite(r) for r in self.historical_returns):
            raise ConfigurationError(
                f"Asset '{self.asset_id}' has non-finite values in its historical returns"
            )


@dataclass(frozen=True)
class PortfolioConfig:
    """Ordered assets of the portfolio plus an optional correlation matrix.

    When no correlation matrix is supplied it is estimated from the
    historical series.
    """
    assets: Tuple[AssetConfig, ...]
    correlation_matrix: Optional[Tuple[Tuple[float, ...], ...]] = None

    def __post_init__(self):
        object.__setattr__(self, "assets", tuple(self.assets))
        n = len(self.assets)
        if not MIN_ASSETS <= n <= MAX_ASSETS:
            raise ConfigurationError(
                f"A portfolio needs between {MIN_ASSETS} and {MAX_ASSETS} assets, got {n}"
            )
        ids = [a.asset_id for a in self.assets]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate asset ids: {', '.join(duplicates)}")
        total = sum(a.weight for a in self.assets)
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ConfigurationError(f"Portfolio weights must sum to 1.0, got {total:.4f}")

        if self.correlation_matrix is not None:
            corr = np.asarray(self.correlation_matrix, dtype=float)
            if corr.shape != (n, n):
                raise ConfigurationError(
                    f"Correlation matrix shape {corr.shape} doesn't match {n} assets"
                )
            if not np.all(np.isfinite(corr)) or np.any(np.abs(corr) > 1):
                raise ConfigurationError("Correlation matrix entries must be finite and in [-1, 1]")
            if not np.allclose(corr, corr.T):
                raise ConfigurationError("Correlation matrix must be symmetric")
            if not np.allclose(np.diag(corr), 1.0):
                raise ConfigurationError("Correlation matrix diagonal must be 1.0")
            object.__setattr__(
                self, "correlation_matrix", tuple(tuple(float(v) for v in row) for row in corr)
            )

    @property
    def asset_ids(self) -> Tuple[str, ...]:
        return tuple(a.asset_id for a in self.assets)

    @property
    def weights(self) -> np.ndarray:
        return np.array([a.weight for a in self.assets])

    @property
    def historical_returns(self) -> Tuple[Tuple[float, ...], ...]:
        return tuple(a.historical_returns for a in self.assets)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PortfolioConfig':
        """Build a portfolio from ``{"assets": [...], "correlation_matrix": ...}``."""
        raw_assets = data.get("assets")
        if not isinstance(raw_assets, list):
            raise ConfigurationError("portfolio.assets must be a list")
        assets = []
        for raw in raw_assets:
            if not isinstance(raw, dict):
                raise ConfigurationError("Each asset must be an object")
            try:
                assets.append(AssetConfig(
                    asset_id=str(raw.get("asset_id") or raw.get("id") or ""),
                    weight=float(raw.get("weight", 0.0)),
                    historical_returns=tuple(raw.get("historical_returns") or ()),
                ))
            except (TypeError, ValueError) as e:
                if isinstance(e, ConfigurationError):
                    raise
                raise ConfigurationError(f"Invalid asset definition: {e}") from e
        return cls(assets=tuple(assets), correlation_matrix=data.get("correlation_matrix"))
