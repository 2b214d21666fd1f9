# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Monte Carlo simulation results aggregation.

This module provides the SimulationOutput container returned by a run, along
with the helpers that reduce the per-iteration value matrix into percentile
bands, summary statistics, margin-call and portfolio-failure statistics.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..sbloc.engine import LiquidationEvent, MarginCallEvent
from .regime_calibration import CalibrationResult, RegimeParamsMap

# Percentile levels reported for every year
PERCENTILES = {
    "P10": 10,
    "P25": 25,
    "P50": 50,
    "P75": 75,
    "P90": 90,
}


class SimulationStatus(str, Enum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class YearlyPercentiles:
    """Percentile band across all iterations for one year."""
    year: int
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "year": self.year,
            "p10": self.p10,
            "p25": self.p25,
            "p50": self.p50,
            "p75": self.p75,
            "p90": self.p90,
        }


@dataclass(frozen=True)
class SimulationStatistics:
    """Summary of terminal values.

    Attributes:
        mean: Mean terminal value
        median: Median terminal value
        stddev: Population standard deviation of terminal values
        success_rate: Fraction (0.0 - 1.0) of iterations whose terminal value
            exceeds the initial value
    """
    mean: float
    median: float
    stddev: float
    success_rate: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "mean": self.mean,
            "median": self.median,
            "stddev": self.stddev,
            "success_rate": self.success_rate,
        }


@dataclass(frozen=True)
class YearlyEventStats:
    """Likelihood of a first event (margin call, portfolio failure) in one year.

    Attributes:
        year: 1-indexed simulation year
        probability: Fraction of iterations whose first event is in this year
        cumulative_probability: Fraction of iterations with the event in
            this year or earlier
    """
    year: int
    probability: float
    cumulative_probability: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "year": self.year,
            "probability": self.probability,
            "cumulative_probability": self.cumulative_probability,
        }


MarginCallStats = YearlyEventStats


@dataclass(frozen=True)
class LoanSummary:
    """Cost and failure summary of the loan across iterations.

    Interest and haircut amounts are nominal totals per iteration.

    Attributes:
        median_total_interest: Median interest charged over the horizon
        mean_total_interest: Mean interest charged over the horizon
        median_haircut_loss: Median value lost to forced-sale haircuts
        mean_haircut_loss: Mean value lost to forced-sale haircuts
        liquidation_rate: Fraction of iterations with a forced sale
        portfolio_failure_rate: Fraction of iterations whose net worth
            reached zero or below
        median_first_failure_year: Median first failure year among failed
            iterations, None when none failed
    """
    median_total_interest: float
    mean_total_interest: float
    median_haircut_loss: float
    mean_haircut_loss: float
    liquidation_rate: float
    portfolio_failure_rate: float
    median_first_failure_year: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "median_total_interest": self.median_total_interest,
            "mean_total_interest": self.mean_total_interest,
            "median_haircut_loss": self.median_haircut_loss,
            "mean_haircut_loss": self.mean_haircut_loss,
            "liquidation_rate": self.liquidation_rate,
            "portfolio_failure_rate": self.portfolio_failure_rate,
            "median_first_failure_year": self.median_first_failure_year,
        }


EMPTY_STATISTICS = SimulationStatistics(mean=0.0, median=0.0, stddev=0.0, success_rate=0.0)


def compute_yearly_percentiles(values: np.ndarray) -> Tuple[YearlyPercentiles, ...]:
    """Percentile bands per year from a (iterations, years) value matrix.

    Uses linear interpolation between order statistics, so the bands are
    ordered ``p10 <= p25 <= p50 <= p75 <= p90`` at every year.
    """
    if values.shape[0] == 0:
        return ()
    bands = np.percentile(values, list(PERCENTILES.values()), axis=0)
    return tuple(
        YearlyPercentiles(year, *(float(v) for v in bands[:, year]))
        for year in range(values.shape[1])
    )


def compute_statistics(terminal_values: np.ndarray,
                       success_values: np.ndarray,
                       initial_value: float) -> SimulationStatistics:
    """Summary statistics of the terminal values.

    Args:
        terminal_values: Reported terminal values, one per iteration
        success_values: Terminal values on the configured success basis
        initial_value: Value that must be exceeded for an iteration to count
            as a success
    """
    if terminal_values.size == 0:
        return EMPTY_STATISTICS
    return SimulationStatistics(
        mean=float(np.mean(terminal_values)),
        median=float(np.median(terminal_values)),
        stddev=float(np.std(terminal_values)),
        success_rate=float(np.count_nonzero(success_values > initial_value) / success_values.size),
    )


def compute_first_event_stats(first_event_years: np.ndarray,
                              time_horizon: int) -> Tuple[YearlyEventStats, ...]:
    """Per-year statistics of when an event first happens.

    Args:
        first_event_years: Year of the first event per iteration, 0 when the
            iteration never had one
        time_horizon: Number of simulated years
    """
    total = first_event_years.size
    if total == 0:
        return ()
    counts = np.bincount(first_event_years, minlength=time_horizon + 1)[1:time_horizon + 1]
    cumulative = np.cumsum(counts)
    return tuple(
        YearlyEventStats(
            year=year + 1,
            probability=float(counts[year] / total),
            cumulative_probability=float(cumulative[year] / total),
        )
        for year in range(time_horizon)
    )


def compute_margin_call_stats(first_call_years: np.ndarray,
                              time_horizon: int) -> Tuple[MarginCallStats, ...]:
    return compute_first_event_stats(first_call_years, time_horizon)


def compute_loan_summary(total_interest: np.ndarray,
                         haircut_loss: np.ndarray,
                         liquidated: np.ndarray,
                         first_failure_years: np.ndarray) -> Optional[LoanSummary]:
    """Loan summary from per-iteration totals; None when nothing completed."""
    if total_interest.size == 0:
        return None
    failed = first_failure_years[first_failure_years > 0]
    return LoanSummary(
        median_total_interest=float(np.median(total_interest)),
        mean_total_interest=float(np.mean(total_interest)),
        median_haircut_loss=float(np.median(haircut_loss)),
        mean_haircut_loss=float(np.mean(haircut_loss)),
        liquidation_rate=float(np.count_nonzero(liquidated) / liquidated.size),
        portfolio_failure_rate=float(failed.size / first_failure_years.size),
        median_first_failure_year=float(np.median(failed)) if failed.size else None,
    )


def discount_for_inflation(values: np.ndarray, inflation_rate: float) -> np.ndarray:
    """Convert a (iterations, years) matrix of nominal values to today's dollars."""
    factors = (1 + inflation_rate) ** np.arange(values.shape[1])
    return values / factors


@dataclass(frozen=True, eq=False)
class SimulationOutput:
    """Immutable result of a Monte Carlo run.

    When a loan is configured, values are net worth (portfolio minus loan);
    otherwise they are portfolio values. ``terminal_values`` is a read-only
    array handed over without copying.

    Example:
        >>> output = simulator.run()
        >>> print(f"Success rate: {output.statistics.success_rate:.1%}")
        >>> output.get_percentile_df()
    """
    status: SimulationStatus
    iterations_requested: int
    iterations_completed: int
    time_horizon: int
    initial_value: float
    seed: int
    terminal_values: np.ndarray
    yearly_percentiles: Tuple[YearlyPercentiles, ...]
    statistics: SimulationStatistics
    margin_call_events: Tuple[Tuple[MarginCallEvent, ...], ...] = ()
    margin_call_stats: Tuple[MarginCallStats, ...] = ()
    liquidation_events: Tuple[Tuple[LiquidationEvent, ...], ...] = ()
    failure_stats: Tuple[YearlyEventStats, ...] = ()
    loan_summary: Optional[LoanSummary] = None
    loan_percentiles: Tuple[YearlyPercentiles, ...] = ()
    warning_zone_frequency: Tuple[float, ...] = ()
    calibration: Dict[str, CalibrationResult] = field(default_factory=dict)
    portfolio_regime_params: Optional[RegimeParamsMap] = None
    correlation_fallback: bool = False
    block_length: Optional[int] = None
    inflation_adjusted: bool = False

    @property
    def cancelled(self) -> bool:
        return self.status is SimulationStatus.CANCELLED

    @property
    def margin_call_rate(self) -> float:
        """Fraction of completed iterations with at least one margin call."""
        if self.iterations_completed == 0:
            return 0.0
        hit = sum(1 for events in self.margin_call_events if events)
        return hit / self.iterations_completed

    def get_percentile_df(self, loan: bool = False) -> pd.DataFrame:
        """Percentile bands as a DataFrame with years as index.

        Args:
            loan: Return the loan-balance bands instead of the value bands
        """
        bands = self.loan_percentiles if loan else self.yearly_percentiles
        df = pd.DataFrame(
            [[b.year, b.p10, b.p25, b.p50, b.p75, b.p90] for b in bands],
            columns=['Year', *PERCENTILES],
        )
        df = df.set_index('Year')
        return df

    def to_dict(self, include_terminal_values: bool = False) -> Dict[str, Any]:
        """JSON-serialisable view of the output."""
        data: Dict[str, Any] = {
            "status": self.status.value,
            "iterations_requested": self.iterations_requested,
            "iterations_completed": self.iterations_completed,
            "time_horizon": self.time_horizon,
            "initial_value": self.initial_value,
            "seed": self.seed,
            "inflation_adjusted": self.inflation_adjusted,
            "statistics": self.statistics.to_dict(),
            "yearly_percentiles": [b.to_dict() for b in self.yearly_percentiles],
            "margin_call_rate": self.margin_call_rate,
            "margin_call_stats": [s.to_dict() for s in self.margin_call_stats],
            "failure_stats": [s.to_dict() for s in self.failure_stats],
            "loan_summary": (
                self.loan_summary.to_dict() if self.loan_summary is not None else None
            ),
            "loan_percentiles": [b.to_dict() for b in self.loan_percentiles],
            "warning_zone_frequency": list(self.warning_zone_frequency),
            "calibration": {k: v.to_dict() for k, v in self.calibration.items()},
            "portfolio_regime_params": (
                self.portfolio_regime_params.to_dict()
                if self.portfolio_regime_params is not None else None
            ),
            "correlation_fallback": self.correlation_fallback,
            "block_length": self.block_length,
        }
        if include_terminal_values:
            data["terminal_values"] = self.terminal_values.tolist()
        return data

    def __repr__(self) -> str:
        return (f"SimulationOutput(status={self.status.value}, "
                f"iterations_completed={self.iterations_completed}, "
                f"time_horizon={self.time_horizon})")


def flatten_margin_calls(output: SimulationOutput) -> List[MarginCallEvent]:
    """All margin-call events of a run in iteration order."""
    return [event for events in output.margin_call_events for event in events]


def flatten_liquidations(output: SimulationOutput) -> List[LiquidationEvent]:
    """All forced-liquidation events of a run in iteration order."""
    return [event for events in output.liquidation_events for event in events]
