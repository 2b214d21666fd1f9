# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Monte Carlo simulation orchestrator.

This module provides the MonteCarloSimulator class which runs the iterations
of a simulation in fixed-size batches. Between batches it reports progress
and checks for cancellation; those batch boundaries are the only points at
which a run can be interrupted.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Tuple

import numpy as np

from ..errors import ConfigurationError
from ..sbloc.config import SBLOCConfig
from ..sbloc.engine import (
    LiquidationEvent,
    LoanPath,
    MarginCallEvent,
    is_in_warning_zone,
    simulate_loan_path,
)
from .bootstrap import (
    align_series,
    correlated_block_bootstrap,
    correlated_bootstrap,
    optimal_block_length,
)
from .config import PortfolioConfig, ResamplingMethod, SimulationConfig, SuccessBasis
from .correlation import cholesky_or_identity, estimate_correlation_matrix
from .regime_calibration import (
    CalibrationResult,
    RegimeParamsMap,
    calibrate_asset,
    calculate_portfolio_regime_params,
)
from .regime_switching import (
    DEFAULT_TRANSITION_MATRIX,
    TransitionMatrix,
    generate_correlated_regime_returns,
)
from .results import (
    SimulationOutput,
    SimulationStatus,
    compute_first_event_stats,
    compute_loan_summary,
    compute_margin_call_stats,
    compute_statistics,
    compute_yearly_percentiles,
    discount_for_inflation,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

_NO_EVENTS: Tuple[MarginCallEvent, ...] = ()


class CancellationToken(Protocol):
    """Anything with an ``is_set()`` method, e.g. ``threading.Event``."""

    def is_set(self) -> bool:
        ...


@dataclass(frozen=True)
class _RunContext:
    """Per-run, read-only inputs shared by every iteration.

    Bootstrap methods use ``aligned`` (and ``block_length`` for the block
    method); the regime method uses the calibration and correlation fields.
    """
    calibration: Dict[str, CalibrationResult] = field(default_factory=dict)
    portfolio_regime_params: Optional[RegimeParamsMap] = None
    correlation_fallback: bool = False
    block_length: Optional[int] = None
    aligned: Optional[np.ndarray] = None
    asset_params: Tuple[RegimeParamsMap, ...] = ()
    correlation: Optional[np.ndarray] = None
    cholesky_factor: Optional[np.ndarray] = None
    transition_matrix: Optional[TransitionMatrix] = None


@dataclass
class _LoanArrays:
    """Per-iteration loan outputs, filled in row by row as iterations run."""
    balances: np.ndarray
    in_warning_zone: np.ndarray
    first_call_years: np.ndarray
    first_failure_years: np.ndarray
    total_interest: np.ndarray
    haircut_loss: np.ndarray
    margin_calls: List[Tuple[MarginCallEvent, ...]] = field(default_factory=list)
    liquidations: List[Tuple[LiquidationEvent, ...]] = field(default_factory=list)

    @classmethod
    def allocate(cls, iterations: int, horizon: int) -> '_LoanArrays':
        return cls(
            balances=np.empty((iterations, horizon + 1)),
            in_warning_zone=np.zeros((iterations, horizon + 1), dtype=bool),
            first_call_years=np.zeros(iterations, dtype=np.int64),
            first_failure_years=np.zeros(iterations, dtype=np.int64),
            total_interest=np.zeros(iterations),
            haircut_loss=np.zeros(iterations),
        )

    def record(self, i: int, path: LoanPath, sbloc: SBLOCConfig) -> None:
        for year, state in enumerate(path.states):
            self.balances[i, year] = state.loan_balance
            self.in_warning_zone[i, year] = is_in_warning_zone(state, sbloc)
        if path.margin_calls:
            self.first_call_years[i] = path.margin_calls[0].year
        if path.first_failure_year is not None:
            self.first_failure_years[i] = path.first_failure_year
        self.total_interest[i] = path.final_state.cumulative_interest
        self.haircut_loss[i] = path.final_state.cumulative_haircut
        self.margin_calls.append(path.margin_calls)
        self.liquidations.append(path.liquidations)

    def truncate(self, completed: int) -> '_LoanArrays':
        """Rows of the iterations that ran; events are already one per row."""
        return replace(
            self,
            balances=self.balances[:completed],
            in_warning_zone=self.in_warning_zone[:completed],
            first_call_years=self.first_call_years[:completed],
            first_failure_years=self.first_failure_years[:completed],
            total_interest=self.total_interest[:completed],
            haircut_loss=self.haircut_loss[:completed],
        )


class MonteCarloSimulator:
    """Runs a batched Monte Carlo simulation of a portfolio and its loan.

    The workflow:
    1. Calibrate regime parameters per asset (regime method only)
    2. Estimate or validate the asset correlation matrix
    3. For each iteration generate one return path per asset, combine them
       with the portfolio weights, and grow the portfolio (stepping the loan
       when one is configured)
    4. Aggregate percentile bands, statistics, and the loan's margin-call,
       liquidation and failure statistics

    All randomness comes from one ``numpy.random.Generator`` seeded from the
    config, so a run is reproducible from its seed.

    Example:
        >>> simulator = MonteCarloSimulator(
        ...     config=SimulationConfig(iterations=5000, seed=42),
        ...     portfolio=portfolio,
        ... )
        >>> output = simulator.run(progress_callback=print)
        >>> print(f"Success rate: {output.statistics.success_rate:.1%}")
    """

    def __init__(self, config: SimulationConfig, portfolio: PortfolioConfig):
        """Initialize the simulator.

        Args:
            config: Simulation configuration
            portfolio: Assets, weights and history to simulate

        Raises:
            ConfigurationError: If either argument is not a validated config
        """
        if not isinstance(config, SimulationConfig):
            raise ConfigurationError("config must be a SimulationConfig")
        if not isinstance(portfolio, PortfolioConfig):
            raise ConfigurationError("portfolio must be a PortfolioConfig")
        self.config = config
        self.portfolio = portfolio

    def run(self,
            progress_callback: Optional[ProgressCallback] = None,
            cancel_event: Optional[CancellationToken] = None) -> SimulationOutput:
        """Run the simulation to completion or cancellation.

        Args:
            progress_callback: Called with the percent complete (0 - 100)
                once after every batch
            cancel_event: Polled before every batch; when set, the run stops
                and returns a cancelled output with the completed iterations

        Returns:
            SimulationOutput for the completed iterations
        """
        batches = self.iter_batches(cancel_event)
        while True:
            try:
                percent = next(batches)
            except StopIteration as stop:
                return stop.value
            if progress_callback is not None:
                progress_callback(percent)

    def iter_batches(self,
                     cancel_event: Optional[CancellationToken] = None
                     ) -> Iterator[float]:
        """Generator form of :meth:`run`.

        Yields the percent complete after each batch and returns the
        SimulationOutput (available as ``StopIteration.value``). Hosts can
        interleave their own work at every yield.
        """
        config = self.config
        portfolio = self.portfolio
        iterations = config.iterations
        horizon = config.time_horizon

        seed = config.seed
        if seed is None:
            seed = int(np.random.default_rng().integers(0, 2**32))
        rng = np.random.default_rng(seed)

        logger.info(
            "Starting Monte Carlo run: %d iterations, %d years, method=%s, seed=%d",
            iterations, horizon, config.resampling_method.value, seed,
        )

        context = self._prepare()
        weights = portfolio.weights
        has_loan = config.sbloc is not None

        # Column y holds values at the end of year y; column 0 is today.
        values = np.empty((iterations, horizon + 1))
        loans = _LoanArrays.allocate(iterations, horizon) if has_loan else None

        completed = 0
        cancelled = False
        while completed < iterations:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                logger.info("Monte Carlo run cancelled after %d of %d iterations",
                            completed, iterations)
                break

            batch_end = min(completed + config.batch_size, iterations)
            for i in range(completed, batch_end):
                asset_returns = self._generate_asset_returns(rng, context)
                portfolio_returns = weights @ asset_returns

                if not has_loan:
                    growth = np.cumprod(np.maximum(0.0, 1.0 + portfolio_returns))
                    values[i, 0] = config.initial_value
                    values[i, 1:] = config.initial_value * growth
                    continue

                path = simulate_loan_path(config.sbloc, config.initial_value, portfolio_returns, i)
                for year, state in enumerate(path.states):
                    values[i, year] = state.net_worth
                loans.record(i, path, config.sbloc)

            completed = batch_end
            percent = 100.0 * completed / iterations
            logger.debug("Completed %d/%d iterations (%.0f%%)", completed, iterations, percent)
            yield percent

        output = self._aggregate(
            seed=seed,
            completed=completed,
            cancelled=cancelled,
            values=values[:completed],
            loans=loans,
            context=context,
        )
        if not cancelled:
            logger.info(
                "Monte Carlo run complete: success rate %.1f%%, median terminal value %.0f",
                output.statistics.success_rate * 100, output.statistics.median,
            )
        return output

    def _prepare(self) -> _RunContext:
        """Per-run, read-only inputs shared by every iteration."""
        config = self.config
        portfolio = self.portfolio
        method = config.resampling_method

        if method is ResamplingMethod.REGIME:
            calibration: Dict[str, CalibrationResult] = {
                asset.asset_id: calibrate_asset(
                    asset.asset_id, asset.historical_returns, config.regime_calibration
                )
                for asset in portfolio.assets
            }
            if portfolio.correlation_matrix is not None:
                correlation = np.asarray(portfolio.correlation_matrix)
            else:
                correlation = estimate_correlation_matrix(portfolio.historical_returns)
            factor, used_fallback = cholesky_or_identity(correlation)
            if used_fallback:
                correlation = np.eye(len(portfolio.assets))
            asset_params = tuple(calibration[a.asset_id].params for a in portfolio.assets)
            return _RunContext(
                calibration=calibration,
                asset_params=asset_params,
                cholesky_factor=factor,
                correlation=correlation,
                correlation_fallback=used_fallback,
                portfolio_regime_params=calculate_portfolio_regime_params(
                    asset_params, portfolio.weights, correlation
                ),
                transition_matrix=config.transition_matrix or DEFAULT_TRANSITION_MATRIX,
            )

        aligned = align_series(portfolio.historical_returns)
        if method is not ResamplingMethod.BLOCK:
            return _RunContext(aligned=aligned)

        block_length = config.block_size
        if block_length is None:
            block_length = optimal_block_length(aligned.mean(axis=0))
        block_length = max(1, min(int(block_length), aligned.shape[1]))
        logger.debug("Using block length %d", block_length)
        return _RunContext(aligned=aligned, block_length=block_length)

    def _generate_asset_returns(self,
                                rng: np.random.Generator,
                                context: _RunContext) -> np.ndarray:
        """Returns of shape (num_assets, time_horizon) for one iteration."""
        config = self.config
        horizon = config.time_horizon
        method = config.resampling_method

        if method is ResamplingMethod.SIMPLE:
            return correlated_bootstrap(context.aligned, horizon, rng)
        if method is ResamplingMethod.BLOCK:
            return correlated_block_bootstrap(
                context.aligned, horizon, rng, context.block_length
            )
        return generate_correlated_regime_returns(
            horizon,
            len(self.portfolio.assets),
            context.correlation,
            rng,
            context.asset_params,
            initial_regime=config.initial_regime,
            matrix=context.transition_matrix,
            cholesky_factor=context.cholesky_factor,
        ).returns

    def _aggregate(self,
                   seed: int,
                   completed: int,
                   cancelled: bool,
                   values: np.ndarray,
                   loans: Optional[_LoanArrays],
                   context: _RunContext) -> SimulationOutput:
        config = self.config

        real_values = discount_for_inflation(values, config.inflation_rate)
        reported = real_values if config.inflation_adjusted else values
        success_basis = real_values if config.success_basis is SuccessBasis.REAL else values

        terminal_values = np.ascontiguousarray(reported[:, -1])
        terminal_values.setflags(write=False)

        if loans is not None:
            loans = loans.truncate(completed)
            balances = loans.balances
            if config.inflation_adjusted:
                balances = discount_for_inflation(balances, config.inflation_rate)
            loan_fields = dict(
                margin_call_events=tuple(loans.margin_calls),
                margin_call_stats=compute_margin_call_stats(
                    loans.first_call_years, config.time_horizon
                ),
                liquidation_events=tuple(loans.liquidations),
                failure_stats=compute_first_event_stats(
                    loans.first_failure_years, config.time_horizon
                ),
                loan_summary=compute_loan_summary(
                    loans.total_interest,
                    loans.haircut_loss,
                    np.array([bool(events) for events in loans.liquidations], dtype=bool),
                    loans.first_failure_years,
                ),
                loan_percentiles=compute_yearly_percentiles(balances),
                warning_zone_frequency=(
                    tuple(float(f) for f in loans.in_warning_zone.mean(axis=0))
                    if completed else ()
                ),
            )
        else:
            loan_fields = dict(margin_call_events=(_NO_EVENTS,) * completed)

        return SimulationOutput(
            status=SimulationStatus.CANCELLED if cancelled else SimulationStatus.COMPLETE,
            iterations_requested=config.iterations,
            iterations_completed=completed,
            time_horizon=config.time_horizon,
            initial_value=config.initial_value,
            seed=seed,
            terminal_values=terminal_values,
            yearly_percentiles=compute_yearly_percentiles(reported),
            statistics=compute_statistics(
                terminal_values, success_basis[:, -1], config.initial_value
            ),
            calibration=context.calibration,
            portfolio_regime_params=context.portfolio_regime_params,
            correlation_fallback=context.correlation_fallback,
            block_length=context.block_length,
            inflation_adjusted=config.inflation_adjusted,
            **loan_fields,
        )
