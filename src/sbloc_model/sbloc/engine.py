# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Margin-loan stepper for a securities-backed line of credit.

Each simulated period the portfolio grows by that period's return, the loan
accrues interest on its opening balance, and the period's withdrawal is
drawn on the line. Loan-to-value is recomputed after every period and a
margin call is recorded whenever it reaches the hard threshold.

When the loan terms enable forced liquidation, a margin call also sells
assets at a haircut until LTV is back at the liquidation target. Neither a
margin call nor a failed portfolio (net worth at or below zero) stops the
iteration; both are reported for aggregation.
"""

import math
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from .config import SBLOCConfig

MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class MarginCallEvent:
    """A year in which loan-to-value was at or above the hard threshold.

    Attributes:
        iteration: Index of the Monte Carlo iteration
        year: 1-indexed simulation year in which the call was triggered
        ltv_at_trigger: Loan-to-value when the call triggered
    """
    iteration: int
    year: int
    ltv_at_trigger: float


@dataclass(frozen=True)
class LiquidationEvent:
    """A forced sale of collateral after a margin call.

    Attributes:
        iteration: Index of the Monte Carlo iteration
        year: 1-indexed simulation year of the sale
        assets_liquidated: Gross value of assets sold
        haircut_loss: Value lost to the forced-sale discount
        loan_repaid: Sale proceeds applied to the loan
        loan_balance: Loan balance after the sale
        portfolio_value: Portfolio value after the sale
    """
    iteration: int
    year: int
    assets_liquidated: float
    haircut_loss: float
    loan_repaid: float
    loan_balance: float
    portfolio_value: float


@dataclass(frozen=True)
class SBLOCState:
    """Snapshot of the loan and its collateral at the end of a period.

    States are never mutated; each step returns a new snapshot so the full
    path can be retained for aggregation.
    """
    portfolio_value: float
    loan_balance: float
    cumulative_interest: float = 0.0
    cumulative_withdrawals: float = 0.0
    cumulative_haircut: float = 0.0
    margin_call_triggered: bool = False
    years_elapsed: int = 0

    @property
    def ltv(self) -> float:
        return calculate_ltv(self.loan_balance, self.portfolio_value)

    @property
    def net_worth(self) -> float:
        return self.portfolio_value - self.loan_balance


@dataclass(frozen=True)
class YearStepResult:
    """Outcome of stepping the loan through one simulated year."""
    state: SBLOCState
    interest_charged: float
    withdrawal_made: float
    margin_call: Optional[MarginCallEvent]
    liquidations: Tuple[LiquidationEvent, ...] = ()

    @property
    def portfolio_failed(self) -> bool:
        return has_failed(self.state)


@dataclass(frozen=True)
class LoanPath:
    """Year-by-year loan states for a single iteration.

    ``states[0]`` is the year-0 state; ``states[y]`` is the state at the end
    of year ``y``.
    """
    states: Tuple[SBLOCState, ...]
    margin_calls: Tuple[MarginCallEvent, ...]
    liquidations: Tuple[LiquidationEvent, ...] = ()
    first_failure_year: Optional[int] = None

    @property
    def portfolio_failed(self) -> bool:
        return self.first_failure_year is not None

    @property
    def ltv_by_year(self) -> List[float]:
        return [state.ltv for state in self.states]

    @property
    def final_state(self) -> SBLOCState:
        return self.states[-1]


def calculate_ltv(loan_balance: float, portfolio_value: float) -> float:
    """Loan-to-value ratio.

    Zero when there is no loan. Infinite when a positive loan is secured by
    an exhausted portfolio, so it compares above any threshold.
    """
    if loan_balance <= 0:
        return 0.0
    if portfolio_value <= 0:
        return math.inf
    return loan_balance / portfolio_value


def is_in_warning_zone(state: SBLOCState, config: SBLOCConfig) -> bool:
    """True when LTV is at or above maintenance margin but below the hard threshold."""
    ltv = state.ltv
    return config.maintenance_margin <= ltv < config.max_ltv


def has_failed(state: SBLOCState) -> bool:
    """True when the loan has consumed the portfolio (net worth at or below zero)."""
    return state.net_worth <= 0


def liquidation_target_ltv(config: SBLOCConfig) -> float:
    return config.maintenance_margin * config.liquidation_target_multiplier


def calculate_liquidation_amount(state: SBLOCState, config: SBLOCConfig) -> float:
    """Gross assets to sell so that LTV lands on the liquidation target.

    Selling ``s`` at haircut ``h`` repays ``s * (1 - h)``, so the sale solves
    ``(loan - s(1 - h)) / (portfolio - s) = target``. When the target cannot
    be reached the whole portfolio is sold.
    """
    haircut = config.liquidation_haircut or 0.0
    target = liquidation_target_ltv(config)
    excess = state.loan_balance - state.portfolio_value * target
    if excess <= 0 or state.portfolio_value <= 0:
        return 0.0
    denominator = (1 - haircut) - target
    if denominator <= 0:
        return state.portfolio_value
    return min(excess / denominator, state.portfolio_value)


def execute_forced_liquidation(state: SBLOCState,
                               config: SBLOCConfig,
                               year: int,
                               iteration: int = 0
                               ) -> Tuple[SBLOCState, Optional[LiquidationEvent]]:
    """Sell collateral at a haircut and apply the proceeds to the loan.

    Args:
        state: State that triggered the margin call
        config: Loan terms, including the haircut and target multiplier
        year: 1-indexed simulation year recorded on the event
        iteration: Monte Carlo iteration index recorded on the event

    Returns:
        Tuple of (state after the sale, event), with no event when there is
        nothing to sell
    """
    assets = calculate_liquidation_amount(state, config)
    if assets <= 0:
        return state, None
    haircut = config.liquidation_haircut or 0.0
    haircut_loss = assets * haircut
    loan_repaid = min(assets - haircut_loss, state.loan_balance)
    new_state = replace(
        state,
        portfolio_value=max(0.0, state.portfolio_value - assets),
        loan_balance=max(0.0, state.loan_balance - loan_repaid),
        cumulative_haircut=state.cumulative_haircut + haircut_loss,
    )
    event = LiquidationEvent(
        iteration=iteration,
        year=year,
        assets_liquidated=assets,
        haircut_loss=haircut_loss,
        loan_repaid=loan_repaid,
        loan_balance=new_state.loan_balance,
        portfolio_value=new_state.portfolio_value,
    )
    return new_state, event


def initialize_state(config: SBLOCConfig, initial_portfolio_value: float) -> SBLOCState:
    """Create the year-0 state with the initial draw, if any, outstanding."""
    return SBLOCState(
        portfolio_value=initial_portfolio_value,
        loan_balance=config.initial_loan_balance,
        margin_call_triggered=calculate_ltv(
            config.initial_loan_balance, initial_portfolio_value
        ) >= config.max_ltv,
    )


def step_period(state: SBLOCState,
                period_return: float,
                withdrawal: float,
                interest_rate: float,
                max_ltv: float) -> Tuple[SBLOCState, float]:
    """Advance the loan by a single period.

    Args:
        state: State at the start of the period
        period_return: Portfolio return for the period (decimal)
        withdrawal: Amount drawn on the line this period
        interest_rate: Interest rate for the period (not annualised)
        max_ltv: Hard LTV threshold used to flag margin calls

    Returns:
        Tuple of (new state, interest charged this period)
    """
    portfolio_value = max(0.0, state.portfolio_value * (1 + period_return))
    interest = state.loan_balance * interest_rate
    loan_balance = state.loan_balance + interest + withdrawal
    ltv = calculate_ltv(loan_balance, portfolio_value)

    new_state = replace(
        state,
        portfolio_value=portfolio_value,
        loan_balance=loan_balance,
        cumulative_interest=state.cumulative_interest + interest,
        cumulative_withdrawals=state.cumulative_withdrawals + withdrawal,
        margin_call_triggered=state.margin_call_triggered or ltv >= max_ltv,
    )
    return new_state, interest


def annual_to_monthly_return(annual_return: float) -> float:
    """Geometric monthly return that compounds to ``annual_return`` over a year."""
    if annual_return <= -1:
        return -1.0
    return (1 + annual_return) ** (1 / MONTHS_PER_YEAR) - 1


def step_year(state: SBLOCState,
              config: SBLOCConfig,
              annual_return: float,
              year: int,
              iteration: int = 0) -> YearStepResult:
    """Advance the loan by one simulated year.

    With ``config.monthly_withdrawal`` disabled this is a single annual
    period and nothing is decomposed. With it enabled, the year is processed
    as twelve monthly substeps with the withdrawal and interest rate divided
    by twelve, and a margin call is raised on the first month that crosses
    the threshold. With forced liquidation enabled, every period that ends
    at or above the threshold sells collateral before the next one starts.

    Args:
        state: State at the start of the year
        config: Loan terms
        annual_return: Portfolio return for the year
        year: 0-indexed simulation year
        iteration: Monte Carlo iteration index, recorded on margin calls
    """
    withdrawal = config.withdrawal_for_year(year)
    if config.monthly_withdrawal:
        periods = MONTHS_PER_YEAR
        period_return = annual_to_monthly_return(annual_return)
        period_withdrawal = withdrawal / MONTHS_PER_YEAR
        period_rate = config.annual_interest_rate / MONTHS_PER_YEAR
    else:
        periods = 1
        period_return = annual_return
        period_withdrawal = withdrawal
        period_rate = config.annual_interest_rate

    current = state
    total_interest = 0.0
    total_withdrawn = 0.0
    margin_call = None
    liquidations = []
    for _ in range(periods):
        current, interest = step_period(
            current, period_return, period_withdrawal, period_rate, config.max_ltv
        )
        total_interest += interest
        total_withdrawn += period_withdrawal
        ltv = current.ltv
        if ltv < config.max_ltv:
            continue
        if margin_call is None:
            margin_call = MarginCallEvent(iteration, year + 1, ltv)
        if config.forced_liquidation:
            current, event = execute_forced_liquidation(current, config, year + 1, iteration)
            if event is not None:
                liquidations.append(event)

    return YearStepResult(
        state=replace(current, years_elapsed=state.years_elapsed + 1),
        interest_charged=total_interest,
        withdrawal_made=total_withdrawn,
        margin_call=margin_call,
        liquidations=tuple(liquidations),
    )


def simulate_loan_path(config: SBLOCConfig,
                       initial_portfolio_value: float,
                       portfolio_returns: Sequence[float],
                       iteration: int = 0) -> LoanPath:
    """Step the loan across a full path of annual portfolio returns."""
    state = initialize_state(config, initial_portfolio_value)
    states = [state]
    margin_calls = []
    liquidations = []
    first_failure_year = None
    for year, annual_return in enumerate(portfolio_returns):
        result = step_year(state, config, float(annual_return), year, iteration)
        state = result.state
        states.append(state)
        if result.margin_call is not None:
            margin_calls.append(result.margin_call)
        liquidations.extend(result.liquidations)
        if first_failure_year is None and result.portfolio_failed:
            first_failure_year = year + 1
    return LoanPath(
        states=tuple(states),
        margin_calls=tuple(margin_calls),
        liquidations=tuple(liquidations),
        first_failure_year=first_failure_year,
    )
