# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Securities-backed line of credit (SBLOC) modeling.

Tracks the loan drawn against a portfolio year by year: interest accrual,
withdrawals, loan-to-value, margin-call events and optional forced
liquidation.
"""

from .config import SBLOCConfig
from .engine import (
    LiquidationEvent,
    LoanPath,
    MarginCallEvent,
    SBLOCState,
    YearStepResult,
    calculate_liquidation_amount,
    calculate_ltv,
    execute_forced_liquidation,
    has_failed,
    initialize_state,
    is_in_warning_zone,
    simulate_loan_path,
    step_period,
    step_year,
)

__all__ = [
    'SBLOCConfig',
    'LiquidationEvent',
    'LoanPath',
    'MarginCallEvent',
    'SBLOCState',
    'YearStepResult',
    'calculate_liquidation_amount',
    'calculate_ltv',
    'execute_forced_liquidation',
    'has_failed',
    'initialize_state',
    'is_in_warning_zone',
    'simulate_loan_path',
    'step_period',
    'step_year',
]
