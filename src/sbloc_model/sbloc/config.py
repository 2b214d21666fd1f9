# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""Configuration for the securities-backed line of credit."""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from ..errors import ConfigurationError


@dataclass(frozen=True)
class SBLOCConfig:
    """Terms of the line of credit drawn against the portfolio.

    Attributes:
        annual_interest_rate: Nominal annual interest rate on the loan balance.
        max_ltv: Hard loan-to-value threshold. A margin call is recorded for
            every year the LTV is at or above this value.
        maintenance_margin: Start of the warning zone. LTV values in
            [maintenance_margin, max_ltv) are reported as "in warning zone".
        annual_withdrawal: Amount drawn from the line each year.
        withdrawal_growth_rate: Annual raise applied to the withdrawal.
        withdrawal_start_year: First simulated year (0-indexed) with a draw.
        initial_loan_balance: Balance outstanding at year 0.
        monthly_withdrawal: Step the loan in twelve monthly substeps per year.
        liquidation_haircut: Forced-sale discount (0 - 1) applied when a
            margin call forces assets to be sold. None disables forced
            liquidation, so margin calls are only recorded.
        liquidation_target_multiplier: A forced sale brings LTV down to
            ``maintenance_margin * liquidation_target_multiplier``.
    """
    annual_interest_rate: float = 0.074
    max_ltv: float = 0.65
    maintenance_margin: float = 0.50
    annual_withdrawal: float = 0.0
    withdrawal_growth_rate: float = 0.0
    withdrawal_start_year: int = 0
    initial_loan_balance: float = 0.0
    monthly_withdrawal: bool = False
    liquidation_haircut: Optional[float] = None
    liquidation_target_multiplier: float = 0.8

    def __post_init__(self):
        if self.annual_interest_rate < 0:
            raise ConfigurationError(
                f"annual_interest_rate cannot be negative: {self.annual_interest_rate}"
            )
        if not 0 < self.max_ltv <= 1:
            raise ConfigurationError(f"max_ltv must be in (0, 1], got {self.max_ltv}")
        if not 0 < self.maintenance_margin <= self.max_ltv:
            raise ConfigurationError(
                f"maintenance_margin must be in (0, max_ltv={self.max_ltv}], "
                f"got {self.maintenance_margin}"
            )
        if self.annual_withdrawal < 0:
            raise ConfigurationError(
                f"annual_withdrawal cannot be negative: {self.annual_withdrawal}"
            )
        if self.withdrawal_growth_rate <= -1:
            raise ConfigurationError(
                f"withdrawal_growth_rate must be greater than -1, got {self.withdrawal_growth_rate}"
            )
        if self.withdrawal_start_year < 0:
            raise ConfigurationError(
                f"withdrawal_start_year cannot be negative: {self.withdrawal_start_year}"
            )
        if self.initial_loan_balance < 0:
            raise ConfigurationError(
                f"initial_loan_balance cannot be negative: {self.initial_loan_balance}"
            )
        if self.liquidation_haircut is not None and not 0 <= self.liquidation_haircut < 1:
            raise ConfigurationError(
                f"liquidation_haircut must be in [0, 1), got {self.liquidation_haircut}"
            )
        if not 0 < self.liquidation_target_multiplier <= 1:
            raise ConfigurationError(
                "liquidation_target_multiplier must be in (0, 1], "
                f"got {self.liquidation_target_multiplier}"
            )

    @property
    def forced_liquidation(self) -> bool:
        return self.liquidation_haircut is not None

    def withdrawal_for_year(self, year: int) -> float:
        """Annual draw for a 0-indexed simulation year, including raises."""
        if year < self.withdrawal_start_year:
            return 0.0
        years_of_withdrawals = year - self.withdrawal_start_year
        return self.annual_withdrawal * (1 + self.withdrawal_growth_rate) ** years_of_withdrawals

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SBLOCConfig':
        """Build a config from a JSON-style dict.

        Raises:
            ConfigurationError: If the dict has keys that are not loan terms
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown sbloc settings: {', '.join(unknown)}")
        return cls(**data)
