"""Data models for the mortgage acceleration simulator.

This module defines dataclasses representing the entities used by the
simulator: interest tiers, the acceleration policy, the overall simulation
configuration, the per-month ledger record, the state carried between months
and the final summary. Records and configurations are frozen so that a ledger
handed out to a consumer can never be changed behind its back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple


@dataclass(frozen=True)
class InterestTier:
    """A contiguous range of loan-years sharing one annual interest rate.

    Attributes
    ----------
    start_year: int
        First loan-year (1-based) covered by the tier.
    end_year: int
        Last loan-year covered by the tier, inclusive.
    rate: Decimal
        Annual rate as a decimal fraction, e.g. ``Decimal("0.0365")``.
    """

    start_year: int
    end_year: int
    rate: Decimal


@dataclass(frozen=True)
class AccelerationPolicy:
    """Cash-allocation policy applied by the monthly loop.

    The defaults are the reference policy: THR arrives in the 3rd month of the
    loan year and is split 50/50 between a special expense and the funds,
    compensation arrives in the 4th month and goes to the funds in full, and
    an extra payment needs a bucket of at least six installments.
    """

    thr_month: int = 2
    compensation_month: int = 3
    thr_fund_share: Decimal = Decimal("0.5")
    compensation_fund_share: Decimal = Decimal("1")
    min_extra_installments: int = 6
    buffer_expense_months: int = 3
    buffer_installment_months: int = 1
    emergency_expense_months: int = 12
    emergency_installment_months: int = 12
    reference_installment: Decimal = Decimal("5285888")
    max_months: int = 480  # may only lower the engine's MAX_MONTHS


@dataclass(frozen=True)
class SimulationConfig:
    """Configuration of a simulation run.

    Growth, inflation and penalty rates are given in percent; tier rates are
    decimal fractions.
    """

    start_date: date
    initial_basic_salary: Decimal
    allowance: Decimal
    salary_growth_rate: Decimal  # annual, percent
    expense_inflation_rate: Decimal  # annual, percent
    principal: Decimal
    term_months: int
    penalty_rate: Decimal  # percent of every lump-sum extra payment
    interest_rate_schedule: Tuple[InterestTier, ...]
    initial_non_mortgage_expenses: Decimal = Decimal("6328000")
    policy: AccelerationPolicy = field(default_factory=AccelerationPolicy)


class Milestone:
    """Base of the ``NotReached | ReachedAt`` milestone sum type.

    The only way to move a milestone forward is :meth:`reach`, which never
    goes back: once reached, the first month is kept.
    """

    reached = False

    def reach(self, month: int) -> "Milestone":
        raise NotImplementedError


@dataclass(frozen=True)
class NotReached(Milestone):
    reached = False
    month = None

    def reach(self, month: int) -> "Milestone":
        return ReachedAt(month)


@dataclass(frozen=True)
class ReachedAt(Milestone):
    month: int
    reached = True

    def reach(self, month: int) -> "Milestone":
        return self


@dataclass(frozen=True)
class SimulationState:
    """Values carried from one simulated month to the next."""

    principal: Decimal
    basic_salary: Decimal
    non_mortgage_expenses: Decimal
    installment: Decimal
    buffer_balance: Decimal = Decimal("0")
    emergency_balance: Decimal = Decimal("0")
    extra_payment_bucket: Decimal = Decimal("0")
    total_interest_paid: Decimal = Decimal("0")
    total_extra_paid_raw: Decimal = Decimal("0")
    total_extra_paid_effective: Decimal = Decimal("0")
    total_penalty_paid: Decimal = Decimal("0")
    min_rule_delayed_payoff: bool = False
    buffer_funded: Milestone = field(default_factory=NotReached)
    emergency_funded: Milestone = field(default_factory=NotReached)
    mortgage_paid: Milestone = field(default_factory=NotReached)


@dataclass(frozen=True)
class MonthRecord:
    """One month of the simulated ledger.

    ``extra_payment_paid`` is the raw amount submitted to the bank;
    ``penalty_amount`` is the part of it withheld as penalty. The installment
    fields are the values before and after any recomputation triggered by an
    extra payment in this month.
    """

    month_index: int
    date: date
    starting_principal: Decimal
    basic_salary: Decimal
    total_salary: Decimal
    thr: Decimal
    compensation: Decimal
    total_income: Decimal
    thr_expense: Decimal
    thr_to_funds: Decimal
    compensation_to_funds: Decimal
    non_mortgage_expenses: Decimal
    mortgage_installment: Decimal
    total_expenses: Decimal
    excess: Decimal
    buffer_balance: Decimal
    emergency_balance: Decimal
    extra_payment_bucket: Decimal
    extra_payment_paid: Decimal
    penalty_amount: Decimal
    mortgage_interest: Decimal
    principal_paid: Decimal
    installment_before_extra: Decimal
    installment_after_extra: Decimal
    installment_reduction: Decimal
    remaining_principal: Decimal
    interest_rate: Decimal
    is_rate_change_month: bool

    @property
    def debt_to_income(self) -> Decimal:
        if self.total_income <= 0:
            return Decimal("0")
        return self.mortgage_installment / self.total_income

    @property
    def expense_ratio(self) -> Decimal:
        """Share of income spent on everything but the mortgage."""
        if self.total_income <= 0:
            return Decimal("0")
        return (self.total_expenses - self.mortgage_installment) / self.total_income


@dataclass(frozen=True)
class SummaryData:
    """Milestones and totals derived from a finished run."""

    buffer_funded: Milestone
    buffer_funded_date: Optional[str]
    emergency_funded: Milestone
    emergency_funded_date: Optional[str]
    mortgage_paid: Milestone
    mortgage_paid_date: Optional[str]
    total_interest_paid: Decimal
    total_interest_baseline: Decimal
    total_extra_paid_raw: Decimal
    total_extra_paid_effective: Decimal
    total_penalty_paid: Decimal
    total_savings: Decimal
    min_rule_delayed_payoff: bool
    final_buffer_balance: Decimal
    final_emergency_balance: Decimal
    penalty_efficiency: Decimal
    penalty_leakage: Decimal
    months_saved: Optional[int]

    @property
    def buffer_funded_month(self) -> Optional[int]:
        return self.buffer_funded.month

    @property
    def emergency_funded_month(self) -> Optional[int]:
        return self.emergency_funded.month

    @property
    def mortgage_paid_month(self) -> Optional[int]:
        return self.mortgage_paid.month
