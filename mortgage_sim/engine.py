"""Core calculation engine for the mortgage acceleration simulator.

This module implements the financial logic of the simulator: the annuity
(PMT) payment, interest-tier resolution, the passive baseline amortization and
the monthly acceleration loop. The loop is a fold of the pure
:func:`step_month` transition over month indices; it builds reserve funds
from surplus cash before diverting the remainder into an annual lump-sum
extra payment. Results are returned as a list of ``MonthRecord`` objects along
with a ``SummaryData`` value.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, getcontext
from typing import List, Sequence, Tuple

from .data_models import (
    AccelerationPolicy,
    InterestTier,
    MonthRecord,
    SimulationConfig,
    SimulationState,
    SummaryData,
)
from .errors import ConfigError
from .utils import add_months, format_month

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MONTHS_PER_YEAR = 12
# Hard ceiling on the simulated horizon; policies may only shorten it.
MAX_MONTHS = 480
MAX_TERM_MONTHS = 600
# Balances below half a cent are treated as settled.
RESIDUAL_TOLERANCE = Decimal("0.005")


def calculate_annuity_payment(principal: Decimal, annual_rate: Decimal, months_remaining: int) -> Decimal:
    """Return the level monthly payment that retires ``principal``.

    The formula is:

        payment = P * (r * (1 + r)^n) / ((1 + r)^n - 1)

    where ``P`` is the principal, ``r`` is ``annual_rate / 12`` and ``n`` is
    the number of remaining months. When the rate is zero, the payment
    simplifies to ``P / n``. A settled loan or an exhausted term yields zero.
    """
    if principal <= 0 or months_remaining <= 0:
        return ZERO
    if annual_rate == 0:
        return principal / Decimal(months_remaining)
    rate_per_month = annual_rate / Decimal(MONTHS_PER_YEAR)
    factor = (1 + rate_per_month) ** months_remaining
    return principal * (rate_per_month * factor) / (factor - 1)


def resolve_tier(year: int, schedule: Sequence[InterestTier]) -> InterestTier:
    """Return the tier covering loan-year ``year`` (1-based).

    Years beyond the schedule resolve to the last tier, whose rate is taken
    to persist indefinitely.
    """
    for tier in schedule:
        if tier.start_year <= year <= tier.end_year:
            return tier
    return schedule[-1]


def _loan_year(month_index: int) -> int:
    return month_index // MONTHS_PER_YEAR + 1


def _is_rate_change(month_index: int, schedule: Sequence[InterestTier]) -> bool:
    """True at a year boundary whose rate differs from the previous year's."""
    if month_index == 0 or month_index % MONTHS_PER_YEAR != 0:
        return False
    previous = resolve_tier(_loan_year(month_index - 1), schedule)
    current = resolve_tier(_loan_year(month_index), schedule)
    return previous.rate != current.rate


def _settle(principal: Decimal) -> Decimal:
    # Decimal division can leave residuals like 1E-20 after the final payment.
    if principal.copy_abs() < RESIDUAL_TOLERANCE:
        return ZERO
    return principal


def _fill(balance: Decimal, target: Decimal, available: Decimal) -> Tuple[Decimal, Decimal]:
    """Move as much of ``available`` into ``balance`` as ``target`` allows.

    Returns the new balance and what is left to pass down the waterfall.
    """
    if available <= 0 or balance >= target:
        return balance, available
    allocation = min(available, target - balance)
    return balance + allocation, available - allocation


def check_config(config: SimulationConfig) -> None:
    """Raise ``ConfigError`` if ``config`` breaks the engine's invariants."""
    if config.principal <= 0:
        raise ConfigError("Principal must be positive")
    if not 0 < config.term_months <= MAX_TERM_MONTHS:
        raise ConfigError(f"Term must be between 1 and {MAX_TERM_MONTHS} months")
    if not config.interest_rate_schedule:
        raise ConfigError("Interest rate schedule must contain at least one tier")
    if not 0 <= config.penalty_rate < 100:
        raise ConfigError("Penalty rate must be at least 0 and below 100 percent")
    check_policy(config.policy)


def check_policy(policy: AccelerationPolicy) -> None:
    """Raise ``ConfigError`` if ``policy`` cannot drive the monthly loop."""
    for name in ("thr_month", "compensation_month"):
        if not 0 <= getattr(policy, name) < MONTHS_PER_YEAR:
            raise ConfigError(f"{name} must be a month offset between 0 and 11")
    for name in ("thr_fund_share", "compensation_fund_share"):
        if not 0 <= getattr(policy, name) <= 1:
            raise ConfigError(f"{name} must be between 0 and 1")
    for name in (
        "min_extra_installments",
        "buffer_expense_months",
        "buffer_installment_months",
        "emergency_expense_months",
        "emergency_installment_months",
        "reference_installment",
    ):
        if getattr(policy, name) < 0:
            raise ConfigError(f"{name} must not be negative")
    if not 0 < policy.max_months <= MAX_MONTHS:
        raise ConfigError(f"max_months must be between 1 and {MAX_MONTHS}")


def calculate_baseline_interest(config: SimulationConfig) -> Decimal:
    """Return the total interest paid under passive repayment.

    No reserve funds and no extra payments: the installment only changes when
    a new loan-year brings a different rate, in which case it is re-amortized
    over the remaining term.
    """
    schedule = config.interest_rate_schedule
    principal = config.principal
    total_interest = ZERO
    installment = calculate_annuity_payment(principal, resolve_tier(1, schedule).rate, config.term_months)

    for month_index in range(config.term_months):
        rate = resolve_tier(_loan_year(month_index), schedule).rate
        if _is_rate_change(month_index, schedule):
            installment = calculate_annuity_payment(principal, rate, config.term_months - month_index)
        interest = principal * rate / MONTHS_PER_YEAR
        total_interest += interest
        principal = _settle(principal - min(principal, max(ZERO, installment - interest)))
        if principal <= 0:
            break
    return total_interest


def initial_state(config: SimulationConfig) -> SimulationState:
    """Return the loop state before month zero."""
    first_rate = resolve_tier(1, config.interest_rate_schedule).rate
    return SimulationState(
        principal=config.principal,
        basic_salary=config.initial_basic_salary,
        non_mortgage_expenses=config.initial_non_mortgage_expenses,
        installment=calculate_annuity_payment(config.principal, first_rate, config.term_months),
    )


def step_month(
    state: SimulationState, month_index: int, config: SimulationConfig
) -> Tuple[SimulationState, MonthRecord]:
    """Advance the loan by one month.

    Parameters
    ----------
    state: SimulationState
        State at the end of the previous month (or :func:`initial_state`).
    month_index: int
        Zero-based index of the month being simulated.
    config: SimulationConfig
        The run configuration.

    Returns
    -------
    new_state: SimulationState
        State at the end of this month.
    record: MonthRecord
        The ledger entry for this month.
    """
    policy = config.policy
    schedule = config.interest_rate_schedule
    month_in_year = month_index % MONTHS_PER_YEAR
    month_number = month_index + 1

    principal = state.principal
    basic_salary = state.basic_salary
    expenses = state.non_mortgage_expenses
    installment = state.installment

    # Salary and expenses compound once per loan year.
    if month_index > 0 and month_in_year == 0:
        basic_salary *= 1 + config.salary_growth_rate / 100
        expenses *= 1 + config.expense_inflation_rate / 100

    rate = resolve_tier(_loan_year(month_index), schedule).rate
    is_rate_change_month = False
    if _is_rate_change(month_index, schedule) and principal > 0:
        installment = calculate_annuity_payment(principal, rate, config.term_months - month_index)
        is_rate_change_month = True
        logger.debug("Month %d: rate changed to %s, installment now %.2f", month_number, rate, installment)

    thr = basic_salary if month_in_year == policy.thr_month else ZERO
    compensation = basic_salary if month_in_year == policy.compensation_month else ZERO
    thr_to_funds = thr * policy.thr_fund_share
    thr_expense = thr - thr_to_funds
    compensation_to_funds = compensation * policy.compensation_fund_share
    compensation_expense = compensation - compensation_to_funds
    total_salary = basic_salary + config.allowance
    total_income = total_salary + thr + compensation

    bucket = state.extra_payment_bucket
    total_extra_paid_raw = state.total_extra_paid_raw
    total_extra_paid_effective = state.total_extra_paid_effective
    total_penalty_paid = state.total_penalty_paid
    min_rule_delayed_payoff = state.min_rule_delayed_payoff
    extra_paid = ZERO
    penalty = ZERO
    installment_before = installment

    if month_in_year == 0 and month_index >= MONTHS_PER_YEAR and bucket > 0 and principal > 0:
        threshold = policy.min_extra_installments * installment
        if bucket >= threshold or principal < threshold:
            penalty_fraction = config.penalty_rate / 100
            extra_paid = min(bucket, principal / (1 - penalty_fraction))
            penalty = extra_paid * penalty_fraction
            effective = extra_paid - penalty
            principal = _settle(principal - min(principal, effective))
            bucket -= extra_paid
            total_extra_paid_raw += extra_paid
            total_extra_paid_effective += effective
            total_penalty_paid += penalty
            if principal > 0:
                installment = calculate_annuity_payment(principal, rate, config.term_months - month_index)
            else:
                installment = ZERO
            logger.debug(
                "Month %d: extra payment %.2f (penalty %.2f), principal now %.2f",
                month_number,
                extra_paid,
                penalty,
                principal,
            )
        else:
            min_rule_delayed_payoff = True
            logger.debug(
                "Month %d: bucket %.2f below minimum %.2f, extra payment skipped",
                month_number,
                bucket,
                threshold,
            )

    routine_expenses = expenses + installment
    available = total_salary - routine_expenses + thr_to_funds + compensation_to_funds

    buffer_target = (
        policy.buffer_expense_months * expenses
        + policy.buffer_installment_months * policy.reference_installment
    )
    emergency_target = (
        policy.emergency_expense_months * expenses
        + policy.emergency_installment_months * policy.reference_installment
    )

    buffer_funded = state.buffer_funded
    emergency_funded = state.emergency_funded
    buffer_balance = state.buffer_balance
    emergency_balance = state.emergency_balance
    if available > 0:
        if buffer_balance < buffer_target:
            buffer_balance, available = _fill(buffer_balance, buffer_target, available)
            if buffer_balance >= buffer_target and not buffer_funded.reached:
                buffer_funded = buffer_funded.reach(month_number)
                logger.debug("Month %d: buffer fund reached %.2f", month_number, buffer_target)
        if emergency_balance < emergency_target:
            emergency_balance, available = _fill(emergency_balance, emergency_target, available)
            if emergency_balance >= emergency_target and not emergency_funded.reached:
                emergency_funded = emergency_funded.reach(month_number)
                logger.debug("Month %d: emergency fund reached %.2f", month_number, emergency_target)
        if available > 0:
            bucket += available

    interest = principal * rate / MONTHS_PER_YEAR
    principal_paid = min(principal, max(ZERO, installment - interest))
    principal = _settle(principal - principal_paid)
    total_expenses = routine_expenses + thr_expense + compensation_expense

    record = MonthRecord(
        month_index=month_number,
        date=add_months(config.start_date, month_index),
        starting_principal=state.principal,
        basic_salary=basic_salary,
        total_salary=total_salary,
        thr=thr,
        compensation=compensation,
        total_income=total_income,
        thr_expense=thr_expense,
        thr_to_funds=thr_to_funds,
        compensation_to_funds=compensation_to_funds,
        non_mortgage_expenses=expenses,
        mortgage_installment=installment,
        total_expenses=total_expenses,
        excess=total_income - total_expenses,
        buffer_balance=buffer_balance,
        emergency_balance=emergency_balance,
        extra_payment_bucket=bucket,
        extra_payment_paid=extra_paid,
        penalty_amount=penalty,
        mortgage_interest=interest,
        principal_paid=principal_paid,
        installment_before_extra=installment_before,
        installment_after_extra=installment,
        installment_reduction=max(ZERO, installment_before - installment),
        remaining_principal=principal,
        interest_rate=rate,
        is_rate_change_month=is_rate_change_month,
    )

    mortgage_paid = state.mortgage_paid
    if principal <= 0:
        mortgage_paid = mortgage_paid.reach(month_number)

    new_state = SimulationState(
        principal=principal,
        basic_salary=basic_salary,
        non_mortgage_expenses=expenses,
        installment=installment,
        buffer_balance=buffer_balance,
        emergency_balance=emergency_balance,
        extra_payment_bucket=bucket,
        total_interest_paid=state.total_interest_paid + interest,
        total_extra_paid_raw=total_extra_paid_raw,
        total_extra_paid_effective=total_extra_paid_effective,
        total_penalty_paid=total_penalty_paid,
        min_rule_delayed_payoff=min_rule_delayed_payoff,
        buffer_funded=buffer_funded,
        emergency_funded=emergency_funded,
        mortgage_paid=mortgage_paid,
    )
    return new_state, record


def summarize(state: SimulationState, baseline_interest: Decimal, config: SimulationConfig) -> SummaryData:
    """Reduce the terminal loop state into a ``SummaryData`` value."""
    start: date = config.start_date
    raw = state.total_extra_paid_raw
    effective = state.total_extra_paid_effective
    if raw > 0:
        penalty_efficiency = effective / raw * 100
    else:
        penalty_efficiency = Decimal("100")
    months_saved = None
    if state.mortgage_paid.reached:
        months_saved = max(0, config.term_months - state.mortgage_paid.month)

    return SummaryData(
        buffer_funded=state.buffer_funded,
        buffer_funded_date=format_month(start, state.buffer_funded.month),
        emergency_funded=state.emergency_funded,
        emergency_funded_date=format_month(start, state.emergency_funded.month),
        mortgage_paid=state.mortgage_paid,
        mortgage_paid_date=format_month(start, state.mortgage_paid.month),
        total_interest_paid=state.total_interest_paid,
        total_interest_baseline=baseline_interest,
        total_extra_paid_raw=raw,
        total_extra_paid_effective=effective,
        total_penalty_paid=state.total_penalty_paid,
        total_savings=max(ZERO, baseline_interest - state.total_interest_paid),
        min_rule_delayed_payoff=state.min_rule_delayed_payoff,
        final_buffer_balance=state.buffer_balance,
        final_emergency_balance=state.emergency_balance,
        penalty_efficiency=penalty_efficiency,
        penalty_leakage=raw - effective,
        months_saved=months_saved,
    )


def run_simulation(config: SimulationConfig) -> Tuple[List[MonthRecord], SummaryData]:
    """Run the full projection for ``config``.

    Parameters
    ----------
    config: SimulationConfig
        The simulation configuration.

    Returns
    -------
    records: List[MonthRecord]
        One record per simulated month, at most ``MAX_MONTHS`` (or the
        shorter ``config.policy.max_months``).
        The last record is the payoff month when the loan was retired.
    summary: SummaryData
        Milestones, totals and the comparison against the passive baseline.

    Raises
    ------
    ConfigError
        If the configuration breaks the engine's invariants.
    """
    check_config(config)
    baseline_interest = calculate_baseline_interest(config)

    state = initial_state(config)
    records: List[MonthRecord] = []
    for month_index in range(min(config.policy.max_months, MAX_MONTHS)):
        state, record = step_month(state, month_index, config)
        records.append(record)
        if state.principal <= 0:
            break

    summary = summarize(state, baseline_interest, config)
    if summary.mortgage_paid.reached:
        logger.info("Simulated %d months; mortgage paid off in %s", len(records), summary.mortgage_paid_date)
    else:
        logger.info("Simulated %d months; mortgage not paid off", len(records))
    return records, summary
