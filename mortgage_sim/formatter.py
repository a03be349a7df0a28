"""Output helpers for the mortgage acceleration simulator.

This module provides simple functions to render the simulated ledger and its
summary in a tabular text format, plus the ratio bands used to flag months
where the mortgage or living costs take too large a share of income.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from .data_models import MonthRecord, SummaryData

NOT_REACHED = "not yet reached"


def debt_to_income_band(ratio: Decimal) -> str:
    """Classify installment / income: above 40 % is high, above 30 % elevated."""
    if ratio > Decimal("0.4"):
        return "high"
    if ratio > Decimal("0.3"):
        return "elevated"
    return "healthy"


def expense_ratio_band(ratio: Decimal) -> str:
    """Classify living costs / income: above 60 % is high, above 45 % elevated."""
    if ratio > Decimal("0.6"):
        return "high"
    if ratio > Decimal("0.45"):
        return "elevated"
    return "healthy"


def _milestone(month, label) -> str:
    if month is None:
        return NOT_REACHED
    return f"{label} (month {month})"


def print_summary(summary: SummaryData) -> None:
    """Print the run summary in a human-readable format."""
    print("Summary")
    print("-" * 72)
    print(f"Buffer funded      : {_milestone(summary.buffer_funded_month, summary.buffer_funded_date)}")
    print(f"Emergency funded   : {_milestone(summary.emergency_funded_month, summary.emergency_funded_date)}")
    print(f"Mortgage paid off  : {_milestone(summary.mortgage_paid_month, summary.mortgage_paid_date)}")
    if summary.months_saved:
        print(f"Term reduction     : {summary.months_saved} months")
    print(f"Interest paid      : {summary.total_interest_paid:,.2f}")
    print(f"Baseline interest  : {summary.total_interest_baseline:,.2f}")
    print(f"Interest saved     : {summary.total_savings:,.2f}")
    if summary.total_extra_paid_raw:
        print(f"Extra paid (raw)   : {summary.total_extra_paid_raw:,.2f}")
        print(f"Extra paid (net)   : {summary.total_extra_paid_effective:,.2f}")
        print(f"Penalty paid       : {summary.total_penalty_paid:,.2f}")
        print(f"Penalty efficiency : {summary.penalty_efficiency:.2f}%")
    if summary.min_rule_delayed_payoff:
        print("Note               : minimum extra-payment rule delayed at least one payment")
    print(f"Final buffer       : {summary.final_buffer_balance:,.2f}")
    print(f"Final emergency    : {summary.final_emergency_balance:,.2f}")
    print("-" * 72)


def print_ledger(records: Iterable[MonthRecord]) -> None:
    """Print the monthly ledger as a tab-separated table."""
    headers = [
        "Month",
        "Date",
        "Income",
        "Installment",
        "Interest",
        "Principal",
        "Extra",
        "Buffer",
        "Emergency",
        "Bucket",
        "RemPrincipal",
        "Rate",
        "DTI",
        "ExpRatio",
    ]
    print("\t".join(headers))
    for record in records:
        row = [
            str(record.month_index),
            record.date.strftime("%Y-%m"),
            f"{record.total_income:.2f}",
            f"{record.mortgage_installment:.2f}",
            f"{record.mortgage_interest:.2f}",
            f"{record.principal_paid:.2f}",
            f"{record.extra_payment_paid:.2f}",
            f"{record.buffer_balance:.2f}",
            f"{record.emergency_balance:.2f}",
            f"{record.extra_payment_bucket:.2f}",
            f"{record.remaining_principal:.2f}",
            f"{record.interest_rate * 100:.2f}%" + ("*" if record.is_rate_change_month else ""),
            debt_to_income_band(record.debt_to_income),
            expense_ratio_band(record.expense_ratio),
        ]
        print("\t".join(row))
