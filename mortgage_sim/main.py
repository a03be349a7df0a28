"""Command-line interface for the mortgage acceleration simulator.

This module uses the ``click`` library to implement a multi-command
interface. Users can run the full month-by-month projection or view only the
summary. Results can be printed to the terminal or exported to JSON/CSV
files. Scenario values come from the built-in defaults, optionally overlaid
by a JSON config file, overlaid in turn by explicit options.
"""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, TextIO, Tuple

import click

from .config import config_from_dict, default_config, load_config, validate_config
from .data_models import InterestTier, MonthRecord, SimulationConfig, SummaryData
from .engine import run_simulation
from .errors import ConfigError
from .formatter import print_ledger, print_summary
from .utils import decimal_from_str, parse_year_month

MAX_PRINTED_ROWS = 120

CSV_HEADER = [
    "Month",
    "Date",
    "Basic Salary",
    "Total Salary",
    "THR",
    "Compensation",
    "Total Income",
    "THR Exp",
    "THR to Funds",
    "Comp to Funds",
    "Non-Mortgage Exp",
    "Mortgage Inst",
    "Total Exp",
    "Excess",
    "Buffer Bal",
    "Emergency Bal",
    "Extra Bucket",
    "Extra Paid Raw",
    "Penalty Amount",
    "Interest",
    "Principal Paid",
    "Inst Before",
    "Inst After",
    "Reduction",
    "Rem Principal",
    "Interest Rate",
    "Rate Change",
]


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("12000000") and shorthand with ``k``/``m``
    suffixes (e.g., "12m" meaning 12_000_000).
    """
    value = value.strip().lower().replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_tier_strings(values: Tuple[str, ...]) -> List[InterestTier]:
    """Parse ``START-END:RATE`` tier options; the rate is given in percent."""
    tiers: List[InterestTier] = []
    for item in values:
        years, sep, rate_str = item.partition(":")
        start_str, dash, end_str = years.partition("-")
        if not sep or not dash:
            raise click.BadParameter(f"Tier must be in START-END:RATE format; got {item}")
        try:
            start_year = int(start_str)
            end_year = int(end_str)
            rate = decimal_from_str(rate_str.rstrip("%")) / 100
        except ValueError:
            raise click.BadParameter(f"Tier must be in START-END:RATE format; got {item}")
        tiers.append(InterestTier(start_year=start_year, end_year=end_year, rate=rate))
    return tiers


def build_config_from_options(
    config_path: Optional[str] = None,
    start_date: Optional[str] = None,
    salary: Optional[str] = None,
    allowance: Optional[str] = None,
    salary_growth: Optional[float] = None,
    expense_inflation: Optional[float] = None,
    expenses: Optional[str] = None,
    principal: Optional[str] = None,
    term: Optional[int] = None,
    penalty: Optional[float] = None,
    tier: Tuple[str, ...] = (),
) -> SimulationConfig:
    """Layer explicit options over the config file (or the defaults)."""
    try:
        base = load_config(Path(config_path)) if config_path else default_config()
    except (OSError, ValueError) as exc:
        raise click.BadParameter(str(exc), param_hint="--config")

    overrides: Dict[str, Any] = {}
    if start_date:
        try:
            overrides["start_date"] = parse_year_month(start_date).strftime("%Y-%m")
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--start-date")
    if salary:
        overrides["initial_basic_salary"] = parse_amount(salary)
    if allowance:
        overrides["allowance"] = parse_amount(allowance)
    if expenses:
        overrides["initial_non_mortgage_expenses"] = parse_amount(expenses)
    if principal:
        overrides["principal"] = parse_amount(principal)
    if salary_growth is not None:
        overrides["salary_growth_rate"] = salary_growth
    if expense_inflation is not None:
        overrides["expense_inflation_rate"] = expense_inflation
    if penalty is not None:
        overrides["penalty_rate"] = penalty
    if term is not None:
        overrides["term_months"] = term
    config = config_from_dict(overrides, base)
    if tier:
        config = replace(config, interest_rate_schedule=tuple(parse_tier_strings(tier)))
    try:
        return validate_config(config)
    except ConfigError as exc:
        raise click.UsageError(str(exc))


def serialize_record(record: MonthRecord) -> Dict[str, Any]:
    return {
        "month_index": record.month_index,
        "date": record.date.strftime("%Y-%m"),
        "starting_principal": float(record.starting_principal),
        "basic_salary": float(record.basic_salary),
        "total_salary": float(record.total_salary),
        "thr": float(record.thr),
        "compensation": float(record.compensation),
        "total_income": float(record.total_income),
        "thr_expense": float(record.thr_expense),
        "thr_to_funds": float(record.thr_to_funds),
        "compensation_to_funds": float(record.compensation_to_funds),
        "non_mortgage_expenses": float(record.non_mortgage_expenses),
        "mortgage_installment": float(record.mortgage_installment),
        "total_expenses": float(record.total_expenses),
        "excess": float(record.excess),
        "buffer_balance": float(record.buffer_balance),
        "emergency_balance": float(record.emergency_balance),
        "extra_payment_bucket": float(record.extra_payment_bucket),
        "extra_payment_paid": float(record.extra_payment_paid),
        "penalty_amount": float(record.penalty_amount),
        "mortgage_interest": float(record.mortgage_interest),
        "principal_paid": float(record.principal_paid),
        "installment_before_extra": float(record.installment_before_extra),
        "installment_after_extra": float(record.installment_after_extra),
        "installment_reduction": float(record.installment_reduction),
        "remaining_principal": float(record.remaining_principal),
        "interest_rate": float(record.interest_rate),
        "is_rate_change_month": record.is_rate_change_month,
        "debt_to_income": float(record.debt_to_income),
        "expense_ratio": float(record.expense_ratio),
    }


def serialize_summary(summary: SummaryData) -> Dict[str, Any]:
    return {
        "buffer_funded_month": summary.buffer_funded_month,
        "buffer_funded_date": summary.buffer_funded_date,
        "emergency_funded_month": summary.emergency_funded_month,
        "emergency_funded_date": summary.emergency_funded_date,
        "mortgage_paid_month": summary.mortgage_paid_month,
        "mortgage_paid_date": summary.mortgage_paid_date,
        "total_interest_paid": float(summary.total_interest_paid),
        "total_interest_baseline": float(summary.total_interest_baseline),
        "total_extra_paid_raw": float(summary.total_extra_paid_raw),
        "total_extra_paid_effective": float(summary.total_extra_paid_effective),
        "total_penalty_paid": float(summary.total_penalty_paid),
        "total_savings": float(summary.total_savings),
        "min_rule_delayed_payoff": summary.min_rule_delayed_payoff,
        "final_buffer_balance": float(summary.final_buffer_balance),
        "final_emergency_balance": float(summary.final_emergency_balance),
        "penalty_efficiency": float(summary.penalty_efficiency),
        "penalty_leakage": float(summary.penalty_leakage),
        "months_saved": summary.months_saved,
    }


def write_ledger_csv(stream: TextIO, records: Iterable[MonthRecord]) -> None:
    """Write one CSV row per ledger record to an open text stream."""
    writer = csv.writer(stream)
    writer.writerow(CSV_HEADER)
    for r in records:
        writer.writerow(
            [
                r.month_index,
                r.date.strftime("%Y-%m"),
                float(r.basic_salary),
                float(r.total_salary),
                float(r.thr),
                float(r.compensation),
                float(r.total_income),
                float(r.thr_expense),
                float(r.thr_to_funds),
                float(r.compensation_to_funds),
                float(r.non_mortgage_expenses),
                float(r.mortgage_installment),
                float(r.total_expenses),
                float(r.excess),
                float(r.buffer_balance),
                float(r.emergency_balance),
                float(r.extra_payment_bucket),
                float(r.extra_payment_paid),
                float(r.penalty_amount),
                float(r.mortgage_interest),
                float(r.principal_paid),
                float(r.installment_before_extra),
                float(r.installment_after_extra),
                float(r.installment_reduction),
                float(r.remaining_principal),
                float(r.interest_rate),
                r.is_rate_change_month,
            ]
        )


def export_to_csv(path: Path, records: List[MonthRecord]) -> None:
    """Export the ledger to a CSV file."""
    with path.open("w", newline="", encoding="utf-8") as f:
        write_ledger_csv(f, records)


def export_to_json(path: Path, records: List[MonthRecord], summary: SummaryData) -> None:
    """Export summary and ledger to a JSON file."""
    data = {
        "summary": serialize_summary(summary),
        "ledger": [serialize_record(r) for r in records],
    }
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def scenario_options(func):
    """Attach the scenario options shared by every command."""
    options = [
        click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="JSON configuration file"),
        click.option("--start-date", "-s", "start_date", help="First simulated month (YYYY-MM)"),
        click.option("--salary", "salary", help="Initial monthly basic salary"),
        click.option("--allowance", "allowance", help="Fixed monthly allowance"),
        click.option("--salary-growth", "salary_growth", type=float, help="Annual salary growth (percent)"),
        click.option("--expense-inflation", "expense_inflation", type=float, help="Annual expense inflation (percent)"),
        click.option("--expenses", "expenses", help="Initial monthly non-mortgage expenses"),
        click.option("--principal", "-p", "principal", help="Mortgage principal"),
        click.option("--term", "-t", "term", type=int, help="Loan term in months"),
        click.option("--penalty", "penalty", type=float, help="Extra-payment penalty (percent)"),
        click.option("--tier", "tier", multiple=True, help="Rate tier in START-END:RATE format, rate in percent"),
        click.option("--verbose", "-v", "verbose", is_flag=True, help="Log simulation events"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@click.group()
def cli() -> None:
    """Mortgage acceleration simulator: reserve funds first, then annual extra payments."""
    pass


@cli.command()
@scenario_options
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def simulate(verbose: bool, output: Optional[str], **options: Any) -> None:
    """Run the projection and print the summary and monthly ledger."""
    _configure_logging(verbose)
    config = build_config_from_options(**options)
    records, summary = run_simulation(config)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, records, summary)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, records)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv", param_hint="--output")
        click.echo(f"Ledger exported to {path}")
        return
    print_summary(summary)
    # Limit ledger length printed to avoid flooding the terminal
    if len(records) > MAX_PRINTED_ROWS:
        click.echo(f"Ledger has {len(records)} rows; showing first {MAX_PRINTED_ROWS} rows.")
        print_ledger(records[:MAX_PRINTED_ROWS])
    else:
        print_ledger(records)


@cli.command()
@scenario_options
@click.option("--output", "output", type=str, help="Output file path (.json)")
def summary(verbose: bool, output: Optional[str], **options: Any) -> None:
    """Run the projection and print only the summary."""
    _configure_logging(verbose)
    config = build_config_from_options(**options)
    _, summary_data = run_simulation(config)
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension", param_hint="--output")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"summary": serialize_summary(summary_data)}, f, indent=2)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(summary_data)


if __name__ == "__main__":
    cli()
