"""Configuration loading for the mortgage acceleration simulator.

The default scenario lives here together with the helpers that turn plain
dictionaries (a JSON config file, a web request body) into a validated
``SimulationConfig``. The rate schedule is validated once, when a
configuration is loaded, so the engine can resolve tiers without checking
them on every month.
"""

from __future__ import annotations

import json
import logging
from dataclasses import fields, replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from .data_models import AccelerationPolicy, InterestTier, SimulationConfig
from .engine import check_config
from .errors import ConfigError
from .utils import decimal_from_str, parse_year_month

logger = logging.getLogger(__name__)

DEFAULT_START_DATE = date(2026, 1, 1)
DEFAULT_BASIC_SALARY = Decimal("12000000")
DEFAULT_ALLOWANCE = Decimal("2000000")
DEFAULT_SALARY_GROWTH_RATE = Decimal("5")
DEFAULT_EXPENSE_INFLATION_RATE = Decimal("4")
DEFAULT_PRINCIPAL = Decimal("631489642")
DEFAULT_TERM_MONTHS = 240
DEFAULT_PENALTY_RATE = Decimal("1")
DEFAULT_NON_MORTGAGE_EXPENSES = Decimal("6328000")
DEFAULT_SCHEDULE = (
    InterestTier(1, 3, Decimal("0.0365")),
    InterestTier(4, 6, Decimal("0.0765")),
    InterestTier(7, 10, Decimal("0.0965")),
    InterestTier(11, 20, Decimal("0.1065")),
)

_DECIMAL_POLICY_FIELDS = {"thr_fund_share", "compensation_fund_share", "reference_installment"}


def default_config() -> SimulationConfig:
    """Return the reference scenario."""
    return SimulationConfig(
        start_date=DEFAULT_START_DATE,
        initial_basic_salary=DEFAULT_BASIC_SALARY,
        allowance=DEFAULT_ALLOWANCE,
        salary_growth_rate=DEFAULT_SALARY_GROWTH_RATE,
        expense_inflation_rate=DEFAULT_EXPENSE_INFLATION_RATE,
        principal=DEFAULT_PRINCIPAL,
        term_months=DEFAULT_TERM_MONTHS,
        penalty_rate=DEFAULT_PENALTY_RATE,
        interest_rate_schedule=DEFAULT_SCHEDULE,
        initial_non_mortgage_expenses=DEFAULT_NON_MORTGAGE_EXPENSES,
    )


def validate_schedule(schedule: Iterable[InterestTier], term_months: int = 0) -> None:
    """Check that tiers start at year 1 and are ordered and contiguous.

    A schedule that stops before the loan's final year is accepted: the last
    tier's rate carries on. This is logged as a warning.

    Raises
    ------
    ConfigError
        If the schedule is empty, a tier is inverted or has a negative rate,
        or tiers overlap or leave gaps.
    """
    tiers = list(schedule)
    if not tiers:
        raise ConfigError("Interest rate schedule must contain at least one tier")
    expected_start = 1
    for tier in tiers:
        if tier.start_year > tier.end_year:
            raise ConfigError(f"Tier {tier.start_year}-{tier.end_year} ends before it starts")
        if tier.rate < 0:
            raise ConfigError(f"Tier {tier.start_year}-{tier.end_year} has a negative rate")
        if tier.start_year != expected_start:
            raise ConfigError(
                f"Tier {tier.start_year}-{tier.end_year} must start at year {expected_start}; "
                "tiers must be ordered, contiguous and start at year 1"
            )
        expected_start = tier.end_year + 1
    term_years = -(-term_months // 12)
    if tiers[-1].end_year < term_years:
        logger.warning(
            "Rate schedule ends in year %d but the loan runs %d years; %s applies afterwards",
            tiers[-1].end_year,
            term_years,
            tiers[-1].rate,
        )


def validate_config(config: SimulationConfig) -> SimulationConfig:
    """Validate ``config`` and return it unchanged."""
    check_config(config)
    validate_schedule(config.interest_rate_schedule, config.term_months)
    return config


def _tier_from_dict(data: Mapping[str, Any]) -> InterestTier:
    try:
        return InterestTier(
            start_year=int(data["start_year"]),
            end_year=int(data["end_year"]),
            rate=decimal_from_str(str(data["rate"])),
        )
    except KeyError as exc:
        raise ConfigError(f"Interest tier is missing {exc.args[0]!r}") from exc


def _policy_from_dict(data: Mapping[str, Any]) -> AccelerationPolicy:
    known = {f.name for f in fields(AccelerationPolicy)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown policy fields: {', '.join(sorted(unknown))}")
    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key in _DECIMAL_POLICY_FIELDS:
            values[key] = decimal_from_str(str(value))
        else:
            values[key] = int(value)
    return AccelerationPolicy(**values)


def config_from_dict(data: Mapping[str, Any], base: SimulationConfig | None = None) -> SimulationConfig:
    """Build a configuration from a plain mapping.

    Keys missing from ``data`` keep their value from ``base`` (the default
    scenario when not given), so partial overrides are allowed. Amounts may
    be numbers or numeric strings; ``start_date`` is ``"YYYY-MM"`` and tier
    rates are decimal fractions.
    """
    config = base or default_config()
    overrides: Dict[str, Any] = {}
    decimal_keys = (
        "initial_basic_salary",
        "allowance",
        "salary_growth_rate",
        "expense_inflation_rate",
        "principal",
        "penalty_rate",
        "initial_non_mortgage_expenses",
    )
    for key in decimal_keys:
        if data.get(key) is not None:
            overrides[key] = decimal_from_str(str(data[key]))
    if "start_date" in data:
        overrides["start_date"] = parse_year_month(str(data["start_date"]))
    if data.get("term_months") is not None:
        overrides["term_months"] = int(data["term_months"])
    if "interest_rate_schedule" in data:
        tiers = data["interest_rate_schedule"] or ()
        overrides["interest_rate_schedule"] = tuple(_tier_from_dict(t) for t in tiers)
    if "policy" in data:
        base_policy = {f.name: getattr(config.policy, f.name) for f in fields(AccelerationPolicy)}
        base_policy.update(data["policy"] or {})
        overrides["policy"] = _policy_from_dict(base_policy)
    return replace(config, **overrides)


def config_to_dict(config: SimulationConfig) -> Dict[str, Any]:
    """Return a JSON-serialisable mapping accepted by :func:`config_from_dict`."""
    schedule: List[Dict[str, Any]] = [
        {"start_year": t.start_year, "end_year": t.end_year, "rate": float(t.rate)}
        for t in config.interest_rate_schedule
    ]
    policy = {}
    for f in fields(AccelerationPolicy):
        value = getattr(config.policy, f.name)
        policy[f.name] = float(value) if isinstance(value, Decimal) else value
    return {
        "start_date": config.start_date.strftime("%Y-%m"),
        "initial_basic_salary": float(config.initial_basic_salary),
        "allowance": float(config.allowance),
        "salary_growth_rate": float(config.salary_growth_rate),
        "expense_inflation_rate": float(config.expense_inflation_rate),
        "principal": float(config.principal),
        "term_months": config.term_months,
        "penalty_rate": float(config.penalty_rate),
        "initial_non_mortgage_expenses": float(config.initial_non_mortgage_expenses),
        "interest_rate_schedule": schedule,
        "policy": policy,
    }


def load_config(path: Path) -> SimulationConfig:
    """Read a JSON configuration file and validate it."""
    with path.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a JSON object")
    return validate_config(config_from_dict(data))
