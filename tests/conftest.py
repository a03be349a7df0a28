from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from mortgage_sim.config import default_config
from mortgage_sim.data_models import AccelerationPolicy, InterestTier, SimulationConfig


@pytest.fixture(scope="session")
def make_config():
    """Small round-number scenario: buffer target 3,500, emergency target 18,000."""

    def _make(**overrides):
        values = dict(
            start_date=date(2026, 1, 1),
            initial_basic_salary=Decimal("3000"),
            allowance=Decimal("0"),
            salary_growth_rate=Decimal("0"),
            expense_inflation_rate=Decimal("0"),
            principal=Decimal("100000"),
            term_months=240,
            penalty_rate=Decimal("0"),
            interest_rate_schedule=(InterestTier(1, 40, Decimal("0.06")),),
            initial_non_mortgage_expenses=Decimal("1000"),
            policy=AccelerationPolicy(reference_installment=Decimal("500")),
        )
        values.update(overrides)
        return SimulationConfig(**values)

    return _make


@pytest.fixture(scope="session")
def reference_config():
    """The reference scenario with the early-repayment penalty waived."""
    return replace(default_config(), penalty_rate=Decimal("0"))
