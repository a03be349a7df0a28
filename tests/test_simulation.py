"""
Tests for the monthly acceleration loop and the summary it produces.
"""

import io
from dataclasses import replace
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from mortgage_sim.data_models import AccelerationPolicy, InterestTier, NotReached, ReachedAt
from mortgage_sim.engine import (
    MAX_MONTHS,
    calculate_annuity_payment,
    calculate_baseline_interest,
    initial_state,
    run_simulation,
    step_month,
)
from mortgage_sim.errors import ConfigError
from mortgage_sim.main import write_ledger_csv


def _state(config, **values):
    return replace(initial_state(config), **values)


class TestMilestone:
    def test_reach_moves_forward_once(self):
        milestone = NotReached().reach(7)
        assert milestone == ReachedAt(7)
        assert milestone.reach(12) == ReachedAt(7)

    def test_not_reached_has_no_month(self):
        assert NotReached().month is None
        assert not NotReached().reached


class TestCashWaterfall:
    """Surplus of 1,000 a month: salary 3,000 less expenses 1,000 and installment 1,000."""

    def test_surplus_below_buffer_gap_goes_to_buffer_only(self, make_config):
        config = make_config()
        state, record = step_month(_state(config, installment=Decimal("1000")), 1, config)

        assert record.buffer_balance == Decimal("1000")
        assert record.emergency_balance == 0
        assert record.extra_payment_bucket == 0
        assert state.buffer_funded == NotReached()

    def test_full_buffer_passes_surplus_to_emergency(self, make_config):
        config = make_config()
        start = _state(config, installment=Decimal("1000"), buffer_balance=Decimal("3500"))
        _, record = step_month(start, 1, config)

        assert record.buffer_balance == Decimal("3500")
        assert record.emergency_balance == Decimal("1000")
        assert record.extra_payment_bucket == 0

    def test_surplus_splits_across_buffer_boundary(self, make_config):
        config = make_config()
        start = _state(config, installment=Decimal("1000"), buffer_balance=Decimal("3000"))
        state, record = step_month(start, 1, config)

        assert record.buffer_balance == Decimal("3500")
        assert record.emergency_balance == Decimal("500")
        assert state.buffer_funded == ReachedAt(2)

    def test_bucket_only_receives_after_emergency_is_full(self, make_config):
        config = make_config()
        start = _state(
            config,
            installment=Decimal("1000"),
            buffer_balance=Decimal("3500"),
            emergency_balance=Decimal("17500"),
        )
        state, record = step_month(start, 1, config)

        assert record.emergency_balance == Decimal("18000")
        assert record.extra_payment_bucket == Decimal("500")
        assert state.emergency_funded == ReachedAt(2)

    def test_deficit_allocates_nothing(self, make_config):
        config = make_config()
        start = _state(config, installment=Decimal("2500"), buffer_balance=Decimal("100"))
        _, record = step_month(start, 1, config)

        assert record.excess == Decimal("-500")
        assert record.buffer_balance == Decimal("100")
        assert record.emergency_balance == 0
        assert record.extra_payment_bucket == 0

    def test_milestone_keeps_first_month_after_refill(self, make_config):
        config = make_config()
        start = _state(
            config,
            installment=Decimal("1000"),
            buffer_balance=Decimal("3000"),
            buffer_funded=ReachedAt(4),
        )
        state, _ = step_month(start, 20, config)
        assert state.buffer_funded == ReachedAt(4)


class TestSpecialIncome:
    def test_thr_is_split_between_expense_and_funds(self, make_config):
        config = make_config()
        _, record = step_month(_state(config, installment=Decimal("1000")), 2, config)

        assert record.thr == Decimal("3000")
        assert record.thr_expense == Decimal("1500")
        assert record.thr_to_funds == Decimal("1500")
        assert record.total_income == Decimal("6000")
        assert record.total_expenses == Decimal("3500")
        assert record.buffer_balance == Decimal("2500")

    def test_compensation_goes_to_funds_in_full(self, make_config):
        config = make_config()
        _, record = step_month(_state(config, installment=Decimal("1000")), 3, config)

        assert record.thr == 0
        assert record.compensation == Decimal("3000")
        assert record.compensation_to_funds == Decimal("3000")
        assert record.buffer_balance == Decimal("3500")
        assert record.emergency_balance == Decimal("500")

    def test_special_income_months_follow_policy(self, make_config):
        config = make_config(policy=AccelerationPolicy(thr_month=5, compensation_month=11))
        _, march = step_month(initial_state(config), 2, config)
        _, june = step_month(initial_state(config), 5, config)

        assert march.thr == 0
        assert june.thr == Decimal("3000")


class TestEscalationAndRates:
    def test_salary_and_expenses_compound_on_anniversary(self, make_config):
        config = make_config(salary_growth_rate=Decimal("5"), expense_inflation_rate=Decimal("4"))
        records, _ = run_simulation(config)

        assert records[11].basic_salary == Decimal("3000")
        assert records[12].basic_salary == Decimal("3150")
        assert records[12].non_mortgage_expenses == Decimal("1040")
        assert records[24].basic_salary == Decimal("3307.5")

    def test_rate_change_recomputes_installment(self, make_config):
        config = make_config(
            interest_rate_schedule=(
                InterestTier(1, 1, Decimal("0.06")),
                InterestTier(2, 40, Decimal("0.08")),
            )
        )
        start = _state(config, principal=Decimal("90000"))
        _, record = step_month(start, 12, config)

        assert record.is_rate_change_month
        assert record.interest_rate == Decimal("0.08")
        assert record.installment_before_extra == calculate_annuity_payment(
            Decimal("90000"), Decimal("0.08"), 228
        )

    def test_same_rate_across_tiers_is_not_a_change(self, make_config):
        config = make_config(
            interest_rate_schedule=(
                InterestTier(1, 1, Decimal("0.06")),
                InterestTier(2, 40, Decimal("0.06")),
            )
        )
        start = _state(config, installment=Decimal("1000"))
        _, record = step_month(start, 12, config)

        assert not record.is_rate_change_month
        assert record.installment_before_extra == Decimal("1000")


class TestExtraPaymentEligibility:
    """Installment of 1,000 makes the minimum extra payment 6,000."""

    def test_bucket_one_below_minimum_is_delayed(self, make_config):
        config = make_config()
        start = _state(config, installment=Decimal("1000"), extra_payment_bucket=Decimal("5999"))
        state, record = step_month(start, 12, config)

        assert record.extra_payment_paid == 0
        assert record.extra_payment_bucket == Decimal("5999")
        assert state.min_rule_delayed_payoff

    def test_bucket_at_minimum_is_paid(self, make_config):
        config = make_config()
        start = _state(config, installment=Decimal("1000"), extra_payment_bucket=Decimal("6000"))
        state, record = step_month(start, 12, config)

        expected_installment = calculate_annuity_payment(Decimal("94000"), Decimal("0.06"), 228)
        assert record.extra_payment_paid == Decimal("6000")
        assert record.penalty_amount == 0
        assert record.extra_payment_bucket == 0
        assert record.installment_before_extra == Decimal("1000")
        assert record.installment_after_extra == expected_installment
        assert record.installment_reduction == Decimal("1000") - expected_installment
        assert not state.min_rule_delayed_payoff
        assert state.total_extra_paid_raw == Decimal("6000")

    def test_small_principal_accepts_any_bucket(self, make_config):
        config = make_config()
        start = _state(
            config,
            principal=Decimal("5000"),
            installment=Decimal("1000"),
            extra_payment_bucket=Decimal("100"),
        )
        state, record = step_month(start, 12, config)

        assert record.extra_payment_paid == Decimal("100")
        assert not state.min_rule_delayed_payoff

    def test_payment_is_capped_at_what_retires_the_loan(self, make_config):
        config = make_config()
        start = _state(
            config,
            principal=Decimal("5000"),
            installment=Decimal("1000"),
            extra_payment_bucket=Decimal("10000"),
        )
        state, record = step_month(start, 12, config)

        assert record.extra_payment_paid == Decimal("5000")
        assert record.extra_payment_bucket == Decimal("5000")
        assert record.mortgage_installment == 0
        assert record.mortgage_interest == 0
        assert record.remaining_principal == 0
        assert state.mortgage_paid == ReachedAt(13)

    def test_penalty_is_grossed_up_on_final_payment(self, make_config):
        config = make_config(penalty_rate=Decimal("2"))
        start = _state(
            config,
            principal=Decimal("5000"),
            installment=Decimal("1000"),
            extra_payment_bucket=Decimal("10000"),
        )
        state, record = step_month(start, 12, config)

        assert abs(record.extra_payment_paid - Decimal("5000") / Decimal("0.98")) < Decimal("1e-18")
        assert abs(record.penalty_amount - record.extra_payment_paid * Decimal("0.02")) < Decimal("1e-18")
        assert record.remaining_principal == 0
        assert state.total_penalty_paid == record.penalty_amount

    def test_no_extra_payment_in_first_year_or_mid_year(self, make_config):
        config = make_config()
        start = _state(config, installment=Decimal("1000"), extra_payment_bucket=Decimal("50000"))

        _, first_month = step_month(start, 0, config)
        _, mid_year = step_month(start, 13, config)

        assert first_month.extra_payment_paid == 0
        assert mid_year.extra_payment_paid == 0


class TestRunSimulation:
    def test_reference_scenario_pays_off_early(self, reference_config):
        records, summary = run_simulation(reference_config)

        assert summary.mortgage_paid_month is not None
        assert summary.mortgage_paid_month <= 240
        assert summary.mortgage_paid_month == len(records)
        assert summary.total_interest_paid < summary.total_interest_baseline
        assert summary.months_saved == 240 - summary.mortgage_paid_month
        assert records[-1].remaining_principal == 0

    def test_reference_scenario_fills_funds_in_order(self, reference_config):
        _, summary = run_simulation(reference_config)

        assert summary.buffer_funded_month < summary.emergency_funded_month
        assert summary.emergency_funded_month < summary.mortgage_paid_month
        assert summary.buffer_funded_date == "2026-%02d" % summary.buffer_funded_month

    def test_amortization_is_monotonic(self, reference_config):
        records, _ = run_simulation(reference_config)

        for record in records:
            assert 0 <= record.remaining_principal <= record.starting_principal
        for previous, current in zip(records, records[1:]):
            assert current.starting_principal == previous.remaining_principal

    def test_savings_equal_baseline_minus_actual(self, reference_config):
        _, summary = run_simulation(reference_config)

        assert summary.total_interest_baseline == calculate_baseline_interest(reference_config)
        assert summary.total_savings == summary.total_interest_baseline - summary.total_interest_paid
        assert summary.total_savings > 0

    def test_penalty_accounting(self, reference_config):
        config = replace(reference_config, penalty_rate=Decimal("1"))
        records, summary = run_simulation(config)

        assert summary.total_extra_paid_raw > 0
        assert summary.total_penalty_paid == sum(r.penalty_amount for r in records)
        assert abs(
            summary.total_extra_paid_raw - summary.total_extra_paid_effective - summary.total_penalty_paid
        ) < Decimal("1e-10")
        assert summary.penalty_leakage == summary.total_extra_paid_raw - summary.total_extra_paid_effective
        assert Decimal("98.99") < summary.penalty_efficiency < Decimal("99.01")

    def test_runs_are_identical(self, reference_config):
        records_a, summary_a = run_simulation(reference_config)
        records_b, summary_b = run_simulation(reference_config)

        assert records_a == records_b
        assert summary_a == summary_b
        csv_a, csv_b = io.StringIO(), io.StringIO()
        write_ledger_csv(csv_a, records_a)
        write_ledger_csv(csv_b, records_b)
        assert csv_a.getvalue() == csv_b.getvalue()

    def test_month_ceiling_stops_without_payoff(self, make_config):
        config = make_config(
            initial_basic_salary=Decimal("500"),
            policy=AccelerationPolicy(reference_installment=Decimal("500"), max_months=24),
        )
        records, summary = run_simulation(config)

        assert len(records) == 24
        assert summary.mortgage_paid_month is None
        assert summary.mortgage_paid_date is None
        assert summary.months_saved is None
        assert summary.final_buffer_balance == 0

    def test_long_term_stops_at_month_ceiling(self, make_config):
        config = make_config(term_months=600, initial_basic_salary=Decimal("500"))
        records, summary = run_simulation(config)

        assert len(records) == MAX_MONTHS
        assert records[-1].remaining_principal > 0
        assert summary.mortgage_paid_month is None
        assert summary.mortgage_paid_date is None

    def test_policy_cannot_raise_month_ceiling(self, make_config):
        config = make_config(
            term_months=600,
            initial_basic_salary=Decimal("500"),
            policy=AccelerationPolicy(reference_installment=Decimal("500"), max_months=MAX_MONTHS + 1),
        )
        with pytest.raises(ConfigError, match="max_months"):
            run_simulation(config)

    def test_no_extra_payments_means_full_efficiency(self, make_config):
        config = make_config(
            initial_basic_salary=Decimal("500"),
            policy=AccelerationPolicy(reference_installment=Decimal("500"), max_months=24),
        )
        _, summary = run_simulation(config)

        assert summary.total_extra_paid_raw == 0
        assert summary.penalty_efficiency == Decimal("100")
        assert not summary.min_rule_delayed_payoff


@settings(max_examples=20, deadline=None)
@given(
    principal=st.integers(min_value=10_000, max_value=900_000_000),
    term_years=st.integers(min_value=1, max_value=30),
    first_rate_bp=st.integers(min_value=0, max_value=1_200),
    second_rate_bp=st.integers(min_value=0, max_value=1_500),
    salary=st.integers(min_value=0, max_value=40_000_000),
    expenses=st.integers(min_value=0, max_value=20_000_000),
    penalty=st.integers(min_value=0, max_value=5),
)
def test_invariants_hold_for_any_scenario(
    make_config, principal, term_years, first_rate_bp, second_rate_bp, salary, expenses, penalty
):
    config = make_config(
        principal=Decimal(principal),
        term_months=term_years * 12,
        interest_rate_schedule=(
            InterestTier(1, 3, Decimal(first_rate_bp) / 10_000),
            InterestTier(4, 40, Decimal(second_rate_bp) / 10_000),
        ),
        initial_basic_salary=Decimal(salary),
        initial_non_mortgage_expenses=Decimal(expenses),
        penalty_rate=Decimal(penalty),
        policy=AccelerationPolicy(),
    )
    records, summary = run_simulation(config)

    assert len(records) <= MAX_MONTHS
    for record in records:
        assert 0 <= record.remaining_principal <= record.starting_principal
        assert record.buffer_balance >= 0
        assert record.emergency_balance >= 0
        assert record.extra_payment_bucket >= 0
    for previous, current in zip(records, records[1:]):
        assert current.buffer_balance >= previous.buffer_balance
        assert current.emergency_balance >= previous.emergency_balance
        assert current.remaining_principal <= previous.remaining_principal
    assert summary.total_savings == max(0, summary.total_interest_baseline - summary.total_interest_paid)
    assert summary.total_savings >= 0
