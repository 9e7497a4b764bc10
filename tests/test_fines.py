"""
Tests for fine, deadline and penalty arithmetic.

Includes property-based testing with hypothesis for the money invariants.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from app.core.exceptions import ValidationError
from app.utils import fines

money = st.decimals(min_value=Decimal("0"), max_value=Decimal("99999999.99"), places=2, allow_nan=False, allow_infinity=False)


class TestTotalFine:
    def test_base_only(self):
        assert fines.compute_total_fine(Decimal("500.00")) == Decimal("500.00")

    def test_with_additional_penalties(self):
        assert fines.compute_total_fine(Decimal("500.00"), Decimal("150.50")) == Decimal("650.50")

    def test_float_inputs_do_not_drift(self):
        assert fines.compute_total_fine(0.1, 0.2) == Decimal("0.30")

    def test_never_negative(self):
        assert fines.compute_total_fine(Decimal("10.00"), Decimal("-50.00")) == Decimal("0.00")

    @given(money, money)
    def test_property_total_is_exact_sum(self, base, additional):
        """Property test: total == base + additional and is never negative"""
        total = fines.compute_total_fine(base, additional)
        assert total == base + additional
        assert total >= 0
        assert total.as_tuple().exponent == -2


class TestTotalAmount:
    def test_adds_processing_fee(self):
        assert fines.compute_total_amount(Decimal("500.00"), Decimal("15.00")) == Decimal("515.00")

    def test_missing_fee_is_zero(self):
        assert fines.compute_total_amount(Decimal("500.00")) == Decimal("500.00")

    @given(money, money)
    def test_property_amount_plus_fee(self, amount, fee):
        assert fines.compute_total_amount(amount, fee) == amount + fee


class TestDeadline:
    def test_thirty_days_after_violation(self):
        deadline, due_date = fines.compute_payment_deadline(datetime(2024, 3, 10))
        assert deadline == datetime(2024, 4, 9)
        assert due_date == deadline.date()

    def test_custom_days(self):
        deadline, _ = fines.compute_payment_deadline(datetime(2024, 1, 31), days=1)
        assert deadline == datetime(2024, 2, 1)

    @given(st.datetimes(min_value=datetime(1990, 1, 1), max_value=datetime(2900, 1, 1)))
    def test_property_deadline_is_exactly_thirty_days(self, violation_date):
        deadline, due_date = fines.compute_payment_deadline(violation_date)
        assert deadline - violation_date == timedelta(days=30)
        assert due_date == deadline.date()


class TestLatePenalty:
    def test_ten_percent_of_base(self):
        assert fines.compute_late_penalty(Decimal("500.00")) == Decimal("50.00")

    def test_rounds_half_up(self):
        assert fines.compute_late_penalty(Decimal("0.05"), Decimal("0.10")) == Decimal("0.01")

    def test_custom_rate(self):
        assert fines.compute_late_penalty(Decimal("1000.00"), Decimal("0.25")) == Decimal("250.00")


class TestViolationDate:
    def test_past_and_present_are_accepted(self):
        now = datetime(2024, 3, 15, 10, 0)
        fines.validate_violation_date(datetime(2024, 3, 15, 10, 0), now)
        fines.validate_violation_date(datetime(2020, 1, 1), now)

    def test_future_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            fines.validate_violation_date(datetime(2024, 3, 16), datetime(2024, 3, 15, 10, 0))
        assert exc_info.value.code == "VALIDATION_ERROR"


class TestToMoney:
    def test_none_is_zero(self):
        assert fines.to_money(None) == Decimal("0.00")

    def test_quantizes_strings_and_ints(self):
        assert fines.to_money("12.345") == Decimal("12.35")
        assert fines.to_money(7) == Decimal("7.00")
