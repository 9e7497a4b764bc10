"""
Fine calculation: totals, deadlines and the late penalty.

All money is ``Decimal`` quantized to two places; floats are converted through
``str`` so binary drift never reaches a stored amount.
"""
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple, Union

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.utils.clock import utcnow

CENT = Decimal("0.01")

Money = Union[Decimal, int, float, str]


def to_money(value: Optional[Money]) -> Decimal:
    """Convert ``value`` to a two-place Decimal (``None`` becomes 0.00)."""
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_total_fine(base_fine: Money, additional_penalties: Optional[Money] = None) -> Decimal:
    """Total payable for a violation, never below zero."""
    total = to_money(base_fine) + to_money(additional_penalties)
    return max(Decimal("0.00"), total)


def compute_total_amount(amount: Money, processing_fee: Optional[Money] = None) -> Decimal:
    return to_money(amount) + to_money(processing_fee)


def compute_late_penalty(base_fine: Money, rate: Optional[Decimal] = None) -> Decimal:
    rate = settings.LATE_PENALTY_RATE if rate is None else Decimal(str(rate))
    return to_money(to_money(base_fine) * rate)


def compute_payment_deadline(violation_date: datetime, days: Optional[int] = None) -> Tuple[datetime, date]:
    """
    Payment deadline for a violation.

    Returns:
        (payment_deadline, due_date) where due_date is the calendar date of
        the same instant.
    """
    days = settings.PAYMENT_DEADLINE_DAYS if days is None else days
    deadline = violation_date + timedelta(days=days)
    return deadline, deadline.date()


def validate_violation_date(violation_date: datetime, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    if violation_date > now:
        raise ValidationError("Violation date cannot be in the future")
