"""Loyalty points calculation for submitted receipts."""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union

from sipcoin.errors import InvalidAmountError
from sipcoin.models.points import PointsBreakdown, PointsCalculation
from sipcoin.ocr.extractor import parse_transaction_date

POINTS_PER_CURRENCY_UNIT = 2
FIRST_VISIT_BONUS = 50
WEEKEND_MULTIPLIER = Decimal("0.25")
PROMOTION_THRESHOLD = Decimal("50")
PROMOTION_BONUS = 25
HIGH_VALUE_THRESHOLD = Decimal("100")
HIGH_VALUE_RATE = Decimal("0.1")

_WEEKEND_DAYS = {5, 6}  # Saturday, Sunday

TransactionDate = Union[date, datetime, str, None]


def _coerce_date(value: TransactionDate) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return parse_transaction_date(value)


def calculate_points(
    total_amount: Union[Decimal, float, int, None],
    *,
    merchant_name: Optional[str] = None,
    transaction_date: TransactionDate = None,
) -> PointsCalculation:
    """
    Score a receipt.

    Two points per currency unit (rounded down), a flat first-visit bonus, a
    quarter of the base on weekends, and tiered bonuses for receipts of 50 and
    100 or more. ``merchant_name`` is accepted for the first-visit rule but
    visit history is not consulted.

    Raises:
        InvalidAmountError: if ``total_amount`` is missing or not positive.
    """

    if total_amount is None:
        raise InvalidAmountError("Cannot calculate points without a valid amount")
    amount = Decimal(str(total_amount))
    if amount <= 0:
        raise InvalidAmountError("Cannot calculate points without a valid amount")

    base_points = math.floor(amount * POINTS_PER_CURRENCY_UNIT)

    weekend_bonus = 0
    when = _coerce_date(transaction_date)
    if when is not None and when.weekday() in _WEEKEND_DAYS:
        weekend_bonus = math.floor(base_points * WEEKEND_MULTIPLIER)

    special_promotion = 0
    if amount >= PROMOTION_THRESHOLD:
        special_promotion += PROMOTION_BONUS
    if amount >= HIGH_VALUE_THRESHOLD:
        special_promotion += math.floor(amount * HIGH_VALUE_RATE)

    breakdown = PointsBreakdown(
        receipt_amount=base_points,
        first_visit_bonus=FIRST_VISIT_BONUS,
        weekend_bonus=weekend_bonus,
        special_promotion=special_promotion,
    )
    bonus_points = breakdown.bonus_total()
    return PointsCalculation(
        base_points=base_points,
        bonus_points=bonus_points,
        total_points=base_points + bonus_points,
        breakdown=breakdown,
    )


def validate_points_calculation(calculation: PointsCalculation) -> List[str]:
    """Return the arithmetic invariants a calculation violates (empty when sound)."""

    errors: List[str] = []
    if calculation.base_points < 0:
        errors.append("Base points cannot be negative")
    if calculation.bonus_points < 0:
        errors.append("Bonus points cannot be negative")
    if calculation.total_points != calculation.base_points + calculation.bonus_points:
        errors.append("Total points calculation is incorrect")
    if calculation.breakdown.receipt_amount != calculation.base_points:
        errors.append("Breakdown receipt amount does not match base points")
    if calculation.breakdown.bonus_total() != calculation.bonus_points:
        errors.append("Breakdown bonuses do not add up to bonus points")
    return errors


__all__ = ["calculate_points", "validate_points_calculation"]
