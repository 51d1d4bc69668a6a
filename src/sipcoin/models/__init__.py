"""Pydantic models defining shared data contracts."""

from sipcoin.models.points import PointsBreakdown, PointsCalculation
from sipcoin.models.profile import UserBalance
from sipcoin.models.receipt import (
    OcrText,
    Receipt,
    ReceiptFields,
    ReceiptStatus,
    ReceiptUpdate,
)

__all__ = [
    "OcrText",
    "PointsBreakdown",
    "PointsCalculation",
    "Receipt",
    "ReceiptFields",
    "ReceiptStatus",
    "ReceiptUpdate",
    "UserBalance",
]
