"""Exception types raised across the ingestion pipeline."""

from __future__ import annotations


class SipcoinError(Exception):
    """Base class for SipCoin pipeline errors."""


class ReceiptNotFoundError(SipcoinError, ValueError):
    """Raised when a receipt does not exist or belongs to another user."""

    def __init__(self, receipt_id: int):
        super().__init__(f"Receipt {receipt_id} not found")
        self.receipt_id = receipt_id


class ReceiptLockedError(SipcoinError):
    """Raised when a receipt can no longer be changed (already submitted)."""


class InvalidUploadError(SipcoinError, ValueError):
    """Raised when an uploaded file is empty, too large or of an unsupported type."""


class InvalidReceiptUpdateError(SipcoinError, ValueError):
    """Raised when a user edit carries values that cannot be stored."""


class InvalidAmountError(SipcoinError, ValueError):
    """Raised when points are requested for a missing or non-positive amount."""


class PointsInvariantError(SipcoinError, RuntimeError):
    """Raised when a points calculation breaks its own arithmetic invariants."""


class OcrEngineError(SipcoinError, RuntimeError):
    """Raised when the OCR engine cannot recognise an image."""


class OcrTimeoutError(OcrEngineError):
    """Raised when the OCR engine exceeds its time budget."""


class BalanceCreditError(SipcoinError, RuntimeError):
    """Raised when an award was persisted but the balance credit failed."""

    def __init__(self, receipt_id: int, user_id: str, points: int):
        super().__init__(
            f"Balance credit of {points} point(s) failed for user {user_id} "
            f"(receipt {receipt_id}); receipt flagged for reconciliation"
        )
        self.receipt_id = receipt_id
        self.user_id = user_id
        self.points = points


__all__ = [
    "SipcoinError",
    "ReceiptNotFoundError",
    "ReceiptLockedError",
    "InvalidUploadError",
    "InvalidReceiptUpdateError",
    "InvalidAmountError",
    "PointsInvariantError",
    "OcrEngineError",
    "OcrTimeoutError",
    "BalanceCreditError",
]
