"""Anti-fraud gate applied before a processed receipt is credited."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from sipcoin.config import Settings
from sipcoin.models.receipt import Receipt

logger = logging.getLogger(__name__)

# (receipt) -> id of an earlier matching receipt, or None
DuplicateFinder = Callable[[Receipt], Optional[int]]

SHORT_MERCHANT_NAME = 3


class RejectionReason(str, Enum):
    NOT_READY = "not_ready"
    LOW_CONFIDENCE = "low_confidence"
    RECEIPT_TOO_OLD = "receipt_too_old"
    AMOUNT_DRIFT_TOO_LARGE = "amount_drift_too_large"
    MERCHANT_DRIFT_TOO_LARGE = "merchant_drift_too_large"
    DUPLICATE_RECEIPT = "duplicate_receipt"


@dataclass(frozen=True)
class SubmissionPolicy:
    """Thresholds applied by the submission validator."""

    min_confidence: float = 0.7
    max_age: timedelta = timedelta(days=7)
    amount_drift_tolerance: Decimal = Decimal("0.10")
    # Duplicate detection stays off until product re-enables it.
    duplicate_check_enabled: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "SubmissionPolicy":
        return cls(
            min_confidence=settings.min_ocr_confidence,
            max_age=timedelta(days=settings.max_receipt_age_days),
            amount_drift_tolerance=Decimal(str(settings.amount_drift_tolerance)),
            duplicate_check_enabled=settings.duplicate_check_enabled,
        )


@dataclass(frozen=True)
class SubmissionDecision:
    """Outcome of validating a receipt for submission."""

    accepted: bool
    reason: Optional[RejectionReason] = None
    message: Optional[str] = None
    duplicate_receipt_id: Optional[int] = None

    @classmethod
    def ok(cls) -> "SubmissionDecision":
        return cls(accepted=True)

    @classmethod
    def reject(
        cls,
        reason: RejectionReason,
        message: str,
        *,
        duplicate_receipt_id: Optional[int] = None,
    ) -> "SubmissionDecision":
        return cls(
            accepted=False,
            reason=reason,
            message=message,
            duplicate_receipt_id=duplicate_receipt_id,
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SubmissionValidator:
    """
    Decide whether a processed receipt may be submitted for credit.

    Checks run in a fixed order and stop at the first failure: readiness, OCR
    confidence, receipt age, edited-amount drift, edited-merchant drift, and
    (when enabled) duplicate detection. Rejections are returned, never raised.
    """

    def __init__(
        self,
        policy: Optional[SubmissionPolicy] = None,
        *,
        duplicate_finder: Optional[DuplicateFinder] = None,
    ) -> None:
        self._policy = policy or SubmissionPolicy()
        self._duplicate_finder = duplicate_finder

    @property
    def policy(self) -> SubmissionPolicy:
        return self._policy

    def validate(self, receipt: Receipt, *, now: Optional[datetime] = None) -> SubmissionDecision:
        decision = (
            self._check_ready(receipt)
            or self._check_confidence(receipt)
            or self._check_age(receipt, _as_utc(now or datetime.now(timezone.utc)))
            or self._check_amount_drift(receipt)
            or self._check_merchant_drift(receipt)
            or self._check_duplicate(receipt)
        )
        if decision is None:
            return SubmissionDecision.ok()
        logger.info(
            "Submission rejected receipt_id=%s reason=%s",
            receipt.id,
            decision.reason.value if decision.reason else None,
        )
        return decision

    def _check_ready(self, receipt: Receipt) -> Optional[SubmissionDecision]:
        if receipt.status == "submitted":
            return SubmissionDecision.reject(
                RejectionReason.NOT_READY, "Receipt has already been submitted."
            )
        if receipt.status != "processed":
            return SubmissionDecision.reject(
                RejectionReason.NOT_READY, "Receipt must be processed before submission."
            )
        if receipt.total_amount is None:
            return SubmissionDecision.reject(
                RejectionReason.NOT_READY, "Receipt total amount is required."
            )
        return None

    def _check_confidence(self, receipt: Receipt) -> Optional[SubmissionDecision]:
        if receipt.confidence is not None and receipt.confidence < self._policy.min_confidence:
            return SubmissionDecision.reject(
                RejectionReason.LOW_CONFIDENCE,
                "Low OCR confidence. Please retake the photo for better results.",
            )
        return None

    def _check_age(self, receipt: Receipt, now: datetime) -> Optional[SubmissionDecision]:
        if receipt.transaction_date is None:
            return None
        if now - _as_utc(receipt.transaction_date) > self._policy.max_age:
            return SubmissionDecision.reject(
                RejectionReason.RECEIPT_TOO_OLD,
                f"Receipt is too old. Only receipts from the last {self._policy.max_age.days} "
                "days are accepted.",
            )
        return None

    def _check_amount_drift(self, receipt: Receipt) -> Optional[SubmissionDecision]:
        original = receipt.ocr_total_amount
        current = receipt.total_amount
        if not original or not current:
            return None
        if abs(current - original) > original * self._policy.amount_drift_tolerance:
            return SubmissionDecision.reject(
                RejectionReason.AMOUNT_DRIFT_TOO_LARGE,
                "Submitted amount differs significantly from OCR result.",
            )
        return None

    def _check_merchant_drift(self, receipt: Receipt) -> Optional[SubmissionDecision]:
        original = receipt.ocr_merchant_name
        current = receipt.merchant_name
        if not original or not current:
            return None
        original_lower = original.lower()
        current_lower = current.lower()
        if original_lower == current_lower:
            return None
        if len(original) <= SHORT_MERCHANT_NAME or len(current) <= SHORT_MERCHANT_NAME:
            return None
        if original_lower in current_lower:
            return None
        return SubmissionDecision.reject(
            RejectionReason.MERCHANT_DRIFT_TOO_LARGE,
            "Submitted merchant name is too different from OCR result.",
        )

    def _check_duplicate(self, receipt: Receipt) -> Optional[SubmissionDecision]:
        if not self._policy.duplicate_check_enabled or self._duplicate_finder is None:
            return None
        duplicate_id = self._duplicate_finder(receipt)
        if duplicate_id is None:
            return None
        return SubmissionDecision.reject(
            RejectionReason.DUPLICATE_RECEIPT,
            "Duplicate receipt detected.",
            duplicate_receipt_id=duplicate_id,
        )


__all__ = [
    "DuplicateFinder",
    "RejectionReason",
    "SubmissionDecision",
    "SubmissionPolicy",
    "SubmissionValidator",
]
