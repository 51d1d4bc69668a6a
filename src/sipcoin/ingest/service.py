"""Receipt ingestion orchestration: upload, OCR, user edits, submission and credit."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Callable, List, Optional, Protocol
from uuid import uuid4

from sipcoin import metrics
from sipcoin.config import Settings, get_settings
from sipcoin.db.images import LocalImageStore
from sipcoin.db.profiles import credit_balance, get_balance
from sipcoin.db.receipts import (
    create_receipt,
    fetch_receipt,
    find_duplicate_receipt,
    list_receipts,
    list_uncredited_receipts,
    mark_receipt_processing,
    update_receipt_record,
)
from sipcoin.errors import (
    BalanceCreditError,
    InvalidReceiptUpdateError,
    InvalidUploadError,
    OcrTimeoutError,
    PointsInvariantError,
    ReceiptLockedError,
)
from sipcoin.ingest.locks import DEFAULT_USER_LOCKS, UserLockRegistry
from sipcoin.models.points import PointsCalculation
from sipcoin.models.profile import UserBalance
from sipcoin.models.receipt import OcrText, Receipt, ReceiptFields, ReceiptUpdate
from sipcoin.ocr.engine import TesseractOcrEngine
from sipcoin.ocr.extractor import FieldExtractor, parse_transaction_date
from sipcoin.rewards.points import calculate_points, validate_points_calculation
from sipcoin.rewards.validation import SubmissionDecision, SubmissionPolicy, SubmissionValidator

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}
_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class OcrEngine(Protocol):
    def recognize(self, data: bytes) -> OcrText: ...


class ImageStore(Protocol):
    def upload(self, path: str, data: bytes) -> str: ...

    def download(self, path: str) -> bytes: ...

    def remove(self, path: str) -> None: ...


@dataclass
class ProcessingResult:
    receipt: Receipt
    fields: Optional[ReceiptFields] = None
    confidence: Optional[float] = None


@dataclass
class SubmissionResult:
    receipt: Receipt
    decision: SubmissionDecision
    points: Optional[PointsCalculation] = None
    balance: Optional[UserBalance] = None

    @property
    def accepted(self) -> bool:
        return self.decision.accepted


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceiptIngestionService:
    """
    Drive a receipt from upload to credited points.

    Every store and engine is injectable; defaults talk to the SQLite stores,
    the local image store and Tesseract. ``process_receipt`` never leaves a
    receipt in ``processing``: any failure lands it in ``failed`` with the error
    recorded. ``submit_receipt`` holds a per-user lock from validation through
    balance credit.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        image_store: Optional[ImageStore] = None,
        ocr_engine: Optional[OcrEngine] = None,
        extractor: Optional[FieldExtractor] = None,
        validator: Optional[SubmissionValidator] = None,
        receipt_creator: Callable[..., Receipt] = create_receipt,
        receipt_fetcher: Callable[..., Receipt] = fetch_receipt,
        receipt_lister: Callable[[str], List[Receipt]] = list_receipts,
        uncredited_lister: Callable[[], List[Receipt]] = list_uncredited_receipts,
        processing_marker: Callable[..., Receipt] = mark_receipt_processing,
        receipt_updater: Callable[..., Receipt] = update_receipt_record,
        balance_getter: Callable[[str], UserBalance] = get_balance,
        balance_crediter: Callable[[str, int], UserBalance] = credit_balance,
        user_locks: UserLockRegistry = DEFAULT_USER_LOCKS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings or get_settings()
        self._image_store = image_store or LocalImageStore(self._settings.image_store_path)
        self._ocr_engine = ocr_engine or TesseractOcrEngine(
            lang=self._settings.ocr_default_lang,
            timeout=self._settings.ocr_timeout_seconds,
        )
        self._extractor = extractor or FieldExtractor()
        self._validator = validator or SubmissionValidator(
            SubmissionPolicy.from_settings(self._settings),
            duplicate_finder=find_duplicate_receipt,
        )
        self._create_receipt = receipt_creator
        self._fetch_receipt = receipt_fetcher
        self._list_receipts = receipt_lister
        self._list_uncredited = uncredited_lister
        self._mark_processing = processing_marker
        self._update_receipt = receipt_updater
        self._get_balance = balance_getter
        self._credit_balance = balance_crediter
        self._user_locks = user_locks
        self._clock = clock

    def upload_receipt(
        self,
        user_id: str,
        *,
        filename: Optional[str],
        content_type: Optional[str],
        content: bytes,
    ) -> Receipt:
        """Store an uploaded image and create its ``pending`` receipt."""

        if not content:
            raise InvalidUploadError("Uploaded file is empty.")
        normalized_type = (content_type or "").lower()
        extension = ALLOWED_IMAGE_TYPES.get(normalized_type)
        if extension is None:
            raise InvalidUploadError("Invalid file type. Only JPEG, PNG, and WebP are allowed.")
        max_bytes = self._settings.max_upload_bytes
        if len(content) > max_bytes:
            raise InvalidUploadError(
                f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB."
            )

        suffix = PurePosixPath(filename or "").suffix.lstrip(".").lower() or extension
        owner_segment = _UNSAFE_PATH_CHARS.sub("_", user_id)
        image_path = f"{owner_segment}/{int(time.time() * 1000)}-{uuid4().hex[:8]}.{suffix}"
        self._image_store.upload(image_path, content)
        try:
            receipt = self._create_receipt(
                user_id=user_id,
                image_path=image_path,
                original_filename=filename,
                file_size=len(content),
                file_type=normalized_type,
            )
        except Exception:
            logger.exception("Failed to create receipt record; removing image %s", image_path)
            self._image_store.remove(image_path)
            raise
        logger.info(
            "Stored receipt id=%s user=%s size=%s",
            receipt.id,
            user_id,
            len(content),
            extra={"user_id": user_id, "receipt_id": receipt.id},
        )
        return receipt

    def get_receipt(self, receipt_id: int, *, user_id: str) -> Receipt:
        return self._fetch_receipt(receipt_id, user_id=user_id)

    def list_receipts(self, user_id: str) -> List[Receipt]:
        return self._list_receipts(user_id)

    def get_balance(self, user_id: str) -> UserBalance:
        return self._get_balance(user_id)

    def list_uncredited_receipts(self) -> List[Receipt]:
        """Submitted receipts whose points never reached the balance."""

        return self._list_uncredited()

    def process_receipt(self, receipt_id: int, *, user_id: str) -> ProcessingResult:
        """Run OCR and field extraction for a receipt and persist the outcome."""

        log_extra = {"user_id": user_id, "receipt_id": receipt_id}
        with self._user_locks.hold(user_id):
            receipt = self._fetch_receipt(receipt_id, user_id=user_id)
            if receipt.status == "submitted":
                raise ReceiptLockedError("Receipt has already been submitted and cannot be reprocessed.")
            self._mark_processing(receipt_id, user_id=user_id)
        logger.debug("Starting OCR for receipt_id=%s", receipt_id, extra=log_extra)
        try:
            image = self._image_store.download(receipt.image_path)
            ocr = self._ocr_engine.recognize(image)
            fields = self._extractor.extract(ocr.text)
        except OcrTimeoutError as exc:
            logger.warning("OCR timed out receipt_id=%s: %s", receipt_id, exc, extra=log_extra)
            return ProcessingResult(receipt=self._record_failure(receipt_id, user_id, exc, "timeout"))
        except Exception as exc:
            logger.exception("OCR pipeline failed receipt_id=%s", receipt_id, extra=log_extra)
            return ProcessingResult(receipt=self._record_failure(receipt_id, user_id, exc, "failed"))

        found_total = fields.total_amount is not None
        status = "processed" if found_total else "failed"
        updated = self._update_receipt(
            receipt_id,
            user_id=user_id,
            status=status,
            ocr_text=ocr.text,
            confidence=ocr.confidence,
            total_amount=fields.total_amount,
            merchant_name=fields.merchant_name,
            merchant_address=fields.merchant_address,
            transaction_date=parse_transaction_date(fields.transaction_date),
            transaction_time=fields.transaction_time,
            tax_amount=fields.tax_amount,
            subtotal_amount=fields.subtotal_amount,
            ocr_total_amount=fields.total_amount,
            ocr_merchant_name=fields.merchant_name,
            error_message=None if found_total else "Could not detect a total amount on the receipt.",
            processed_at=self._clock(),
            metadata_updates={
                "items": fields.items,
                "confidence": ocr.confidence,
                "raw_transaction_date": fields.transaction_date,
                "extraction_warnings": fields.warnings(),
                "ocr": ocr.metadata,
            },
        )
        metrics.OCR_JOBS.labels(status=status).inc()
        logger.info(
            "OCR finished receipt_id=%s status=%s confidence=%s total=%s",
            receipt_id,
            status,
            ocr.confidence,
            fields.total_amount,
            extra=log_extra,
        )
        return ProcessingResult(receipt=updated, fields=fields, confidence=ocr.confidence)

    def _record_failure(
        self, receipt_id: int, user_id: str, exc: Exception, metric_status: str
    ) -> Receipt:
        metrics.OCR_JOBS.labels(status=metric_status).inc()
        return self._update_receipt(
            receipt_id,
            user_id=user_id,
            status="failed",
            error_message=str(exc) or exc.__class__.__name__,
            processed_at=self._clock(),
        )

    def update_receipt(self, receipt_id: int, *, user_id: str, changes: ReceiptUpdate) -> Receipt:
        """Apply user edits to merchant, date, amount or items before submission."""

        values = changes.changes()
        items = values.pop("items", None)
        if not values and items is None:
            raise InvalidReceiptUpdateError("No receipt changes supplied.")

        metadata_updates = {"edited_at": self._clock().isoformat()}
        if items is not None:
            metadata_updates["items"] = [item.strip() for item in items if item.strip()]

        with self._user_locks.hold(user_id):
            receipt = self._fetch_receipt(receipt_id, user_id=user_id)
            if receipt.status == "submitted":
                raise ReceiptLockedError("Receipt has already been submitted and can no longer be edited.")
            updated = self._update_receipt(
                receipt_id,
                user_id=user_id,
                metadata_updates=metadata_updates,
                **values,
            )
        logger.info(
            "Receipt edited receipt_id=%s fields=%s",
            receipt_id,
            sorted(values) + (["items"] if items is not None else []),
            extra={"user_id": user_id, "receipt_id": receipt_id},
        )
        return updated

    def submit_receipt(self, receipt_id: int, *, user_id: str) -> SubmissionResult:
        """
        Validate a processed receipt, award points and credit the owner's balance.

        Validation rejections come back as a non-accepted result. Raises
        ``InvalidAmountError`` when no positive amount is available and
        ``BalanceCreditError`` when the award was stored but the credit failed.
        """

        log_extra = {"user_id": user_id, "receipt_id": receipt_id}
        with self._user_locks.hold(user_id):
            receipt = self._fetch_receipt(receipt_id, user_id=user_id)
            now = self._clock()
            decision = self._validator.validate(receipt, now=now)
            if not decision.accepted:
                reason = decision.reason.value if decision.reason is not None else "rejected"
                metrics.SUBMISSIONS.labels(result=reason).inc()
                return SubmissionResult(receipt=receipt, decision=decision)

            points = calculate_points(
                receipt.total_amount,
                merchant_name=receipt.merchant_name,
                transaction_date=receipt.transaction_date,
            )
            problems = validate_points_calculation(points)
            if problems:
                raise PointsInvariantError("; ".join(problems))

            awarded = self._update_receipt(
                receipt_id,
                user_id=user_id,
                status="submitted",
                sipcoins_earned=points.total_points,
                metadata_updates={
                    "points_calculation": points.model_dump(),
                    "submitted_at": now.isoformat(),
                    "balance_credited": False,
                },
            )

            try:
                balance = self._credit_balance(user_id, points.total_points)
            except Exception as exc:
                metrics.BALANCE_CREDIT_FAILURES.inc()
                logger.error(
                    "Balance credit failed after award was stored receipt_id=%s points=%s; "
                    "reconciliation required",
                    receipt_id,
                    points.total_points,
                    exc_info=True,
                    extra=log_extra,
                )
                raise BalanceCreditError(receipt_id, user_id, points.total_points) from exc

            try:
                awarded = self._update_receipt(
                    receipt_id,
                    user_id=user_id,
                    metadata_updates={
                        "balance_credited": True,
                        "balance_credited_at": self._clock().isoformat(),
                    },
                )
            except Exception:
                logger.exception(
                    "Balance credited but receipt flag not updated receipt_id=%s",
                    receipt_id,
                    extra=log_extra,
                )

        metrics.SUBMISSIONS.labels(result="accepted").inc()
        metrics.POINTS_AWARDED.inc(points.total_points)
        logger.info(
            "Receipt submitted receipt_id=%s points=%s balance=%s",
            receipt_id,
            points.total_points,
            balance.sipcoins_balance,
            extra=log_extra,
        )
        return SubmissionResult(receipt=awarded, decision=decision, points=points, balance=balance)


__all__ = [
    "ALLOWED_IMAGE_TYPES",
    "ProcessingResult",
    "ReceiptIngestionService",
    "SubmissionResult",
]
