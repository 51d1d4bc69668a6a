"""Receipt persistence helpers scoped to the owning user."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from sipcoin.errors import ReceiptLockedError, ReceiptNotFoundError
from sipcoin.models.receipt import Receipt

from .models import ReceiptORM
from .repository import session_scope

# Columns callers may overwrite through update_receipt_record.
UPDATABLE_COLUMNS = frozenset(
    {
        "status",
        "ocr_text",
        "confidence",
        "total_amount",
        "merchant_name",
        "merchant_address",
        "transaction_date",
        "transaction_time",
        "tax_amount",
        "subtotal_amount",
        "ocr_total_amount",
        "ocr_merchant_name",
        "sipcoins_earned",
        "error_message",
        "processed_at",
    }
)
DUPLICATE_CANDIDATE_STATUSES = ("processed", "submitted")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_storage_datetime(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo, so persist naive UTC."""
    if value is None:
        return None
    return _as_utc(value).replace(tzinfo=None)


def _payload_to_dict(payload: Optional[str]) -> Dict[str, Any]:
    if payload is None:
        return {}
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return {"raw": payload}
    if isinstance(parsed, dict):
        return parsed
    return {"raw": parsed}


def _dict_to_payload(metadata: Dict[str, Any]) -> str:
    return json.dumps(metadata, separators=(",", ":"), sort_keys=True, default=str)


def _to_receipt_model(row: ReceiptORM) -> Receipt:
    metadata = _payload_to_dict(row.payload)
    return Receipt.model_validate(
        {
            "id": row.id,
            "user_id": row.user_id,
            "image_path": row.image_path,
            "original_filename": row.original_filename,
            "file_size": row.file_size,
            "file_type": row.file_type,
            "status": row.status,
            "processing_attempts": row.processing_attempts,
            "ocr_text": row.ocr_text,
            "confidence": row.confidence,
            "total_amount": row.total_amount,
            "merchant_name": row.merchant_name,
            "merchant_address": row.merchant_address,
            "transaction_date": _as_utc(row.transaction_date),
            "transaction_time": row.transaction_time,
            "tax_amount": row.tax_amount,
            "subtotal_amount": row.subtotal_amount,
            "items": metadata.get("items") or [],
            "ocr_total_amount": row.ocr_total_amount,
            "ocr_merchant_name": row.ocr_merchant_name,
            "sipcoins_earned": row.sipcoins_earned,
            "error_message": row.error_message,
            "metadata": metadata,
            "created_at": _as_utc(row.created_at),
            "processed_at": _as_utc(row.processed_at),
            "updated_at": _as_utc(row.updated_at),
        }
    )


def _get_owned(session: Session, receipt_id: int, user_id: Optional[str]) -> ReceiptORM:
    record = session.get(ReceiptORM, receipt_id)
    if record is None or (user_id is not None and record.user_id != user_id):
        raise ReceiptNotFoundError(receipt_id)
    return record


def create_receipt(
    *,
    user_id: str,
    image_path: str,
    original_filename: Optional[str],
    file_size: int,
    file_type: Optional[str],
) -> Receipt:
    """Persist a freshly uploaded receipt in ``pending`` state."""

    with session_scope() as session:
        record = ReceiptORM(
            user_id=user_id,
            image_path=image_path,
            original_filename=original_filename,
            file_size=file_size,
            file_type=file_type,
            status="pending",
            processing_attempts=0,
        )
        session.add(record)
        session.flush()
        session.refresh(record)
        return _to_receipt_model(record)


def fetch_receipt(receipt_id: int, *, user_id: Optional[str] = None) -> Receipt:
    """Return a receipt, optionally enforcing ownership, or raise if not found."""

    with session_scope() as session:
        return _to_receipt_model(_get_owned(session, receipt_id, user_id))


def list_receipts(user_id: str) -> List[Receipt]:
    """Return a user's receipts, newest first."""

    with session_scope() as session:
        rows = (
            session.execute(
                select(ReceiptORM)
                .where(ReceiptORM.user_id == user_id)
                .order_by(ReceiptORM.created_at.desc(), ReceiptORM.id.desc())
            )
            .scalars()
            .all()
        )
        return [_to_receipt_model(row) for row in rows]


def mark_receipt_processing(receipt_id: int, *, user_id: Optional[str] = None) -> Receipt:
    """
    Move a receipt to ``processing`` and count the attempt.

    Raises ``ReceiptLockedError`` when the receipt has already been submitted.
    """

    with session_scope() as session:
        record = _get_owned(session, receipt_id, user_id)
        result = session.execute(
            update(ReceiptORM)
            .where(ReceiptORM.id == receipt_id, ReceiptORM.status != "submitted")
            .values(
                status="processing",
                processing_attempts=ReceiptORM.processing_attempts + 1,
                error_message=None,
            )
        )
        if result.rowcount == 0:
            raise ReceiptLockedError(f"Receipt {receipt_id} has already been submitted")
        session.flush()
        session.refresh(record)
        return _to_receipt_model(record)


def update_receipt_record(
    receipt_id: int,
    *,
    user_id: Optional[str] = None,
    metadata_updates: Optional[Dict[str, Any]] = None,
    **fields: Any,
) -> Receipt:
    """Apply a partial update; ``metadata_updates`` is merged into the stored metadata."""

    unknown = set(fields) - UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"Cannot update receipt column(s): {', '.join(sorted(unknown))}")

    with session_scope() as session:
        record = _get_owned(session, receipt_id, user_id)
        for column, value in fields.items():
            if isinstance(value, datetime):
                value = _to_storage_datetime(value)
            setattr(record, column, value)
        if metadata_updates:
            metadata = _payload_to_dict(record.payload)
            metadata.update(metadata_updates)
            record.payload = _dict_to_payload(metadata)
        session.flush()
        session.refresh(record)
        return _to_receipt_model(record)


def find_duplicate_receipt(receipt: Receipt) -> Optional[int]:
    """
    Return the id of an earlier receipt with the same merchant, amount and day.

    Only receipts of the same user that already made it through OCR count.
    """

    if not receipt.merchant_name or not receipt.total_amount or not receipt.transaction_date:
        return None

    day_start = _to_storage_datetime(
        _as_utc(receipt.transaction_date).replace(hour=0, minute=0, second=0, microsecond=0)
    )
    day_end = day_start + timedelta(days=1)
    with session_scope() as session:
        duplicate_id = session.execute(
            select(ReceiptORM.id)
            .where(
                ReceiptORM.user_id == receipt.user_id,
                ReceiptORM.id != receipt.id,
                ReceiptORM.merchant_name == receipt.merchant_name,
                ReceiptORM.total_amount == receipt.total_amount,
                ReceiptORM.transaction_date >= day_start,
                ReceiptORM.transaction_date < day_end,
                ReceiptORM.status.in_(DUPLICATE_CANDIDATE_STATUSES),
            )
            .order_by(ReceiptORM.id.asc())
            .limit(1)
        ).scalar_one_or_none()
        return duplicate_id


def list_uncredited_receipts() -> List[Receipt]:
    """Submitted receipts whose award never reached the user's balance."""

    with session_scope() as session:
        rows = (
            session.execute(
                select(ReceiptORM)
                .where(ReceiptORM.status == "submitted")
                .order_by(ReceiptORM.id.asc())
            )
            .scalars()
            .all()
        )
        receipts = [_to_receipt_model(row) for row in rows]
    return [receipt for receipt in receipts if receipt.metadata.get("balance_credited") is False]


__all__ = [
    "create_receipt",
    "fetch_receipt",
    "find_duplicate_receipt",
    "list_receipts",
    "list_uncredited_receipts",
    "mark_receipt_processing",
    "update_receipt_record",
]
