"""Tests for receipt repository helpers."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from sipcoin.db.receipts import (
    create_receipt,
    fetch_receipt,
    find_duplicate_receipt,
    list_receipts,
    list_uncredited_receipts,
    mark_receipt_processing,
    update_receipt_record,
)
from sipcoin.errors import ReceiptLockedError, ReceiptNotFoundError


def _create(user_id: str = "user-1", name: str = "receipt.png"):
    return create_receipt(
        user_id=user_id,
        image_path=f"{user_id}/{name}",
        original_filename=name,
        file_size=128,
        file_type="image/png",
    )


def test_create_and_list_receipts():
    first = _create()
    second = _create(name="second.png")
    _create(user_id="someone-else")

    assert first.status == "pending"
    assert first.processing_attempts == 0
    assert first.created_at.tzinfo is not None

    receipts = list_receipts("user-1")
    assert [receipt.id for receipt in receipts] == [second.id, first.id]


def test_fetch_enforces_ownership():
    receipt = _create()

    assert fetch_receipt(receipt.id, user_id="user-1").id == receipt.id
    with pytest.raises(ReceiptNotFoundError):
        fetch_receipt(receipt.id, user_id="intruder")
    with pytest.raises(ReceiptNotFoundError, match="Receipt 9999 not found"):
        fetch_receipt(9999)


def test_mark_processing_counts_attempts():
    receipt = _create()
    update_receipt_record(receipt.id, status="failed", error_message="boom")

    first = mark_receipt_processing(receipt.id, user_id="user-1")
    second = mark_receipt_processing(receipt.id)

    assert first.status == "processing"
    assert first.error_message is None
    assert second.processing_attempts == 2


def test_mark_processing_refuses_submitted_receipts():
    receipt = _create()
    update_receipt_record(receipt.id, status="submitted", sipcoins_earned=70)

    with pytest.raises(ReceiptLockedError):
        mark_receipt_processing(receipt.id, user_id="user-1")

    stored = fetch_receipt(receipt.id)
    assert stored.status == "submitted"
    assert stored.processing_attempts == 0


def test_update_merges_metadata_and_round_trips_values():
    receipt = _create()
    when = datetime(2025, 2, 10, tzinfo=timezone.utc)

    update_receipt_record(
        receipt.id,
        status="processed",
        total_amount=Decimal("12.34"),
        transaction_date=when,
        metadata_updates={"items": ["Latte 4.50"], "confidence": 0.9},
    )
    updated = update_receipt_record(receipt.id, metadata_updates={"edited_at": "now"})

    assert updated.total_amount == Decimal("12.34")
    assert updated.transaction_date == when
    assert updated.items == ["Latte 4.50"]
    assert updated.metadata == {"items": ["Latte 4.50"], "confidence": 0.9, "edited_at": "now"}


def test_update_rejects_unknown_columns():
    receipt = _create()

    with pytest.raises(ValueError, match="image_path"):
        update_receipt_record(receipt.id, image_path="elsewhere.png")


def test_find_duplicate_receipt_matches_same_day():
    when = datetime(2025, 2, 10, 9, 30, tzinfo=timezone.utc)
    values = {
        "status": "processed",
        "merchant_name": "Corner Coffee",
        "total_amount": Decimal("8.37"),
        "transaction_date": when,
    }
    original = _create()
    update_receipt_record(original.id, **values)
    candidate = update_receipt_record(_create(name="again.png").id, **values)
    other_user = update_receipt_record(_create(user_id="user-2").id, **values)

    assert find_duplicate_receipt(candidate) == original.id
    assert find_duplicate_receipt(other_user) is None


def test_find_duplicate_ignores_pending_and_incomplete_receipts():
    pending = _create()
    update_receipt_record(
        pending.id,
        merchant_name="Corner Coffee",
        total_amount=Decimal("8.37"),
        transaction_date=datetime(2025, 2, 10, tzinfo=timezone.utc),
    )
    candidate = update_receipt_record(
        _create(name="again.png").id,
        status="processed",
        merchant_name="Corner Coffee",
        total_amount=Decimal("8.37"),
        transaction_date=datetime(2025, 2, 10, 18, 0, tzinfo=timezone.utc),
    )

    assert find_duplicate_receipt(candidate) is None
    assert find_duplicate_receipt(fetch_receipt(pending.id).model_copy(update={"merchant_name": None})) is None


def test_list_uncredited_receipts():
    credited = _create()
    update_receipt_record(credited.id, status="submitted", metadata_updates={"balance_credited": True})
    stuck = _create(name="stuck.png")
    update_receipt_record(stuck.id, status="submitted", metadata_updates={"balance_credited": False})

    assert [receipt.id for receipt in list_uncredited_receipts()] == [stuck.id]
