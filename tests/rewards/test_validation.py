"""Tests for the submission validator."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from sipcoin.rewards.validation import (
    RejectionReason,
    SubmissionPolicy,
    SubmissionValidator,
)
from tests.helpers import make_receipt

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


def _validate(receipt, **policy_overrides):
    validator = SubmissionValidator(SubmissionPolicy(**policy_overrides))
    return validator.validate(receipt, now=NOW)


def test_clean_receipt_is_accepted():
    decision = _validate(make_receipt(transaction_date=NOW - timedelta(days=1)))

    assert decision.accepted
    assert decision.reason is None


@pytest.mark.parametrize(
    ("status", "message"),
    [
        ("pending", "must be processed"),
        ("failed", "must be processed"),
        ("submitted", "already been submitted"),
    ],
)
def test_unprocessed_receipts_are_not_ready(status, message):
    decision = _validate(make_receipt(status=status, transaction_date=NOW))

    assert decision.reason is RejectionReason.NOT_READY
    assert message in decision.message


def test_missing_total_is_not_ready():
    decision = _validate(make_receipt(total_amount=None, transaction_date=NOW))

    assert decision.reason is RejectionReason.NOT_READY


def test_confidence_gate_boundary():
    low = _validate(make_receipt(confidence=0.69, transaction_date=NOW))
    exact = _validate(make_receipt(confidence=0.70, transaction_date=NOW))

    assert low.reason is RejectionReason.LOW_CONFIDENCE
    assert exact.accepted


def test_unknown_confidence_passes():
    assert _validate(make_receipt(confidence=None, transaction_date=NOW)).accepted


def test_amount_drift_boundary():
    at_limit = make_receipt(
        ocr_total_amount=Decimal("100"), total_amount=Decimal("110"), transaction_date=NOW
    )
    over_limit = make_receipt(
        ocr_total_amount=Decimal("100"), total_amount=Decimal("110.01"), transaction_date=NOW
    )

    assert _validate(at_limit).accepted
    assert _validate(over_limit).reason is RejectionReason.AMOUNT_DRIFT_TOO_LARGE


def test_merchant_containing_ocr_name_passes():
    receipt = make_receipt(
        ocr_merchant_name="KFC", merchant_name="KFC Restaurant", transaction_date=NOW
    )

    assert _validate(receipt).accepted


def test_merchant_substring_rule_for_longer_names():
    edited = make_receipt(
        ocr_merchant_name="Starbucks", merchant_name="Starbucks Reserve", transaction_date=NOW
    )
    replaced = make_receipt(
        ocr_merchant_name="Starbucks", merchant_name="Peet's Coffee", transaction_date=NOW
    )

    assert _validate(edited).accepted
    assert _validate(replaced).reason is RejectionReason.MERCHANT_DRIFT_TOO_LARGE


def test_age_boundary():
    exactly_max = make_receipt(transaction_date=NOW - timedelta(days=7))
    just_over = make_receipt(transaction_date=NOW - timedelta(days=7, seconds=1))

    assert _validate(exactly_max).accepted
    assert _validate(just_over).reason is RejectionReason.RECEIPT_TOO_OLD


def test_checks_run_in_order():
    receipt = make_receipt(
        confidence=0.1,
        transaction_date=NOW - timedelta(days=30),
        ocr_total_amount=Decimal("10"),
        total_amount=Decimal("90"),
    )

    assert _validate(receipt).reason is RejectionReason.LOW_CONFIDENCE


def test_duplicate_check_disabled_by_default():
    calls = []

    def finder(receipt):
        calls.append(receipt.id)
        return 99

    validator = SubmissionValidator(SubmissionPolicy(), duplicate_finder=finder)

    assert validator.validate(make_receipt(transaction_date=NOW), now=NOW).accepted
    assert calls == []


def test_duplicate_check_when_enabled():
    validator = SubmissionValidator(
        SubmissionPolicy(duplicate_check_enabled=True),
        duplicate_finder=lambda receipt: 42,
    )

    decision = validator.validate(make_receipt(transaction_date=NOW), now=NOW)

    assert decision.reason is RejectionReason.DUPLICATE_RECEIPT
    assert decision.duplicate_receipt_id == 42


def test_policy_from_settings(monkeypatch):
    from sipcoin.config import get_settings

    monkeypatch.setenv("SIPCOIN_MIN_OCR_CONFIDENCE", "0.5")
    monkeypatch.setenv("SIPCOIN_MAX_RECEIPT_AGE_DAYS", "3")
    monkeypatch.setenv("SIPCOIN_DUPLICATE_CHECK_ENABLED", "true")
    get_settings.cache_clear()

    policy = SubmissionPolicy.from_settings(get_settings())

    assert policy.min_confidence == 0.5
    assert policy.max_age == timedelta(days=3)
    assert policy.amount_drift_tolerance == Decimal("0.1")
    assert policy.duplicate_check_enabled is True
