"""Builders shared across test modules."""

from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from PIL import Image

from sipcoin.models.receipt import OcrText, Receipt

SAMPLE_RECEIPT_TEXT = "\n".join(
    [
        "CORNER COFFEE",
        "123 Main Street",
        "{date} 08:15 AM",
        "Latte 4.50",
        "Croissant 3.25",
        "Subtotal: $7.75",
        "Tax: $0.62",
        "TOTAL: $8.37",
    ]
)


def png_bytes(size: tuple[int, int] = (32, 32)) -> bytes:
    image = Image.new("RGB", size, color=(255, 255, 255))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def receipt_text(days_ago: int = 1) -> str:
    """Sample receipt text dated ``days_ago`` days before today."""

    when = datetime.now(timezone.utc) - timedelta(days=days_ago)
    return SAMPLE_RECEIPT_TEXT.format(date=when.strftime("%m/%d/%Y"))


def make_receipt(**overrides: Any) -> Receipt:
    """Build a processed receipt that passes every submission check."""

    now = datetime.now(timezone.utc)
    values: Dict[str, Any] = {
        "id": 1,
        "user_id": "user-1",
        "image_path": "user-1/1.png",
        "status": "processed",
        "confidence": 0.9,
        "total_amount": Decimal("40.00"),
        "ocr_total_amount": Decimal("40.00"),
        "merchant_name": "Corner Coffee",
        "ocr_merchant_name": "Corner Coffee",
        "transaction_date": now - timedelta(days=1),
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return Receipt(**values)


class FakeOcrEngine:
    """OCR engine double returning canned text."""

    def __init__(self, text: str = "", confidence: Optional[float] = 0.92, error: Optional[Exception] = None):
        self.text = text
        self.confidence = confidence
        self.error = error
        self.calls = 0

    def recognize(self, data: bytes) -> OcrText:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return OcrText(text=self.text, confidence=self.confidence, metadata={"lang": "eng"})
