"""Shared helpers for integration tests."""

from __future__ import annotations

from sipcoin.config import get_settings
from sipcoin.ingest import ReceiptIngestionService, UserLockRegistry
from sipcoin.server import deps
from tests.helpers import FakeOcrEngine, receipt_text


def auth_headers(user_id: str = "user-1") -> dict[str, str]:
    headers = {"X-User-ID": user_id}
    token = get_settings().api_token
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def use_fake_ocr(app, text: str | None = None, confidence: float | None = 0.92) -> FakeOcrEngine:
    """Route the app's ingestion service through a canned OCR engine."""

    engine = FakeOcrEngine(receipt_text() if text is None else text, confidence=confidence)
    locks = UserLockRegistry()
    app.dependency_overrides[deps.get_ingestion_service] = lambda: ReceiptIngestionService(
        ocr_engine=engine, user_locks=locks
    )
    return engine
