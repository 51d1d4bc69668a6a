"""Pydantic models for receipts and their extracted fields."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator

Amount = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]

ReceiptStatus = Literal["pending", "processing", "processed", "failed", "submitted"]

MAX_RECEIPT_ITEMS = 15


class OcrText(BaseModel):
    """Raw OCR engine output for a single receipt image."""

    text: str
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ReceiptFields(BaseModel):
    """Best-effort structured view of a receipt; every field may be absent."""

    total_amount: Optional[Amount] = Field(default=None, ge=0)
    merchant_name: Optional[str] = None
    merchant_address: Optional[str] = None
    transaction_date: Optional[str] = None
    transaction_time: Optional[str] = None
    tax_amount: Optional[Amount] = Field(default=None, ge=0)
    subtotal_amount: Optional[Amount] = Field(default=None, ge=0)
    items: List[str] = Field(default_factory=list, max_length=MAX_RECEIPT_ITEMS)

    def warnings(self) -> List[str]:
        """Describe key fields the extractor could not find."""

        missing: List[str] = []
        if self.total_amount is None or self.total_amount <= 0:
            missing.append("Total amount not found or invalid")
        if not self.merchant_name:
            missing.append("Merchant name not found")
        if not self.transaction_date:
            missing.append("Transaction date not found")
        return missing


class Receipt(BaseModel):
    """Persisted receipt owned by a single user."""

    id: int
    user_id: str
    image_path: str
    original_filename: Optional[str] = None
    file_size: int = 0
    file_type: Optional[str] = None
    status: ReceiptStatus = "pending"
    processing_attempts: int = 0
    ocr_text: Optional[str] = None
    confidence: Optional[float] = None
    total_amount: Optional[Amount] = None
    merchant_name: Optional[str] = None
    merchant_address: Optional[str] = None
    transaction_date: Optional[datetime] = None
    transaction_time: Optional[str] = None
    tax_amount: Optional[Amount] = None
    subtotal_amount: Optional[Amount] = None
    items: List[str] = Field(default_factory=list)
    ocr_total_amount: Optional[Amount] = None
    ocr_merchant_name: Optional[str] = None
    sipcoins_earned: Optional[int] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    processed_at: Optional[datetime] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReceiptUpdate(BaseModel):
    """User edits applied to a processed receipt before submission."""

    merchant_name: Optional[str] = Field(default=None, max_length=255)
    transaction_date: Optional[datetime] = None
    total_amount: Optional[Amount] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    items: Optional[List[str]] = Field(default=None, max_length=MAX_RECEIPT_ITEMS)

    @field_validator("merchant_name")
    @classmethod
    def strip_merchant(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        if len(stripped) < 2:
            raise ValueError("Merchant name must be at least 2 characters")
        return stripped

    @field_validator("transaction_date", mode="before")
    @classmethod
    def parse_receipt_style_date(cls, value: Any) -> Any:
        """Accept the same date shapes the extractor captures (e.g. 02/10/2025)."""
        if isinstance(value, str):
            from sipcoin.ocr.extractor import parse_transaction_date

            parsed = parse_transaction_date(value)
            if parsed is not None:
                return parsed
        return value

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)
