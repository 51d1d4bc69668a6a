"""SQLAlchemy models representing SipCoin persistence tables."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

MONEY = Numeric(10, 2)


class Base(DeclarativeBase):
    """Declarative base class for SipCoin ORM models."""


class ReceiptORM(Base):
    """Uploaded receipt with its OCR-derived and user-edited fields."""

    __tablename__ = "receipts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    image_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    original_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    processing_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ocr_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    merchant_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    merchant_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    transaction_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    transaction_time: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    tax_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    subtotal_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    ocr_total_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    ocr_merchant_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sipcoins_earned: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payload: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_receipts_duplicate_lookup", "user_id", "merchant_name", "total_amount"),
    )


class ProfileORM(Base):
    """Per-user loyalty balance."""

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    sipcoins_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


__all__ = ["Base", "ProfileORM", "ReceiptORM"]
