"""Application configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

ENV_FILE_CANDIDATES = (Path(".env"), Path(".env.local"))


class Settings(BaseModel):
    """Global application settings loaded from environment variables or .env files."""

    database_path: Path = Field(
        default=Path("./data/sipcoin.db"),
        description="SQLite database location.",
    )
    image_store_path: Path = Field(
        default=Path("./data/receipt_images"),
        description="Root directory for uploaded receipt images.",
    )
    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token required for mutating endpoints.",
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        default="plain",
        description="Logging format (plain/json).",
    )
    log_requests: bool = Field(
        default=True,
        description="Emit request access logs when true.",
    )
    ocr_default_lang: str = Field(
        default="eng",
        description="Tesseract language code for OCR processing.",
    )
    ocr_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound in seconds for a single Tesseract invocation.",
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted receipt image upload.",
    )
    min_ocr_confidence: float = Field(
        default=0.7,
        description="Receipts whose OCR confidence falls below this are rejected on submit.",
    )
    max_receipt_age_days: int = Field(
        default=7,
        description="Receipts older than this many days are rejected on submit.",
    )
    amount_drift_tolerance: float = Field(
        default=0.10,
        description="Allowed relative difference between edited and OCR-derived totals.",
    )
    duplicate_check_enabled: bool = Field(
        default=False,
        description="Reject submissions matching an earlier receipt (same merchant, amount, day).",
    )

    model_config = ConfigDict(frozen=True)


def _coerce_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_env_file(path: Path) -> dict[str, str]:
    payload: dict[str, str] = {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, raw_value = line.split("=", 1)
                payload[key.strip()] = raw_value.strip()
    except FileNotFoundError:
        return {}
    return payload


def _load_env_file_values() -> dict[str, str]:
    values: dict[str, str] = {}
    for candidate in ENV_FILE_CANDIDATES:
        values.update(_parse_env_file(candidate))
    return values


# env var suffix -> (settings field, converter)
_ENV_FIELDS: dict[str, tuple[str, Callable[[str], object]]] = {
    "DATABASE_PATH": ("database_path", Path),
    "IMAGE_STORE_PATH": ("image_store_path", Path),
    "API_TOKEN": ("api_token", str),
    "LOG_LEVEL": ("log_level", str),
    "LOG_FORMAT": ("log_format", str),
    "LOG_REQUESTS": ("log_requests", _coerce_bool),
    "OCR_LANG": ("ocr_default_lang", str),
    "OCR_TIMEOUT_SECONDS": ("ocr_timeout_seconds", float),
    "MAX_UPLOAD_BYTES": ("max_upload_bytes", int),
    "MIN_OCR_CONFIDENCE": ("min_ocr_confidence", float),
    "MAX_RECEIPT_AGE_DAYS": ("max_receipt_age_days", int),
    "AMOUNT_DRIFT_TOLERANCE": ("amount_drift_tolerance", float),
    "DUPLICATE_CHECK_ENABLED": ("duplicate_check_enabled", _coerce_bool),
}


def _load_from_env() -> dict[str, object]:
    """Load optional overrides from SIPCOIN_* env vars (with .env fallbacks)."""

    file_values = _load_env_file_values()

    def _env(key: str) -> Optional[str]:
        return os.environ.get(key) or file_values.get(key)

    payload: dict[str, object] = {}
    for suffix, (field_name, convert) in _ENV_FIELDS.items():
        raw = _env(f"SIPCOIN_{suffix}")
        if not raw:
            continue
        try:
            payload[field_name] = convert(raw)
        except ValueError:
            continue
    return payload


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings(**_load_from_env())
