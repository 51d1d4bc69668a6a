"""Dependency definitions for the SipCoin API server."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from sipcoin.config import get_settings
from sipcoin.ingest import ReceiptIngestionService


def get_ingestion_service() -> ReceiptIngestionService:
    """Return the ingestion service wired to the default stores and OCR engine."""

    return ReceiptIngestionService(settings=get_settings())


def get_current_user(x_user_id: Optional[str] = Header(default=None, alias="X-User-ID")) -> str:
    """Identity forwarded by the upstream gateway."""

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-ID header")
    return user_id


def require_api_token(
    request: Request,
    settings = Depends(get_settings),
) -> None:
    """Ensure requests carry the configured API token when required."""

    token = settings.api_token
    if not token:
        return

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.split("Bearer ")[-1].strip() == token:
        return

    if request.headers.get("X-API-Key") == token:
        return

    if request.query_params.get("api_token") == token:
        return

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
