"""ASGI application for SipCoin."""
# mypy: ignore-errors

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Optional
from uuid import uuid4

from fastapi import Body, Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ValidationError

from sipcoin import __version__, metrics
from sipcoin.config import Settings, get_settings
from sipcoin.errors import (
    BalanceCreditError,
    InvalidAmountError,
    InvalidReceiptUpdateError,
    InvalidUploadError,
    PointsInvariantError,
    ReceiptLockedError,
    ReceiptNotFoundError,
)
from sipcoin.ingest import ReceiptIngestionService
from sipcoin.logging_utils import configure_logging as configure_app_logging
from sipcoin.models.points import PointsCalculation
from sipcoin.models.profile import UserBalance
from sipcoin.models.receipt import Receipt, ReceiptFields, ReceiptUpdate
from sipcoin.rewards.validation import RejectionReason
from sipcoin.server import deps

logger = logging.getLogger(__name__)


class ProcessResponse(BaseModel):
    success: bool
    receipt: Receipt
    fields: Optional[ReceiptFields] = None
    confidence: Optional[float] = None


class SubmitResponse(BaseModel):
    success: bool = True
    receipt: Receipt
    points: PointsCalculation
    breakdown: dict[str, int]
    new_balance: int


def _json_safe(value: Any) -> Any:
    """Convert non-serializable values into JSON-safe representations."""

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.hex()
    if isinstance(value, (list, tuple)):
        return [_json_safe(entry) for entry in value]
    if isinstance(value, dict):
        return {key: _json_safe(sub_value) for key, sub_value in value.items()}
    return repr(value)


def _normalize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Ensure validation error payloads can be serialized to JSON."""

    return [{key: _json_safe(value) for key, value in error.items()} for error in errors]


def _configure_logging(settings: Settings) -> None:
    configure_app_logging(settings.log_level, settings.log_format, [settings.api_token or ""])


def _not_found(exc: ReceiptNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def create_app() -> FastAPI:
    """Create and configure a FastAPI application instance."""

    settings = get_settings()
    _configure_logging(settings)

    application = FastAPI(title="SipCoin Receipt Ingestion", version=__version__)
    logger.debug("Application created with log level %s", settings.log_level)

    if settings.log_requests:
        access_logger = logging.getLogger("sipcoin.access")

        @application.middleware("http")
        async def log_request_response(request: Request, call_next):
            """Log request/response details without leaking sensitive data."""

            request_id = request.headers.get("X-Request-ID") or uuid4().hex
            request.state.request_id = request_id
            start = perf_counter()
            path = request.url.path
            method = request.method
            try:
                response: Response = await call_next(request)
            except Exception:
                duration_ms = (perf_counter() - start) * 1000
                access_logger.exception(
                    "HTTP %s %s status=500 duration_ms=%.2f",
                    method,
                    path,
                    duration_ms,
                    extra={"request_id": request_id},
                )
                metrics.REQUEST_COUNT.labels(method=method, path=path, status="500").inc()
                metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(
                    duration_ms / 1000.0
                )
                raise

            duration_ms = (perf_counter() - start) * 1000
            response.headers.setdefault("X-Request-ID", request_id)
            access_logger.info(
                "HTTP %s %s status=%s duration_ms=%.2f",
                method,
                path,
                response.status_code,
                duration_ms,
                extra={"request_id": request_id},
            )
            metrics.REQUEST_COUNT.labels(
                method=method,
                path=path,
                status=str(response.status_code),
            ).inc()
            metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000.0)
            return response

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log_kwargs: dict[str, Any] = {}
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            log_kwargs["extra"] = {"request_id": request_id}

        logger.warning(
            "Validation error on %s %s: %s",
            request.method,
            request.url.path,
            exc.errors(),
            **log_kwargs,
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": _normalize_validation_errors(exc.errors())},
        )

    @application.get(
        "/receipts",
        response_model=list[Receipt],
        summary="List the current user's receipts",
    )
    def receipts_list(
        user_id: str = Depends(deps.get_current_user),
        service: ReceiptIngestionService = Depends(deps.get_ingestion_service),
    ) -> list[Receipt]:
        return service.list_receipts(user_id)

    @application.post(
        "/receipts",
        response_model=Receipt,
        status_code=status.HTTP_201_CREATED,
        summary="Upload a receipt image",
    )
    async def receipts_upload(
        file: UploadFile = File(...),
        auth: None = Depends(deps.require_api_token),
        user_id: str = Depends(deps.get_current_user),
        service: ReceiptIngestionService = Depends(deps.get_ingestion_service),
    ) -> Receipt:
        content = await file.read()
        try:
            return service.upload_receipt(
                user_id,
                filename=file.filename,
                content_type=file.content_type,
                content=content,
            )
        except InvalidUploadError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    @application.get(
        "/receipts/{receipt_id}",
        response_model=Receipt,
        summary="Retrieve a receipt",
    )
    def receipts_get(
        receipt_id: int,
        user_id: str = Depends(deps.get_current_user),
        service: ReceiptIngestionService = Depends(deps.get_ingestion_service),
    ) -> Receipt:
        try:
            return service.get_receipt(receipt_id, user_id=user_id)
        except ReceiptNotFoundError as exc:
            raise _not_found(exc) from exc

    @application.post(
        "/receipts/{receipt_id}/process",
        response_model=ProcessResponse,
        summary="Run OCR and field extraction for a receipt",
    )
    def receipts_process(
        receipt_id: int,
        auth: None = Depends(deps.require_api_token),
        user_id: str = Depends(deps.get_current_user),
        service: ReceiptIngestionService = Depends(deps.get_ingestion_service),
    ) -> ProcessResponse:
        try:
            result = service.process_receipt(receipt_id, user_id=user_id)
        except ReceiptNotFoundError as exc:
            raise _not_found(exc) from exc
        except ReceiptLockedError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return ProcessResponse(
            success=result.receipt.status == "processed",
            receipt=result.receipt,
            fields=result.fields,
            confidence=result.confidence,
        )

    @application.patch(
        "/receipts/{receipt_id}",
        response_model=Receipt,
        summary="Correct extracted receipt fields",
    )
    def receipts_update(
        receipt_id: int,
        payload: dict[str, Any] = Body(...),
        auth: None = Depends(deps.require_api_token),
        user_id: str = Depends(deps.get_current_user),
        service: ReceiptIngestionService = Depends(deps.get_ingestion_service),
    ) -> Receipt:
        try:
            changes = ReceiptUpdate.model_validate(payload)
        except ValidationError as exc:
            logger.warning(
                "Invalid receipt update payload=%s errors=%s (receipt_id=%s)",
                payload,
                exc.errors(),
                receipt_id,
            )
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=_normalize_validation_errors(exc.errors()),
            ) from exc

        try:
            return service.update_receipt(receipt_id, user_id=user_id, changes=changes)
        except ReceiptNotFoundError as exc:
            raise _not_found(exc) from exc
        except ReceiptLockedError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        except InvalidReceiptUpdateError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    @application.post(
        "/receipts/{receipt_id}/submit",
        response_model=SubmitResponse,
        summary="Submit a processed receipt for points",
    )
    def receipts_submit(
        receipt_id: int,
        auth: None = Depends(deps.require_api_token),
        user_id: str = Depends(deps.get_current_user),
        service: ReceiptIngestionService = Depends(deps.get_ingestion_service),
    ) -> SubmitResponse:
        try:
            result = service.submit_receipt(receipt_id, user_id=user_id)
        except ReceiptNotFoundError as exc:
            raise _not_found(exc) from exc
        except InvalidAmountError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except (BalanceCreditError, PointsInvariantError) as exc:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
            ) from exc

        decision = result.decision
        if not decision.accepted:
            status_code = (
                status.HTTP_409_CONFLICT
                if decision.reason is RejectionReason.DUPLICATE_RECEIPT
                else status.HTTP_400_BAD_REQUEST
            )
            raise HTTPException(
                status_code=status_code,
                detail={
                    "reason": decision.reason.value,
                    "message": decision.message,
                    "duplicate_receipt_id": decision.duplicate_receipt_id,
                },
            )

        return SubmitResponse(
            receipt=result.receipt,
            points=result.points,
            breakdown=result.points.display_breakdown(),
            new_balance=result.balance.sipcoins_balance,
        )

    @application.get(
        "/balance",
        response_model=UserBalance,
        summary="Current SipCoin balance",
    )
    def balance_get(
        user_id: str = Depends(deps.get_current_user),
        service: ReceiptIngestionService = Depends(deps.get_ingestion_service),
    ) -> UserBalance:
        return service.get_balance(user_id)

    @application.get("/metrics", include_in_schema=False)
    def metrics_endpoint() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    return application


app = create_app()
