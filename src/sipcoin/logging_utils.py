"""Logging setup with redaction of credentials and card numbers."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List

REDACTED = "[redacted]"

# Extra attributes copied onto JSON log lines when present on the record.
CONTEXT_FIELDS = ("request_id", "user_id", "receipt_id")

# Third-party loggers that are noisy at DEBUG.
QUIET_LOGGERS = ("PIL", "multipart", "python_multipart", "sqlalchemy.engine")

_CREDENTIAL_PATTERNS = (
    re.compile(r"(Bearer\s+)([A-Za-z0-9\-._~+/=]+)", re.IGNORECASE),
    re.compile(r"(api_token=)([^&\s]+)", re.IGNORECASE),
    re.compile(r"(X-API-Key[=:]\s*)([^&\s]+)", re.IGNORECASE),
)
_CARD_PATTERN = re.compile(r"(?<!\d)\d(?:[ -]?\d){11,18}(?!\d)")


def _passes_luhn(digits: str) -> bool:
    total = 0
    for index, char in enumerate(reversed(digits)):
        value = int(char)
        if index % 2:
            value = value * 2 - 9 if value > 4 else value * 2
        total += value
    return total % 10 == 0


def mask_card_numbers(value: str) -> str:
    """Keep the first and last four digits of Luhn-valid card-shaped numbers."""

    def _mask(match: re.Match[str]) -> str:
        digits = re.sub(r"\D", "", match.group())
        if not _passes_luhn(digits):
            return match.group()
        return digits[:4] + "*" * (len(digits) - 8) + digits[-4:]

    return _CARD_PATTERN.sub(_mask, value)


class SensitiveDataFilter(logging.Filter):
    """Redact auth tokens, configured secrets and card numbers from log records."""

    def __init__(self, secrets: Iterable[str]):
        super().__init__()
        self._secrets: List[str] = [secret.strip() for secret in secrets if secret and secret.strip()]

    def sanitize(self, value: str) -> str:
        for pattern in _CREDENTIAL_PATTERNS:
            value = pattern.sub(r"\1" + REDACTED, value)
        for secret in self._secrets:
            value = value.replace(secret, REDACTED)
        return mask_card_numbers(value)

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401 - standard interface
        message = record.getMessage()
        sanitized = self.sanitize(message)
        if sanitized != message:
            record.msg = sanitized
            record.args = ()

        for key, value in list(vars(record).items()):
            if key != "msg" and isinstance(value, str):
                setattr(record, key, self.sanitize(value))

        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, carrying request and receipt context."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - override
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            {field: getattr(record, field) for field in CONTEXT_FIELDS if getattr(record, field, None) is not None}
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging(level_name: str, fmt: str, secrets: Iterable[str]) -> None:
    """Install a single redacting stream handler on the root logger."""

    numeric_level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler()
    if (fmt or "plain").lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
            )
        )
    redactor = SensitiveDataFilter(secrets)
    handler.addFilter(redactor)

    root = logging.getLogger()
    root.handlers = []
    root.addHandler(handler)
    root.setLevel(numeric_level)
    logging.captureWarnings(True)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = []
        server_logger.setLevel(numeric_level)
        server_logger.propagate = True
        server_logger.addFilter(redactor)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
