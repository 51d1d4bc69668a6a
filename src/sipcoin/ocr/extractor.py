"""Line-oriented heuristics that turn raw OCR text into receipt fields."""

from __future__ import annotations

import dataclasses
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, List, Optional, Sequence

from sipcoin.models.receipt import MAX_RECEIPT_ITEMS, ReceiptFields

logger = logging.getLogger(__name__)

MAX_PLAUSIBLE_TOTAL = Decimal("10000")
MERCHANT_SCAN_LINES = 8

_TOTAL_PATTERN = re.compile(r"(?:total|amount|sum|due|balance)[:\s]*\$?\s*(\d+(?:\.\d*)?)", re.IGNORECASE)
_BARE_PRICE_PATTERN = re.compile(r"\$?(\d+\.\d{2})(?!\d)")
_DATE_PATTERN = re.compile(r"\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}[/-]\d{1,2}[/-]\d{1,2}")
_TIME_PATTERN = re.compile(r"\d{1,2}:\d{2}(?::\d{2})?(?:\s*(?:AM|PM))?", re.IGNORECASE)
_TAX_PATTERN = re.compile(r"(?:tax|sales\s*tax|vat)[:\s]*\$?\s*(\d+(?:\.\d*)?)", re.IGNORECASE)
_SUBTOTAL_PATTERN = re.compile(r"(?:subtotal|sub\s*total)[:\s]*\$?\s*(\d+(?:\.\d*)?)", re.IGNORECASE)
_ITEM_PRICE_PATTERN = re.compile(r"\$?\d+\.\d{2}(?!\d)")
_ADDRESS_PATTERN = re.compile(r"^\d{1,6}\s+[A-Za-z]")
_DIGIT_PATTERN = re.compile(r"\d")

_SUMMARY_KEYWORDS = ("total", "tax", "subtotal")

_ISO_DATE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")
_US_DATE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")


def split_lines(text: str) -> List[str]:
    """Return trimmed, non-empty lines in their original order."""

    lines = (line.strip() for line in (text or "").splitlines())
    return [line for line in lines if line]


def _to_decimal(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw)
    except InvalidOperation:
        return None


def _has_summary_keyword(line: str) -> bool:
    lower = line.lower()
    return any(keyword in lower for keyword in _SUMMARY_KEYWORDS)


def _is_plausible_total(value: Optional[Decimal]) -> bool:
    return value is not None and Decimal("0") < value < MAX_PLAUSIBLE_TOTAL


def extract_total_amount(lines: Sequence[str]) -> Optional[Decimal]:
    """Largest plausible labelled total, falling back to the largest bare price."""

    labelled = [
        value
        for line in lines
        if (match := _TOTAL_PATTERN.search(line))
        and _is_plausible_total(value := _to_decimal(match.group(1)))
    ]
    if labelled:
        return max(labelled)

    bare = [
        value
        for line in lines
        for raw in _BARE_PRICE_PATTERN.findall(line)
        if _is_plausible_total(value := _to_decimal(raw))
    ]
    if bare:
        logger.debug("No labelled total found; using largest bare price %s", max(bare))
        return max(bare)
    return None


def _first_labelled_amount(pattern: re.Pattern[str], lines: Sequence[str]) -> Optional[Decimal]:
    for line in lines:
        match = pattern.search(line)
        if match:
            return _to_decimal(match.group(1))
    return None


def extract_tax_amount(lines: Sequence[str]) -> Optional[Decimal]:
    return _first_labelled_amount(_TAX_PATTERN, lines)


def extract_subtotal_amount(lines: Sequence[str]) -> Optional[Decimal]:
    return _first_labelled_amount(_SUBTOTAL_PATTERN, lines)


def _first_match(pattern: re.Pattern[str], lines: Sequence[str]) -> Optional[str]:
    for line in lines:
        match = pattern.search(line)
        if match:
            return match.group(0).strip()
    return None


def extract_transaction_date(lines: Sequence[str]) -> Optional[str]:
    return _first_match(_DATE_PATTERN, lines)


def extract_transaction_time(lines: Sequence[str]) -> Optional[str]:
    return _first_match(_TIME_PATTERN, lines)


def _merchant_index(lines: Sequence[str]) -> Optional[int]:
    for index, line in enumerate(lines[:MERCHANT_SCAN_LINES]):
        if 3 < len(line) < 60 and not _DIGIT_PATTERN.search(line) and not _has_summary_keyword(line):
            return index
    return None


def extract_merchant_name(lines: Sequence[str]) -> Optional[str]:
    index = _merchant_index(lines)
    return lines[index] if index is not None else None


def extract_merchant_address(lines: Sequence[str]) -> Optional[str]:
    """Street-address line following the merchant name near the top of the receipt."""

    index = _merchant_index(lines)
    if index is None:
        return None
    for line in lines[index + 1 : MERCHANT_SCAN_LINES]:
        if not _ADDRESS_PATTERN.match(line):
            continue
        if _has_summary_keyword(line) or _ITEM_PRICE_PATTERN.search(line):
            continue
        if _DATE_PATTERN.search(line) or _TIME_PATTERN.search(line):
            continue
        return line
    return None


def extract_items(lines: Sequence[str]) -> List[str]:
    items = [
        line
        for line in lines
        if _ITEM_PRICE_PATTERN.search(line) and not _has_summary_keyword(line) and 5 < len(line) < 100
    ]
    return items[:MAX_RECEIPT_ITEMS]


@dataclasses.dataclass(frozen=True)
class ExtractionRule:
    """Named rule producing one ``ReceiptFields`` attribute from receipt lines."""

    field: str
    apply: Callable[[Sequence[str]], Any]


DEFAULT_RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule("total_amount", extract_total_amount),
    ExtractionRule("transaction_date", extract_transaction_date),
    ExtractionRule("transaction_time", extract_transaction_time),
    ExtractionRule("tax_amount", extract_tax_amount),
    ExtractionRule("subtotal_amount", extract_subtotal_amount),
    ExtractionRule("merchant_name", extract_merchant_name),
    ExtractionRule("merchant_address", extract_merchant_address),
    ExtractionRule("items", extract_items),
)


class FieldExtractor:
    """Evaluate extraction rules against the lines of an OCR'd receipt."""

    def __init__(self, rules: Sequence[ExtractionRule] = DEFAULT_RULES) -> None:
        self._rules = tuple(rules)

    def extract(self, text: str) -> ReceiptFields:
        lines = split_lines(text)
        values: dict[str, Any] = {}
        for rule in self._rules:
            value = rule.apply(lines)
            if value is not None:
                values[rule.field] = value
        fields = ReceiptFields(**values)
        logger.debug(
            "Extracted receipt fields total=%s merchant=%s date=%s items=%s",
            fields.total_amount,
            fields.merchant_name,
            fields.transaction_date,
            len(fields.items),
        )
        return fields


def extract(text: str) -> ReceiptFields:
    """Extract receipt fields using the default rule set."""

    return FieldExtractor().extract(text)


def parse_transaction_date(raw: Optional[str]) -> Optional[datetime]:
    """
    Normalise a captured receipt date to UTC midnight.

    Four-digit-first dates are read as year/month/day; everything else as US
    month/day/year with two-digit years mapped to 20YY. Impossible calendar
    dates return ``None``.
    """

    if not raw:
        return None
    value = raw.strip()
    if match := _ISO_DATE.match(value):
        year, month, day = (int(part) for part in match.groups())
    elif match := _US_DATE.match(value):
        month, day, year = (int(part) for part in match.groups())
        if year < 100:
            year += 2000
    else:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


__all__ = [
    "DEFAULT_RULES",
    "ExtractionRule",
    "FieldExtractor",
    "extract",
    "extract_items",
    "extract_merchant_address",
    "extract_merchant_name",
    "extract_subtotal_amount",
    "extract_tax_amount",
    "extract_total_amount",
    "extract_transaction_date",
    "extract_transaction_time",
    "parse_transaction_date",
    "split_lines",
]
