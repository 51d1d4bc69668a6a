"""OCR engine adapter and receipt field extraction."""

from .engine import TesseractOcrEngine
from .extractor import FieldExtractor, extract, parse_transaction_date

__all__ = [
    "FieldExtractor",
    "TesseractOcrEngine",
    "extract",
    "parse_transaction_date",
]
