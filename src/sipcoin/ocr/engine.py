"""Tesseract-backed OCR engine for receipt photos."""

from __future__ import annotations

import io
import logging
import re
from typing import List, Optional

import pytesseract
from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError
from pytesseract import Output

from sipcoin.errors import OcrEngineError, OcrTimeoutError
from sipcoin.logging_utils import mask_card_numbers
from sipcoin.models.receipt import OcrText

logger = logging.getLogger(__name__)


class TesseractOcrEngine:
    """Recognise receipt text and a mean word confidence in [0, 1]."""

    def __init__(self, *, lang: str = "eng", timeout: float = 30.0) -> None:
        self._lang = lang
        self._timeout = timeout

    def recognize(self, data: bytes) -> OcrText:
        image = self._preprocess(self._decode(data))
        try:
            text = pytesseract.image_to_string(image, lang=self._lang, timeout=self._timeout)
            words = pytesseract.image_to_data(
                image,
                lang=self._lang,
                output_type=Output.DICT,
                timeout=self._timeout,
            )
        except RuntimeError as exc:
            if "timeout" in str(exc).lower():
                raise OcrTimeoutError(
                    f"OCR exceeded {self._timeout:g}s time limit"
                ) from exc
            raise OcrEngineError(f"OCR processing failed: {exc}") from exc
        except OSError as exc:
            raise OcrEngineError(f"OCR engine unavailable: {exc}") from exc

        confidence = self._mean_confidence(words.get("conf", []))
        word_count = sum(1 for word in words.get("text", []) if (word or "").strip())
        logger.debug("OCR completed words=%s confidence=%s", word_count, confidence)
        return OcrText(
            text=mask_card_numbers(text.strip()),
            confidence=confidence,
            metadata={
                "lang": self._lang,
                "word_count": word_count,
                "image_size": {"width": image.width, "height": image.height},
            },
        )

    @staticmethod
    def _decode(data: bytes) -> Image.Image:
        if not data:
            raise OcrEngineError("Receipt image is empty.")
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise OcrEngineError("Receipt is not an image format supported by OCR.") from exc
        return ImageOps.exif_transpose(image)

    def _preprocess(self, image: Image.Image) -> Image.Image:
        processed = ImageOps.grayscale(image)
        processed = ImageOps.autocontrast(processed)
        processed = processed.filter(ImageFilter.MedianFilter(size=3))
        try:
            osd = pytesseract.image_to_osd(processed, lang=self._lang, timeout=self._timeout)
        except (RuntimeError, OSError):  # orientation detection is best effort
            return processed
        rotation = self._parse_rotation_from_osd(osd)
        if rotation:
            processed = processed.rotate(-rotation, expand=True, fillcolor=255)
        return processed

    @staticmethod
    def _parse_rotation_from_osd(osd: str) -> int:
        match = re.search(r"Rotate: (\d+)", osd or "")
        if not match:
            return 0
        return int(match.group(1)) % 360

    @staticmethod
    def _mean_confidence(raw_confidences: List[object]) -> Optional[float]:
        confidences: List[float] = []
        for raw in raw_confidences:
            try:
                value = float(raw)  # type: ignore[arg-type]
            except (TypeError, ValueError):
                continue
            if value >= 0:
                confidences.append(value / 100.0)
        if not confidences:
            return None
        return min(1.0, sum(confidences) / len(confidences))


__all__ = ["TesseractOcrEngine"]
