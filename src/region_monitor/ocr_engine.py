"""Text recognition collaborator backed by Tesseract.

Captures are upscaled before OCR (small subtitle regions produce blurry
glyphs otherwise) and the result goes through a light garbage filter that
drops lines made mostly of symbols, which Tesseract emits for textured
backgrounds.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any

import numpy as np
import pytesseract
from PIL import Image

from region_monitor.models import RecognitionError

logger = logging.getLogger(__name__)


# Captures are upscaled by an integer factor in [MIN_SCALE, MAX_SCALE] so the
# result reaches at least TARGET_SIZE (width, height) where the cap allows.
TARGET_SIZE = (600, 100)
MIN_SCALE = 2
MAX_SCALE = 4

# PSM 6: single uniform block of text. OEM 1: LSTM engine.
_TESSERACT_CONFIG = "--psm 6 --oem 1"

# A kept line needs this share of alphanumerics among its visible characters
# and at least _MIN_LETTERS letters.
_MIN_ALNUM_SHARE = 0.4
_MIN_LETTERS = 2


def upscale_factor(size: tuple[int, int]) -> int:
    needed = max(math.ceil(target / actual) for target, actual in zip(TARGET_SIZE, size))
    return min(MAX_SCALE, max(MIN_SCALE, needed))


def _upscale(img: Image.Image) -> Image.Image:
    factor = upscale_factor(img.size)
    return img.resize((img.width * factor, img.height * factor), Image.Resampling.LANCZOS)


def _looks_like_text(line: str) -> bool:
    visible = [c for c in line if not c.isspace()]
    if not visible:
        return False
    if sum(c.isalnum() for c in visible) < _MIN_ALNUM_SHARE * len(visible):
        return False
    return sum(c.isalpha() for c in visible) >= _MIN_LETTERS


def filter_ocr_garbage(text: str) -> str:
    """Keep only lines that look like text; Tesseract turns textured backgrounds into symbol soup."""
    lines = (line.strip() for line in text.splitlines())
    return "\n".join(line for line in lines if _looks_like_text(line))


def _to_pil(image: Any) -> Image.Image:
    if isinstance(image, Image.Image):
        return image.convert("RGB")
    arr = np.asarray(image, dtype=np.uint8)
    if arr.ndim == 3 and arr.shape[2] == 4:
        arr = arr[:, :, :3]
    return Image.fromarray(arr)


class TesseractRecognizer:
    """Async recognize function for the monitor: ``await recognizer(image)``."""

    def __init__(self, language: str = "eng", filter_garbage: bool = True) -> None:
        self._language = language
        self._filter_garbage = filter_garbage

    @property
    def language(self) -> str:
        return self._language

    def set_language(self, language: str) -> None:
        self._language = language
        logger.info("OCR language set to %s", language)

    def recognize_sync(self, image: Any) -> str:
        ocr_img = _upscale(_to_pil(image))

        t0 = time.monotonic()
        try:
            text = pytesseract.image_to_string(
                ocr_img, lang=self._language, config=_TESSERACT_CONFIG,
            ).strip()
        except pytesseract.TesseractNotFoundError as e:
            raise RecognitionError("Tesseract is not installed or not on PATH") from e
        except pytesseract.TesseractError as e:
            raise RecognitionError(f"Tesseract failed: {e}") from e
        ocr_ms = int((time.monotonic() - t0) * 1000)

        logger.debug("OCR (%dms) raw: %r", ocr_ms, text[:200])

        if text and self._filter_garbage:
            filtered = filter_ocr_garbage(text)
            if filtered != text:
                logger.debug("OCR after filter: %r", filtered[:200] or "<empty>")
            text = filtered
        return text

    async def __call__(self, image: Any) -> str:
        return await asyncio.to_thread(self.recognize_sync, image)
