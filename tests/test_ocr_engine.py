"""Test the Tesseract recognizer without a Tesseract install.

pytesseract.image_to_string is replaced through monkeypatch, so only the
pre/post-processing around it is exercised here.
"""

import asyncio

import numpy as np
import pytesseract
import pytest
from PIL import Image

from region_monitor import ocr_engine
from region_monitor.models import RecognitionError
from region_monitor.ocr_engine import TesseractRecognizer, _upscale, filter_ocr_garbage


@pytest.mark.parametrize("size, expected", [
    ((300, 60), (600, 120)),    # 2x covers both minimums
    ((100, 30), (400, 120)),    # capped at 4x
    ((1200, 200), (2400, 400)), # always at least 2x
    ((200, 40), (600, 120)),
])
def test_upscale(size, expected):
    assert _upscale(Image.new("RGB", size)).size == expected


def test_filter_keeps_text_lines():
    text = "Hello there\n~~~ |/ ..\nI'm fine, thanks"
    assert filter_ocr_garbage(text) == "Hello there\nI'm fine, thanks"


def test_filter_drops_lines_with_too_few_letters():
    assert filter_ocr_garbage("a\n12 34\nok") == "ok"


def test_filter_keeps_cyrillic():
    assert filter_ocr_garbage("Привет, мир") == "Привет, мир"


def test_recognize_passes_language_and_filters(monkeypatch):
    calls = []

    def fake_image_to_string(img, lang, config):
        calls.append((img.size, lang, config))
        return "  Real subtitle\n=/=|=  \n"

    monkeypatch.setattr(pytesseract, "image_to_string", fake_image_to_string)

    recognizer = TesseractRecognizer(language="rus+eng")
    arr = np.zeros((50, 300, 4), dtype=np.uint8)
    assert asyncio.run(recognizer(arr)) == "Real subtitle"

    size, lang, config = calls[0]
    assert size == (600, 100)
    assert lang == "rus+eng"
    assert config == ocr_engine._TESSERACT_CONFIG


def test_set_language(monkeypatch):
    langs = []
    monkeypatch.setattr(
        pytesseract, "image_to_string",
        lambda img, lang, config: langs.append(lang) or "",
    )
    recognizer = TesseractRecognizer()
    recognizer.set_language("deu")
    assert recognizer.language == "deu"
    assert recognizer.recognize_sync(Image.new("RGB", (10, 10))) == ""
    assert langs == ["deu"]


def test_missing_tesseract_becomes_recognition_error(monkeypatch):
    def missing(*args, **kwargs):
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(pytesseract, "image_to_string", missing)

    with pytest.raises(RecognitionError):
        TesseractRecognizer().recognize_sync(Image.new("RGB", (10, 10)))
