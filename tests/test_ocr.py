"""
Tests for legallens/ocr.py
"""

import pytest
from PIL import Image, ImageDraw

from legallens import ocr
from legallens.errors import OcrFailure
from legallens.ocr import TesseractOcrEngine, enhance_for_ocr, ocr_page_image


@pytest.fixture
def page_image():
    image = Image.new("RGB", (200, 60), (230, 230, 230))
    ImageDraw.Draw(image).text((10, 20), "Clause 7", fill=(90, 90, 90))
    return image


@pytest.mark.unit
def test_enhance_for_ocr_returns_grayscale_same_size(page_image):
    """Test enhancement keeps the size and converts to grayscale."""
    enhanced = enhance_for_ocr(page_image)

    assert enhanced.mode == "L"
    assert enhanced.size == page_image.size


@pytest.mark.unit
def test_ocr_page_image_passes_enhanced_image(page_image):
    """The engine receives the enhanced image."""
    seen = []

    class Engine:
        def recognize(self, image):
            seen.append(image.mode)
            return "Clause 7"

    assert ocr_page_image(page_image, Engine(), page_number=3) == "Clause 7"
    assert seen == ["L"]


@pytest.mark.unit
def test_ocr_page_image_swallows_page_failure(page_image, fake_ocr, caplog):
    """An OCR failure yields empty text and a log entry."""
    result = ocr_page_image(page_image, fake_ocr(fail=True), page_number=2)

    assert result == ""
    assert "OCR failed on page 2" in caplog.text


@pytest.mark.unit
def test_tesseract_engine_without_pytesseract(monkeypatch, page_image):
    """Test the Tesseract engine reports itself unavailable without pytesseract."""
    monkeypatch.setattr(ocr, "pytesseract", None)

    assert TesseractOcrEngine.available() is False
    assert ocr.default_ocr_engine() is None
    with pytest.raises(OcrFailure, match="not installed"):
        TesseractOcrEngine().recognize(page_image)


@pytest.mark.unit
def test_tesseract_engine_wraps_errors(monkeypatch, page_image):
    """Tesseract errors are raised as OcrFailure."""
    pytesseract = pytest.importorskip("pytesseract")

    def boom(*args, **kwargs):
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(pytesseract, "image_to_string", boom)

    with pytest.raises(OcrFailure):
        TesseractOcrEngine().recognize(page_image)
