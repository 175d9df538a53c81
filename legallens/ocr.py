"""
OCR fallback for PDF pages without a usable text layer.

A page is rasterized with PyMuPDF, cleaned up with Pillow (grayscale,
contrast/brightness normalization, sharpening) and passed to Tesseract.
The rasterizer and the OCR engine are both injectable so callers and tests
can substitute their own.
"""

import logging
from typing import Any, Callable, Optional, Protocol

from PIL import Image, ImageEnhance, ImageFilter, ImageOps

from legallens.errors import OcrFailure

# PyMuPDF for page rasterization
try:
    import fitz  # PyMuPDF
except ImportError:
    fitz = None

# pytesseract for recognition (needs the tesseract binary on PATH)
try:
    import pytesseract
except ImportError:
    pytesseract = None

logger = logging.getLogger(__name__)

# Rasterizer signature: (page, scale) -> PIL image
Rasterizer = Callable[[Any, float], Image.Image]

DEFAULT_OCR_SCALE = 2.0


class OcrEngine(Protocol):
    """Anything that turns a page image into text."""

    def recognize(self, image: Image.Image) -> str: ...


def render_page_to_bitmap(page: Any, scale: float = DEFAULT_OCR_SCALE) -> Image.Image:
    """
    Rasterize a PDF page.

    Args:
        page: fitz.Page
        scale: Upscale factor relative to 72 dpi (default: 2.0)

    Returns:
        RGB (or grayscale) PIL image

    Raises:
        ImportError: If PyMuPDF not installed
    """
    if fitz is None:
        raise ImportError("PyMuPDF (fitz) not installed. Install with: pip install PyMuPDF")

    pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
    mode = "L" if pix.n == 1 else "RGB"
    return Image.frombytes(mode, (pix.width, pix.height), pix.samples)


def enhance_for_ocr(image: Image.Image) -> Image.Image:
    """
    Improve recognizability of a rendered page.

    Args:
        image: Rendered page

    Returns:
        Enhanced grayscale image
    """
    gray = ImageOps.grayscale(image)
    gray = ImageOps.autocontrast(gray, cutoff=1)
    gray = ImageEnhance.Brightness(gray).enhance(1.1)
    gray = ImageEnhance.Contrast(gray).enhance(1.5)
    return gray.filter(ImageFilter.UnsharpMask(radius=2, percent=150, threshold=3))


class TesseractOcrEngine:
    """OCR engine backed by pytesseract."""

    def __init__(self, lang: str = "eng", config: str = "--oem 3 --psm 3", timeout: int = 60):
        self.lang = lang
        self.config = config
        self.timeout = timeout

    @staticmethod
    def available() -> bool:
        return pytesseract is not None

    def recognize(self, image: Image.Image) -> str:
        """
        Run OCR over an image.

        Raises:
            OcrFailure: If pytesseract is missing or recognition fails
        """
        if pytesseract is None:
            raise OcrFailure("pytesseract not installed. Install with: pip install pytesseract")

        try:
            return pytesseract.image_to_string(
                image, lang=self.lang, config=self.config, timeout=self.timeout
            )
        except (pytesseract.TesseractError, OSError, RuntimeError) as e:
            raise OcrFailure(f"Tesseract failed: {e}") from e


def ocr_page_image(image: Image.Image, engine: OcrEngine, page_number: int = 0) -> str:
    """
    Enhance and recognize one rendered page.

    Recognition failures are page-local: they are logged and the page
    contributes an empty string.

    Args:
        image: Rendered page
        engine: Object with recognize(image) -> str
        page_number: 1-based page number, for logging

    Returns:
        Recognized text ('' on failure)
    """
    try:
        prepared = enhance_for_ocr(image)
        text = engine.recognize(prepared) or ""
    except OcrFailure as e:
        logger.warning("OCR failed on page %d: %s", page_number, e)
        return ""
    except (OSError, ValueError) as e:
        logger.warning("OCR image preparation failed on page %d: %s", page_number, e)
        return ""

    logger.debug("OCR recovered %d chars from page %d", len(text.strip()), page_number)
    return text


def default_ocr_engine(lang: str = "eng") -> Optional[TesseractOcrEngine]:
    """Tesseract engine if pytesseract is importable, else None."""
    if not TesseractOcrEngine.available():
        logger.info("pytesseract not installed - OCR fallback disabled")
        return None
    return TesseractOcrEngine(lang=lang)
