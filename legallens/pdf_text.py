"""
PDF text extraction: embedded text layer first, OCR per page when the
layer is missing or too short.

Only the first few pages are read; documents are summarized from a prefix
to bound latency and cost.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from PIL import Image

from legallens.config import MIN_PDF_PAGE_TEXT_LENGTH, MIN_PDF_TEXT_LENGTH
from legallens.errors import ExtractionFailed
from legallens.ocr import DEFAULT_OCR_SCALE, OcrEngine, Rasterizer, ocr_page_image, render_page_to_bitmap
from legallens.utils.validation import require_usable_text

# PyMuPDF for PDF extraction
try:
    import fitz  # PyMuPDF
except ImportError:
    fitz = None

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 5


@dataclass
class PageText:
    """Text recovered from one page."""

    page_number: int
    text: str
    method: str  # 'text-layer', 'ocr' or 'empty'


@dataclass
class PdfExtraction:
    """Combined result for the processed page range."""

    text: str
    page_count: int
    pages: List[PageText] = field(default_factory=list)

    @property
    def ocr_pages(self) -> List[int]:
        return [p.page_number for p in self.pages if p.method == "ocr"]


def open_pdf(data: bytes) -> Any:
    """
    Open PDF bytes with PyMuPDF.

    Raises:
        ImportError: If PyMuPDF not installed
        ExtractionFailed: If the PDF is corrupt or password protected
    """
    if fitz is None:
        raise ImportError("PyMuPDF (fitz) not installed. Install with: pip install PyMuPDF")

    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise ExtractionFailed(f"Could not open PDF: {e}") from e

    # Some PDFs are encrypted with an empty user password
    if doc.needs_pass and not doc.authenticate(""):
        doc.close()
        raise ExtractionFailed("This PDF is password protected and cannot be read.")

    if doc.page_count == 0:
        doc.close()
        raise ExtractionFailed("This PDF has no readable pages. It may be damaged.")

    return doc


def read_page_text_layer(page: Any) -> str:
    """
    Read the embedded text layer of a page.

    Whitespace-only items are dropped and the rest joined with single spaces.
    """
    words = page.get_text("words", sort=True)
    return " ".join(w[4] for w in words if w[4].strip())


def is_sufficient(text: str) -> bool:
    """A page's text layer is usable if it exceeds the per-page threshold."""
    return len(text.strip()) > MIN_PDF_PAGE_TEXT_LENGTH


def _ocr_pages(
    images: Dict[int, Image.Image], ocr_engine: OcrEngine, max_workers: int
) -> Dict[int, str]:
    """Recognize rendered pages concurrently; failures stay page-local."""
    results: Dict[int, str] = {}
    workers = max(1, min(len(images), max_workers))

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            page_number: executor.submit(ocr_page_image, image, ocr_engine, page_number)
            for page_number, image in images.items()
        }
        for page_number, future in futures.items():
            try:
                results[page_number] = future.result()
            except Exception:
                logger.exception("Unexpected OCR error on page %d", page_number)
                results[page_number] = ""

    return results


def read_pdf_text(
    data: bytes,
    max_pages: int = DEFAULT_MAX_PAGES,
    ocr_engine: Optional[OcrEngine] = None,
    rasterizer: Rasterizer = render_page_to_bitmap,
    ocr_scale: float = DEFAULT_OCR_SCALE,
    max_workers: int = 4,
) -> PdfExtraction:
    """
    Extract text from the first pages of a PDF.

    Pages whose text layer is too short are rasterized and OCR'd (when an
    OCR engine is given). Rasterization happens on this thread; recognition
    runs in a bounded thread pool and is awaited jointly.

    Args:
        data: Raw PDF bytes
        max_pages: Page cap (default: 5)
        ocr_engine: Object with recognize(image) -> str, or None to skip OCR
        rasterizer: (page, scale) -> PIL image
        ocr_scale: Rasterization upscale factor (default: 2.0)
        max_workers: OCR thread pool size

    Returns:
        PdfExtraction with the space-joined text of the processed pages

    Raises:
        ExtractionFailed: If the PDF cannot be opened
        ExtractionTooShort: If the combined text is unusable
    """
    doc = open_pdf(data)
    pages: List[PageText] = []
    images: Dict[int, Image.Image] = {}

    try:
        page_count = doc.page_count
        for index in range(min(page_count, max_pages)):
            page_number = index + 1
            page = doc.load_page(index)
            text = read_page_text_layer(page)

            if is_sufficient(text):
                pages.append(PageText(page_number, text, "text-layer"))
                continue

            if ocr_engine is None:
                # Keep whatever the text layer gave us
                method = "text-layer" if text.strip() else "empty"
                pages.append(PageText(page_number, text, method))
                continue

            logger.debug("Page %d text layer has %d chars, trying OCR", page_number, len(text.strip()))
            pages.append(PageText(page_number, "", "empty"))
            try:
                images[page_number] = rasterizer(page, ocr_scale)
            except (RuntimeError, ValueError, OSError) as e:
                logger.warning("Could not rasterize page %d: %s", page_number, e)
    finally:
        doc.close()

    if images:
        recognized = _ocr_pages(images, ocr_engine, max_workers)
        for page in pages:
            text = recognized.get(page.page_number, "")
            if text.strip():
                page.text = text
                page.method = "ocr"

    combined = " ".join(p.text.strip() for p in pages if p.text.strip())
    require_usable_text(combined, MIN_PDF_TEXT_LENGTH, "pdf")

    logger.info(
        "PDF: %d/%d pages processed, %d sent to OCR, %d chars",
        len(pages), page_count, len(images), len(combined),
    )
    return PdfExtraction(text=combined, page_count=page_count, pages=pages)
