#!/usr/bin/env python3
"""
Extract canonical plain text from documents (TXT/PDF/DOCX).

Usage:
    python -m legallens.extract_text --doc-path PATH [--output PATH] [--max-pages N] [--no-ocr]

Output:
    JSON with the canonical text and extraction metadata (stdout summary,
    full result written to --output when given)
"""

import argparse
import hashlib
import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from legallens.config import MIN_PLAIN_TEXT_LENGTH, Settings, load_settings
from legallens.docx_convert import extract_plain_text
from legallens.errors import ExtractionError
from legallens.formats import DocumentFormat, sniff_format
from legallens.ocr import OcrEngine, Rasterizer, default_ocr_engine, render_page_to_bitmap
from legallens.pdf_text import read_pdf_text
from legallens.utils.file_helpers import read_document_bytes, write_extraction_json
from legallens.utils.validation import collapse_whitespace, require_usable_text

logger = logging.getLogger(__name__)


def decode_plain_text(data: bytes) -> str:
    """
    Decode raw bytes as UTF-8 text.

    Invalid byte sequences are replaced and a leading BOM is dropped.

    Raises:
        ExtractionTooShort: If fewer than 10 characters remain after trimming
    """
    text = data.decode("utf-8", errors="replace").lstrip("\ufeff")
    require_usable_text(text, MIN_PLAIN_TEXT_LENGTH, "plain-text")
    return text


def extract_text_from_txt(data: bytes) -> Dict[str, Any]:
    """
    Extract text from a plain text file.

    Args:
        data: Raw file bytes

    Returns:
        dict with text and metadata
    """
    text = decode_plain_text(data)
    return {
        "text": text,
        "char_count": len(text),
        "extraction_method": "plain_text",
    }


def extract_text_from_docx(data: bytes) -> Dict[str, Any]:
    """
    Extract text from DOCX using python-docx.

    Args:
        data: Raw DOCX bytes

    Returns:
        dict with text and metadata
    """
    text = extract_plain_text(data)
    return {
        "text": text,
        "char_count": len(text),
        "extraction_method": "python-docx",
    }


def extract_text_from_pdf(
    data: bytes,
    settings: Settings,
    ocr_engine: Optional[OcrEngine] = None,
    rasterizer: Rasterizer = render_page_to_bitmap,
) -> Dict[str, Any]:
    """
    Extract text from PDF using PyMuPDF, with per-page OCR fallback.

    Args:
        data: Raw PDF bytes
        settings: Page cap, OCR scale and pool size
        ocr_engine: OCR engine, or None to skip OCR
        rasterizer: Page rasterizer

    Returns:
        dict with text and metadata
    """
    result = read_pdf_text(
        data,
        max_pages=settings.pdf_max_pages,
        ocr_engine=ocr_engine,
        rasterizer=rasterizer,
        ocr_scale=settings.pdf_ocr_scale,
        max_workers=settings.ocr_max_workers,
    )
    ocr_pages = result.ocr_pages
    return {
        "text": result.text,
        "char_count": len(result.text),
        "extraction_method": "pymupdf+ocr" if ocr_pages else "pymupdf",
        "page_count": result.page_count,
        "pages_processed": len(result.pages),
        "ocr_pages": ocr_pages,
    }


def extract_text_from_bytes(
    data: bytes,
    filename: str,
    settings: Optional[Settings] = None,
    ocr_engine: Optional[OcrEngine] = None,
    rasterizer: Rasterizer = render_page_to_bitmap,
) -> Dict[str, Any]:
    """
    Extract canonical text from an uploaded document.

    The format is sniffed once from the filename. Every format ends in the
    same validation step, so the returned text is never empty or below the
    format's minimum length.

    Args:
        data: Raw file bytes
        filename: Original file name (used for format sniffing)
        settings: Runtime settings (default: load from environment)
        ocr_engine: OCR engine for PDFs (default: Tesseract when enabled)
        rasterizer: Page rasterizer for PDFs

    Returns:
        Extraction result with canonical text, raw text and metadata

    Raises:
        ExtractionTooShort: If the extracted text is unusable
        ExtractionFailed: If the file cannot be decoded
    """
    settings = settings or load_settings()
    doc_format = sniff_format(filename)

    if doc_format is DocumentFormat.PDF:
        if ocr_engine is None and settings.ocr_enabled:
            ocr_engine = default_ocr_engine(settings.ocr_lang)
        metadata = extract_text_from_pdf(data, settings, ocr_engine, rasterizer)
    elif doc_format is DocumentFormat.DOCX:
        metadata = extract_text_from_docx(data)
    else:
        metadata = extract_text_from_txt(data)

    raw_text = metadata.pop("text")
    canonical = collapse_whitespace(raw_text)

    result = {
        "filename": filename,
        "format": doc_format.value,
        "extracted_at": datetime.now(timezone.utc).isoformat(),
        "text": canonical,
        "raw_text": raw_text,
        "metadata": dict(
            metadata,
            char_count=len(canonical),
            source_hash=hashlib.sha256(data).hexdigest(),
        ),
    }

    logger.info(
        "Extracted %s (%s, %d chars, %s)",
        filename, doc_format.value, len(canonical), metadata["extraction_method"],
    )
    return result


def extract_text_from_file(path: Path, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Extract canonical text from a file on disk.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file exceeds the upload size limit
    """
    settings = settings or load_settings()
    data = read_document_bytes(path, max_bytes=settings.max_upload_bytes)
    return extract_text_from_bytes(data, path.name, settings=settings)


def main() -> int:
    """
    CLI entry point.

    Returns:
        Exit code (0=success, 1=validation error, 2=extraction error)
    """
    parser = argparse.ArgumentParser(
        description="Extract canonical text from documents (TXT/PDF/DOCX)"
    )
    parser.add_argument("--doc-path", required=True, help="Path to document")
    parser.add_argument("--output", help="Write the JSON result to this path")
    parser.add_argument("--max-pages", type=int, help="PDF page cap")
    parser.add_argument("--no-ocr", action="store_true", help="Disable PDF OCR fallback")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    try:
        settings = load_settings()
        overrides = {}
        if args.max_pages is not None:
            overrides["pdf_max_pages"] = args.max_pages
        if args.no_ocr:
            overrides["ocr_enabled"] = False
        if overrides:
            settings = replace(settings, **overrides)

        result = extract_text_from_file(Path(args.doc_path), settings=settings)

        print(f"[OK] Extracted {result['filename']} ({result['metadata']['char_count']} chars)")
        if args.output:
            write_extraction_json(Path(args.output), result)
            print(f"  Output: {args.output}")
        else:
            print(result["text"][:500])
        return 0

    except (ValueError, FileNotFoundError) as e:
        print(f"[ERROR] Validation error: {e}", file=sys.stderr)
        return 1

    except ExtractionError as e:
        print(f"[ERROR] Extraction error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
