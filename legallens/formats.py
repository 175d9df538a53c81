"""
Format sniffing by file extension.

The format is decided once, at upload time, and threaded through the
pipeline as a DocumentFormat value.
"""

from enum import Enum
from pathlib import PurePath
from typing import Optional


class DocumentFormat(str, Enum):
    """Supported document formats."""

    PLAIN_TEXT = "plain-text"
    PDF = "pdf"
    DOCX = "docx"

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]


_MIME_TYPES = {
    DocumentFormat.PLAIN_TEXT: "text/plain",
    DocumentFormat.PDF: "application/pdf",
    DocumentFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

_EXTENSIONS = {
    "txt": DocumentFormat.PLAIN_TEXT,
    "pdf": DocumentFormat.PDF,
    "docx": DocumentFormat.DOCX,
}

SUPPORTED_EXTENSIONS = tuple(_EXTENSIONS)


def file_extension(filename: Optional[str]) -> str:
    """Lowercased extension without the dot ('' if none)."""
    if not filename:
        return ""
    return PurePath(filename).suffix.lower().lstrip(".")


def sniff_format(filename: Optional[str]) -> DocumentFormat:
    """
    Map a filename to a DocumentFormat.

    Unrecognized or missing extensions fall back to plain text.

    Args:
        filename: Original file name

    Returns:
        DocumentFormat
    """
    return _EXTENSIONS.get(file_extension(filename), DocumentFormat.PLAIN_TEXT)
