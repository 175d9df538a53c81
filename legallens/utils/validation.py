"""
Extraction validation and whitespace canonicalization.
"""

import re
from dataclasses import dataclass
from typing import List

from legallens.errors import ExtractionTooShort

_WHITESPACE_RUN = re.compile(r"\s+")

# Likely causes, keyed by the extractor that produced the text
TOO_SHORT_HINTS = {
    "plain-text": "The file appears to be empty or nearly empty.",
    "docx": "The document appears to be empty or contains only images.",
    "pdf": "It may be scanned, encrypted, or damaged.",
}


@dataclass
class ValidationResult:
    """Result of validation check."""

    valid: bool
    errors: List[str]

    def __bool__(self) -> bool:
        """Allow using as boolean."""
        return self.valid


def collapse_whitespace(text: str) -> str:
    """
    Collapse runs of whitespace to a single space and trim.

    Args:
        text: Raw extracted text

    Returns:
        Canonical single-spaced text
    """
    return _WHITESPACE_RUN.sub(" ", text or "").strip()


def validate_extracted_text(text: str, min_length: int) -> ValidationResult:
    """
    Check extracted text against a minimum trimmed length.

    Args:
        text: Extracted text
        min_length: Minimum number of characters after trimming

    Returns:
        ValidationResult with errors if invalid
    """
    errors = []

    if text is None or not text.strip():
        errors.append("No text could be extracted")
    elif len(text.strip()) < min_length:
        errors.append(
            f"Extracted text is {len(text.strip())} characters, "
            f"minimum is {min_length}"
        )

    return ValidationResult(valid=len(errors) == 0, errors=errors)


def require_usable_text(text: str, min_length: int, source: str) -> str:
    """
    Validate extracted text and return its canonical form.

    The length check runs on the whitespace-collapsed text, so the text
    handed downstream is never shorter than min_length.

    Args:
        text: Extracted text
        min_length: Minimum trimmed length
        source: Extractor name, used to pick the human-readable cause

    Returns:
        Whitespace-collapsed text

    Raises:
        ExtractionTooShort: If the text is empty or below min_length
    """
    canonical = collapse_whitespace(text)
    result = validate_extracted_text(canonical, min_length)
    if not result:
        hint = TOO_SHORT_HINTS.get(source, "The document may be empty or damaged.")
        raise ExtractionTooShort(
            f"Could not extract enough text from this document. {hint} ({result.errors[0]})",
            char_count=len(canonical),
            min_length=min_length,
        )
    return canonical
