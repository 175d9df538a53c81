"""
Document file I/O for the extraction CLI.
"""

import json
from pathlib import Path
from typing import Any, Dict


def read_document_bytes(path: Path, max_bytes: int = 0) -> bytes:
    """
    Read an uploaded document from disk.

    Args:
        path: Document path
        max_bytes: Reject files larger than this (0 = no limit)

    Returns:
        Raw document bytes

    Raises:
        FileNotFoundError: If the path is missing or not a regular file
        ValueError: If the file exceeds max_bytes
    """
    if not path.is_file():
        raise FileNotFoundError(f"Document not found: {path}")

    size = path.stat().st_size
    if max_bytes and size > max_bytes:
        raise ValueError(f"Document too large: {size} bytes (limit {max_bytes})")

    return path.read_bytes()


def write_extraction_json(path: Path, result: Dict[str, Any]) -> None:
    """
    Write an extraction result as JSON, replacing any previous file atomically.

    Non-JSON values (enums, datetimes) are written as strings.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    partial = path.with_name(f".{path.name}.partial")
    partial.write_text(
        json.dumps(result, indent=2, ensure_ascii=False, default=str) + "\n",
        encoding="utf-8",
    )
    partial.replace(path)
