"""
Environment-driven configuration.

Values are read from the process environment (and a local .env file, if
present) once per load_settings() call and captured in a frozen Settings
object that is passed explicitly to the components that need it.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Minimum trimmed lengths (characters)
MIN_PLAIN_TEXT_LENGTH = 10
MIN_DOCX_TEXT_LENGTH = 30
MIN_PDF_PAGE_TEXT_LENGTH = 30
MIN_PDF_TEXT_LENGTH = 30

DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000,http://localhost:9002,http://127.0.0.1:3000"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {value!r}")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the pipeline and API."""

    extraction_base_url: Optional[str] = None
    pdf_max_pages: int = 5
    pdf_ocr_scale: float = 2.0
    ocr_enabled: bool = True
    ocr_lang: str = "eng"
    ocr_max_workers: int = 4
    highlight_seconds: float = 3.0
    max_documents: int = 20
    max_upload_mb: int = 20
    gemini_api_key: Optional[str] = None
    model_name: str = "gemini-1.5-flash"
    max_prompt_chars: int = 100_000
    allowed_origins: List[str] = field(
        default_factory=lambda: DEFAULT_ALLOWED_ORIGINS.split(",")
    )
    log_level: str = "INFO"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def load_settings(dotenv: bool = True) -> Settings:
    """
    Build Settings from the environment.

    Args:
        dotenv: Load a .env file from the working directory first (default: True)

    Returns:
        Settings instance

    Raises:
        ValueError: If a numeric variable cannot be parsed
    """
    if dotenv:
        load_dotenv()

    base_url = os.environ.get("LEGALLENS_EXTRACTION_BASE_URL", "").strip()
    origins = os.environ.get("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS)

    return Settings(
        extraction_base_url=base_url.rstrip("/") or None,
        pdf_max_pages=_env_int("LEGALLENS_PDF_MAX_PAGES", 5),
        pdf_ocr_scale=_env_float("LEGALLENS_PDF_OCR_SCALE", 2.0),
        ocr_enabled=_env_bool("LEGALLENS_OCR_ENABLED", True),
        ocr_lang=os.environ.get("LEGALLENS_OCR_LANG", "eng"),
        ocr_max_workers=_env_int("LEGALLENS_OCR_MAX_WORKERS", 4),
        highlight_seconds=_env_float("LEGALLENS_HIGHLIGHT_SECONDS", 3.0),
        max_documents=_env_int("LEGALLENS_MAX_DOCUMENTS", 20),
        max_upload_mb=_env_int("LEGALLENS_MAX_UPLOAD_MB", 20),
        gemini_api_key=os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY"),
        model_name=os.environ.get("LEGALLENS_MODEL", "gemini-1.5-flash"),
        max_prompt_chars=_env_int("LEGALLENS_MAX_PROMPT_CHARS", 100_000),
        allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
