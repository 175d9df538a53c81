"""
Error taxonomy for the extraction and analysis pipeline.

Extraction errors are document-level and recoverable by the user (upload a
cleaner file). OcrFailure is page-local and never escapes the PDF reader.
ModelCallFailure is raised by the model-prompting collaborator.
"""


class LegalLensError(Exception):
    """Base class for all pipeline errors."""


class ExtractionError(LegalLensError):
    """Base class for document-level extraction failures."""

    # Wire tag used by the extraction service
    reason = "failed"


class ExtractionTooShort(ExtractionError):
    """Extracted text is below the minimum usable length."""

    reason = "too_short"

    def __init__(self, message: str, char_count: int = 0, min_length: int = 0):
        super().__init__(message)
        self.char_count = char_count
        self.min_length = min_length


class ExtractionFailed(ExtractionError):
    """Decoder-level failure: corrupt container, unreadable PDF, bad encoding."""


class OcrFailure(LegalLensError):
    """OCR could not recognize a page. Page-local and non-fatal."""

    def __init__(self, message: str, page_number: int = 0):
        super().__init__(message)
        self.page_number = page_number


class ModelCallFailure(LegalLensError):
    """The model-prompting collaborator failed to produce a result."""

    def __init__(self, message: str, operation: str = ""):
        super().__init__(message)
        self.operation = operation
