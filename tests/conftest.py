"""
Shared pytest fixtures for LegalLens tests.
"""

import io
from typing import Any, Callable, Dict, List, Optional

import pytest
from PIL import Image

from legallens.config import Settings
from legallens.errors import ModelCallFailure, OcrFailure


SAMPLE_CONTRACT = """RESIDENTIAL LEASE AGREEMENT

This agreement is made between Jane Landlord ("Landlord") and John Tenant ("Tenant").

1. Term. The lease duration is 12 months, commencing on September 1, 2025.

2. Rent. The monthly rent is set at $1,500, due on the first of each month.

3. Deposit. A security deposit of $1,500 is required upon signing.

4. Utilities. The tenant is responsible for all utilities except for water.
"""


@pytest.fixture
def sample_contract() -> str:
    """
    Sample lease text.

    Returns:
        str: Multi-paragraph contract text
    """
    return SAMPLE_CONTRACT


@pytest.fixture
def settings() -> Settings:
    """
    Settings with OCR off and a short highlight delay.

    Returns:
        Settings: Deterministic test configuration
    """
    return Settings(ocr_enabled=False, highlight_seconds=3.0, gemini_api_key="test-key")


@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    """
    Build a PDF in memory.

    Each item in `pages` is the text for one page; None produces a page with
    no text layer (as a scanned page would have).

    Returns:
        callable: make_pdf(pages) -> bytes
    """
    import fitz

    def _make(pages: List[Optional[str]]) -> bytes:
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            if text:
                page.insert_text((72, 72), text, fontsize=11)
        data = doc.tobytes()
        doc.close()
        return data

    return _make


@pytest.fixture
def make_docx() -> Callable[..., bytes]:
    """
    Build a DOCX in memory.

    `blocks` is a list of (style, text) pairs; style is 'heading', 'list',
    'bold' or 'p'.

    Returns:
        callable: make_docx(blocks) -> bytes
    """
    import docx

    def _make(blocks: List[tuple]) -> bytes:
        document = docx.Document()
        for style, text in blocks:
            if style == "heading":
                document.add_heading(text, level=1)
            elif style == "list":
                document.add_paragraph(text, style="List Bullet")
            elif style == "bold":
                paragraph = document.add_paragraph()
                paragraph.add_run(text).bold = True
            else:
                document.add_paragraph(text)
        buffer = io.BytesIO()
        document.save(buffer)
        return buffer.getvalue()

    return _make


class FakeOcrEngine:
    """OCR engine returning canned text per call, or failing."""

    def __init__(self, text: str = "", fail: bool = False):
        self.text = text
        self.fail = fail
        self.calls = 0

    def recognize(self, image: Image.Image) -> str:
        self.calls += 1
        if self.fail:
            raise OcrFailure("tesseract exploded")
        return self.text


@pytest.fixture
def fake_ocr() -> Callable[..., FakeOcrEngine]:
    """Factory for FakeOcrEngine."""
    return FakeOcrEngine


@pytest.fixture
def blank_rasterizer() -> Callable[[Any, float], Image.Image]:
    """Rasterizer that returns a small white image without rendering."""

    def _rasterize(page: Any, scale: float) -> Image.Image:
        return Image.new("RGB", (40, 20), "white")

    return _rasterize


class FakeModelClient:
    """ModelClient recording calls and returning canned HTML."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    def _reply(self, operation: str, **kwargs) -> str:
        self.calls.append(dict(operation=operation, **kwargs))
        if self.fail:
            raise ModelCallFailure("model unavailable", operation)
        return (
            f"<p>{operation} result"
            '<sup data-quote="The monthly rent is set at $1,500">1</sup>'
            "</p>"
        )

    def generate_summary(self, text: str, name: str) -> str:
        return self._reply("summary", text=text, name=name)

    def analyze_risks(self, text: str) -> str:
        return self._reply("risks", text=text)

    def answer_question(self, text: str, question: str) -> str:
        return self._reply("answer", text=text, question=question)

    def define_term(self, text: str, term: str) -> str:
        return self._reply("definition", text=text, term=term)


@pytest.fixture
def fake_model() -> FakeModelClient:
    return FakeModelClient()


@pytest.fixture
def failing_model() -> FakeModelClient:
    return FakeModelClient(fail=True)


class ManualScheduler:
    """Scheduler that records timers and fires them on demand."""

    class Handle:
        def __init__(self, delay: float, callback: Callable[[], None]):
            self.delay = delay
            self.callback = callback
            self.cancelled = False

        def cancel(self) -> None:
            self.cancelled = True

    def __init__(self):
        self.handles: List["ManualScheduler.Handle"] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> "ManualScheduler.Handle":
        handle = self.Handle(delay, callback)
        self.handles.append(handle)
        return handle

    def fire_all(self) -> None:
        """Run every pending timer, including cancelled ones (they must be no-ops)."""
        for handle in list(self.handles):
            handle.callback()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


# Markers for test organization
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual functions")
    config.addinivalue_line(
        "markers", "integration: Integration tests for multiple components"
    )
    config.addinivalue_line("markers", "slow: Slow tests (OCR binary, large files)")
