"""
Session controller: the documents, the selected document and the
conversation for one user session.

All state lives in memory and is owned by a single SessionController that
is passed explicitly to whoever needs it. Every document-level failure
(extraction or model) is caught at the operation boundary and turned into an
error message in the conversation; nothing here raises those to the caller.
"""

import base64
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from legallens.citations import find_citation, sanitize_response_html
from legallens.config import Settings, load_settings
from legallens.docx_convert import convert_to_display_html
from legallens.errors import ExtractionError, ModelCallFailure
from legallens.extract_text import extract_text_from_bytes
from legallens.extraction_client import RemoteExtractionClient
from legallens.formats import DocumentFormat, sniff_format
from legallens.highlight import (
    DocumentView,
    HighlightEngine,
    Scheduler,
    ViewerAction,
    render_text_view,
    timer_scheduler,
)
from legallens.model_client import ModelClient
from legallens.utils.validation import collapse_whitespace

logger = logging.getLogger(__name__)

# Extractor signature: (data, filename) -> dict with 'text' (and optionally 'raw_text')
Extractor = Callable[[bytes, str], Dict[str, Any]]

BUSY_MESSAGE = "Please wait for the current request to finish."
MODEL_ERROR_MESSAGES = {
    "summary": "Sorry, I couldn't summarize this document. Please try again.",
    "risks": "Sorry, I couldn't analyze this document for risks. Please try again.",
    "answer": "Sorry, I couldn't answer that question. Please try again.",
    "definition": "Sorry, I couldn't define that term. Please try again.",
}

_id_lock = threading.Lock()
_last_id = 0


def next_id() -> int:
    """Unique, monotonic, millisecond-timestamp based identifier."""
    global _last_id
    with _id_lock:
        candidate = int(time.time() * 1000)
        _last_id = max(candidate, _last_id + 1)
        return _last_id


@dataclass
class Document:
    """An uploaded file under analysis."""

    id: int
    name: str
    content: str  # base64 of the original bytes
    format: DocumentFormat
    uploaded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    canonical_text: Optional[str] = None
    raw_text: Optional[str] = None
    rendered_html: Optional[str] = None
    summary: Optional[str] = None
    extraction_error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_upload(cls, name: str, data: bytes) -> "Document":
        return cls(
            id=next_id(),
            name=name,
            content=base64.b64encode(data).decode("ascii"),
            format=sniff_format(name),
        )

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.content)

    def data_uri(self) -> str:
        return f"data:{self.format.mime_type};base64,{self.content}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "format": self.format.value,
            "uploaded_at": self.uploaded_at,
            "extracted": self.canonical_text is not None,
            "char_count": len(self.canonical_text or ""),
            "has_summary": self.summary is not None,
            "extraction_error": self.extraction_error,
            "metadata": self.metadata,
        }


@dataclass
class Message:
    """One turn in the conversation."""

    id: int
    sender: str  # 'user' or 'ai'
    content: str
    document_id: Optional[int] = None
    is_error: bool = False
    delivered: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "content": self.content,
            "document_id": self.document_id,
            "is_error": self.is_error,
        }


def default_extractor(settings: Settings) -> Extractor:
    """Remote extraction when a base URL is configured, local otherwise."""
    if settings.extraction_base_url:
        return RemoteExtractionClient(settings.extraction_base_url).extract
    return partial(extract_text_from_bytes, settings=settings)


class SessionController:
    """
    Owns one session's documents, selection, conversation and loading flag.

    Args:
        model_client: ModelClient implementation
        settings: Runtime settings (default: load from environment)
        extractor: (data, filename) -> extraction dict
        scheduler: Timer factory for highlight expiry
    """

    def __init__(
        self,
        model_client: ModelClient,
        settings: Optional[Settings] = None,
        extractor: Optional[Extractor] = None,
        scheduler: Scheduler = timer_scheduler,
    ):
        self.settings = settings or load_settings()
        self.model_client = model_client
        self.extractor = extractor or default_extractor(self.settings)
        self.scheduler = scheduler

        self.documents: Dict[int, Document] = {}
        self.selected_id: Optional[int] = None
        self.messages: List[Message] = []
        self.loading = False

        self._engines: Dict[int, HighlightEngine] = {}
        self._lock = threading.RLock()

    # ===== Documents =====

    def get(self, doc_id: int) -> Document:
        """
        Raises:
            KeyError: If the document is unknown
        """
        try:
            return self.documents[doc_id]
        except KeyError:
            raise KeyError(f"Unknown document: {doc_id}") from None

    @property
    def selected(self) -> Optional[Document]:
        return self.documents.get(self.selected_id) if self.selected_id is not None else None

    def add_document(self, name: str, data: bytes) -> Document:
        """
        Register an uploaded file without processing it.

        Raises:
            ValueError: If the file is empty, too large, or the session is full
        """
        if not data:
            raise ValueError("The uploaded file is empty")
        if len(data) > self.settings.max_upload_bytes:
            raise ValueError(f"File too large (limit {self.settings.max_upload_mb} MB)")

        with self._lock:
            if len(self.documents) >= self.settings.max_documents:
                raise ValueError(
                    f"Document limit reached ({self.settings.max_documents}); delete a document first"
                )
            document = Document.from_upload(name, data)
            self.documents[document.id] = document

        logger.info("Added document %s (%s, id=%d)", name, document.format.value, document.id)
        return document

    def upload(self, name: str, data: bytes) -> Document:
        """
        Add a document, select it and summarize it.

        Extraction happens as part of the summary; failures show up as an
        error message in the conversation.

        Raises:
            ValueError: If another operation is in flight, or the file is
                rejected by add_document
        """
        with self._lock:
            if self.loading:
                raise ValueError(BUSY_MESSAGE)
        document = self.add_document(name, data)
        self.select(document.id)
        self.summarize(document.id)
        return document

    def select(self, doc_id: int) -> Document:
        """Make a document active; the conversation restarts with its summary."""
        with self._lock:
            document = self.get(doc_id)
            self.selected_id = doc_id
            self.messages = []
            if document.summary:
                self._append(Message(next_id(), "ai", document.summary, document_id=doc_id))
        return document

    def delete(self, doc_id: int) -> None:
        """Remove a document and anything derived from it."""
        with self._lock:
            self.get(doc_id)
            engine = self._engines.pop(doc_id, None)
            if engine is not None:
                engine.clear()
            del self.documents[doc_id]

            if self.selected_id == doc_id:
                self.selected_id = None
                self.messages = []
                if self.documents:
                    self.select(next(iter(self.documents)))

        logger.info("Deleted document id=%d", doc_id)

    def ensure_canonical_text(self, document: Document, refresh: bool = False) -> str:
        """
        Extract and cache a document's canonical text.

        The cached text is reused unless refresh is requested.

        Raises:
            ExtractionTooShort / ExtractionFailed: If extraction fails
        """
        if document.canonical_text is not None and not refresh:
            return document.canonical_text

        data = document.raw_bytes()
        try:
            result = self.extractor(data, document.name)
        except ExtractionError as e:
            document.extraction_error = str(e)
            raise

        raw_text = result.get("raw_text") or result["text"]
        document.canonical_text = collapse_whitespace(result["text"])
        document.raw_text = raw_text
        document.metadata = result.get("metadata", {})
        document.extraction_error = None

        if document.format is DocumentFormat.DOCX:
            document.rendered_html = convert_to_display_html(data)

        # The rendering changed, rebuild the highlight engine on next use
        old_engine = self._engines.pop(document.id, None)
        if old_engine is not None:
            old_engine.clear()

        return document.canonical_text

    # ===== Conversation =====

    def _append(self, message: Message) -> Message:
        with self._lock:
            self.messages.append(message)
        return message

    def _deliver(self, doc_id: int, content: str, is_error: bool = False) -> Message:
        """
        Append an AI message, unless its document is no longer selected.

        A result that arrives after the user switched documents is returned
        to the caller but kept out of the newer document's conversation.
        """
        message = Message(next_id(), "ai", content, document_id=doc_id, is_error=is_error)
        with self._lock:
            if self.selected_id == doc_id:
                self.messages.append(message)
            else:
                message.delivered = False
                logger.info("Discarding stale result for document id=%d", doc_id)
        return message

    def _run(
        self,
        doc_id: int,
        operation: str,
        call: Callable[[Document, str], str],
        user_content: Optional[str] = None,
        refresh: bool = False,
    ) -> Message:
        with self._lock:
            document = self.get(doc_id)
            if self.loading:
                return Message(next_id(), "ai", BUSY_MESSAGE, document_id=doc_id, is_error=True, delivered=False)
            self.loading = True
            if user_content and self.selected_id == doc_id:
                self._append(Message(next_id(), "user", user_content, document_id=doc_id))

        try:
            try:
                text = self.ensure_canonical_text(document, refresh=refresh)
            except ExtractionError as e:
                logger.warning("Extraction failed for %s: %s", document.name, e)
                return self._deliver(doc_id, str(e), is_error=True)

            try:
                result = sanitize_response_html(call(document, text))
            except ModelCallFailure as e:
                logger.warning("Model %s failed for %s: %s", operation, document.name, e)
                return self._deliver(doc_id, MODEL_ERROR_MESSAGES[operation], is_error=True)

            if operation == "summary":
                document.summary = result
            return self._deliver(doc_id, result)
        finally:
            with self._lock:
                self.loading = False

    def summarize(self, doc_id: int, refresh: bool = False) -> Message:
        """
        Summarize a document.

        A cached summary is reused; refresh re-extracts and regenerates it.
        If the conversation already ends with that summary it is not repeated.
        """
        document = self.get(doc_id)
        if document.summary and not refresh:
            with self._lock:
                last = self.messages[-1] if self.messages else None
                if (
                    last is not None
                    and self.selected_id == doc_id
                    and last.sender == "ai"
                    and last.document_id == doc_id
                    and last.content == document.summary
                ):
                    return last
            return self._deliver(doc_id, document.summary)
        return self._run(
            doc_id,
            "summary",
            lambda doc, text: self.model_client.generate_summary(text, doc.name),
            refresh=refresh,
        )

    def analyze_risks(self, doc_id: int) -> Message:
        return self._run(
            doc_id,
            "risks",
            lambda doc, text: self.model_client.analyze_risks(text),
            user_content="Identify risks and key clauses",
        )

    def ask(self, doc_id: int, question: str) -> Message:
        """
        Raises:
            ValueError: If the question is blank
        """
        question = (question or "").strip()
        if not question:
            raise ValueError("Question cannot be empty")
        return self._run(
            doc_id,
            "answer",
            lambda doc, text: self.model_client.answer_question(text, question),
            user_content=question,
        )

    def define_term(self, doc_id: int, term: str) -> Message:
        """
        Raises:
            ValueError: If the term is blank
        """
        term = (term or "").strip()
        if not term:
            raise ValueError("Term cannot be empty")
        return self._run(
            doc_id,
            "definition",
            lambda doc, text: self.model_client.define_term(text, term),
            user_content=f"Define: {term}",
        )

    # ===== Viewer =====

    def _view_text(self, document: Document) -> str:
        if document.raw_text is not None:
            return document.raw_text
        if document.format is DocumentFormat.PLAIN_TEXT:
            # Not extracted (or extraction failed): show the file as-is
            return document.raw_bytes().decode("utf-8", errors="replace")
        return ""

    def highlight_engine(self, doc_id: int) -> HighlightEngine:
        """The highlight engine for a document's text rendering."""
        with self._lock:
            document = self.get(doc_id)
            engine = self._engines.get(doc_id)
            if engine is None:
                view = DocumentView(render_text_view(self._view_text(document)))
                engine = HighlightEngine(
                    view,
                    document.format,
                    delay=self.settings.highlight_seconds,
                    scheduler=self.scheduler,
                )
                self._engines[doc_id] = engine
            return engine

    def find_quote(self, label: str) -> Optional[str]:
        """Quote behind a citation label, newest AI message first."""
        with self._lock:
            messages = list(self.messages)
        for message in reversed(messages):
            if message.sender != "ai" or message.is_error:
                continue
            citation = find_citation(message.content, label)
            if citation is not None:
                return citation.quote
        return None

    def locate_citation(
        self,
        doc_id: int,
        quote: Optional[str] = None,
        label: Optional[str] = None,
        near: Optional[int] = None,
    ) -> ViewerAction:
        """
        Highlight a cited quote in the document view.

        Either the quote itself or the visible citation label may be given.
        """
        if not quote and label:
            quote = self.find_quote(label) or ""
        return self.highlight_engine(doc_id).locate(quote or "", near=near)

    def view_html(self, doc_id: int) -> str:
        """Current text rendering, including any active highlight."""
        return self.highlight_engine(doc_id).view.html()

    def display_html(self, doc_id: int) -> Optional[str]:
        """Rich DOCX rendering (None for other formats)."""
        document = self.get(doc_id)
        if document.format is DocumentFormat.DOCX and document.rendered_html is None:
            try:
                document.rendered_html = convert_to_display_html(document.raw_bytes())
            except ExtractionError as e:
                logger.warning("Could not render %s: %s", document.name, e)
        return document.rendered_html
