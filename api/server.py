#!/usr/bin/env python3
"""
FastAPI backend for LegalLens - legal document analysis with traceable citations.

Exposes the extraction service boundary (POST /api/extract-text) and the
document workspace: upload, summaries, risk analysis, Q&A, term
definitions and citation highlighting.

Usage:
    python -m api.server
"""

import logging
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from legallens import __version__
from legallens.config import Settings, load_settings
from legallens.errors import ExtractionError
from legallens.extract_text import extract_text_from_bytes
from legallens.formats import SUPPORTED_EXTENSIONS
from legallens.model_client import GeminiModelClient
from legallens.session import SessionController

logger = logging.getLogger(__name__)


# ===== Models =====

class QuestionRequest(BaseModel):
    question: str


class TermRequest(BaseModel):
    term: str


class SummaryRequest(BaseModel):
    refresh: bool = False


class LocateQuoteRequest(BaseModel):
    quote: Optional[str] = None
    label: Optional[str] = None
    near: Optional[int] = None


class MessageResponse(BaseModel):
    id: int
    sender: str
    content: str
    document_id: Optional[int] = None
    is_error: bool = False
    delivered: bool = True


# ===== Helpers =====

def _error(status_code: int, message: str, reason: Optional[str] = None) -> JSONResponse:
    content = {"error": message}
    if reason:
        content["reason"] = reason
    return JSONResponse(status_code=status_code, content=content)


def _controller(request: Request) -> SessionController:
    return request.app.state.controller


def _message_response(message) -> MessageResponse:
    return MessageResponse(delivered=message.delivered, **message.to_dict())


def _document_or_404(controller: SessionController, doc_id: int):
    try:
        return controller.get(doc_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Document {doc_id} not found")


# ===== App Setup =====

def create_app(
    settings: Optional[Settings] = None,
    controller: Optional[SessionController] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Runtime settings (default: load from environment)
        controller: Session controller (default: Gemini-backed controller)

    Returns:
        FastAPI app
    """
    settings = settings or load_settings()
    if controller is None:
        controller = SessionController(GeminiModelClient(settings), settings=settings)

    app = FastAPI(
        title="LegalLens API",
        description="Legal document analysis with citations traceable to the source text",
        version=__version__,
    )
    app.state.settings = settings
    app.state.controller = controller

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ===== Extraction Service =====

    @app.post("/api/extract-text")
    async def extract_text(file: Optional[UploadFile] = File(None)):
        """
        Extract canonical text from an uploaded document.

        Returns {"text": ...} on success, {"error": ...} with 400 (no file),
        422 (unextractable content) or 500 (unexpected failure). A 422 body
        also carries "reason": "too_short" or "failed".
        """
        if file is None:
            return _error(400, "No file provided")

        filename = file.filename or "document.txt"
        content = await file.read()
        if not content:
            return _error(400, "No file provided")
        if len(content) > settings.max_upload_bytes:
            return _error(400, f"File too large (limit {settings.max_upload_mb} MB)")

        try:
            result = await run_in_threadpool(extract_text_from_bytes, content, filename, settings=settings)
        except ExtractionError as e:
            logger.info("Extraction rejected for %s: %s", filename, e)
            return _error(422, str(e), reason=e.reason)
        except Exception:
            logger.exception("Error processing %s", filename)
            return _error(500, "Failed to process document")

        return {"text": result["text"]}

    # ===== Documents =====

    @app.post("/api/documents")
    async def upload_document(request: Request, file: UploadFile = File(...)):
        """Upload, select and summarize a document."""
        controller = _controller(request)
        filename = file.filename or "document.txt"
        content = await file.read()

        try:
            document = await run_in_threadpool(controller.upload, filename, content)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        return {
            "document": document.to_dict(),
            "messages": [_message_response(m) for m in controller.messages],
            "supported_extensions": list(SUPPORTED_EXTENSIONS),
        }

    @app.get("/api/documents")
    async def list_documents(request: Request):
        controller = _controller(request)
        return {
            "documents": [d.to_dict() for d in controller.documents.values()],
            "selected_id": controller.selected_id,
        }

    @app.get("/api/documents/{doc_id}")
    async def get_document(request: Request, doc_id: int):
        document = _document_or_404(_controller(request), doc_id)
        return dict(document.to_dict(), data_uri=document.data_uri())

    @app.delete("/api/documents/{doc_id}")
    async def delete_document(request: Request, doc_id: int):
        controller = _controller(request)
        _document_or_404(controller, doc_id)
        controller.delete(doc_id)
        return {"deleted": doc_id, "selected_id": controller.selected_id}

    @app.post("/api/documents/{doc_id}/select")
    async def select_document(request: Request, doc_id: int):
        controller = _controller(request)
        _document_or_404(controller, doc_id)
        document = controller.select(doc_id)
        return {
            "document": document.to_dict(),
            "messages": [_message_response(m) for m in controller.messages],
        }

    @app.get("/api/documents/{doc_id}/view", response_class=HTMLResponse)
    def document_view(request: Request, doc_id: int):
        """Text rendering used for citation highlighting."""
        controller = _controller(request)
        _document_or_404(controller, doc_id)
        return HTMLResponse(controller.view_html(doc_id))

    @app.get("/api/documents/{doc_id}/display-html", response_class=HTMLResponse)
    def document_display_html(request: Request, doc_id: int):
        """Rich rendering (DOCX only)."""
        controller = _controller(request)
        _document_or_404(controller, doc_id)
        rendered = controller.display_html(doc_id)
        if rendered is None:
            raise HTTPException(status_code=404, detail="No rich rendering for this document")
        return HTMLResponse(rendered)

    # ===== Analysis =====

    @app.post("/api/documents/{doc_id}/summary", response_model=MessageResponse)
    def summarize_document(request: Request, doc_id: int, body: Optional[SummaryRequest] = None):
        controller = _controller(request)
        _document_or_404(controller, doc_id)
        refresh = body.refresh if body is not None else False
        return _message_response(controller.summarize(doc_id, refresh=refresh))

    @app.post("/api/documents/{doc_id}/risks", response_model=MessageResponse)
    def analyze_risks(request: Request, doc_id: int):
        controller = _controller(request)
        _document_or_404(controller, doc_id)
        return _message_response(controller.analyze_risks(doc_id))

    @app.post("/api/documents/{doc_id}/ask", response_model=MessageResponse)
    def ask_question(request: Request, doc_id: int, body: QuestionRequest):
        controller = _controller(request)
        _document_or_404(controller, doc_id)
        try:
            message = controller.ask(doc_id, body.question)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _message_response(message)

    @app.post("/api/documents/{doc_id}/define", response_model=MessageResponse)
    def define_term(request: Request, doc_id: int, body: TermRequest):
        controller = _controller(request)
        _document_or_404(controller, doc_id)
        try:
            message = controller.define_term(doc_id, body.term)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _message_response(message)

    @app.post("/api/documents/{doc_id}/locate-quote")
    def locate_quote(request: Request, doc_id: int, body: LocateQuoteRequest):
        """Highlight a cited quote and tell the viewer where to scroll."""
        controller = _controller(request)
        _document_or_404(controller, doc_id)
        action = controller.locate_citation(doc_id, quote=body.quote, label=body.label, near=body.near)
        return action.to_dict()

    @app.get("/api/messages")
    async def list_messages(request: Request):
        controller = _controller(request)
        return {
            "selected_id": controller.selected_id,
            "loading": controller.loading,
            "messages": [_message_response(m) for m in controller.messages],
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "name": "LegalLens API", "version": __version__}

    return app


def _configure_logging() -> None:
    settings = load_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=8000)
