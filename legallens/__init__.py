"""
LegalLens - citation-anchored legal document analysis.

Modules:
- formats: File-name based format sniffing
- extract_text: Format dispatch, validation and the extraction CLI
- pdf_text: PDF text-layer reading with per-page OCR fallback
- ocr: Page rasterization, image enhancement and Tesseract OCR
- docx_convert: DOCX to plain text and display HTML
- quote_locator: Whitespace-normalized quote matching over a text buffer
- highlight: Rendered document views and the transient highlight engine
- citations: Citation marker parsing for model-generated HTML
- model_client: Model-prompting collaborator (Gemini)
- extraction_client: HTTP client for a remote extraction service
- session: Session controller holding documents and the conversation
"""

__version__ = "0.3.0"
