"""
LegalLens test suite

Test organization:
- test_<module>.py: Tests for one legallens module
- test_server.py: HTTP API tests through FastAPI's TestClient
- conftest.py: In-memory PDF/DOCX builders, fake OCR/model clients, manual timer
"""
