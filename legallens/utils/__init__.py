"""
Shared utilities for the LegalLens pipeline.

Modules:
- file_helpers: Document reads and atomic JSON result writes
- validation: Extracted-text validation and whitespace canonicalization
"""
