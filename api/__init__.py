"""
LegalLens HTTP API.
"""
