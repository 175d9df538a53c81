"""
HTTP client for a remote extraction service.

Used when extraction runs in a different process from the session
controller. The service contract is POST {base_url}/api/extract-text with a
multipart "file" field, answering {"text": ...} or {"error": ...}.
"""

import logging
import time
from typing import Any, Dict

import requests

from legallens.errors import ExtractionFailed, ExtractionTooShort
from legallens.formats import sniff_format

logger = logging.getLogger(__name__)

EXTRACT_PATH = "/api/extract-text"


class RemoteExtractionClient:
    """
    Extraction over HTTP.

    Args:
        base_url: Service base URL, e.g. http://localhost:8000
        timeout_sec: Request timeout (default: 120, OCR can be slow)
        max_retries: Attempts on timeout/connection errors (default: 3)
        session: Optional requests.Session
    """

    def __init__(
        self,
        base_url: str,
        timeout_sec: int = 120,
        max_retries: int = 3,
        session: Any = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.max_retries = max_retries
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{EXTRACT_PATH}"

    def _post(self, data: bytes, filename: str) -> Any:
        retry_delay = 1.0
        mime_type = sniff_format(filename).mime_type

        for attempt in range(self.max_retries):
            try:
                return self.session.post(
                    self.endpoint,
                    files={"file": (filename, data, mime_type)},
                    timeout=self.timeout_sec,
                )
            except (requests.Timeout, requests.ConnectionError) as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        "Extraction service unavailable, retrying (%d/%d): %s",
                        attempt + 1, self.max_retries, e,
                    )
                    time.sleep(retry_delay * (2 ** attempt))
                    continue
                raise ExtractionFailed(f"Extraction service unreachable: {e}") from e
            except requests.RequestException as e:
                raise ExtractionFailed(f"Extraction request failed: {e}") from e

        raise ExtractionFailed("Extraction service unreachable")

    def extract(self, data: bytes, filename: str) -> Dict[str, Any]:
        """
        Extract text remotely.

        Returns:
            dict with 'text'

        Raises:
            ExtractionTooShort: On HTTP 422 tagged (or left untagged) as too short
            ExtractionFailed: On any other failure
        """
        response = self._post(data, filename)

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.status_code == 200 and isinstance(payload.get("text"), str):
            return {"text": payload["text"]}

        message = payload.get("error") or f"HTTP {response.status_code}"
        reason = payload.get("reason", ExtractionTooShort.reason)
        if response.status_code == 422 and reason == ExtractionTooShort.reason:
            raise ExtractionTooShort(message)
        raise ExtractionFailed(message)
