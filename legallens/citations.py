"""
Citation markers in model-generated HTML.

The model is asked to attach every citation as a numbered marker carrying
the exact cited text, e.g.:

    <p>The lease runs for 12 months<sup data-quote="twelve (12) months">1</sup>.</p>
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup

QUOTE_ATTRIBUTE = "data-quote"

_UNSAFE_TAGS = ["script", "style", "iframe", "object", "embed", "link", "meta"]
_EVENT_ATTRIBUTE = re.compile(r"^on", re.IGNORECASE)


@dataclass(frozen=True)
class Citation:
    """A quoted substring attached to a numbered marker."""

    number: str
    quote: str


def extract_citations(markup: str) -> List[Citation]:
    """
    Collect citation markers in document order.

    Args:
        markup: Model response HTML

    Returns:
        List of Citation (markers without a quote attribute are skipped)
    """
    if not markup:
        return []

    soup = BeautifulSoup(markup, "lxml")
    citations = []
    for element in soup.find_all(attrs={QUOTE_ATTRIBUTE: True}):
        citations.append(
            Citation(number=element.get_text(strip=True), quote=element[QUOTE_ATTRIBUTE])
        )
    return citations


def find_citation(markup: str, number: str) -> Optional[Citation]:
    """Look up a citation by its visible marker label."""
    wanted = str(number).strip()
    for citation in extract_citations(markup):
        if citation.number == wanted:
            return citation
    return None


def sanitize_response_html(markup: str) -> str:
    """
    Strip active content from model HTML before it is stored or rendered.

    Removes script-like elements and inline event handlers; citation
    attributes are left untouched.
    """
    soup = BeautifulSoup(markup or "", "html.parser")

    for element in soup.find_all(_UNSAFE_TAGS):
        element.decompose()

    for element in soup.find_all(True):
        for attr in list(element.attrs):
            value = element.attrs[attr]
            if _EVENT_ATTRIBUTE.match(attr):
                del element.attrs[attr]
            elif attr in ("href", "src") and str(value).strip().lower().startswith("javascript:"):
                del element.attrs[attr]

    return str(soup)
