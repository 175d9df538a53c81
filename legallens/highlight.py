"""
Rendered document views and the transient citation highlight.

A DocumentView wraps the HTML rendering of a document. Its text nodes are
flattened into a TextBuffer (quote_locator) so matching stays independent of
the rendering; only the final wrap/unwrap touches the parsed tree.

The HighlightEngine keeps at most one highlight alive. A new request tears
down the previous one first, and every highlight removes itself after a
fixed delay.
"""

import html
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from bs4 import BeautifulSoup, NavigableString

from legallens.formats import DocumentFormat
from legallens.quote_locator import QuoteMatch, TextBuffer, locate_nearest, locate_quote

logger = logging.getLogger(__name__)

HIGHLIGHT_CLASS = "citation-highlight"
DEFAULT_HIGHLIGHT_SECONDS = 3.0

# Text under these elements is never part of the visible document
_INVISIBLE_PARENTS = {"script", "style", "head", "title", "template"}

# Scheduler signature: (delay_seconds, callback) -> handle with cancel()
Scheduler = Callable[[float, Callable[[], None]], Any]


def render_text_view(text: str) -> str:
    """
    Render plain text for the document viewer.

    Args:
        text: Document text (line breaks preserved)

    Returns:
        HTML fragment
    """
    return (
        '<div class="document-view">'
        f'<pre class="document-text">{html.escape(text, quote=False)}</pre>'
        "</div>"
    )


def timer_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Run callback once on a daemon timer thread."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class DocumentView:
    """Parsed rendering of one document."""

    def __init__(self, markup: str):
        self.soup = BeautifulSoup(markup, "html.parser")

    def text_nodes(self):
        """Visible text nodes in document order."""
        for node in self.soup.descendants:
            # Comments, CDATA, doctypes are NavigableString subclasses
            if type(node) is not NavigableString:
                continue
            if node.parent is not None and node.parent.name in _INVISIBLE_PARENTS:
                continue
            yield node

    def buffer(self) -> TextBuffer:
        return TextBuffer.from_segments((node, str(node)) for node in self.text_nodes())

    def text(self) -> str:
        return self.buffer().text

    def html(self) -> str:
        return str(self.soup)

    def wrap(self, match: QuoteMatch, highlight_id: str) -> int:
        """
        Wrap a located match in highlight markers.

        One <mark> is inserted per text node the match touches; the first
        carries an id so the viewer can scroll to it.

        Returns:
            Number of markers inserted
        """
        inserted = 0
        for span in match.spans:
            node = span.anchor
            if node is None or node.parent is None:
                continue

            text = str(node)
            start = min(span.start, len(text))
            end = min(span.end, len(text))
            if start >= end:
                continue

            mark = self.soup.new_tag("mark", attrs={"class": HIGHLIGHT_CLASS, "data-highlight-id": highlight_id})
            if inserted == 0:
                mark["id"] = highlight_id
            mark.string = text[start:end]

            pieces = []
            if text[:start]:
                pieces.append(NavigableString(text[:start]))
            pieces.append(mark)
            if text[end:]:
                pieces.append(NavigableString(text[end:]))
            node.replace_with(*pieces)
            inserted += 1

        return inserted

    def unwrap(self, highlight_id: str) -> int:
        """
        Remove the markers of one highlight, restoring plain text.

        Markers already detached from the tree are skipped.

        Returns:
            Number of markers removed
        """
        removed = 0
        for mark in self.soup.find_all("mark", attrs={"data-highlight-id": highlight_id}):
            if mark.parent is None:
                continue
            mark.unwrap()
            removed += 1
        if removed:
            self.soup.smooth()
        return removed


@dataclass
class ViewerAction:
    """What the viewer should do in response to a citation click."""

    kind: str  # 'scroll_to_match', 'scroll_to_top', 'open_source' or 'none'
    target: Optional[str] = None
    block: str = "start"
    match: Optional[QuoteMatch] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"action": self.kind, "target": self.target, "block": self.block}
        if self.match is not None:
            data["match"] = {"start": self.match.start, "end": self.match.end, "text": self.match.text}
        return data


@dataclass
class HighlightSession:
    """The single active highlight and its expiry timer."""

    highlight_id: str
    match: QuoteMatch
    timer: Any = None


class HighlightEngine:
    """
    Quote location and transient highlighting for one document view.

    Args:
        view: The rendered document
        doc_format: Format of the underlying document
        delay: Seconds before a highlight removes itself (default: 3.0)
        scheduler: (delay, callback) -> handle with cancel()
    """

    def __init__(
        self,
        view: DocumentView,
        doc_format: DocumentFormat,
        delay: float = DEFAULT_HIGHLIGHT_SECONDS,
        scheduler: Scheduler = timer_scheduler,
    ):
        self.view = view
        self.doc_format = doc_format
        self.delay = delay
        self.scheduler = scheduler
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self.active: Optional[HighlightSession] = None

    def locate(self, quote: str, near: Optional[int] = None) -> ViewerAction:
        """
        Find a quote in the view, highlight it and say where to scroll.

        Blank quotes scroll to the top. PDFs have no text-layer correlation
        with the embedded viewer, so they offer opening the source instead.
        A quote that is not found is a silent no-op. Every request removes
        the previous highlight first, whatever its outcome.

        Args:
            quote: Citation quote
            near: Prefer the occurrence closest to this buffer offset

        Returns:
            ViewerAction
        """
        with self._lock:
            self.clear()

            if not quote or not quote.strip():
                return ViewerAction("scroll_to_top")

            if self.doc_format is DocumentFormat.PDF:
                return ViewerAction("open_source")

            buffer = self.view.buffer()
            if near is None:
                match = locate_quote(buffer, quote)
            else:
                match = locate_nearest(buffer, quote, near)

            if match is None:
                logger.debug("Quote not found in view: %r", quote[:80])
                return ViewerAction("none")

            highlight_id = f"highlight-{next(self._ids)}"
            self.view.wrap(match, highlight_id)
            session = HighlightSession(highlight_id, match)
            self.active = session
            session.timer = self.scheduler(self.delay, lambda: self._expire(highlight_id))

        return ViewerAction("scroll_to_match", target=highlight_id, block="center", match=match)

    def clear(self) -> None:
        """Remove the active highlight immediately."""
        with self._lock:
            session = self.active
            if session is None:
                return
            self.active = None
            if session.timer is not None:
                session.timer.cancel()
            self.view.unwrap(session.highlight_id)

    def _expire(self, highlight_id: str) -> None:
        with self._lock:
            if self.active is None or self.active.highlight_id != highlight_id:
                # Superseded or already cleared
                return
            self.active = None
            self.view.unwrap(highlight_id)
