"""
Locate a cited quote inside a document's text.

Matching runs on a linear text buffer. Both the buffer and the quote are
normalized (whitespace runs collapsed to one space, trimmed, case-folded)
before searching, and the match is mapped back to offsets in the original,
non-normalized buffer. Only at the very end are those offsets resolved to
render anchors (text nodes, in the HTML view).

Whitespace normalization is not length-preserving, so the mapping back is
done by re-walking the original characters and counting the non-whitespace
characters consumed.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union


@dataclass(frozen=True)
class Segment:
    """A stretch [start, end) of the buffer owned by one render anchor."""

    start: int
    end: int
    anchor: Any


@dataclass(frozen=True)
class AnchorSpan:
    """Part of a match that falls inside one anchor, in anchor-local offsets."""

    anchor: Any
    start: int
    end: int


@dataclass
class QuoteMatch:
    """A located quote."""

    start: int
    end: int
    text: str
    spans: List[AnchorSpan] = field(default_factory=list)


class TextBuffer:
    """Linear text plus a mapping from buffer offsets to render anchors."""

    def __init__(self, text: str, segments: Optional[Sequence[Segment]] = None):
        self.text = text
        self.segments = list(segments) if segments is not None else [Segment(0, len(text), None)]

    @classmethod
    def from_segments(cls, pieces: Iterable[Tuple[Any, str]]) -> "TextBuffer":
        """
        Build a buffer from (anchor, text) pairs in document order.

        Args:
            pieces: Anchor and the text it renders

        Returns:
            TextBuffer whose text is the concatenation of all pieces
        """
        parts = []
        segments = []
        offset = 0
        for anchor, text in pieces:
            if not text:
                continue
            parts.append(text)
            segments.append(Segment(offset, offset + len(text), anchor))
            offset += len(text)
        return cls("".join(parts), segments)

    def resolve(self, start: int, end: int) -> List[AnchorSpan]:
        """Resolve a buffer range to anchor-local spans."""
        spans = []
        for seg in self.segments:
            if seg.end <= start or seg.start >= end:
                continue
            local_start = max(start, seg.start) - seg.start
            local_end = min(end, seg.end) - seg.start
            spans.append(AnchorSpan(seg.anchor, local_start, local_end))
        return spans

    def __len__(self) -> int:
        return len(self.text)


def normalize_text(text: str) -> str:
    """Collapse whitespace runs, trim and case-fold."""
    return normalize_with_map(text)[0]


def normalize_with_map(text: str) -> Tuple[str, List[int]]:
    """
    Normalize text and record where each normalized character came from.

    Args:
        text: Original text

    Returns:
        (normalized, index_map) where index_map[i] is the original index of
        normalized character i. A collapsed whitespace run maps to its
        first character.
    """
    out: List[str] = []
    index_map: List[int] = []
    pending_space = -1

    for i, ch in enumerate(text):
        if ch.isspace():
            if pending_space < 0:
                pending_space = i
            continue
        if pending_space >= 0 and out:
            out.append(" ")
            index_map.append(pending_space)
        pending_space = -1
        folded = ch.casefold()
        # casefold can expand one character ('ß' -> 'ss'); every piece maps back to i
        for piece in folded:
            out.append(piece)
            index_map.append(i)

    return "".join(out), index_map


def _original_bounds(
    text: str, norm_start: int, norm_end: int, index_map: List[int]
) -> Tuple[int, int]:
    """
    Map a normalized range back onto the original text.

    The start is the original position of the first matched character. The
    end is found by re-walking the original text from the start and
    consuming as many non-whitespace characters as the match contains, then
    clamped to the text length.
    """
    start = index_map[norm_start]
    needed = sum(
        1 for k in range(norm_start, norm_end)
        if k == norm_start or index_map[k] != index_map[k - 1]
        if not text[index_map[k]].isspace()
    )

    pos = start
    consumed = 0
    while pos < len(text) and consumed < needed:
        if not text[pos].isspace():
            consumed += 1
        pos += 1

    return start, min(pos, len(text))


def _find_all(haystack: str, needle: str) -> List[int]:
    positions = []
    idx = haystack.find(needle)
    while idx != -1:
        positions.append(idx)
        idx = haystack.find(needle, idx + 1)
    return positions


def _as_buffer(source: Union[str, TextBuffer]) -> TextBuffer:
    return source if isinstance(source, TextBuffer) else TextBuffer(source)


def _build_match(buffer: TextBuffer, norm_start: int, norm_end: int, index_map: List[int]) -> QuoteMatch:
    start, end = _original_bounds(buffer.text, norm_start, norm_end, index_map)
    return QuoteMatch(
        start=start,
        end=end,
        text=buffer.text[start:end],
        spans=buffer.resolve(start, end),
    )


def locate_all(source: Union[str, TextBuffer], quote: str) -> List[QuoteMatch]:
    """
    Every occurrence of the quote, in document order.

    Args:
        source: Plain text or TextBuffer
        quote: Citation quote

    Returns:
        List of QuoteMatch (empty if the quote is blank or absent)
    """
    buffer = _as_buffer(source)
    needle = normalize_text(quote or "")
    if not needle:
        return []

    haystack, index_map = normalize_with_map(buffer.text)
    return [
        _build_match(buffer, pos, pos + len(needle), index_map)
        for pos in _find_all(haystack, needle)
    ]


def locate_quote(source: Union[str, TextBuffer], quote: str) -> Optional[QuoteMatch]:
    """
    First occurrence of the quote (case-insensitive, whitespace-insensitive).

    Args:
        source: Plain text or TextBuffer
        quote: Citation quote

    Returns:
        QuoteMatch, or None if the quote is blank or not found
    """
    buffer = _as_buffer(source)
    needle = normalize_text(quote or "")
    if not needle:
        return None

    haystack, index_map = normalize_with_map(buffer.text)
    pos = haystack.find(needle)
    if pos == -1:
        return None
    return _build_match(buffer, pos, pos + len(needle), index_map)


def locate_nearest(source: Union[str, TextBuffer], quote: str, near: int) -> Optional[QuoteMatch]:
    """
    The occurrence whose start is closest to a buffer offset.

    Used when a quote appears more than once and the caller knows where the
    reader currently is. Ties go to the earlier occurrence.
    """
    matches = locate_all(source, quote)
    if not matches:
        return None
    return min(matches, key=lambda m: (abs(m.start - near), m.start))
