"""
DOCX conversion with python-docx.

Plain text is the canonical text used for prompting and citation matching;
the HTML rendering is for display only.
"""

import html
import io
import logging
import re
from typing import Any, Iterator, List

from legallens.config import MIN_DOCX_TEXT_LENGTH
from legallens.errors import ExtractionFailed
from legallens.utils.validation import require_usable_text

try:
    import docx  # python-docx
    from docx.oxml.ns import qn
    from docx.table import Table
    from docx.text.paragraph import Paragraph
except ImportError:
    docx = None

logger = logging.getLogger(__name__)

_HEADING_STYLE = re.compile(r"^heading\s*(\d)$", re.IGNORECASE)


def open_docx(data: bytes) -> Any:
    """
    Open DOCX bytes.

    Raises:
        ImportError: If python-docx not installed
        ExtractionFailed: If the container is malformed
    """
    if docx is None:
        raise ImportError("python-docx not installed. Install with: pip install python-docx")

    try:
        return docx.Document(io.BytesIO(data))
    except Exception as e:
        raise ExtractionFailed(f"Could not read DOCX file: {e}") from e


def iter_block_items(document: Any) -> Iterator[Any]:
    """Yield body paragraphs and tables in document order."""
    body = document.element.body
    for child in body.iterchildren():
        if child.tag == qn("w:p"):
            yield Paragraph(child, document)
        elif child.tag == qn("w:tbl"):
            yield Table(child, document)


def _table_rows(table: Any) -> List[List[str]]:
    rows = []
    for row in table.rows:
        cells = []
        for cell in row.cells:
            cells.append("\n".join(p.text for p in cell.paragraphs).strip())
        rows.append(cells)
    return rows


def extract_plain_text(data: bytes) -> str:
    """
    Extract the text of a DOCX document, formatting stripped.

    Paragraphs are separated by newlines; table cells by tabs.

    Args:
        data: Raw DOCX bytes

    Returns:
        Plain text

    Raises:
        ExtractionFailed: If the container is malformed
        ExtractionTooShort: If fewer than 30 characters are recovered
    """
    document = open_docx(data)

    lines = []
    for block in iter_block_items(document):
        if isinstance(block, Paragraph):
            lines.append(block.text)
        else:
            for cells in _table_rows(block):
                lines.append("\t".join(cells))

    text = "\n".join(lines).strip()
    require_usable_text(text, MIN_DOCX_TEXT_LENGTH, "docx")
    logger.debug("DOCX: %d chars of plain text", len(text))
    return text


def _runs_html(paragraph: Any) -> str:
    parts = []
    for run in paragraph.runs:
        if not run.text:
            continue
        fragment = html.escape(run.text)
        if run.italic:
            fragment = f"<em>{fragment}</em>"
        if run.bold:
            fragment = f"<strong>{fragment}</strong>"
        parts.append(fragment)
    return "".join(parts) if parts else html.escape(paragraph.text)


def _paragraph_tag(paragraph: Any) -> str:
    style = (paragraph.style.name if paragraph.style is not None else "") or ""
    if style.lower() == "title":
        return "h1"
    match = _HEADING_STYLE.match(style)
    if match:
        return f"h{min(max(int(match.group(1)), 1), 6)}"
    if style.lower().startswith("list"):
        return "li"
    return "p"


def convert_to_display_html(data: bytes) -> str:
    """
    Render a DOCX document as HTML, keeping paragraph and heading structure.

    Args:
        data: Raw DOCX bytes

    Returns:
        HTML fragment

    Raises:
        ExtractionFailed: If the container is malformed
    """
    document = open_docx(data)

    out = []
    in_list = False
    for block in iter_block_items(document):
        if isinstance(block, Paragraph):
            if not block.text.strip():
                continue
            tag = _paragraph_tag(block)
            if tag == "li" and not in_list:
                out.append("<ul>")
                in_list = True
            elif tag != "li" and in_list:
                out.append("</ul>")
                in_list = False
            out.append(f"<{tag}>{_runs_html(block)}</{tag}>")
        else:
            if in_list:
                out.append("</ul>")
                in_list = False
            rows = "".join(
                "<tr>" + "".join(f"<td>{html.escape(c)}</td>" for c in cells) + "</tr>"
                for cells in _table_rows(block)
            )
            out.append(f"<table>{rows}</table>")

    if in_list:
        out.append("</ul>")

    return "\n".join(out)
