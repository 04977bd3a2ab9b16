"""Map the author's current heading to an element id in generated HTML."""

from __future__ import annotations

import html
import logging
import re
from pathlib import Path
from typing import Callable

from .document import SourceDocument
from .structure import current_heading

logger = logging.getLogger(__name__)

# A section/div container immediately followed by its header element.
SECTION_HEADER_RE = re.compile(
    r"<(section|div)\b([^>]*)>\s*<h([1-6])\b[^>]*>(.*?)</h\3\s*>",
    re.IGNORECASE | re.DOTALL,
)
ID_ATTR_RE = re.compile(r"""\bid\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""", re.IGNORECASE)
# Org exporters decorate header text with numbering, TODO state, and tag spans
# that never appear in the source headline title.
DECORATION_SPAN_RE = re.compile(
    r"""<span\b[^>]*\bclass\s*=\s*["'](?:section-number-\d+|todo\b[^"']*|done\b[^"']*|tag)["'][^>]*>.*?</span>""",
    re.IGNORECASE | re.DOTALL,
)
TAG_RE = re.compile(r"<[^>]+>")


def normalize_heading_text(text: str) -> str:
    return " ".join(text.split())


def header_plain_text(markup: str) -> str:
    """Header inner HTML reduced to visible text."""
    without_decorations = DECORATION_SPAN_RE.sub("", markup)
    return normalize_heading_text(html.unescape(TAG_RE.sub("", without_decorations)))


def _element_id(attrs: str) -> str | None:
    match = ID_ATTR_RE.search(attrs)
    if match is None:
        return None
    value = next((group for group in match.groups() if group is not None), "")
    value = html.unescape(value).strip()
    return value or None


def find_anchor(html_text: str, heading: str) -> str | None:
    """Return the id of the first container whose header text equals ``heading``."""
    wanted = normalize_heading_text(heading)
    if not wanted:
        return None
    for match in SECTION_HEADER_RE.finditer(html_text):
        if header_plain_text(match.group(4)) != wanted:
            continue
        element_id = _element_id(match.group(2))
        if element_id is not None:
            return element_id
    return None


class AnchorResolver:
    """Best-effort fragment lookup; any failure means "show the top"."""

    def __init__(self, heading_lookup: Callable[[SourceDocument], str | None] = current_heading) -> None:
        self.heading_lookup = heading_lookup

    def resolve(self, document: SourceDocument, output_path: Path) -> str | None:
        try:
            heading = self.heading_lookup(document)
            if heading is None:
                return None
            html_text = Path(output_path).read_text(encoding="utf-8", errors="replace")
            fragment = find_anchor(html_text, heading)
        except Exception as exc:
            logger.debug("anchor lookup failed for %s: %s", document.path, exc)
            return None
        if fragment is None:
            logger.debug("no anchor for heading %r in %s", heading, output_path)
        return fragment
