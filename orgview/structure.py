"""Outline structure of a source document: headings and the one enclosing the cursor."""

from __future__ import annotations

import re
from typing import NamedTuple

from markdown_it import MarkdownIt
from mdit_py_plugins.dollarmath import dollarmath_plugin

from .document import SourceDocument

DEFAULT_ORG_HEADLINE_LEVELS = 3
DEFAULT_ORG_TODO_KEYWORDS = ("TODO", "DONE")
MARKDOWN_MAX_LEVEL = 6

ORG_HEADLINE_RE = re.compile(r"^(\*+)[ \t]+(.*?)[ \t]*$")
ORG_TODO_DECLARATION_RE = re.compile(r"^#\+(?:SEQ_|TYP_)?TODO:[ \t]*(.*)$", re.IGNORECASE)
ORG_OPTIONS_DEPTH_RE = re.compile(r"^#\+OPTIONS:.*?(?:^|\s)H:(\d+)", re.IGNORECASE)
ORG_TAGS_RE = re.compile(r"[ \t]+:[\w@#%:]+:$")
ORG_PRIORITY_RE = re.compile(r"^\[#[A-Za-z0-9]\][ \t]*")
ORG_STATISTICS_RE = re.compile(r"[ \t]*\[\d*(?:%|/\d*)\]")
ORG_LINK_RE = re.compile(r"\[\[([^\]]+)\](?:\[([^\]]+)\])?\]")
ORG_EMPHASIS_RE = re.compile(
    r"(^|[\s(\"'{])([*/_=~+])([^\s](?:.*?[^\s])?)\2(?=[\s\-.,:!?;'\")}\]]|$)"
)


class Heading(NamedTuple):
    level: int
    title: str
    line: int
    exported: bool = True


def _org_todo_keywords(lines: list[str]) -> set[str]:
    keywords = set(DEFAULT_ORG_TODO_KEYWORDS)
    for line in lines:
        match = ORG_TODO_DECLARATION_RE.match(line)
        if match is None:
            continue
        for word in match.group(1).split():
            if word == "|":
                continue
            # Drop fast-access selectors such as TODO(t) or WAIT(w@/!).
            keywords.add(word.split("(", 1)[0])
    return keywords


def org_headline_levels(text: str) -> int:
    """Export depth from ``#+OPTIONS: H:n``; deeper headlines become list items."""
    depth = DEFAULT_ORG_HEADLINE_LEVELS
    for line in text.splitlines():
        match = ORG_OPTIONS_DEPTH_RE.match(line)
        if match is not None:
            depth = max(1, int(match.group(1)))
    return depth


def strip_org_markup(text: str) -> str:
    """Reduce inline org markup to the plain text an exporter would show."""
    plain = ORG_LINK_RE.sub(lambda m: m.group(2) or m.group(1), text)
    while True:
        stripped = ORG_EMPHASIS_RE.sub(lambda m: m.group(1) + m.group(3), plain)
        if stripped == plain:
            break
        plain = stripped
    return " ".join(plain.split())


def parse_org_headings(text: str) -> list[Heading]:
    lines = text.splitlines()
    keywords = _org_todo_keywords(lines)
    headings: list[Heading] = []
    # Level of the innermost COMMENT headline; its whole subtree is dropped on export.
    commented_level: int | None = None
    for line_number, line in enumerate(lines):
        match = ORG_HEADLINE_RE.match(line)
        if match is None:
            continue
        level = len(match.group(1))
        if commented_level is not None and level <= commented_level:
            commented_level = None
        title = ORG_TAGS_RE.sub("", match.group(2))
        first, _, rest = title.partition(" ")
        if first in keywords:
            title = rest.lstrip()
        title = ORG_PRIORITY_RE.sub("", title)
        exported = commented_level is None
        if title == "COMMENT" or title.startswith("COMMENT "):
            exported = False
            title = title[len("COMMENT"):].lstrip()
            if commented_level is None:
                commented_level = level
        title = ORG_STATISTICS_RE.sub("", title)
        headings.append(Heading(level, strip_org_markup(title), line_number, exported))
    return headings


_markdown_parser: MarkdownIt | None = None


def _markdown() -> MarkdownIt:
    global _markdown_parser
    if _markdown_parser is None:
        _markdown_parser = MarkdownIt("commonmark").use(dollarmath_plugin)
    return _markdown_parser


def inline_plain_text(inline) -> str:
    """Visible text of a markdown-it inline token (links and emphasis unwrapped)."""
    parts: list[str] = []
    if inline is not None and inline.children:
        for child in inline.children:
            if child.type in {"text", "code_inline"}:
                parts.append(child.content)
            elif child.type == "math_inline":
                # Rendered pages keep the delimiters for MathJax.
                parts.append(f"${child.content}$")
            elif child.type in {"softbreak", "hardbreak"}:
                parts.append(" ")
    return " ".join("".join(parts).split())


def parse_markdown_headings(text: str) -> list[Heading]:
    tokens = _markdown().parse(text)
    headings: list[Heading] = []
    for index, token in enumerate(tokens):
        if token.type != "heading_open" or not token.map:
            continue
        inline = tokens[index + 1] if index + 1 < len(tokens) else None
        headings.append(Heading(int(token.tag[1:]), inline_plain_text(inline), token.map[0]))
    return headings


def enclosing_heading(headings: list[Heading], line: int, max_level: int) -> Heading | None:
    """Walk upward from ``line`` to the nearest exported heading within ``max_level``."""
    candidate_index = None
    for index, heading in enumerate(headings):
        if heading.line > line:
            break
        candidate_index = index
    if candidate_index is None:
        return None

    current = headings[candidate_index]
    index = candidate_index
    while current.level > max_level or not current.exported:
        parent = None
        for probe in range(index - 1, -1, -1):
            if headings[probe].level < current.level:
                parent = probe
                break
        if parent is None:
            return None
        index = parent
        current = headings[index]
    return current


def current_heading(document: SourceDocument) -> str | None:
    """Display text of the heading enclosing the document's cursor, if any."""
    text = document.text()
    if document.kind == "markdown":
        headings = parse_markdown_headings(text)
        max_level = MARKDOWN_MAX_LEVEL
    else:
        headings = parse_org_headings(text)
        max_level = org_headline_levels(text)
    heading = enclosing_heading(headings, document.cursor_line, max_level)
    if heading is None or not heading.title:
        return None
    return heading.title
