"""Block-level markdown parsing.

A single forward scan over the lines of a note. Each line is classified by
a fixed precedence (blank, horizontal rule, heading, code fence, quote,
checklist item, bullet item, numbered item, paragraph) and a maximal run of
lines of the same class becomes one block. Checklist must be tested before
bullet because every checklist line is also a valid bullet line.

Malformed input never raises: unterminated fences run to end of input and
lines that fit no pattern fall through to Paragraph.
"""
import logging
import re
from enum import Enum
from typing import List

from notex_mcp.markdown.inline_parser import parse_inline
from notex_mcp.markdown.nodes import (
    BlockNode,
    BulletList,
    ChecklistList,
    CodeBlock,
    Empty,
    Heading,
    HorizontalRule,
    ListItem,
    NumberedList,
    Paragraph,
    Quote,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUOTE_DEPTH = 32

HEADING_RE = re.compile(r"(#{1,6})\s+(.+)")
BULLET_RE = re.compile(r"[-*+]\s+(.+)")
NUMBERED_RE = re.compile(r"\d+\.\s+(.+)")
CHECKLIST_RE = re.compile(r"[-*+]\s+\[([ xX])\]\s+(.+)")
QUOTE_RE = re.compile(r">\s*(.*)")
FENCE_START_RE = re.compile(r"```(\w*)")
FENCE_END_RE = re.compile(r"```")
HORIZONTAL_RULE_RE = re.compile(r"[-*_]{3,}")

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


class LineKind(Enum):
    """Classification of a single source line, in precedence order."""

    BLANK = "blank"
    RULE = "rule"
    HEADING = "heading"
    FENCE = "fence"
    QUOTE = "quote"
    CHECKLIST = "checklist"
    BULLET = "bullet"
    NUMBERED = "numbered"
    PARAGRAPH = "paragraph"


def classify_line(line: str) -> LineKind:
    """Return the block class a line starts, honouring the precedence order."""
    if not line.strip():
        return LineKind.BLANK
    if HORIZONTAL_RULE_RE.fullmatch(line):
        return LineKind.RULE
    if HEADING_RE.fullmatch(line):
        return LineKind.HEADING
    if FENCE_START_RE.fullmatch(line):
        return LineKind.FENCE
    if QUOTE_RE.fullmatch(line):
        return LineKind.QUOTE
    if CHECKLIST_RE.fullmatch(line):
        return LineKind.CHECKLIST
    if BULLET_RE.fullmatch(line):
        return LineKind.BULLET
    if NUMBERED_RE.fullmatch(line):
        return LineKind.NUMBERED
    return LineKind.PARAGRAPH


def split_lines(text: str) -> List[str]:
    """Split on any of ``\\r\\n``, ``\\r`` or ``\\n``; an empty string is one empty line."""
    return _LINE_BREAK_RE.split(text)


def parse_markdown(text: str, max_depth: int = DEFAULT_MAX_QUOTE_DEPTH) -> List[BlockNode]:
    """Parse raw note text into block nodes.

    Args:
        text: Raw markdown.
        max_depth: How many levels of nested blockquotes are parsed as
            blocks. Deeper quote bodies are kept as one paragraph.

    Returns:
        Ordered block nodes. Blank lines only separate blocks and never
        produce a node of their own.
    """
    return _parse_lines(split_lines(text), 0, max_depth)


def _parse_lines(lines: List[str], depth: int, max_depth: int) -> List[BlockNode]:
    nodes: List[BlockNode] = []
    i = 0
    count = len(lines)

    while i < count:
        line = lines[i]
        kind = classify_line(line)

        if kind is LineKind.BLANK:
            i += 1

        elif kind is LineKind.RULE:
            nodes.append(HorizontalRule())
            i += 1

        elif kind is LineKind.HEADING:
            match = HEADING_RE.fullmatch(line)
            nodes.append(
                Heading(len(match.group(1)), tuple(parse_inline(match.group(2))))
            )
            i += 1

        elif kind is LineKind.FENCE:
            language = FENCE_START_RE.fullmatch(line).group(1) or None
            code_lines = []
            i += 1
            while i < count and not FENCE_END_RE.fullmatch(lines[i]):
                code_lines.append(lines[i])
                i += 1
            if i < count:
                i += 1  # closing fence
            nodes.append(CodeBlock("\n".join(code_lines), language))

        elif kind is LineKind.QUOTE:
            quoted = []
            while i < count and classify_line(lines[i]) is LineKind.QUOTE:
                quoted.append(QUOTE_RE.fullmatch(lines[i]).group(1))
                i += 1
            nodes.append(_build_quote(quoted, depth, max_depth))

        elif kind is LineKind.CHECKLIST:
            items = []
            while i < count and classify_line(lines[i]) is LineKind.CHECKLIST:
                match = CHECKLIST_RE.fullmatch(lines[i])
                checked = match.group(1).lower() == "x"
                items.append(ListItem(tuple(parse_inline(match.group(2))), checked))
                i += 1
            nodes.append(ChecklistList(tuple(items)))

        elif kind is LineKind.BULLET:
            items = []
            while i < count and classify_line(lines[i]) is LineKind.BULLET:
                match = BULLET_RE.fullmatch(lines[i])
                items.append(ListItem(tuple(parse_inline(match.group(1)))))
                i += 1
            nodes.append(BulletList(tuple(items)))

        elif kind is LineKind.NUMBERED:
            items = []
            while i < count and classify_line(lines[i]) is LineKind.NUMBERED:
                match = NUMBERED_RE.fullmatch(lines[i])
                items.append(ListItem(tuple(parse_inline(match.group(1)))))
                i += 1
            nodes.append(NumberedList(tuple(items)))

        else:
            paragraph = []
            while i < count and classify_line(lines[i]) is LineKind.PARAGRAPH:
                paragraph.append(lines[i])
                i += 1
            nodes.append(Paragraph(tuple(parse_inline(" ".join(paragraph)))))

    return nodes


def _build_quote(quoted: List[str], depth: int, max_depth: int) -> Quote:
    if depth + 1 > max_depth:
        logger.debug("Quote nesting exceeds %d levels, flattening body", max_depth)
        body = " ".join(line for line in quoted if line.strip())
        if not body:
            return Quote((Empty(),))
        return Quote((Paragraph(tuple(parse_inline(body))),))

    children = _parse_lines(quoted, depth + 1, max_depth)
    if not children:
        return Quote((Empty(),))
    return Quote(tuple(children))
