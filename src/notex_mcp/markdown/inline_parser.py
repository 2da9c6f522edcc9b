"""Inline markdown parsing.

Turns one logical line of text into a sequence of inline nodes. The scan
repeatedly picks the delimiter pattern whose match starts earliest in the
remaining text; when two patterns match at the same offset the one listed
first in ``INLINE_PATTERNS`` wins. That ordering puts ``[[...]]`` ahead of
``[text](url)`` and ``**`` ahead of ``*``.

The parser never raises. Delimiters without a closing partner simply never
match, so they stay in the surrounding Text node.
"""
import re
from typing import Callable, List, Optional, Pattern, Sequence, Tuple

from notex_mcp.markdown.nodes import (
    Bold,
    Code,
    Highlight,
    InlineNode,
    Italic,
    Link,
    Strikethrough,
    Text,
    WikiLink,
)

# (pattern, builder) pairs in priority order. Builders receive the match and
# a recursive parse function for formatting that nests.
_Builder = Callable[["re.Match[str]", Callable[[str], List[InlineNode]]], InlineNode]

INLINE_PATTERNS: Sequence[Tuple[Pattern[str], _Builder]] = (
    (re.compile(r"\[\[([^\]]+)\]\]"), lambda m, p: WikiLink(m.group(1))),
    (re.compile(r"\*\*(.+?)\*\*"), lambda m, p: Bold(tuple(p(m.group(1))))),
    (re.compile(r"__(.+?)__"), lambda m, p: Bold(tuple(p(m.group(1))))),
    (re.compile(r"\*(.+?)\*"), lambda m, p: Italic(tuple(p(m.group(1))))),
    (re.compile(r"_(.+?)_"), lambda m, p: Italic(tuple(p(m.group(1))))),
    (re.compile(r"~~(.+?)~~"), lambda m, p: Strikethrough(tuple(p(m.group(1))))),
    (re.compile(r"==(.+?)=="), lambda m, p: Highlight(tuple(p(m.group(1))))),
    (re.compile(r"`(.+?)`"), lambda m, p: Code(m.group(1))),
    (re.compile(r"\[(.+?)\]\((.+?)\)"), lambda m, p: Link(m.group(1), m.group(2))),
)


def parse_inline(text: str) -> List[InlineNode]:
    """Parse a line of text into inline nodes.

    Args:
        text: A single logical line (paragraph lines already joined).

    Returns:
        Ordered inline nodes. Text without any delimiter comes back as a
        single ``Text`` node equal to the input, including the empty string.
    """
    nodes: List[InlineNode] = []
    pos = 0
    length = len(text)

    # Next known match per pattern. A match found while scanning from an
    # earlier offset stays the leftmost one as long as it starts at or after
    # the current offset, so only stale entries are searched again.
    upcoming: List[Optional["re.Match[str]"]] = [None] * len(INLINE_PATTERNS)
    exhausted = [False] * len(INLINE_PATTERNS)

    while pos < length:
        best_index = -1
        best_match = None
        for index, (pattern, _builder) in enumerate(INLINE_PATTERNS):
            if exhausted[index]:
                continue
            match = upcoming[index]
            if match is None or match.start() < pos:
                match = pattern.search(text, pos)
                upcoming[index] = match
                if match is None:
                    exhausted[index] = True
                    continue
            if best_match is None or match.start() < best_match.start():
                best_index = index
                best_match = match

        if best_match is None:
            nodes.append(Text(text[pos:]))
            break

        if best_match.start() > pos:
            nodes.append(Text(text[pos:best_match.start()]))

        builder = INLINE_PATTERNS[best_index][1]
        nodes.append(builder(best_match, parse_inline))
        pos = best_match.end()

    if not nodes:
        return [Text(text)]
    return nodes
