"""Wiki-link extraction from raw note content.

Works on the raw string rather than the parsed tree, so a ``[[Title]]``
counts as a link even inside code spans, headings or text the markdown
parser renders oddly.
"""
import re
from typing import List

# [[link]] syntax - captures content between double brackets
WIKI_LINK_PATTERN = re.compile(r"\[\[([^\]]+)\]\]")


def extract_wiki_links(content: str) -> List[str]:
    """Extract distinct wiki-link titles from note content.

    Args:
        content: Raw note content.

    Returns:
        Trimmed, non-empty titles in first-seen order. Duplicates are
        removed by exact, case-sensitive comparison.
    """
    seen = set()
    titles: List[str] = []

    for raw in WIKI_LINK_PATTERN.findall(content):
        title = raw.strip()
        if title and title not in seen:
            seen.add(title)
            titles.append(title)

    return titles
