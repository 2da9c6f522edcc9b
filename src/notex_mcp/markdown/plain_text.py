"""Plain-text projection of note content used for search, previews and counts."""
import re
from typing import NamedTuple

_TAG_RE = re.compile(r"<[^>]*>")
_MARKUP_RE = re.compile(r"\*\*|__|\*|_|~~|`|#|>|\[|\]|\(|\)")
_WHITESPACE_RE = re.compile(r"\s+")


class TextStats(NamedTuple):
    """Derived fields that must always be recomputed together."""

    plain_text: str
    word_count: int
    character_count: int


def extract_plain_text(content: str) -> str:
    """Strip markup from raw note content.

    Removes HTML-like tags and markdown punctuation, then collapses every
    whitespace run to a single space.
    """
    text = _TAG_RE.sub("", content)
    text = _MARKUP_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def count_words(text: str) -> int:
    """Count whitespace-delimited, non-empty tokens."""
    return len(text.split())


def compute_text_stats(content: str) -> TextStats:
    """Derive the plain-text projection and its counts from raw content."""
    plain = extract_plain_text(content)
    return TextStats(plain, count_words(plain), len(plain))
