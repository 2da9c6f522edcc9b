"""Markdown AST node types.

Block and inline nodes are closed sets of frozen dataclasses combined into
``Union`` aliases. Every variant carries a ``kind`` tag so callers can
dispatch on it (or on the class) without a visitor hierarchy. Children are
stored as tuples, which keeps whole trees hashable and comparable by value.
"""
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Optional, Tuple, Union


# ---------------------------------------------------------------------------
# Inline nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Text:
    kind: ClassVar[str] = "text"
    content: str


@dataclass(frozen=True)
class Bold:
    kind: ClassVar[str] = "bold"
    children: Tuple["InlineNode", ...]


@dataclass(frozen=True)
class Italic:
    kind: ClassVar[str] = "italic"
    children: Tuple["InlineNode", ...]


@dataclass(frozen=True)
class Strikethrough:
    kind: ClassVar[str] = "strikethrough"
    children: Tuple["InlineNode", ...]


@dataclass(frozen=True)
class Highlight:
    kind: ClassVar[str] = "highlight"
    children: Tuple["InlineNode", ...]


@dataclass(frozen=True)
class Code:
    kind: ClassVar[str] = "code"
    content: str


@dataclass(frozen=True)
class Link:
    kind: ClassVar[str] = "link"
    text: str
    url: str


@dataclass(frozen=True)
class WikiLink:
    kind: ClassVar[str] = "wiki_link"
    title: str


InlineNode = Union[Text, Bold, Italic, Strikethrough, Highlight, Code, Link, WikiLink]


# ---------------------------------------------------------------------------
# Block nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ListItem:
    """One list entry.

    ``checked`` is ``True``/``False`` for checklist entries and ``None`` for
    plain bullet and numbered entries.
    """

    kind: ClassVar[str] = "list_item"
    content: Tuple[InlineNode, ...]
    checked: Optional[bool] = None


@dataclass(frozen=True)
class Paragraph:
    kind: ClassVar[str] = "paragraph"
    content: Tuple[InlineNode, ...]


@dataclass(frozen=True)
class Heading:
    kind: ClassVar[str] = "heading"
    level: int
    content: Tuple[InlineNode, ...]


@dataclass(frozen=True)
class CodeBlock:
    kind: ClassVar[str] = "code_block"
    code: str
    language: Optional[str] = None


@dataclass(frozen=True)
class Quote:
    kind: ClassVar[str] = "quote"
    children: Tuple["BlockNode", ...]


@dataclass(frozen=True)
class BulletList:
    kind: ClassVar[str] = "bullet_list"
    items: Tuple[ListItem, ...]


@dataclass(frozen=True)
class NumberedList:
    kind: ClassVar[str] = "numbered_list"
    items: Tuple[ListItem, ...]


@dataclass(frozen=True)
class ChecklistList:
    kind: ClassVar[str] = "checklist"
    items: Tuple[ListItem, ...]


@dataclass(frozen=True)
class HorizontalRule:
    kind: ClassVar[str] = "horizontal_rule"


@dataclass(frozen=True)
class Empty:
    kind: ClassVar[str] = "empty"


BlockNode = Union[
    Paragraph,
    Heading,
    CodeBlock,
    Quote,
    BulletList,
    NumberedList,
    ChecklistList,
    HorizontalRule,
    Empty,
]


def node_to_dict(node: Any) -> Dict[str, Any]:
    """Convert a block, inline or list-item node to plain JSON-ready data.

    The ``kind`` tag is emitted first so consumers can switch on it.
    """
    data: Dict[str, Any] = {"kind": node.kind}
    for f in fields(node):
        value = getattr(node, f.name)
        if isinstance(value, tuple):
            data[f.name] = [node_to_dict(child) for child in value]
        else:
            data[f.name] = value
    return data
