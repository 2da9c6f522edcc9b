# tests/test_inline_parser.py
"""Tests for inline markdown parsing."""
import pytest

from notex_mcp.markdown.inline_parser import parse_inline
from notex_mcp.markdown.nodes import (
    Bold,
    Code,
    Highlight,
    Italic,
    Link,
    Strikethrough,
    Text,
    WikiLink,
)


class TestPlainText:
    """Text without delimiters."""

    def test_plain_text_is_single_node(self):
        assert parse_inline("just words") == [Text("just words")]

    def test_empty_string(self):
        assert parse_inline("") == [Text("")]

    def test_unclosed_delimiters_stay_literal(self):
        assert parse_inline("a **b") == [Text("a **b")]
        assert parse_inline("open [[link") == [Text("open [[link")]
        assert parse_inline("tick ` only") == [Text("tick ` only")]


class TestFormatting:
    """Each formatting construct on its own."""

    def test_bold_with_surrounding_text(self):
        assert parse_inline("a **b** c") == [
            Text("a "),
            Bold((Text("b"),)),
            Text(" c"),
        ]

    def test_underscore_variants(self):
        assert parse_inline("__strong__") == [Bold((Text("strong"),))]
        assert parse_inline("_soft_") == [Italic((Text("soft"),))]

    def test_italic(self):
        assert parse_inline("*it*") == [Italic((Text("it"),))]

    def test_strikethrough_and_highlight(self):
        assert parse_inline("~~gone~~ ==marked==") == [
            Strikethrough((Text("gone"),)),
            Text(" "),
            Highlight((Text("marked"),)),
        ]

    def test_code_content_is_not_parsed(self):
        assert parse_inline("`a **b**`") == [Code("a **b**")]

    def test_link(self):
        assert parse_inline("see [docs](https://example.com)") == [
            Text("see "),
            Link("docs", "https://example.com"),
        ]

    def test_wiki_link(self):
        assert parse_inline("[[Note A]] and more") == [
            WikiLink("Note A"),
            Text(" and more"),
        ]


class TestPriority:
    """Tie-breaking between patterns that match at the same offset."""

    def test_bold_wins_over_italic(self):
        result = parse_inline("**bold *it* x**")
        assert result == [
            Bold((Text("bold "), Italic((Text("it"),)), Text(" x"))),
        ]

    def test_wiki_link_wins_over_link(self):
        result = parse_inline("[[Note]](url)")
        assert result == [WikiLink("Note"), Text("(url)")]

    def test_earliest_match_wins(self):
        result = parse_inline("x `code` then **bold**")
        assert result == [
            Text("x "),
            Code("code"),
            Text(" then "),
            Bold((Text("bold"),)),
        ]

    def test_nested_formatting_inside_highlight(self):
        assert parse_inline("==a **b**==") == [
            Highlight((Text("a "), Bold((Text("b"),)))),
        ]

    def test_mixed_line(self):
        result = parse_inline("[[A]] [b](c) ~~d~~")
        kinds = [node.kind for node in result]
        assert kinds == ["wiki_link", "text", "link", "text", "strikethrough"]


class TestRepeatability:
    """Parsing the same text twice gives equal trees."""

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "plain words",
            "**bold _and italic_** then `code`",
            "[[Wiki]] and [link](http://x) ==mark ~~gone~~==",
            "**unclosed and *half",
        ],
    )
    def test_parse_is_repeatable(self, text):
        assert parse_inline(text) == parse_inline(text)
