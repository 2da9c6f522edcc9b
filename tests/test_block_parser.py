# tests/test_block_parser.py
"""Tests for block-level markdown parsing."""
import pytest

from notex_mcp.markdown.block_parser import (
    LineKind,
    classify_line,
    parse_markdown,
    split_lines,
)
from notex_mcp.markdown.nodes import (
    Bold,
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
    Text,
    WikiLink,
    node_to_dict,
)


class TestClassifyLine:
    """Line classification precedence."""

    @pytest.mark.parametrize(
        "line,kind",
        [
            ("", LineKind.BLANK),
            ("   ", LineKind.BLANK),
            ("---", LineKind.RULE),
            ("***", LineKind.RULE),
            ("## Title", LineKind.HEADING),
            ("```python", LineKind.FENCE),
            ("> quoted", LineKind.QUOTE),
            ("- [x] done", LineKind.CHECKLIST),
            ("- item", LineKind.BULLET),
            ("1. first", LineKind.NUMBERED),
            ("#nospace", LineKind.PARAGRAPH),
            ("plain", LineKind.PARAGRAPH),
        ],
    )
    def test_classification(self, line, kind):
        assert classify_line(line) is kind

    def test_checklist_before_bullet(self):
        assert classify_line("* [ ] todo") is LineKind.CHECKLIST


class TestSplitLines:
    def test_mixed_line_endings(self):
        assert split_lines("a\r\nb\rc\nd") == ["a", "b", "c", "d"]

    def test_empty_text_is_one_line(self):
        assert split_lines("") == [""]


class TestParseMarkdown:
    """Block grouping and node construction."""

    def test_empty_input(self):
        assert parse_markdown("") == []

    def test_blank_lines_produce_no_nodes(self):
        assert parse_markdown("\n\n   \n") == []

    def test_heading_levels(self):
        blocks = parse_markdown("# One\n###### Six")
        assert blocks == [
            Heading(1, (Text("One"),)),
            Heading(6, (Text("Six"),)),
        ]

    def test_seven_hashes_is_paragraph(self):
        blocks = parse_markdown("####### too deep")
        assert blocks == [Paragraph((Text("####### too deep"),))]

    def test_paragraph_lines_joined_with_space(self):
        blocks = parse_markdown("first line\nsecond **line**\n\nnext")
        assert blocks == [
            Paragraph((Text("first line second "), Bold((Text("line"),)))),
            Paragraph((Text("next"),)),
        ]

    def test_code_block_keeps_lines_verbatim(self):
        text = "```python\ndef f():\n    return '**x**'\n```\nafter"
        blocks = parse_markdown(text)
        assert blocks == [
            CodeBlock("def f():\n    return '**x**'", "python"),
            Paragraph((Text("after"),)),
        ]

    def test_code_block_without_language(self):
        assert parse_markdown("```\ncode\n```") == [CodeBlock("code", None)]

    def test_unterminated_fence_runs_to_end(self):
        blocks = parse_markdown("```\na\n# not a heading")
        assert blocks == [CodeBlock("a\n# not a heading", None)]

    def test_bullet_list_groups_consecutive_lines(self):
        blocks = parse_markdown("- one\n* two\n+ three\n\n- other")
        assert blocks == [
            BulletList(
                (
                    ListItem((Text("one"),)),
                    ListItem((Text("two"),)),
                    ListItem((Text("three"),)),
                )
            ),
            BulletList((ListItem((Text("other"),)),)),
        ]

    def test_numbered_list(self):
        blocks = parse_markdown("1. a\n2. b")
        assert blocks == [
            NumberedList((ListItem((Text("a"),)), ListItem((Text("b"),))))
        ]

    def test_checklist(self):
        blocks = parse_markdown("- [ ] open\n- [X] closed\n- [x] [[Target]]")
        assert blocks == [
            ChecklistList(
                (
                    ListItem((Text("open"),), False),
                    ListItem((Text("closed"),), True),
                    ListItem((WikiLink("Target"),), True),
                )
            )
        ]

    def test_checklist_then_bullet_are_separate_blocks(self):
        blocks = parse_markdown("- [ ] task\n- plain")
        assert [b.kind for b in blocks] == ["checklist", "bullet_list"]

    def test_horizontal_rule(self):
        blocks = parse_markdown("above\n---\nbelow")
        assert blocks == [
            Paragraph((Text("above"),)),
            HorizontalRule(),
            Paragraph((Text("below"),)),
        ]


class TestQuotes:
    """Recursive blockquote parsing."""

    def test_quote_body_is_parsed_as_blocks(self):
        blocks = parse_markdown("> # Title\n> - item")
        assert blocks == [
            Quote(
                (
                    Heading(1, (Text("Title"),)),
                    BulletList((ListItem((Text("item"),)),)),
                )
            )
        ]

    def test_nested_quote(self):
        blocks = parse_markdown("> > inner")
        assert blocks == [Quote((Quote((Paragraph((Text("inner"),)),)),))]

    def test_empty_quote_has_empty_child(self):
        assert parse_markdown(">") == [Quote((Empty(),))]

    def test_depth_limit_flattens_body(self):
        blocks = parse_markdown("> > > > deep", max_depth=2)
        innermost = Quote((Paragraph((Text("> deep"),)),))
        assert blocks == [Quote((Quote((innermost,)),))]

    def test_very_deep_nesting_does_not_raise(self):
        text = ">" * 500 + " bottom"
        blocks = parse_markdown(text)
        assert len(blocks) == 1
        depth = 0
        node = blocks[0]
        while isinstance(node, Quote):
            depth += 1
            node = node.children[0]
        assert depth == 33
        assert isinstance(node, Paragraph)


class TestNodeToDict:
    def test_kind_is_emitted_first(self):
        data = node_to_dict(Heading(2, (Text("Hi"),)))
        assert list(data)[0] == "kind"
        assert data == {
            "kind": "heading",
            "level": 2,
            "content": [{"kind": "text", "content": "Hi"}],
        }

    def test_list_item_checked_flag(self):
        data = node_to_dict(ChecklistList((ListItem((Text("t"),), True),)))
        assert data["items"][0]["checked"] is True


class TestRepeatability:
    """Parsing the same document twice gives equal trees."""

    DOCUMENT = (
        "# Title\n"
        "Intro with **bold** and [[Link]]\r\n"
        "\n"
        "- [ ] task\n"
        "- [x] done\n"
        "1. first\n"
        "> quote\n"
        "> > nested `code`\n"
        "```js\n"
        "let x = 1;\n"
        "```\n"
        "---\n"
        "tail"
    )

    def test_parse_is_repeatable(self):
        first = parse_markdown(self.DOCUMENT)
        second = parse_markdown(self.DOCUMENT)
        assert first == second
        assert [node_to_dict(n) for n in first] == [node_to_dict(n) for n in second]

    def test_deep_quotes_are_repeatable(self):
        text = ">" * 80 + " x"
        assert parse_markdown(text, max_depth=5) == parse_markdown(text, max_depth=5)
