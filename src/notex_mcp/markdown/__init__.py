"""Markdown document model: block and inline parsing, plain-text projection."""

from notex_mcp.markdown.block_parser import parse_markdown
from notex_mcp.markdown.inline_parser import parse_inline
from notex_mcp.markdown.nodes import BlockNode, InlineNode, node_to_dict
from notex_mcp.markdown.plain_text import compute_text_stats, extract_plain_text

__all__ = [
    "BlockNode",
    "InlineNode",
    "compute_text_stats",
    "extract_plain_text",
    "node_to_dict",
    "parse_inline",
    "parse_markdown",
]
