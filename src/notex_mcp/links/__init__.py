"""Wiki-link extraction."""

from notex_mcp.links.extractor import extract_wiki_links

__all__ = ["extract_wiki_links"]
