"""NoteX MCP - a personal note store with markdown notes and wiki-style links.

This package implements a markdown document model, a wiki-link graph with
backlink tracking, and a note/folder/checklist store on SQLite, exposed as
a Model Context Protocol (MCP) server.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notex-mcp")
except PackageNotFoundError:
    __version__ = "0.3.0"
