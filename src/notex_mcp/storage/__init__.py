"""Storage layer for the NoteX MCP server."""

from notex_mcp.storage.base import LinkStore, Repository, TitleIndex
from notex_mcp.storage.folder_repository import FolderRepository
from notex_mcp.storage.link_repository import LinkRepository
from notex_mcp.storage.note_repository import NoteRepository

__all__ = [
    "Repository",
    "TitleIndex",
    "LinkStore",
    "NoteRepository",
    "FolderRepository",
    "LinkRepository",
]
