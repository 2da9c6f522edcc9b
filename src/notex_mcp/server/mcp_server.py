"""MCP server implementation for NoteX."""

import json
import logging
import uuid
from typing import Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from notex_mcp.config import config
from notex_mcp.exceptions import NotexError, ValidationError
from notex_mcp.markdown.nodes import node_to_dict
from notex_mcp.models.schema import FolderTreeNode, Note, NoteColor, NoteLink, NoteSortOrder
from notex_mcp.observability import metrics, timed_operation
from notex_mcp.services.folder_service import FolderService
from notex_mcp.services.note_service import NoteService

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 1_000_000  # 1 MB

_SORT_ORDERS = {
    "modified_desc": NoteSortOrder.MODIFIED_DESC,
    "modified_asc": NoteSortOrder.MODIFIED_ASC,
    "created_desc": NoteSortOrder.CREATED_DESC,
    "created_asc": NoteSortOrder.CREATED_ASC,
    "title_asc": NoteSortOrder.TITLE_ASC,
    "title_desc": NoteSortOrder.TITLE_DESC,
}


def _validate_input_lengths(
    title: Optional[str] = None, content: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters",
            field="title",
        )
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters",
            field="content",
        )


def _note_line(note: Note) -> str:
    flags = []
    if note.is_pinned:
        flags.append("pinned")
    if note.is_archived:
        flags.append("archived")
    if note.is_trashed:
        flags.append("trashed")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return f"- {note.title or '(untitled)'} (ID: {note.id}){suffix}"


def _render_tree(nodes: List[FolderTreeNode], depth: int = 0) -> str:
    output = ""
    for node in nodes:
        marker = "-" if node.folder.is_expanded else "+"
        output += (
            f"{'  ' * depth}{marker} {node.folder.name} "
            f"(ID: {node.folder.id}, notes: {node.notes_count})\n"
        )
        output += _render_tree(node.children, depth + 1)
    return output


class NotexMcpServer:
    """MCP server for NoteX."""

    def __init__(self, engine=None):
        """Initialize the MCP server.

        Args:
            engine: Pre-configured SQLAlchemy engine shared by all repositories.
        """
        self.mcp = FastMCP(config.server_name)
        self.note_service = NoteService(engine=engine)
        self.folder_service = FolderService(
            repository=self.note_service.folder_repository
        )
        self.initialize()
        self._register_tools()

    def initialize(self) -> None:
        """Run the startup trash sweep."""
        purged = self.note_service.purge_expired_trash()
        if purged:
            logger.info(
                f"Purged {len(purged)} note(s) trashed more than "
                f"{config.trash_retention_days} days ago"
            )
        logger.info("NoteX MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        # Short ID for matching the response to the log entry
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, NotexError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _format_links(self, heading: str, links: List[NoteLink], outbound: bool) -> str:
        output = f"## {heading} ({len(links)})\n"
        for link in links:
            other_id = link.target_note_id if outbound else link.source_note_id
            other = self.note_service.get_note(other_id)
            title = other.title if other and other.title else link.link_text
            output += f"- {title} (ID: {other_id}, as [[{link.link_text}]])\n"
        return output + "\n"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="notex_create_note")
        def notex_create_note(
            title: str = "",
            content: str = "",
            folder_id: Optional[str] = None,
            color: str = "default",
            is_checklist: bool = False,
        ) -> str:
            """Create a new note.
            Args:
                title: The title of the note (may be empty)
                content: Markdown content; [[Title]] references link to other notes
                folder_id: Folder to file the note in (optional)
                color: One of default, yellow, green, blue, pink, purple, orange, teal, gray
                is_checklist: Create the note in checklist mode
            """
            with timed_operation("notex_create_note", title=title[:30]) as op:
                try:
                    _validate_input_lengths(title=title, content=content)
                    try:
                        color_enum = NoteColor(color.lower())
                    except ValueError:
                        return (
                            f"Invalid color: {color}. Valid colors are: "
                            f"{', '.join(c.value for c in NoteColor)}"
                        )
                    note = self.note_service.create_note(
                        title=title,
                        content=content,
                        folder_id=folder_id or None,
                        color=color_enum,
                        is_checklist=is_checklist,
                    )
                    op["note_id"] = note.id
                    links = self.note_service.get_forward_links(note.id)
                    return f"Note created successfully with ID: {note.id} ({len(links)} link(s))"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_get_note")
        def notex_get_note(note_id: str) -> str:
            """Retrieve a note by ID.
            Args:
                note_id: The ID of the note
            """
            with timed_operation("notex_get_note", note_id=note_id) as op:
                try:
                    note = self.note_service.get_note(str(note_id))
                    if not note:
                        op["found"] = False
                        return f"Note not found: {note_id}"
                    op["found"] = True

                    result = f"# {note.title or '(untitled)'}\n"
                    result += f"ID: {note.id}\n"
                    result += f"State: {note.state.value}\n"
                    if note.folder_id:
                        result += f"Folder: {note.folder_id}\n"
                    result += f"Color: {note.color.value}\n"
                    result += f"Pinned: {'yes' if note.is_pinned else 'no'}\n"
                    result += f"Words: {note.word_count} | Characters: {note.character_count}\n"
                    result += f"Backlinks: {self.note_service.count_backlinks(note.id)}\n"
                    result += f"Created: {note.created_at.isoformat()}\n"
                    result += f"Modified: {note.modified_at.isoformat()}\n"
                    if note.trashed_at:
                        result += f"Trashed: {note.trashed_at.isoformat()}\n"
                    if note.is_checklist:
                        result += "\n## Checklist\n"
                        for item in self.note_service.get_checklist(note.id):
                            box = "x" if item.is_checked else " "
                            result += f"{'  ' * item.indentation}- [{box}] {item.text} (ID: {item.id})\n"
                    result += f"\n{note.content}\n"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_update_note")
        def notex_update_note(
            note_id: str,
            title: Optional[str] = None,
            content: Optional[str] = None,
        ) -> str:
            """Update the title and/or content of a note.

            Saving re-derives the plain text and word counts and rewrites the
            note's wiki-links.
            Args:
                note_id: The ID of the note to update
                title: New title (optional)
                content: New markdown content (optional)
            """
            with timed_operation("notex_update_note", note_id=note_id):
                try:
                    _validate_input_lengths(title=title, content=content)
                    if title is None and content is None:
                        return "Nothing to update: pass a title and/or content"
                    note = self.note_service.on_note_content_saved(
                        note_id, content, title=title
                    )
                    links = self.note_service.get_forward_links(note.id)
                    return (
                        f"Note updated successfully: {note.id} "
                        f"({note.word_count} words, {len(links)} link(s))"
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_list_notes")
        def notex_list_notes(
            state: str = "active",
            folder_id: Optional[str] = None,
            uncategorized: bool = False,
            sort: str = "modified_desc",
        ) -> str:
            """List notes.
            Args:
                state: active, archived or trashed
                folder_id: Only active notes in this folder
                uncategorized: Only active notes without a folder
                sort: modified_desc, modified_asc, created_desc, created_asc,
                    title_asc or title_desc (active notes; pinned notes come first)
            """
            with timed_operation("notex_list_notes", state=state) as op:
                try:
                    state = state.lower()
                    if state == "active":
                        if sort not in _SORT_ORDERS:
                            return f"Invalid sort: {sort}. Valid: {', '.join(_SORT_ORDERS)}"
                        notes = self.note_service.list_notes(
                            sort_order=_SORT_ORDERS[sort],
                            folder_id=folder_id or None,
                            uncategorized=uncategorized,
                        )
                    elif state == "archived":
                        notes = self.note_service.list_archived()
                    elif state == "trashed":
                        notes = self.note_service.list_trashed()
                    else:
                        return f"Invalid state: {state}. Valid states are: active, archived, trashed"
                    op["result_count"] = len(notes)

                    if not notes:
                        return f"No {state} notes found."
                    output = f"# {state.capitalize()} notes ({len(notes)})\n\n"
                    output += "\n".join(_note_line(n) for n in notes)
                    return output + "\n"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_search_notes")
        def notex_search_notes(query: str, limit: int = 20) -> str:
            """Search active notes by title and text.

            Titles starting with the query rank first.
            Args:
                query: Text to look for
                limit: Maximum number of results (default: 20)
            """
            with timed_operation("notex_search_notes", query=query[:30]) as op:
                try:
                    notes = self.note_service.search_notes(query, limit=limit)
                    op["result_count"] = len(notes)
                    if not notes:
                        return f"No notes found matching '{query}'."
                    output = f"Found {len(notes)} matching notes:\n\n"
                    for note in notes:
                        output += f"{_note_line(note)}\n"
                        if note.preview:
                            output += f"  {note.preview[:150]}\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_set_state")
        def notex_set_state(
            note_id: str,
            action: str,
            folder_id: Optional[str] = None,
            color: Optional[str] = None,
        ) -> str:
            """Change the lifecycle state or organisation of a note.
            Args:
                note_id: The ID of the note
                action: pin, unpin, archive, unarchive, trash, restore,
                    move (uses folder_id; omit it to un-file) or color (uses color)
                folder_id: Target folder for the move action
                color: Target color for the color action
            """
            with timed_operation("notex_set_state", note_id=note_id, action=action):
                try:
                    action = action.lower()
                    service = self.note_service
                    if action == "pin":
                        note = service.set_pinned(note_id, True)
                    elif action == "unpin":
                        note = service.set_pinned(note_id, False)
                    elif action == "archive":
                        note = service.set_archived(note_id, True)
                    elif action == "unarchive":
                        note = service.set_archived(note_id, False)
                    elif action == "trash":
                        note = service.move_to_trash(note_id)
                    elif action == "restore":
                        note = service.restore_from_trash(note_id)
                    elif action == "move":
                        note = service.move_note_to_folder(note_id, folder_id or None)
                    elif action == "color":
                        try:
                            color_enum = NoteColor((color or "").lower())
                        except ValueError:
                            return (
                                f"Invalid color: {color}. Valid colors are: "
                                f"{', '.join(c.value for c in NoteColor)}"
                            )
                        note = service.set_color(note_id, color_enum)
                    else:
                        return (
                            f"Invalid action: {action}. Valid actions are: pin, unpin, "
                            "archive, unarchive, trash, restore, move, color"
                        )
                    return f"Note {note.id} updated: {_note_line(note)[2:]}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_delete_note")
        def notex_delete_note(note_id: str) -> str:
            """Permanently delete a note with its links and checklist.

            Use notex_set_state with action=trash for a reversible delete.
            Args:
                note_id: The ID of the note to delete
            """
            with timed_operation("notex_delete_note", note_id=note_id):
                try:
                    self.note_service.delete_note(note_id)
                    return f"Note deleted successfully: {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_empty_trash")
        def notex_empty_trash(older_than_days: Optional[int] = None) -> str:
            """Permanently delete trashed notes.
            Args:
                older_than_days: Only delete notes trashed at least this many days
                    ago. Omit to empty the whole trash.
            """
            with timed_operation("notex_empty_trash") as op:
                try:
                    if older_than_days is None:
                        deleted = self.note_service.empty_trash()
                    else:
                        deleted = self.note_service.purge_expired_trash(days=older_than_days)
                    op["result_count"] = len(deleted)
                    return f"Permanently deleted {len(deleted)} note(s) from the trash."
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_links")
        def notex_links(
            note_id: str,
            direction: str = "both",
            include_trashed: bool = True,
            resync: bool = False,
        ) -> str:
            """Show the wiki-links of a note.
            Args:
                note_id: The ID of the note
                direction: outgoing, incoming or both
                include_trashed: Include links to or from trashed notes
                resync: Re-resolve the note's [[links]] from its content first
            """
            with timed_operation("notex_links", note_id=note_id):
                try:
                    if direction not in ("outgoing", "incoming", "both"):
                        return "Invalid direction. Use 'outgoing', 'incoming' or 'both'."
                    if resync:
                        self.note_service.resync_links(note_id)
                    output = f"# Links for {note_id}\n\n"
                    if direction in ("outgoing", "both"):
                        links = self.note_service.get_forward_links(
                            note_id, include_trashed=include_trashed
                        )
                        output += self._format_links("Outgoing", links, outbound=True)
                    if direction in ("incoming", "both"):
                        links = self.note_service.get_backlinks(
                            note_id, include_trashed=include_trashed
                        )
                        output += self._format_links("Backlinks", links, outbound=False)
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_most_linked")
        def notex_most_linked(limit: Optional[int] = None) -> str:
            """List the notes with the most backlinks.
            Args:
                limit: Number of notes to return (default from configuration)
            """
            with timed_operation("notex_most_linked") as op:
                try:
                    ranking = self.note_service.get_most_linked_notes(limit)
                    op["result_count"] = len(ranking)
                    if not ranking:
                        return "No linked notes yet."
                    output = "# Most linked notes\n\n"
                    for i, (note_id, count) in enumerate(ranking, 1):
                        note = self.note_service.get_note(note_id)
                        title = note.title if note and note.title else "(untitled)"
                        output += f"{i}. {title} (ID: {note_id}) - {count} backlink(s)\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_render_note")
        def notex_render_note(note_id: str) -> str:
            """Parse a note's markdown into its block/inline tree (JSON).
            Args:
                note_id: The ID of the note
            """
            with timed_operation("notex_render_note", note_id=note_id):
                try:
                    blocks = self.note_service.render_note(note_id)
                    return json.dumps([node_to_dict(b) for b in blocks], indent=2)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_save_checklist")
        def notex_save_checklist(
            note_id: str,
            items: Optional[str] = None,
            toggle_item_id: Optional[str] = None,
        ) -> str:
            """Replace a note's checklist, or toggle one item.
            Args:
                note_id: The ID of the note
                items: JSON list of {"text": ..., "is_checked": bool, "indentation": int}.
                    Replaces every existing item.
                toggle_item_id: Flip the checked state of this item instead
            """
            with timed_operation("notex_save_checklist", note_id=note_id):
                try:
                    if toggle_item_id:
                        item = self.note_service.toggle_checklist_item(toggle_item_id)
                        state = "checked" if item.is_checked else "unchecked"
                        return f"Checklist item {item.id} is now {state}"
                    if items is None:
                        return "Pass items (JSON list) or toggle_item_id"
                    try:
                        parsed: List[Dict] = json.loads(items)
                    except json.JSONDecodeError as e:
                        return f"Invalid items JSON: {e}"
                    if not isinstance(parsed, list) or not all(
                        isinstance(entry, dict) for entry in parsed
                    ):
                        return "items must be a JSON list of objects"
                    saved = self.note_service.save_checklist(note_id, parsed)
                    done = sum(1 for item in saved if item.is_checked)
                    return f"Checklist saved for {note_id}: {done}/{len(saved)} done"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_create_folder")
        def notex_create_folder(
            name: str, parent_id: Optional[str] = None, icon: Optional[str] = None
        ) -> str:
            """Create a folder.
            Args:
                name: Folder name, unique among its siblings
                parent_id: Parent folder ID (optional; root when omitted)
                icon: Icon name (optional)
            """
            with timed_operation("notex_create_folder", name=name[:30]):
                try:
                    folder = self.folder_service.create_folder(
                        name, parent_id=parent_id or None, icon=icon
                    )
                    return f"Folder created successfully with ID: {folder.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_move_folder")
        def notex_move_folder(
            folder_id: str,
            parent_id: Optional[str] = None,
            name: Optional[str] = None,
            position: Optional[int] = None,
            expanded: Optional[bool] = None,
        ) -> str:
            """Move, rename, reorder or expand/collapse a folder.

            Moving a folder under itself or one of its descendants is rejected.
            Args:
                folder_id: The ID of the folder
                parent_id: New parent ID; pass "root" to move to the top level
                name: New name (optional)
                position: New position among siblings (optional)
                expanded: Expanded state (optional)
            """
            with timed_operation("notex_move_folder", folder_id=folder_id):
                try:
                    service = self.folder_service
                    folder = service.get_folder(folder_id)
                    if folder is None:
                        return f"Folder not found: {folder_id}"
                    if parent_id is not None:
                        target = None if parent_id == "root" else parent_id
                        folder = service.move_folder(folder_id, target)
                    if name is not None:
                        folder = service.rename_folder(folder_id, name)
                    if position is not None:
                        folder = service.reorder_folder(folder_id, position)
                    if expanded is not None:
                        folder = service.set_folder_expanded(folder_id, expanded)
                    parent = folder.parent_id or "root"
                    return f"Folder {folder.id} '{folder.name}' is under {parent} at position {folder.position}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_delete_folder")
        def notex_delete_folder(folder_id: str) -> str:
            """Delete a folder and all of its subfolders.

            Notes inside are kept and become uncategorized.
            Args:
                folder_id: The ID of the folder
            """
            with timed_operation("notex_delete_folder", folder_id=folder_id):
                try:
                    removed = self.folder_service.delete_folder(folder_id)
                    return f"Deleted {len(removed)} folder(s): {', '.join(removed)}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_folder_tree")
        def notex_folder_tree() -> str:
            """Show the folder hierarchy with note counts."""
            with timed_operation("notex_folder_tree"):
                try:
                    tree = self.folder_service.get_folder_tree()
                    if not tree:
                        return "No folders yet."
                    return "# Folders\n\n" + _render_tree(tree)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notex_status")
        def notex_status(sections: str = "all") -> str:
            """Get a NoteX status dashboard.

            Args:
                sections: Comma-separated sections to include:
                    - "summary": Note counts by state, folder count
                    - "links": Most linked notes
                    - "metrics": Server performance metrics
                    - "all": Include all sections (default)
            """
            with timed_operation("notex_status"):
                try:
                    requested = set(s.strip().lower() for s in sections.split(","))
                    include_all = "all" in requested

                    output = "# NoteX Status\n\n"
                    output += f"**Server:** {config.server_name} {config.server_version}\n\n"

                    if include_all or "summary" in requested:
                        counts = self.note_service.count_notes()
                        output += "## Summary\n"
                        for state, count in counts.items():
                            output += f"**{state.capitalize()}:** {count}\n"
                        folders = self.folder_service.repository.count_folders()
                        output += f"**Folders:** {folders}\n\n"

                    if include_all or "links" in requested:
                        ranking = self.note_service.get_most_linked_notes(5)
                        output += "## Most Linked\n"
                        if ranking:
                            for note_id, count in ranking:
                                output += f"  - {note_id}: {count}\n"
                        else:
                            output += "No links yet.\n"
                        output += "\n"

                    if include_all or "metrics" in requested:
                        summary = metrics.get_summary()
                        output += "## Server Metrics\n"
                        output += f"**Uptime:** {summary['uptime_seconds']:.0f} seconds\n"
                        output += f"**Operations:** {summary['total_operations']}\n"
                        output += f"**Success Rate:** {summary['overall_success_rate']:.1%}\n"
                        output += f"**Errors:** {summary['total_errors']}\n"
                        if summary['slowest_operation']:
                            output += f"**Slowest:** {summary['slowest_operation']}\n"
                        output += "\n"

                    return output
                except Exception as e:
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
