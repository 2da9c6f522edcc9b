"""Service layer for note operations."""

import datetime
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from notex_mcp.config import config
from notex_mcp.exceptions import (
    ErrorCode,
    FolderNotFoundError,
    NoteNotFoundError,
    ValidationError,
)
from notex_mcp.links.extractor import extract_wiki_links
from notex_mcp.markdown.block_parser import parse_markdown
from notex_mcp.markdown.nodes import BlockNode
from notex_mcp.models.schema import (
    ChecklistItem,
    Note,
    NoteColor,
    NoteLink,
    NoteSortOrder,
    utc_now,
)
from notex_mcp.observability import traced
from notex_mcp.services.link_resolver import BacklinkResolver
from notex_mcp.storage.folder_repository import FolderRepository
from notex_mcp.storage.link_repository import LinkRepository
from notex_mcp.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


class NoteService:
    """Service for managing notes and the links between them.

    ``on_note_content_saved`` is the single entry point for content edits: it
    re-derives the plain text and counts, resolves the wiki-links and stores
    both in one transaction.
    """

    def __init__(
        self,
        repository: Optional[NoteRepository] = None,
        link_repository: Optional[LinkRepository] = None,
        folder_repository: Optional[FolderRepository] = None,
        engine: Optional[Any] = None,
    ):
        """Initialize the service.

        Args:
            repository: Note storage backend. Created with defaults if None.
            link_repository: Link storage backend. Created with defaults if None.
            folder_repository: Used to check folder references.
            engine: Pre-configured SQLAlchemy engine shared by any repository
                created here.
        """
        self.repository = repository or NoteRepository(engine=engine)
        engine = engine or self.repository.engine
        self.link_repository = link_repository or LinkRepository(engine=engine)
        self.folder_repository = folder_repository or FolderRepository(engine=engine)
        self.resolver = BacklinkResolver(
            self.link_repository,
            self.repository,
            lock_provider=self.repository.get_note_lock,
        )

    def _require(self, note_id: str) -> Note:
        note = self.repository.get(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    def _require_folder(self, folder_id: Optional[str]) -> None:
        if folder_id is not None and self.folder_repository.get(folder_id) is None:
            raise FolderNotFoundError(folder_id)

    def _resolve_links(self, note_id: str, content: str) -> List[NoteLink]:
        return self.resolver.resolve(note_id, extract_wiki_links(content))

    # =========================================================================
    # Content
    # =========================================================================

    @traced("create_note")
    def create_note(
        self,
        title: str = "",
        content: str = "",
        folder_id: Optional[str] = None,
        color: NoteColor = NoteColor.DEFAULT,
        is_checklist: bool = False,
    ) -> Note:
        """Create a new note.

        Wiki-links in the initial content are resolved and stored with the note.

        Raises:
            FolderNotFoundError: If ``folder_id`` does not exist.
        """
        self._require_folder(folder_id)
        note = Note.create(
            title=title.strip(),
            content=content,
            folder_id=folder_id,
            color=color,
            is_checklist=is_checklist,
        )
        links = self._resolve_links(note.id, content)
        return self.repository.create(note, links)

    def get_note(self, note_id: str) -> Optional[Note]:
        """Retrieve a note by ID."""
        return self.repository.get(note_id)

    @traced("on_note_content_saved")
    def on_note_content_saved(
        self, note_id: str, new_content: Optional[str], title: Optional[str] = None
    ) -> Note:
        """Apply a content edit.

        Recomputes the derived fields and replaces the note's outbound links,
        all in one transaction. Edits to the same note are serialized.

        Args:
            note_id: ID of the edited note.
            new_content: The full new markdown content, or None to keep the
                content stored when the note lock is taken.
            title: New title, or None to keep the current one.

        Returns:
            The updated note.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.repository.get_note_lock(note_id):
            note = self._require(note_id)
            if new_content is None:
                new_content = note.content
            updated = note.with_content(
                new_content, title=title.strip() if title is not None else None
            )
            links = self._resolve_links(note_id, new_content)
            return self.repository.save_content(updated, links)

    def resync_links(self, note_id: str) -> List[NoteLink]:
        """Re-resolve a note's links from its stored content.

        Useful after a note with a previously dangling title was created.
        The content is read under the note lock, so a concurrent save cannot
        be overwritten with links from an older version.
        """
        with self.repository.get_note_lock(note_id):
            note = self._require(note_id)
            return self.resolver.resync(note_id, note.content)

    @traced("render_note")
    def render_note(self, note_id: str) -> List[BlockNode]:
        """Parse a note's content into block nodes."""
        note = self._require(note_id)
        return parse_markdown(note.content, max_depth=config.max_quote_depth)

    # =========================================================================
    # Links
    # =========================================================================

    def get_forward_links(self, note_id: str, include_trashed: bool = True) -> List[NoteLink]:
        return self.resolver.get_forward_links(note_id, include_trashed=include_trashed)

    def get_backlinks(self, note_id: str, include_trashed: bool = True) -> List[NoteLink]:
        return self.resolver.get_backlinks(note_id, include_trashed=include_trashed)

    def count_backlinks(self, note_id: str) -> int:
        return self.resolver.count_backlinks(note_id)

    def get_most_linked_notes(self, limit: Optional[int] = None) -> List[Tuple[str, int]]:
        """Most referenced notes as (note_id, inbound link count)."""
        if limit is None:
            limit = config.most_linked_default
        return self.resolver.get_most_linked(limit)

    # =========================================================================
    # Listings
    # =========================================================================

    def list_notes(
        self,
        sort_order: NoteSortOrder = NoteSortOrder.MODIFIED_DESC,
        folder_id: Optional[str] = None,
        uncategorized: bool = False,
    ) -> List[Note]:
        """Active notes, pinned first, then by ``sort_order``."""
        return self.repository.list_notes(
            sort_order=sort_order, folder_id=folder_id, uncategorized=uncategorized
        )

    def list_archived(self) -> List[Note]:
        return self.repository.list_archived()

    def list_trashed(self) -> List[Note]:
        return self.repository.list_trashed()

    @traced("search_notes")
    def search_notes(self, query: str, limit: Optional[int] = None) -> List[Note]:
        """Search active notes; title-prefix matches rank first."""
        if not query.strip():
            return []
        return self.repository.search(query.strip(), limit=limit)

    def count_notes(self) -> Dict[str, int]:
        return self.repository.count_notes()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _modify(self, note_id: str, change) -> Note:
        with self.repository.get_note_lock(note_id):
            note = self._require(note_id)
            updated = change(note)
            if updated is note:
                return note
            return self.repository.update(updated)

    def set_pinned(self, note_id: str, pinned: bool) -> Note:
        return self._modify(note_id, lambda n: n.with_pinned(pinned))

    def set_archived(self, note_id: str, archived: bool) -> Note:
        return self._modify(note_id, lambda n: n.with_archived(archived))

    def set_color(self, note_id: str, color: NoteColor) -> Note:
        return self._modify(note_id, lambda n: n.with_color(NoteColor(color)))

    def move_note_to_folder(self, note_id: str, folder_id: Optional[str]) -> Note:
        """File a note under a folder, or un-file it when ``folder_id`` is None.

        Raises:
            FolderNotFoundError: If ``folder_id`` does not exist.
        """
        self._require_folder(folder_id)
        return self._modify(note_id, lambda n: n.with_folder(folder_id))

    @traced("move_to_trash")
    def move_to_trash(self, note_id: str) -> Note:
        """Soft-delete a note. Its link rows are kept."""
        return self._modify(note_id, lambda n: n if n.is_trashed else n.trashed())

    @traced("restore_from_trash")
    def restore_from_trash(self, note_id: str) -> Note:
        return self._modify(note_id, lambda n: n.restored() if n.is_trashed else n)

    @traced("delete_note")
    def delete_note(self, note_id: str) -> None:
        """Permanently delete a note together with its links and checklist."""
        self.repository.delete(note_id)

    @traced("empty_trash")
    def empty_trash(self) -> List[str]:
        """Permanently delete every trashed note. Returns the deleted IDs."""
        return self.repository.empty_trash()

    @traced("purge_expired_trash")
    def purge_expired_trash(
        self, days: Optional[int] = None, now: Optional[datetime.datetime] = None
    ) -> List[str]:
        """Permanently delete notes that have been in the trash too long.

        Args:
            days: Retention period; defaults to ``config.trash_retention_days``.
            now: Reference time, defaults to the current UTC time.

        Returns:
            IDs of the deleted notes.
        """
        if days is None:
            days = config.trash_retention_days
        if days < 0:
            raise ValidationError(
                "Retention days must be >= 0", field="days", value=days
            )
        cutoff = (now or utc_now()) - datetime.timedelta(days=days)
        return self.repository.purge_trashed_before(cutoff)

    # =========================================================================
    # Checklists
    # =========================================================================

    @traced("save_checklist")
    def save_checklist(
        self, note_id: str, items: Sequence[Dict[str, Any]]
    ) -> List[ChecklistItem]:
        """Replace the checklist of a note.

        Each entry needs ``text`` and may carry ``is_checked`` and
        ``indentation``. Positions follow the order of ``items``. The note is
        switched to checklist mode.

        Raises:
            NoteNotFoundError: If the note does not exist.
            ValidationError: If an entry is malformed.
        """
        built = []
        for position, raw in enumerate(items):
            if "text" not in raw:
                raise ValidationError(
                    f"Checklist item {position} has no text",
                    field="text",
                    code=ErrorCode.CHECKLIST_INVALID,
                )
            try:
                built.append(
                    ChecklistItem(
                        note_id=note_id,
                        text=str(raw["text"]),
                        is_checked=bool(raw.get("is_checked", False)),
                        position=position,
                        indentation=int(raw.get("indentation", 0)),
                    )
                )
            except ValueError as e:
                raise ValidationError(
                    f"Invalid checklist item {position}: {e}",
                    field="indentation",
                    value=raw.get("indentation"),
                    code=ErrorCode.CHECKLIST_INVALID,
                ) from e

        return self.repository.save_checklist(note_id, built)

    def get_checklist(self, note_id: str) -> List[ChecklistItem]:
        self._require(note_id)
        return self.repository.get_checklist(note_id)

    def toggle_checklist_item(self, item_id: str) -> ChecklistItem:
        return self.repository.toggle_checklist_item(item_id)
