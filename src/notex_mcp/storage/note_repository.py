"""Repository for note storage and retrieval."""

import datetime
import logging
import threading
import weakref
from typing import Dict, List, Optional, Sequence

from sqlalchemy import case, delete, func, or_, select

from notex_mcp.config import config
from notex_mcp.exceptions import (
    ChecklistItemNotFoundError,
    ErrorCode,
    NoteNotFoundError,
    ValidationError,
)
from notex_mcp.models.db_models import (
    DBChecklistItem,
    DBNote,
    get_session_factory,
    init_db,
)
from notex_mcp.models.schema import (
    ChecklistItem,
    Note,
    NoteColor,
    NoteLink,
    NoteSortOrder,
    NoteState,
    ensure_timezone_aware,
    utc_now,
)
from notex_mcp.storage.base import Repository, TitleIndex, unit_of_work
from notex_mcp.storage.link_repository import write_links
from notex_mcp.utils import escape_like_pattern

logger = logging.getLogger(__name__)


def _sort_columns(sort_order: NoteSortOrder) -> list:
    """ORDER BY clauses for a listing. Pinned notes always come first."""
    columns = {
        NoteSortOrder.MODIFIED_DESC: [DBNote.modified_at.desc()],
        NoteSortOrder.MODIFIED_ASC: [DBNote.modified_at.asc()],
        NoteSortOrder.CREATED_DESC: [DBNote.created_at.desc()],
        NoteSortOrder.CREATED_ASC: [DBNote.created_at.asc()],
        NoteSortOrder.TITLE_ASC: [DBNote.title.asc()],
        NoteSortOrder.TITLE_DESC: [DBNote.title.desc()],
    }[sort_order]
    return [DBNote.is_pinned.desc(), *columns, DBNote.id.asc()]


def _active():
    return (DBNote.is_trashed.is_(False)) & (DBNote.is_archived.is_(False))


class NoteRepository(Repository[Note], TitleIndex):
    """Repository for note storage and retrieval.

    Notes live in SQLite (WAL mode). Every write runs in its own
    transaction; content saves write the note row and its outbound link
    rows in the same transaction so derived fields and links never drift
    from the content.
    """

    def __init__(self, engine=None, title_case_sensitive: Optional[bool] = None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
            title_case_sensitive: Override ``config.title_match_case_sensitive``
                for wiki-link title resolution.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)
        self.title_case_sensitive = (
            config.title_match_case_sensitive
            if title_case_sensitive is None
            else title_case_sensitive
        )

        # Per-note locks to serialize writers on the same note (uses
        # WeakValueDictionary so locks are garbage collected when no longer
        # held by any thread)
        self._note_locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._note_locks_lock = threading.Lock()  # Protects _note_locks dict access

        logger.info(
            f"NoteRepository initialized: db_url={self.engine.url}, "
            f"title_case_sensitive={self.title_case_sensitive}"
        )

    def get_note_lock(self, note_id: str) -> threading.RLock:
        """Get or create the lock for a specific note.

        Callers that read a note, derive a new version and write it back
        hold this lock for the whole sequence. The lock is reentrant, so
        repository methods that take it again are safe to call inside.

        Args:
            note_id: The ID of the note to lock.

        Returns:
            A reentrant lock for the specified note.
        """
        with self._note_locks_lock:
            lock = self._note_locks.get(note_id)
            if lock is None:
                lock = threading.RLock()
                self._note_locks[note_id] = lock
            return lock

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, note: Note, links: Sequence[NoteLink] = ()) -> Note:
        """Create a new note, optionally together with its outbound links.

        Raises:
            ValidationError: If a note with the same ID already exists.
        """
        with unit_of_work(self.session_factory, "create_note") as session:
            if session.get(DBNote, note.id) is not None:
                raise ValidationError(
                    f"Note '{note.id}' already exists",
                    field="id",
                    value=note.id,
                    code=ErrorCode.NOTE_VALIDATION_FAILED,
                )
            db_note = DBNote(id=note.id)
            self._copy_to_row(note, db_note)
            session.add(db_note)
            if links:
                session.flush()
                write_links(session, note.id, links)
        logger.info(f"Created note: {note.id}")
        return note

    def get(self, id: str) -> Optional[Note]:
        """Get a note by ID.

        Returns:
            Note object if found, None otherwise.
        """
        with unit_of_work(self.session_factory, "get_note") as session:
            db_note = session.get(DBNote, id)
            return self._db_note_to_model(db_note) if db_note else None

    def update(self, note: Note) -> Note:
        """Overwrite the stored row of an existing note.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.get_note_lock(note.id):
            with unit_of_work(self.session_factory, "update_note") as session:
                db_note = session.get(DBNote, note.id)
                if db_note is None:
                    raise NoteNotFoundError(note.id)
                self._copy_to_row(note, db_note)
        return note

    def save_content(self, note: Note, links: Sequence[NoteLink]) -> Note:
        """Persist a content edit and its resolved link set atomically.

        The note row (content plus the derived plain text and counts) and the
        note's outbound link rows are replaced in one transaction. Links to
        notes deleted since resolution are dropped.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.get_note_lock(note.id):
            with unit_of_work(self.session_factory, "save_content") as session:
                db_note = session.get(DBNote, note.id)
                if db_note is None:
                    raise NoteNotFoundError(note.id)
                self._copy_to_row(note, db_note)
                stored = write_links(session, note.id, links)
        logger.debug(
            f"Saved content for note {note.id}: words={note.word_count}, links={len(stored)}"
        )
        return note

    def delete(self, id: str) -> None:
        """Permanently delete a note.

        Checklist items and every link row that references the note (as source
        or target) go with it through the foreign key cascades.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.get_note_lock(id):
            with unit_of_work(self.session_factory, "delete_note") as session:
                result = session.execute(delete(DBNote).where(DBNote.id == id))
                if result.rowcount == 0:
                    raise NoteNotFoundError(id)
        logger.info(f"Deleted note: {id}")

    def exists(self, id: str) -> bool:
        with unit_of_work(self.session_factory, "note_exists") as session:
            return session.get(DBNote, id) is not None

    # ------------------------------------------------------------------
    # Title index
    # ------------------------------------------------------------------

    def find_note_id_by_title(self, title: str) -> Optional[str]:
        """Resolve a wiki-link title to a note ID.

        The title is trimmed before matching. When several notes share the
        title, notes outside the trash win, then the oldest note.
        """
        title = title.strip()
        if not title:
            return None
        if self.title_case_sensitive:
            condition = DBNote.title == title
        else:
            condition = func.casefold(DBNote.title) == title.casefold()
        query = (
            select(DBNote.id)
            .where(condition)
            .order_by(DBNote.is_trashed.asc(), DBNote.created_at.asc(), DBNote.id.asc())
            .limit(1)
        )
        with unit_of_work(self.session_factory, "find_note_by_title") as session:
            return session.scalar(query)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_notes(
        self,
        sort_order: NoteSortOrder = NoteSortOrder.MODIFIED_DESC,
        folder_id: Optional[str] = None,
        uncategorized: bool = False,
    ) -> List[Note]:
        """List active notes, pinned first.

        Args:
            sort_order: Secondary ordering after the pinned flag.
            folder_id: Only notes filed in this folder.
            uncategorized: Only notes without a folder. Ignored when
                ``folder_id`` is given.
        """
        query = select(DBNote).where(_active())
        if folder_id is not None:
            query = query.where(DBNote.folder_id == folder_id)
        elif uncategorized:
            query = query.where(DBNote.folder_id.is_(None))
        query = query.order_by(*_sort_columns(NoteSortOrder(sort_order)))
        return self._fetch(query, "list_notes")

    def list_archived(self) -> List[Note]:
        """Archived notes outside the trash, most recently modified first."""
        query = (
            select(DBNote)
            .where(DBNote.is_archived.is_(True), DBNote.is_trashed.is_(False))
            .order_by(DBNote.modified_at.desc(), DBNote.id.asc())
        )
        return self._fetch(query, "list_archived")

    def list_trashed(self) -> List[Note]:
        """Trashed notes, most recently trashed first."""
        query = (
            select(DBNote)
            .where(DBNote.is_trashed.is_(True))
            .order_by(DBNote.trashed_at.desc(), DBNote.id.asc())
        )
        return self._fetch(query, "list_trashed")

    def search(self, text: str, limit: Optional[int] = None) -> List[Note]:
        """Search active notes by title and plain text.

        Titles starting with the query rank first, then titles containing it,
        then body-only matches; each group is ordered by modification time.
        """
        escaped = escape_like_pattern(text)
        contains = f"%{escaped}%"
        rank = case(
            (DBNote.title.like(f"{escaped}%", escape="\\"), 1),
            (DBNote.title.like(contains, escape="\\"), 2),
            else_=3,
        )
        query = (
            select(DBNote)
            .where(
                _active(),
                or_(
                    DBNote.title.like(contains, escape="\\"),
                    DBNote.plain_text_content.like(contains, escape="\\"),
                ),
            )
            .order_by(rank, DBNote.modified_at.desc(), DBNote.id.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        return self._fetch(query, "search_notes")

    def count_notes(self) -> Dict[str, int]:
        """Number of notes in each lifecycle state."""
        with unit_of_work(self.session_factory, "count_notes") as session:
            active = session.scalar(select(func.count(DBNote.id)).where(_active()))
            archived = session.scalar(
                select(func.count(DBNote.id)).where(
                    DBNote.is_archived.is_(True), DBNote.is_trashed.is_(False)
                )
            )
            trashed = session.scalar(
                select(func.count(DBNote.id)).where(DBNote.is_trashed.is_(True))
            )
        return {
            NoteState.ACTIVE.value: active or 0,
            NoteState.ARCHIVED.value: archived or 0,
            NoteState.TRASHED.value: trashed or 0,
        }

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    def empty_trash(self) -> List[str]:
        """Permanently delete every trashed note.

        Returns:
            IDs of the deleted notes.
        """
        return self._delete_trashed(DBNote.is_trashed.is_(True), "empty_trash")

    def purge_trashed_before(self, cutoff: datetime.datetime) -> List[str]:
        """Permanently delete notes that were trashed before ``cutoff``.

        Returns:
            IDs of the deleted notes.
        """
        condition = (DBNote.is_trashed.is_(True)) & (DBNote.trashed_at < cutoff)
        return self._delete_trashed(condition, "purge_trash")

    def _delete_trashed(self, condition, operation: str) -> List[str]:
        with unit_of_work(self.session_factory, operation) as session:
            ids = list(session.scalars(select(DBNote.id).where(condition)).all())
            if ids:
                session.execute(delete(DBNote).where(DBNote.id.in_(ids)))
        if ids:
            logger.info(f"{operation}: permanently deleted {len(ids)} note(s)")
        return ids

    # ------------------------------------------------------------------
    # Checklists
    # ------------------------------------------------------------------

    def save_checklist(self, note_id: str, items: Sequence[ChecklistItem]) -> List[ChecklistItem]:
        """Replace every checklist item of a note and mark it as a checklist.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.get_note_lock(note_id):
            with unit_of_work(self.session_factory, "save_checklist") as session:
                db_note = session.get(DBNote, note_id)
                if db_note is None:
                    raise NoteNotFoundError(note_id)
                db_note.is_checklist = True
                db_note.modified_at = utc_now()
                session.execute(
                    delete(DBChecklistItem).where(DBChecklistItem.note_id == note_id)
                )
                session.add_all(
                    DBChecklistItem(
                        id=item.id,
                        note_id=note_id,
                        text=item.text,
                        is_checked=item.is_checked,
                        position=item.position,
                        indentation=item.indentation,
                    )
                    for item in items
                )
        return sorted(items, key=lambda item: item.position)

    def get_checklist(self, note_id: str) -> List[ChecklistItem]:
        """Checklist items of a note ordered by position."""
        query = (
            select(DBChecklistItem)
            .where(DBChecklistItem.note_id == note_id)
            .order_by(DBChecklistItem.position.asc(), DBChecklistItem.id.asc())
        )
        with unit_of_work(self.session_factory, "get_checklist") as session:
            return [self._db_item_to_model(row) for row in session.scalars(query).all()]

    def toggle_checklist_item(self, item_id: str) -> ChecklistItem:
        """Flip the checked state of one checklist item.

        Raises:
            ChecklistItemNotFoundError: If the item does not exist.
        """
        with unit_of_work(self.session_factory, "toggle_checklist_item") as session:
            db_item = session.get(DBChecklistItem, item_id)
            if db_item is None:
                raise ChecklistItemNotFoundError(item_id)
            db_item.is_checked = not db_item.is_checked
            return self._db_item_to_model(db_item)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _fetch(self, query, operation: str) -> List[Note]:
        with unit_of_work(self.session_factory, operation) as session:
            return [self._db_note_to_model(row) for row in session.scalars(query).all()]

    @staticmethod
    def _copy_to_row(note: Note, db_note: DBNote) -> None:
        db_note.title = note.title
        db_note.content = note.content
        db_note.plain_text_content = note.plain_text_content
        db_note.folder_id = note.folder_id
        db_note.color = note.color.value
        db_note.is_pinned = note.is_pinned
        db_note.is_archived = note.is_archived
        db_note.is_trashed = note.is_trashed
        db_note.is_checklist = note.is_checklist
        db_note.created_at = note.created_at
        db_note.modified_at = note.modified_at
        db_note.trashed_at = note.trashed_at
        db_note.word_count = note.word_count
        db_note.character_count = note.character_count

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        """Convert a DBNote row to a Note.

        The derived text fields are recomputed by the model from content.
        """
        return Note(
            id=db_note.id,
            title=db_note.title,
            content=db_note.content,
            folder_id=db_note.folder_id,
            color=NoteColor(db_note.color),
            is_pinned=db_note.is_pinned,
            is_archived=db_note.is_archived,
            is_trashed=db_note.is_trashed,
            is_checklist=db_note.is_checklist,
            created_at=ensure_timezone_aware(db_note.created_at),
            modified_at=ensure_timezone_aware(db_note.modified_at),
            trashed_at=ensure_timezone_aware(db_note.trashed_at),
        )

    @staticmethod
    def _db_item_to_model(db_item: DBChecklistItem) -> ChecklistItem:
        return ChecklistItem(
            id=db_item.id,
            note_id=db_item.note_id,
            text=db_item.text,
            is_checked=db_item.is_checked,
            position=db_item.position,
            indentation=db_item.indentation,
        )
