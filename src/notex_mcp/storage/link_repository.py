"""Repository for wiki-link storage and retrieval."""
import logging
from typing import List, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, aliased

from notex_mcp.models.db_models import DBNote, DBNoteLink, get_session_factory, init_db
from notex_mcp.models.schema import NoteLink, ensure_timezone_aware
from notex_mcp.storage.base import LinkStore, unit_of_work

logger = logging.getLogger(__name__)


def write_links(
    session: Session, source_id: str, links: Sequence[NoteLink]
) -> List[NoteLink]:
    """Replace the outbound link rows of ``source_id`` inside ``session``.

    Starts with the DELETE so the SQLite write lock is taken before anything
    else happens in the transaction. Targets are then re-checked under that
    lock: a link whose target note was deleted after its title resolved is
    dropped like any other unresolved title.

    Returns:
        The links actually written.
    """
    session.execute(delete(DBNoteLink).where(DBNoteLink.source_note_id == source_id))
    if not links:
        return []

    target_ids = {link.target_note_id for link in links}
    existing = set(session.scalars(select(DBNote.id).where(DBNote.id.in_(target_ids))))
    kept = [link for link in links if link.target_note_id in existing]
    if len(kept) < len(links):
        logger.debug(
            f"Dropped {len(links) - len(kept)} link(s) from note {source_id}: "
            "target deleted before save"
        )
    session.add_all(
        DBNoteLink(
            id=link.id,
            source_note_id=source_id,
            target_note_id=link.target_note_id,
            link_text=link.link_text,
            created_at=link.created_at,
        )
        for link in kept
    )
    return kept


class LinkRepository(LinkStore):
    """Repository for NoteLink rows.

    Link rows are only ever written wholesale per source note; there is no
    single-link create or delete.
    """

    def __init__(self, engine=None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

    def replace_links_for_note(self, source_id: str, links: Sequence[NoteLink]) -> List[NoteLink]:
        """Atomically replace every outbound link of a note.

        Readers see either the previous link set or the new one, never a
        partially deleted state.

        Returns:
            The links stored, without any whose target no longer exists.
        """
        with unit_of_work(self.session_factory, "replace_links") as session:
            stored = write_links(session, source_id, links)
        logger.debug(f"Replaced links for note {source_id}: {len(stored)} link(s)")
        return stored

    def get_links_from(self, note_id: str, include_trashed: bool = True) -> List[NoteLink]:
        """Get outbound links of a note, newest first.

        Args:
            note_id: The source note ID.
            include_trashed: When False, links pointing at trashed notes are left out.
        """
        target = aliased(DBNote)
        query = (
            select(DBNoteLink)
            .join(target, DBNoteLink.target_note_id == target.id)
            .where(DBNoteLink.source_note_id == note_id)
        )
        if not include_trashed:
            query = query.where(target.is_trashed.is_(False))
        return self._fetch(query, "get_links_from")

    def get_links_to(self, note_id: str, include_trashed: bool = True) -> List[NoteLink]:
        """Get inbound links of a note, newest first.

        Args:
            note_id: The target note ID.
            include_trashed: When False, links coming from trashed notes are left out.
        """
        source = aliased(DBNote)
        query = (
            select(DBNoteLink)
            .join(source, DBNoteLink.source_note_id == source.id)
            .where(DBNoteLink.target_note_id == note_id)
        )
        if not include_trashed:
            query = query.where(source.is_trashed.is_(False))
        return self._fetch(query, "get_links_to")

    def get_most_linked(self, limit: int) -> List[Tuple[str, int]]:
        """Rank notes by inbound link count.

        Ties are broken by ascending note ID so the ranking is stable.

        Returns:
            List of (note_id, link_count) tuples, ordered by count descending.
        """
        link_count = func.count(DBNoteLink.id).label("link_count")
        query = (
            select(DBNoteLink.target_note_id, link_count)
            .group_by(DBNoteLink.target_note_id)
            .order_by(link_count.desc(), DBNoteLink.target_note_id.asc())
            .limit(limit)
        )
        with unit_of_work(self.session_factory, "get_most_linked") as session:
            return [(row[0], row[1]) for row in session.execute(query).all()]

    def count_backlinks(self, note_id: str) -> int:
        """Count the notes that link to ``note_id``."""
        with unit_of_work(self.session_factory, "count_backlinks") as session:
            count = session.scalar(
                select(func.count(DBNoteLink.id)).where(DBNoteLink.target_note_id == note_id)
            )
            return count or 0

    def _fetch(self, query, operation: str) -> List[NoteLink]:
        query = query.order_by(DBNoteLink.created_at.desc(), DBNoteLink.id.asc())
        with unit_of_work(self.session_factory, operation) as session:
            return [self._db_to_model(row) for row in session.scalars(query).all()]

    @staticmethod
    def _db_to_model(db_link: DBNoteLink) -> NoteLink:
        return NoteLink(
            id=db_link.id,
            source_note_id=db_link.source_note_id,
            target_note_id=db_link.target_note_id,
            link_text=db_link.link_text,
            created_at=ensure_timezone_aware(db_link.created_at),
        )
