"""Backlink resolution: turns extracted wiki-link titles into NoteLink rows."""

import logging
import threading
import weakref
from typing import Callable, Iterable, List, Optional, Tuple

from notex_mcp.exceptions import ErrorCode, ValidationError
from notex_mcp.links.extractor import extract_wiki_links
from notex_mcp.models.schema import NoteLink
from notex_mcp.storage.base import LinkStore, TitleIndex

logger = logging.getLogger(__name__)

LockProvider = Callable[[str], threading.RLock]


class BacklinkResolver:
    """Maintains the forward-link and backlink relations between notes.

    Titles resolve through an injected ``TitleIndex``; a title that matches no
    note is silently dropped. A note never links to itself, and each target
    appears at most once per source, carrying the first title that resolved
    to it.
    """

    def __init__(
        self,
        link_store: LinkStore,
        title_index: TitleIndex,
        lock_provider: Optional[LockProvider] = None,
    ):
        """Initialize the resolver.

        Args:
            link_store: Persistence for link rows.
            title_index: Title to note ID lookup.
            lock_provider: Returns the per-note lock used to serialize writers
                on the same source note. Pass the note repository's provider so
                resyncs and content saves share one lock per note.
        """
        self.link_store = link_store
        self.title_index = title_index
        if lock_provider is None:
            self._locks: weakref.WeakValueDictionary[str, threading.RLock] = (
                weakref.WeakValueDictionary()
            )
            self._locks_lock = threading.Lock()
            lock_provider = self._own_lock
        self._lock_for = lock_provider

    def _own_lock(self, note_id: str) -> threading.RLock:
        with self._locks_lock:
            lock = self._locks.get(note_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[note_id] = lock
            return lock

    def resolve(self, source_id: str, titles: Iterable[str]) -> List[NoteLink]:
        """Build the replacement link set for a source note.

        Args:
            source_id: ID of the note whose content the titles came from.
            titles: Candidate titles, usually from ``extract_wiki_links``.

        Returns:
            One NoteLink per distinct resolved target, in title order.
        """
        links: List[NoteLink] = []
        seen_targets = set()
        for title in titles:
            target_id = self.title_index.find_note_id_by_title(title)
            if target_id is None:
                logger.debug(f"Unresolved wiki-link [[{title}]] in note {source_id}")
                continue
            if target_id == source_id or target_id in seen_targets:
                continue
            seen_targets.add(target_id)
            links.append(
                NoteLink(source_note_id=source_id, target_note_id=target_id, link_text=title)
            )
        return links

    def resync(self, source_id: str, content: str) -> List[NoteLink]:
        """Rewrite the outbound links of a note from its content.

        Extraction and resolution happen first; the stored link set is then
        replaced in a single transaction. Resyncs of the same note are
        serialized, different notes proceed in parallel.

        Returns:
            The link set now stored for ``source_id``.
        """
        with self._lock_for(source_id):
            links = self.link_store.replace_links_for_note(
                source_id, self.resolve(source_id, extract_wiki_links(content))
            )
        logger.debug(f"Resynced links for note {source_id}: {len(links)} link(s)")
        return links

    def get_forward_links(self, note_id: str, include_trashed: bool = True) -> List[NoteLink]:
        """Links from ``note_id`` to other notes, newest first."""
        return self.link_store.get_links_from(note_id, include_trashed=include_trashed)

    def get_backlinks(self, note_id: str, include_trashed: bool = True) -> List[NoteLink]:
        """Links from other notes to ``note_id``, newest first."""
        return self.link_store.get_links_to(note_id, include_trashed=include_trashed)

    def get_most_linked(self, limit: int) -> List[Tuple[str, int]]:
        """Most referenced notes as (note_id, count), ties by ascending note ID."""
        if limit < 1:
            raise ValidationError(
                "limit must be a positive integer",
                field="limit",
                value=limit,
                code=ErrorCode.VALIDATION_FAILED,
            )
        return self.link_store.get_most_linked(limit)

    def count_backlinks(self, note_id: str) -> int:
        return self.link_store.count_backlinks(note_id)
