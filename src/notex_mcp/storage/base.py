"""Storage boundary for the NoteX core.

The services talk to storage only through these interfaces. The SQLAlchemy
repositories in this package implement them; tests can substitute in-memory
fakes.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Generic, Iterator, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notex_mcp.exceptions import StorageUnavailableError
from notex_mcp.models.schema import NoteLink

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Basic CRUD contract shared by the entity repositories."""

    @abstractmethod
    def create(self, entity: T) -> T:
        """Persist a new entity."""

    @abstractmethod
    def get(self, id: str) -> Optional[T]:
        """Return the entity with this ID, or None."""

    @abstractmethod
    def update(self, entity: T) -> T:
        """Persist changes to an existing entity."""

    @abstractmethod
    def delete(self, id: str) -> None:
        """Permanently delete an entity and everything that cascades from it."""


class TitleIndex(ABC):
    """Resolves wiki-link titles to note IDs."""

    @abstractmethod
    def find_note_id_by_title(self, title: str) -> Optional[str]:
        """Return the ID of the note with this title, or None."""


class LinkStore(ABC):
    """Persistence of NoteLink rows."""

    @abstractmethod
    def replace_links_for_note(
        self, source_id: str, links: Sequence[NoteLink]
    ) -> List[NoteLink]:
        """Atomically replace every outbound link of ``source_id``.

        Returns the links actually stored; targets that no longer exist are
        left out.
        """

    @abstractmethod
    def get_links_from(self, note_id: str, include_trashed: bool = True) -> List[NoteLink]:
        """Outbound links of a note, newest first."""

    @abstractmethod
    def get_links_to(self, note_id: str, include_trashed: bool = True) -> List[NoteLink]:
        """Inbound links of a note, newest first."""

    @abstractmethod
    def get_most_linked(self, limit: int) -> List[Tuple[str, int]]:
        """(target note ID, inbound link count) pairs, highest count first."""

    @abstractmethod
    def count_backlinks(self, note_id: str) -> int:
        """Number of links pointing at a note."""


@contextmanager
def unit_of_work(session_factory, operation: str) -> Iterator[Session]:
    """Run a block inside one database transaction.

    Commits when the block exits normally and rolls back on any exception.
    Driver and engine failures surface as StorageUnavailableError; domain
    errors raised inside the block propagate unchanged.
    """
    try:
        with session_factory.begin() as session:
            yield session
    except SQLAlchemyError as e:
        logger.error(f"Storage failure during {operation}: {e}")
        raise StorageUnavailableError(
            f"Storage unavailable during {operation}",
            operation=operation,
            original_error=e,
        ) from e
