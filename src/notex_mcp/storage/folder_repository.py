"""Repository for folder storage and retrieval."""
import logging
import threading
from typing import Dict, List, Optional, Set

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from notex_mcp.exceptions import (
    ErrorCode,
    FolderNotFoundError,
    InvalidFolderHierarchyError,
    ValidationError,
)
from notex_mcp.models.db_models import DBFolder, DBNote, get_session_factory, init_db
from notex_mcp.models.schema import Folder, FolderTreeNode, ensure_timezone_aware
from notex_mcp.storage.base import Repository, unit_of_work

logger = logging.getLogger(__name__)


class FolderRepository(Repository[Folder]):
    """Repository for the folder tree.

    Enforces the structural rules of the tree on every write: the parent
    must exist, a folder is never its own ancestor, and names are unique
    among siblings. Violations are rejected before anything is written.
    """

    def __init__(self, engine=None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

        # Held around every tree write; the hierarchy checks run before
        # SQLite takes its own write lock
        self._tree_lock = threading.RLock()
        logger.info("FolderRepository initialized")

    def create(self, folder: Folder) -> Folder:
        """Create a new folder.

        Raises:
            ValidationError: If the ID is taken or a sibling has the same name.
            InvalidFolderHierarchyError: If the parent is missing or is the folder itself.
        """
        with self._tree_lock, unit_of_work(self.session_factory, "create_folder") as session:
            if session.get(DBFolder, folder.id) is not None:
                raise ValidationError(
                    f"Folder '{folder.id}' already exists",
                    field="id",
                    value=folder.id,
                )
            self._check_parent(session, folder)
            self._check_sibling_name(session, folder)

            db_folder = DBFolder(id=folder.id)
            self._copy_to_row(folder, db_folder)
            session.add(db_folder)

        logger.info(f"Created folder: {folder.id} ({folder.name})")
        return folder

    def get(self, id: str) -> Optional[Folder]:
        """Get a folder by ID, or None."""
        with unit_of_work(self.session_factory, "get_folder") as session:
            db_folder = session.get(DBFolder, id)
            return self._db_to_model(db_folder) if db_folder else None

    def get_all(self) -> List[Folder]:
        """All folders ordered by position, then name."""
        query = select(DBFolder).order_by(DBFolder.position.asc(), DBFolder.name.asc())
        with unit_of_work(self.session_factory, "get_all_folders") as session:
            return [self._db_to_model(db) for db in session.scalars(query).all()]

    def get_children(self, parent_id: Optional[str]) -> List[Folder]:
        """Direct children of a folder; root folders when ``parent_id`` is None."""
        query = select(DBFolder)
        if parent_id is None:
            query = query.where(DBFolder.parent_id.is_(None))
        else:
            query = query.where(DBFolder.parent_id == parent_id)
        query = query.order_by(DBFolder.position.asc(), DBFolder.name.asc())
        with unit_of_work(self.session_factory, "get_child_folders") as session:
            return [self._db_to_model(db) for db in session.scalars(query).all()]

    def update(self, folder: Folder) -> Folder:
        """Update an existing folder.

        A parent change is checked against the current tree: the new parent
        must exist and must not be the folder or one of its descendants.

        Raises:
            FolderNotFoundError: If the folder does not exist.
            InvalidFolderHierarchyError: If the new parent would break the tree.
            ValidationError: If a sibling under the (new) parent has the same name.
        """
        with self._tree_lock, unit_of_work(self.session_factory, "update_folder") as session:
            db_folder = session.get(DBFolder, folder.id)
            if db_folder is None:
                raise FolderNotFoundError(folder.id)

            if folder.parent_id != db_folder.parent_id:
                self._check_parent(session, folder)
                self._check_no_cycle(session, folder)
            if folder.name != db_folder.name or folder.parent_id != db_folder.parent_id:
                self._check_sibling_name(session, folder)

            self._copy_to_row(folder, db_folder)

        logger.info(f"Updated folder: {folder.id}")
        return folder

    def delete(self, id: str) -> None:
        """Delete a folder and all of its descendants.

        Notes filed anywhere in the removed subtree become uncategorized;
        the notes themselves are kept.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        with self._tree_lock, unit_of_work(self.session_factory, "delete_folder") as session:
            result = session.execute(delete(DBFolder).where(DBFolder.id == id))
            if result.rowcount == 0:
                raise FolderNotFoundError(id)
        logger.info(f"Deleted folder: {id}")

    def get_descendant_ids(self, id: str) -> Set[str]:
        """IDs of every folder below ``id`` (excluding ``id`` itself)."""
        with unit_of_work(self.session_factory, "get_descendants") as session:
            children_of: Dict[Optional[str], List[str]] = {}
            for folder_id, parent_id in session.execute(
                select(DBFolder.id, DBFolder.parent_id)
            ).all():
                children_of.setdefault(parent_id, []).append(folder_id)

        descendants: Set[str] = set()
        stack = list(children_of.get(id, []))
        while stack:
            current = stack.pop()
            if current in descendants:
                continue
            descendants.add(current)
            stack.extend(children_of.get(current, []))
        return descendants

    def get_max_position(self, parent_id: Optional[str]) -> Optional[int]:
        """Highest sibling position under ``parent_id``, or None if there are no siblings."""
        query = select(func.max(DBFolder.position))
        if parent_id is None:
            query = query.where(DBFolder.parent_id.is_(None))
        else:
            query = query.where(DBFolder.parent_id == parent_id)
        with unit_of_work(self.session_factory, "get_max_position") as session:
            return session.scalar(query)

    def count_folders(self) -> int:
        with unit_of_work(self.session_factory, "count_folders") as session:
            return session.scalar(select(func.count(DBFolder.id))) or 0

    def get_tree(self) -> List[FolderTreeNode]:
        """Folders as nested trees with active note counts.

        Returns:
            Root folders with nested children, each level ordered by position.
        """
        folders = self.get_all()
        with unit_of_work(self.session_factory, "get_folder_tree") as session:
            counts = dict(
                session.execute(
                    select(DBNote.folder_id, func.count(DBNote.id))
                    .where(
                        DBNote.folder_id.is_not(None),
                        DBNote.is_trashed.is_(False),
                        DBNote.is_archived.is_(False),
                    )
                    .group_by(DBNote.folder_id)
                ).all()
            )

        by_id = {
            f.id: FolderTreeNode(folder=f, notes_count=counts.get(f.id, 0)) for f in folders
        }
        roots = []
        for f in folders:
            if f.parent_id and f.parent_id in by_id:
                by_id[f.parent_id].children.append(by_id[f.id])
            else:
                roots.append(by_id[f.id])
        return roots

    # ------------------------------------------------------------------
    # Tree rules
    # ------------------------------------------------------------------

    @staticmethod
    def _check_parent(session: Session, folder: Folder) -> None:
        if folder.parent_id is None:
            return
        if folder.parent_id == folder.id:
            raise InvalidFolderHierarchyError(
                f"Folder '{folder.id}' cannot be its own parent",
                folder_id=folder.id,
                parent_id=folder.parent_id,
                code=ErrorCode.FOLDER_SELF_PARENT,
            )
        if session.get(DBFolder, folder.parent_id) is None:
            raise InvalidFolderHierarchyError(
                f"Parent folder '{folder.parent_id}' not found",
                folder_id=folder.id,
                parent_id=folder.parent_id,
                code=ErrorCode.FOLDER_PARENT_MISSING,
            )

    @staticmethod
    def _check_no_cycle(session: Session, folder: Folder) -> None:
        # Walk up from the new parent; reaching the folder itself means the
        # new parent is one of its descendants
        visited = set()
        current_id = folder.parent_id
        while current_id is not None:
            if current_id == folder.id:
                raise InvalidFolderHierarchyError(
                    f"Moving folder '{folder.id}' under '{folder.parent_id}' "
                    "would create a cycle",
                    folder_id=folder.id,
                    parent_id=folder.parent_id,
                )
            if current_id in visited:
                break
            visited.add(current_id)
            current_id = session.scalar(
                select(DBFolder.parent_id).where(DBFolder.id == current_id)
            )

    @staticmethod
    def _check_sibling_name(session: Session, folder: Folder) -> None:
        query = select(DBFolder.id).where(
            DBFolder.name == folder.name, DBFolder.id != folder.id
        )
        if folder.parent_id is None:
            query = query.where(DBFolder.parent_id.is_(None))
        else:
            query = query.where(DBFolder.parent_id == folder.parent_id)
        if session.scalar(query.limit(1)) is not None:
            raise ValidationError(
                f"A folder named '{folder.name}' already exists here",
                field="name",
                value=folder.name,
                code=ErrorCode.FOLDER_NAME_TAKEN,
            )

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _copy_to_row(folder: Folder, db_folder: DBFolder) -> None:
        db_folder.name = folder.name
        db_folder.parent_id = folder.parent_id
        db_folder.color = folder.color
        db_folder.icon = folder.icon
        db_folder.position = folder.position
        db_folder.created_at = folder.created_at
        db_folder.modified_at = folder.modified_at
        db_folder.is_expanded = folder.is_expanded

    @staticmethod
    def _db_to_model(db_folder: DBFolder) -> Folder:
        return Folder(
            id=db_folder.id,
            name=db_folder.name,
            parent_id=db_folder.parent_id,
            color=db_folder.color,
            icon=db_folder.icon,
            position=db_folder.position,
            created_at=ensure_timezone_aware(db_folder.created_at),
            modified_at=ensure_timezone_aware(db_folder.modified_at),
            is_expanded=db_folder.is_expanded,
        )
