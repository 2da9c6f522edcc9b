"""Service layer for the folder tree."""

import logging
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from notex_mcp.exceptions import (
    ErrorCode,
    FolderNotFoundError,
    InvalidFolderHierarchyError,
    ValidationError,
)
from notex_mcp.models.schema import Folder, FolderTreeNode, utc_now
from notex_mcp.observability import traced
from notex_mcp.storage.folder_repository import FolderRepository

logger = logging.getLogger(__name__)


class FolderService:
    """Creates, renames, moves and deletes folders."""

    def __init__(
        self,
        repository: Optional[FolderRepository] = None,
        engine: Optional[Any] = None,
    ):
        self.repository = repository or FolderRepository(engine=engine)

    def _require(self, folder_id: str) -> Folder:
        folder = self.repository.get(folder_id)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        return folder

    def _next_position(self, parent_id: Optional[str]) -> int:
        current = self.repository.get_max_position(parent_id)
        return 0 if current is None else current + 1

    @traced("create_folder")
    def create_folder(
        self,
        name: str,
        parent_id: Optional[str] = None,
        color: int = 0,
        icon: Optional[str] = None,
    ) -> Folder:
        """Create a folder at the end of its siblings.

        Raises:
            InvalidFolderHierarchyError: If the parent does not exist.
            ValidationError: If the name is blank or taken among the siblings.
        """
        try:
            folder = Folder(
                name=name,
                parent_id=parent_id,
                color=color,
                icon=icon,
                position=self._next_position(parent_id),
            )
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid folder: {e.errors()[0]['msg']}", field="name", value=name
            ) from e
        return self.repository.create(folder)

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        return self.repository.get(folder_id)

    def list_folders(self, parent_id: Optional[str] = None) -> List[Folder]:
        """Direct children of ``parent_id``; root folders by default."""
        return self.repository.get_children(parent_id)

    def rename_folder(self, folder_id: str, name: str) -> Folder:
        folder = self._require(folder_id)
        if not name.strip():
            raise ValidationError("Folder name cannot be empty", field="name", value=name)
        folder.name = name
        folder.modified_at = utc_now()
        return self.repository.update(folder)

    @traced("move_folder")
    def move_folder(self, folder_id: str, parent_id: Optional[str]) -> Folder:
        """Re-parent a folder; ``parent_id=None`` moves it to the root.

        The folder goes to the end of its new siblings.

        Raises:
            InvalidFolderHierarchyError: If the new parent is missing, is the
                folder itself or one of its descendants. The tree is unchanged.
        """
        if parent_id == folder_id:
            raise InvalidFolderHierarchyError(
                f"Folder '{folder_id}' cannot be its own parent",
                folder_id=folder_id,
                parent_id=parent_id,
                code=ErrorCode.FOLDER_SELF_PARENT,
            )
        folder = self._require(folder_id)
        if folder.parent_id == parent_id:
            return folder
        moved = folder.model_copy()
        moved.parent_id = parent_id
        moved.position = self._next_position(parent_id)
        moved.modified_at = utc_now()
        return self.repository.update(moved)

    def set_folder_expanded(self, folder_id: str, expanded: bool) -> Folder:
        folder = self._require(folder_id)
        folder.is_expanded = expanded
        return self.repository.update(folder)

    def reorder_folder(self, folder_id: str, position: int) -> Folder:
        folder = self._require(folder_id)
        folder.position = position
        return self.repository.update(folder)

    @traced("delete_folder")
    def delete_folder(self, folder_id: str) -> List[str]:
        """Delete a folder with its whole subtree.

        Notes inside become uncategorized.

        Returns:
            IDs of every deleted folder, ``folder_id`` first.
        """
        self._require(folder_id)
        removed = [folder_id, *sorted(self.repository.get_descendant_ids(folder_id))]
        self.repository.delete(folder_id)
        return removed

    def get_folder_tree(self) -> List[FolderTreeNode]:
        return self.repository.get_tree()
