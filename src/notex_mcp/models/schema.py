"""Data models for the NoteX MCP server."""

import datetime
import uuid
from dataclasses import dataclass, field
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from notex_mcp.markdown.plain_text import compute_text_stats

PREVIEW_LENGTH = 200


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite stores datetimes without an offset, so values read back from the
    database come in naive and are tagged as UTC here.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def generate_id() -> str:
    """Generate an opaque unique identifier."""
    return str(uuid.uuid4())


class NoteColor(str, Enum):
    """Fixed palette a note can be tagged with."""

    DEFAULT = "default"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PINK = "pink"
    PURPLE = "purple"
    ORANGE = "orange"
    TEAL = "teal"
    GRAY = "gray"


class NoteState(str, Enum):
    """Lifecycle state derived from the archived/trashed flags."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    TRASHED = "trashed"


class NoteSortOrder(int, Enum):
    """Sort orders for note listings. Pinned notes always come first."""

    MODIFIED_DESC = 0
    MODIFIED_ASC = 1
    CREATED_DESC = 2
    CREATED_ASC = 3
    TITLE_ASC = 4
    TITLE_DESC = 5


class Note(BaseModel):
    """A note.

    Notes are immutable values. ``plain_text_content``, ``word_count`` and
    ``character_count`` are always derived from ``content`` during
    validation, so any value passed for them is replaced. Use the ``with_*``
    helpers to get an updated copy; they re-run validation.
    """

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    title: str = Field(default="", description="Title of the note (may be empty)")
    content: str = Field(default="", description="Raw markdown content")
    plain_text_content: str = Field(default="", description="Markup-free projection")
    folder_id: Optional[str] = Field(default=None, description="Containing folder")
    color: NoteColor = Field(default=NoteColor.DEFAULT)
    is_pinned: bool = False
    is_archived: bool = False
    is_trashed: bool = False
    is_checklist: bool = False
    created_at: datetime.datetime = Field(default_factory=utc_now)
    modified_at: datetime.datetime = Field(default_factory=utc_now)
    trashed_at: Optional[datetime.datetime] = None
    word_count: int = 0
    character_count: int = 0

    model_config = {"frozen": True, "extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def _derive_text_fields(cls, data: Any) -> Any:
        """Recompute the plain-text projection and counts from content."""
        if isinstance(data, dict):
            stats = compute_text_stats(data.get("content") or "")
            data = {
                **data,
                "plain_text_content": stats.plain_text,
                "word_count": stats.word_count,
                "character_count": stats.character_count,
            }
        return data

    @field_validator("created_at", "modified_at", "trashed_at")
    @classmethod
    def _validate_timezone(cls, v: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        return ensure_timezone_aware(v)

    @model_validator(mode="after")
    def _validate_trash_state(self) -> "Note":
        """trashed_at is set if and only if the note is trashed."""
        if self.is_trashed and self.trashed_at is None:
            raise ValueError("Trashed note requires trashed_at")
        if not self.is_trashed and self.trashed_at is not None:
            raise ValueError("trashed_at must be empty unless the note is trashed")
        return self

    @classmethod
    def create(
        cls,
        title: str = "",
        content: str = "",
        folder_id: Optional[str] = None,
        color: NoteColor = NoteColor.DEFAULT,
        is_checklist: bool = False,
    ) -> "Note":
        """Build a new active note with derived fields filled in."""
        now = utc_now()
        return cls(
            title=title,
            content=content,
            folder_id=folder_id,
            color=color,
            is_checklist=is_checklist,
            created_at=now,
            modified_at=now,
        )

    def _replace(self, **changes: Any) -> "Note":
        return type(self).model_validate({**self.model_dump(), **changes})

    def with_content(self, content: str, title: Optional[str] = None) -> "Note":
        """Return a copy with new content (and optionally title)."""
        changes: Dict[str, Any] = {"content": content, "modified_at": utc_now()}
        if title is not None:
            changes["title"] = title
        return self._replace(**changes)

    def with_pinned(self, pinned: bool) -> "Note":
        return self._replace(is_pinned=pinned, modified_at=utc_now())

    def with_archived(self, archived: bool) -> "Note":
        return self._replace(is_archived=archived, modified_at=utc_now())

    def with_color(self, color: NoteColor) -> "Note":
        return self._replace(color=color, modified_at=utc_now())

    def with_folder(self, folder_id: Optional[str]) -> "Note":
        return self._replace(folder_id=folder_id, modified_at=utc_now())

    def trashed(self) -> "Note":
        """Return a copy moved to the trash."""
        now = utc_now()
        return self._replace(is_trashed=True, trashed_at=now, modified_at=now)

    def restored(self) -> "Note":
        """Return a copy taken back out of the trash."""
        return self._replace(is_trashed=False, trashed_at=None, modified_at=utc_now())

    @property
    def state(self) -> NoteState:
        if self.is_trashed:
            return NoteState.TRASHED
        if self.is_archived:
            return NoteState.ARCHIVED
        return NoteState.ACTIVE

    @property
    def preview(self) -> str:
        return self.plain_text_content[:PREVIEW_LENGTH].replace("\n", " ")

    @property
    def is_not_empty(self) -> bool:
        return bool(
            self.title.strip() or self.content.strip() or self.plain_text_content.strip()
        )


class ChecklistItem(BaseModel):
    """One row of a checklist note."""

    id: str = Field(default_factory=generate_id)
    note_id: str = Field(..., description="Owning note")
    text: str = Field(default="")
    is_checked: bool = False
    position: int = Field(default=0, description="Display order within the note")
    indentation: int = Field(default=0, ge=0, description="Nesting depth")

    model_config = {"frozen": True, "extra": "forbid"}


class Folder(BaseModel):
    """A folder in the note hierarchy."""

    id: str = Field(default_factory=generate_id)
    name: str = Field(..., description="Folder name, unique among siblings")
    parent_id: Optional[str] = Field(default=None, description="Parent folder ID")
    color: int = 0
    icon: Optional[str] = None
    position: int = Field(default=0, description="Order among siblings")
    created_at: datetime.datetime = Field(default_factory=utc_now)
    modified_at: datetime.datetime = Field(default_factory=utc_now)
    is_expanded: bool = True

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is not empty."""
        if not v.strip():
            raise ValueError("Folder name cannot be empty")
        return v.strip()

    @field_validator("created_at", "modified_at")
    @classmethod
    def _validate_timezone(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @model_validator(mode="after")
    def _validate_parent(self) -> "Folder":
        if self.parent_id is not None and self.parent_id == self.id:
            raise ValueError("A folder cannot be its own parent")
        return self


class NoteLink(BaseModel):
    """A directed wiki-reference from one note's content to another note."""

    id: str = Field(default_factory=generate_id)
    source_note_id: str = Field(..., description="ID of the linking note")
    target_note_id: str = Field(..., description="ID of the linked note")
    link_text: str = Field(..., description="Title as written inside [[...]]")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the link was created (UTC)"
    )

    model_config = {
        "extra": "forbid",
        "frozen": True,  # Links are immutable
    }

    @field_validator("created_at")
    @classmethod
    def _validate_timezone(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)


@dataclass
class FolderTreeNode:
    """A folder with its nested children and the number of active notes in it."""

    folder: Folder
    children: List["FolderTreeNode"] = field(default_factory=list)
    notes_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.folder.id,
            "name": self.folder.name,
            "is_expanded": self.folder.is_expanded,
            "notes_count": self.notes_count,
            "children": [child.to_dict() for child in self.children],
        }
