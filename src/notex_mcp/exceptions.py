"""Custom exceptions for the NoteX MCP server.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002

    # Folder errors (2xxx)
    FOLDER_NOT_FOUND = 2001
    FOLDER_CYCLE = 2002
    FOLDER_SELF_PARENT = 2003
    FOLDER_PARENT_MISSING = 2004
    FOLDER_NAME_TAKEN = 2005

    # Checklist errors (3xxx)
    CHECKLIST_ITEM_NOT_FOUND = 3001
    CHECKLIST_INVALID = 3002

    # Storage errors (4xxx)
    STORAGE_UNAVAILABLE = 4001
    STORAGE_WRITE_FAILED = 4002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class NotexError(Exception):
    """Base exception for all NoteX errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NotFoundError(NotexError):
    """Raised when an operation references an entity that no longer exists."""


class NoteNotFoundError(NotFoundError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class FolderNotFoundError(NotFoundError):
    """Raised when a folder cannot be found."""

    def __init__(self, folder_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Folder with ID '{folder_id}' not found",
            code=ErrorCode.FOLDER_NOT_FOUND,
            details={"folder_id": folder_id}
        )
        self.folder_id = folder_id


class ChecklistItemNotFoundError(NotFoundError):
    """Raised when a checklist item cannot be found."""

    def __init__(self, item_id: str):
        super().__init__(
            f"Checklist item with ID '{item_id}' not found",
            code=ErrorCode.CHECKLIST_ITEM_NOT_FOUND,
            details={"item_id": item_id}
        )
        self.item_id = item_id


class InvalidFolderHierarchyError(NotexError):
    """Raised when a parent assignment would break the folder tree.

    The hierarchy is checked before any mutation, so when this is raised
    the stored tree is unchanged.
    """

    def __init__(
        self,
        message: str,
        folder_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.FOLDER_CYCLE
    ):
        details = {}
        if folder_id:
            details["folder_id"] = folder_id
        if parent_id:
            details["parent_id"] = parent_id

        super().__init__(message, code=code, details=details)
        self.folder_id = folder_id
        self.parent_id = parent_id


class StorageUnavailableError(NotexError):
    """Raised when the storage backend fails.

    The failing unit of work has been rolled back when this propagates.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_UNAVAILABLE,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class ConfigurationError(NotexError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class ValidationError(NotexError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
