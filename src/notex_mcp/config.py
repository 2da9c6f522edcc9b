"""Configuration module for the NoteX MCP server."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notex_mcp import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the database
_USER_ENV = Path.home() / ".notex" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class NotexConfig(BaseModel):
    """Configuration for the NoteX server."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTEX_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTEX_DATABASE_PATH", "data/db/notex.db")
        )
    )
    # In-memory SQLite shares one connection, so it is only safe for
    # single-threaded use (tests, throwaway sessions).
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("NOTEX_IN_MEMORY_DB", "false")
    )
    # Wiki-link resolution policy. Titles inside [[...]] are always trimmed;
    # this controls whether "Foo" resolves a note titled "foo".
    title_match_case_sensitive: bool = Field(
        default_factory=lambda: _env_flag("NOTEX_TITLE_CASE_SENSITIVE", "true")
    )
    # Trashed notes older than this are removed by the purge sweep
    trash_retention_days: int = Field(
        default_factory=lambda: int(os.getenv("NOTEX_TRASH_RETENTION_DAYS", "30"))
    )
    # Nesting limit for recursive blockquote parsing
    max_quote_depth: int = Field(
        default_factory=lambda: int(os.getenv("NOTEX_MAX_QUOTE_DEPTH", "32"))
    )
    most_linked_default: int = Field(
        default_factory=lambda: int(os.getenv("NOTEX_MOST_LINKED_DEFAULT", "10"))
    )
    # Log directory (None means ~/.notex/logs)
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTEX_LOG_DIR")) if os.getenv("NOTEX_LOG_DIR") else None
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("NOTEX_SERVER_NAME", "notex-mcp"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "NotexConfig":
        """Reject settings that would make the sweep or the parser misbehave."""
        if self.trash_retention_days < 0:
            raise ValueError("trash_retention_days must be >= 0")
        if self.max_quote_depth < 1:
            raise ValueError("max_quote_depth must be >= 1")
        if self.most_linked_default < 1:
            raise ValueError("most_linked_default must be >= 1")
        if self.max_quote_depth > 200:
            logger.warning(
                "max_quote_depth=%d is close to the interpreter recursion limit",
                self.max_quote_depth,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite:///:memory:"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = NotexConfig()
