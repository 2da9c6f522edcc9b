"""Common test fixtures for the NoteX MCP server."""

import tempfile
from pathlib import Path

import pytest

from notex_mcp.config import config
from notex_mcp.models.db_models import init_db
from notex_mcp.services.folder_service import FolderService
from notex_mcp.services.note_service import NoteService
from notex_mcp.storage.folder_repository import FolderRepository
from notex_mcp.storage.link_repository import LinkRepository
from notex_mcp.storage.note_repository import NoteRepository


@pytest.fixture
def temp_db_dir():
    """Create a temporary directory for the database."""
    with tempfile.TemporaryDirectory() as db_dir:
        yield Path(db_dir)


@pytest.fixture
def test_config(temp_db_dir, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "database_path", temp_db_dir / "test_notex.db")
    monkeypatch.setattr(config, "in_memory_db", False)
    monkeypatch.setattr(config, "title_match_case_sensitive", True)
    monkeypatch.setattr(config, "trash_retention_days", 30)
    yield config


@pytest.fixture
def engine(test_config):
    """File-backed engine with foreign keys enforced and all tables created."""
    engine = init_db()
    yield engine
    engine.dispose()


@pytest.fixture
def note_repository(engine):
    return NoteRepository(engine=engine)


@pytest.fixture
def link_repository(engine):
    return LinkRepository(engine=engine)


@pytest.fixture
def folder_repository(engine):
    return FolderRepository(engine=engine)


@pytest.fixture
def note_service(engine, note_repository, link_repository, folder_repository):
    """Create a NoteService wired to the test repositories."""
    return NoteService(
        repository=note_repository,
        link_repository=link_repository,
        folder_repository=folder_repository,
        engine=engine,
    )


@pytest.fixture
def folder_service(folder_repository):
    return FolderService(repository=folder_repository)
