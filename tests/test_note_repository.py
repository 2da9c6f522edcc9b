# tests/test_note_repository.py
"""Tests for the note repository."""
import datetime

import pytest

from notex_mcp.exceptions import ErrorCode, NoteNotFoundError, ValidationError
from notex_mcp.models.schema import Folder, Note, NoteSortOrder
from notex_mcp.storage.note_repository import NoteRepository

BASE_TIME = datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


def make_note(title, minutes=0, **kwargs):
    """Build a note with deterministic timestamps."""
    stamp = BASE_TIME + datetime.timedelta(minutes=minutes)
    return Note(title=title, created_at=stamp, modified_at=stamp, **kwargs)


class TestNoteCrud:
    """Create, read, update and delete."""

    def test_create_and_get(self, note_repository):
        note = make_note("First", content="Some **bold** text")
        note_repository.create(note)

        stored = note_repository.get(note.id)
        assert stored == note
        assert stored.plain_text_content == "Some bold text"
        assert stored.created_at.tzinfo is not None

    def test_get_missing_returns_none(self, note_repository):
        assert note_repository.get("missing") is None

    def test_duplicate_id_rejected(self, note_repository):
        note = make_note("Dup")
        note_repository.create(note)
        with pytest.raises(ValidationError) as exc_info:
            note_repository.create(note)
        assert exc_info.value.code == ErrorCode.NOTE_VALIDATION_FAILED

    def test_update(self, note_repository):
        note = note_repository.create(make_note("Old"))
        note_repository.update(note.with_content("new body", title="New"))

        stored = note_repository.get(note.id)
        assert stored.title == "New"
        assert stored.word_count == 2

    def test_update_missing_raises(self, note_repository):
        with pytest.raises(NoteNotFoundError):
            note_repository.update(make_note("Ghost"))

    def test_delete(self, note_repository):
        note = note_repository.create(make_note("Doomed"))
        note_repository.delete(note.id)
        assert not note_repository.exists(note.id)
        with pytest.raises(NoteNotFoundError):
            note_repository.delete(note.id)

    def test_note_lock_is_reused(self, note_repository):
        lock = note_repository.get_note_lock("n1")
        assert note_repository.get_note_lock("n1") is lock
        assert note_repository.get_note_lock("n2") is not lock


class TestTitleLookup:
    """Resolving wiki-link titles to note IDs."""

    def test_exact_match(self, note_repository):
        note = note_repository.create(make_note("Alpha"))
        assert note_repository.find_note_id_by_title("Alpha") == note.id
        assert note_repository.find_note_id_by_title("  Alpha  ") == note.id
        assert note_repository.find_note_id_by_title("Beta") is None
        assert note_repository.find_note_id_by_title("   ") is None

    def test_case_sensitive_by_default(self, note_repository):
        note_repository.create(make_note("Alpha"))
        assert note_repository.find_note_id_by_title("alpha") is None

    def test_case_insensitive_mode(self, engine):
        repository = NoteRepository(engine=engine, title_case_sensitive=False)
        note = repository.create(make_note("Alpha"))
        assert repository.find_note_id_by_title("ALPHA") == note.id

    def test_case_insensitive_mode_folds_non_ascii(self, engine):
        repository = NoteRepository(engine=engine, title_case_sensitive=False)
        note = repository.create(make_note("Ärger"))
        assert repository.find_note_id_by_title("ärger") == note.id
        assert repository.find_note_id_by_title("ÄRGER") == note.id

    def test_oldest_note_wins(self, note_repository):
        older = note_repository.create(make_note("Same", minutes=0))
        note_repository.create(make_note("Same", minutes=5))
        assert note_repository.find_note_id_by_title("Same") == older.id

    def test_active_note_preferred_over_trashed(self, note_repository):
        trashed = note_repository.create(make_note("Same", minutes=0).trashed())
        active = note_repository.create(make_note("Same", minutes=5))
        assert note_repository.find_note_id_by_title("Same") == active.id
        note_repository.delete(active.id)
        assert note_repository.find_note_id_by_title("Same") == trashed.id


class TestListings:
    """Listing, filtering and counting."""

    def test_pinned_first_then_sort_order(self, note_repository):
        a = note_repository.create(make_note("A", minutes=1))
        b = note_repository.create(make_note("B", minutes=2))
        c = note_repository.create(make_note("C", minutes=3, is_pinned=True))

        ids = [n.id for n in note_repository.list_notes()]
        assert ids == [c.id, b.id, a.id]

        ids = [n.id for n in note_repository.list_notes(NoteSortOrder.TITLE_ASC)]
        assert ids == [c.id, a.id, b.id]

        ids = [n.id for n in note_repository.list_notes(NoteSortOrder.CREATED_ASC)]
        assert ids == [c.id, a.id, b.id]

    def test_listing_excludes_archived_and_trashed(self, note_repository):
        active = note_repository.create(make_note("Active"))
        archived = note_repository.create(make_note("Archived", is_archived=True))
        trashed = note_repository.create(make_note("Trashed").trashed())

        assert [n.id for n in note_repository.list_notes()] == [active.id]
        assert [n.id for n in note_repository.list_archived()] == [archived.id]
        assert [n.id for n in note_repository.list_trashed()] == [trashed.id]
        assert note_repository.count_notes() == {
            "active": 1,
            "archived": 1,
            "trashed": 1,
        }

    def test_uncategorized_filter(self, note_repository, folder_repository):
        folder = folder_repository.create(Folder(name="Work"))
        filed = note_repository.create(make_note("Filed", folder_id=folder.id))
        loose = note_repository.create(make_note("Loose"))

        assert [n.id for n in note_repository.list_notes(folder_id=folder.id)] == [filed.id]
        assert [n.id for n in note_repository.list_notes(uncategorized=True)] == [loose.id]


class TestSearch:
    """Title and body search."""

    def test_ranking(self, note_repository):
        body = note_repository.create(make_note("Other", content="mentions garden", minutes=3))
        inner = note_repository.create(make_note("My garden", minutes=2))
        prefix = note_repository.create(make_note("Garden plans", minutes=1))

        ids = [n.id for n in note_repository.search("garden")]
        assert ids == [prefix.id, inner.id, body.id]

    def test_limit(self, note_repository):
        for i in range(3):
            note_repository.create(make_note(f"Item {i}", minutes=i))
        assert len(note_repository.search("Item", limit=2)) == 2

    def test_wildcards_are_literal(self, note_repository):
        note_repository.create(make_note("100% done"))
        note_repository.create(make_note("100 items"))
        results = note_repository.search("100%")
        assert [n.title for n in results] == ["100% done"]

    def test_trashed_excluded(self, note_repository):
        note_repository.create(make_note("Hidden").trashed())
        assert note_repository.search("Hidden") == []


class TestTrash:
    """Permanent deletion of trashed notes."""

    def test_empty_trash(self, note_repository):
        keep = note_repository.create(make_note("Keep"))
        gone = note_repository.create(make_note("Gone").trashed())

        assert note_repository.empty_trash() == [gone.id]
        assert note_repository.exists(keep.id)
        assert not note_repository.exists(gone.id)
        assert note_repository.empty_trash() == []

    def test_purge_trashed_before(self, note_repository):
        old_stamp = BASE_TIME - datetime.timedelta(days=40)
        old = note_repository.create(
            Note(title="Old", is_trashed=True, trashed_at=old_stamp)
        )
        recent = note_repository.create(
            Note(title="Recent", is_trashed=True, trashed_at=BASE_TIME)
        )

        cutoff = BASE_TIME - datetime.timedelta(days=30)
        assert note_repository.purge_trashed_before(cutoff) == [old.id]
        assert note_repository.exists(recent.id)
