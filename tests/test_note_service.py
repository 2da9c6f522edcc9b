# tests/test_note_service.py
"""Tests for the NoteService class."""
import datetime

import pytest

from notex_mcp.exceptions import FolderNotFoundError, NoteNotFoundError, ValidationError
from notex_mcp.markdown.nodes import Heading, Paragraph, Quote, Text, WikiLink
from notex_mcp.models.schema import NoteColor, NoteSortOrder, NoteState


class TestContent:
    """Creating and editing note content."""

    def test_create_note(self, note_service):
        note = note_service.create_note(title="  Title  ", content="Hello **world**")
        assert note.title == "Title"
        assert note.plain_text_content == "Hello world"
        assert note_service.get_note(note.id) == note

    def test_empty_note_allowed(self, note_service):
        note = note_service.create_note()
        assert note.title == ""
        assert note.word_count == 0

    def test_content_save_updates_derived_fields(self, note_service):
        note = note_service.create_note(title="T", content="one")
        updated = note_service.on_note_content_saved(note.id, "one two three")

        stored = note_service.get_note(note.id)
        assert stored == updated
        assert stored.word_count == 3
        assert stored.character_count == len("one two three")
        assert stored.title == "T"
        assert stored.modified_at >= note.modified_at

    def test_content_save_with_title(self, note_service):
        note = note_service.create_note(title="Old")
        updated = note_service.on_note_content_saved(note.id, "x", title=" New ")
        assert updated.title == "New"

    def test_title_only_save_keeps_stored_content(self, note_service):
        target = note_service.create_note(title="Target")
        note = note_service.create_note(title="Old", content="see [[Target]]")

        updated = note_service.on_note_content_saved(note.id, None, title="New")

        assert updated.title == "New"
        assert updated.content == "see [[Target]]"
        assert [l.target_note_id for l in note_service.get_forward_links(note.id)] == [target.id]

    def test_content_save_missing_note(self, note_service):
        with pytest.raises(NoteNotFoundError):
            note_service.on_note_content_saved("missing", "text")

    def test_render_note(self, note_service):
        note = note_service.create_note(
            title="R", content="# Head\n\nSee [[Other]]\n\n> quoted"
        )
        blocks = note_service.render_note(note.id)
        assert blocks == [
            Heading(1, (Text("Head"),)),
            Paragraph((Text("See "), WikiLink("Other"))),
            Quote((Paragraph((Text("quoted"),)),)),
        ]

    def test_render_missing_note(self, note_service):
        with pytest.raises(NoteNotFoundError):
            note_service.render_note("missing")


class TestLifecycle:
    """Pinning, archiving, trash and colors."""

    def test_pin_and_color(self, note_service):
        note = note_service.create_note(title="T")
        assert note_service.set_pinned(note.id, True).is_pinned
        assert note_service.set_color(note.id, NoteColor.GREEN).color is NoteColor.GREEN
        stored = note_service.get_note(note.id)
        assert stored.is_pinned and stored.color is NoteColor.GREEN

    def test_archive(self, note_service):
        note = note_service.create_note(title="T")
        note_service.set_archived(note.id, True)
        assert note_service.list_notes() == []
        assert [n.id for n in note_service.list_archived()] == [note.id]
        assert note_service.get_note(note.id).state is NoteState.ARCHIVED

    def test_trash_is_idempotent(self, note_service):
        note = note_service.create_note(title="T")
        first = note_service.move_to_trash(note.id)
        second = note_service.move_to_trash(note.id)
        assert first.trashed_at == second.trashed_at
        assert [n.id for n in note_service.list_trashed()] == [note.id]

    def test_restore(self, note_service):
        note = note_service.create_note(title="T")
        note_service.move_to_trash(note.id)
        restored = note_service.restore_from_trash(note.id)
        assert not restored.is_trashed
        assert restored.trashed_at is None
        # Restoring an active note changes nothing
        assert note_service.restore_from_trash(note.id) == restored

    def test_lifecycle_on_missing_note(self, note_service):
        with pytest.raises(NoteNotFoundError):
            note_service.set_pinned("missing", True)
        with pytest.raises(NoteNotFoundError):
            note_service.delete_note("missing")

    def test_move_note_to_folder(self, note_service, folder_service):
        folder = folder_service.create_folder("Work")
        note = note_service.create_note(title="T")
        assert note_service.move_note_to_folder(note.id, folder.id).folder_id == folder.id
        assert [n.id for n in note_service.list_notes(folder_id=folder.id)] == [note.id]
        assert note_service.move_note_to_folder(note.id, None).folder_id is None
        with pytest.raises(FolderNotFoundError):
            note_service.move_note_to_folder(note.id, "missing")

    def test_listing_sort_order(self, note_service):
        b = note_service.create_note(title="B")
        a = note_service.create_note(title="A")
        ids = [n.id for n in note_service.list_notes(NoteSortOrder.TITLE_ASC)]
        assert ids == [a.id, b.id]


class TestTrashPurge:
    """Retention-based trash purging."""

    def test_purge_expired(self, note_service):
        old = note_service.create_note(title="Old")
        note_service.move_to_trash(old.id)
        fresh = note_service.create_note(title="Fresh")
        note_service.move_to_trash(fresh.id)

        now = datetime.datetime.now(datetime.timezone.utc)
        assert note_service.purge_expired_trash(days=30, now=now) == []

        later = now + datetime.timedelta(days=31)
        purged = note_service.purge_expired_trash(days=30, now=later)
        assert sorted(purged) == sorted([old.id, fresh.id])
        assert note_service.list_trashed() == []

    def test_purge_uses_config_default(self, note_service, test_config, monkeypatch):
        monkeypatch.setattr(test_config, "trash_retention_days", 0)
        note = note_service.create_note(title="T")
        note_service.move_to_trash(note.id)
        later = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=5)
        assert note_service.purge_expired_trash(now=later) == [note.id]

    def test_negative_retention_rejected(self, note_service):
        with pytest.raises(ValidationError):
            note_service.purge_expired_trash(days=-1)

    def test_empty_trash(self, note_service):
        note = note_service.create_note(title="T")
        note_service.move_to_trash(note.id)
        assert note_service.empty_trash() == [note.id]
        assert note_service.count_notes()["trashed"] == 0


class TestSearch:
    def test_blank_query_returns_nothing(self, note_service):
        note_service.create_note(title="Anything")
        assert note_service.search_notes("   ") == []

    def test_search_matches_body(self, note_service):
        note = note_service.create_note(title="T", content="The **quick** fox")
        assert [n.id for n in note_service.search_notes("quick fox")] == [note.id]
