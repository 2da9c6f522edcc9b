"""Tests for concurrent content saves and link resyncs.

These tests run writers from several threads against one file-backed
database to verify:
1. Saves on different notes all land
2. Saves on the same note are serialized, leaving content and links in agreement
3. A resync racing a content save never leaves links from mixed versions
4. Readers only ever see a complete link set
"""

import threading
from typing import List

from notex_mcp.links.extractor import extract_wiki_links


def run_threads(targets) -> List[Exception]:
    """Run callables in parallel threads and collect any exceptions."""
    errors: List[Exception] = []
    lock = threading.Lock()

    def wrap(func):
        def runner():
            try:
                func()
            except Exception as e:
                with lock:
                    errors.append(e)
        return runner

    threads = [threading.Thread(target=wrap(t)) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return errors


def linked_titles(note_service, note_id: str) -> List[str]:
    return sorted(l.link_text for l in note_service.get_forward_links(note_id))


class TestConcurrentSaves:
    """Writers on the same and on different notes."""

    def test_different_notes_in_parallel(self, note_service):
        targets = [note_service.create_note(title=f"T{i}") for i in range(5)]
        sources = [note_service.create_note(title=f"S{i}") for i in range(5)]

        def save(index):
            return lambda: note_service.on_note_content_saved(
                sources[index].id, f"points to [[T{index}]]"
            )

        errors = run_threads([save(i) for i in range(5)])
        assert errors == [], f"Errors occurred: {errors}"

        for i, target in enumerate(targets):
            backlinks = note_service.get_backlinks(target.id)
            assert [l.source_note_id for l in backlinks] == [sources[i].id]

    def test_same_note_stays_consistent(self, note_service):
        for i in range(6):
            note_service.create_note(title=f"T{i}")
        source = note_service.create_note(title="Source")

        def save(index):
            content = f"[[T{index}]] and [[T{(index + 1) % 6}]]"
            return lambda: note_service.on_note_content_saved(source.id, content)

        errors = run_threads([save(i) for i in range(6)])
        assert errors == [], f"Errors occurred: {errors}"

        final = note_service.get_note(source.id)
        assert linked_titles(note_service, source.id) == sorted(
            extract_wiki_links(final.content)
        )
        assert final.word_count == len(final.plain_text_content.split())

    def test_resync_racing_save(self, note_service):
        note_service.create_note(title="Old")
        note_service.create_note(title="New")
        source = note_service.create_note(title="Source", content="[[Old]]")

        tasks = []
        for _ in range(3):
            tasks.append(lambda: note_service.resync_links(source.id))
            tasks.append(
                lambda: note_service.on_note_content_saved(source.id, "[[New]]")
            )

        errors = run_threads(tasks)
        assert errors == [], f"Errors occurred: {errors}"

        final = note_service.get_note(source.id)
        assert final.content == "[[New]]"
        assert linked_titles(note_service, source.id) == ["New"]


class TestReadersDuringWrites:
    """Readers polling links while a writer keeps replacing them."""

    def test_reader_sees_whole_link_sets(self, note_service):
        old_titles = ["A1", "A2", "A3"]
        new_titles = ["B1", "B2", "B3"]
        for title in old_titles + new_titles:
            note_service.create_note(title=title)
        old_content = " ".join(f"[[{t}]]" for t in old_titles)
        new_content = " ".join(f"[[{t}]]" for t in new_titles)
        source = note_service.create_note(title="Source", content=old_content)

        done = threading.Event()
        observed = []

        def writer():
            try:
                for i in range(20):
                    content = new_content if i % 2 == 0 else old_content
                    note_service.on_note_content_saved(source.id, content)
                    note_service.resync_links(source.id)
            finally:
                done.set()

        def reader():
            while True:
                observed.append(linked_titles(note_service, source.id))
                if done.is_set():
                    break

        errors = run_threads([writer, reader, reader])
        assert errors == [], f"Errors occurred: {errors}"

        assert observed
        for titles in observed:
            assert titles in (old_titles, new_titles)
        assert linked_titles(note_service, source.id) == old_titles
