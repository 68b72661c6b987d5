# tests/test_note_repository.py
"""Tests for the NoteRepository."""
import datetime
import threading
from datetime import timezone
from pathlib import Path

import pytest

from qingnote.models.schema import Attachment, AttachmentType, Note


class TestNoteWrites:
    """Writes are queued on the repository worker."""

    def test_create_note_visible_after_drain(self, note_repository, user, collector):
        note_repository.insert(Note(title="T", content="C", user_id=user.id))
        note_repository.drain()

        live = note_repository.get_all_by_user(user.id)
        live.subscribe(collector)
        note_repository.database.tracker.wait_idle()
        assert len(collector.last) == 1
        assert collector.last[0].title == "T"
        assert collector.last[0].content == "C"

    def test_insert_callback_receives_id(self, note_repository, user):
        received = []
        done = threading.Event()

        def on_complete(note):
            received.append(note)
            done.set()

        future = note_repository.insert(
            Note(title="T", user_id=user.id), on_complete=on_complete
        )
        assert done.wait(5)
        assert received[0].id == future.result()
        assert received[0].title == "T"

    def test_insert_error_callback(self, note_repository):
        errors = []
        future = note_repository.insert(
            Note(title="orphan", user_id=424242), on_error=errors.append
        )
        with pytest.raises(Exception):
            future.result()
        assert len(errors) == 1

    def test_worker_survives_failed_insert(self, note_repository, user):
        note_repository.insert(Note(title="orphan", user_id=424242))
        ok = note_repository.insert(Note(title="fine", user_id=user.id))
        assert ok.result() > 0

    def test_callbacks_use_main_dispatcher(self, database, storage, user):
        from qingnote.storage.note_repository import NoteRepository

        queued = []
        repository = NoteRepository(database, storage, main_dispatcher=queued.append)
        try:
            seen = []
            repository.insert(Note(title="T", user_id=user.id), on_complete=seen.append).result()
            assert seen == []
            assert len(queued) == 1
            queued[0]()
            assert seen[0].title == "T"
        finally:
            repository.close()

    def test_update_refreshes_updated_at(self, note_repository, user):
        old = datetime.datetime(2020, 1, 1, tzinfo=timezone.utc)
        note_id = note_repository.insert(
            Note(title="T", user_id=user.id, created_at=old, updated_at=old)
        ).result()
        note = note_repository.get_by_id(note_id).get()
        note.title = "T2"
        assert note_repository.update(note).result()

        stored = note_repository.get_by_id(note_id).get()
        assert stored.title == "T2"
        assert stored.updated_at > old
        assert stored.created_at == old

    def test_writes_apply_in_order(self, note_repository, user):
        note_id = note_repository.insert(Note(title="v0", user_id=user.id)).result()
        note = note_repository.get_by_id(note_id).get()
        for i in range(1, 6):
            note_repository.update(note.model_copy(update={"title": f"v{i}"}))
        note_repository.drain()
        assert note_repository.get_by_id(note_id).get().title == "v5"

    def test_delete(self, note_repository, user):
        note_id = note_repository.insert(Note(title="T", user_id=user.id)).result()
        note = note_repository.get_by_id(note_id).get()
        assert note_repository.delete(note).result()
        assert note_repository.get_by_id(note_id).get() is None

    def test_delete_all_by_user(self, note_repository, user):
        for i in range(3):
            note_repository.insert(Note(title=f"n{i}", user_id=user.id))
        assert note_repository.delete_all_by_user(user.id).result() == 3
        assert note_repository.get_all_by_user(user.id).get() == []


class TestNoteReads:

    def test_search_finds_substring(self, note_repository, user):
        note_repository.insert(Note(title="Shopping List", user_id=user.id))
        note_repository.insert(Note(title="Diary", content="nothing here", user_id=user.id))
        note_repository.drain()
        titles = [n.title for n in note_repository.search(user.id, "shop").get()]
        assert titles == ["Shopping List"]

    def test_search_is_live(self, note_repository, user, collector):
        live = note_repository.search(user.id, "milk")
        live.subscribe(collector)
        note_repository.insert(Note(title="Groceries", content="buy milk", user_id=user.id))
        note_repository.drain()
        note_repository.database.tracker.wait_idle()
        assert [n.title for n in collector.last] == ["Groceries"]


class TestAttachments:
    """Attachment rows and files through the repository."""

    def test_save_with_attachments_commits_files(self, note_repository, storage, user, tmp_path):
        source = tmp_path / "photo.jpg"
        source.write_bytes(b"jpegdata")
        staged = storage.stage_file(source)

        result = note_repository.save_with_attachments(
            Note(title="With photo", user_id=user.id), [staged]
        ).result()

        assert result.note.id is not None
        assert len(result.attachments) == 1
        committed = result.attachments[0]
        assert committed.id is not None
        assert committed.note_id == result.note.id
        assert committed.type is AttachmentType.IMAGE
        assert committed.exists()
        assert Path(committed.path).parent == storage.note_dir(result.note.id).resolve()

        rows = note_repository.get_attachments_by_note_id(result.note.id).get()
        assert [a.name for a in rows] == ["photo.jpg"]

    def test_saving_again_does_not_duplicate(self, note_repository, storage, user, tmp_path):
        source = tmp_path / "a.txt"
        source.write_text("hello")
        first = note_repository.save_with_attachments(
            Note(title="T", user_id=user.id), [storage.stage_file(source)]
        ).result()
        second = note_repository.save_with_attachments(first.note, first.attachments).result()
        assert len(second.attachments) == 1
        assert len(note_repository.get_attachments_by_note_id(first.note.id).get()) == 1

    def test_note_with_attachments_live(self, note_repository, user, collector):
        note_id = note_repository.insert(Note(title="T", user_id=user.id)).result()
        live = note_repository.get_note_with_attachments(note_id)
        live.subscribe(collector)
        note_repository.insert_attachment(
            Attachment(note_id=note_id, name="b.txt", path="/nowhere/b.txt")
        )
        note_repository.drain()
        note_repository.database.tracker.wait_idle()
        assert collector.last.note.id == note_id
        assert [a.name for a in collector.last.attachments] == ["b.txt"]

    def test_delete_attachment_removes_file_then_row(self, note_repository, storage, user, tmp_path):
        source = tmp_path / "voice.m4a"
        source.write_bytes(b"audio")
        saved = note_repository.save_with_attachments(
            Note(title="T", user_id=user.id), [storage.stage_file(source)]
        ).result()
        attachment = saved.attachments[0]

        assert note_repository.delete_attachment(attachment).result()
        assert not attachment.exists()
        assert note_repository.get_attachments_by_note_id(saved.note.id).get() == []

    def test_delete_attachment_with_missing_file(self, note_repository, user):
        note_id = note_repository.insert(Note(title="T", user_id=user.id)).result()
        attachment_id = note_repository.insert_attachment(
            Attachment(note_id=note_id, name="gone.txt", path="/nowhere/gone.txt")
        ).result()
        attachment = note_repository.get_attachment_by_id(attachment_id).get()
        assert note_repository.delete_attachment(attachment).result()
        assert note_repository.get_attachment_by_id(attachment_id).get() is None

    def test_load_for_edit_scans_directory(self, note_repository, storage, user):
        """Files dropped into the note directory show up without rows."""
        note_id = note_repository.insert(Note(title="T", user_id=user.id)).result()
        directory = storage.note_dir(note_id)
        directory.mkdir(parents=True)
        (directory / "b.mp3").write_bytes(b"1")
        (directory / "a.png").write_bytes(b"22")

        attachments = note_repository.load_attachments_for_edit(note_id)
        assert [(a.name, a.type) for a in attachments] == [
            ("a.png", AttachmentType.IMAGE),
            ("b.mp3", AttachmentType.AUDIO),
        ]
        assert note_repository.get_attachments_by_note_id(note_id).get() == []

    def test_note_delete_leaves_files(self, note_repository, storage, user, tmp_path):
        source = tmp_path / "doc.pdf"
        source.write_bytes(b"%PDF")
        saved = note_repository.save_with_attachments(
            Note(title="T", user_id=user.id), [storage.stage_file(source)]
        ).result()
        note_repository.delete(saved.note).result()

        assert note_repository.get_attachments_by_note_id(saved.note.id).get() == []
        assert saved.attachments[0].exists()
        assert storage.delete_note_dir(saved.note.id)
        assert not saved.attachments[0].exists()

    def test_resaving_loaded_attachments_keeps_one_row(self, note_repository, storage, user, tmp_path):
        """Editing a note twice must not duplicate rows for files already saved."""
        source = tmp_path / "a.txt"
        source.write_text("hello")
        first = note_repository.save_with_attachments(
            Note(title="T", user_id=user.id), [storage.stage_file(source)]
        ).result()
        original_id = first.attachments[0].id

        for _ in range(2):
            loaded = note_repository.load_attachments_for_edit(first.note.id)
            assert [a.id for a in loaded] == [None]
            saved = note_repository.save_with_attachments(first.note, loaded).result()
            assert [a.id for a in saved.attachments] == [original_id]

        rows = note_repository.get_attachments_by_note_id(first.note.id).get()
        assert [(a.id, a.name) for a in rows] == [(original_id, "a.txt")]

    def test_edit_with_new_file_adds_only_that_row(self, note_repository, storage, user, tmp_path):
        first_file = tmp_path / "a.txt"
        first_file.write_text("a")
        saved = note_repository.save_with_attachments(
            Note(title="T", user_id=user.id), [storage.stage_file(first_file)]
        ).result()

        second_file = tmp_path / "b.png"
        second_file.write_bytes(b"png")
        loaded = note_repository.load_attachments_for_edit(saved.note.id)
        loaded.append(storage.stage_file(second_file))
        note_repository.save_with_attachments(saved.note, loaded).result()

        rows = note_repository.get_attachments_by_note_id(saved.note.id).get()
        assert [a.name for a in rows] == ["a.txt", "b.png"]
        assert rows[0].id == saved.attachments[0].id

    def test_same_name_attached_twice_keeps_both_files(self, note_repository, storage, user, tmp_path):
        note_id = note_repository.insert(Note(title="T", user_id=user.id)).result()
        note = note_repository.get_by_id(note_id).get()
        for content in (b"first", b"second"):
            source = tmp_path / content.decode() / "scan.pdf"
            source.parent.mkdir()
            source.write_bytes(content)
            note_repository.save_with_attachments(note, [storage.stage_file(source)]).result()
            storage.clear_staging()

        rows = note_repository.get_attachments_by_note_id(note_id).get()
        assert [a.name for a in rows] == ["scan.pdf", "scan_1.pdf"]
        assert [Path(a.path).read_bytes() for a in rows] == [b"first", b"second"]
