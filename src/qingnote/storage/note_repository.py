"""Repository for notes and their attachments."""
import logging
from concurrent.futures import Future
from typing import Callable, Iterable, List, Optional

from qingnote.models.schema import Attachment, Note, NoteWithAttachments
from qingnote.storage.attachment_storage import AttachmentStorage
from qingnote.storage.database import Database, get_database
from qingnote.storage.live_query import LiveQuery
from qingnote.storage.paging import PagedList, PagingConfig
from qingnote.storage.serial_executor import (Dispatcher, SerialExecutor,
                                              capture_dispatcher)

logger = logging.getLogger(__name__)


class NoteRepository:
    """Notes and attachments over the shared store.

    Inserts, updates and deletes are queued on a single worker thread and
    run in submission order. Observable reads are ``LiveQuery`` objects
    refreshed by the store's invalidation tracker.

    Args:
        database: Store to use; defaults to the shared database.
        storage: Attachment file storage.
        main_dispatcher: Runs callbacks when the caller has no asyncio loop.
        paging: Page geometry for the paged listings.
    """

    def __init__(
        self,
        database: Optional[Database] = None,
        storage: Optional[AttachmentStorage] = None,
        main_dispatcher: Optional[Dispatcher] = None,
        paging: Optional[PagingConfig] = None,
    ):
        self.database = database or get_database()
        self.notes = self.database.notes
        self.attachments = self.database.attachments
        self._storage = storage
        self._main_dispatcher = main_dispatcher
        self._paging = paging
        self._worker = SerialExecutor("qingnote-notes")
        logger.info("NoteRepository initialized")

    @property
    def storage(self) -> AttachmentStorage:
        if self._storage is None:
            self._storage = AttachmentStorage()
        return self._storage

    # -- note writes -------------------------------------------------------

    def insert(
        self,
        note: Note,
        on_complete: Optional[Callable[[Note], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> "Future[int]":
        """Queue an insert.

        ``on_complete`` receives the note with its assigned id, ``on_error``
        the exception; both run in the caller's context.
        """
        dispatch = capture_dispatcher(self._main_dispatcher)

        def task() -> int:
            try:
                note_id = self.notes.insert(note)
            except Exception as e:
                if on_error is not None:
                    dispatch(lambda error=e: on_error(error))
                raise
            saved = note.model_copy(update={"id": note_id})
            logger.info(f"Inserted note {note_id} for user {note.user_id}")
            if on_complete is not None:
                dispatch(lambda: on_complete(saved))
            return note_id

        return self._worker.submit(task, operation="note.insert")

    def update(self, note: Note) -> "Future[bool]":
        """Queue an update; ``updated_at`` is set to now first."""
        note.touch()
        return self._worker.submit(self.notes.update, note, operation="note.update")

    def delete(self, note: Note) -> "Future[bool]":
        """Queue a delete; attachment rows go with it, files stay on disk."""
        return self._worker.submit(self.notes.delete, note, operation="note.delete")

    def delete_all_by_user(self, user_id: int) -> "Future[int]":
        return self._worker.submit(
            self.notes.delete_all_by_user, user_id, operation="note.delete_all_by_user"
        )

    def save_with_attachments(
        self,
        note: Note,
        staged: Iterable[Attachment],
        on_complete: Optional[Callable[[NoteWithAttachments], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> "Future[NoteWithAttachments]":
        """Save a note, then commit its staged attachments into the note directory.

        The note row and the file copies are separate steps; a copy failure
        leaves the saved note without that attachment.
        """
        staged = list(staged)
        dispatch = capture_dispatcher(self._main_dispatcher)

        def task() -> NoteWithAttachments:
            try:
                if note.id is None:
                    note_id = self.notes.insert(note)
                else:
                    note.touch()
                    self.notes.update(note)
                    note_id = note.id
                saved = note.model_copy(update={"id": note_id})
                # Files rescanned from disk come back without ids; match them to their rows
                known = {a.path: a.id for a in self.attachments.get_by_note_id(note_id)}
                stored: List[Attachment] = []
                for attachment in self.storage.commit(note_id, staged):
                    if attachment.id is None:
                        attachment_id = known.get(attachment.path)
                        if attachment_id is None:
                            attachment_id = self.attachments.insert(attachment)
                            known[attachment.path] = attachment_id
                        attachment = attachment.model_copy(update={"id": attachment_id})
                    stored.append(attachment)
            except Exception as e:
                if on_error is not None:
                    dispatch(lambda error=e: on_error(error))
                raise
            result = NoteWithAttachments(note=saved, attachments=stored)
            logger.info(f"Saved note {note_id} with {len(stored)} attachments")
            if on_complete is not None:
                dispatch(lambda: on_complete(result))
            return result

        return self._worker.submit(task, operation="note.save_with_attachments")

    # -- attachment writes -------------------------------------------------

    def insert_attachment(self, attachment: Attachment) -> "Future[int]":
        return self._worker.submit(
            self.attachments.insert, attachment, operation="attachment.insert"
        )

    def delete_attachment(self, attachment: Attachment) -> "Future[bool]":
        """Queue removal of the attachment's file, then of its row.

        Resolves to False when the file could not be deleted (the row is then
        kept).
        """
        def task() -> bool:
            if not self.storage.delete_file(attachment):
                return False
            self.attachments.delete(attachment)
            return True

        return self._worker.submit(task, operation="attachment.delete")

    def load_attachments_for_edit(self, note_id: int) -> List[Attachment]:
        """A note's attachments as present on disk, regardless of rows."""
        return self.storage.scan_note_dir(note_id)

    # -- reads -------------------------------------------------------------

    def get_by_id(self, note_id: int) -> LiveQuery[Optional[Note]]:
        return self.notes.observe_by_id(note_id)

    def get_all_by_user(self, user_id: int) -> LiveQuery[List[Note]]:
        return self.notes.observe_all_by_user(user_id)

    def get_all_by_user_paged(self, user_id: int) -> LiveQuery[PagedList[Note]]:
        return self.notes.paged_by_user(user_id, self._paging)

    def search(self, user_id: int, query: str) -> LiveQuery[List[Note]]:
        return self.notes.observe_search(user_id, query)

    def search_paged(self, user_id: int, query: str) -> LiveQuery[PagedList[Note]]:
        return self.notes.paged_search(user_id, query, self._paging)

    def get_note_with_attachments(self, note_id: int) -> LiveQuery[Optional[NoteWithAttachments]]:
        return self.notes.observe_with_attachments(note_id)

    def get_attachments_by_note_id(self, note_id: int) -> LiveQuery[List[Attachment]]:
        return self.attachments.observe_by_note_id(note_id)

    def get_attachment_by_id(self, attachment_id: int) -> LiveQuery[Optional[Attachment]]:
        return self.attachments.observe_by_id(attachment_id)

    # -- lifecycle ---------------------------------------------------------

    def drain(self, timeout: Optional[float] = 10.0) -> None:
        """Wait for every queued write to finish."""
        self._worker.drain(timeout)

    def close(self) -> None:
        self._worker.shutdown()
