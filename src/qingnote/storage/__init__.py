"""Storage layer for QingNote."""

from qingnote.storage.attachment_storage import AttachmentStorage
from qingnote.storage.database import Database, get_database, reset_database
from qingnote.storage.live_query import LiveQuery, Subscription
from qingnote.storage.note_repository import NoteRepository
from qingnote.storage.paging import PagedList, PagingConfig
from qingnote.storage.session_store import SessionStore
from qingnote.storage.user_repository import UserRepository

__all__ = [
    "AttachmentStorage",
    "Database",
    "get_database",
    "reset_database",
    "LiveQuery",
    "Subscription",
    "NoteRepository",
    "PagedList",
    "PagingConfig",
    "SessionStore",
    "UserRepository",
]
