"""Process-wide handle on the relational store."""
import logging
import threading
from typing import Optional

from sqlalchemy.engine import Engine

from qingnote.models.db_models import get_session_factory, init_db
from qingnote.storage.dao import AttachmentDao, NoteDao, UserDao
from qingnote.storage.live_query import InvalidationTracker

logger = logging.getLogger(__name__)


class Database:
    """Engine, session factory, invalidation tracker and the three DAOs.

    Args:
        db_url: SQLAlchemy URL; defaults to the configured database file.
        engine: An already initialised engine (``db_url`` is then ignored).
        bootstrap_admin: Override for inserting the default admin on first run.
    """

    def __init__(
        self,
        db_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        bootstrap_admin: Optional[bool] = None,
    ):
        self.engine = engine or init_db(db_url, bootstrap_admin=bootstrap_admin)
        self.session_factory = get_session_factory(self.engine)
        self.tracker = InvalidationTracker(self.session_factory)
        self.users = UserDao(self)
        self.notes = NoteDao(self)
        self.attachments = AttachmentDao(self)

    def close(self) -> None:
        self.tracker.shutdown()
        self.engine.dispose()
        logger.debug("Database closed")


_instance: Optional[Database] = None
_instance_lock = threading.Lock()


def get_database() -> Database:
    """Return the shared database, opening it on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = Database()
        return _instance


def reset_database() -> None:
    """Close and forget the shared database (next call reopens it)."""
    global _instance
    with _instance_lock:
        if _instance is not None:
            _instance.close()
            _instance = None
