"""Common test fixtures for the QingNote data layer."""

import tempfile
from pathlib import Path

import pytest

from qingnote.config import config
from qingnote.models.db_models import init_db
from qingnote.models.schema import User
from qingnote.observability import metrics
from qingnote.services.auth_service import AuthService
from qingnote.storage.attachment_storage import AttachmentStorage
from qingnote.storage.database import Database
from qingnote.storage.note_repository import NoteRepository
from qingnote.storage.paging import PagingConfig
from qingnote.storage.session_store import SessionStore
from qingnote.storage.user_repository import UserRepository


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture
def temp_dirs():
    """Create temporary directories for files and database."""
    with tempfile.TemporaryDirectory() as files_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            yield Path(files_dir), Path(db_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    files_dir, db_dir = temp_dirs
    monkeypatch.setattr(config, "base_dir", files_dir)
    monkeypatch.setattr(config, "database_path", db_dir / "test_qingnote.db")
    monkeypatch.setattr(config, "attachments_dir", files_dir / "attachments")
    monkeypatch.setattr(config, "staging_dir", files_dir / "staging")
    monkeypatch.setattr(config, "avatars_dir", files_dir / "avatars")
    monkeypatch.setattr(config, "session_path", files_dir / "prefs" / "session.json")
    monkeypatch.setattr(config, "bootstrap_admin", False)
    metrics.reset()
    yield config


@pytest.fixture
def engine(test_config):
    """Fresh file-backed SQLite engine with the schema created."""
    engine = init_db()
    yield engine
    engine.dispose()


@pytest.fixture
def database(engine):
    db = Database(engine=engine)
    yield db
    db.close()


@pytest.fixture
def storage(test_config):
    return AttachmentStorage()


@pytest.fixture
def session_store(test_config):
    return SessionStore()


@pytest.fixture
def user_repository(database, storage):
    repository = UserRepository(database, storage)
    yield repository
    repository.close()


@pytest.fixture
def note_repository(database, storage):
    repository = NoteRepository(database, storage, paging=PagingConfig())
    yield repository
    repository.close()


@pytest.fixture
def auth_service(user_repository, session_store):
    return AuthService(user_repository, session_store)


@pytest.fixture
def user(database):
    """A stored user row (id assigned by the database)."""
    user_id = database.users.insert(User(username="owner", email="owner@example.com"))
    return database.users.get_by_id(user_id)


class Collector:
    """Observer that records every snapshot pushed to it."""

    def __init__(self):
        self.values = []

    def __call__(self, value):
        self.values.append(value)

    @property
    def last(self):
        return self.values[-1] if self.values else None


@pytest.fixture
def collector():
    return Collector()
