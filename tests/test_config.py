# tests/test_config.py
"""Tests for environment-driven configuration."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from qingnote.config import _USER_ENV, QingNoteConfig
from qingnote.storage.paging import PagingConfig


class TestDefaults:

    def test_defaults(self, monkeypatch):
        for name in ("QINGNOTE_PAGE_SIZE", "QINGNOTE_PREFETCH_PAGES",
                     "QINGNOTE_DATABASE_PATH", "QINGNOTE_BOOTSTRAP_ADMIN",
                     "QINGNOTE_ADMIN_USERNAME"):
            monkeypatch.delenv(name, raising=False)
        cfg = QingNoteConfig()
        assert cfg.page_size == 20
        assert cfg.prefetch_distance == 60
        assert cfg.database_path == Path("data/db/qingnote.db")
        assert cfg.bootstrap_admin is True
        assert cfg.admin_username == "admin"

    def test_user_env_path(self):
        assert _USER_ENV == Path.home() / ".qingnote" / ".env"


class TestEnvironment:

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("QINGNOTE_BASE_DIR", str(tmp_path))
        monkeypatch.setenv("QINGNOTE_PAGE_SIZE", "5")
        monkeypatch.setenv("QINGNOTE_PREFETCH_PAGES", "2")
        monkeypatch.setenv("QINGNOTE_BOOTSTRAP_ADMIN", "no")
        cfg = QingNoteConfig()
        assert cfg.base_dir == tmp_path
        assert cfg.prefetch_distance == 10
        assert cfg.bootstrap_admin is False

        paging = PagingConfig(page_size=cfg.page_size, prefetch_distance=cfg.prefetch_distance)
        assert paging.initial_size == 5

    def test_invalid_page_size(self, monkeypatch):
        monkeypatch.setenv("QINGNOTE_PAGE_SIZE", "0")
        with pytest.raises(ValidationError):
            QingNoteConfig()


class TestPaths:

    def test_relative_paths_resolve_under_base_dir(self, tmp_path):
        cfg = QingNoteConfig(base_dir=tmp_path)
        assert cfg.get_attachments_dir() == tmp_path / "data/files/attachments"
        assert cfg.get_session_path() == tmp_path / "data/prefs/session.json"

    def test_absolute_paths_kept(self, tmp_path):
        cfg = QingNoteConfig(base_dir=tmp_path, staging_dir=Path("/var/tmp/staging"))
        assert cfg.get_staging_dir() == Path("/var/tmp/staging")

    def test_db_url_creates_parent(self, tmp_path):
        cfg = QingNoteConfig(base_dir=tmp_path)
        url = cfg.get_db_url()
        assert url == f"sqlite:///{tmp_path / 'data/db/qingnote.db'}"
        assert (tmp_path / "data" / "db").is_dir()
