# tests/test_main.py
"""End-to-end tests for the qingnote command line."""
import pytest

from qingnote.main import main, parse_args
from qingnote.storage.database import reset_database


@pytest.fixture
def cli(test_config, monkeypatch, capsys):
    """Run the CLI in-process, returning (exit code, stdout)."""
    monkeypatch.setattr("qingnote.main.configure_logging", lambda **kwargs: kwargs["log_dir"])

    def run(*argv):
        with pytest.raises(SystemExit) as exc_info:
            main(list(argv))
        return exc_info.value.code, capsys.readouterr().out

    yield run
    reset_database()


@pytest.fixture
def logged_in(cli):
    assert cli("register", "alice", "pw123456", "alice@x.com")[0] == 0
    assert cli("login", "alice", "pw123456")[0] == 0
    return cli


def test_parse_args_defaults():
    args = parse_args(["list-notes"])
    assert args.command == "list-notes"
    assert args.log_level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def test_register_and_duplicate(cli):
    code, out = cli("register", "alice", "pw123456", "alice@x.com")
    assert code == 0
    assert "Registered alice" in out
    code, out = cli("register", "alice", "pw123456", "other@x.com")
    assert code == 1
    assert "already taken" in out


def test_invalid_email_is_reported(cli, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["register", "alice", "pw123456", "nope"])
    assert exc_info.value.code == 1
    assert "Error:" in capsys.readouterr().err


def test_commands_require_login(cli):
    code, _ = cli("whoami")
    assert code == 1
    with pytest.raises(SystemExit) as exc_info:
        main(["list-notes"])
    assert "Not logged in" in str(exc_info.value.code)


def test_note_lifecycle(logged_in, tmp_path):
    cli = logged_in
    attachment = tmp_path / "receipt.pdf"
    attachment.write_bytes(b"%PDF-1.4")

    code, out = cli("add-note", "Groceries", "buy milk", "--attach", str(attachment))
    assert code == 0
    assert "with 1 attachments" in out
    note_id = out.split()[2]

    code, out = cli("list-notes")
    assert "Groceries" in out

    code, out = cli("search", "milk")
    assert "Groceries" in out

    code, out = cli("show-note", note_id)
    assert "buy milk" in out
    assert "[File] receipt.pdf" in out

    code, out = cli("delete-note", note_id)
    assert code == 0
    code, out = cli("list-notes")
    assert "No notes." in out


def test_passwd_logs_out(logged_in):
    cli = logged_in
    code, out = cli("passwd", "pw123456", "newpass99")
    assert code == 0
    assert "Please log in again" in out
    assert cli("whoami")[0] == 1
    assert cli("login", "alice", "newpass99")[0] == 0


def test_missing_note_is_an_error(logged_in, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["show-note", "999"])
    assert exc_info.value.code == 1
    assert "NOTE_NOT_FOUND" in capsys.readouterr().err


def test_blank_title_rejected(logged_in, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["add-note", "   "])
    assert exc_info.value.code == 1
    assert "NOTE_TITLE_REQUIRED" in capsys.readouterr().err


def test_attach_unreadable_file(logged_in, tmp_path, capsys):
    cli = logged_in
    _, out = cli("add-note", "T")
    note_id = out.split()[2]
    with pytest.raises(SystemExit) as exc_info:
        main(["attach", note_id, str(tmp_path / "missing.png")])
    assert exc_info.value.code == 1
    assert "ATTACHMENT_SOURCE_MISSING" in capsys.readouterr().err


def test_base_dir_must_be_directory(tmp_path, capsys):
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("x")
    with pytest.raises(SystemExit) as exc_info:
        main(["--base-dir", str(not_a_dir), "whoami"])
    assert exc_info.value.code == 2
    assert "CONFIG_INVALID" in capsys.readouterr().err
