#!/usr/bin/env python
"""Command-line front end for the QingNote data layer."""
import argparse
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from qingnote import __version__
from qingnote.config import config
from qingnote.exceptions import (AttachmentError, ConfigurationError, ErrorCode,
                                 NoteNotFoundError, NoteValidationError,
                                 PasswordChangeResult, QingNoteError,
                                 RegistrationFailure)
from qingnote.models.schema import Note
from qingnote.observability import configure_logging
from qingnote.services.auth_service import AuthService
from qingnote.storage.attachment_storage import AttachmentStorage
from qingnote.storage.database import get_database, reset_database
from qingnote.storage.note_repository import NoteRepository
from qingnote.storage.session_store import SessionStore
from qingnote.storage.user_repository import UserRepository

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(prog="qingnote", description="QingNote notes")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--base-dir",
        help="Directory holding the database, attachments and session",
        type=str,
        default=os.environ.get("QINGNOTE_BASE_DIR"),
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("QINGNOTE_DATABASE_PATH"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("QINGNOTE_LOG_LEVEL", "WARNING"),
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the database and storage directories")

    p = sub.add_parser("register", help="Create an account")
    p.add_argument("username")
    p.add_argument("password")
    p.add_argument("email")

    p = sub.add_parser("login", help="Log in and remember the session")
    p.add_argument("username")
    p.add_argument("password")

    sub.add_parser("logout", help="Forget the current session")
    sub.add_parser("whoami", help="Show the logged-in user")

    p = sub.add_parser("add-note", help="Create a note")
    p.add_argument("title")
    p.add_argument("content", nargs="?", default="")
    p.add_argument("--attach", action="append", default=[], help="File to attach")

    sub.add_parser("list-notes", help="List your notes, newest first")

    p = sub.add_parser("search", help="Find notes by title or content")
    p.add_argument("query")

    p = sub.add_parser("attach", help="Attach a file to an existing note")
    p.add_argument("note_id", type=int)
    p.add_argument("path")

    p = sub.add_parser("show-note", help="Show a note and its attachments")
    p.add_argument("note_id", type=int)

    p = sub.add_parser("delete-note", help="Delete a note and its attachment files")
    p.add_argument("note_id", type=int)

    p = sub.add_parser("passwd", help="Change your password")
    p.add_argument("current_password")
    p.add_argument("new_password")

    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.base_dir:
        if Path(args.base_dir).is_file():
            raise ConfigurationError(
                f"Base directory is a file: {args.base_dir}", config_key="base_dir"
            )
        config.base_dir = Path(args.base_dir)
    if args.database_path:
        config.database_path = Path(args.database_path)


class App:
    """Wires repositories, storage, session and auth for one CLI invocation."""

    def __init__(self):
        self.database = get_database()
        self.storage = AttachmentStorage()
        self.session = SessionStore()
        self.users = UserRepository(self.database, self.storage)
        self.notes = NoteRepository(self.database, self.storage)
        self.auth = AuthService(self.users, self.session)

    def close(self):
        self.notes.close()
        self.users.close()
        reset_database()

    def require_user_id(self) -> int:
        user = self.session.get_current_user()
        if user is None or user.id is None:
            raise SystemExit("Not logged in. Run: qingnote login <username> <password>")
        return user.id

    def owned_note(self, note_id: int):
        user_id = self.require_user_id()
        result = self.notes.get_note_with_attachments(note_id).get()
        if result is None or result.note.user_id != user_id:
            raise NoteNotFoundError(note_id)
        return result

    def new_note(self, title: str, content: str, user_id: int) -> Note:
        try:
            return Note(title=title, content=content, user_id=user_id)
        except PydanticValidationError as e:
            raise NoteValidationError(
                "Note title is required",
                field="title",
                value=title,
                code=ErrorCode.NOTE_TITLE_REQUIRED,
            ) from e


def _print_notes(notes):
    if not notes:
        print("No notes.")
        return
    for note in notes:
        stamp = note.updated_at.strftime("%Y-%m-%d %H:%M")
        print(f"{note.id:>5}  {stamp}  {note.title}")


def run(args) -> int:
    app = App()
    try:
        command = args.command

        if command == "init":
            print(f"Database ready at {config.get_db_url()}")

        elif command == "register":
            result = app.auth.register(args.username, args.password, args.email)
            if isinstance(result, RegistrationFailure):
                print(result.message)
                return 1
            print(f"Registered {args.username} (id {result})")

        elif command == "login":
            user = app.auth.login(args.username, args.password)
            if user is None:
                print("Invalid username or password")
                return 1
            print(f"Logged in as {user.username}")

        elif command == "logout":
            app.auth.logout()
            print("Logged out")

        elif command == "whoami":
            user = app.auth.current_user()
            if user is None:
                print("Not logged in")
                return 1
            print(f"{user.username} <{user.email}> id={user.id}")

        elif command == "add-note":
            user_id = app.require_user_id()
            staged = [a for a in (app.storage.stage_file(p) for p in args.attach) if a]
            saved = app.notes.save_with_attachments(
                app.new_note(args.title, args.content, user_id), staged
            ).result()
            app.storage.clear_staging()
            print(f"Created note {saved.note.id} with {len(saved.attachments)} attachments")

        elif command == "list-notes":
            user_id = app.require_user_id()
            paged = app.notes.get_all_by_user_paged(user_id).get()
            _print_notes(paged.to_list())

        elif command == "search":
            user_id = app.require_user_id()
            _print_notes(app.notes.search(user_id, args.query).get())

        elif command == "attach":
            result = app.owned_note(args.note_id)
            staged = app.storage.stage_file(args.path)
            if staged is None:
                raise AttachmentError(
                    f"Cannot read {args.path}",
                    path=args.path,
                    note_id=args.note_id,
                    code=ErrorCode.ATTACHMENT_SOURCE_MISSING,
                )
            saved = app.notes.save_with_attachments(result.note, [staged]).result()
            app.storage.clear_staging()
            print(f"Note {args.note_id} now has {len(saved.attachments)} new attachment(s)")

        elif command == "show-note":
            result = app.owned_note(args.note_id)
            print(result.note.title)
            print(result.note.content)
            for attachment in result.attachments:
                marker = "" if attachment.exists() else "  (missing)"
                print(
                    f"  [{attachment.type_description}] {attachment.name} "
                    f"{attachment.formatted_size}{marker}"
                )

        elif command == "delete-note":
            result = app.owned_note(args.note_id)
            app.notes.delete(result.note).result()
            app.storage.delete_note_dir(args.note_id)
            print(f"Deleted note {args.note_id}")

        elif command == "passwd":
            outcome = app.auth.change_password(args.current_password, args.new_password)
            print(outcome.value)
            if outcome is not PasswordChangeResult.CHANGED:
                return 1
            print("Please log in again")

        return 0
    finally:
        app.close()


def main(argv=None):
    """Run the qingnote command line."""
    args = parse_args(argv)
    try:
        update_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    try:
        configure_logging(
            log_dir=config.get_absolute_path(Path("data/logs")),
            level=log_level,
            console=False,
        )
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    try:
        sys.exit(run(args))
    except QingNoteError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
