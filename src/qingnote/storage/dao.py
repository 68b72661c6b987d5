"""Table access objects for users, notes and attachments.

Each DAO converts between the SQLAlchemy rows and the pydantic models and
exposes both one-shot reads and ``LiveQuery`` variants of the same reads.
"""
import logging
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import selectinload

from qingnote.models.db_models import (DBAttachment, DBNote, DBUser,
                                       to_db_time)
from qingnote.models.schema import (Attachment, AttachmentType, Note,
                                    NoteWithAttachments, User)
from qingnote.storage.base import Dao
from qingnote.storage.live_query import LiveQuery
from qingnote.storage.paging import Pager, PagingConfig, PagingSource
from qingnote.utils import escape_like_pattern

if TYPE_CHECKING:
    from qingnote.storage.database import Database

logger = logging.getLogger(__name__)

USERS = DBUser.__tablename__
NOTES = DBNote.__tablename__
ATTACHMENTS = DBAttachment.__tablename__


class UserDao(Dao[User]):
    """Access to the users table."""

    def __init__(self, database: "Database"):
        self.session_factory = database.session_factory
        self.tracker = database.tracker

    @staticmethod
    def _db_to_model(db_user: DBUser) -> User:
        return User(
            id=db_user.id,
            username=db_user.username or "",
            email=db_user.email or "",
            password=db_user.password,
            full_name=db_user.full_name,
            avatar_url=db_user.avatar_url,
        )

    @staticmethod
    def _model_to_db(user: User) -> DBUser:
        return DBUser(
            id=user.id,
            username=user.username,
            email=user.email,
            password=user.password,
            full_name=user.full_name,
            avatar_url=user.avatar_url,
        )

    def insert(self, user: User) -> int:
        with self.session_factory() as session:
            db_user = session.merge(self._model_to_db(user))
            session.commit()
            return db_user.id

    def update(self, user: User) -> bool:
        if user.id is None:
            return False
        with self.session_factory() as session:
            db_user = session.get(DBUser, user.id)
            if db_user is None:
                return False
            db_user.username = user.username
            db_user.email = user.email
            db_user.password = user.password
            db_user.full_name = user.full_name
            db_user.avatar_url = user.avatar_url
            session.commit()
            return True

    def delete(self, user: User) -> bool:
        if user.id is None:
            return False
        with self.session_factory() as session:
            db_user = session.get(DBUser, user.id)
            if db_user is None:
                return False
            session.delete(db_user)
            session.commit()
            return True

    def get_by_id(self, id: int) -> Optional[User]:
        with self.session_factory() as session:
            db_user = session.get(DBUser, id)
            return self._db_to_model(db_user) if db_user else None

    def _first_where(self, condition) -> Optional[User]:
        with self.session_factory() as session:
            db_user = session.scalars(
                select(DBUser).where(condition).order_by(DBUser.id).limit(1)
            ).first()
            return self._db_to_model(db_user) if db_user else None

    def get_by_username(self, username: str) -> Optional[User]:
        return self._first_where(DBUser.username == username)

    def get_by_email(self, email: str) -> Optional[User]:
        return self._first_where(DBUser.email == email)

    def count(self) -> int:
        with self.session_factory() as session:
            return session.scalar(select(func.count()).select_from(DBUser)) or 0

    # Live variants

    def observe_by_id(self, id: int) -> LiveQuery[Optional[User]]:
        return LiveQuery(self.tracker, [USERS], lambda: self.get_by_id(id),
                         name=f"user.by_id({id})")

    def observe_by_username(self, username: str) -> LiveQuery[Optional[User]]:
        return LiveQuery(self.tracker, [USERS], lambda: self.get_by_username(username),
                         name=f"user.by_username({username})")

    def observe_by_email(self, email: str) -> LiveQuery[Optional[User]]:
        return LiveQuery(self.tracker, [USERS], lambda: self.get_by_email(email),
                         name=f"user.by_email({email})")


class NoteDao(Dao[Note]):
    """Access to the notes table.

    Listings are ordered newest-modified first, ties broken by id.
    """

    def __init__(self, database: "Database"):
        self.session_factory = database.session_factory
        self.tracker = database.tracker

    @staticmethod
    def _db_to_model(db_note: DBNote) -> Note:
        return Note(
            id=db_note.id,
            title=db_note.title,
            content=db_note.content or "",
            created_at=db_note.created_at,
            updated_at=db_note.updated_at,
            user_id=db_note.user_id,
            image_path=db_note.image_path,
        )

    @staticmethod
    def _model_to_db(note: Note) -> DBNote:
        return DBNote(
            id=note.id,
            title=note.title,
            content=note.content,
            created_at=to_db_time(note.created_at),
            updated_at=to_db_time(note.updated_at),
            user_id=note.user_id,
            image_path=note.image_path,
        )

    @staticmethod
    def _ordered(stmt):
        return stmt.order_by(DBNote.updated_at.desc(), DBNote.id.desc())

    @staticmethod
    def _search_condition(user_id: int, query: str):
        pattern = f"%{escape_like_pattern(query)}%"
        return (DBNote.user_id == user_id) & or_(
            DBNote.title.like(pattern, escape="\\"),
            DBNote.content.like(pattern, escape="\\"),
        )

    def insert(self, note: Note) -> int:
        with self.session_factory() as session:
            db_note = session.merge(self._model_to_db(note))
            session.commit()
            return db_note.id

    def update(self, note: Note) -> bool:
        if note.id is None:
            return False
        with self.session_factory() as session:
            db_note = session.get(DBNote, note.id)
            if db_note is None:
                return False
            db_note.title = note.title
            db_note.content = note.content
            db_note.created_at = to_db_time(note.created_at)
            db_note.updated_at = to_db_time(note.updated_at)
            db_note.user_id = note.user_id
            db_note.image_path = note.image_path
            session.commit()
            return True

    def delete(self, note: Note) -> bool:
        if note.id is None:
            return False
        with self.session_factory() as session:
            db_note = session.get(DBNote, note.id)
            if db_note is None:
                return False
            session.delete(db_note)
            session.commit()
            return True

    def delete_all_by_user(self, user_id: int) -> int:
        with self.session_factory() as session:
            result = session.execute(
                delete(DBNote)
                .where(DBNote.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount or 0

    def get_by_id(self, id: int) -> Optional[Note]:
        with self.session_factory() as session:
            db_note = session.get(DBNote, id)
            return self._db_to_model(db_note) if db_note else None

    def get_all_by_user(self, user_id: int) -> List[Note]:
        with self.session_factory() as session:
            rows = session.scalars(
                self._ordered(select(DBNote).where(DBNote.user_id == user_id))
            ).all()
            return [self._db_to_model(row) for row in rows]

    def search(self, user_id: int, query: str) -> List[Note]:
        """Notes of ``user_id`` whose title or content contains ``query``.

        Matching follows SQLite's LIKE, which ignores case for ASCII letters.
        """
        with self.session_factory() as session:
            rows = session.scalars(
                self._ordered(select(DBNote).where(self._search_condition(user_id, query)))
            ).all()
            return [self._db_to_model(row) for row in rows]

    def _page(self, condition, offset: int, limit: int) -> List[Note]:
        with self.session_factory() as session:
            rows = session.scalars(
                self._ordered(select(DBNote).where(condition)).offset(offset).limit(limit)
            ).all()
            return [self._db_to_model(row) for row in rows]

    def _count(self, condition) -> int:
        with self.session_factory() as session:
            return session.scalar(
                select(func.count()).select_from(DBNote).where(condition)
            ) or 0

    def paging_source_by_user(self, user_id: int) -> PagingSource[Note]:
        condition = DBNote.user_id == user_id
        return PagingSource(
            lambda offset, limit: self._page(condition, offset, limit),
            lambda: self._count(condition),
        )

    def paging_source_search(self, user_id: int, query: str) -> PagingSource[Note]:
        condition = self._search_condition(user_id, query)
        return PagingSource(
            lambda offset, limit: self._page(condition, offset, limit),
            lambda: self._count(condition),
        )

    def get_with_attachments(self, note_id: int) -> Optional[NoteWithAttachments]:
        with self.session_factory() as session:
            db_note = session.scalars(
                select(DBNote)
                .options(selectinload(DBNote.attachments))
                .where(DBNote.id == note_id)
            ).first()
            if db_note is None:
                return None
            return NoteWithAttachments(
                note=self._db_to_model(db_note),
                attachments=[AttachmentDao._db_to_model(a) for a in db_note.attachments],
            )

    # Live variants

    def observe_by_id(self, id: int) -> LiveQuery[Optional[Note]]:
        return LiveQuery(self.tracker, [NOTES], lambda: self.get_by_id(id),
                         name=f"note.by_id({id})")

    def observe_all_by_user(self, user_id: int) -> LiveQuery[List[Note]]:
        return LiveQuery(self.tracker, [NOTES], lambda: self.get_all_by_user(user_id),
                         name=f"note.by_user({user_id})")

    def observe_search(self, user_id: int, query: str) -> LiveQuery[List[Note]]:
        return LiveQuery(self.tracker, [NOTES], lambda: self.search(user_id, query),
                         name=f"note.search({user_id}, {query!r})")

    def observe_with_attachments(self, note_id: int) -> LiveQuery[Optional[NoteWithAttachments]]:
        return LiveQuery(
            self.tracker, [NOTES, ATTACHMENTS],
            lambda: self.get_with_attachments(note_id),
            name=f"note.with_attachments({note_id})",
        )

    def paged_by_user(self, user_id: int, paging: Optional[PagingConfig] = None):
        pager = Pager(lambda: self.paging_source_by_user(user_id), paging)
        return pager.live(self.tracker, [NOTES], name=f"note.paged_by_user({user_id})")

    def paged_search(self, user_id: int, query: str, paging: Optional[PagingConfig] = None):
        pager = Pager(lambda: self.paging_source_search(user_id, query), paging)
        return pager.live(self.tracker, [NOTES],
                          name=f"note.paged_search({user_id}, {query!r})")


class AttachmentDao(Dao[Attachment]):
    """Access to the attachments table; rows are ordered by id."""

    def __init__(self, database: "Database"):
        self.session_factory = database.session_factory
        self.tracker = database.tracker

    @staticmethod
    def _db_to_model(db_attachment: DBAttachment) -> Attachment:
        return Attachment(
            id=db_attachment.id,
            note_id=db_attachment.note_id,
            name=db_attachment.name,
            path=db_attachment.path,
            mime_type=db_attachment.mime_type or "",
            size=db_attachment.size or 0,
            type=AttachmentType(db_attachment.type),
        )

    @staticmethod
    def _model_to_db(attachment: Attachment) -> DBAttachment:
        return DBAttachment(
            id=attachment.id,
            note_id=attachment.note_id,
            name=attachment.name,
            path=attachment.path,
            mime_type=attachment.mime_type,
            size=attachment.size,
            type=int(attachment.type),
        )

    def insert(self, attachment: Attachment) -> int:
        if attachment.note_id is None:
            raise ValueError("Attachment must belong to a note before it is stored")
        with self.session_factory() as session:
            db_attachment = session.merge(self._model_to_db(attachment))
            session.commit()
            return db_attachment.id

    def update(self, attachment: Attachment) -> bool:
        if attachment.id is None:
            return False
        with self.session_factory() as session:
            db_attachment = session.get(DBAttachment, attachment.id)
            if db_attachment is None:
                return False
            db_attachment.note_id = attachment.note_id
            db_attachment.name = attachment.name
            db_attachment.path = attachment.path
            db_attachment.mime_type = attachment.mime_type
            db_attachment.size = attachment.size
            db_attachment.type = int(attachment.type)
            session.commit()
            return True

    def delete(self, attachment: Attachment) -> bool:
        if attachment.id is None:
            return False
        with self.session_factory() as session:
            db_attachment = session.get(DBAttachment, attachment.id)
            if db_attachment is None:
                return False
            session.delete(db_attachment)
            session.commit()
            return True

    def delete_by_note_id(self, note_id: int) -> int:
        with self.session_factory() as session:
            result = session.execute(
                delete(DBAttachment)
                .where(DBAttachment.note_id == note_id)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount or 0

    def get_by_id(self, id: int) -> Optional[Attachment]:
        with self.session_factory() as session:
            db_attachment = session.get(DBAttachment, id)
            return self._db_to_model(db_attachment) if db_attachment else None

    def get_by_note_id(self, note_id: int) -> List[Attachment]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(DBAttachment)
                .where(DBAttachment.note_id == note_id)
                .order_by(DBAttachment.id)
            ).all()
            return [self._db_to_model(row) for row in rows]

    def observe_by_id(self, id: int) -> LiveQuery[Optional[Attachment]]:
        return LiveQuery(self.tracker, [ATTACHMENTS], lambda: self.get_by_id(id),
                         name=f"attachment.by_id({id})")

    def observe_by_note_id(self, note_id: int) -> LiveQuery[List[Attachment]]:
        return LiveQuery(self.tracker, [ATTACHMENTS], lambda: self.get_by_note_id(note_id),
                         name=f"attachment.by_note({note_id})")
