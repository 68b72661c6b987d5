"""SQLAlchemy database models for the QingNote data layer."""
import datetime
import logging
from datetime import timezone
from typing import Dict, Optional, Set

from sqlalchemy import (Column, DateTime, ForeignKey, Integer, String, Text,
                        create_engine, event, inspect, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from qingnote.config import config
from qingnote.models.schema import AttachmentType

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


def utc_naive_now() -> datetime.datetime:
    """Current UTC time without tzinfo, the form stored in DateTime columns."""
    return datetime.datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_time(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Normalise an aware or naive datetime to naive UTC for storage."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class DBUser(Base):
    """Database model for a user.

    username and email are looked up by index but are deliberately not
    UNIQUE: uniqueness is checked by the registration flow.
    """
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    password = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)
    avatar_url = Column(Text, nullable=True)

    # Relationships (rows are removed by the database's ON DELETE CASCADE)
    notes = relationship("DBNote", back_populates="user", passive_deletes=True)

    def __repr__(self) -> str:
        """Return string representation of user."""
        return f"<User(id={self.id}, username='{self.username}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=utc_naive_now, nullable=False)
    updated_at = Column(DateTime, default=utc_naive_now, nullable=False, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_path = Column(Text, nullable=True)

    # Relationships
    user = relationship("DBUser", back_populates="notes")
    attachments = relationship(
        "DBAttachment",
        back_populates="note",
        order_by="DBAttachment.id",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, title='{self.title}', user_id={self.user_id})>"


class DBAttachment(Base):
    """Database model for a note attachment (metadata only, bytes live on disk)."""
    __tablename__ = "attachments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    note_id = Column(
        Integer,
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    path = Column(Text, nullable=False)
    mime_type = Column(String(255), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    type = Column(Integer, nullable=False, default=AttachmentType.FILE.value)

    note = relationship("DBNote", back_populates="attachments")

    def __repr__(self) -> str:
        """Return string representation of attachment."""
        return (
            f"<Attachment(id={self.id}, note_id={self.note_id}, "
            f"name='{self.name}', type={self.type})>"
        )


def cascade_dependents() -> Dict[str, Set[str]]:
    """Map each table to every table its deletes cascade into (transitively).

    Derived from the ON DELETE CASCADE foreign keys declared above, so a
    delete on ``users`` reports ``notes`` and ``attachments`` as touched.
    """
    direct: Dict[str, Set[str]] = {name: set() for name in Base.metadata.tables}
    for table in Base.metadata.tables.values():
        for fk in table.foreign_keys:
            if (fk.ondelete or "").upper() == "CASCADE":
                direct[fk.column.table.name].add(table.name)

    closure: Dict[str, Set[str]] = {}
    for name in direct:
        seen: Set[str] = set()
        stack = list(direct[name])
        while stack:
            child = stack.pop()
            if child not in seen:
                seen.add(child)
                stack.extend(direct.get(child, ()))
        closure[name] = seen
    return closure


def init_db(db_url: Optional[str] = None, bootstrap_admin: Optional[bool] = None) -> Engine:
    """Initialize the database with hardened configuration.

    Applies SQLite settings for an embedded single-writer store:
    - foreign_keys=ON so declared cascades are enforced
    - WAL (Write-Ahead Logging) mode so readers don't block the writer
    - NORMAL synchronous mode (good balance of safety vs speed)
    - busy timeout so concurrent repositories wait instead of failing

    When the schema is created for the first time a default admin user is
    inserted (see ``bootstrap_admin`` in the config).

    Args:
        db_url: SQLAlchemy URL. Defaults to the configured database path.
        bootstrap_admin: Override for ``config.bootstrap_admin``.

    Returns:
        The configured engine.
    """
    url = db_url or config.get_db_url()
    in_memory = ":memory:" in url or url in ("sqlite://", "sqlite:///")

    if in_memory:
        # One shared connection, otherwise every checkout sees an empty database
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,           # Base pool size (concurrent reads)
            max_overflow=10,       # Allow up to 15 total connections under load
            pool_timeout=30,       # Wait up to 30s for a connection
            pool_pre_ping=True,    # Validate connections before use
            connect_args={"check_same_thread": False},
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    first_run = not inspect(engine).has_table(DBUser.__tablename__)

    Base.metadata.create_all(engine)

    # Run migrations for schema updates
    _migrate_add_image_path_column(engine)

    if bootstrap_admin is None:
        bootstrap_admin = config.bootstrap_admin
    if first_run and bootstrap_admin:
        _insert_default_admin(engine)

    logger.info(f"Database initialized: {url} (first_run={first_run})")
    return engine


def _migrate_add_image_path_column(engine: Engine) -> None:
    """Migration: add the legacy image_path column to older notes tables.

    SQLite doesn't support IF NOT EXISTS for ADD COLUMN, so we check
    the schema first. This is idempotent and safe to run multiple times.
    """
    inspector = inspect(engine)
    columns = [col['name'] for col in inspector.get_columns('notes')]

    if 'image_path' not in columns:
        with engine.connect() as conn:
            conn.execute(text("ALTER TABLE notes ADD COLUMN image_path TEXT"))
            conn.commit()
        logger.info("Migrated notes table: added image_path column")


def _insert_default_admin(engine: Engine) -> None:
    """Insert the configured admin account with a hashed password."""
    from qingnote.passwords import hash_password

    hashed = hash_password(config.admin_password)
    if hashed is None:
        logger.error("Default admin not created: password could not be hashed")
        return

    session_factory = get_session_factory(engine)
    with session_factory() as session:
        session.add(DBUser(
            username=config.admin_username,
            email=config.admin_email,
            password=hashed,
            full_name=config.admin_full_name,
        ))
        session.commit()
    logger.info(f"Created default admin user '{config.admin_username}'")


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = create_engine(config.get_db_url())
    return sessionmaker(bind=engine, expire_on_commit=False)
