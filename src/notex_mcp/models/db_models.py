"""SQLAlchemy database models for the NoteX MCP server."""
import datetime
from typing import Optional

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, Integer,
                        String, Text, UniqueConstraint, create_engine, event)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from notex_mcp.config import config
from notex_mcp.models.schema import NoteColor

# Create base class for SQLAlchemy models
Base = declarative_base()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBFolder(Base):
    """Database model for a folder."""
    __tablename__ = "folders"
    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    parent_id = Column(
        String(36), ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True
    )
    color = Column(Integer, default=0, nullable=False)
    icon = Column(String(255), nullable=True)
    position = Column(Integer, default=0, nullable=False, index=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    modified_at = Column(DateTime, default=_utcnow, nullable=False)
    is_expanded = Column(Boolean, default=True, nullable=False)

    # Relationships
    children = relationship(
        "DBFolder",
        back_populates="parent",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    parent = relationship("DBFolder", remote_side=[id], back_populates="children")

    def __repr__(self) -> str:
        """Return string representation of folder."""
        return f"<Folder(id='{self.id}', name='{self.name}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(String(36), primary_key=True)
    title = Column(String(500), nullable=False, default="", index=True)
    content = Column(Text, nullable=False, default="")
    plain_text_content = Column(Text, nullable=False, default="")
    folder_id = Column(
        String(36), ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    color = Column(String(20), default=NoteColor.DEFAULT.value, nullable=False)
    is_pinned = Column(Boolean, default=False, nullable=False, index=True)
    is_archived = Column(Boolean, default=False, nullable=False, index=True)
    is_trashed = Column(Boolean, default=False, nullable=False, index=True)
    is_checklist = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False, index=True)
    modified_at = Column(DateTime, default=_utcnow, nullable=False, index=True)
    trashed_at = Column(DateTime, nullable=True)
    word_count = Column(Integer, default=0, nullable=False)
    character_count = Column(Integer, default=0, nullable=False)

    # Relationships
    checklist_items = relationship(
        "DBChecklistItem",
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    outgoing_links = relationship(
        "DBNoteLink",
        foreign_keys="DBNoteLink.source_note_id",
        back_populates="source",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    incoming_links = relationship(
        "DBNoteLink",
        foreign_keys="DBNoteLink.target_note_id",
        back_populates="target",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', title='{self.title}')>"


class DBChecklistItem(Base):
    """Database model for a checklist row."""
    __tablename__ = "checklist_items"
    id = Column(String(36), primary_key=True)
    note_id = Column(
        String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    text = Column(Text, nullable=False, default="")
    is_checked = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, default=0, nullable=False, index=True)
    indentation = Column(Integer, default=0, nullable=False)

    note = relationship("DBNote", back_populates="checklist_items")

    def __repr__(self) -> str:
        return f"<ChecklistItem(id='{self.id}', note='{self.note_id}')>"


class DBNoteLink(Base):
    """Database model for a wiki-link between notes."""
    __tablename__ = "note_links"
    id = Column(String(36), primary_key=True)
    source_note_id = Column(
        String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_note_id = Column(
        String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    link_text = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    # Relationships
    source = relationship(
        "DBNote", foreign_keys=[source_note_id], back_populates="outgoing_links"
    )
    target = relationship(
        "DBNote", foreign_keys=[target_note_id], back_populates="incoming_links"
    )

    # A note links to another note at most once
    __table_args__ = (
        UniqueConstraint("source_note_id", "target_note_id", name="unique_note_link"),
        Index("ix_note_links_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """Return string representation of link."""
        return (
            f"<NoteLink(id='{self.id}', source='{self.source_note_id}', "
            f"target='{self.target_note_id}')>"
        )


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


def init_db(in_memory: Optional[bool] = None):
    """Initialize the database with hardened configuration.

    Applies SQLite settings on every connection:
    - foreign_keys=ON so ON DELETE CASCADE / SET NULL are enforced
    - WAL journal so readers see the last committed state during a write
    - NORMAL synchronous mode (good balance of safety vs speed)
    - a ``casefold`` SQL function; SQLite's own lower() only folds ASCII

    In-memory databases use a single shared connection (StaticPool),
    otherwise each pooled connection would see its own empty database.

    Args:
        in_memory: Override ``config.in_memory_db``.

    Returns:
        The configured SQLAlchemy engine with all tables created.
    """
    if in_memory is None:
        in_memory = config.in_memory_db

    if in_memory:
        engine = create_engine(
            "sqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            config.get_db_url(),
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()
        dbapi_connection.create_function("casefold", 1, _casefold, deterministic=True)

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
