"""SQLAlchemy database models for the TypeWriter notes core."""
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, String,
                        Text, create_engine, event, func, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBSection(Base):
    """Database model for a section."""
    __tablename__ = "sections"
    id = Column(String(255), primary_key=True)
    name = Column(Text, nullable=False)
    is_open = Column(Boolean, default=True, server_default=text("1"), nullable=False)
    created_at = Column(DateTime, server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime, server_default=func.current_timestamp(), nullable=False)

    # Deletes are issued as bulk statements, so the database's ON DELETE
    # CASCADE removes the notes rather than the ORM.
    notes = relationship(
        "DBNote",
        back_populates="section",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """Return string representation of section."""
        return f"<Section(id='{self.id}', name='{self.name}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(String(255), primary_key=True)
    section_id = Column(
        String(255),
        ForeignKey("sections.id", ondelete="CASCADE"),
        nullable=False,
    )
    title = Column(Text, nullable=False)
    content = Column(Text, default="", server_default="", nullable=False)
    last_edited = Column(DateTime, server_default=func.current_timestamp(), nullable=False)
    created_at = Column(DateTime, server_default=func.current_timestamp(), nullable=False)

    section = relationship("DBSection", back_populates="notes")

    __table_args__ = (
        Index("idx_notes_section_id", "section_id"),
        Index("idx_notes_last_edited", "last_edited"),
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', title='{self.title}')>"


def quote_pragma_literal(value: str) -> str:
    """Quote a value as an SQL string literal for a PRAGMA statement.

    PRAGMA arguments cannot be bound as parameters, so the value is
    wrapped in single quotes with embedded quotes doubled. Values with
    NUL or line breaks are rejected outright.
    """
    if "\x00" in value or "\n" in value or "\r" in value:
        raise ValueError("PRAGMA value contains control characters")
    return "'" + value.replace("'", "''") + "'"


def create_storage_engine(
    database_path: Path,
    cache_size: int = 1000,
    key: Optional[str] = None,
) -> Engine:
    """Create an engine for the notes database with hardened configuration.

    Applies SQLite settings suited to a single-writer desktop workload:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)
    - A bounded page cache
    - Foreign key enforcement, which the section -> note cascade needs

    The optional key is issued first on every connection. Stock SQLite
    ignores it; it only has an effect on builds with encryption support.
    """
    key_literal = quote_pragma_literal(key) if key is not None else None

    # SQLite is single-writer, so a small pool is ideal
    engine = create_engine(
        f"sqlite:///{database_path}",
        poolclass=QueuePool,
        pool_size=2,
        max_overflow=3,
        pool_timeout=30,
        pool_pre_ping=True,
    )

    # Apply PRAGMA settings on every connection
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        if key_literal is not None:
            cursor.execute(f"PRAGMA key = {key_literal}")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute(f"PRAGMA cache_size={int(cache_size)}")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_schema(engine: Engine) -> None:
    """Create tables and indexes if they are missing (idempotent)."""
    Base.metadata.create_all(engine)


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine, expire_on_commit=False)
