"""Data access layer for sections and notes."""

import datetime
import logging
import threading
from typing import Any, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, literal_column, select
from sqlalchemy.exc import IntegrityError

from typewriter.exceptions import (
    DuplicateKeyError,
    EmptyPatchError,
    ForeignKeyError,
    NotFoundError,
    NotInitializedError,
    ValidationError,
)
from typewriter.models.db_models import DBNote, DBSection
from typewriter.models.schema import (
    Note,
    NotePatch,
    NoteView,
    Section,
    SectionPatch,
    SectionSummary,
    SectionTree,
    ensure_timezone_aware,
    utc_now,
)
from typewriter.storage.engine import StorageEngine

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_ONE_MICROSECOND = datetime.timedelta(microseconds=1)

_LIST_SECTIONS_SQL = """
    SELECT s.id, s.name, s.is_open, s.created_at, s.updated_at,
           COUNT(n.id) AS notes_count
    FROM sections s
    LEFT JOIN notes n ON s.id = n.section_id
    GROUP BY s.id
    ORDER BY s.created_at, s.rowid
"""


def _parse_timestamp(value: Any) -> datetime.datetime:
    """Parse a timestamp column value into an aware UTC datetime.

    Raw text queries hand back SQLite's stored string; ORM queries hand
    back naive datetimes. Both are UTC.
    """
    if isinstance(value, str):
        value = datetime.datetime.fromisoformat(value)
    return ensure_timezone_aware(value)


def _first_error(error: PydanticValidationError) -> str:
    err = error.errors()[0]
    location = ".".join(str(part) for part in err.get("loc", ()))
    message = err.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def _build(model_cls: Type[M], **fields: Any) -> M:
    """Construct a model, turning pydantic errors into ValidationError."""
    try:
        return model_cls(**fields)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model_cls.__name__}: {_first_error(e)}")


def _coerce_patch(
    patch: Union[M, Mapping[str, Any], None], patch_cls: Type[M]
) -> M:
    """Accept a typed patch or a plain mapping of field values."""
    if isinstance(patch, patch_cls):
        return patch
    if patch is None:
        return patch_cls()
    if not isinstance(patch, Mapping):
        raise ValidationError(
            f"{patch_cls.__name__} must be a mapping of field values",
            value=patch,
        )
    try:
        return patch_cls.model_validate(dict(patch))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {patch_cls.__name__}: {_first_error(e)}")


class NoteStore:
    """Typed section and note operations over a StorageEngine.

    Translates between database rows and the application models:
    ``is_open`` comes back as a bool, timestamps as aware datetimes and
    the aggregate view nests notes under their section. Every operation
    raises NotInitializedError while the engine is closed.

    Timestamps issued by one store are strictly increasing, so recency
    ordering never ties even when the system clock is coarse.
    """

    def __init__(self, engine: StorageEngine):
        self.engine = engine
        self._clock_lock = threading.Lock()
        self._last_stamp: Optional[datetime.datetime] = None

    def _check(self, operation: str) -> None:
        if not self.engine.is_initialized:
            raise NotInitializedError(operation)

    def _next_timestamp(
        self, not_before: Optional[datetime.datetime] = None
    ) -> datetime.datetime:
        """Return a naive UTC timestamp later than every one issued so far.

        Args:
            not_before: A previously stored value the result must exceed.
        """
        with self._clock_lock:
            stamp = utc_now().replace(tzinfo=None)
            floor = self._last_stamp
            if not_before is not None and (floor is None or not_before > floor):
                floor = not_before
            if floor is not None and stamp <= floor:
                stamp = floor + _ONE_MICROSECOND
            self._last_stamp = stamp
            return stamp

    # ========== Sections ==========

    def list_sections(self) -> List[SectionSummary]:
        """List sections in creation order, each with its note count."""
        self._check("list_sections")
        rows = self.engine.query(_LIST_SECTIONS_SQL)
        return [
            SectionSummary(
                id=row.id,
                name=row.name,
                is_open=bool(row.is_open),
                created_at=_parse_timestamp(row.created_at),
                updated_at=_parse_timestamp(row.updated_at),
                note_count=row.notes_count,
            )
            for row in rows
        ]

    def get_section(self, id: str) -> Section:
        """Get a section by ID.

        Raises:
            NotFoundError: If no section has this ID.
        """
        self._check("get_section")
        with self.engine.session() as session:
            db_section = session.get(DBSection, id)
            if db_section is None:
                raise NotFoundError("section", id)
            return self._db_section_to_model(db_section)

    def create_section(self, id: str, name: str) -> Section:
        """Create a new, expanded section.

        Raises:
            DuplicateKeyError: If a section with this ID already exists.
            ValidationError: If the ID or name is blank.
        """
        self._check("create_section")
        stamp = self._next_timestamp()
        section = _build(
            Section,
            id=id,
            name=name,
            is_open=True,
            created_at=ensure_timezone_aware(stamp),
            updated_at=ensure_timezone_aware(stamp),
        )
        with self.engine.session() as session:
            if session.get(DBSection, id) is not None:
                raise DuplicateKeyError("section", id)
            session.add(
                DBSection(
                    id=section.id,
                    name=section.name,
                    is_open=True,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            self._commit(session, "section", id)

        logger.info(f"Created section: {id}")
        return section

    def update_section(
        self, id: str, patch: Union[SectionPatch, Mapping[str, Any]]
    ) -> Section:
        """Apply the supplied fields of a patch and refresh updated_at.

        Raises:
            EmptyPatchError: If the patch sets no fields.
            NotFoundError: If no section has this ID.
            ValidationError: If a field value is invalid.
        """
        self._check("update_section")
        patch = _coerce_patch(patch, SectionPatch)
        if patch.is_empty():
            raise EmptyPatchError("section", id)

        with self.engine.session() as session:
            db_section = session.get(DBSection, id)
            if db_section is None:
                raise NotFoundError("section", id)

            if patch.name is not None:
                db_section.name = patch.name
            if patch.is_open is not None:
                db_section.is_open = patch.is_open
            db_section.updated_at = self._next_timestamp(db_section.updated_at)

            session.commit()
            logger.info(f"Updated section: {id}")
            return self._db_section_to_model(db_section)

    def delete_section(self, id: str) -> bool:
        """Delete a section and, by cascade, all of its notes.

        Deleting a missing section is not an error.

        Returns:
            True if a section was removed.
        """
        self._check("delete_section")
        with self.engine.session() as session:
            result = session.execute(delete(DBSection).where(DBSection.id == id))
            session.commit()

        removed = result.rowcount > 0
        if removed:
            logger.info(f"Deleted section: {id}")
        else:
            logger.debug(f"Delete of missing section ignored: {id}")
        return removed

    # ========== Notes ==========

    def list_notes_by_section(self, section_id: str) -> List[Note]:
        """List a section's notes, most recently edited first.

        An unknown section has no notes, so the result is empty.
        """
        self._check("list_notes_by_section")
        with self.engine.session() as session:
            result = session.execute(
                select(DBNote)
                .where(DBNote.section_id == section_id)
                .order_by(
                    DBNote.last_edited.desc(),
                    literal_column("notes.rowid").desc(),
                )
            )
            return [self._db_note_to_model(db) for db in result.scalars().all()]

    def get_note(self, id: str) -> Note:
        """Get a note by ID.

        Raises:
            NotFoundError: If no note has this ID.
        """
        self._check("get_note")
        with self.engine.session() as session:
            db_note = session.get(DBNote, id)
            if db_note is None:
                raise NotFoundError("note", id)
            return self._db_note_to_model(db_note)

    def create_note(
        self, id: str, section_id: str, title: str, content: str = ""
    ) -> Note:
        """Create a note inside an existing section.

        Raises:
            DuplicateKeyError: If a note with this ID already exists.
            ForeignKeyError: If the section does not exist.
            ValidationError: If the ID or title is blank.
        """
        self._check("create_note")
        stamp = self._next_timestamp()
        note = _build(
            Note,
            id=id,
            section_id=section_id,
            title=title,
            content=content if content is not None else "",
            last_edited=ensure_timezone_aware(stamp),
            created_at=ensure_timezone_aware(stamp),
        )
        with self.engine.session() as session:
            if session.get(DBNote, id) is not None:
                raise DuplicateKeyError("note", id)
            if session.get(DBSection, section_id) is None:
                raise ForeignKeyError(section_id, note_id=id)
            session.add(
                DBNote(
                    id=note.id,
                    section_id=note.section_id,
                    title=note.title,
                    content=note.content,
                    last_edited=stamp,
                    created_at=stamp,
                )
            )
            self._commit(session, "note", id, section_id=section_id)

        logger.info(f"Created note: {id} (section: {section_id})")
        return note

    def update_note(self, id: str, patch: Union[NotePatch, Mapping[str, Any]]) -> Note:
        """Apply the supplied fields of a patch and refresh last_edited.

        Raises:
            EmptyPatchError: If the patch sets no fields.
            NotFoundError: If no note has this ID.
            ValidationError: If a field value is invalid.
        """
        self._check("update_note")
        patch = _coerce_patch(patch, NotePatch)
        if patch.is_empty():
            raise EmptyPatchError("note", id)

        with self.engine.session() as session:
            db_note = session.get(DBNote, id)
            if db_note is None:
                raise NotFoundError("note", id)

            if patch.title is not None:
                db_note.title = patch.title
            if patch.content is not None:
                db_note.content = patch.content
            db_note.last_edited = self._next_timestamp(db_note.last_edited)

            session.commit()
            logger.debug(f"Updated note: {id}")
            return self._db_note_to_model(db_note)

    def delete_note(self, id: str) -> bool:
        """Delete a note. Deleting a missing note is not an error.

        Returns:
            True if a note was removed.
        """
        self._check("delete_note")
        with self.engine.session() as session:
            result = session.execute(delete(DBNote).where(DBNote.id == id))
            session.commit()

        removed = result.rowcount > 0
        if removed:
            logger.info(f"Deleted note: {id}")
        return removed

    # ========== Aggregate ==========

    def get_all_data(self) -> List[SectionTree]:
        """Get every section with its notes nested, as the UI consumes it."""
        self._check("get_all_data")
        return [
            SectionTree(
                id=section.id,
                name=section.name,
                is_open=bool(section.is_open),
                notes=[
                    NoteView.from_note(note)
                    for note in self.list_notes_by_section(section.id)
                ],
            )
            for section in self.list_sections()
        ]

    # ========== Helpers ==========

    @staticmethod
    def _commit(session, entity: str, entity_id: str, section_id: Optional[str] = None) -> None:
        """Commit, mapping constraint violations to domain errors."""
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            message = str(e.orig).upper()
            if "FOREIGN KEY" in message and section_id is not None:
                raise ForeignKeyError(section_id, note_id=entity_id)
            if "UNIQUE" in message or "PRIMARY KEY" in message:
                raise DuplicateKeyError(entity, entity_id)
            raise

    @staticmethod
    def _db_section_to_model(db_section: DBSection) -> Section:
        return Section(
            id=db_section.id,
            name=db_section.name,
            is_open=bool(db_section.is_open),
            created_at=_parse_timestamp(db_section.created_at),
            updated_at=_parse_timestamp(db_section.updated_at),
        )

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        return Note(
            id=db_note.id,
            section_id=db_note.section_id,
            title=db_note.title,
            content=db_note.content or "",
            last_edited=_parse_timestamp(db_note.last_edited),
            created_at=_parse_timestamp(db_note.created_at),
        )
