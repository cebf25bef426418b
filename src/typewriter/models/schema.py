"""Data models for the TypeWriter notes core."""

import datetime
import threading
import time
import uuid
from datetime import timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Matches the String(255) id columns in db_models
MAX_ID_LENGTH = 255


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite stores DateTime columns without an offset, so every value read
    back from the database passes through here.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def validate_entity_id(value: str, field_name: str = "ID") -> str:
    """Validate an opaque caller-supplied identifier.

    Ids are never interpreted, only compared, so the only rules are that
    they are non-blank and fit the key column.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    if len(value) > MAX_ID_LENGTH:
        raise ValueError(f"{field_name} exceeds {MAX_ID_LENGTH} characters")
    return value


def validate_display_text(value: str, field_name: str) -> str:
    """Validate that a name or title is not blank."""
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value


# Monotonic microsecond clock for ids, shared across threads
_id_lock = threading.Lock()
_last_micros = 0


def generate_id(prefix: str) -> str:
    """Generate a unique, time-ordered id such as ``note-5f3a1c2b9e4d0-a81f3c``.

    The middle part is a per-process strictly increasing microsecond
    counter (hex), so two calls in the same microsecond still differ. The
    random suffix keeps ids from separate processes apart.
    """
    global _last_micros

    with _id_lock:
        micros = time.time_ns() // 1000
        if micros <= _last_micros:
            micros = _last_micros + 1
        _last_micros = micros

    return f"{prefix}-{micros:x}-{uuid.uuid4().hex[:6]}"


class _WireModel(BaseModel):
    """Base for models that cross the RPC boundary.

    Attributes are snake_case in Python and camelCase on the wire
    (``is_open`` <-> ``isOpen``); both spellings are accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    def to_wire(self) -> dict:
        """Dump as a JSON-compatible dict with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


class Section(_WireModel):
    """A named, collapsible group of notes."""

    id: str = Field(..., description="Caller-supplied section ID")
    name: str = Field(..., description="Display name")
    is_open: bool = Field(default=True, description="Expanded in the sidebar")
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return validate_entity_id(v, "Section ID")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_display_text(v, "Section name")


class SectionSummary(Section):
    """A section row annotated with the number of notes it holds."""

    note_count: int = Field(default=0, ge=0)


class Note(_WireModel):
    """A titled document that belongs to exactly one section."""

    id: str = Field(..., description="Caller-supplied note ID")
    section_id: str = Field(..., description="Owning section")
    title: str = Field(..., description="Title of the note")
    content: str = Field(
        default="", description="Opaque editor markup or plain text"
    )
    last_edited: datetime.datetime = Field(default_factory=utc_now)
    created_at: datetime.datetime = Field(default_factory=utc_now)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return validate_entity_id(v, "Note ID")

    @field_validator("section_id")
    @classmethod
    def validate_section_id(cls, v: str) -> str:
        return validate_entity_id(v, "Section ID")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return validate_display_text(v, "Title")


class NoteView(_WireModel):
    """The note shape the UI renders: no section id, no creation time."""

    id: str
    title: str
    content: str = ""
    last_edited: datetime.datetime = Field(default_factory=utc_now)

    @field_validator("last_edited")
    @classmethod
    def validate_last_edited(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @classmethod
    def from_note(cls, note: Note) -> "NoteView":
        return cls(
            id=note.id,
            title=note.title,
            content=note.content,
            last_edited=note.last_edited,
        )


class SectionTree(_WireModel):
    """A section with its notes nested, most recently edited first."""

    id: str
    name: str
    is_open: bool = True
    notes: List[NoteView] = Field(default_factory=list)

    def find_note(self, note_id: str) -> Optional[NoteView]:
        for note in self.notes:
            if note.id == note_id:
                return note
        return None


class SectionPatch(_WireModel):
    """Fields of a section that an update may change. None means untouched."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    is_open: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return validate_display_text(v, "Section name")

    def is_empty(self) -> bool:
        return self.name is None and self.is_open is None


class NotePatch(_WireModel):
    """Fields of a note that an update may change. None means untouched."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    content: Optional[str] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return validate_display_text(v, "Title")

    def is_empty(self) -> bool:
        return self.title is None and self.content is None
