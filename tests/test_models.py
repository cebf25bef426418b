"""Tests for the data models used by the TypeWriter notes core."""
import datetime
import re

import pytest
from pydantic import ValidationError

from typewriter.models.schema import (
    MAX_ID_LENGTH,
    Note,
    NotePatch,
    NoteView,
    Section,
    SectionPatch,
    SectionTree,
    ensure_timezone_aware,
    generate_id,
)


class TestSectionModel:
    """Tests for the Section model."""

    def test_section_creation(self):
        section = Section(id="s1", name="Work")
        assert section.is_open is True
        assert section.created_at.tzinfo is not None

    def test_section_validation(self):
        with pytest.raises(ValidationError):
            Section(id="", name="Work")
        with pytest.raises(ValidationError):
            Section(id="s1", name="   ")
        with pytest.raises(ValidationError):
            Section(id="x" * (MAX_ID_LENGTH + 1), name="Work")

    def test_accepts_camel_case_input(self):
        section = Section.model_validate({"id": "s1", "name": "Work", "isOpen": False})
        assert section.is_open is False


class TestNoteModel:
    """Tests for the Note model."""

    def test_note_creation(self):
        note = Note(id="n1", section_id="s1", title="Draft")
        assert note.content == ""
        assert isinstance(note.last_edited, datetime.datetime)

    def test_note_validation(self):
        with pytest.raises(ValidationError):
            Note(id="n1", section_id="s1", title="")
        with pytest.raises(ValidationError):
            Note(id="n1", section_id="  ", title="Draft")

    def test_view_drops_section_and_creation_time(self):
        note = Note(id="n1", section_id="s1", title="Draft", content="body")
        view = NoteView.from_note(note)
        wire = view.to_wire()
        assert set(wire) == {"id", "title", "content", "lastEdited"}
        assert wire["content"] == "body"
        assert view.last_edited == note.last_edited

    def test_view_treats_naive_time_as_utc(self):
        view = NoteView(id="n1", title="Draft", last_edited=datetime.datetime(2024, 1, 2, 3, 4, 5))
        assert view.last_edited.tzinfo == datetime.timezone.utc


class TestSectionTree:
    """Tests for the nested section view."""

    def test_wire_shape_round_trip(self):
        tree = SectionTree(
            id="s1",
            name="Work",
            is_open=False,
            notes=[NoteView(id="n1", title="Draft", content="x")],
        )
        wire = tree.to_wire()
        assert wire["isOpen"] is False
        assert wire["notes"][0]["id"] == "n1"

        parsed = SectionTree.model_validate(wire)
        assert parsed.is_open is False
        assert parsed.notes[0].last_edited == tree.notes[0].last_edited

    def test_find_note(self):
        tree = SectionTree(id="s1", name="Work", notes=[NoteView(id="n1", title="A")])
        assert tree.find_note("n1").title == "A"
        assert tree.find_note("n2") is None


class TestPatches:
    """Tests for update patches."""

    def test_empty_patches(self):
        assert SectionPatch().is_empty()
        assert NotePatch().is_empty()
        assert not NotePatch(content="").is_empty()
        assert not SectionPatch(is_open=False).is_empty()

    def test_patch_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            NotePatch.model_validate({"body": "x"})
        with pytest.raises(ValidationError):
            SectionPatch.model_validate({"id": "s2"})

    def test_patch_rejects_blank_text(self):
        with pytest.raises(ValidationError):
            SectionPatch(name="")
        with pytest.raises(ValidationError):
            NotePatch(title="  ")

    def test_patch_accepts_both_spellings(self):
        assert SectionPatch.model_validate({"is_open": True}).is_open is True
        assert SectionPatch.model_validate({"isOpen": True}).is_open is True


class TestHelpers:
    """Tests for id and time helpers."""

    def test_generate_id_format(self):
        assert re.fullmatch(r"note-[0-9a-f]+-[0-9a-f]{6}", generate_id("note"))

    def test_generate_id_unique_and_ordered(self):
        ids = [generate_id("section") for _ in range(500)]
        assert len(set(ids)) == len(ids)
        stamps = [int(i.split("-")[1], 16) for i in ids]
        assert stamps == sorted(stamps)

    def test_ensure_timezone_aware(self):
        naive = datetime.datetime(2024, 1, 1)
        assert ensure_timezone_aware(naive).tzinfo == datetime.timezone.utc
        aware = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
        assert ensure_timezone_aware(aware) is aware
        assert ensure_timezone_aware(None).tzinfo is not None
