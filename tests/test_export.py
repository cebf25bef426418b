"""Tests for note export rendering."""
import pytest

from typewriter.exceptions import ErrorCode, ExportError
from typewriter.export import (
    ALL_NOTES_TITLE,
    default_filename,
    export_note,
    export_tree,
    html_to_text,
    render_note,
    render_tree,
)
from typewriter.models.schema import NoteView, SectionTree


@pytest.fixture
def note():
    return NoteView(
        id="n1",
        title="Groceries",
        content="<h2>List</h2><ul><li>Milk &amp; eggs</li><li>Bread</li></ul><p>Done<br>soon</p>",
    )


@pytest.fixture
def tree(note):
    return [
        SectionTree(id="s1", name="Home", notes=[note]),
        SectionTree(
            id="s2",
            name="Work <Q3>",
            is_open=False,
            notes=[NoteView(id="n2", title="Plan", content="plain text")],
        ),
    ]


class TestHtmlToText:
    """Markup reduction for plain-text output."""

    def test_blocks_become_lines(self, note):
        assert html_to_text(note.content) == "List\n\nMilk & eggs\n\nBread\n\nDone\nsoon"

    def test_plain_text_passes_through(self):
        assert html_to_text("just words") == "just words"

    def test_empty(self):
        assert html_to_text("") == ""

    def test_script_and_style_dropped(self):
        markup = "<style>p { color: red }</style><p>Visible</p><script>alert(1)</script>"
        assert html_to_text(markup) == "Visible"


class TestRenderNote:
    """Single note rendering."""

    def test_txt(self, note):
        text = render_note(note, "txt")
        assert text.startswith("Groceries\n\nList")
        assert "<" not in text

    def test_html_wraps_content(self, note):
        doc = render_note(note, "html")
        assert doc.startswith("<!DOCTYPE html>")
        assert "<title>Groceries</title>" in doc
        assert "<h1>Groceries</h1>" in doc
        assert note.content in doc

    def test_html_escapes_title(self):
        doc = render_note(NoteView(id="n1", title="a < b", content=""), "html")
        assert "<title>a &lt; b</title>" in doc

    def test_empty_note_txt(self):
        assert render_note(NoteView(id="n1", title="Blank"), "txt") == "Blank\n"

    def test_unknown_format(self, note):
        with pytest.raises(ExportError) as exc_info:
            render_note(note, "pdf")
        assert exc_info.value.code == ErrorCode.EXPORT_FORMAT_INVALID

    def test_format_is_case_insensitive(self, note):
        assert render_note(note, ".TXT") == render_note(note, "txt")


class TestRenderTree:
    """Whole-tree rendering."""

    def test_txt_headings(self, tree):
        text = render_tree(tree, "txt")
        assert text.index("Section: Home") < text.index("Note title: Groceries")
        assert text.index("Note title: Groceries") < text.index("Section: Work <Q3>")
        assert "Note title: Plan\n\nplain text" in text

    def test_html_document(self, tree):
        doc = render_tree(tree, "html")
        assert f"<title>{ALL_NOTES_TITLE}</title>" in doc
        assert "<h1>Section: Home</h1>" in doc
        assert "<h1>Section: Work &lt;Q3&gt;</h1>" in doc
        assert "<h2>Note title: Groceries</h2>" in doc

    def test_empty_tree(self):
        assert render_tree([], "txt") == ""


class TestExportFiles:
    """Writing exports to disk."""

    def test_export_note_writes_utf8(self, data_dir):
        note = NoteView(id="n1", title="Café", content="<p>naïve ☕</p>")
        path = export_note(note, data_dir / "out" / "cafe.txt", "txt")

        assert path.read_text(encoding="utf-8") == "Café\n\nnaïve ☕\n"

    def test_export_tree(self, tree, data_dir):
        path = export_tree(tree, data_dir / "all-notes.html", "html")
        assert "<h2>Note title: Plan</h2>" in path.read_text(encoding="utf-8")

    def test_write_failure(self, note, data_dir):
        blocker = data_dir / "blocker"
        blocker.write_text("file")
        with pytest.raises(ExportError) as exc_info:
            export_note(note, blocker / "note.txt", "txt")
        assert exc_info.value.code == ErrorCode.EXPORT_WRITE_FAILED
        assert exc_info.value.original_error is not None

    def test_default_filename(self):
        assert default_filename("Groceries", "txt") == "Groceries.txt"
        assert default_filename("a/b: c?", "html") == "a_b_ c_.html"
        assert default_filename("...", "txt") == "note.txt"
