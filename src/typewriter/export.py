"""Render notes as plain text or standalone HTML documents."""

import html
import logging
import re
from html.parser import HTMLParser
from pathlib import Path
from typing import Iterable, List, Union

from typewriter.exceptions import ErrorCode, ExportError
from typewriter.models.schema import NoteView, SectionTree

logger = logging.getLogger(__name__)

FORMATS = ("txt", "html")

ALL_NOTES_TITLE = "All Notes Export"

_DOCUMENT_STYLE = """\
        body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; max-width: 800px; margin: 0 auto; padding: 2rem; }
        h1, h2, h3 { color: #333; }
        blockquote { border-left: 4px solid #ddd; padding-left: 1rem; margin: 1rem 0; font-style: italic; }
        code { background: #f5f5f5; padding: 0.2rem 0.4rem; border-radius: 3px; }
        pre { background: #f5f5f5; padding: 1rem; border-radius: 6px; overflow-x: auto; }"""

# Tags whose boundaries start a new line in the text rendering
_BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "div", "dl", "dt", "dd",
    "fieldset", "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5",
    "h6", "header", "hr", "li", "main", "nav", "ol", "p", "pre", "section",
    "table", "tr", "ul",
}
_SKIP_TAGS = {"script", "style", "head", "title"}


class _TextExtractor(HTMLParser):
    """Collect the visible text of an HTML fragment."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.out: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        tag_l = tag.lower()
        if tag_l in _SKIP_TAGS:
            self._skip_depth += 1
        elif tag_l == "br":
            self.out.append("\n")
        elif tag_l in ("td", "th"):
            self.out.append("\t")
        elif tag_l in _BLOCK_TAGS:
            self.out.append("\n")

    def handle_startendtag(self, tag, attrs):
        if tag.lower() == "br":
            self.out.append("\n")
        elif tag.lower() == "hr":
            self.out.append("\n")

    def handle_endtag(self, tag):
        tag_l = tag.lower()
        if tag_l in _SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag_l in _BLOCK_TAGS:
            self.out.append("\n")

    def handle_data(self, data):
        if not self._skip_depth:
            self.out.append(data)

    def text(self) -> str:
        raw = "".join(self.out)
        lines = [line.rstrip() for line in raw.split("\n")]
        # Collapse runs of blank lines left by nested blocks
        return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def html_to_text(markup: str) -> str:
    """Reduce editor markup to plain text. Plain text passes through."""
    if not markup:
        return ""
    parser = _TextExtractor()
    parser.feed(markup)
    parser.close()
    return parser.text()


def _check_format(fmt: str) -> str:
    fmt_l = (fmt or "").lower().lstrip(".")
    if fmt_l not in FORMATS:
        raise ExportError(
            f"Unsupported export format: {fmt!r} (expected one of {', '.join(FORMATS)})",
            code=ErrorCode.EXPORT_FORMAT_INVALID,
        )
    return fmt_l


def _html_document(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        f"    <title>{html.escape(title)}</title>\n"
        '    <meta charset="UTF-8">\n'
        "    <style>\n"
        f"{_DOCUMENT_STYLE}\n"
        "    </style>\n"
        "</head>\n"
        "<body>\n"
        f"    <h1>{html.escape(title)}</h1>\n"
        f"{body}\n"
        "</body>\n"
        "</html>\n"
    )


def render_note(note: NoteView, fmt: str = "html") -> str:
    """Render one note: its title followed by its content.

    ``txt`` strips markup from the content; ``html`` wraps the content,
    as stored, in a standalone document titled after the note.
    """
    fmt = _check_format(fmt)
    if fmt == "txt":
        body = html_to_text(note.content)
        return f"{note.title}\n\n{body}\n" if body else f"{note.title}\n"
    return _html_document(note.title, note.content)


def render_tree(sections: Iterable[SectionTree], fmt: str = "html") -> str:
    """Render every section and note in display order as one document."""
    fmt = _check_format(fmt)
    parts: List[str] = []

    for section in sections:
        if fmt == "txt":
            parts.append(f"Section: {section.name}")
        else:
            parts.append(f"<h1>Section: {html.escape(section.name)}</h1>")
        for note in section.notes:
            if fmt == "txt":
                parts.append(f"Note title: {note.title}")
                body = html_to_text(note.content)
                if body:
                    parts.append(body)
            else:
                parts.append(f"<h2>Note title: {html.escape(note.title)}</h2>")
                if note.content:
                    parts.append(note.content)

    body = "\n\n".join(parts)
    if fmt == "txt":
        return f"{body}\n" if body else ""
    return _html_document(ALL_NOTES_TITLE, body)


def default_filename(title: str, fmt: str) -> str:
    """File name for an export, e.g. ``Groceries.txt``.

    Path separators and other characters most file systems reject are
    replaced with underscores.
    """
    fmt = _check_format(fmt)
    stem = re.sub(r'[\\/:*?"<>|\x00-\x1f]', "_", title).strip(" .") or "note"
    return f"{stem}.{fmt}"


def _write(path: Union[str, Path], text: str) -> Path:
    target = Path(path).expanduser()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write export to {target}", original_error=e)
    logger.info(f"Exported {len(text)} characters to {target}")
    return target


def export_note(note: NoteView, path: Union[str, Path], fmt: str = "html") -> Path:
    """Render a note and write it to ``path`` as UTF-8.

    Raises:
        ExportError: For an unknown format or a failed write.
    """
    return _write(path, render_note(note, fmt))


def export_tree(
    sections: Iterable[SectionTree], path: Union[str, Path], fmt: str = "html"
) -> Path:
    """Render the whole tree and write it to ``path`` as UTF-8.

    Raises:
        ExportError: For an unknown format or a failed write.
    """
    return _write(path, render_tree(sections, fmt))
