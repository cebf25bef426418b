"""In-memory copy of the section/note tree kept in step with storage."""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from typewriter.config import config
from typewriter.mirror.debounce import Debouncer
from typewriter.models.schema import NoteView, SectionTree, generate_id, utc_now
from typewriter.rpc.boundary import (
    OP_CREATE_NOTE,
    OP_CREATE_SECTION,
    OP_DELETE_NOTE,
    OP_DELETE_SECTION,
    OP_GET_ALL_DATA,
    OP_INITIALIZE,
    OP_UPDATE_NOTE,
    OP_UPDATE_SECTION,
)

logger = logging.getLogger(__name__)


class RpcChannel(Protocol):
    """Anything that can carry a boundary call and return its envelope."""

    def invoke(self, operation: str, *args: Any) -> Dict[str, Any]:
        ...


class MirrorStatus(str, Enum):
    """Load state of the mirror as a whole."""

    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class SyncState(str, Enum):
    """Write-back state of one note's content."""

    CLEAN = "clean"  # Matches what was last written
    DIRTY = "dirty"  # Edited locally, write timer armed
    PERSISTING = "persisting"  # Write in flight
    UNSAVED = "unsaved"  # Last write failed; local edit kept


class NotesMirror:
    """Render-ready copy of the section -> notes tree.

    Creates and deletes go to storage first and only touch the local tree
    once they succeed, so the mirror never shows something that failed to
    persist. Note content edits are applied locally at once and written
    back after ``debounce_seconds`` of quiet; a failed write leaves the
    edit in place and marks the note UNSAVED. Storage stays the source of
    truth: ``refresh()`` replaces the tree with what it returns, except
    for content that has not been stored yet.
    """

    def __init__(
        self,
        channel: RpcChannel,
        debounce_seconds: Optional[float] = None,
        id_factory: Callable[[str], str] = generate_id,
    ):
        """Initialize the mirror.

        Args:
            channel: Boundary to call (a NotesRpc or a remote client).
            debounce_seconds: Quiet period before a content write.
                              Defaults to config.debounce_seconds.
            id_factory: Builds new ids from a prefix ("section", "note").
        """
        self.channel = channel
        self._id_factory = id_factory
        delay = config.debounce_seconds if debounce_seconds is None else debounce_seconds
        self._debouncer = Debouncer(delay, name="note-write")
        self._lock = threading.RLock()

        self.sections: List[SectionTree] = []
        self.status = MirrorStatus.LOADING
        self.error: Optional[str] = None
        self.active_note_id: Optional[str] = None

        self._sync: Dict[str, SyncState] = {}
        self._edit_seq: Dict[str, int] = {}
        # At most one write in flight per note; a write requested meanwhile
        # is recorded in _rerun and sent by the in-flight writer when done
        self._in_flight: Set[str] = set()
        self._rerun: Set[str] = set()
        self._idle = threading.Condition(self._lock)

    # ========== Loading ==========

    @property
    def is_ready(self) -> bool:
        return self.status == MirrorStatus.READY

    def start(self, key: Optional[str] = None) -> bool:
        """Initialize storage and load the tree.

        Returns:
            True when the mirror is READY. On failure the status is
            FAILED and ``error`` holds the reason.
        """
        self.status = MirrorStatus.LOADING
        self.error = None

        result = self._call(OP_INITIALIZE, key)
        if not result.get("success"):
            return self._fail(result.get("error", "Database initialization failed"))
        return self.refresh()

    def refresh(self) -> bool:
        """Replace the local tree with the stored one.

        Pending content writes are flushed first so the fetch sees them.
        Notes whose content is still not stored (a failed write, or an
        edit that arrived meanwhile) keep their local content and state.
        """
        self.flush()

        result = self._call(OP_GET_ALL_DATA)
        if not result.get("success"):
            return self._fail(result.get("error", "Failed to load data"))

        try:
            sections = [SectionTree.model_validate(s) for s in result.get("data") or []]
        except PydanticValidationError as e:
            return self._fail(f"Malformed data from storage: {e.error_count()} errors")

        with self._lock:
            kept = self._merge_local_edits(sections)
            present = {n.id for s in sections for n in s.notes}
            self.sections = sections
            self._sync = kept
            self._edit_seq = {nid: seq for nid, seq in self._edit_seq.items() if nid in present}
            if kept:
                logger.warning(f"Kept {len(kept)} unsaved notes across reload")
            if self.active_note_id is not None and self._locate(self.active_note_id)[1] is None:
                self.active_note_id = None
            self.status = MirrorStatus.READY
            self.error = None

        note_count = sum(len(s.notes) for s in sections)
        logger.info(f"Mirror loaded: {len(sections)} sections, {note_count} notes")
        return True

    def _merge_local_edits(self, sections: List[SectionTree]) -> Dict[str, SyncState]:
        """Copy not-yet-stored content into a fetched tree (lock held).

        Returns the sync states to keep, for notes still in storage.
        """
        kept: Dict[str, SyncState] = {}
        for section in sections:
            for note in section.notes:
                state = self._sync.get(note.id, SyncState.CLEAN)
                if state == SyncState.CLEAN:
                    continue
                local = self._locate(note.id)[1]
                if local is None:
                    continue
                note.content = local.content
                note.last_edited = local.last_edited
                kept[note.id] = state
        return kept

    def _fail(self, message: str) -> bool:
        logger.error(f"Mirror unavailable: {message}")
        with self._lock:
            self.status = MirrorStatus.FAILED
            self.error = message
        return False

    def _call(self, operation: str, *args: Any) -> Dict[str, Any]:
        """Invoke the channel; transport exceptions become failed envelopes."""
        try:
            result = self.channel.invoke(operation, *args)
        except Exception as e:
            logger.error(f"Call {operation} failed in transport: {e}", exc_info=True)
            return {"success": False, "error": str(e)}
        if not isinstance(result, dict):
            return {"success": False, "error": f"Malformed response to {operation}"}
        return result

    # ========== Lookups ==========

    def _locate(self, note_id: str) -> Tuple[Optional[SectionTree], Optional[NoteView]]:
        for section in self.sections:
            note = section.find_note(note_id)
            if note is not None:
                return section, note
        return None, None

    def find_section(self, section_id: str) -> Optional[SectionTree]:
        with self._lock:
            for section in self.sections:
                if section.id == section_id:
                    return section
            return None

    def find_note(self, note_id: str) -> Optional[NoteView]:
        with self._lock:
            return self._locate(note_id)[1]

    @property
    def active_note(self) -> Optional[NoteView]:
        if self.active_note_id is None:
            return None
        return self.find_note(self.active_note_id)

    def select_note(self, note_id: Optional[str]) -> Optional[NoteView]:
        """Make a note the active one (None clears the selection)."""
        with self._lock:
            if note_id is None or self._locate(note_id)[1] is None:
                self.active_note_id = None
                return None
            self.active_note_id = note_id
            return self._locate(note_id)[1]

    def sync_state(self, note_id: str) -> SyncState:
        with self._lock:
            return self._sync.get(note_id, SyncState.CLEAN)

    def unsaved_note_ids(self) -> List[str]:
        """Notes whose local content is not known to be stored."""
        with self._lock:
            return [nid for nid, state in self._sync.items() if state != SyncState.CLEAN]

    # ========== Sections ==========

    def add_section(self, name: str) -> Optional[SectionTree]:
        """Create a section in storage, then add it locally."""
        if not name or not name.strip():
            return None
        section_id = self._id_factory("section")
        result = self._call(OP_CREATE_SECTION, section_id, name)
        if not result.get("success"):
            logger.warning(f"Create section failed: {result.get('error')}")
            return None

        section = SectionTree(id=section_id, name=name, is_open=True, notes=[])
        with self._lock:
            self.sections.append(section)
        return section

    def toggle_section(self, section_id: str) -> Optional[bool]:
        """Flip a section's collapsed state and persist it right away.

        Returns:
            The new ``is_open`` value, or None for an unknown section.
        """
        with self._lock:
            section = self.find_section(section_id)
            if section is None:
                return None
            section.is_open = not section.is_open
            is_open = section.is_open

        result = self._call(OP_UPDATE_SECTION, section_id, {"is_open": is_open})
        if not result.get("success"):
            logger.warning(f"Saving section state for {section_id} failed: {result.get('error')}")
        return is_open

    def rename_section(self, section_id: str, name: str) -> bool:
        if not name or not name.strip() or self.find_section(section_id) is None:
            return False
        result = self._call(OP_UPDATE_SECTION, section_id, {"name": name})
        if not result.get("success"):
            logger.warning(f"Rename section {section_id} failed: {result.get('error')}")
            return False
        with self._lock:
            section = self.find_section(section_id)
            if section is not None:
                section.name = name
        return True

    def delete_section(self, section_id: str) -> bool:
        """Delete a section in storage, then drop it and its notes locally."""
        result = self._call(OP_DELETE_SECTION, section_id)
        if not result.get("success"):
            logger.warning(f"Delete section {section_id} failed: {result.get('error')}")
            return False

        with self._lock:
            section = self.find_section(section_id)
            if section is None:
                return True
            for note in section.notes:
                self._forget_note(note.id)
            self.sections = [s for s in self.sections if s.id != section_id]
        return True

    # ========== Notes ==========

    def add_note(self, section_id: str, title: str) -> Optional[NoteView]:
        """Create an empty note in storage, then show it first in its section."""
        if not title or not title.strip():
            return None
        note_id = self._id_factory("note")
        result = self._call(OP_CREATE_NOTE, note_id, section_id, title, "")
        if not result.get("success"):
            logger.warning(f"Create note failed: {result.get('error')}")
            return None

        note = NoteView(id=note_id, title=title, content="", last_edited=utc_now())
        with self._lock:
            section = self.find_section(section_id)
            if section is not None:
                section.notes.insert(0, note)
                self.active_note_id = note_id
                return note

        # Stored under a section this mirror has not loaded
        logger.warning(f"Section {section_id} not mirrored; reloading for note {note_id}")
        if not self.refresh():
            return None
        return self.select_note(note_id)

    def rename_note(self, note_id: str, title: str) -> bool:
        if not title or not title.strip() or self.find_note(note_id) is None:
            return False
        result = self._call(OP_UPDATE_NOTE, note_id, {"title": title})
        if not result.get("success"):
            logger.warning(f"Rename note {note_id} failed: {result.get('error')}")
            return False
        with self._lock:
            note = self._locate(note_id)[1]
            if note is not None:
                note.title = title
                note.last_edited = utc_now()
        return True

    def update_note_content(self, note_id: str, content: str) -> bool:
        """Apply an edit locally now and schedule the write-back.

        Any edit within the debounce window re-arms the timer, so only the
        latest content is written, once per quiet period.
        """
        with self._lock:
            note = self._locate(note_id)[1]
            if note is None:
                logger.warning(f"Edit for unknown note ignored: {note_id}")
                return False
            note.content = content
            note.last_edited = utc_now()
            self._edit_seq[note_id] = self._edit_seq.get(note_id, 0) + 1
            self._sync[note_id] = SyncState.DIRTY

        self._debouncer.schedule(note_id, lambda: self._persist_content(note_id))
        return True

    def _persist_content(self, note_id: str) -> None:
        """Write a note's current content.

        Writes for one note never overlap. A request that arrives while a
        write is in flight is handed to that writer, which sends the
        latest content again once its own call returns.
        """
        with self._lock:
            if note_id in self._in_flight:
                self._rerun.add(note_id)
                return
            self._in_flight.add(note_id)

        try:
            while self._write_once(note_id):
                pass
        except Exception:
            with self._lock:
                self._release(note_id)
            raise

    def _write_once(self, note_id: str) -> bool:
        """Send one content write.

        Returns True when another write is needed. Otherwise the note is
        released, under the same lock hold that made the decision.
        """
        with self._lock:
            self._rerun.discard(note_id)
            note = self._locate(note_id)[1]
            if note is None:
                self._forget_note(note_id)
                self._release(note_id)
                return False
            content = note.content
            seq = self._edit_seq.get(note_id, 0)
            self._sync[note_id] = SyncState.PERSISTING

        result = self._call(OP_UPDATE_NOTE, note_id, {"content": content})

        with self._lock:
            if note_id not in self._sync:
                # Deleted while the write was in flight
                self._release(note_id)
                return False
            if self._edit_seq.get(note_id, 0) != seq:
                # Newer edit: its timer writes it, unless it already fired
                self._sync[note_id] = SyncState.DIRTY
                if note_id in self._rerun:
                    return True
            elif result.get("success"):
                self._sync[note_id] = SyncState.CLEAN
            else:
                self._sync[note_id] = SyncState.UNSAVED
                logger.warning(f"Saving note {note_id} failed: {result.get('error')}")
            self._release(note_id)
            return False

    def _release(self, note_id: str) -> None:
        """Mark a note's write finished (lock held)."""
        self._in_flight.discard(note_id)
        self._rerun.discard(note_id)
        self._idle.notify_all()

    def delete_note(self, note_id: str) -> bool:
        """Delete a note in storage, then drop it locally."""
        result = self._call(OP_DELETE_NOTE, note_id)
        if not result.get("success"):
            logger.warning(f"Delete note {note_id} failed: {result.get('error')}")
            return False

        with self._lock:
            for section in self.sections:
                section.notes = [n for n in section.notes if n.id != note_id]
            self._forget_note(note_id)
        return True

    def _forget_note(self, note_id: str) -> None:
        """Drop pending writes and sync tracking for a removed note."""
        self._debouncer.cancel(note_id)
        self._sync.pop(note_id, None)
        self._edit_seq.pop(note_id, None)
        if self.active_note_id == note_id:
            self.active_note_id = None

    # ========== Shutdown ==========

    def flush(self) -> int:
        """Write every pending edit now and wait for writes in flight.

        Returns how many pending writes were started.
        """
        count = self._debouncer.flush_all()
        self._wait_idle()
        return count

    def _wait_idle(self) -> None:
        with self._idle:
            self._idle.wait_for(lambda: not self._in_flight)

    def close(self) -> None:
        """Flush pending edits and stop the timers."""
        self._debouncer.shutdown(flush=True)
        self._wait_idle()
