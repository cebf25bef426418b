"""Storage layer for the TypeWriter notes core."""

from typewriter.storage.engine import StorageEngine
from typewriter.storage.note_store import NoteStore

__all__ = [
    "StorageEngine",
    "NoteStore",
]
