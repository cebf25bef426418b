"""UI-side state mirror with debounced write-back."""

from typewriter.mirror.debounce import Debouncer
from typewriter.mirror.state import MirrorStatus, NotesMirror, RpcChannel, SyncState

__all__ = [
    "Debouncer",
    "MirrorStatus",
    "NotesMirror",
    "RpcChannel",
    "SyncState",
]
