"""Request/response boundary between the UI process and storage."""

from typewriter.rpc.boundary import OPERATIONS, Envelope, NotesRpc

__all__ = [
    "OPERATIONS",
    "Envelope",
    "NotesRpc",
]
