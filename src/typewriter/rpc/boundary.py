"""Request/response boundary between the UI process and the note store."""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from typewriter.exceptions import ErrorCode, TypeWriterError
from typewriter.observability import MetricsCollector, metrics, timed_operation
from typewriter.storage.engine import StorageEngine
from typewriter.storage.note_store import NoteStore

logger = logging.getLogger(__name__)

OP_INITIALIZE = "initialize"
OP_GET_ALL_DATA = "get-all-data"
OP_CREATE_SECTION = "create-section"
OP_UPDATE_SECTION = "update-section"
OP_DELETE_SECTION = "delete-section"
OP_CREATE_NOTE = "create-note"
OP_UPDATE_NOTE = "update-note"
OP_DELETE_NOTE = "delete-note"

OPERATIONS: Tuple[str, ...] = (
    OP_INITIALIZE,
    OP_GET_ALL_DATA,
    OP_CREATE_SECTION,
    OP_UPDATE_SECTION,
    OP_DELETE_SECTION,
    OP_CREATE_NOTE,
    OP_UPDATE_NOTE,
    OP_DELETE_NOTE,
)


class Envelope(BaseModel):
    """Uniform result of every boundary call."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, leaving out whichever of data/error is unset."""
        return self.model_dump(exclude_none=True)


def ok(data: Any = None) -> Dict[str, Any]:
    return Envelope(success=True, data=data).to_dict()


def failed(message: str) -> Dict[str, Any]:
    return Envelope(success=False, error=message).to_dict()


class NotesRpc:
    """The closed set of named operations the UI process may call.

    Each operation maps one-to-one onto a NoteStore method. Arguments and
    results are JSON-serializable; every exception is caught here and
    returned as ``{"success": False, "error": ...}`` so a storage failure
    never propagates into the caller. No validation happens at this
    layer beyond dispatch.
    """

    def __init__(
        self,
        engine: Optional[StorageEngine] = None,
        collector: Optional[MetricsCollector] = None,
    ):
        """Initialize the boundary.

        Args:
            engine: Storage engine to own. Defaults to one at the
                    configured database path. Not opened until the
                    ``initialize`` operation is called.
            collector: Metrics collector for per-operation timing.
        """
        self.engine = engine or StorageEngine()
        self.store = NoteStore(self.engine)
        self._collector = collector
        self._handlers: Dict[str, Callable[..., Any]] = {
            OP_INITIALIZE: self._initialize,
            OP_GET_ALL_DATA: self._get_all_data,
            OP_CREATE_SECTION: self._create_section,
            OP_UPDATE_SECTION: self._update_section,
            OP_DELETE_SECTION: self._delete_section,
            OP_CREATE_NOTE: self._create_note,
            OP_UPDATE_NOTE: self._update_note,
            OP_DELETE_NOTE: self._delete_note,
        }

    @property
    def operations(self) -> List[str]:
        return list(self._handlers)

    @property
    def collector(self) -> MetricsCollector:
        """Where operation timings are recorded."""
        return self._collector or metrics

    def invoke(self, operation: str, *args: Any) -> Dict[str, Any]:
        """Run one operation and wrap its outcome in an envelope."""
        with timed_operation(operation, collector=self._collector) as op:
            handler = self._handlers.get(operation)
            if handler is None:
                error = TypeWriterError(
                    f"Unknown operation: {operation}",
                    code=ErrorCode.UNKNOWN_OPERATION,
                )
                op["error"] = error.message
                return self.format_error_response(error)
            try:
                data = handler(*args)
            except Exception as e:
                op["error"] = str(e)
                return self.format_error_response(e)
            return ok(data)

    def format_error_response(self, error: Exception) -> Dict[str, Any]:
        """Format an error envelope in a consistent way.

        Domain errors carry their own message. Anything else gets a
        generic message with a reference id that matches the log line.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, TypeWriterError):
            logger.warning(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return failed(error.message)
        elif isinstance(error, (TypeError, ValueError)):
            logger.error(f"Invalid request [{error_id}]: {error}")
            return failed(f"Invalid request (ref: {error_id})")
        elif isinstance(error, OSError):
            logger.error(f"File system error [{error_id}]: {error}", exc_info=True)
            return failed(f"A file system error occurred (ref: {error_id})")
        else:
            logger.error(f"Unexpected error [{error_id}]: {error}", exc_info=True)
            return failed(f"An unexpected error occurred (ref: {error_id})")

    def close(self) -> None:
        """Release the storage handle."""
        self.engine.close()

    # ========== Handlers ==========

    def _initialize(self, key: Optional[str] = None) -> None:
        self.engine.initialize(key)

    def _get_all_data(self) -> List[Dict[str, Any]]:
        return [section.to_wire() for section in self.store.get_all_data()]

    def _create_section(self, id: str, name: str) -> None:
        self.store.create_section(id, name)

    def _update_section(self, id: str, updates: Dict[str, Any]) -> None:
        self.store.update_section(id, updates)

    def _delete_section(self, id: str) -> None:
        self.store.delete_section(id)

    def _create_note(self, id: str, section_id: str, title: str, content: str = "") -> None:
        self.store.create_note(id, section_id, title, content)

    def _update_note(self, id: str, updates: Dict[str, Any]) -> None:
        self.store.update_note(id, updates)

    def _delete_note(self, id: str) -> None:
        self.store.delete_note(id)

    # ========== Client helpers ==========

    def initialize(self, key: Optional[str] = None) -> Dict[str, Any]:
        return self.invoke(OP_INITIALIZE, key)

    def get_all_data(self) -> Dict[str, Any]:
        return self.invoke(OP_GET_ALL_DATA)

    def create_section(self, id: str, name: str) -> Dict[str, Any]:
        return self.invoke(OP_CREATE_SECTION, id, name)

    def update_section(self, id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self.invoke(OP_UPDATE_SECTION, id, updates)

    def delete_section(self, id: str) -> Dict[str, Any]:
        return self.invoke(OP_DELETE_SECTION, id)

    def create_note(self, id: str, section_id: str, title: str, content: str = "") -> Dict[str, Any]:
        return self.invoke(OP_CREATE_NOTE, id, section_id, title, content)

    def update_note(self, id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self.invoke(OP_UPDATE_NOTE, id, updates)

    def delete_note(self, id: str) -> Dict[str, Any]:
        return self.invoke(OP_DELETE_NOTE, id)
