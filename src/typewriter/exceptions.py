"""Custom exceptions for the TypeWriter notes core.

Provides a structured exception hierarchy with error codes and
machine-readable error information. The storage engine and the data
access layer raise these; the RPC boundary is the only place that
catches them and flattens them into a result envelope.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Lifecycle errors (1xxx)
    STORAGE_INIT_FAILED = 1001
    NOT_INITIALIZED = 1002
    INVALID_KEY = 1003

    # Lookup errors (2xxx)
    SECTION_NOT_FOUND = 2001
    NOTE_NOT_FOUND = 2002

    # Constraint errors (3xxx)
    DUPLICATE_KEY = 3001
    FOREIGN_KEY_VIOLATION = 3002

    # Update errors (4xxx)
    EMPTY_PATCH = 4001

    # Validation errors (5xxx)
    VALIDATION_FAILED = 5001

    # Export errors (6xxx)
    EXPORT_FORMAT_INVALID = 6001
    EXPORT_WRITE_FAILED = 6002

    # Boundary errors (7xxx)
    UNKNOWN_OPERATION = 7001


class TypeWriterError(Exception):
    """Base exception for all TypeWriter errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class StorageInitError(TypeWriterError):
    """Raised when the store cannot be opened or created.

    Unrecoverable for the session: the engine holds no handle afterwards.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_INIT_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.replace("\\", "/").split("/")[-1]
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.path = path
        self.original_error = original_error


class NotInitializedError(TypeWriterError):
    """Raised when an operation runs before initialize() succeeded."""

    def __init__(self, operation: Optional[str] = None):
        details = {"operation": operation} if operation else {}
        super().__init__(
            "Database not initialized. Call initialize() first.",
            code=ErrorCode.NOT_INITIALIZED,
            details=details,
        )
        self.operation = operation


class NotFoundError(TypeWriterError):
    """Raised when a read or patch target does not exist."""

    def __init__(self, entity: str, entity_id: str, message: Optional[str] = None):
        code = (
            ErrorCode.SECTION_NOT_FOUND
            if entity == "section"
            else ErrorCode.NOTE_NOT_FOUND
        )
        super().__init__(
            message or f"{entity.capitalize()} with ID '{entity_id}' not found",
            code=code,
            details={f"{entity}_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class DuplicateKeyError(TypeWriterError):
    """Raised when a create collides with an existing id."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity.capitalize()} with ID '{entity_id}' already exists",
            code=ErrorCode.DUPLICATE_KEY,
            details={f"{entity}_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ForeignKeyError(TypeWriterError):
    """Raised when a note references a section that does not exist."""

    def __init__(self, section_id: str, note_id: Optional[str] = None):
        details = {"section_id": section_id}
        if note_id:
            details["note_id"] = note_id
        super().__init__(
            f"Section with ID '{section_id}' does not exist",
            code=ErrorCode.FOREIGN_KEY_VIOLATION,
            details=details,
        )
        self.section_id = section_id
        self.note_id = note_id


class EmptyPatchError(TypeWriterError):
    """Raised when an update supplies no fields."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"No fields supplied to update {entity} '{entity_id}'",
            code=ErrorCode.EMPTY_PATCH,
            details={f"{entity}_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(TypeWriterError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class ExportError(TypeWriterError):
    """Raised when a note or tree cannot be rendered or written."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EXPORT_WRITE_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if original_error:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, code=code, details=details)
        self.original_error = original_error
