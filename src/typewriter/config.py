"""Configuration module for the TypeWriter notes core."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from typewriter import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the notes database
_USER_ENV = Path.home() / "TypeWriter" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR_NAME = "TypeWriter"
DEFAULT_DATABASE_NAME = "notes.db"


class TypeWriterConfig(BaseModel):
    """Configuration for the TypeWriter notes core."""

    # Directory holding notes.db, logs and metrics
    data_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("TYPEWRITER_DATA_DIR", str(Path.home() / DEFAULT_DATA_DIR_NAME))
        )
    )
    database_name: str = Field(
        default_factory=lambda: os.getenv(
            "TYPEWRITER_DATABASE_NAME", DEFAULT_DATABASE_NAME
        )
    )
    # SQLite page cache, in pages (positive values only)
    cache_size: int = Field(
        default_factory=lambda: int(os.getenv("TYPEWRITER_CACHE_SIZE", "1000"))
    )
    # Quiet period before a note edit is written back
    debounce_ms: int = Field(
        default_factory=lambda: int(os.getenv("TYPEWRITER_DEBOUNCE_MS", "500"))
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("TYPEWRITER_LOG_DIR"))
            if os.getenv("TYPEWRITER_LOG_DIR")
            else None
        )
    )
    # Server configuration
    server_name: str = Field(
        default_factory=lambda: os.getenv("TYPEWRITER_SERVER_NAME", "typewriter")
    )
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "TypeWriterConfig":
        """Reject settings SQLite or the debounce timer cannot use."""
        if self.cache_size < 1:
            raise ValueError("cache_size must be >= 1")
        if self.debounce_ms < 0:
            raise ValueError("debounce_ms must be >= 0")
        if not self.database_name.strip():
            raise ValueError("database_name cannot be empty")
        return self

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    def get_database_path(self) -> Path:
        """Get the absolute path of the notes database file.

        The directory is not created here; StorageEngine.initialize() does
        that so a failure surfaces as a StorageInitError.
        """
        return self.data_dir.expanduser() / self.database_name

    def get_log_dir(self) -> Path:
        """Get the log directory, defaulting to <data_dir>/logs."""
        if self.log_dir is not None:
            return self.log_dir.expanduser()
        return self.data_dir.expanduser() / "logs"

    def get_metrics_file(self) -> Path:
        return self.data_dir.expanduser() / "metrics.json"


# Create a global config instance
config = TypeWriterConfig()
