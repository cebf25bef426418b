"""Owner of the on-disk notes database handle."""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from typewriter.config import config
from typewriter.exceptions import ErrorCode, NotInitializedError, StorageInitError
from typewriter.models.db_models import (
    create_schema,
    create_storage_engine,
    get_session_factory,
)

logger = logging.getLogger(__name__)


def _validate_key(key: Any) -> str:
    """Check an optional database key before it goes near a PRAGMA."""
    if not isinstance(key, str):
        raise StorageInitError(
            "Database key must be a string", code=ErrorCode.INVALID_KEY
        )
    if not key:
        raise StorageInitError(
            "Database key cannot be empty", code=ErrorCode.INVALID_KEY
        )
    if any(ch in key for ch in ("\x00", "\n", "\r")):
        raise StorageInitError(
            "Database key contains control characters", code=ErrorCode.INVALID_KEY
        )
    return key


class StorageEngine:
    """Explicitly owned handle to the notes database.

    Nothing is opened in the constructor. ``initialize()`` creates the
    directory, opens the file, applies pragmas and creates the schema;
    ``close()`` releases the handle. Every other method raises
    NotInitializedError until ``initialize()`` has succeeded.
    """

    def __init__(
        self,
        database_path: Optional[Path] = None,
        cache_size: Optional[int] = None,
    ):
        """Initialize the engine wrapper.

        Args:
            database_path: Path to the SQLite file. Defaults to
                           <home>/TypeWriter/notes.db via config.
            cache_size: SQLite page cache size in pages.
        """
        self._database_path = Path(database_path) if database_path else config.get_database_path()
        self._cache_size = cache_size if cache_size is not None else config.cache_size
        self._engine: Optional[Engine] = None
        self._session_factory = None

    @property
    def database_path(self) -> Path:
        return self._database_path

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    def initialize(self, key: Optional[str] = None) -> None:
        """Open or create the store and make sure the schema exists.

        Safe to call on an existing database. Calling it on an already
        initialized engine reopens the handle.

        Args:
            key: Optional database key. Validated and quoted; inert on
                 SQLite builds without encryption support.

        Raises:
            StorageInitError: If the directory or database cannot be
                created or opened. No handle is retained afterwards.
        """
        # Drop any prior handle so a failure below leaves nothing behind
        self.close()

        if key is not None:
            key = _validate_key(key)

        path = self._database_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create data directory {path.parent}: {e}")
            raise StorageInitError(
                "Could not create the data directory",
                path=str(path.parent),
                original_error=e,
            )

        engine = None
        try:
            engine = create_storage_engine(path, cache_size=self._cache_size, key=key)
            create_schema(engine)
            # Touch the file through a real connection so corruption shows up now
            with engine.connect() as conn:
                conn.execute(text("SELECT count(*) FROM sqlite_master")).scalar()
        except (SQLAlchemyError, sqlite3.Error, OSError, ValueError) as e:
            if engine is not None:
                engine.dispose()
            logger.error(f"Database initialization failed: {e}")
            raise StorageInitError(
                "Could not open the notes database",
                path=str(path),
                original_error=e,
            )

        self._engine = engine
        self._session_factory = get_session_factory(engine)
        logger.info(f"Database opened: {path}")

    def _require_engine(self, operation: str) -> Engine:
        if self._engine is None:
            raise NotInitializedError(operation)
        return self._engine

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield an ORM session bound to the open database."""
        self._require_engine("session")
        with self._session_factory() as session:
            yield session

    def execute(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """Run a single parameterized write statement and commit it.

        Values must be passed through ``params`` as named bind
        parameters (``:name``); they are never formatted into the SQL.

        Returns:
            Number of rows affected.
        """
        engine = self._require_engine("execute")
        with engine.begin() as conn:
            result = conn.execute(text(statement), dict(params or {}))
            return result.rowcount

    def query(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> List[Row]:
        """Run a parameterized read statement and return all rows."""
        engine = self._require_engine("query")
        with engine.connect() as conn:
            return list(conn.execute(text(statement), dict(params or {})).fetchall())

    def pragma(self, name: str) -> Any:
        """Read the current value of a PRAGMA on a pooled connection."""
        if not name.replace("_", "").isalnum():
            raise ValueError(f"Invalid pragma name: {name!r}")
        engine = self._require_engine("pragma")
        with engine.connect() as conn:
            return conn.execute(text(f"PRAGMA {name}")).scalar()

    def close(self) -> None:
        """Release the handle. Idempotent and safe before initialize()."""
        if self._engine is not None:
            self._engine.dispose()
            logger.info(f"Database closed: {self._database_path}")
        self._engine = None
        self._session_factory = None
