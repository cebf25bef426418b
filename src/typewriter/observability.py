"""Observability utilities for the TypeWriter notes core.

Provides logging configuration with rotation, operation timing and
per-operation metrics for the RPC boundary.
"""
import json
import logging
import re
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Every module logs under this hierarchy via logging.getLogger(__name__)
ROOT_LOGGER_NAME = "typewriter"

# Global flag to track if logging has been configured
_logging_configured = False

_MAX_ERROR_LENGTH = 200


def _sanitize_error_message(message: Optional[str], max_length: int = _MAX_ERROR_LENGTH) -> Optional[str]:
    """Make an error message safe to persist in metrics.

    Replaces the home directory with ``~``, flattens line breaks,
    collapses runs of whitespace and truncates with an ellipsis.
    """
    if message is None:
        return None
    home = str(Path.home())
    if home and home != "/":
        message = message.replace(home, "~")
    message = message.replace("\r", " ").replace("\n", " ")
    message = re.sub(r"\s+", " ", message).strip()
    if len(message) > max_length:
        message = message[: max_length - 3] + "..."
    return message


def _file_handler_for(target: logging.Logger, log_file: Path) -> Optional[RotatingFileHandler]:
    resolved = log_file.resolve()
    for handler in target.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename).resolve() == resolved:
            return handler
    return None


def _has_console_handler(target: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in target.handlers
    )


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB per file
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Send the ``typewriter`` loggers to a rotating file under ``log_dir``.

    Calling it again with the same directory only updates the level; it
    never stacks a second handler on the same file.

    Args:
        log_dir: Where typewriter.log goes. Defaults to config.get_log_dir()
        level: Level for the logger hierarchy and its handlers
        max_bytes: Rotate once the file reaches this size
        backup_count: Rotated files kept beside the live one
        console: Also log to stderr

    Returns:
        The log directory, created if missing
    """
    global _logging_configured

    if log_dir is None:
        from typewriter.config import config

        log_dir = config.get_log_dir()
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / "typewriter.log"

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    handler = _file_handler_for(package_logger, log_file)
    if handler is None:
        handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)
    handler.setLevel(level)

    if console and not _has_console_handler(package_logger):
        stream = logging.StreamHandler()
        stream.setLevel(level)
        stream.setFormatter(formatter)
        package_logger.addHandler(stream)

    _logging_configured = True
    package_logger.info(f"Logging to {log_file} (rotating at {max_bytes} bytes, keeping {backup_count})")

    return log_path


def is_logging_configured() -> bool:
    """Whether configure_logging() has attached the file handler."""
    return _logging_configured


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class OperationMetrics:
    """Running totals for one boundary operation name."""

    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: Optional[float] = None
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    def record(self, duration_ms: float, success: bool, error: Optional[str]) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        if self.min_duration_ms is None or duration_ms < self.min_duration_ms:
            self.min_duration_ms = duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if success:
            self.success_count += 1
            return
        self.error_count += 1
        self.last_error = _sanitize_error_message(error)
        self.last_error_time = datetime.now(timezone.utc)

    def snapshot(self) -> Dict[str, Any]:
        """Rounded, derived view for reporting."""
        calls = self.count or 1
        return {
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "success_rate": self.success_count / calls if self.count else 0,
            "avg_duration_ms": round(self.total_duration_ms / calls, 2),
            "min_duration_ms": round(self.min_duration_ms or 0.0, 2),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "last_error": self.last_error,
            "last_error_time": _iso(self.last_error_time),
        }

    def to_record(self) -> Dict[str, Any]:
        """Raw totals as written to the metrics file."""
        return {
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "total_duration_ms": self.total_duration_ms,
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "last_error": self.last_error,
            "last_error_time": _iso(self.last_error_time),
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "OperationMetrics":
        error_time = data.get("last_error_time")
        return cls(
            count=int(data.get("count", 0)),
            success_count=int(data.get("success_count", 0)),
            error_count=int(data.get("error_count", 0)),
            total_duration_ms=float(data.get("total_duration_ms", 0.0)),
            min_duration_ms=data.get("min_duration_ms"),
            max_duration_ms=float(data.get("max_duration_ms", 0.0)),
            last_error=data.get("last_error"),
            last_error_time=datetime.fromisoformat(error_time) if error_time else None,
        )


class MetricsCollector:
    """Per-operation counters and timings for the boundary.

    Safe to share between threads (the mirror writes from timer
    threads). Stays in memory until given a metrics file; with one, the
    totals survive restarts.
    """

    def __init__(
        self,
        metrics_file: Optional[Union[str, Path]] = None,
        auto_save_interval: int = 0,
    ):
        """Initialize the metrics collector.

        Args:
            metrics_file: JSON file to load from and save to, or None.
            auto_save_interval: Save after this many recorded operations
                                (0 saves only on request).
        """
        self._lock = Lock()
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._start_time = datetime.now(timezone.utc)
        self._metrics_file = Path(metrics_file) if metrics_file else None
        self._auto_save_interval = auto_save_interval
        self._unsaved = 0

        if self._metrics_file is not None:
            self._load_metrics()

    def set_metrics_file(self, metrics_file: Union[str, Path]) -> None:
        """Point the collector at a file, loading any metrics already there."""
        with self._lock:
            self._metrics_file = Path(metrics_file)
        self._load_metrics()

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Add one call of ``operation`` to the totals."""
        with self._lock:
            self._metrics[operation].record(duration_ms, success, error)
            self._unsaved += 1
            if 0 < self._auto_save_interval <= self._unsaved:
                self._save_metrics_unlocked()

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation snapshot, keyed by operation name."""
        with self._lock:
            return {name: m.snapshot() for name, m in self._metrics.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across every operation since the collector started."""
        with self._lock:
            calls = sum(m.count for m in self._metrics.values())
            successes = sum(m.success_count for m in self._metrics.values())
            return {
                "uptime_seconds": (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                "total_operations": calls,
                "total_success": successes,
                "total_errors": calls - successes,
                "overall_success_rate": successes / calls if calls else 1.0,
                "operations_tracked": sorted(self._metrics),
            }

    def reset(self) -> None:
        """Drop every total and restart the uptime clock."""
        with self._lock:
            self._metrics.clear()
            self._start_time = datetime.now(timezone.utc)
            self._unsaved = 0

    def _load_metrics(self) -> bool:
        """Merge totals from the metrics file. Returns True if it was read."""
        with self._lock:
            path = self._metrics_file
            if path is None or not path.exists():
                return False
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                loaded = {
                    name: OperationMetrics.from_record(record)
                    for name, record in data.get("operations", {}).items()
                }
                start_time = data.get("start_time")
                if start_time:
                    self._start_time = datetime.fromisoformat(start_time)
            except (json.JSONDecodeError, AttributeError, TypeError, ValueError, OSError) as e:
                logger.warning(f"Ignoring unreadable metrics file {path}: {e}")
                return False
            self._metrics.update(loaded)
            logger.debug(f"Loaded metrics for {len(loaded)} operations from {path}")
            return True

    def _save_metrics_unlocked(self) -> bool:
        """Write the metrics file (lock held)."""
        path = self._metrics_file
        if path is None:
            return False
        data = {
            "start_time": self._start_time.isoformat(),
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "operations": {name: m.to_record() for name, m in self._metrics.items()},
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write beside the target, then swap it in
            temp_file = path.with_suffix(".tmp")
            temp_file.write_text(json.dumps(data, indent=2), encoding="utf-8")
            temp_file.replace(path)
        except OSError as e:
            logger.error(f"Failed to save metrics to {path}: {e}")
            return False
        self._unsaved = 0
        return True

    def save_metrics(self) -> bool:
        """Write the metrics file now. False when there is none or it failed."""
        with self._lock:
            return self._save_metrics_unlocked()


# Process-wide collector; in memory until main() points it at a file
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, collector: Optional[MetricsCollector] = None, **context):
    """Time a block and record it as one call of ``operation``.

    The yielded dict carries a short correlation id used in the debug log
    lines. Anything stored in it is logged at the end; storing ``error``
    records a failure that was handled without raising.

    Example:
        with timed_operation("get-all-data") as op:
            tree = store.get_all_data()
            op["sections"] = len(tree)
    """
    target = collector or metrics
    info: Dict[str, Any] = {"correlation_id": uuid.uuid4().hex[:8]}
    tag = info["correlation_id"]
    started = time.perf_counter()
    logger.debug(
        f"[{tag}] START {operation} ({', '.join(f'{k}={v}' for k, v in context.items())})"
    )

    raised: Optional[str] = None
    try:
        yield info
    except Exception as e:
        raised = str(e)
        raise
    finally:
        error = raised if raised is not None else info.get("error")
        success = error is None
        elapsed_ms = (time.perf_counter() - started) * 1000
        target.record_operation(operation, elapsed_ms, success, None if success else str(error))

        extras = ", ".join(
            f"{k}={v}" for k, v in info.items() if k not in ("correlation_id", "error")
        )
        outcome = "OK" if success else f"ERROR: {error}"
        logger.debug(f"[{tag}] END {operation} ({elapsed_ms:.2f}ms) [{outcome}] {extras}")
