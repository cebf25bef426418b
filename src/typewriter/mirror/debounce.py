"""Keyed debounce timers."""

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Debouncer:
    """Cancellable delayed tasks, at most one pending per key.

    ``schedule(key, fn)`` cancels whatever is pending for ``key`` and arms
    a fresh timer, so a burst of calls runs ``fn`` once, ``delay`` seconds
    after the last one. Tasks run on the timer thread. A task that raises
    is logged and dropped.
    """

    def __init__(self, delay: float, name: str = "debounce"):
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.delay = delay
        self._name = name
        self._lock = threading.Lock()
        self._tasks: Dict[str, Tuple[threading.Timer, Callable[[], None]]] = {}
        self._shutdown = False

    def schedule(self, key: str, fn: Callable[[], None]) -> None:
        """Arm (or re-arm) the timer for ``key``."""
        with self._lock:
            if self._shutdown:
                logger.debug(f"Debouncer stopped; dropping task for {key}")
                return
            previous = self._tasks.pop(key, None)
            if previous is not None:
                previous[0].cancel()

            timer = threading.Timer(self.delay, self._fire, args=(key,))
            timer.name = f"{self._name}-{key}"
            timer.daemon = True  # Don't block process exit
            self._tasks[key] = (timer, fn)
            timer.start()

    def _take(self, key: str, timer: Optional[threading.Timer] = None) -> Optional[Callable[[], None]]:
        """Remove and return the task for ``key``.

        With ``timer`` given, only take it if that timer is still the
        current one; a timer replaced after it started must not run.
        """
        with self._lock:
            entry = self._tasks.get(key)
            if entry is None:
                return None
            if timer is not None and entry[0] is not timer:
                return None
            del self._tasks[key]
            entry[0].cancel()
            return entry[1]

    def _fire(self, key: str) -> None:
        fn = self._take(key, threading.current_thread())
        if fn is not None:
            self._run(key, fn)

    def _run(self, key: str, fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception as e:
            logger.error(f"Debounced task for {key} failed: {e}", exc_info=True)

    def cancel(self, key: str) -> bool:
        """Drop the pending task for ``key`` without running it."""
        return self._take(key) is not None

    def flush(self, key: str) -> bool:
        """Run the pending task for ``key`` now, on the calling thread."""
        fn = self._take(key)
        if fn is None:
            return False
        self._run(key, fn)
        return True

    def flush_all(self) -> int:
        """Run every pending task now. Returns how many ran."""
        with self._lock:
            keys = list(self._tasks)
        return sum(1 for key in keys if self.flush(key))

    def pending(self, key: Optional[str] = None) -> bool:
        """Whether a task is pending for ``key`` (or for any key)."""
        with self._lock:
            if key is None:
                return bool(self._tasks)
            return key in self._tasks

    def pending_keys(self) -> List[str]:
        with self._lock:
            return list(self._tasks)

    def shutdown(self, flush: bool = False) -> None:
        """Stop accepting tasks; optionally run the pending ones first."""
        if flush:
            self.flush_all()
        with self._lock:
            self._shutdown = True
            for timer, _ in self._tasks.values():
                timer.cancel()
            self._tasks.clear()
