"""Fake boundary channel for mirror tests.

FakeChannel forwards to a real NotesRpc (so storage behaves for real) and
records every call. Individual operations can be made to fail with a
failure envelope, to raise as a broken transport would, or to stall
before reaching storage.
"""
import threading
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from typewriter.rpc.boundary import NotesRpc, failed


class FakeChannel:
    """Recording, fault-injecting wrapper around a boundary."""

    def __init__(self, inner: Optional[NotesRpc] = None) -> None:
        self.inner = inner
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.fail_ops: Set[str] = set()
        self.raise_ops: Set[str] = set()
        # Per-operation queue of sleeps, one consumed per call
        self.delays: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def invoke(self, operation: str, *args: Any) -> Dict[str, Any]:
        with self._lock:
            self.calls.append((operation, args))
            pending = self.delays.get(operation)
            delay = pending.pop(0) if pending else 0.0
        if delay:
            time.sleep(delay)
        if operation in self.raise_ops:
            raise ConnectionError(f"channel closed during {operation}")
        if operation in self.fail_ops:
            return failed(f"injected failure: {operation}")
        if self.inner is None:
            return {"success": True}
        return self.inner.invoke(operation, *args)

    def calls_for(self, operation: str) -> List[Tuple[Any, ...]]:
        with self._lock:
            return [args for op, args in self.calls if op == operation]
