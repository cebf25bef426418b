"""Tests for keyed debounce timers."""
import threading
import time

import pytest

from typewriter.mirror.debounce import Debouncer


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestDebouncer:
    """Tests for the Debouncer class."""

    def test_burst_runs_once_with_last_task(self):
        debouncer = Debouncer(0.05)
        calls = []
        done = threading.Event()

        def task(value):
            def run():
                calls.append(value)
                done.set()
            return run

        for value in (1, 2, 3):
            debouncer.schedule("n1", task(value))

        assert done.wait(2.0)
        time.sleep(0.15)
        assert calls == [3]
        assert not debouncer.pending()

    def test_rearm_delays_execution(self):
        debouncer = Debouncer(0.5)
        calls = []
        debouncer.schedule("n1", lambda: calls.append("first"))
        time.sleep(0.2)
        debouncer.schedule("n1", lambda: calls.append("second"))
        time.sleep(0.35)
        # The first timer would have fired by now had it not been replaced
        assert calls == []
        assert _wait_for(lambda: calls == ["second"])

    def test_keys_are_independent(self):
        debouncer = Debouncer(0.05)
        calls = []
        debouncer.schedule("a", lambda: calls.append("a"))
        debouncer.schedule("b", lambda: calls.append("b"))
        assert _wait_for(lambda: sorted(calls) == ["a", "b"])

    def test_cancel_prevents_run(self):
        debouncer = Debouncer(0.05)
        calls = []
        debouncer.schedule("n1", lambda: calls.append(1))

        assert debouncer.cancel("n1") is True
        assert debouncer.cancel("n1") is False
        time.sleep(0.15)
        assert calls == []

    def test_flush_runs_on_caller_thread(self):
        debouncer = Debouncer(10.0)
        threads = []
        debouncer.schedule("n1", lambda: threads.append(threading.current_thread()))

        assert debouncer.flush("n1") is True
        assert threads == [threading.current_thread()]
        assert debouncer.flush("n1") is False

    def test_flush_all(self):
        debouncer = Debouncer(10.0)
        calls = []
        for key in ("a", "b", "c"):
            debouncer.schedule(key, lambda key=key: calls.append(key))

        assert sorted(debouncer.pending_keys()) == ["a", "b", "c"]
        assert debouncer.flush_all() == 3
        assert sorted(calls) == ["a", "b", "c"]
        assert debouncer.pending_keys() == []

    def test_pending(self):
        debouncer = Debouncer(10.0)
        assert debouncer.pending() is False
        debouncer.schedule("n1", lambda: None)
        assert debouncer.pending() is True
        assert debouncer.pending("n1") is True
        assert debouncer.pending("n2") is False
        debouncer.shutdown()

    def test_failing_task_is_contained(self):
        debouncer = Debouncer(10.0)
        calls = []

        def broken():
            raise RuntimeError("boom")

        debouncer.schedule("bad", broken)
        debouncer.schedule("good", lambda: calls.append("good"))
        assert debouncer.flush_all() == 2
        assert calls == ["good"]

    def test_shutdown_with_flush(self):
        debouncer = Debouncer(10.0)
        calls = []
        debouncer.schedule("n1", lambda: calls.append(1))

        debouncer.shutdown(flush=True)
        assert calls == [1]

        debouncer.schedule("n1", lambda: calls.append(2))
        assert not debouncer.pending()

    def test_shutdown_without_flush_drops_tasks(self):
        debouncer = Debouncer(0.05)
        calls = []
        debouncer.schedule("n1", lambda: calls.append(1))
        debouncer.shutdown()
        time.sleep(0.15)
        assert calls == []

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            Debouncer(-1)
