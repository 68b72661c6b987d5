# tests/test_serial_executor.py
"""Tests for the single-writer background executor."""
import asyncio
import threading
import time

import pytest

from qingnote.exceptions import ErrorCode, StorageError
from qingnote.observability import metrics
from qingnote.storage.serial_executor import (SerialExecutor,
                                              capture_dispatcher)


@pytest.fixture
def executor():
    executor = SerialExecutor("test-writer")
    yield executor
    executor.shutdown()


class TestSerialExecutor:
    """Ordering and failure isolation."""

    def test_tasks_run_in_submission_order(self, executor):
        order = []

        def task(i):
            # Earlier tasks sleep longer; FIFO must still hold
            time.sleep(0.001 * (10 - i))
            order.append(i)

        for i in range(10):
            executor.submit(task, i)
        executor.drain()
        assert order == list(range(10))

    def test_one_task_at_a_time(self, executor):
        active = []
        peak = []
        lock = threading.Lock()

        def task():
            with lock:
                active.append(1)
                peak.append(len(active))
            time.sleep(0.002)
            with lock:
                active.pop()

        for _ in range(5):
            executor.submit(task)
        executor.drain()
        assert max(peak) == 1

    def test_runs_off_caller_thread(self, executor):
        name = executor.submit(lambda: threading.current_thread().name).result()
        assert name.startswith("test-writer")
        assert name != threading.current_thread().name

    def test_failure_does_not_kill_worker(self, executor):
        def boom():
            raise RuntimeError("task failed")

        failed = executor.submit(boom)
        after = executor.submit(lambda: "still alive")
        with pytest.raises(RuntimeError):
            failed.result()
        assert after.result() == "still alive"

    def test_tasks_are_timed(self, executor):
        metrics.reset()
        executor.submit(lambda: None, operation="note.insert").result()
        assert metrics.get_metrics()["note.insert"]["count"] == 1

    def test_submit_after_shutdown(self):
        executor = SerialExecutor("closing")
        executor.shutdown()
        with pytest.raises(StorageError) as exc_info:
            executor.submit(lambda: None)
        assert exc_info.value.code == ErrorCode.WORKER_SHUT_DOWN
        executor.drain()  # no-op once shut down


class TestCallerDispatch:
    """Callbacks return to the caller's context."""

    def test_inline_without_loop(self):
        calls = []
        dispatch = capture_dispatcher()
        dispatch(lambda: calls.append(threading.current_thread().name))
        assert calls == [threading.current_thread().name]

    def test_default_dispatcher_used_without_loop(self):
        queued = []
        dispatch = capture_dispatcher(queued.append)
        dispatch(lambda: None)
        assert len(queued) == 1

    @pytest.mark.anyio
    async def test_loop_thread_receives_callback(self, executor):
        loop_thread = threading.current_thread().name
        dispatch = capture_dispatcher()
        done = asyncio.Event()
        seen = []

        def callback():
            seen.append(threading.current_thread().name)
            done.set()

        executor.submit(lambda: dispatch(callback))
        await asyncio.wait_for(done.wait(), timeout=5)
        assert seen == [loop_thread]
