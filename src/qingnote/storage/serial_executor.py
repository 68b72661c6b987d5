"""Single background worker for store mutations.

Every repository funnels its writes through one ``SerialExecutor`` so they
run one at a time, in submission order, off the caller's thread. Callbacks
are handed back to the caller's context: the asyncio loop the caller was
running in, a configured main-thread dispatcher, or (failing both) the
worker thread itself.
"""

import asyncio
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

from qingnote.exceptions import ErrorCode, StorageError
from qingnote.observability import timed_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")

Dispatcher = Callable[[Callable[[], Any]], Any]


def _call_inline(fn: Callable[[], Any]) -> Any:
    return fn()


def capture_dispatcher(default: Optional[Dispatcher] = None) -> Dispatcher:
    """Return a dispatcher that runs callbacks in the calling context.

    Must be called on the caller's thread, before the work is handed off.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop is not None:
        return loop.call_soon_threadsafe
    if default is not None:
        return default
    return _call_inline


class SerialExecutor:
    """FIFO executor with exactly one worker thread.

    A failing task is logged and its exception is stored on the returned
    future; the worker keeps draining the queue.
    """

    def __init__(self, name: str = "qingnote-writer"):
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._shut_down = False

    def submit(
        self,
        fn: Callable[..., T],
        *args: Any,
        operation: Optional[str] = None,
        **kwargs: Any,
    ) -> "Future[T]":
        """Queue ``fn(*args, **kwargs)`` behind every earlier task."""
        op_name = operation or getattr(fn, "__name__", "task")

        def run() -> T:
            with timed_operation(op_name, executor=self.name):
                return fn(*args, **kwargs)

        if self._shut_down:
            raise StorageError(
                f"Executor '{self.name}' is shut down",
                operation=op_name,
                code=ErrorCode.WORKER_SHUT_DOWN,
            )
        try:
            future = self._executor.submit(run)
        except RuntimeError as e:
            raise StorageError(
                f"Executor '{self.name}' is shut down",
                operation=op_name,
                code=ErrorCode.WORKER_SHUT_DOWN,
                original_error=e,
            )
        future.add_done_callback(lambda f: self._log_failure(op_name, f))
        return future

    def _log_failure(self, operation: str, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(
                f"Background task '{operation}' failed: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )

    def drain(self, timeout: Optional[float] = 10.0) -> None:
        """Block until every task queued so far has finished."""
        if self._shut_down:
            return
        self.submit(lambda: None, operation="drain").result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._shut_down = True
        self._executor.shutdown(wait=wait)

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down
