"""
Best-effort background work.

Fire-and-forget tasks run on a small thread pool. Task errors are logged
but never propagate: the response that scheduled the task has already
been produced.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundTasks:
    """
    Process-wide queue for best-effort tasks.

    Constructed once per process and passed by reference to whatever needs
    to schedule cleanup. Call shutdown() on process exit.
    """

    def __init__(self, max_workers: int = 2):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="background",
        )

    def submit(self, fn: Callable, *args, description: str | None = None) -> Future:
        """
        Schedule fn(*args) without waiting for it.

        Returns the Future, mostly so tests can wait on it.
        """
        label = description or getattr(fn, "__name__", "task")
        future = self._executor.submit(fn, *args)
        future.add_done_callback(lambda f: self._on_done(f, label))
        return future

    @staticmethod
    def _on_done(future: Future, label: str) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed",
                label,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks; optionally wait for queued ones."""
        self._executor.shutdown(wait=wait)


def call_with_timeout(fn: Callable[..., T], timeout: float, *args) -> T:
    """
    Run fn(*args) with an upper bound on how long the caller waits.

    The worker thread is not killed on timeout; the caller simply stops
    waiting for it.

    Raises:
        TimeoutError: If fn does not finish within timeout seconds.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bounded-call")
    try:
        future = executor.submit(fn, *args)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            raise TimeoutError(
                f"{getattr(fn, '__name__', 'call')} did not finish within {timeout}s"
            )
    finally:
        executor.shutdown(wait=False)
