"""
Process-wide request queue backed by a fixed-size thread pool.

Work items are plain callables.  Submission never blocks and never rejects:
when every worker is busy, items wait in the executor's unbounded queue and
run in submission order as workers free up.  There is no priority and no
cancellation once an item is submitted.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Any, Callable

from .config import REQUEST_QUEUE_WORKERS

logger = logging.getLogger(__name__)

_instance_lock = threading.Lock()


class RequestQueue:
    """
    Dispatcher that decouples caller threads from network latency.

    Args:
        max_workers: Worker pool size.
    """

    _instance: RequestQueue | None = None

    def __init__(self, max_workers: int = REQUEST_QUEUE_WORKERS) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._workers = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="stm-request"
        )

    @classmethod
    def get_instance(cls) -> RequestQueue:
        """Return the shared queue, creating it on first use."""
        with _instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Shut down and forget the shared queue (test and teardown use)."""
        with _instance_lock:
            if cls._instance is not None:
                cls._instance.shutdown()
                cls._instance = None

    def submit(self, work_item: Callable[..., Any], *args: Any) -> concurrent.futures.Future:
        """
        Enqueue ``work_item(*args)`` for execution on a worker thread.

        Returns:
            Future resolving to the work item's return value.
        """
        future = self._workers.submit(work_item, *args)
        future.add_done_callback(_log_failure)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._workers.shutdown(wait=wait)


def _log_failure(future: concurrent.futures.Future) -> None:
    # Work items are expected to trap their own errors; anything left is a bug
    error = future.exception()
    if error is not None:
        logger.error("Request queue work item failed", exc_info=error)
