"""Fixed-size worker pool for feed jobs.

Wraps a ThreadPoolExecutor. Shutdown waits for every submitted job, so
jobs already queued always run to completion.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

logger = logging.getLogger(__name__)

Job = Callable[[], None]


class WorkerPool:
    """Bounded pool of threads executing submitted jobs.

    Example:
        with WorkerPool(size=4) as pool:
            for feed in feeds:
                pool.submit(lambda feed=feed: check(feed))
        # all jobs finished, all workers joined
    """

    def __init__(self, size: int, name: str = "feed"):
        """Start the executor.

        Args:
            size: Number of worker threads (at least 1).
            name: Prefix for worker thread names.

        Raises:
            ValueError: If size is less than 1.
        """
        if size < 1:
            raise ValueError(f"Worker pool size must be >= 1, got {size}")

        self.size = size
        self._executor = ThreadPoolExecutor(
            max_workers=size,
            thread_name_prefix=name,
        )
        self._lock = threading.Lock()
        self._closed = False

        logger.debug(f"WorkerPool started with {size} workers")

    def submit(self, job: Job) -> None:
        """Queue a job for execution by the first free worker.

        Raises:
            RuntimeError: If the pool has been shut down.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("WorkerPool is shut down")
            future = self._executor.submit(job)
        future.add_done_callback(self._log_failure)

    def shutdown(self) -> None:
        """Stop all workers after they finish queued jobs.

        Blocks until every job has run. Safe to call twice.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._executor.shutdown(wait=True)
        logger.debug("WorkerPool stopped")

    @property
    def is_shut_down(self) -> bool:
        return self._closed

    @staticmethod
    def _log_failure(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(
                "Worker job raised an unhandled exception",
                exc_info=(type(error), error, error.__traceback__),
            )

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
