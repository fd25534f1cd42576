"""Fixed-size pool of worker threads fed from a job queue.

Each worker takes one job at a time, hands it to the processor and puts a
JobResult on the results queue, until the pool is closed and the job queue
is drained. There is no cancellation: a worker blocked in a remote call
stays blocked until the call returns.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Generic, TypeVar

from .config import DEFAULT_WORKERS

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)

JobT = TypeVar("JobT")


@dataclass(frozen=True)
class WorkerContext:
    """Passed to the processor with every job."""

    worker_id: int


@dataclass(frozen=True)
class JobResult(Generic[JobT]):
    job: JobT
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _Closed:
    """Marks the end of the job stream; one is queued per worker."""


_CLOSED: Final[_Closed] = _Closed()


class WorkerPool(Generic[JobT]):
    """Runs a processor over queued jobs with a bounded number of threads.

    Usage:
        pool = WorkerPool(process, jobs, results, size=5)
        pool.start()
        for job in work:
            pool.submit(job)
        pool.close()
        outcomes = [results.get() for _ in work]
    """

    def __init__(
        self,
        processor: Callable[[JobT, WorkerContext], None],
        jobs: queue.Queue[JobT | _Closed],
        results: queue.Queue[JobResult[JobT]],
        *,
        size: int = DEFAULT_WORKERS,
    ) -> None:
        if size < 1:
            msg = f"Worker pool size must be at least 1, got {size}"
            raise ValueError(msg)
        self._processor: Callable[[JobT, WorkerContext], None] = processor
        self._jobs: queue.Queue[JobT | _Closed] = jobs
        self._results: queue.Queue[JobResult[JobT]] = results
        self._size: int = size
        self._threads: list[threading.Thread] = []
        self._closed: bool = False

    @property
    def size(self) -> int:
        return self._size

    def start(self) -> None:
        if self._threads:
            msg = "Worker pool already started"
            raise RuntimeError(msg)
        for worker_id in range(1, self._size + 1):
            thread = threading.Thread(
                target=self._work, args=(WorkerContext(worker_id),), name=f"worker-{worker_id}", daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def submit(self, job: JobT) -> None:
        if self._closed:
            msg = "Cannot submit to a closed worker pool"
            raise RuntimeError(msg)
        self._jobs.put(job)

    def close(self) -> None:
        """Signal that no more jobs will come; workers exit once the queue is drained."""
        if self._closed:
            return
        self._closed = True
        for _ in range(self._size):
            self._jobs.put(_CLOSED)

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def _work(self, context: WorkerContext) -> None:
        logger.debug(f"worker {context.worker_id} started")
        while True:
            job = self._jobs.get()
            if isinstance(job, _Closed):
                break
            logger.debug("job received")
            try:
                self._processor(job, context)
            except Exception as e:  # noqa: BLE001 - reported through the results queue
                self._results.put(JobResult(job, e))
            else:
                self._results.put(JobResult(job))
            logger.debug("job finished")
        logger.debug(f"worker {context.worker_id} finished")
