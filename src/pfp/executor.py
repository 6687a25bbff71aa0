"""Job-slot bounded concurrent execution of one chunk at a time"""

import logging
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from time import time

from pfp import prometheus as prom
from pfp.actions import Runner
from pfp.models import ExecutionResult, ExecutionStatus
from pfp.scheduler import Chunk, FileTask
from pfp.stop_token import StopToken


logger = logging.getLogger(__name__)


class JobSlots:
    """Counting gate that bounds concurrently running invocations.

    Tracks the live number of holders and the highest value seen, which lets
    callers verify the bound was honored.
    """

    def __init__(self, count: int):
        if count < 1:
            raise ValueError(f'job slot count must be >= 1, got {count}')
        self.count = count
        self._semaphore = threading.BoundedSemaphore(count)
        self._lock = threading.Lock()
        self.active = 0
        self.peak = 0

    @contextmanager
    def acquire(self) -> Iterator[None]:
        """Block until a slot is free and hold it for the duration of the block."""
        self._semaphore.acquire()
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        prom.active_jobs.inc()
        try:
            yield
        finally:
            prom.active_jobs.dec()
            with self._lock:
                self.active -= 1
            self._semaphore.release()


class ChunkExecutor:
    """Runs the configured command against every task of a chunk.

    At most ``slots.count`` invocations run at any instant. The worker pool is
    created once and reused for every chunk and pass, so the bound holds
    system-wide rather than per chunk.

    Usage:
        with ChunkExecutor(runner, JobSlots(4), stop_token) as executor:
            results = executor.run_chunk(chunk, on_result=reporter.record)
    """

    def __init__(
        self,
        runner: Runner,
        slots: JobSlots,
        stop_token: StopToken | None = None,
    ):
        self.runner = runner
        self.slots = slots
        self.stop_token = stop_token or StopToken()
        self._pool: ThreadPoolExecutor | None = None

    def __enter__(self) -> 'ChunkExecutor':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def start(self) -> None:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.slots.count, thread_name_prefix='pfp-job')
            prom.job_slots.set(self.slots.count)

    def shutdown(self) -> None:
        """Wait for running invocations and release the worker threads."""
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def _execute(self, task: FileTask) -> ExecutionResult:
        """Worker body: wait for a slot, then run the command unless stopping."""
        with self.slots.acquire():
            if self.stop_token.is_set():
                now = time()
                return ExecutionResult(
                    task=task,
                    status=ExecutionStatus.CANCELLED,
                    error='Stop requested before launch',
                    started_at=now,
                    finished_at=now,
                )
            try:
                return self.runner(task)
            except Exception as e:
                logger.exception(f'[EXEC] Runner crashed for {task.path}')
                now = time()
                return ExecutionResult(
                    task=task,
                    status=ExecutionStatus.FAILED,
                    error=f'Runner error: {e}',
                    started_at=now,
                    finished_at=now,
                )

    def run_chunk(
        self,
        chunk: Chunk,
        on_result: Callable[[ExecutionResult], None] | None = None,
    ) -> list[ExecutionResult]:
        """Execute every task in ``chunk`` and wait until all have resolved.

        Results are handed to ``on_result`` from the calling thread, one at a
        time, in completion order.

        Args:
            chunk: Chunk to execute
            on_result: Optional callback for each result as it arrives

        Returns:
            One ExecutionResult per task, in completion order
        """
        self.start()
        future_to_task: dict[Future, FileTask] = {self._pool.submit(self._execute, task): task for task in chunk}

        results: list[ExecutionResult] = []
        for future in as_completed(future_to_task):
            task = future_to_task[future]
            try:
                result = future.result()
            except Exception as e:
                # _execute never raises; this covers pool-level failures
                now = time()
                result = ExecutionResult(
                    task=task,
                    status=ExecutionStatus.FAILED,
                    error=f'Executor error: {e}',
                    started_at=now,
                    finished_at=now,
                )
            results.append(result)
            if on_result is not None:
                on_result(result)

        return results
