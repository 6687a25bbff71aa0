"""Per-chunk and per-pass outcome reporting.

The reporter only observes: it logs and updates metrics, it never retries or
influences control flow.
"""

import logging
import threading
from time import time

from pfp import prometheus as prom
from pfp.models import ChunkSummary, ExecutionResult, ExecutionStatus, PassSummary
from pfp.scheduler import Chunk
from pfp.utils import human_readable_duration


logger = logging.getLogger(__name__)


class Reporter:
    """Accumulates ExecutionResults as they arrive and summarizes them."""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._lock = threading.Lock()
        self._pass_number = 0
        self._pass_started_at = 0.0
        self._pass_counts = self._empty_counts()
        self._chunks = 0
        self._failed_files: list[str] = []
        self._chunk: Chunk | None = None
        self._chunk_started_at = 0.0
        self._chunk_counts = self._empty_counts()

    @staticmethod
    def _empty_counts() -> dict[ExecutionStatus, int]:
        return {status: 0 for status in ExecutionStatus}

    @property
    def pass_number(self) -> int:
        return self._pass_number

    def start_pass(self) -> int:
        """Reset pass accumulators and return the new pass number."""
        with self._lock:
            self._pass_number += 1
            self._pass_started_at = time()
            self._pass_counts = self._empty_counts()
            self._chunks = 0
            self._failed_files = []
        logger.info(f'[PASS {self._pass_number}] START')
        return self._pass_number

    def start_chunk(self, chunk: Chunk) -> None:
        with self._lock:
            self._chunk = chunk
            self._chunk_started_at = time()
            self._chunk_counts = self._empty_counts()
        logger.debug(f'[PASS {self._pass_number}] chunk {chunk.index} ({len(chunk)}): START')

    def record(self, result: ExecutionResult) -> None:
        """Ingest one result. Safe to call from any thread."""
        with self._lock:
            self._pass_counts[result.status] += 1
            self._chunk_counts[result.status] += 1
            if result.status == ExecutionStatus.FAILED:
                self._failed_files.append(result.task.path)

        prom.files_processed_total.labels(status=result.status.value).inc()
        if result.status != ExecutionStatus.CANCELLED:
            prom.file_duration_seconds.observe(result.duration_seconds)

        self._log_result(result)

    def _log_result(self, result: ExecutionResult) -> None:
        path = result.task.path
        if result.status == ExecutionStatus.SUCCEEDED:
            logger.debug(f'Processed file: {path} ({result.duration_seconds:.3f}s)')
        elif result.status == ExecutionStatus.CANCELLED:
            logger.info(f'Cancelling task for file: {path}')
        else:
            logger.error(f'Command failed for file: {path}: {result.error}')
            if result.stderr and result.stderr.strip():
                logger.error(f'stderr: {result.stderr.rstrip()}')

        if self.debug:
            if result.stdout and result.stdout.strip():
                logger.debug(f'stdout: {result.stdout.rstrip()}')
            if result.status == ExecutionStatus.SUCCEEDED and result.stderr and result.stderr.strip():
                logger.debug(f'stderr: {result.stderr.rstrip()}')

    def finish_chunk(self) -> ChunkSummary:
        """Log and return the counts of the current chunk."""
        with self._lock:
            chunk = self._chunk
            counts = dict(self._chunk_counts)
            self._chunks += 1
            self._chunk = None

        summary = ChunkSummary(
            pass_number=self._pass_number,
            chunk_index=chunk.index if chunk else self._chunks,
            size=len(chunk) if chunk else sum(counts.values()),
            succeeded=counts[ExecutionStatus.SUCCEEDED],
            failed=counts[ExecutionStatus.FAILED],
            cancelled=counts[ExecutionStatus.CANCELLED],
            duration_seconds=time() - self._chunk_started_at,
        )
        prom.chunks_processed_total.inc()

        message = (
            f'[PASS {summary.pass_number}] chunk {summary.chunk_index} ({summary.size}): DONE '
            f'{summary.succeeded} succeeded, {summary.failed} failed'
        )
        if summary.cancelled:
            message += f', {summary.cancelled} cancelled'
        logger.info(f'{message} in {human_readable_duration(summary.duration_seconds)}')
        return summary

    def finish_pass(self, interrupted: bool = False) -> PassSummary:
        """Log and return the PassSummary of the current pass."""
        with self._lock:
            counts = dict(self._pass_counts)
            summary = PassSummary(
                pass_number=self._pass_number,
                total=sum(counts.values()),
                succeeded=counts[ExecutionStatus.SUCCEEDED],
                failed=counts[ExecutionStatus.FAILED],
                cancelled=counts[ExecutionStatus.CANCELLED],
                chunks=self._chunks,
                started_at=self._pass_started_at,
                finished_at=time(),
                failed_files=list(self._failed_files),
                interrupted=interrupted,
            )

        prom.passes_total.inc()
        prom.pass_duration_seconds.observe(summary.duration_seconds)
        for status in ExecutionStatus:
            prom.last_pass_files.labels(status=status.value).set(counts[status])

        logger.debug(f'Total number of files {summary.total}')
        logger.debug(f'Total number of processed files {summary.succeeded}')
        logger.debug(f'Total number of errored files {summary.failed}')
        logger.info(
            f'[PASS {summary.pass_number}] DONE: {summary.total} files, {summary.succeeded} succeeded, '
            f'{summary.failed} failed, {summary.cancelled} cancelled, {summary.chunks} chunks '
            f'in {human_readable_duration(summary.duration_seconds)}'
            + (' (interrupted)' if interrupted else '')
        )
        return summary
