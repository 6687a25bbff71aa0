"""Pass driver: enumerate, chunk, dispatch and summarize, once or forever.

State machine::

    IDLE -> ENUMERATING -> DISPATCHING -> SUMMARIZING -> (SLEEPING -> ENUMERATING | DONE)

Enumeration is streamed: chunks are pulled from the walker one at a time and
each chunk is fully resolved before the next one is pulled.

Stopping is cooperative. A stop request is observed at chunk boundaries and
during the inter-pass sleep, which it interrupts immediately. Invocations
already running are allowed to finish; they are never killed, so the side
effects of the invoked command (partial uploads etc.) are never left half done
by the engine.
"""

import logging
import signal
from collections.abc import Callable
from enum import Enum

from pfp.actions import make_runner
from pfp.executor import ChunkExecutor, JobSlots
from pfp.models import PassSummary, RunConfig
from pfp.reporter import Reporter
from pfp.scheduler import iter_chunks
from pfp.stop_token import StopToken
from pfp.walker import iter_file_tasks


logger = logging.getLogger(__name__)


class PassState(str, Enum):
    IDLE = 'idle'
    ENUMERATING = 'enumerating'
    DISPATCHING = 'dispatching'
    SUMMARIZING = 'summarizing'
    SLEEPING = 'sleeping'
    DONE = 'done'


def install_signal_handlers(stop_token: StopToken) -> Callable[[], None]:
    """Route SIGINT and SIGTERM to ``stop_token``.

    Must be called from the main thread.

    Returns:
        Callable that restores the previous handlers
    """

    def handler(signum, frame):
        stop_token.request_stop(signal.Signals(signum).name)

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.getsignal(sig)
        signal.signal(sig, handler)

    def restore() -> None:
        for sig, prev in previous.items():
            signal.signal(sig, prev)

    return restore


class PassDriver:
    """Runs the enumerate -> chunk -> execute -> report pipeline.

    Args:
        config: Immutable run configuration
        stop_token: Cancellation token (a new one is created if omitted)
        reporter: Result reporter (a new one is created if omitted)
        slots: Job slot gate (sized from config.job_slots if omitted)
    """

    def __init__(
        self,
        config: RunConfig,
        stop_token: StopToken | None = None,
        reporter: Reporter | None = None,
        slots: JobSlots | None = None,
    ):
        self.config = config
        self.stop_token = stop_token or StopToken()
        self.reporter = reporter or Reporter(debug=config.debug)
        self.slots = slots or JobSlots(config.job_slots)
        self.runner = make_runner(config.command)
        self.state = PassState.IDLE
        self.passes_completed = 0

    def _transition(self, state: PassState) -> None:
        logger.debug(f'[DRIVER] {self.state.value} -> {state.value}')
        self.state = state

    def run_pass(self, executor: ChunkExecutor) -> PassSummary:
        """Run one full pass over the input path."""
        self._transition(PassState.ENUMERATING)
        self.reporter.start_pass()

        interrupted = False
        chunks = iter_chunks(iter_file_tasks(self.config.input_path, self.config.extensions), self.config.chunk_size)
        for chunk in chunks:
            if self.stop_token.is_set():
                interrupted = True
                break

            self._transition(PassState.DISPATCHING)
            self.reporter.start_chunk(chunk)
            executor.run_chunk(chunk, on_result=self.reporter.record)
            self.reporter.finish_chunk()
            self._transition(PassState.ENUMERATING)

        if self.stop_token.is_set():
            interrupted = True

        self._transition(PassState.SUMMARIZING)
        summary = self.reporter.finish_pass(interrupted=interrupted)
        self.passes_completed += 1
        return summary

    def _sleep(self) -> bool:
        """Sleep between passes. Returns False if a stop request ended the sleep."""
        self._transition(PassState.SLEEPING)
        logger.info(f'Sleeping for {self.config.sleep_time} seconds...')
        return not self.stop_token.wait(self.config.sleep_time)

    def run(self) -> PassSummary | None:
        """Run a single pass, or loop until stopped in daemon mode.

        Returns:
            The summary of the last pass, or None if stopped before any pass
        """
        logger.debug(f'[DRIVER] {self.config!r}')
        summary: PassSummary | None = None

        with ChunkExecutor(self.runner, self.slots, self.stop_token) as executor:
            while True:
                logger.info('PFP: LOOP START')
                if self.stop_token.is_set():
                    break

                try:
                    summary = self.run_pass(executor)
                except OSError as e:
                    # The root was validated at startup; in daemon mode it may
                    # disappear later, which must not end the loop.
                    if not self.config.daemon or self.passes_completed == 0:
                        self._transition(PassState.DONE)
                        raise
                    logger.error(f'[PASS {self.reporter.pass_number}] Enumeration failed: {e}')
                    self._transition(PassState.SUMMARIZING)
                    summary = self.reporter.finish_pass(interrupted=False)
                    self.passes_completed += 1

                if not self.config.daemon or self.stop_token.is_set():
                    break
                if not self._sleep():
                    break

        self._transition(PassState.DONE)
        if self.config.daemon:
            logger.info('PFP: Daemon stopped.')
        else:
            logger.info('PFP: Finished processing all files in input-path.')
        return summary
