"""Per-file command runners.

``make_runner`` picks the runner once per RunConfig from its command variant.
A runner takes a FileTask and returns an ExecutionResult; it never raises for
per-file problems (spawn failure, nonzero exit, unreadable file).
"""

import hashlib
import logging
import subprocess
import threading
from collections.abc import Callable
from time import time

from pfp.models import BuiltinAction, Command, ExecutionResult, ExecutionStatus, ExternalScript
from pfp.scheduler import FileTask


logger = logging.getLogger(__name__)

Runner = Callable[[FileTask], ExecutionResult]

READ_BLOCK_SIZE = 1024 * 1024  # 1MB

# Captured output kept in results is truncated to this many characters (tail)
MAX_CAPTURED_OUTPUT = 64 * 1024


def _tail(text: str | None) -> str | None:
    if text is None or len(text) <= MAX_CAPTURED_OUTPUT:
        return text
    return '...' + text[-MAX_CAPTURED_OUTPUT:]


def run_builtin(task: FileTask) -> ExecutionResult:
    """Read the file and report its MD5 digest in ``md5sum`` format."""
    started_at = time()
    try:
        digest = hashlib.md5(usedforsecurity=False)
        with open(task.path, 'rb') as f:
            while block := f.read(READ_BLOCK_SIZE):
                digest.update(block)
    except OSError as e:
        return ExecutionResult(
            task=task,
            status=ExecutionStatus.FAILED,
            error=f'Failed to read file: {e}',
            started_at=started_at,
            finished_at=time(),
        )

    return ExecutionResult(
        task=task,
        status=ExecutionStatus.SUCCEEDED,
        exit_code=0,
        stdout=f'{digest.hexdigest()}  {task.path}\n',
        started_at=started_at,
        finished_at=time(),
    )


def run_script(script: str, task: FileTask) -> ExecutionResult:
    """Run ``script <file_path>`` and wait for it to exit.

    The child gets its own session so a terminal interrupt aimed at the engine
    does not reach it; in-flight invocations always run to completion.
    """
    started_at = time()
    thread_id = threading.current_thread().name
    logger.debug(f'[EXEC {thread_id}] {script} {task.path}')

    try:
        proc = subprocess.run(
            [script, task.path],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            errors='replace',
            start_new_session=True,
        )
    except OSError as e:
        return ExecutionResult(
            task=task,
            status=ExecutionStatus.FAILED,
            error=f'Failed to execute command for file: {e}',
            started_at=started_at,
            finished_at=time(),
        )

    finished_at = time()
    if proc.returncode == 0:
        return ExecutionResult(
            task=task,
            status=ExecutionStatus.SUCCEEDED,
            exit_code=0,
            stdout=_tail(proc.stdout),
            stderr=_tail(proc.stderr),
            started_at=started_at,
            finished_at=finished_at,
        )

    if proc.returncode < 0:
        error = f'Command killed by signal {-proc.returncode}'
    else:
        error = f'Command exited with status {proc.returncode}'

    return ExecutionResult(
        task=task,
        status=ExecutionStatus.FAILED,
        exit_code=proc.returncode,
        error=error,
        stdout=_tail(proc.stdout),
        stderr=_tail(proc.stderr),
        started_at=started_at,
        finished_at=finished_at,
    )


def make_runner(command: Command) -> Runner:
    """Return the runner for a command variant."""
    if isinstance(command, ExternalScript):
        script = command.path

        def runner(task: FileTask) -> ExecutionResult:
            return run_script(script, task)

        return runner

    if isinstance(command, BuiltinAction):
        return run_builtin

    raise TypeError(f'Unsupported command: {command!r}')
