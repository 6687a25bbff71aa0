"""Pydantic models for run configuration, execution results and summaries"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pfp.scheduler import FileTask
from pfp.utils import DEFAULT_CHUNK_SIZE, DEFAULT_SLEEP_TIME, default_job_slots
from pfp.walker import normalize_extensions


# ============================================================================
# Command Variants
# ============================================================================


class BuiltinAction(BaseModel):
    """Built-in per-file action: read the file and report its MD5 digest.

    Placeholder for real work, which is delegated to an external script.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal['builtin'] = 'builtin'

    def describe(self) -> str:
        return 'builtin md5 read'


class ExternalScript(BaseModel):
    """External command invoked as ``<path> <file_path>``"""

    model_config = ConfigDict(frozen=True)

    kind: Literal['script'] = 'script'
    path: str = Field(..., min_length=1, description='Absolute path of the executable')

    def describe(self) -> str:
        return self.path


Command = Annotated[Union[BuiltinAction, ExternalScript], Field(discriminator='kind')]


# ============================================================================
# Configuration
# ============================================================================


class RunConfig(BaseModel):
    """Immutable configuration for one invocation of the engine

    Attributes:
        input_path: Root directory to process
        extensions: Lower-cased extensions without dots; empty means no filter
        chunk_size: Maximum number of files per chunk
        job_slots: Maximum number of concurrently running invocations
        command: Built-in action or external script
        daemon: Repeat passes until stopped
        sleep_time: Seconds to sleep between daemon passes
        debug: Surface subprocess output and verbose logs
    """

    model_config = ConfigDict(frozen=True)

    input_path: str
    extensions: frozenset[str] = Field(default_factory=frozenset)
    chunk_size: int = Field(DEFAULT_CHUNK_SIZE, ge=1)
    job_slots: int = Field(default_factory=default_job_slots, ge=1)
    command: Command = Field(default_factory=BuiltinAction)
    daemon: bool = False
    sleep_time: float = Field(DEFAULT_SLEEP_TIME, ge=0)
    debug: bool = False

    @field_validator('extensions', mode='before')
    @classmethod
    def _normalize_extensions(cls, value):
        return normalize_extensions(value)


# ============================================================================
# Results
# ============================================================================


class ExecutionStatus(str, Enum):
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    CANCELLED = 'cancelled'  # stop requested before the task was launched


class ExecutionResult(BaseModel):
    """Outcome of invoking the command on one FileTask

    Attributes:
        task: The file that was processed
        status: succeeded, failed, or cancelled
        exit_code: Process exit code (None if the command never ran)
        error: Failure cause, None on success
        stdout: Captured standard output
        stderr: Captured standard error
        started_at: Unix timestamp when the invocation started
        finished_at: Unix timestamp when the invocation ended
    """

    task: FileTask
    status: ExecutionStatus
    exit_code: int | None = None
    error: str | None = None
    stdout: str | None = None
    stderr: str | None = None
    started_at: float
    finished_at: float

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCEEDED

    @property
    def duration_seconds(self) -> float:
        return max(0.0, self.finished_at - self.started_at)


class ChunkSummary(BaseModel):
    """Counts for one chunk, logged when the chunk completes"""

    pass_number: int
    chunk_index: int
    size: int
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    duration_seconds: float = 0.0


class PassSummary(BaseModel):
    """Aggregate counts and wall-clock duration for one full pass

    Attributes:
        pass_number: 1-based pass counter (daemon mode increments it)
        total: Number of tasks dispatched in the pass
        succeeded: Tasks whose command succeeded
        failed: Tasks whose command failed or could not be launched
        cancelled: Tasks not launched because a stop was requested
        chunks: Number of chunks processed
        started_at: Unix timestamp of pass start
        finished_at: Unix timestamp of pass end
        failed_files: Paths of the failed tasks
        interrupted: True if the pass ended early because of a stop request
    """

    pass_number: int
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    chunks: int = 0
    started_at: float
    finished_at: float
    failed_files: list[str] = Field(default_factory=list)
    interrupted: bool = False

    @property
    def duration_seconds(self) -> float:
        return max(0.0, self.finished_at - self.started_at)

    def to_cli(self) -> str:
        """Format the summary for CLI output"""
        lines = [
            f'Pass {self.pass_number}: {self.total} files in {self.chunks} chunks ({self.duration_seconds:.2f}s)',
            f'  Succeeded: {self.succeeded}',
            f'  Failed: {self.failed}',
        ]
        if self.cancelled:
            lines.append(f'  Cancelled: {self.cancelled}')
        if self.interrupted:
            lines.append('  Interrupted by stop request')
        for path in self.failed_files:
            lines.append(f'  Failed: {path}')
        return '\n'.join(lines)


class ScanChunk(BaseModel):
    index: int
    files: list[str]


class ScanResponse(BaseModel):
    """Dry-run result: the files a pass would process and how they are chunked"""

    input_path: str
    extensions: list[str] = Field(default_factory=list)
    chunk_size: int
    total: int
    chunks: list[ScanChunk] = Field(default_factory=list)
