"""File tasks and chunked batching for the dispatch pipeline"""

import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from itertools import islice


@dataclass(frozen=True)
class FileTask:
    """One file queued for processing in the current pass"""

    path: str  # absolute path
    extension: str  # lower case, without the leading dot ('' if none)

    @classmethod
    def from_path(cls, path: str) -> 'FileTask':
        """Build a task for ``path``, deriving its extension."""
        return cls(path=path, extension=file_extension(path))

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


@dataclass(frozen=True)
class Chunk:
    """An ordered batch of at most ``chunk_size`` tasks.

    Tasks within a chunk run concurrently and may complete in any order.
    """

    index: int  # 1-based position within the pass
    tasks: tuple[FileTask, ...]

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self) -> Iterator[FileTask]:
        return iter(self.tasks)


def file_extension(path: str) -> str:
    """Return the last suffix of ``path`` lower-cased and without the dot.

    ``a.MP4`` -> ``mp4``, ``a.tar.gz`` -> ``gz``, ``Makefile`` and ``.bashrc`` -> ``''``.
    """
    _, ext = os.path.splitext(os.path.basename(path))
    return ext[1:].lower()


def iter_chunks(tasks: Iterable[FileTask], chunk_size: int) -> Iterator[Chunk]:
    """Group ``tasks`` into chunks of at most ``chunk_size``, preserving order.

    The input is consumed lazily, so at most one chunk is buffered at a time.
    The last chunk may be smaller than ``chunk_size``.

    Args:
        tasks: Tasks in enumeration order
        chunk_size: Maximum number of tasks per chunk (>= 1)

    Yields:
        Chunks numbered from 1
    """
    if chunk_size < 1:
        raise ValueError(f'chunk_size must be >= 1, got {chunk_size}')

    iterator = iter(tasks)
    index = 0
    while batch := tuple(islice(iterator, chunk_size)):
        index += 1
        yield Chunk(index=index, tasks=batch)


def count_chunks(total_tasks: int, chunk_size: int) -> int:
    """Number of chunks ``total_tasks`` tasks split into (ceil division)."""
    if chunk_size < 1:
        raise ValueError(f'chunk_size must be >= 1, got {chunk_size}')
    return (total_tasks + chunk_size - 1) // chunk_size
