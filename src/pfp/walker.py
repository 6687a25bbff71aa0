"""Recursive, lazy enumeration of the files under a root directory.

Traversal order is depth-first pre-order. Within each directory, entries are
visited in lexicographic order of their names, with files and subdirectories
interleaved. For a fixed filesystem state the sequence is therefore
reproducible.

Symlinks to directories are not followed (avoids cycles); symlinks to regular
files are yielded under the link's own path. Broken symlinks and special files
(FIFOs, sockets, devices) are skipped.
"""

import logging
import os
from collections.abc import Iterable, Iterator

from pfp.scheduler import FileTask, file_extension


logger = logging.getLogger(__name__)


def normalize_extensions(extensions: str | Iterable[str] | None) -> frozenset[str]:
    """Normalize an extension filter.

    Accepts a comma separated string (``"mp4, .FLV"``) or an iterable of
    strings. Whitespace and leading dots are stripped, values are lower-cased
    and empty items dropped. An empty result means "no filter".
    """
    if extensions is None:
        return frozenset()
    if isinstance(extensions, str):
        extensions = extensions.split(',')

    normalized = set()
    for ext in extensions:
        ext = ext.strip().lstrip('.').lower()
        if ext:
            normalized.add(ext)
    return frozenset(normalized)


def _list_dir(path: str) -> list[os.DirEntry] | None:
    """Return the sorted entries of ``path``, or None if it cannot be read."""
    try:
        with os.scandir(path) as it:
            return sorted(it, key=lambda entry: entry.name)
    except PermissionError as e:
        logger.warning(f'[WALK] Skipping unreadable directory {path}: {e}')
    except OSError as e:
        # Vanished between listing its parent and reading it, or similar
        logger.warning(f'[WALK] Skipping directory {path}: {e}')
    return None


def _is_regular_file(entry: os.DirEntry) -> bool:
    try:
        return entry.is_file()  # follows symlinks to files
    except OSError:
        return False


def _walk(root_entries: list[os.DirEntry], extensions: frozenset[str]) -> Iterator[FileTask]:
    stack = [iter(root_entries)]

    while stack:
        entry = next(stack[-1], None)
        if entry is None:
            stack.pop()
            continue

        try:
            if entry.is_dir(follow_symlinks=False):
                logger.debug(f'[WALK] D {entry.path}')
                entries = _list_dir(entry.path)
                if entries is not None:
                    stack.append(iter(entries))
                continue
            # is_dir() follows the link here; self-referential links raise ELOOP
            if entry.is_symlink() and entry.is_dir():
                logger.debug(f'[WALK] Not following directory symlink {entry.path}')
                continue
        except OSError as e:
            logger.warning(f'[WALK] Cannot stat {entry.path}: {e}')
            continue

        if not _is_regular_file(entry):
            logger.debug(f'[WALK] Skipping non-regular file {entry.path}')
            continue

        ext = file_extension(entry.name)
        if extensions and ext not in extensions:
            continue

        logger.debug(f'[WALK] f {entry.path}')
        yield FileTask(path=entry.path, extension=ext)


def iter_file_tasks(root: str, extensions: str | Iterable[str] | None = None) -> Iterator[FileTask]:
    """Lazily enumerate every regular file under ``root``.

    The root is validated immediately; the tree itself is walked as the
    returned iterator is consumed.

    Args:
        root: Directory to walk
        extensions: Optional extension filter (see ``normalize_extensions``)

    Returns:
        Iterator of FileTask with absolute paths

    Raises:
        FileNotFoundError: if root does not exist
        NotADirectoryError: if root is not a directory
        PermissionError: if root cannot be listed
    """
    root = os.path.abspath(root)
    if not os.path.exists(root):
        raise FileNotFoundError(f'Input path does not exist: {root}')
    if not os.path.isdir(root):
        raise NotADirectoryError(f'Input path is not a directory: {root}')

    with os.scandir(root) as it:
        root_entries = sorted(it, key=lambda entry: entry.name)

    return _walk(root_entries, normalize_extensions(extensions))


def list_file_tasks(root: str, extensions: str | Iterable[str] | None = None) -> list[FileTask]:
    """Collect ``iter_file_tasks`` into a list (for dry runs and tests)."""
    return list(iter_file_tasks(root, extensions))
