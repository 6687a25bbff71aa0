"""Pytest configuration and shared fixtures for PFP tests.

Provides temp directory trees, small shell scripts standing in for the
external per-file command, and isolation of the ``pfp`` logger between tests.
"""

import logging
import os
import shutil
import stat
import sys
import tempfile

import pytest

from pfp.utils import CliLogHandler


posix_only = pytest.mark.skipif(sys.platform == 'win32', reason='requires POSIX shell scripts')


@pytest.fixture(autouse=True)
def isolate_pfp_logging():
    """Auto-use fixture that removes handlers installed by ``configure_logging``.

    CLI tests install a stderr handler bound to CliRunner's captured stream,
    which is closed once the invocation ends. Dropping it after each test keeps
    later tests from writing to a closed stream.
    """
    logger = logging.getLogger('pfp')
    level = logger.level
    yield
    for handler in list(logger.handlers):
        if isinstance(handler, CliLogHandler):
            logger.removeHandler(handler)
    logger.setLevel(level)


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch):
    """Make sure PFP_* variables from the developer's shell don't leak into tests."""
    for key in list(os.environ):
        if key.startswith('PFP_'):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def temp_root():
    """Create a temporary root directory, resolved through symlinks."""
    tmp_dir = os.path.realpath(tempfile.mkdtemp(prefix='pfp_test_'))
    yield tmp_dir
    # Restore permissions changed by tests so cleanup can succeed
    for dirpath, dirnames, _ in os.walk(tmp_dir):
        for d in dirnames:
            try:
                os.chmod(os.path.join(dirpath, d), stat.S_IRWXU)
            except OSError:
                pass
    shutil.rmtree(tmp_dir, ignore_errors=True)


def make_tree(root: str, files: list[str]) -> list[str]:
    """Create empty-ish files (relative paths) under root, return absolute paths."""
    created = []
    for rel in files:
        path = os.path.join(root, rel)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w') as f:
            f.write(f'content of {rel}\n')
        created.append(path)
    return created


def make_script(directory: str, name: str, body: str) -> str:
    """Write an executable /bin/sh script and return its path."""
    path = os.path.join(directory, name)
    with open(path, 'w') as f:
        f.write('#!/bin/sh\n')
        f.write(body)
        if not body.endswith('\n'):
            f.write('\n')
    os.chmod(path, stat.S_IRWXU)
    return path


@pytest.fixture
def scripts_dir():
    """Directory for helper scripts, kept outside the processed tree."""
    tmp_dir = os.path.realpath(tempfile.mkdtemp(prefix='pfp_scripts_'))
    yield tmp_dir
    shutil.rmtree(tmp_dir, ignore_errors=True)


@pytest.fixture
def ok_script(scripts_dir):
    return make_script(scripts_dir, 'ok.sh', 'echo "processed $1"\nexit 0')


@pytest.fixture
def fail_script(scripts_dir):
    return make_script(scripts_dir, 'fail.sh', 'echo "cannot process $1" >&2\nexit 3')


@pytest.fixture
def picky_script(scripts_dir):
    """Fails only for files whose name contains 'bad'."""
    return make_script(
        scripts_dir,
        'picky.sh',
        'case "$(basename "$1")" in\n  *bad*) echo "rejected $1" >&2; exit 1;;\nesac\nexit 0',
    )
