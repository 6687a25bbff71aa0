"""Utility functions for PFP"""

import logging
import os
import shutil
import sys

import psutil


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_CHUNK_SIZE = 50
DEFAULT_SLEEP_TIME = 5.0


def get_int_env(key: str, default: int | None = None) -> int | None:
    """Get integer value from environment variable, return default if not set or invalid."""
    val = os.getenv(key)
    if val is None or not val.strip():
        return default
    try:
        return int(val)
    except ValueError:
        return default


def get_float_env(key: str, default: float) -> float:
    """Get float value from environment variable, return default if not set or invalid."""
    val = os.getenv(key)
    if val is None or not val.strip():
        return default
    try:
        return float(val)
    except ValueError:
        return default


def get_str_env(key: str, default: str) -> str:
    """
    Get string from environment variable, return default if not set.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        String value or default
    """
    return os.getenv(key, default)


def default_job_slots() -> int:
    """Number of job slots used when none is configured: one per available CPU.

    Honors PFP_JOB_SLOTS when it holds a positive integer.
    """
    env_slots = get_int_env('PFP_JOB_SLOTS')
    if env_slots and env_slots > 0:
        return env_slots

    # Prefer the CPUs this process may actually run on
    try:
        affinity = psutil.Process().cpu_affinity()
        if affinity:
            return len(affinity)
    except (AttributeError, NotImplementedError, psutil.Error):
        pass

    return psutil.cpu_count(logical=True) or 1


def resolve_script(script: str) -> str:
    """Resolve a script argument to an absolute executable path.

    The argument may be a path to a file or the name of a command on PATH
    (e.g. ``true``).

    Raises:
        FileNotFoundError: if neither a file nor a command with that name exists
        PermissionError: if the file exists but is not executable
        IsADirectoryError: if the path points to a directory
    """
    if os.path.exists(script):
        if os.path.isdir(script):
            raise IsADirectoryError(f'Script path is not a file: {script}')
        if not os.access(script, os.X_OK):
            raise PermissionError(f'Script is not executable: {script}')
        return os.path.abspath(script)

    # Bare command names are looked up on PATH
    if os.sep not in script:
        found = shutil.which(script)
        if found:
            return found

    raise FileNotFoundError(f'Script path does not exist: {script}')


class CliLogHandler(logging.StreamHandler):
    """stderr handler installed on the ``pfp`` logger by ``configure_logging``"""

    def __init__(self):
        super().__init__(sys.stderr)
        self.setFormatter(logging.Formatter(LOG_FORMAT))


def configure_logging(debug: bool = False) -> logging.Logger:
    """Attach a stderr handler to the ``pfp`` logger.

    The level comes from PFP_LOG_LEVEL (default INFO); ``debug`` forces DEBUG.
    Calling this again replaces the handler installed by the previous call.

    Returns:
        The configured ``pfp`` logger
    """
    if debug:
        level = logging.DEBUG
    else:
        level_name = get_str_env('PFP_LOG_LEVEL', 'INFO').upper()
        level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger('pfp')
    for handler in list(logger.handlers):
        if isinstance(handler, CliLogHandler):
            logger.removeHandler(handler)

    logger.addHandler(CliLogHandler())
    logger.setLevel(level)

    return logger


def human_readable_duration(seconds: float) -> str:
    """Format a duration in seconds for log and CLI output."""
    if seconds < 60:
        return f'{seconds:.2f}s'
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f'{int(minutes)}m{secs:04.1f}s'
    hours, minutes = divmod(minutes, 60)
    return f'{int(hours)}h{int(minutes):02d}m{int(secs):02d}s'
