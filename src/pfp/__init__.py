"""PFP (Parallel File Processor) - run a command against every file under a directory tree."""

from pfp.__version__ import __version__


__all__ = ['__version__']
