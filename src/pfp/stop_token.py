"""Cooperative cancellation token shared by the driver and executor.

The token is a plain flag so it can be set from a signal handler without
taking any lock. Waiting is done in short sleeps that re-check the flag.
"""

import logging
from time import monotonic, sleep


logger = logging.getLogger(__name__)

# Upper bound on how long a stop request can go unnoticed by wait()
POLL_INTERVAL = 0.1


class StopToken:
    """Set once to request a graceful stop; never reset."""

    def __init__(self):
        self._stopped = False
        self.reason: str | None = None

    def is_set(self) -> bool:
        return self._stopped

    def request_stop(self, reason: str = 'stop request') -> None:
        if not self._stopped:
            self.reason = reason
            self._stopped = True
            logger.info(f'PFP: CAUGHT {reason}! Finishing running jobs before exit')

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, returning early once stop is requested.

        Returns:
            True if a stop was requested, False if the timeout elapsed
        """
        deadline = monotonic() + timeout
        while not self._stopped:
            remaining = deadline - monotonic()
            if remaining <= 0:
                break
            sleep(min(POLL_INTERVAL, remaining))
        return self._stopped
