"""
Cooperative cancellation for long-running operations.

A CancelToken is passed through full analysis, social lookups and bulk
enrichment. Callers check it before each external request; wait() doubles as
the fixed inter-request delay and returns early once cancelled.
"""

import threading
from typing import Optional

from .errors import CancelledError


class CancelToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True if cancelled while waiting."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(timeout=seconds)

    def raise_if_cancelled(self, what: str = "operation") -> None:
        if self._event.is_set():
            raise CancelledError(f"{what} cancelled")


def check(token: Optional[CancelToken], what: str = "operation") -> None:
    if token is not None:
        token.raise_if_cancelled(what)


def pause(token: Optional[CancelToken], seconds: float) -> None:
    """Fixed delay that aborts with CancelledError when the token fires."""
    if seconds <= 0:
        check(token)
        return
    if token is None:
        threading.Event().wait(timeout=seconds)
        return
    if token.wait(seconds):
        raise CancelledError("operation cancelled during wait")
