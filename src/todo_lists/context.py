from __future__ import annotations

import threading
import time
from typing import Optional

from .errors import CancelledError


# PUBLIC_INTERFACE
class OperationContext:
    """
    Cancellation signal passed down to every store call.

    A context is cancelled either explicitly via `cancel()` or implicitly once
    its optional deadline (seconds from creation) has passed.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def check(self) -> None:
        """Raise CancelledError if the context has been cancelled."""
        if self.cancelled:
            raise CancelledError()
