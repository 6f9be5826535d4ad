"""
Cancellation Token

Carries a deadline and a cancel flag through grid building, elevation
fetching and the A* loop. Workers call raise_if_cancelled() between
units of work.
"""

import time
from typing import Callable, Optional

from .errors import RouteCancelledError


class CancellationToken:
    """Cooperative cancellation with an optional deadline."""

    def __init__(
        self,
        timeout_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self._clock = clock
        self._deadline = clock() + timeout_s if timeout_s is not None else None
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "Route computation cancelled") -> None:
        if self._reason is None:
            self._reason = reason

    @property
    def cancelled(self) -> bool:
        if self._reason is not None:
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self._reason = "Route computation timed out"
            return True
        return False

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RouteCancelledError(self._reason)


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """No-op when no token was given."""
    if token is not None:
        token.raise_if_cancelled()
