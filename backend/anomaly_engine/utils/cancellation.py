"""Cooperative cancellation for long batch scopes."""

import threading
from typing import Optional


class CancellationToken:
    """Set from any thread; detectors poll it between per-address units.

    Findings produced before cancellation are complete records and are
    returned as-is.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"<CancellationToken cancelled={self.cancelled}>"


def is_cancelled(token: Optional[CancellationToken]) -> bool:
    return token is not None and token.cancelled
