"""
Cooperative cancellation for batch sync and index rebuilds.
"""

from __future__ import annotations

import threading

from .errors import OperationCancelledError


class CancellationToken:
    """Flag checked between records by long-running loops.

    Setting the flag is thread-safe, so it can be flipped from a signal
    handler or another thread while a loop polls it.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError("Operation cancelled by request.")


def check_cancelled(token: CancellationToken | None) -> None:
    """Raise if *token* was cancelled; a missing token never cancels."""
    if token is not None:
        token.raise_if_cancelled()
