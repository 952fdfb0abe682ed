"""Cooperative cancellation for blocking and fan-out operations."""

import threading
from typing import Optional

from .errors import OperationCancelled


class CancelToken:
    """Thread-safe cancellation flag shared between a caller and workers.

    A token may have a parent; cancelling the parent cancels every child.
    Fan-out operations derive a child token so they can stop their own
    workers without touching the caller's token.
    """

    def __init__(self, parent: Optional["CancelToken"] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        """Raise OperationCancelled if this token or a parent was cancelled."""
        if self.cancelled:
            raise OperationCancelled(operation)

    def child(self) -> "CancelToken":
        return CancelToken(parent=self)


def check(token: Optional[CancelToken], operation: str) -> None:
    """Raise OperationCancelled when an optional token is cancelled."""
    if token is not None:
        token.raise_if_cancelled(operation)
