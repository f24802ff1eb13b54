"""Cancellation and deadline propagation for store operations.

Every store call receives an :class:`OperationContext`.  The context is
checked before each statement is issued and again before a transaction
commits, so a caller that cancels (or whose deadline expires) never observes
partially written state.
"""

from __future__ import annotations

import threading
import time

from .errors import DeadlineExceededError, OperationCancelledError

__all__ = ["OperationContext", "background"]


class OperationContext:
    """Carry a cancellation flag and an optional monotonic deadline."""

    def __init__(
        self,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if timeout is not None and timeout < 0:
            raise ValueError("timeout cannot be negative")
        self._deadline = None if timeout is None else time.monotonic() + timeout
        self._cancel_event = cancel_event or threading.Event()

    @property
    def deadline(self) -> float | None:
        """Return the monotonic deadline, if one was configured."""

        return self._deadline

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Signal every operation sharing this context to abort."""

        self._cancel_event.set()

    def remaining(self) -> float | None:
        """Return the seconds left before the deadline, or ``None``."""

        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def with_timeout(self, timeout: float) -> OperationContext:
        """Return a child context sharing cancellation with a tighter deadline."""

        child = OperationContext(timeout=timeout, cancel_event=self._cancel_event)
        if self._deadline is not None and (
            child._deadline is None or self._deadline < child._deadline
        ):
            child._deadline = self._deadline
        return child

    def check(self, operation: str = "operation") -> None:
        """Raise if the context was cancelled or its deadline has passed."""

        if self._cancel_event.is_set():
            raise OperationCancelledError(f"{operation} cancelled by caller")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise DeadlineExceededError(f"{operation} exceeded its deadline")


def background() -> OperationContext:
    """Return a fresh context that is never cancelled and has no deadline."""

    return OperationContext()
