"""Cancellation and deadline signal passed to every store operation."""

import threading
import time
from typing import Optional

from partition_leases.exceptions import DeadlineExceededError, OperationCancelledError


class OperationContext:
    """Carries a cancellation event and an optional deadline.

    The deadline is measured on the monotonic clock. In-process stores accept
    a context and ignore it; stores that make network round trips call
    check() before each one so cancelled work fails fast.
    """

    def __init__(
        self,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ):
        """Initialize OperationContext.

        Args:
            cancel_event: Event that, once set, cancels the operation
            deadline: time.monotonic() value after which the operation fails
        """
        self.cancel_event = cancel_event or threading.Event()
        self.deadline = deadline

    @classmethod
    def background(cls) -> "OperationContext":
        """Context that is never cancelled and has no deadline."""
        return cls()

    @classmethod
    def with_timeout(
        cls,
        seconds: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> "OperationContext":
        """Context whose deadline is `seconds` from now."""
        return cls(cancel_event=cancel_event, deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        """Cancel every operation carrying this context."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise if the context was cancelled or its deadline passed.

        Raises:
            OperationCancelledError: If cancel() was called
            DeadlineExceededError: If the deadline has passed
        """
        if self.cancel_event.is_set():
            raise OperationCancelledError()
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceededError()


def ensure_context(ctx: Optional[OperationContext]) -> OperationContext:
    """Return ctx, or a background context when None."""
    return ctx if ctx is not None else OperationContext.background()
