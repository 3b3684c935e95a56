"""Cooperative cancellation for blocking protocol operations.

A ``CancellationToken`` is threaded explicitly into every send/recv so a
hung remote peer can be abandoned without relying on process-wide state.
Tokens form a tree: a child derived with ``with_timeout`` is cancelled
when its parent is, or when its own deadline passes.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

_POLL_INTERVAL = 0.05


class OperationCanceled(Exception):
    """Raised at a suspension point once the governing token is cancelled."""

    def __init__(self, reason: str = "canceled"):
        super().__init__(reason)
        self.reason = reason


class CancellationToken:
    """Thread-safe cancel flag with an optional deadline."""

    def __init__(
        self,
        parent: Optional[CancellationToken] = None,
        deadline: Optional[float] = None,
    ):
        """Initialize token.

        Args:
            parent: Token whose cancellation propagates to this one.
            deadline: Absolute ``time.monotonic()`` value after which the
                token counts as cancelled.
        """
        self._parent = parent
        self._deadline = deadline
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason = ""

    def cancel(self, reason: str = "canceled") -> None:
        """Cancel the token. Only the first reason is kept."""
        with self._lock:
            if not self._event.is_set():
                self._reason = reason
                self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        if self._parent is not None and self._parent.cancelled:
            self.cancel(self._parent.reason)
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason

    def remaining(self) -> Optional[float]:
        """Seconds until the nearest deadline in the chain, or None."""
        candidates = []
        if self._deadline is not None:
            candidates.append(self._deadline - time.monotonic())
        if self._parent is not None:
            parent_remaining = self._parent.remaining()
            if parent_remaining is not None:
                candidates.append(parent_remaining)
        if not candidates:
            return None
        return max(0.0, min(candidates))

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses.

        Returns:
            True if the token is cancelled.
        """
        end = None if timeout is None else time.monotonic() + timeout
        while not self.cancelled:
            step = _POLL_INTERVAL
            if end is not None:
                left = end - time.monotonic()
                if left <= 0:
                    return False
                step = min(step, left)
            self._event.wait(step)
        return True

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCanceled(self._reason)

    def with_timeout(self, seconds: float) -> CancellationToken:
        """Derive a child token that also expires after ``seconds``."""
        return CancellationToken(parent=self, deadline=time.monotonic() + seconds)

    def child(self) -> CancellationToken:
        """Derive a child token that can be cancelled independently."""
        return CancellationToken(parent=self)

    @classmethod
    def never(cls) -> CancellationToken:
        """Token that is only cancelled explicitly."""
        return cls()

    def __repr__(self) -> str:
        state = f"cancelled: {self._reason}" if self._event.is_set() else "active"
        return f"CancellationToken({state})"
