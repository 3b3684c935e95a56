"""Signal-driven cancellation with a hard-exit watchdog.

The first termination signal cancels the root ``CancellationToken`` so
in-flight operations unwind at their next send or receive. If the process
is still running when the grace period ends, it exits immediately.
"""

from __future__ import annotations

import os
import signal
import threading
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, Optional

import structlog

from object_client.domain.value_objects.cancellation import CancellationToken
from object_client.infrastructure.config import get_config

logger = structlog.get_logger(__name__)


class GracefulShutdown:
    """Maps termination signals onto a root cancellation token."""

    def __init__(
        self,
        root: Optional[CancellationToken] = None,
        grace_period: float = 5.0,
        exit_code: int = 2,
        signals: Iterable[str] = ("SIGINT", "SIGTERM", "SIGHUP"),
        exit_func: Callable[[int], None] = os._exit,
    ):
        """Initialize shutdown handler.

        Args:
            root: Token cancelled on the first signal.
            grace_period: Seconds between the first signal and the hard exit.
            exit_code: Process status used by the hard exit.
            signals: Signal names to handle. Names unknown on this
                platform are skipped.
            exit_func: Terminates the process.
        """
        self.root = root or CancellationToken()
        self.grace_period = grace_period
        self.exit_code = exit_code
        self.signals = [getattr(signal, name) for name in signals if hasattr(signal, name)]
        self._exit_func = exit_func
        self._previous: dict[int, object] = {}
        self._watchdog: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def triggered(self) -> bool:
        return self._watchdog is not None

    def install(self) -> None:
        """Install handlers. Must run on the main thread."""
        for signum in self.signals:
            self._previous[signum] = signal.signal(signum, self.handle)

    def restore(self) -> None:
        """Reinstate previous handlers and stop a pending watchdog."""
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()
        with self._lock:
            if self._watchdog is not None:
                self._watchdog.cancel()

    def handle(self, signum: int, frame=None) -> None:
        name = signal.Signals(signum).name
        with self._lock:
            if self._watchdog is not None:
                logger.warning("shutdown_already_in_progress", signal=name)
                return
            self._watchdog = threading.Timer(self.grace_period, self._expire)
            self._watchdog.daemon = True
            self._watchdog.start()

        logger.info("shutdown_requested", signal=name, grace_period=self.grace_period)
        self.root.cancel(f"received {name}")

    def _expire(self) -> None:
        logger.error("shutdown_grace_period_expired", exit_code=self.exit_code)
        self._exit_func(self.exit_code)


@contextmanager
def graceful_cancellation(
    grace_period: Optional[float] = None,
    exit_code: Optional[int] = None,
) -> Iterator[CancellationToken]:
    """Yield a root token cancelled by SIGINT, SIGTERM or SIGHUP.

    Usage:
        with graceful_cancellation() as cancel:
            client.get_object(address, sys.stdout.buffer, cancel=cancel)
    """
    config = get_config().shutdown
    shutdown = GracefulShutdown(
        grace_period=config.grace_period_seconds if grace_period is None else grace_period,
        exit_code=config.exit_code if exit_code is None else exit_code,
        signals=config.signals,
    )
    shutdown.install()
    try:
        yield shutdown.root
    finally:
        shutdown.restore()
