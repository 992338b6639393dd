"""Deferred cancellation for pipeline runs.

Signals never interrupt a step. They only set a flag that the procedure
checks at points where stopping leaves no dangling traffic split.
"""

import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sre_workflow.common.logging import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """Thread-safe cancellation flag."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@contextmanager
def cancel_on_signals(
    token: CancellationToken,
    signals: tuple[int, ...] = (signal.SIGTERM, signal.SIGINT),
) -> Iterator[CancellationToken]:
    """Route termination signals to a token while the block runs.

    Previous handlers are restored on exit. Only the main thread may
    install handlers; elsewhere this is a no-op.

    Args:
        token: Token to cancel
        signals: Signals to intercept

    Yields:
        The token
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def handler(signum, frame):
        name = signal.Signals(signum).name
        logger.warning("Received shutdown signal, deferring until safe", signal=name)
        token.cancel(f"received {name}")

    previous: dict[int, Callable | int | None] = {}
    for sig in signals:
        previous[sig] = signal.signal(sig, handler)

    try:
        yield token
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)
