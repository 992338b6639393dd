"""Process-scoped request statistics for the demo service."""

import threading
import time
from dataclasses import dataclass, field

# Reported as-is; the demo does not measure real memory usage.
MEMORY_USAGE_PLACEHOLDER_MB = 50


@dataclass
class ServerStats:
    """Request counter and uptime clock.

    Created once per application instance; a restart resets both values.
    All mutation goes through :meth:`increment`.
    """

    started_at: float = field(default_factory=time.monotonic)
    _request_count: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment(self) -> int:
        """Atomically count one request.

        Returns:
            The counter value after this request
        """
        with self._lock:
            self._request_count += 1
            return self._request_count

    @property
    def request_count(self) -> int:
        with self._lock:
            return self._request_count

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at
