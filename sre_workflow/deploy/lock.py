"""Per-service deploy lock.

Traffic shifting is not commutative, so only one deploy-and-rollback
run may touch a service at a time. Runs in the same process share a
``threading.Lock``; runs in different processes on the same host share an
``fcntl.flock`` on a lock file. Cross-host serialization is the CI
system's job (a workflow ``concurrency`` group).
"""

import errno
import fcntl
import hashlib
import os
import tempfile
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sre_workflow.common.logging import get_logger
from sre_workflow.deploy.errors import DeployLockError

logger = get_logger(__name__)

LOCK_RETRY_INTERVAL = 0.1

_thread_locks: dict[str, threading.Lock] = {}
_thread_locks_guard = threading.Lock()


def _get_lock_dir(lock_dir: str | None = None) -> Path:
    if lock_dir:
        path = Path(lock_dir)
    else:
        path = Path(tempfile.gettempdir()) / "sre-workflow" / "deploy-locks"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _lock_path(service: str, lock_dir: str | None = None) -> Path:
    service_hash = hashlib.sha256(service.encode()).hexdigest()[:16]
    return _get_lock_dir(lock_dir) / f"deploy-{service_hash}.lock"


def _thread_lock(service: str) -> threading.Lock:
    with _thread_locks_guard:
        return _thread_locks.setdefault(service, threading.Lock())


@contextmanager
def service_lock(
    service: str,
    timeout_seconds: float = 600.0,
    lock_dir: str | None = None,
) -> Iterator[None]:
    """Hold the exclusive deploy lock for a service.

    Later callers wait for the current holder to finish.

    Args:
        service: Service identifier (e.g. ``region/service``)
        timeout_seconds: How long to wait for the lock
        lock_dir: Directory for lock files (default: system temp dir)

    Yields:
        None while the lock is held

    Raises:
        DeployLockError: If the lock is not acquired within the timeout
    """
    start_time = time.monotonic()

    thread_lock = _thread_lock(service)
    if not thread_lock.acquire(timeout=timeout_seconds):
        raise DeployLockError(service, timeout_seconds)

    try:
        lock_path = _lock_path(service, lock_dir)
        lock_path.touch(exist_ok=True)
        lock_fd = os.open(str(lock_path), os.O_RDWR)

        lock_acquired = False
        try:
            while True:
                try:
                    fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    lock_acquired = True
                    logger.debug("Acquired deploy lock", service=service, path=str(lock_path))
                    break
                except OSError as e:
                    if e.errno not in (errno.EAGAIN, errno.EWOULDBLOCK):
                        raise

                    if time.monotonic() - start_time >= timeout_seconds:
                        raise DeployLockError(service, timeout_seconds) from e

                    time.sleep(LOCK_RETRY_INTERVAL)

            yield

        finally:
            if lock_acquired:
                fcntl.flock(lock_fd, fcntl.LOCK_UN)
            os.close(lock_fd)
    finally:
        thread_lock.release()
