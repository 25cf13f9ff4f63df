"""Cross-process exclusive file locks for shared gatekeeper state.

The review ledger, the integration history and the integration working tree are
shared between every ``gatekeeper`` process pointed at the same repository.
Each of them is guarded by an advisory ``flock`` on a sidecar lock file, wrapped
in a ``threading.Lock`` so threads of one process also serialize.
"""

from __future__ import annotations

import fcntl
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

_POLL_INTERVAL_SECONDS = 0.05


class LockAcquisitionError(RuntimeError):
    """Raised when a lock cannot be acquired within the timeout."""


class FileLock:
    """Exclusive advisory lock on ``lock_path``."""

    def __init__(self, lock_path: Path | str) -> None:
        self.lock_path = Path(lock_path)
        self._fd: int | None = None
        self._thread_lock = threading.Lock()

    @property
    def is_locked(self) -> bool:
        return self._fd is not None

    def acquire(self, *, timeout: float | None = None) -> None:
        """Block until the lock is held; raise ``LockAcquisitionError`` on timeout."""

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        if not self._thread_lock.acquire(timeout=-1 if timeout is None else timeout):
            raise LockAcquisitionError(f"timed out waiting for {self.lock_path}")

        fd = os.open(str(self.lock_path), os.O_RDWR | os.O_CREAT, 0o644)
        try:
            if timeout is None:
                fcntl.flock(fd, fcntl.LOCK_EX)
            else:
                deadline = time.monotonic() + timeout
                while True:
                    try:
                        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                        break
                    except BlockingIOError:
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            raise LockAcquisitionError(
                                f"timed out after {timeout:.2f}s waiting for {self.lock_path}"
                            ) from None
                        time.sleep(min(_POLL_INTERVAL_SECONDS, remaining))
        except BaseException:
            os.close(fd)
            self._thread_lock.release()
            raise

        self._fd = fd

    def release(self) -> None:
        if self._fd is None:
            raise RuntimeError(f"lock not held: {self.lock_path}")
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
            os.close(self._fd)
        finally:
            self._fd = None
            self._thread_lock.release()

    @contextmanager
    def hold(self, *, timeout: float | None = None) -> Iterator[None]:
        self.acquire(timeout=timeout)
        try:
            yield
        finally:
            self.release()


__all__ = ["FileLock", "LockAcquisitionError"]
