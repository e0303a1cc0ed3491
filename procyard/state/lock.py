"""Advisory exclusive lock held by a daemon for its whole lifetime."""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path

from procyard.exceptions import LockHeldError, StateIOError

_logger = logging.getLogger(__name__)


class ManagerLock:
    """flock(2) on ``manager.lock``.

    The lock belongs to the open file description, so it survives fork and
    is released by the kernel when the last holder exits.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise StateIOError(f"Cannot open lock file {self.path}: {e}") from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise LockHeldError(
                f"Another procyard daemon seems to be running (lock held at {self.path})."
            ) from None
        self._fd = fd
        _logger.debug("Acquired %s", self.path)

    def held_elsewhere(self) -> bool:
        """True if another process holds the lock right now."""
        if self._fd is not None:
            return False
        try:
            fd = os.open(self.path, os.O_RDWR)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StateIOError(f"Cannot open lock file {self.path}: {e}") from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        else:
            fcntl.flock(fd, fcntl.LOCK_UN)
            return False
        finally:
            os.close(fd)

    def close(self) -> None:
        """Drop this process's descriptor without unlocking.

        Used by the invoking process after fork: the daemon's inherited
        descriptor keeps the lock.
        """
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        _logger.debug("Released %s", self.path)

    def __enter__(self) -> ManagerLock:
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
