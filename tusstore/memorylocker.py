"""In-memory exclusive locks for uploads.

Locks live only as long as the locker object is referenced and vanish when
the process exits.
"""

from __future__ import annotations

import threading

from .errors import FileLockedError


class MemoryLocker:
    """Keeps upload locks in a set guarded by a mutex."""

    def __init__(self) -> None:
        self._locks: set[str] = set()
        self._mutex = threading.Lock()

    def new_lock(self, upload_id: str) -> MemoryLock:
        """Return a lock handle for the given upload."""
        return MemoryLock(self, upload_id)

    def _acquire(self, upload_id: str) -> None:
        with self._mutex:
            if upload_id in self._locks:
                raise FileLockedError()
            self._locks.add(upload_id)

    def _release(self, upload_id: str) -> None:
        with self._mutex:
            self._locks.discard(upload_id)


class MemoryLock:
    """A handle to the exclusive lock of one upload."""

    def __init__(self, locker: MemoryLocker, upload_id: str) -> None:
        self.locker = locker
        self.upload_id = upload_id

    def lock(self) -> None:
        """Obtain the lock, raising FileLockedError if it is already held."""
        self.locker._acquire(self.upload_id)

    def unlock(self) -> None:
        """Release the lock; releasing a lock that is not held does nothing."""
        self.locker._release(self.upload_id)

    def __enter__(self) -> MemoryLock:
        self.lock()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unlock()