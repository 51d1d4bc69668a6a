"""Per-user mutual exclusion for balance-affecting work."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Generator


class UserLockRegistry:
    """Hand out one re-entrant lock per user id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _lock_for(self, user_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def hold(self, user_id: str) -> Generator[None, None, None]:
        lock = self._lock_for(user_id)
        with lock:
            yield


# Shared across service instances so every request in this process serialises.
DEFAULT_USER_LOCKS = UserLockRegistry()

__all__ = ["DEFAULT_USER_LOCKS", "UserLockRegistry"]
