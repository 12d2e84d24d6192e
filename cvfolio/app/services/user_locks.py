"""
Per-user locks serializing CV version mutations inside one process.
Cross-process safety comes from the row lock and unique indexes in the database.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

_locks: dict[int, threading.Lock] = {}
_registry_lock = threading.Lock()


def _lock_for(user_id: int) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get(user_id)
        if lock is None:
            lock = _locks[user_id] = threading.Lock()
        return lock


@contextmanager
def user_lock(user_id: int) -> Iterator[None]:
    """Hold the lock for user_id for the duration of the block."""
    lock = _lock_for(user_id)
    with lock:
        yield
