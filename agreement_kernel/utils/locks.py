"""
Per-booking mutual exclusion.

Sign calls for the same booking are serialized inside one process so that
the common double-click race ends in WrongTurnError instead of a version
conflict.  Calls for different bookings never wait on each other.  Writers
in other processes are still handled by the store's compare-and-swap.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class BookingLockRegistry:
    """Hands out one re-entrant lock per booking id.

    Entries are reference-counted and dropped when the last holder leaves,
    so the registry does not grow with the number of bookings ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._holders: dict[str, int] = {}

    @contextmanager
    def hold(self, booking_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(booking_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[booking_id] = lock
            self._holders[booking_id] = self._holders.get(booking_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                remaining = self._holders[booking_id] - 1
                if remaining:
                    self._holders[booking_id] = remaining
                else:
                    del self._holders[booking_id]
                    del self._locks[booking_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
