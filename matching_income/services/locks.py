"""Per-member locks serializing leg balance writers within one process"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class MemberLocks:
    """
    One lock per member id, held around every leg balance write together
    with the LegBalance row lock. Different members never contend.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, member_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(member_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[member_id] = lock
            return lock

    @contextmanager
    def hold(self, member_id: str) -> Iterator[None]:
        lock = self._lock_for(member_id)
        with lock:
            yield
