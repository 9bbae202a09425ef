"""
Per-key serialization for bracket generation and result recording.

- division_locks: at most one bracket (re)generation per division at a time
- tournament_locks: division (re)generation per tournament
- match_locks: RecordResult calls on the same match run one after another;
  different matches proceed in parallel

In-process only. Multi-process deployments additionally rely on the
bracket_generation check in bracket_service, the Match.version check in
match_service and the database unique constraints.

A key's lock exists only while someone holds or waits for it.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLocks:
    def __init__(self) -> None:
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._users: Dict[Hashable, int] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_entry(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)


division_locks = KeyedLocks()
tournament_locks = KeyedLocks()
match_locks = KeyedLocks()
