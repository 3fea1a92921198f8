"""
Credit Timeline - Per-Subject Ingestion Locks

Serializes the dedup check and the insert transaction for one subject
within this process. The unique (subject_id, payload_sha256) constraint on
ingest receipts covers writers in other processes.

A subject's lock exists only while some caller holds or waits on it, so the
registry stays bounded by the number of concurrent ingests.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class SubjectLockRegistry:

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def active_subjects(self) -> List[str]:
        with self._guard:
            return sorted(self._locks)

    @contextmanager
    def hold(self, subject_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(subject_id, threading.Lock())
            self._holders[subject_id] = self._holders.get(subject_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[subject_id] -= 1
                if not self._holders[subject_id]:
                    del self._holders[subject_id]
                    del self._locks[subject_id]


subject_locks = SubjectLockRegistry()
