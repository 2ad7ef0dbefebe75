import collections
import threading
import time
from typing import Protocol, runtime_checkable

from gateway_analyzer.models import AnalysisResult


@runtime_checkable
class JobStore(Protocol):
    def put(self, result: AnalysisResult) -> None: ...

    def get(self, job_id: str) -> AnalysisResult | None: ...


class InMemoryJobStore:
    """Thread-safe in-memory job results with a TTL and a capacity bound.

    Entries older than ``ttl_seconds`` are invisible to ``get`` and removed
    by ``purge_expired``; past ``max_jobs`` the least recently stored job is
    evicted.
    """

    def __init__(self, ttl_seconds=3600, max_jobs=500, clock=time.monotonic):
        self._ttl = ttl_seconds
        self._max_jobs = max_jobs
        self._clock = clock
        self._jobs = collections.OrderedDict()  # job_id -> (stored_at, result)
        self._lock = threading.Lock()

    def put(self, result):
        """Store or replace a job result."""
        with self._lock:
            self._jobs.pop(result.job_id, None)
            self._jobs[result.job_id] = (self._clock(), result)
            while len(self._jobs) > self._max_jobs:
                self._jobs.popitem(last=False)

    def get(self, job_id):
        """Return the stored result, or None if missing or expired."""
        with self._lock:
            entry = self._jobs.get(job_id)
            if entry is None:
                return None
            stored_at, result = entry
            if self._clock() - stored_at > self._ttl:
                del self._jobs[job_id]
                return None
            return result

    def purge_expired(self):
        """Drop expired jobs and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [
                job_id for job_id, (stored_at, _) in self._jobs.items()
                if now - stored_at > self._ttl
            ]
            for job_id in expired:
                del self._jobs[job_id]
        return len(expired)

    def __len__(self):
        with self._lock:
            return len(self._jobs)

    def clear(self):
        with self._lock:
            self._jobs.clear()
