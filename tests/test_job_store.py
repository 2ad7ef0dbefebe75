from gateway_analyzer.job_store import InMemoryJobStore, JobStore
from gateway_analyzer.models import AnalysisResult


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestInMemoryJobStore:
    def test_put_and_get(self):
        store = InMemoryJobStore()
        result = AnalysisResult(job_id="job-1")
        store.put(result)
        assert store.get("job-1") is result
        assert len(store) == 1

    def test_missing(self):
        assert InMemoryJobStore().get("nope") is None

    def test_put_replaces(self):
        store = InMemoryJobStore()
        store.put(AnalysisResult(job_id="job-1"))
        replacement = AnalysisResult(job_id="job-1").fail("x")
        store.put(replacement)
        assert store.get("job-1") is replacement
        assert len(store) == 1

    def test_ttl_expiry(self):
        clock = FakeClock()
        store = InMemoryJobStore(ttl_seconds=60, clock=clock)
        store.put(AnalysisResult(job_id="job-1"))
        clock.now += 59
        assert store.get("job-1") is not None
        clock.now += 2
        assert store.get("job-1") is None
        assert len(store) == 0

    def test_purge_expired(self):
        clock = FakeClock()
        store = InMemoryJobStore(ttl_seconds=60, clock=clock)
        store.put(AnalysisResult(job_id="old"))
        clock.now += 30
        store.put(AnalysisResult(job_id="new"))
        clock.now += 45
        assert store.purge_expired() == 1
        assert store.get("old") is None
        assert store.get("new") is not None

    def test_capacity_evicts_oldest(self):
        store = InMemoryJobStore(max_jobs=2)
        for job_id in ("a", "b", "c"):
            store.put(AnalysisResult(job_id=job_id))
        assert store.get("a") is None
        assert store.get("b") is not None
        assert store.get("c") is not None

    def test_protocol(self):
        assert isinstance(InMemoryJobStore(), JobStore)

    def test_clear(self):
        store = InMemoryJobStore()
        store.put(AnalysisResult(job_id="a"))
        store.clear()
        assert len(store) == 0
