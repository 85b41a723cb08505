from __future__ import annotations

from concurrent.futures import Executor, Future
from datetime import date, datetime, timedelta, timezone

import pytest

from cadet_roster.attendance.repository import AttendanceRepository
from cadet_roster.cache.local_cache import LocalDocumentCache
from cadet_roster.cache.policy import ReadThroughPolicy
from cadet_roster.cadets.repository import CadetRepository
from cadet_roster.core.exceptions import RemoteReadError, RemoteWriteError
from cadet_roster.store.memory_document_store import InMemoryDocumentStore

WEEK = date(2026, 1, 19)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class DeferredExecutor(Executor):
    """Queues submitted work until ``run_all`` so tests decide when
    "background" refreshes happen."""

    def __init__(self):
        self.pending = []
        self.closed = False

    def submit(self, fn, *args, **kwargs):
        if self.closed:
            raise RuntimeError("cannot schedule new futures after shutdown")
        fut = Future()
        self.pending.append((fut, fn, args, kwargs))
        return fut

    def run_all(self) -> int:
        ran = 0
        while self.pending:
            fut, fn, args, kwargs = self.pending.pop(0)
            try:
                fut.set_result(fn(*args, **kwargs))
            except Exception as exc:
                fut.set_exception(exc)
            ran += 1
        return ran

    def shutdown(self, wait=True, **kwargs):
        self.closed = True


class SpyStore(InMemoryDocumentStore):
    """In-memory store that records remote calls and can be told to fail."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.queries = []
        self.gets = []
        self.upserts = []
        self.batches = []
        self.fail_reads = 0
        self.fail_writes = False

    def query(self, collection, filters=()):
        self.queries.append((collection, tuple(filters)))
        if self.fail_reads:
            self.fail_reads -= 1
            raise RemoteReadError("store unavailable", operation="query")
        return super().query(collection, filters)

    def get(self, collection, key):
        self.gets.append((collection, key))
        return super().get(collection, key)

    def upsert_merge(self, collection, key, fields):
        if self.fail_writes:
            raise RemoteWriteError("write rejected", operation="upsert_merge")
        self.upserts.append((collection, key, dict(fields)))
        super().upsert_merge(collection, key, fields)

    def batch_upsert_merge(self, collection, writes):
        if self.fail_writes:
            raise RemoteWriteError("batch rejected", operation="batch_upsert_merge")
        self.batches.append((collection, [k for k, _ in writes]))
        super().batch_upsert_merge(collection, writes)

    def write_without_push(self, collection, key, fields):
        """A remote change whose push has not arrived yet."""
        with self._lock:
            self._merge(collection, key, fields)

    def attendance_queries(self):
        return [q for q in self.queries if q[0] == "attendance"]


def seed_cadets(store: InMemoryDocumentStore) -> None:
    cadets = {
        "42": {"company": "Alpha", "firstName": "Ada", "lastName": "Baker", "militaryScienceLevel": "MS3"},
        "7": {"company": "Alpha", "firstName": "Cal", "lastName": "Adams", "militaryScienceLevel": "MS1"},
        "9": {"company": "Bravo", "firstName": "Dee", "lastName": "Cole", "militaryScienceLevel": "MS2"},
    }
    for key, data in cadets.items():
        store.upsert_merge("cadets", key, data)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 1, 20, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_now) -> FixedClock:
    return FixedClock(fixed_now)


@pytest.fixture
def executor() -> DeferredExecutor:
    return DeferredExecutor()


@pytest.fixture
def store() -> SpyStore:
    s = SpyStore()
    seed_cadets(s)
    s.upserts.clear()
    return s


@pytest.fixture
def empty_store() -> SpyStore:
    return SpyStore()


@pytest.fixture
def cache(tmp_path, clock):
    c = LocalDocumentCache(str(tmp_path / "cache.db"), clock=clock).open()
    yield c
    c.close()


@pytest.fixture
def policy(cache, executor, clock) -> ReadThroughPolicy:
    return ReadThroughPolicy(cache, executor, max_age=timedelta(minutes=5), clock=clock)


@pytest.fixture
def cadets_repo(store, policy) -> CadetRepository:
    return CadetRepository(store, policy)


@pytest.fixture
def attendance_repo(store, cadets_repo, policy, cache) -> AttendanceRepository:
    return AttendanceRepository(store, cadets_repo, policy, cache)
