from __future__ import annotations

from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Mapping, Optional

from .attendance.repository import AttendanceRepository
from .backup.service import BackupService
from .cache.local_cache import LocalDocumentCache
from .cache.policy import ReadThroughPolicy
from .cadets.repository import CadetRepository
from .common.datetime_utils import now_utc
from .core.constants import (
    DEFAULT_BACKGROUND_WORKERS,
    DEFAULT_BATCH_LIMIT,
    DEFAULT_CACHE_MAX_AGE_SECONDS,
    DEFAULT_POLL_SECONDS,
)
from .core.exceptions import ValidationError
from .database.connection import DBConfig, DatabaseConnection
from .database.mysql_base import ensure_schema
from .reconciliation.service import RosterViewService
from .store.memory_document_store import InMemoryDocumentStore
from .store.mysql_document_store import MySQLDocumentStore
from .store.repository import DocumentStore


@dataclass(frozen=True)
class Container:
    store: DocumentStore
    cache: LocalDocumentCache
    executor: Executor
    policy: ReadThroughPolicy

    cadets_repo: CadetRepository
    attendance_repo: AttendanceRepository

    view_service: RosterViewService
    backup_service: BackupService

    def close(self) -> None:
        """Close views, stop background work, then release the cache."""
        self.view_service.close_all()
        if isinstance(self.executor, ThreadPoolExecutor):
            self.executor.shutdown(wait=True)
        if isinstance(self.store, MySQLDocumentStore):
            self.store.close()
        self.cache.close()


def build_store(*, backend: str, db_config: Mapping, batch_limit: int, poll_seconds: float) -> DocumentStore:
    if backend == "memory":
        return InMemoryDocumentStore(max_batch_size=batch_limit)
    if backend == "mysql":
        conn = DatabaseConnection(DBConfig.from_mapping(db_config))
        ensure_schema(conn)
        return MySQLDocumentStore(conn, max_batch_size=batch_limit, poll_seconds=poll_seconds)
    raise ValidationError(f"Unknown STORE_BACKEND {backend!r}")


def build_container(
    *,
    cache_path: str,
    store_backend: str = "memory",
    db_config: Optional[Mapping] = None,
    cache_max_age_seconds: int = DEFAULT_CACHE_MAX_AGE_SECONDS,
    batch_limit: int = DEFAULT_BATCH_LIMIT,
    poll_seconds: float = DEFAULT_POLL_SECONDS,
    background_workers: int = DEFAULT_BACKGROUND_WORKERS,
    store: Optional[DocumentStore] = None,
    executor: Optional[Executor] = None,
    clock: Callable[[], datetime] = now_utc,
) -> Container:
    store = store or build_store(
        backend=store_backend,
        db_config=db_config or {},
        batch_limit=batch_limit,
        poll_seconds=poll_seconds,
    )
    cache = LocalDocumentCache(cache_path, clock=clock).open()
    executor = executor or ThreadPoolExecutor(max_workers=background_workers, thread_name_prefix="cache-refresh")
    policy = ReadThroughPolicy(cache, executor, max_age=timedelta(seconds=cache_max_age_seconds), clock=clock)

    cadets_repo = CadetRepository(store, policy)
    attendance_repo = AttendanceRepository(store, cadets_repo, policy, cache, batch_limit=batch_limit)

    view_service = RosterViewService(attendance_repo, clock=clock)
    backup_service = BackupService(store, cache, batch_limit=batch_limit, clock=clock)

    return Container(
        store=store,
        cache=cache,
        executor=executor,
        policy=policy,
        cadets_repo=cadets_repo,
        attendance_repo=attendance_repo,
        view_service=view_service,
        backup_service=backup_service,
    )
