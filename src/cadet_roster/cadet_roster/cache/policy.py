from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from ..common.datetime_utils import now_utc
from ..core.exceptions import RemoteReadError, RemoteStoreError
from ..store.repository import StoredDocument
from .local_cache import LocalDocumentCache

logger = logging.getLogger(__name__)

Fetch = Callable[[], Sequence[StoredDocument]]
# Called with the fetched documents and the time the fetch started.
OnRefreshed = Callable[[Sequence[StoredDocument], datetime], None]


def fetch_with_retry(fetch: Fetch, *, operation: str) -> List[StoredDocument]:
    """Run a remote read; on failure re-fetch exactly once, then raise."""
    try:
        return list(fetch())
    except RemoteStoreError as e:
        logger.warning("%s failed, re-fetching once: %s", operation, e)
    try:
        return list(fetch())
    except RemoteStoreError as e:
        raise RemoteReadError(str(e), operation=operation) from e


class ReadThroughPolicy:
    """Cache-first reads with a staleness gate.

    Fresh snapshot (age < max_age): returned at once and a refresh is
    scheduled on the executor. Absent or stale: fetched synchronously,
    recached and returned.
    """

    def __init__(
        self,
        cache: LocalDocumentCache,
        executor: Executor,
        *,
        max_age: timedelta,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._cache = cache
        self._executor = executor
        self._max_age = max_age
        self._clock = clock

    @property
    def max_age(self) -> timedelta:
        return self._max_age

    def read(
        self,
        collection: str,
        scope_key: str,
        fetch: Fetch,
        *,
        on_refreshed: Optional[OnRefreshed] = None,
    ) -> List[StoredDocument]:
        snapshot = self._cache.get(collection, scope_key)
        if snapshot is not None and self._clock() - snapshot.last_refreshed < self._max_age:
            logger.debug("Cache hit %s/%s", collection, scope_key)
            self.refresh_in_background(collection, scope_key, fetch, on_refreshed=on_refreshed)
            return list(snapshot.documents)
        logger.debug("Cache miss or stale %s/%s, fetching", collection, scope_key)
        return self.refresh(collection, scope_key, fetch)

    def refresh(self, collection: str, scope_key: str, fetch: Fetch) -> List[StoredDocument]:
        docs, _ = self._fetch_and_cache(collection, scope_key, fetch)
        return docs

    def _fetch_and_cache(self, collection: str, scope_key: str, fetch: Fetch) -> Tuple[List[StoredDocument], datetime]:
        fetched_at = self._clock()
        docs = fetch_with_retry(fetch, operation=f"fetch {collection}/{scope_key}")
        self._cache.put(collection, scope_key, docs, fetched_at)
        return docs, fetched_at

    def refresh_in_background(
        self,
        collection: str,
        scope_key: str,
        fetch: Fetch,
        *,
        on_refreshed: Optional[OnRefreshed] = None,
    ) -> Optional[Future]:
        try:
            return self._executor.submit(self._background_refresh, collection, scope_key, fetch, on_refreshed)
        except RuntimeError as e:
            # executor already shut down
            logger.warning("Background refresh of %s/%s not scheduled: %s", collection, scope_key, e)
            return None

    def _background_refresh(
        self,
        collection: str,
        scope_key: str,
        fetch: Fetch,
        on_refreshed: Optional[OnRefreshed],
    ) -> Optional[List[StoredDocument]]:
        try:
            docs, fetched_at = self._fetch_and_cache(collection, scope_key, fetch)
        except RemoteStoreError as e:
            logger.warning("Background refresh of %s/%s failed: %s", collection, scope_key, e)
            return None
        if on_refreshed is not None:
            on_refreshed(docs, fetched_at)
        return docs
