from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..core.constants import DEFAULT_BATCH_LIMIT
from ..core.exceptions import RemoteReadError, RemoteWriteError
from .repository import DocumentStore, FieldFilter, OnChange, OnError, StoredDocument, Unsubscribe

logger = logging.getLogger(__name__)


@dataclass
class _Subscription:
    collection: str
    filters: Tuple[FieldFilter, ...]
    on_change: OnChange
    on_error: Optional[OnError]
    active: bool = True


class InMemoryDocumentStore(DocumentStore):
    """Process-local document store with the same merge and push semantics
    as the hosted one. Subscribers are notified synchronously after each
    committed write, outside the store lock.
    """

    def __init__(self, *, max_batch_size: int = DEFAULT_BATCH_LIMIT):
        self.max_batch_size = int(max_batch_size)
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subs: List[_Subscription] = []
        self._lock = threading.RLock()

    def _snapshot(self, collection: str, filters: Sequence[FieldFilter]) -> List[StoredDocument]:
        docs = self._data.get(collection, {})
        return [
            StoredDocument(key=key, data=copy.deepcopy(data))
            for key, data in sorted(docs.items())
            if all(f.matches(data) for f in filters)
        ]

    def query(self, collection: str, filters: Sequence[FieldFilter] = ()) -> Sequence[StoredDocument]:
        with self._lock:
            return self._snapshot(collection, tuple(filters))

    def get(self, collection: str, key: str) -> Optional[StoredDocument]:
        with self._lock:
            data = self._data.get(collection, {}).get(key)
            return StoredDocument(key=key, data=copy.deepcopy(data)) if data is not None else None

    def _merge(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        existing = self._data.setdefault(collection, {}).setdefault(key, {})
        existing.update(copy.deepcopy(dict(fields)))

    def upsert_merge(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        with self._lock:
            self._merge(collection, key, fields)
        self._notify(collection)

    def batch_upsert_merge(self, collection: str, writes: Sequence[Tuple[str, Mapping[str, Any]]]) -> None:
        if len(writes) > self.max_batch_size:
            raise RemoteWriteError(
                f"Batch of {len(writes)} exceeds limit {self.max_batch_size}",
                operation="batch_upsert_merge",
            )
        with self._lock:
            for key, fields in writes:
                self._merge(collection, key, fields)
        self._notify(collection)

    def subscribe(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe:
        sub = _Subscription(collection, tuple(filters), on_change, on_error)
        with self._lock:
            self._subs.append(sub)
            initial = self._snapshot(collection, sub.filters)
        self._deliver(sub, initial)

        def unsubscribe() -> None:
            with self._lock:
                sub.active = False
                if sub in self._subs:
                    self._subs.remove(sub)

        return unsubscribe

    def fail_subscribers(self, collection: str, error: Exception) -> None:
        """Deliver ``error`` to every live subscriber of ``collection``."""
        with self._lock:
            subs = [s for s in self._subs if s.collection == collection]
        for sub in subs:
            if sub.active and sub.on_error is not None:
                sub.on_error(error)

    def _notify(self, collection: str) -> None:
        with self._lock:
            pending = [(s, self._snapshot(collection, s.filters)) for s in self._subs if s.collection == collection]
        for sub, docs in pending:
            self._deliver(sub, docs)

    def _deliver(self, sub: _Subscription, docs: List[StoredDocument]) -> None:
        if not sub.active:
            return
        try:
            sub.on_change(docs)
        except Exception as exc:
            logger.exception("Subscriber for %s failed", sub.collection)
            if sub.on_error is not None:
                sub.on_error(RemoteReadError(str(exc), operation="subscribe"))
