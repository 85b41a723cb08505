from __future__ import annotations

import json
import logging
import re
import threading
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import mysql.connector

from ..core.constants import DEFAULT_BATCH_LIMIT, DEFAULT_POLL_SECONDS
from ..core.exceptions import RemoteReadError, RemoteWriteError, ValidationError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, load_body
from .repository import DocumentStore, FieldFilter, OnChange, OnError, StoredDocument, Unsubscribe

logger = logging.getLogger(__name__)

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _where(collection: str, filters: Sequence[FieldFilter]) -> Tuple[str, List[Any]]:
    clauses = ["collection=%s"]
    params: List[Any] = [collection]
    for f in filters:
        if not _FIELD_RE.match(f.field):
            raise ValidationError(f"Invalid filter field {f.field!r}")
        values = [f.value] if f.op == "==" else list(f.value)
        ors = []
        for value in values:
            ors.append("JSON_EXTRACT(body, %s) = CAST(%s AS JSON)")
            params.extend([f"$.{f.field}", json.dumps(value)])
        clauses.append("(" + " OR ".join(ors) + ")")
    return " AND ".join(clauses), params


class MySQLDocumentStore(DocumentStore):
    """JSON documents in one MySQL table, keyed by (collection, doc_key).

    Merge writes read the current body under ``SELECT ... FOR UPDATE`` and
    write the merged body back in the same transaction. Subscriptions poll.
    """

    def __init__(
        self,
        conn_factory: DatabaseConnection,
        *,
        max_batch_size: int = DEFAULT_BATCH_LIMIT,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
    ):
        self._conn_factory = conn_factory
        self.max_batch_size = int(max_batch_size)
        self._poll_seconds = float(poll_seconds)
        self._pollers: List["_Poller"] = []
        self._lock = threading.Lock()

    def query(self, collection: str, filters: Sequence[FieldFilter] = ()) -> Sequence[StoredDocument]:
        where, params = _where(collection, filters)
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    f"SELECT doc_key, body FROM documents WHERE {where} ORDER BY doc_key",
                    tuple(params),
                )
                rows = fetchall(cur)
        except mysql.connector.Error as exc:
            raise RemoteReadError(f"Query on {collection} failed: {exc}", operation="query") from exc
        return [StoredDocument(key=r["doc_key"], data=load_body(r["body"])) for r in rows]

    def get(self, collection: str, key: str) -> Optional[StoredDocument]:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    "SELECT doc_key, body FROM documents WHERE collection=%s AND doc_key=%s",
                    (collection, key),
                )
                r = fetchone(cur)
        except mysql.connector.Error as exc:
            raise RemoteReadError(f"Get {collection}/{key} failed: {exc}", operation="get") from exc
        if not r:
            return None
        return StoredDocument(key=r["doc_key"], data=load_body(r["body"]))

    @staticmethod
    def _merge_row(cur, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        cur.execute(
            "SELECT body FROM documents WHERE collection=%s AND doc_key=%s FOR UPDATE",
            (collection, key),
        )
        row = fetchone(cur)
        body = load_body(row["body"]) if row else {}
        body.update(fields)
        cur.execute(
            """
            INSERT INTO documents(collection, doc_key, body)
            VALUES(%s,%s,%s)
            ON DUPLICATE KEY UPDATE body=VALUES(body)
            """,
            (collection, key, json.dumps(body)),
        )

    def upsert_merge(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                self._merge_row(cur, collection, key, fields)
        except mysql.connector.Error as exc:
            raise RemoteWriteError(f"Write {collection}/{key} failed: {exc}", operation="upsert_merge") from exc

    def batch_upsert_merge(self, collection: str, writes: Sequence[Tuple[str, Mapping[str, Any]]]) -> None:
        if len(writes) > self.max_batch_size:
            raise RemoteWriteError(
                f"Batch of {len(writes)} exceeds limit {self.max_batch_size}",
                operation="batch_upsert_merge",
            )
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                for key, fields in writes:
                    self._merge_row(cur, collection, key, fields)
        except mysql.connector.Error as exc:
            raise RemoteWriteError(
                f"Batch write of {len(writes)} {collection} documents failed: {exc}",
                operation="batch_upsert_merge",
            ) from exc

    def subscribe(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe:
        poller = _Poller(self, collection, tuple(filters), on_change, on_error, self._poll_seconds)
        with self._lock:
            self._pollers.append(poller)
        poller.start()

        def unsubscribe() -> None:
            poller.stop()
            with self._lock:
                if poller in self._pollers:
                    self._pollers.remove(poller)

        return unsubscribe

    def close(self) -> None:
        with self._lock:
            pollers, self._pollers = self._pollers, []
        for poller in pollers:
            poller.stop()


class _Poller(threading.Thread):
    """Re-runs one query every ``interval`` seconds and pushes the full
    result whenever it differs from the last delivered one."""

    def __init__(self, store, collection, filters, on_change, on_error, interval: float):
        super().__init__(name=f"poll-{collection}", daemon=True)
        self._store = store
        self._collection = collection
        self._filters = filters
        self._on_change = on_change
        self._on_error = on_error
        self._interval = interval
        self._stopped = threading.Event()
        self._last: Optional[List[StoredDocument]] = None

    def stop(self) -> None:
        self._stopped.set()

    def run(self) -> None:
        while not self._stopped.is_set():
            try:
                docs = list(self._store.query(self._collection, self._filters))
            except RemoteReadError as exc:
                logger.warning("Subscription poll on %s failed: %s", self._collection, exc)
                if self._on_error is not None and not self._stopped.is_set():
                    self._on_error(exc)
            else:
                if docs != self._last and not self._stopped.is_set():
                    self._last = docs
                    try:
                        self._on_change(docs)
                    except Exception as exc:
                        logger.exception("Subscriber for %s failed", self._collection)
                        if self._on_error is not None:
                            self._on_error(RemoteReadError(str(exc), operation="subscribe"))
            self._stopped.wait(self._interval)
