from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence, Tuple

from ..common.datetime_utils import from_timestamp, now_utc, to_timestamp
from ..core.constants import CACHED_COLLECTIONS
from ..core.exceptions import ValidationError
from ..store.repository import StoredDocument

logger = logging.getLogger(__name__)

_CACHE_ERRORS = (sqlite3.Error, OSError, ValueError, TypeError)


@dataclass(frozen=True)
class CachedSnapshot:
    documents: Tuple[StoredDocument, ...]
    last_refreshed: datetime


class LocalDocumentCache:
    """Persistent per-scope document snapshots with refresh timestamps.

    One SQLite file holds a ``documents`` table (one row per cached document,
    grouped by collection and scope key) and a ``metadata`` table with the
    last-refreshed time of each scope. ``put`` replaces a whole scope in one
    transaction, unless the scope already holds a newer snapshot. Every
    storage failure is logged and reported as a miss.
    """

    def __init__(self, path: str, *, clock: Callable[[], datetime] = now_utc):
        self._path = path
        self._clock = clock
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def open(self) -> "LocalDocumentCache":
        if self._conn is not None:
            return self
        try:
            if self._path != ":memory:":
                os.makedirs(os.path.dirname(os.path.abspath(self._path)), exist_ok=True)
            conn = sqlite3.connect(self._path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._ensure_tables(conn)
            self._conn = conn
        except _CACHE_ERRORS as e:
            logger.warning("Local cache unavailable at %s: %s", self._path, e)
            self._conn = None
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @staticmethod
    def _ensure_tables(conn: sqlite3.Connection) -> None:
        with conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
              collection TEXT NOT NULL,
              scope_key TEXT NOT NULL,
              doc_key TEXT NOT NULL,
              body TEXT NOT NULL,
              PRIMARY KEY (collection, scope_key, doc_key)
            )""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS metadata (
              collection TEXT NOT NULL,
              scope_key TEXT NOT NULL,
              last_refreshed REAL NOT NULL,
              PRIMARY KEY (collection, scope_key)
            )""")

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in CACHED_COLLECTIONS:
            raise ValidationError(f"No local store for collection {collection!r}")

    def get(self, collection: str, scope_key: str) -> Optional[CachedSnapshot]:
        self._check_collection(collection)
        with self._lock:
            if self._conn is None:
                return None
            try:
                meta = self._conn.execute(
                    "SELECT last_refreshed FROM metadata WHERE collection=? AND scope_key=?",
                    (collection, scope_key),
                ).fetchone()
                if meta is None:
                    return None
                rows = self._conn.execute(
                    "SELECT doc_key, body FROM documents WHERE collection=? AND scope_key=? ORDER BY doc_key",
                    (collection, scope_key),
                ).fetchall()
                docs = tuple(StoredDocument(key=r["doc_key"], data=json.loads(r["body"])) for r in rows)
                return CachedSnapshot(documents=docs, last_refreshed=from_timestamp(meta["last_refreshed"]))
            except _CACHE_ERRORS as e:
                logger.warning("Cache read %s/%s failed, treating as miss: %s", collection, scope_key, e)
                return None

    def put(
        self,
        collection: str,
        scope_key: str,
        documents: Sequence[StoredDocument],
        timestamp: Optional[datetime] = None,
    ) -> None:
        self._check_collection(collection)
        stamp = to_timestamp(timestamp or self._clock())
        with self._lock:
            if self._conn is None:
                return
            try:
                meta = self._conn.execute(
                    "SELECT last_refreshed FROM metadata WHERE collection=? AND scope_key=?",
                    (collection, scope_key),
                ).fetchone()
                if meta is not None and meta["last_refreshed"] > stamp:
                    logger.debug("Cache put %s/%s skipped, a newer snapshot is cached", collection, scope_key)
                    return
                rows = [(collection, scope_key, d.key, json.dumps(dict(d.data))) for d in documents]
                with self._conn:
                    self._conn.execute(
                        "DELETE FROM documents WHERE collection=? AND scope_key=?",
                        (collection, scope_key),
                    )
                    self._conn.executemany(
                        "INSERT INTO documents (collection, scope_key, doc_key, body) VALUES (?,?,?,?)",
                        rows,
                    )
                    self._conn.execute(
                        "INSERT OR REPLACE INTO metadata (collection, scope_key, last_refreshed) VALUES (?,?,?)",
                        (collection, scope_key, stamp),
                    )
            except _CACHE_ERRORS as e:
                logger.warning("Cache write %s/%s failed: %s", collection, scope_key, e)

    def age(self, collection: str, scope_key: str) -> Optional[timedelta]:
        self._check_collection(collection)
        with self._lock:
            if self._conn is None:
                return None
            try:
                meta = self._conn.execute(
                    "SELECT last_refreshed FROM metadata WHERE collection=? AND scope_key=?",
                    (collection, scope_key),
                ).fetchone()
            except _CACHE_ERRORS as e:
                logger.warning("Cache age %s/%s failed: %s", collection, scope_key, e)
                return None
        if meta is None:
            return None
        return self._clock() - from_timestamp(meta["last_refreshed"])

    def is_stale(self, collection: str, scope_key: str, max_age: timedelta) -> bool:
        age = self.age(collection, scope_key)
        return age is None or age >= max_age

    def clear(self, collection: Optional[str] = None) -> None:
        if collection is not None:
            self._check_collection(collection)
        with self._lock:
            if self._conn is None:
                return
            try:
                with self._conn:
                    if collection is None:
                        self._conn.execute("DELETE FROM documents")
                        self._conn.execute("DELETE FROM metadata")
                    else:
                        self._conn.execute("DELETE FROM documents WHERE collection=?", (collection,))
                        self._conn.execute("DELETE FROM metadata WHERE collection=?", (collection,))
            except _CACHE_ERRORS as e:
                logger.warning("Cache clear failed: %s", e)
