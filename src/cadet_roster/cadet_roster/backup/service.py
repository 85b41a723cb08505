from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Sequence

from ..cache.local_cache import LocalDocumentCache
from ..cache.policy import fetch_with_retry
from ..common.datetime_utils import now_utc
from ..core.constants import BACKUP_FORMAT_VERSION, CACHED_COLLECTIONS, DEFAULT_BATCH_LIMIT
from ..core.exceptions import RemoteStoreError, RemoteWriteError, ValidationError
from ..store.repository import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupData:
    version: str
    timestamp: str
    collections: Mapping[str, Sequence[Mapping[str, Any]]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "collections": {k: [dict(d) for d in v] for k, v in self.collections.items()},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "BackupData":
        if not isinstance(raw, Mapping) or not raw.get("timestamp") or not isinstance(raw.get("collections"), Mapping):
            raise ValidationError("Invalid backup file format")
        return cls(
            version=str(raw.get("version", BACKUP_FORMAT_VERSION)),
            timestamp=str(raw["timestamp"]),
            collections=dict(raw["collections"]),
        )

    @classmethod
    def from_json(cls, text: str) -> "BackupData":
        try:
            raw = json.loads(text)
        except ValueError as e:
            raise ValidationError(f"Failed to parse backup file: {e}") from e
        return cls.from_dict(raw)


class BackupService:
    """Whole-store JSON export and merge-restore."""

    def __init__(
        self,
        store: DocumentStore,
        cache: LocalDocumentCache,
        *,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
        collections: Sequence[str] = CACHED_COLLECTIONS,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._store = store
        self._cache = cache
        self._batch_limit = int(batch_limit)
        self._collections = tuple(collections)
        self._clock = clock

    def export_database(self) -> BackupData:
        out: Dict[str, List[Dict[str, Any]]] = {}
        for name in self._collections:
            docs = fetch_with_retry(lambda name=name: self._store.query(name), operation=f"export {name}")
            out[name] = [d.to_dict() for d in docs]
            logger.info("Exported %d documents from %s", len(docs), name)
        return BackupData(version=BACKUP_FORMAT_VERSION, timestamp=self._clock().isoformat(), collections=out)

    def import_database(self, backup: BackupData) -> Dict[str, int]:
        """Merge every backed-up document into the store.

        Documents without an ``id`` are skipped. Returns written counts per
        collection. Local cache entries of restored collections are dropped.
        """
        written: Dict[str, int] = {}
        for name, documents in backup.collections.items():
            if name not in self._collections:
                logger.warning("Skipping unknown collection %s in backup", name)
                continue
            writes = []
            for doc in documents or []:
                doc = dict(doc)
                key = doc.pop("id", None)
                if not key:
                    logger.warning("Skipping document in %s without id", name)
                    continue
                writes.append((str(key), doc))
            for i in range(0, len(writes), self._batch_limit):
                try:
                    self._store.batch_upsert_merge(name, writes[i : i + self._batch_limit])
                except RemoteStoreError as e:
                    raise RemoteWriteError(f"Restoring {name} failed: {e}", operation="import_database") from e
            written[name] = len(writes)
            self._cache.clear(name)
            logger.info("Restored %d documents into %s", len(writes), name)
        return written
