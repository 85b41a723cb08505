from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from ..cache.local_cache import LocalDocumentCache
from ..cache.policy import OnRefreshed, ReadThroughPolicy, fetch_with_retry
from ..cadets.repository import CadetRepository
from ..common.validators import require_enum, require_non_empty, require_week_start
from ..core.constants import ATTENDANCE_COLLECTION, DEFAULT_BATCH_LIMIT, IN_FILTER_LIMIT
from ..core.enums import ActivityType, AttendanceStatus, Company, DayOfWeek
from ..core.exceptions import RemoteStoreError, RemoteWriteError, ValidationError
from ..store.repository import DocumentStore, OnError, StoredDocument, Unsubscribe, eq, is_in
from . import stats
from .model import AttendanceRecord, DayStats, attendance_doc_id, materialize_defaults, slot_field

logger = logging.getLogger(__name__)


def week_scope_key(week_start_date: date) -> str:
    return f"week:{week_start_date.isoformat()}"


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def parse_documents(docs: Iterable[StoredDocument]) -> Iterator[AttendanceRecord]:
    """Records for every readable document; unreadable ones are logged and skipped."""
    for d in docs:
        try:
            yield AttendanceRecord.from_document(d.data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Skipping malformed attendance document %s: %s", d.key, e)


def records_from_documents(docs: Iterable[StoredDocument]) -> Dict[str, AttendanceRecord]:
    """cadetId -> record, legacy shapes normalized on the way in."""
    return {record.cadet_id: record for record in parse_documents(docs)}


class AttendanceRepository:
    """Cache-first attendance reads and merge-writes against the remote store.

    Reads for a (company, week) scope go through the read-through policy on
    the week's documents; the company's cadets decide which records are
    returned and which are synthesized as all-unset. Writes always send the
    full seven-slot shape of each record so merge semantics never leave a
    half-updated record behind.
    """

    def __init__(
        self,
        store: DocumentStore,
        cadets: CadetRepository,
        policy: ReadThroughPolicy,
        cache: LocalDocumentCache,
        *,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
    ):
        self._store = store
        self._cadets = cadets
        self._policy = policy
        self._cache = cache
        self._batch_limit = int(batch_limit)

    # ------------------------------------------------------------------ reads

    def _fetch_week(self, week: date):
        return lambda: self._store.query(ATTENDANCE_COLLECTION, [eq("weekStartDate", week.isoformat())])

    def cadet_ids(self, company: Company, *, refresh: bool = False) -> List[str]:
        return [c.cadet_id for c in self._cadets.get_by_company(company, refresh=refresh)]

    def scope_records(self, cadet_ids: Sequence[str], week: date, docs: Iterable[StoredDocument]) -> Dict[str, AttendanceRecord]:
        """Turn a raw week snapshot into the full map for ``cadet_ids``."""
        return materialize_defaults(records_from_documents(docs), cadet_ids, week)

    def get_week_documents(self, week: date, *, on_refreshed: Optional[OnRefreshed] = None) -> List[StoredDocument]:
        return self._policy.read(
            ATTENDANCE_COLLECTION,
            week_scope_key(week),
            self._fetch_week(week),
            on_refreshed=on_refreshed,
        )

    def fetch_week_documents(self, week: date) -> List[StoredDocument]:
        """Bypass the cache: fetch the week's documents and recache them."""
        return self._policy.refresh(ATTENDANCE_COLLECTION, week_scope_key(week), self._fetch_week(week))

    def get_scoped_attendance(
        self,
        company: Company,
        week_start_date: date | str,
        *,
        on_refreshed: Optional[OnRefreshed] = None,
    ) -> Dict[str, AttendanceRecord]:
        company = require_enum(Company, company, "company")
        week = require_week_start(week_start_date)
        docs = self.get_week_documents(week, on_refreshed=on_refreshed)
        return self.scope_records(self.cadet_ids(company), week, docs)

    def fetch_scoped_attendance(self, company: Company, week_start_date: date | str) -> Dict[str, AttendanceRecord]:
        """Bypass the cache: fetch, recache and return."""
        company = require_enum(Company, company, "company")
        week = require_week_start(week_start_date)
        docs = self.fetch_week_documents(week)
        return self.scope_records(self.cadet_ids(company, refresh=True), week, docs)

    def cache_week_snapshot(self, week: date, docs: Sequence[StoredDocument]) -> None:
        """Store a pushed full-week snapshot as the week's cache entry."""
        self._cache.put(ATTENDANCE_COLLECTION, week_scope_key(week), docs)

    def subscribe_week(self, week: date, on_change: Callable[[Sequence[StoredDocument]], None], on_error: Optional[OnError] = None) -> Unsubscribe:
        return self._store.subscribe(
            ATTENDANCE_COLLECTION,
            [eq("weekStartDate", week.isoformat())],
            on_change,
            on_error,
        )

    def find_record(self, cadet_id: str, week_start_date: date | str) -> Optional[AttendanceRecord]:
        cadet_id = require_non_empty(cadet_id, "cadetId")
        week = require_week_start(week_start_date)
        key = attendance_doc_id(week, cadet_id)
        found = fetch_with_retry(
            lambda: [d for d in [self._store.get(ATTENDANCE_COLLECTION, key)] if d is not None],
            operation=f"get attendance {key}",
        )
        records = list(parse_documents(found))
        return records[0] if records else None

    def get_record(self, cadet_id: str, week_start_date: date | str) -> AttendanceRecord:
        week = require_week_start(week_start_date)
        record = self.find_record(cadet_id, week)
        return record if record is not None else AttendanceRecord.blank(cadet_id, week)

    # ----------------------------------------------------------------- writes

    def _refresh_weeks_later(self, weeks: Iterable[date]) -> None:
        for week in set(weeks):
            self._policy.refresh_in_background(ATTENDANCE_COLLECTION, week_scope_key(week), self._fetch_week(week))

    def update_single_slot(
        self,
        cadet_id: str,
        day: DayOfWeek | str,
        status: AttendanceStatus | str,
        week_start_date: date | str,
        activity: ActivityType | str = ActivityType.PT,
    ) -> AttendanceRecord:
        """Read-modify-write of one slot; the rest are re-sent as read."""
        day = require_enum(DayOfWeek, day, "day")
        activity = require_enum(ActivityType, activity, "activityType")
        status = require_enum(AttendanceStatus, status, "status")
        slot_field(day, activity)
        week = require_week_start(week_start_date)

        current = self.get_record(cadet_id, week)
        updated = current.with_status(day, activity, status)
        self._upsert(updated, operation="update_single_slot")
        self._refresh_weeks_later([week])
        return updated

    def update_whole_record(self, record: AttendanceRecord) -> None:
        self._upsert(record, operation="update_whole_record")
        self._refresh_weeks_later([record.week_start_date])

    def _upsert(self, record: AttendanceRecord, *, operation: str) -> None:
        try:
            self._store.upsert_merge(ATTENDANCE_COLLECTION, record.doc_id, record.to_document())
        except RemoteStoreError as e:
            raise RemoteWriteError(f"Saving attendance for cadet {record.cadet_id} failed: {e}", operation=operation) from e
        logger.info("Saved attendance %s", record.doc_id)

    def batch_update_records(self, records: Iterable[AttendanceRecord]) -> int:
        """Merge-write many full records in as few batched calls as possible.

        Chunks of at most ``batch_limit`` go out one after another. Returns
        the number of remote batch calls issued.
        """
        records = list(records)
        if not records:
            return 0
        keys = [r.doc_id for r in records]
        if len(set(keys)) != len(keys):
            raise ValidationError("A batch may contain each cadet/week only once")
        writes = [(r.doc_id, r.to_document()) for r in records]
        calls = 0
        for chunk in _chunks(writes, self._batch_limit):
            try:
                self._store.batch_upsert_merge(ATTENDANCE_COLLECTION, chunk)
            except RemoteStoreError as e:
                raise RemoteWriteError(
                    f"Batch write failed after {calls} of {len(writes)} chunks committed: {e}",
                    operation="batch_update_records",
                ) from e
            calls += 1
        logger.info("Saved %d attendance records in %d batch(es)", len(records), calls)
        self._refresh_weeks_later(r.week_start_date for r in records)
        return calls

    def clear_all_attendance(self) -> int:
        """Reset every slot of every stored record to unset. Records stay."""
        docs = fetch_with_retry(lambda: self._store.query(ATTENDANCE_COLLECTION), operation="clear_all_attendance")
        cleared = [r.cleared() for r in parse_documents(docs)]
        self.batch_update_records(cleared)
        self._cache.clear(ATTENDANCE_COLLECTION)
        logger.info("Cleared %d attendance records", len(cleared))
        return len(cleared)

    # ------------------------------------------------------------- aggregates

    def get_cadet_history(self, cadet_id: str) -> List[AttendanceRecord]:
        """Every stored week for one cadet, oldest first."""
        cadet_id = require_non_empty(cadet_id, "cadetId")
        docs = fetch_with_retry(
            lambda: self._store.query(ATTENDANCE_COLLECTION, [eq("cadetId", cadet_id)]),
            operation=f"history for cadet {cadet_id}",
        )
        return sorted(parse_documents(docs), key=lambda r: r.week_start_date)

    def get_history_for_cadets(self, cadet_ids: Sequence[str]) -> Dict[str, List[AttendanceRecord]]:
        out: Dict[str, List[AttendanceRecord]] = {cid: [] for cid in cadet_ids}
        for chunk in _chunks(list(dict.fromkeys(cadet_ids)), IN_FILTER_LIMIT):
            docs = fetch_with_retry(
                lambda chunk=chunk: self._store.query(ATTENDANCE_COLLECTION, [is_in("cadetId", chunk)]),
                operation="history for cadets",
            )
            for record in parse_documents(docs):
                out.setdefault(record.cadet_id, []).append(record)
        for records in out.values():
            records.sort(key=lambda r: r.week_start_date)
        return out

    def count_unexcused(self, cadet_id: str, activity: ActivityType | str = ActivityType.PT) -> int:
        activity = require_enum(ActivityType, activity, "activityType")
        return stats.count_unexcused(self.get_cadet_history(cadet_id), activity)

    def unexcused_dates(self, cadet_id: str, activity: ActivityType | str = ActivityType.PT) -> List[date]:
        activity = require_enum(ActivityType, activity, "activityType")
        return stats.unexcused_dates(self.get_cadet_history(cadet_id), activity)

    def unexcused_totals(self, cadet_ids: Sequence[str], activity: ActivityType | str = ActivityType.PT) -> Mapping[str, int]:
        activity = require_enum(ActivityType, activity, "activityType")
        history = self.get_history_for_cadets(cadet_ids)
        return {cid: stats.count_unexcused(records, activity) for cid, records in history.items()}

    def week_stats(
        self,
        company: Company,
        week_start_date: date | str,
        activity: ActivityType | str = ActivityType.PT,
    ) -> Dict[DayOfWeek, DayStats]:
        activity = require_enum(ActivityType, activity, "activityType")
        records = self.get_scoped_attendance(company, week_start_date).values()
        return stats.stats_by_day(records, activity)
