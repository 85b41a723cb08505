from __future__ import annotations

import logging
import threading
import uuid
from datetime import date, datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..attendance.model import AttendanceRecord
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import now_utc
from ..common.validators import require_enum, require_week_start
from ..core.enums import ActivityType, AttendanceStatus, Company, DayOfWeek, ViewStatus
from ..core.exceptions import InvalidTransitionError, NotFoundError, ViewClosedError
from ..store.repository import StoredDocument, Unsubscribe
from . import state as rs
from .state import ReconciliationState, RosterScope, SnapshotEvent

logger = logging.getLogger(__name__)

RenderListener = Callable[[Mapping[str, AttendanceRecord]], None]
ErrorListener = Callable[[Exception], None]


class RosterView:
    """One open roster grid for a (company, week) scope.

    Owns the view's reconciliation state, its subscription to the week's
    attendance documents and the save flow. Pushes, background refreshes
    and user edits are applied one at a time under the view lock in the
    order they arrive. The remote write of a save runs outside the lock, so
    a push that lands mid-save only updates ``server_known``.
    """

    def __init__(
        self,
        view_id: str,
        scope: RosterScope,
        repository: AttendanceRepository,
        *,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.view_id = view_id
        self.scope = scope
        self._repo = repository
        self._clock = clock
        self._lock = threading.RLock()
        self._state: Optional[ReconciliationState] = None
        self._cadet_ids: List[str] = []
        self._unsubscribe: Optional[Unsubscribe] = None
        self._closed = False
        self._render_listeners: List[RenderListener] = []
        self._error_listeners: List[ErrorListener] = []

    # -------------------------------------------------------------- lifecycle

    def open(self) -> "RosterView":
        opened_at = self._clock()
        week = self.scope.week_start_date
        docs = self._repo.get_week_documents(week, on_refreshed=self._on_refreshed)
        cadet_ids = self._repo.cadet_ids(self.scope.company)
        with self._lock:
            self._cadet_ids = cadet_ids
            self._state = rs.initial_state(self.scope, self._repo.scope_records(cadet_ids, week, docs), at=opened_at)
        self._unsubscribe = self._repo.subscribe_week(week, self._on_push, self._on_subscription_error)
        logger.info("Opened roster view %s for %s", self.view_id, self.scope)
        return self

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        logger.info("Closed roster view %s", self.view_id)

    @property
    def closed(self) -> bool:
        return self._closed

    def on_render(self, listener: RenderListener) -> None:
        self._render_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    # ------------------------------------------------------------------ state

    def _require_state(self) -> ReconciliationState:
        if self._closed:
            raise ViewClosedError(f"Roster view {self.view_id} is closed")
        if self._state is None:
            raise InvalidTransitionError(f"Roster view {self.view_id} was never opened")
        return self._state

    @property
    def state(self) -> ReconciliationState:
        with self._lock:
            return self._require_state()

    @property
    def status(self) -> ViewStatus:
        return self.state.status

    @property
    def records(self) -> Dict[str, AttendanceRecord]:
        return dict(self.state.local_working)

    @property
    def server_known(self) -> Dict[str, AttendanceRecord]:
        return dict(self.state.server_known)

    def pending_changes(self) -> Dict[str, Tuple[str, ...]]:
        st = self.state
        return rs.compute_diff(st.local_working, st.server_known)

    def _render(self, records: Mapping[str, AttendanceRecord]) -> None:
        for listener in list(self._render_listeners):
            listener(dict(records))

    def _replace_state(self, new_state: ReconciliationState) -> bool:
        """Swap in ``new_state``; True when the visible records changed."""
        changed = dict(new_state.local_working) != dict(self._state.local_working) if self._state else True
        self._state = new_state
        return changed

    # ------------------------------------------------------------ remote side

    def _report(self, error: Exception) -> None:
        for listener in list(self._error_listeners):
            listener(error)

    def _apply_snapshot(self, docs: Sequence[StoredDocument], fetched_at: datetime) -> None:
        """Reconcile one snapshot of the week; ``fetched_at`` is when its read started."""
        with self._lock:
            if self._closed or self._state is None:
                return
            records = self._repo.scope_records(self._cadet_ids, self.scope.week_start_date, docs)
            event = SnapshotEvent(scope=self.scope, records=records, timestamp=fetched_at)
            changed = self._replace_state(rs.reconcile(self._state, event))
            visible = self._state.local_working
        if changed:
            self._render(visible)

    def _on_push(self, docs: Sequence[StoredDocument]) -> None:
        if self._closed:
            return
        try:
            self._repo.cache_week_snapshot(self.scope.week_start_date, docs)
            self._apply_snapshot(docs, self._clock())
        except Exception as e:
            # The push arrives on the writer's call stack or the poller thread.
            logger.exception("Applying pushed snapshot to %s failed", self.scope)
            self._report(e)

    def _on_refreshed(self, docs: Sequence[StoredDocument], fetched_at: datetime) -> None:
        if self._closed:
            return
        try:
            self._apply_snapshot(docs, fetched_at)
        except Exception as e:
            logger.exception("Applying refreshed snapshot to %s failed", self.scope)
            self._report(e)

    def _on_subscription_error(self, error: Exception) -> None:
        if self._closed:
            return
        logger.warning("Subscription for %s failed, re-fetching once: %s", self.scope, error)
        try:
            fetched_at = self._clock()
            docs = self._repo.fetch_week_documents(self.scope.week_start_date)
            self._apply_snapshot(docs, fetched_at)
        except Exception as e:
            logger.error("Re-fetch for %s failed: %s", self.scope, e)
            self._report(e)

    # -------------------------------------------------------------- user side

    def edit(
        self,
        cadet_id: str,
        day: DayOfWeek | str,
        activity: ActivityType | str,
        status: AttendanceStatus | str,
    ) -> AttendanceRecord:
        day = require_enum(DayOfWeek, day, "day")
        activity = require_enum(ActivityType, activity, "activityType")
        status = require_enum(AttendanceStatus, status, "status")
        with self._lock:
            st = self._require_state()
            self._replace_state(rs.apply_edit(st, cadet_id, day, activity, status))
            visible = self._state.local_working
        self._render(visible)
        return visible[cadet_id]

    def cycle(self, cadet_id: str, day: DayOfWeek | str, activity: ActivityType | str) -> AttendanceRecord:
        """Advance one slot along the roster tap cycle."""
        day = require_enum(DayOfWeek, day, "day")
        activity = require_enum(ActivityType, activity, "activityType")
        with self._lock:
            current = self._require_state().local_working.get(cadet_id)
            if current is None:
                raise NotFoundError(f"Cadet {cadet_id} is not on the {self.scope} roster")
            return self.edit(cadet_id, day, activity, current.status(day, activity).next())

    def save(self) -> int:
        """Write every changed cadet's full record; returns how many.

        On failure the view goes back to dirty with its edits intact and the
        error is re-raised for the caller to report.
        """
        with self._lock:
            st, to_write = rs.begin_save(self._require_state())
            self._state = st
        if not to_write:
            return 0
        try:
            if len(to_write) == 1:
                self._repo.update_whole_record(to_write[0])
            else:
                self._repo.batch_update_records(to_write)
        except Exception:
            with self._lock:
                if not self._closed:
                    self._state = rs.save_failed(self._state)
            logger.warning("Save of %d record(s) for %s failed; edits kept", len(to_write), self.scope)
            raise
        with self._lock:
            if self._closed:
                return len(to_write)
            self._state = rs.save_succeeded(self._state, at=self._clock())
        logger.info("Saved %d record(s) for %s", len(to_write), self.scope)
        return len(to_write)

    def discard(self) -> None:
        with self._lock:
            self._replace_state(rs.discard(self._require_state()))
            visible = self._state.local_working
        self._render(visible)

    def reload(self) -> None:
        """Recovery action: fetch the scope again and drop local edits.

        The company's cadet list is re-read too; between reloads the view
        keeps the cadets it opened with.
        """
        with self._lock:
            if self._require_state().status is ViewStatus.SAVING:
                raise InvalidTransitionError(f"Cannot reload {self.scope} while saving")
        fetched_at = self._clock()
        week = self.scope.week_start_date
        docs = self._repo.fetch_week_documents(week)
        cadet_ids = self._repo.cadet_ids(self.scope.company, refresh=True)
        with self._lock:
            self._require_state()
            self._cadet_ids = cadet_ids
            self._replace_state(rs.initial_state(self.scope, self._repo.scope_records(cadet_ids, week, docs), at=fetched_at))
            visible = self._state.local_working
        self._render(visible)


class RosterViewService:
    """Registry of open roster views."""

    def __init__(self, repository: AttendanceRepository, *, clock: Callable[[], datetime] = now_utc):
        self._repo = repository
        self._clock = clock
        self._views: Dict[str, RosterView] = {}
        self._lock = threading.Lock()

    def open_view(self, company: Company | str, week_start_date: date | str) -> RosterView:
        scope = RosterScope(
            company=require_enum(Company, company, "company"),
            week_start_date=require_week_start(week_start_date),
        )
        view = RosterView(uuid.uuid4().hex, scope, self._repo, clock=self._clock)
        view.open()
        with self._lock:
            self._views[view.view_id] = view
        return view

    def get(self, view_id: str) -> RosterView:
        with self._lock:
            view = self._views.get(view_id)
        if view is None:
            raise NotFoundError(f"No open roster view {view_id}")
        return view

    def close_view(self, view_id: str) -> None:
        with self._lock:
            view = self._views.pop(view_id, None)
        if view is None:
            raise NotFoundError(f"No open roster view {view_id}")
        view.close()

    def close_all(self) -> None:
        with self._lock:
            views, self._views = list(self._views.values()), {}
        for view in views:
            view.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._views)
