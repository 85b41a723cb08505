"""Pure reconciliation of one roster view.

A view holds two maps of cadetId -> AttendanceRecord:

* ``server_known``: the last value this client received from or sent to the
  store;
* ``local_working``: what the user sees and edits.

Every function here takes a state and returns a new one. Nothing performs
I/O, so each transition can be exercised directly in tests.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Dict, List, Mapping, Optional, Tuple

from ..core.enums import ActivityType, AttendanceStatus, Company, DayOfWeek, ViewStatus
from ..core.exceptions import InvalidTransitionError, NotFoundError
from ..attendance.model import SLOT_NAMES, AttendanceRecord

Records = Mapping[str, AttendanceRecord]


@dataclass(frozen=True)
class RosterScope:
    company: Company
    week_start_date: date

    def __str__(self) -> str:
        return f"{self.company.value}@{self.week_start_date.isoformat()}"


@dataclass(frozen=True)
class SnapshotEvent:
    """A full-scope snapshot from a push or a refresh. Never a diff."""

    scope: RosterScope
    records: Records
    timestamp: datetime


@dataclass(frozen=True)
class ReconciliationState:
    scope: RosterScope
    server_known: Records = field(default_factory=dict)
    local_working: Records = field(default_factory=dict)
    status: ViewStatus = ViewStatus.CLEAN
    # Snapshot of local_working handed to the store by the save in flight.
    saving: Optional[Records] = None
    last_event_at: Optional[datetime] = None

    @property
    def has_pending_edits(self) -> bool:
        return dict(self.local_working) != dict(self.server_known)


def _settle(state: ReconciliationState) -> ReconciliationState:
    """Clean/dirty follows from whether the two maps are equal."""
    if state.status is ViewStatus.SAVING:
        return state
    status = ViewStatus.DIRTY if state.has_pending_edits else ViewStatus.CLEAN
    return replace(state, status=status) if status is not state.status else state


def initial_state(scope: RosterScope, records: Records, *, at: Optional[datetime] = None) -> ReconciliationState:
    return ReconciliationState(
        scope=scope,
        server_known=dict(records),
        local_working=dict(records),
        status=ViewStatus.CLEAN,
        last_event_at=at,
    )


def reconcile(state: ReconciliationState, event: SnapshotEvent) -> ReconciliationState:
    """Apply a pushed or refreshed snapshot.

    An event older than the last applied one (a refresh whose fetch started
    before a later push or save) is dropped. Otherwise ``server_known`` takes
    the snapshot. ``local_working`` takes it
    only when the view has no unsaved edits; a dirty or saving view keeps
    showing its own values.
    """
    if event.scope != state.scope:
        return state
    if state.last_event_at is not None and event.timestamp < state.last_event_at:
        return state
    incoming = dict(event.records)
    if state.status is ViewStatus.CLEAN:
        return replace(state, server_known=incoming, local_working=dict(incoming), last_event_at=event.timestamp)
    return _settle(replace(state, server_known=incoming, last_event_at=event.timestamp))


def apply_edit(
    state: ReconciliationState,
    cadet_id: str,
    day: DayOfWeek,
    activity: ActivityType,
    status: AttendanceStatus,
) -> ReconciliationState:
    current = state.local_working.get(cadet_id)
    if current is None:
        raise NotFoundError(f"Cadet {cadet_id} is not on the {state.scope} roster")
    working = dict(state.local_working)
    working[cadet_id] = current.with_status(day, activity, status)
    return _settle(replace(state, local_working=working))


def compute_diff(local: Records, server: Records) -> Dict[str, Tuple[str, ...]]:
    """cadetId -> slot names whose status differs. Unchanged cadets are absent.

    A cadet missing from ``server`` is compared against an all-unset record.
    """
    diff: Dict[str, Tuple[str, ...]] = {}
    for cadet_id, record in local.items():
        other = server.get(cadet_id) or AttendanceRecord.blank(cadet_id, record.week_start_date)
        changed = tuple(name for name in SLOT_NAMES if record.slots[name] != other.slots[name])
        if changed:
            diff[cadet_id] = changed
    return diff


def begin_save(state: ReconciliationState) -> Tuple[ReconciliationState, List[AttendanceRecord]]:
    """Move to SAVING and return the full records that need writing.

    A clean view has nothing to write and is returned unchanged.
    """
    if state.status is ViewStatus.SAVING:
        raise InvalidTransitionError(f"A save for {state.scope} is already in progress")
    diff = compute_diff(state.local_working, state.server_known)
    if not diff:
        return _settle(state), []
    snapshot = dict(state.local_working)
    to_write = [snapshot[cadet_id] for cadet_id in diff]
    return replace(state, status=ViewStatus.SAVING, saving=snapshot), to_write


def save_succeeded(state: ReconciliationState, *, at: Optional[datetime] = None) -> ReconciliationState:
    """Optimistic promotion: the saved snapshot becomes ``server_known``
    without waiting for the push that confirms it. ``at`` (write completion)
    becomes the floor for later events."""
    if state.status is not ViewStatus.SAVING or state.saving is None:
        raise InvalidTransitionError(f"No save in progress for {state.scope}")
    last = state.last_event_at
    if at is not None and (last is None or at > last):
        last = at
    return _settle(
        replace(state, server_known=dict(state.saving), saving=None, status=ViewStatus.DIRTY, last_event_at=last)
    )


def save_failed(state: ReconciliationState) -> ReconciliationState:
    """Back to dirty with every edit kept for a retry."""
    if state.status is not ViewStatus.SAVING:
        raise InvalidTransitionError(f"No save in progress for {state.scope}")
    return _settle(replace(state, saving=None, status=ViewStatus.DIRTY))


def discard(state: ReconciliationState) -> ReconciliationState:
    if state.status is ViewStatus.SAVING:
        raise InvalidTransitionError(f"Cannot discard {state.scope} while saving")
    return replace(state, local_working=dict(state.server_known), status=ViewStatus.CLEAN)
