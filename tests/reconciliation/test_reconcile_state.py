from datetime import date, datetime, timedelta, timezone

import pytest

from cadet_roster.attendance.model import AttendanceRecord
from cadet_roster.core.enums import ActivityType, AttendanceStatus, Company, DayOfWeek, ViewStatus
from cadet_roster.core.exceptions import InvalidTransitionError, NotFoundError
from cadet_roster.reconciliation import state as rs
from cadet_roster.reconciliation.state import RosterScope, SnapshotEvent

WEEK = date(2026, 1, 19)
SCOPE = RosterScope(Company.ALPHA, WEEK)
T0 = datetime(2026, 1, 20, 8, 0, tzinfo=timezone.utc)

PT, LAB = ActivityType.PT, ActivityType.LAB
MON, THU = DayOfWeek.MONDAY, DayOfWeek.THURSDAY
P, E = AttendanceStatus.PRESENT, AttendanceStatus.EXCUSED


def _records(**marks):
    """cadetId -> blank record, with optional ``{cadet: [(day, activity, status)]}`` marks."""
    out = {cid: AttendanceRecord.blank(cid, WEEK) for cid in ("42", "7")}
    for cid, changes in marks.items():
        for day, activity, status in changes:
            out[cid] = out[cid].with_status(day, activity, status)
    return out


def _event(records, scope=SCOPE):
    return SnapshotEvent(scope=scope, records=records, timestamp=T0)


@pytest.fixture
def clean():
    return rs.initial_state(SCOPE, _records(), at=T0)


def test_clean_view_adopts_snapshot(clean):
    incoming = _records(**{"7": [(MON, PT, P)]})

    st = rs.reconcile(clean, _event(incoming))

    assert st.status is ViewStatus.CLEAN
    assert st.local_working == incoming
    assert st.server_known == incoming


def test_dirty_view_keeps_local_values(clean):
    dirty = rs.apply_edit(clean, "42", MON, PT, P)
    incoming = _records(**{"7": [(MON, PT, E)]})

    st = rs.reconcile(dirty, _event(incoming))

    assert st.status is ViewStatus.DIRTY
    assert st.server_known == incoming
    assert st.local_working["42"].slots["ptMonday"] is P
    assert st.local_working["7"].slots["ptMonday"] is AttendanceStatus.UNSET


def test_dirty_view_becomes_clean_when_snapshot_matches(clean):
    dirty = rs.apply_edit(clean, "42", THU, LAB, E)

    st = rs.reconcile(dirty, _event(dict(dirty.local_working)))

    assert st.status is ViewStatus.CLEAN


def test_snapshot_for_another_scope_is_ignored(clean):
    other = RosterScope(Company.BRAVO, WEEK)

    assert rs.reconcile(clean, _event(_records(**{"42": [(MON, PT, P)]}), scope=other)) is clean


def test_snapshot_older_than_last_event_is_ignored(clean):
    late = SnapshotEvent(scope=SCOPE, records=_records(**{"42": [(MON, PT, P)]}), timestamp=T0 - timedelta(seconds=1))

    assert rs.reconcile(clean, late) is clean


def test_edit_unknown_cadet(clean):
    with pytest.raises(NotFoundError):
        rs.apply_edit(clean, "999", MON, PT, P)


def test_edit_back_to_server_value_is_clean(clean):
    st = rs.apply_edit(rs.apply_edit(clean, "42", MON, PT, P), "42", MON, PT, AttendanceStatus.UNSET)

    assert st.status is ViewStatus.CLEAN


def test_diff_lists_only_changed_slots():
    server = _records(**{"42": [(MON, PT, P)]})
    local = _records(**{"42": [(MON, PT, P), (THU, LAB, E)]})

    assert rs.compute_diff(local, server) == {"42": ("labThursday",)}


def test_diff_treats_missing_server_record_as_blank():
    local = _records(**{"7": [(MON, PT, P)]})
    server = {"42": local["42"]}

    assert rs.compute_diff(local, server) == {"7": ("ptMonday",)}


def test_begin_save_on_clean_view_writes_nothing(clean):
    st, to_write = rs.begin_save(clean)

    assert to_write == []
    assert st.status is ViewStatus.CLEAN


def test_begin_save_returns_full_records_of_changed_cadets(clean):
    dirty = rs.apply_edit(clean, "7", THU, LAB, E)

    st, to_write = rs.begin_save(dirty)

    assert st.status is ViewStatus.SAVING
    assert [r.cadet_id for r in to_write] == ["7"]
    assert to_write[0].slots["labThursday"] is E


def test_second_save_while_saving_is_rejected(clean):
    saving, _ = rs.begin_save(rs.apply_edit(clean, "7", MON, PT, P))

    with pytest.raises(InvalidTransitionError):
        rs.begin_save(saving)


def test_save_success_promotes_saved_snapshot(clean):
    saving, _ = rs.begin_save(rs.apply_edit(clean, "7", MON, PT, P))

    st = rs.save_succeeded(saving)

    assert st.status is ViewStatus.CLEAN
    assert st.server_known["7"].slots["ptMonday"] is P
    assert st.saving is None


def test_save_success_moves_event_floor_forward(clean):
    saving, _ = rs.begin_save(rs.apply_edit(clean, "7", MON, PT, P))
    saved_at = T0 + timedelta(seconds=5)

    st = rs.save_succeeded(saving, at=saved_at)
    stale = SnapshotEvent(scope=SCOPE, records=_records(), timestamp=T0 + timedelta(seconds=2))

    assert st.last_event_at == saved_at
    assert rs.reconcile(st, stale) is st
    assert st.local_working["7"].slots["ptMonday"] is P


def test_edit_during_save_stays_pending_after_success(clean):
    saving, _ = rs.begin_save(rs.apply_edit(clean, "7", MON, PT, P))
    saving = rs.apply_edit(saving, "42", THU, LAB, E)
    assert saving.status is ViewStatus.SAVING

    st = rs.save_succeeded(saving)

    assert st.status is ViewStatus.DIRTY
    assert rs.compute_diff(st.local_working, st.server_known) == {"42": ("labThursday",)}


def test_push_during_save_only_updates_server_known(clean):
    saving, _ = rs.begin_save(rs.apply_edit(clean, "7", MON, PT, P))
    incoming = _records(**{"42": [(MON, PT, E)]})

    st = rs.reconcile(saving, _event(incoming))

    assert st.status is ViewStatus.SAVING
    assert st.server_known == incoming
    assert st.local_working["42"].slots["ptMonday"] is AttendanceStatus.UNSET


def test_save_failure_keeps_edits(clean):
    saving, _ = rs.begin_save(rs.apply_edit(clean, "7", MON, PT, P))

    st = rs.save_failed(saving)

    assert st.status is ViewStatus.DIRTY
    assert st.local_working["7"].slots["ptMonday"] is P


def test_save_outcome_without_save_in_progress(clean):
    with pytest.raises(InvalidTransitionError):
        rs.save_succeeded(clean)
    with pytest.raises(InvalidTransitionError):
        rs.save_failed(clean)


def test_discard_restores_server_values(clean):
    st = rs.discard(rs.apply_edit(clean, "42", MON, PT, P))

    assert st.status is ViewStatus.CLEAN
    assert st.local_working == clean.server_known


def test_discard_while_saving_is_rejected(clean):
    saving, _ = rs.begin_save(rs.apply_edit(clean, "42", MON, PT, P))

    with pytest.raises(InvalidTransitionError):
        rs.discard(saving)
