from datetime import date

import pytest

from cadet_roster.attendance.model import (
    AttendanceRecord,
    materialize_defaults,
    migrate_legacy_document,
    slot_field,
)
from cadet_roster.core.enums import ActivityType, AttendanceStatus, DayOfWeek
from cadet_roster.core.exceptions import ValidationError

WEEK = date(2026, 1, 19)


def test_doc_id_is_week_then_cadet():
    assert AttendanceRecord.blank("42", WEEK).doc_id == "2026-01-19_42"


def test_lab_only_meets_thursday():
    assert slot_field(DayOfWeek.THURSDAY, ActivityType.LAB) == "labThursday"
    with pytest.raises(ValidationError):
        slot_field(DayOfWeek.MONDAY, ActivityType.LAB)


def test_tactics_only_meets_tuesday():
    assert slot_field(DayOfWeek.TUESDAY, ActivityType.TACTICS) == "tacticsTuesday"
    with pytest.raises(ValidationError):
        slot_field(DayOfWeek.FRIDAY, ActivityType.TACTICS)


def test_with_status_changes_one_slot_only():
    record = AttendanceRecord.blank("42", WEEK).with_status(DayOfWeek.THURSDAY, ActivityType.LAB, AttendanceStatus.EXCUSED)
    updated = record.with_status(DayOfWeek.THURSDAY, ActivityType.PT, AttendanceStatus.PRESENT)

    assert updated.slots["ptThursday"] is AttendanceStatus.PRESENT
    assert updated.slots["labThursday"] is AttendanceStatus.EXCUSED
    assert record.slots["ptThursday"] is AttendanceStatus.UNSET


def test_document_stores_unset_as_null():
    doc = AttendanceRecord.blank("42", WEEK).with_status(DayOfWeek.MONDAY, ActivityType.PT, AttendanceStatus.PRESENT).to_document()

    assert doc["cadetId"] == "42"
    assert doc["weekStartDate"] == "2026-01-19"
    assert doc["ptMonday"] == "present"
    assert doc["labThursday"] is None
    assert len([k for k in doc if k not in ("cadetId", "weekStartDate")]) == 7


def test_from_document_fills_missing_slots_with_unset():
    record = AttendanceRecord.from_document({"cadetId": "7", "weekStartDate": "2026-01-19", "ptTuesday": "excused"})

    assert record.status(DayOfWeek.TUESDAY, ActivityType.PT) is AttendanceStatus.EXCUSED
    assert record.status(DayOfWeek.FRIDAY, ActivityType.PT) is AttendanceStatus.UNSET


def test_legacy_day_fields_map_to_pt_slots():
    raw = {"cadetId": "7", "weekStartDate": "2026-01-19", "tuesday": "present", "thursday": "unexcused"}

    record = AttendanceRecord.from_document(raw)

    assert record.slots["ptTuesday"] is AttendanceStatus.PRESENT
    assert record.slots["ptWednesday"] is AttendanceStatus.UNSET
    assert record.slots["ptThursday"] is AttendanceStatus.UNEXCUSED
    # the raw document is left alone
    assert "ptTuesday" not in raw


def test_current_shape_wins_over_leftover_legacy_fields():
    data = migrate_legacy_document({"cadetId": "7", "weekStartDate": "2026-01-19", "tuesday": "present", "ptTuesday": None})
    assert data["ptTuesday"] is None


def test_materialize_defaults_synthesizes_missing_cadets():
    found = {"42": AttendanceRecord.blank("42", WEEK).with_status(DayOfWeek.MONDAY, ActivityType.PT, AttendanceStatus.PRESENT)}

    records = materialize_defaults(found, ["42", "7"], WEEK)

    assert records["42"] is found["42"]
    assert records["7"].is_blank()
    assert records["7"].week_start_date == WEEK


def test_status_cycle():
    s = AttendanceStatus.UNSET
    seen = []
    for _ in range(4):
        s = s.next()
        seen.append(s)
    assert seen == [
        AttendanceStatus.PRESENT,
        AttendanceStatus.EXCUSED,
        AttendanceStatus.UNEXCUSED,
        AttendanceStatus.UNSET,
    ]


def test_unknown_slot_rejected():
    with pytest.raises(ValidationError):
        AttendanceRecord("42", WEEK, slots={"labMonday": AttendanceStatus.PRESENT})
