from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, Mapping, Optional, Tuple

from ..core.enums import ActivityType, AttendanceStatus, DayOfWeek
from ..core.exceptions import ValidationError

# (day, activity) -> document field. Lab only meets Thursday, Tactics only Tuesday.
SLOT_FIELDS: Dict[Tuple[DayOfWeek, ActivityType], str] = {
    (DayOfWeek.MONDAY, ActivityType.PT): "ptMonday",
    (DayOfWeek.TUESDAY, ActivityType.PT): "ptTuesday",
    (DayOfWeek.WEDNESDAY, ActivityType.PT): "ptWednesday",
    (DayOfWeek.THURSDAY, ActivityType.PT): "ptThursday",
    (DayOfWeek.FRIDAY, ActivityType.PT): "ptFriday",
    (DayOfWeek.THURSDAY, ActivityType.LAB): "labThursday",
    (DayOfWeek.TUESDAY, ActivityType.TACTICS): "tacticsTuesday",
}

FIELD_SLOTS: Dict[str, Tuple[DayOfWeek, ActivityType]] = {v: k for k, v in SLOT_FIELDS.items()}

SLOT_NAMES: Tuple[str, ...] = tuple(SLOT_FIELDS.values())

# Pre-lab documents only tracked PT on Tuesday through Thursday.
LEGACY_FIELDS: Dict[str, str] = {
    "tuesday": "ptTuesday",
    "wednesday": "ptWednesday",
    "thursday": "ptThursday",
}


def slot_field(day: DayOfWeek, activity: ActivityType) -> str:
    try:
        return SLOT_FIELDS[(day, activity)]
    except KeyError:
        raise ValidationError(f"{activity.value} does not meet on {day.value}") from None


def slots_for_activity(activity: ActivityType) -> Tuple[str, ...]:
    return tuple(name for (_, act), name in SLOT_FIELDS.items() if act is activity)


def attendance_doc_id(week_start_date: date, cadet_id: str) -> str:
    return f"{week_start_date.isoformat()}_{cadet_id}"


def _unset_slots() -> Dict[str, AttendanceStatus]:
    return {name: AttendanceStatus.UNSET for name in SLOT_NAMES}


@dataclass(frozen=True)
class AttendanceRecord:
    """One cadet's attendance for one week (Monday-keyed).

    Slots are kept in a plain dict keyed by document field name so the
    record compares structurally and serializes without a field-by-field map.
    """

    cadet_id: str
    week_start_date: date
    slots: Mapping[str, AttendanceStatus] = field(default_factory=_unset_slots)

    def __post_init__(self):
        merged = _unset_slots()
        for name, status in self.slots.items():
            if name not in merged:
                raise ValidationError(f"Unknown attendance slot {name!r}")
            merged[name] = AttendanceStatus(status)
        object.__setattr__(self, "slots", merged)

    def __hash__(self):
        return hash((self.cadet_id, self.week_start_date, tuple(self.slots.items())))

    @property
    def doc_id(self) -> str:
        return attendance_doc_id(self.week_start_date, self.cadet_id)

    def status(self, day: DayOfWeek, activity: ActivityType) -> AttendanceStatus:
        return self.slots[slot_field(day, activity)]

    def with_status(self, day: DayOfWeek, activity: ActivityType, status: AttendanceStatus) -> "AttendanceRecord":
        slots = dict(self.slots)
        slots[slot_field(day, activity)] = status
        return replace(self, slots=slots)

    def cleared(self) -> "AttendanceRecord":
        return replace(self, slots=_unset_slots())

    def is_blank(self) -> bool:
        return all(s is AttendanceStatus.UNSET for s in self.slots.values())

    def to_document(self) -> Dict[str, Any]:
        """Full-shape document: identity fields plus every slot."""
        doc: Dict[str, Any] = {
            "cadetId": self.cadet_id,
            "weekStartDate": self.week_start_date.isoformat(),
        }
        for name in SLOT_NAMES:
            doc[name] = self.slots[name].to_document()
        return doc

    @classmethod
    def blank(cls, cadet_id: str, week_start_date: date) -> "AttendanceRecord":
        return cls(cadet_id=cadet_id, week_start_date=week_start_date)

    @classmethod
    def from_document(cls, raw: Mapping[str, Any]) -> "AttendanceRecord":
        data = migrate_legacy_document(raw)
        week = data["weekStartDate"]
        if isinstance(week, str):
            week = date.fromisoformat(week)
        return cls(
            cadet_id=str(data["cadetId"]),
            week_start_date=week,
            slots={name: AttendanceStatus.from_document(data.get(name)) for name in SLOT_NAMES},
        )


def migrate_legacy_document(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Map pre-lab day fields onto the current slot names, in memory only.

    A document is legacy when it carries none of the current slot fields but
    at least one old day field. The stored document is never rewritten.
    """
    data = dict(raw)
    if any(name in data for name in SLOT_NAMES):
        return data
    if not any(old in data for old in LEGACY_FIELDS):
        return data
    for old, new in LEGACY_FIELDS.items():
        data[new] = data.pop(old, None)
    return data


def materialize_defaults(
    found: Mapping[str, AttendanceRecord],
    cadet_ids,
    week_start_date: date,
) -> Dict[str, AttendanceRecord]:
    """Give every cadet in scope a record; missing ones are all-unset."""
    out: Dict[str, AttendanceRecord] = {}
    for cadet_id in cadet_ids:
        record: Optional[AttendanceRecord] = found.get(cadet_id)
        out[cadet_id] = record if record is not None else AttendanceRecord.blank(cadet_id, week_start_date)
    return out


@dataclass(frozen=True)
class DayStats:
    present: int = 0
    excused: int = 0
    unexcused: int = 0

    @property
    def total(self) -> int:
        return self.present + self.excused + self.unexcused
