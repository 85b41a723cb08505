from __future__ import annotations

from enum import Enum
from typing import Optional


class AttendanceStatus(str, Enum):
    """Status of one attendance slot. UNSET is stored as null in documents."""

    PRESENT = "present"
    EXCUSED = "excused"
    UNEXCUSED = "unexcused"
    UNSET = "unset"

    @classmethod
    def from_document(cls, value: Optional[str]) -> "AttendanceStatus":
        if value is None or value == "":
            return cls.UNSET
        return cls(value)

    def to_document(self) -> Optional[str]:
        return None if self is AttendanceStatus.UNSET else self.value

    def next(self) -> "AttendanceStatus":
        """Roster tap cycle: unset -> present -> excused -> unexcused -> unset."""
        return _CYCLE[self]


_CYCLE = {
    AttendanceStatus.UNSET: AttendanceStatus.PRESENT,
    AttendanceStatus.PRESENT: AttendanceStatus.EXCUSED,
    AttendanceStatus.EXCUSED: AttendanceStatus.UNEXCUSED,
    AttendanceStatus.UNEXCUSED: AttendanceStatus.UNSET,
}


class DayOfWeek(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"

    @property
    def offset(self) -> int:
        """Days after the week's Monday."""
        return list(DayOfWeek).index(self)


class ActivityType(str, Enum):
    PT = "PT"
    LAB = "Lab"
    TACTICS = "Tactics"


class Company(str, Enum):
    """Companies of the battalion. MASTER is the aggregate roster of all cadets."""

    ALPHA = "Alpha"
    BRAVO = "Bravo"
    CHARLIE = "Charlie"
    RANGER = "Ranger"
    MASTER = "Master"


class ViewStatus(str, Enum):
    """Reconciliation state of an open roster view."""

    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"
