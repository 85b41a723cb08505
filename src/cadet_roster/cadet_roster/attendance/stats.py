"""Read-only aggregates over fetched attendance records. Nothing here is stored."""
from __future__ import annotations

from collections import Counter
from datetime import date, timedelta
from typing import Iterable, List

from ..core.enums import ActivityType, AttendanceStatus, DayOfWeek
from .model import FIELD_SLOTS, AttendanceRecord, DayStats, slot_field, slots_for_activity


def _stats(statuses: Iterable[AttendanceStatus]) -> DayStats:
    counts = Counter(statuses)
    return DayStats(
        present=counts[AttendanceStatus.PRESENT],
        excused=counts[AttendanceStatus.EXCUSED],
        unexcused=counts[AttendanceStatus.UNEXCUSED],
    )


def calculate_day_stats(records: Iterable[AttendanceRecord], day: DayOfWeek, activity: ActivityType = ActivityType.PT) -> DayStats:
    name = slot_field(day, activity)
    return _stats(r.slots[name] for r in records)


def calculate_week_stats(records: Iterable[AttendanceRecord], activity: ActivityType = ActivityType.PT) -> DayStats:
    names = slots_for_activity(activity)
    return _stats(r.slots[n] for r in records for n in names)


def stats_by_day(records: Iterable[AttendanceRecord], activity: ActivityType = ActivityType.PT) -> dict:
    """Per-day counts for every day ``activity`` meets on."""
    records = list(records)
    return {
        FIELD_SLOTS[name][0]: calculate_day_stats(records, FIELD_SLOTS[name][0], activity)
        for name in slots_for_activity(activity)
    }


def count_unexcused(records: Iterable[AttendanceRecord], activity: ActivityType) -> int:
    names = slots_for_activity(activity)
    return sum(1 for r in records for n in names if r.slots[n] is AttendanceStatus.UNEXCUSED)


def unexcused_dates(records: Iterable[AttendanceRecord], activity: ActivityType) -> List[date]:
    """Calendar dates of unexcused slots: week start plus the slot's weekday offset."""
    out: List[date] = []
    for r in records:
        for name in slots_for_activity(activity):
            if r.slots[name] is AttendanceStatus.UNEXCUSED:
                day = FIELD_SLOTS[name][0]
                out.append(r.week_start_date + timedelta(days=day.offset))
    return sorted(out)
