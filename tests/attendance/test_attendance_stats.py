from datetime import date

from cadet_roster.attendance import stats
from cadet_roster.attendance.model import AttendanceRecord
from cadet_roster.core.enums import ActivityType, AttendanceStatus, DayOfWeek

P, E, U = AttendanceStatus.PRESENT, AttendanceStatus.EXCUSED, AttendanceStatus.UNEXCUSED


def _rec(cadet_id, week, **slots):
    return AttendanceRecord(cadet_id, week, slots=slots)


def test_day_stats_counts_each_status():
    week = date(2026, 1, 19)
    records = [
        _rec("1", week, ptTuesday=P),
        _rec("2", week, ptTuesday=E),
        _rec("3", week, ptTuesday=U),
        _rec("4", week, ptTuesday=P),
        _rec("5", week),
    ]

    s = stats.calculate_day_stats(records, DayOfWeek.TUESDAY)

    assert (s.present, s.excused, s.unexcused) == (2, 1, 1)
    assert s.total == 4


def test_week_stats_only_counts_the_activity():
    week = date(2026, 1, 19)
    records = [_rec("1", week, ptMonday=P, ptFriday=U, labThursday=U)]

    pt = stats.calculate_week_stats(records, ActivityType.PT)
    lab = stats.calculate_week_stats(records, ActivityType.LAB)

    assert (pt.present, pt.unexcused) == (1, 1)
    assert (lab.present, lab.unexcused) == (0, 1)


def test_stats_by_day_covers_meeting_days():
    week = date(2026, 1, 19)
    by_day = stats.stats_by_day([_rec("1", week, tacticsTuesday=E)], ActivityType.TACTICS)

    assert list(by_day) == [DayOfWeek.TUESDAY]
    assert by_day[DayOfWeek.TUESDAY].excused == 1


def test_unexcused_dates_use_week_start_plus_weekday_offset():
    records = [
        _rec("1", date(2026, 1, 19), ptWednesday=U, ptFriday=U, labThursday=U),
        _rec("1", date(2026, 1, 12), ptMonday=U),
    ]

    assert stats.unexcused_dates(records, ActivityType.PT) == [
        date(2026, 1, 12),
        date(2026, 1, 21),
        date(2026, 1, 23),
    ]
    assert stats.unexcused_dates(records, ActivityType.LAB) == [date(2026, 1, 22)]
    assert stats.count_unexcused(records, ActivityType.PT) == 3
