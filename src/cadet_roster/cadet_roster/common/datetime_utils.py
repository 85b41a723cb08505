from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def now_utc() -> datetime:
    """Current aware UTC time.

    Note: Wrapped so tests can patch/inject a fixed clock.
    """
    return datetime.now(tz=timezone.utc)


def week_start_for(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def current_week_start(now: datetime | None = None) -> date:
    return week_start_for((now or now_utc()).date())


def to_timestamp(moment: datetime) -> float:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def from_timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)
