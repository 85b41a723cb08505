from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Type, TypeVar

from ..core.exceptions import ValidationError
from .datetime_utils import parse_iso_date

E = TypeVar("E", bound=Enum)


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def require_week_start(value: date | str, field_name: str = "weekStartDate") -> date:
    """Accept a date or ISO string and insist that it is a Monday."""
    if isinstance(value, str):
        try:
            value = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{field_name} must be YYYY-MM-DD, got {value!r}") from None
    if value.weekday() != 0:
        raise ValidationError(f"{field_name} must be a Monday, got {value.isoformat()}")
    return value


def require_enum(enum_cls: Type[E], value, field_name: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise ValidationError(f"{field_name} must be one of: {allowed}") from None
