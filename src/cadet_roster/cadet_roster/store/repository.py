from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Sequence, Tuple

from ..core.constants import IN_FILTER_LIMIT
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class FieldFilter:
    """Equality (``==``) or membership (``in``) filter on one document field."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in ("==", "in"):
            raise ValidationError(f"Unsupported filter operator {self.op!r}")
        if self.op == "in":
            values = tuple(self.value)
            if not values or len(values) > IN_FILTER_LIMIT:
                raise ValidationError(f"'in' filter takes 1..{IN_FILTER_LIMIT} values, got {len(values)}")
            object.__setattr__(self, "value", values)

    def matches(self, data: Mapping[str, Any]) -> bool:
        actual = data.get(self.field)
        if self.op == "==":
            return actual == self.value
        return actual in self.value


def eq(field_name: str, value: Any) -> FieldFilter:
    return FieldFilter(field_name, "==", value)


def is_in(field_name: str, values) -> FieldFilter:
    return FieldFilter(field_name, "in", values)


@dataclass(frozen=True)
class StoredDocument:
    key: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.key, **dict(self.data)}


OnChange = Callable[[Sequence[StoredDocument]], None]
OnError = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class DocumentStore(Protocol):
    """Remote document database boundary.

    Writes use merge semantics: fields omitted from a write are left as they
    are on an existing document; a missing document is created. Failures are
    raised as ``RemoteStoreError`` subclasses.
    """

    max_batch_size: int

    def query(self, collection: str, filters: Sequence[FieldFilter] = ()) -> Sequence[StoredDocument]:
        raise NotImplementedError

    def get(self, collection: str, key: str) -> Optional[StoredDocument]:
        raise NotImplementedError

    def upsert_merge(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def batch_upsert_merge(self, collection: str, writes: Sequence[Tuple[str, Mapping[str, Any]]]) -> None:
        """Atomic for the whole call; at most ``max_batch_size`` writes."""

        raise NotImplementedError

    def subscribe(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe:
        """Push the full matching document set on subscribe and on every change."""

        raise NotImplementedError
