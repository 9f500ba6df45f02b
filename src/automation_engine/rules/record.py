"""Typed record values.

Records arrive from the datastore as plain mappings. They are resolved once
into a mapping of field key -> FieldValue so condition and action code
compares tagged values instead of doing untyped lookups.
"""

import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterator, Optional


# Plain decimal or exponent notation; no underscores, inf or nan spellings
_NUMERIC_TEXT = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


class FieldKind(Enum):
    """Kind tag for a resolved field value."""
    NULL = "null"
    TEXT = "text"
    NUMBER = "number"
    BOOL = "bool"
    DATE = "date"
    LIST = "list"
    OBJECT = "object"


@dataclass(frozen=True)
class FieldValue:
    """A single record value tagged with its kind."""
    kind: FieldKind
    raw: Any = None

    @classmethod
    def from_raw(cls, raw: Any) -> "FieldValue":
        if isinstance(raw, FieldValue):
            return raw
        if raw is None:
            return NULL
        # bool is a subclass of int, check it first
        if isinstance(raw, bool):
            return cls(FieldKind.BOOL, raw)
        if isinstance(raw, (int, float)):
            return cls(FieldKind.NUMBER, raw)
        if isinstance(raw, str):
            return cls(FieldKind.TEXT, raw)
        if isinstance(raw, (datetime, date)):
            return cls(FieldKind.DATE, raw)
        if isinstance(raw, (list, tuple)):
            return cls(FieldKind.LIST, list(raw))
        if isinstance(raw, Mapping):
            return cls(FieldKind.OBJECT, dict(raw))
        return cls(FieldKind.TEXT, str(raw))

    def is_empty(self) -> bool:
        """True for null, empty text and empty lists."""
        if self.kind is FieldKind.NULL:
            return True
        if self.kind is FieldKind.TEXT:
            return self.raw == ""
        if self.kind is FieldKind.LIST:
            return len(self.raw) == 0
        return False

    def as_text(self) -> str:
        """String coercion used for substring tests and templates."""
        if self.kind is FieldKind.NULL:
            return ""
        if self.kind is FieldKind.BOOL:
            return "true" if self.raw else "false"
        if self.kind is FieldKind.NUMBER:
            if isinstance(self.raw, float) and self.raw.is_integer():
                return str(int(self.raw))
            return str(self.raw)
        if self.kind is FieldKind.DATE:
            return self.raw.isoformat()
        if self.kind is FieldKind.LIST:
            return ",".join(FieldValue.from_raw(item).as_text() for item in self.raw)
        if self.kind is FieldKind.OBJECT:
            return json.dumps(self.raw, sort_keys=True, default=str)
        return self.raw

    def as_number(self) -> Optional[float]:
        """Numeric coercion. Returns None when the value is not numeric."""
        if self.kind is FieldKind.NUMBER:
            number = float(self.raw)
        elif self.kind is FieldKind.TEXT:
            text = self.raw.strip()
            if not _NUMERIC_TEXT.fullmatch(text):
                return None
            number = float(text)
        else:
            return None

        if math.isnan(number):
            return None
        return number

    def as_date(self) -> Optional[date]:
        """Date coercion for DATE values and ISO-formatted text."""
        if self.kind is FieldKind.DATE:
            return self.raw.date() if isinstance(self.raw, datetime) else self.raw
        if self.kind is FieldKind.TEXT and self.raw:
            text = self.raw.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                return datetime.fromisoformat(text).date()
            except ValueError:
                return None
        return None

    def equals(self, other: Any) -> bool:
        """
        Equality against a comparison value.

        Values of the same kind compare by raw value. A number and a numeric
        string compare numerically. Anything else is unequal.
        """
        other = FieldValue.from_raw(other)
        if self.kind is other.kind:
            return self.raw == other.raw

        kinds = {self.kind, other.kind}
        if kinds == {FieldKind.NUMBER, FieldKind.TEXT}:
            left, right = self.as_number(), other.as_number()
            return left is not None and right is not None and left == right
        return False


NULL = FieldValue(FieldKind.NULL, None)


class Record(Mapping):
    """Immutable mapping of field key to FieldValue."""

    __slots__ = ("_fields",)

    def __init__(self, fields: Optional[dict[str, FieldValue]] = None):
        self._fields: dict[str, FieldValue] = dict(fields or {})

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Record":
        if isinstance(data, Record):
            return data
        return cls({key: FieldValue.from_raw(value) for key, value in (data or {}).items()})

    @classmethod
    def empty(cls) -> "Record":
        return cls()

    def __getitem__(self, key: str) -> FieldValue:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"Record({self.to_dict()!r})"

    def value(self, key: str) -> FieldValue:
        """Value for key, NULL when the field is absent."""
        return self._fields.get(key, NULL)

    @property
    def id(self) -> Optional[str]:
        value = self.value("id")
        if value.kind is FieldKind.NULL:
            return None
        return value.as_text()

    def merged(self, updates: Mapping[str, Any]) -> "Record":
        """Return a new record with updates applied on top."""
        fields = dict(self._fields)
        for key, value in updates.items():
            fields[key] = FieldValue.from_raw(value)
        return Record(fields)

    def to_dict(self) -> dict[str, Any]:
        return {key: value.raw for key, value in self._fields.items()}
