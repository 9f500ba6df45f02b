"""Placeholder substitution from the current record."""

import re
from typing import Any, Optional

from .record import FieldKind, Record


PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")
URL_PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")


def interpolate(value: Any, record: Optional[Record]) -> Any:
    """
    Replace {{field}} references with record values.

    Walks dicts and lists. A string that is exactly one placeholder becomes
    the raw field value so numbers and booleans keep their type. Unknown or
    null fields are left as written.
    """
    if record is None:
        return value

    if isinstance(value, str):
        exact = PLACEHOLDER_PATTERN.fullmatch(value.strip())
        if exact:
            field_value = record.value(exact.group(1))
            return value if field_value.kind is FieldKind.NULL else field_value.raw

        def replace(match: re.Match) -> str:
            field_value = record.value(match.group(1))
            if field_value.kind is FieldKind.NULL:
                return match.group(0)
            return field_value.as_text()

        return PLACEHOLDER_PATTERN.sub(replace, value)
    if isinstance(value, dict):
        return {k: interpolate(v, record) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate(v, record) for v in value]
    return value


def substitute_url(url: str, record: Optional[Record]) -> str:
    """Replace {field} placeholders in a URL template. Unknown keys are kept."""
    if record is None:
        return url

    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in record:
            return match.group(0)
        return record.value(key).as_text()

    return URL_PLACEHOLDER_PATTERN.sub(replace, url)
