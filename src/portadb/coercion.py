"""Value coercion to an entity field's semantic type.

Query values usually arrive untyped (form input, JSON, URL params), so
everything that is compared with or written to a column passes through
:func:`coerce` first.

Rules::

    None                      -> None
    already the target type   -> unchanged
    anything else             -> str(value), then
        ""                    -> None
        string                -> as is
        uuid                  -> uuid.UUID(s)
        integer / long        -> int(s), range-checked (32 / 64 bit)
        boolean               -> s == "1" or s.lower() == "true"
        timestamp             -> digits are epoch milliseconds, else ISO-8601

Examples:
    >>> from portadb.entities import FieldType
    >>> coerce_value(FieldType.BOOLEAN, "1", field="active")
    True
    >>> coerce_value(FieldType.INTEGER, "42", field="age")
    42
    >>> coerce_value(FieldType.STRING, "", field="name") is None
    True
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from portadb.entities import EntityDescriptor, FieldType
from portadb.errors import TypeConversionError

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_int(text: str, field: str, target: FieldType, low: int, high: int) -> int:
    try:
        number = int(text.strip())
    except ValueError as exc:
        raise TypeConversionError(field, text, target.value, cause=exc) from exc
    if not low <= number <= high:
        raise TypeConversionError(field, text, target.value)
    return number


def _parse_timestamp(text: str, field: str) -> datetime:
    stripped = text.strip()
    try:
        if stripped.lstrip("-").isdigit():
            return datetime.fromtimestamp(int(stripped) / 1000, tz=timezone.utc).replace(tzinfo=None)
        return _to_naive_utc(datetime.fromisoformat(stripped))
    except (ValueError, OverflowError, OSError) as exc:
        raise TypeConversionError(field, text, FieldType.TIMESTAMP.value, cause=exc) from exc


def coerce_value(target: FieldType, value: Any, *, field: str = "?") -> Any:
    """Coerce *value* to *target*.

    Raises:
        TypeConversionError: If the value cannot represent the target type.
    """
    if value is None:
        return None

    # Pass-through for values that already have the right Python type.
    # bool is an int subclass, so it never passes as an integer.
    match target:
        case FieldType.STRING if isinstance(value, str):
            return value or None
        case FieldType.UUID if isinstance(value, uuid.UUID):
            return value
        case FieldType.INTEGER | FieldType.LONG if isinstance(value, int) and not isinstance(value, bool):
            low, high = (INT32_MIN, INT32_MAX) if target is FieldType.INTEGER else (INT64_MIN, INT64_MAX)
            if not low <= value <= high:
                raise TypeConversionError(field, value, target.value)
            return value
        case FieldType.BOOLEAN if isinstance(value, bool):
            return value
        case FieldType.TIMESTAMP if isinstance(value, datetime):
            return _to_naive_utc(value)

    text = str(value)
    if text == "":
        return None

    match target:
        case FieldType.STRING:
            return text
        case FieldType.UUID:
            try:
                return uuid.UUID(text)
            except ValueError as exc:
                raise TypeConversionError(field, value, target.value, cause=exc) from exc
        case FieldType.INTEGER:
            return _parse_int(text, field, target, INT32_MIN, INT32_MAX)
        case FieldType.LONG:
            return _parse_int(text, field, target, INT64_MIN, INT64_MAX)
        case FieldType.BOOLEAN:
            return text == "1" or text.lower() == "true"
        case FieldType.TIMESTAMP:
            return _parse_timestamp(text, field)

    raise TypeConversionError(field, value, str(target))


def coerce(entity: EntityDescriptor, field: str, value: Any) -> Any:
    """Coerce *value* for ``entity.field``.

    Raises:
        FieldNotFoundError: If the entity has no such field.
        TypeConversionError: If the value does not convert.
    """
    descriptor = entity.get_field(field)
    return coerce_value(descriptor.type, value, field=field)


def coerce_values(entity: EntityDescriptor, values: Mapping[str, Any]) -> dict[str, Any]:
    """Coerce a whole ``{field: value}`` mapping (used before inserts/updates)."""
    return {name: coerce(entity, name, value) for name, value in values.items()}


__all__ = ["coerce", "coerce_value", "coerce_values", "INT32_MIN", "INT32_MAX", "INT64_MIN", "INT64_MAX"]
