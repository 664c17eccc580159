"""Value typing helpers.

This module infers field types from decoded Python values and converts
values, including cell text, onto a target field type. Parsers use it
while reading rows and the table store uses it when writing and
projecting data files.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import re

from core.constants import INT32_MAX, INT32_MIN, INT64_MAX, INT64_MIN
from core.types import FieldType

_INTEGER_PATTERN = re.compile(r"[+-]?\d+")
_DECIMAL_PATTERN = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_BOOLEAN_TEXT = ("true", "false")


def infer_python_type(value: object) -> FieldType | None:
    """Infer a field type from a decoded JSON or columnar value.

    Args:
        value: Python value.

    Returns:
        Field type, or ``None`` for null.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return _integer_type(value)
    if isinstance(value, float):
        return "double"
    if isinstance(value, datetime):
        return "timestamp"
    return "string"


def convert_text(text: str, field_type: FieldType) -> object:
    """Convert one delimited cell to a typed value.

    Args:
        text: Raw cell text.
        field_type: Target field type.

    Returns:
        Typed value, or ``None`` for an empty cell.

    Raises:
        ValueError: If the text does not conform to the type.
    """
    if not text.strip():
        return None
    return coerce_value(text if field_type == "string" else text.strip(), field_type)


def coerce_value(value: object, field_type: FieldType) -> object:
    """Convert a value onto a field type, widening where allowed.

    Args:
        value: Source value, possibly text.
        field_type: Target field type.

    Returns:
        Value representable in the target type.

    Raises:
        ValueError: If the value cannot be represented in the type.
    """
    if value is None:
        return None
    if field_type in ("integer", "long"):
        return _coerce_integer(value, field_type)
    if field_type == "double":
        return _coerce_double(value)
    if field_type == "boolean":
        return _coerce_boolean(value)
    if field_type == "timestamp":
        return _coerce_timestamp(value)
    return _coerce_string(value)


def _integer_type(value: int) -> FieldType:
    if INT32_MIN <= value <= INT32_MAX:
        return "integer"
    if INT64_MIN <= value <= INT64_MAX:
        return "long"
    return "string"


def _coerce_integer(value: object, field_type: FieldType) -> int:
    if isinstance(value, bool):
        raise ValueError(f"boolean {value} is not an {field_type}")
    if isinstance(value, str):
        if not _INTEGER_PATTERN.fullmatch(value.strip()):
            raise ValueError(f"'{value}' is not an {field_type}")
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValueError(f"{type(value).__name__} value is not an {field_type}")
    low, high = (INT32_MIN, INT32_MAX) if field_type == "integer" else (INT64_MIN, INT64_MAX)
    if not low <= value <= high:
        raise ValueError(f"{value} is out of range for {field_type}")
    return value


def _coerce_double(value: object) -> float:
    if isinstance(value, bool):
        raise ValueError(f"boolean {value} is not a double")
    if isinstance(value, str):
        if not _DECIMAL_PATTERN.fullmatch(value.strip()):
            raise ValueError(f"'{value}' is not a double")
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    raise ValueError(f"{type(value).__name__} value is not a double")


def _coerce_boolean(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _BOOLEAN_TEXT:
        return value.strip().lower() == "true"
    raise ValueError(f"{value!r} is not a boolean")


def _coerce_timestamp(value: object) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as error:
            raise ValueError(f"'{value}' is not an ISO timestamp") from error
    else:
        raise ValueError(f"{type(value).__name__} value is not a timestamp")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _coerce_string(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)
