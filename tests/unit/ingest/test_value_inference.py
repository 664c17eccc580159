"""Unit tests for value type inference and coercion."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ingest.value_inference import coerce_value, convert_text, infer_python_type


@pytest.mark.parametrize(
    ("text", "field_type", "expected"),
    [
        (" 42 ", "integer", 42),
        ("9999999999", "long", 9999999999),
        ("3.5", "double", 3.5),
        ("TRUE", "boolean", True),
        ("   ", "string", None),
    ],
)
def test_convert_text(text: str, field_type: str, expected: object) -> None:
    """Cell text should convert onto its declared type."""
    assert convert_text(text, field_type) == expected


def test_convert_text_rejects_nonconforming_cell() -> None:
    """Text that does not fit the declared type is an error."""
    with pytest.raises(ValueError):
        convert_text("abc", "integer")


def test_infer_python_type_distinguishes_bool_from_int() -> None:
    """Booleans must not be typed as integers."""
    assert (infer_python_type(True), infer_python_type(1)) == ("boolean", "integer")


def test_coerce_value_widens_integer_to_double() -> None:
    """Integer values should widen onto double columns."""
    assert coerce_value(7, "double") == 7.0


def test_coerce_value_rejects_out_of_range_integer() -> None:
    """Values beyond 32 bits do not fit integer columns."""
    with pytest.raises(ValueError):
        coerce_value(2**40, "integer")


def test_coerce_value_renders_nested_json_as_string() -> None:
    """Nested JSON values become canonical JSON text in string columns."""
    assert coerce_value({"b": 1, "a": [1, 2]}, "string") == '{"a": [1, 2], "b": 1}'


def test_coerce_value_normalizes_naive_timestamp_to_utc() -> None:
    """Naive timestamps are interpreted as UTC."""
    value = coerce_value("2024-05-01T10:00:00", "timestamp")

    assert value == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
