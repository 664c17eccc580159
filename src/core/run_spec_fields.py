"""Type-safe field parsing helpers for run-spec execution.

This module centralizes primitive parsing so run-spec executors can stay
concise and produce consistent validation errors across CLI and SDK flows.
"""

from __future__ import annotations

from typing import Mapping

from core.errors import LakeloadRunSpecError


def required_string(args: Mapping[str, object], field_name: str) -> str:
    """Read a required string field from a run-spec step."""
    value = optional_string(args, field_name)
    if value is None:
        raise LakeloadRunSpecError(f"Run-spec step is missing required field '{field_name}'.")
    return value


def optional_string(args: Mapping[str, object], field_name: str) -> str | None:
    """Read an optional string field from a run-spec step."""
    value = args.get(field_name)
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else None
    raise LakeloadRunSpecError(f"Run-spec field '{field_name}' must be a string when provided.")


def optional_int(args: Mapping[str, object], field_name: str) -> int | None:
    """Read an optional integer field from a run-spec step."""
    value = args.get(field_name)
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise LakeloadRunSpecError(f"Run-spec field '{field_name}' must be an integer.")


def optional_float(args: Mapping[str, object], field_name: str) -> float | None:
    """Read an optional numeric field from a run-spec step."""
    value = args.get(field_name)
    if value is None:
        return None
    if isinstance(value, bool):
        raise LakeloadRunSpecError(f"Run-spec field '{field_name}' must be numeric.")
    if isinstance(value, (int, float)):
        return float(value)
    raise LakeloadRunSpecError(f"Run-spec field '{field_name}' must be numeric.")


def optional_bool(
    args: Mapping[str, object],
    field_name: str,
    default_value: bool,
) -> bool:
    """Read an optional boolean field from a run-spec step."""
    value = args.get(field_name)
    if value is None:
        return default_value
    if isinstance(value, bool):
        return value
    raise LakeloadRunSpecError(f"Run-spec field '{field_name}' must be true/false.")


def optional_mapping(args: Mapping[str, object], field_name: str) -> dict[str, object]:
    """Read an optional mapping of read options, empty when absent."""
    value = args.get(field_name)
    if value is None:
        return {}
    if isinstance(value, Mapping) and all(isinstance(key, str) for key in value):
        return dict(value)
    raise LakeloadRunSpecError(
        f"Run-spec field '{field_name}' must be a mapping of option names to values."
    )
