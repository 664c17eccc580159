"""Read option parsing and validation.

This module turns ``key => value`` style option mappings into a typed
``ReadOptions`` value with an explicit set of recognized keys.
Unknown keys and conflicting values are rejected up front.
"""

from __future__ import annotations

from typing import Mapping, cast

from core.constants import (
    DEFAULT_SEPARATOR,
    FAILURE_MODE_PERMISSIVE,
    SUPPORTED_FAILURE_MODES,
    SUPPORTED_FILE_FORMATS,
)
from core.errors import InvalidOptionCombinationError
from core.types import FailureMode, FieldType, FileFormat, ReadOptions, SchemaField, TableSchema

RECOGNIZED_OPTION_KEYS = (
    "separator",
    "hasHeader",
    "failureMode",
    "mergeSchema",
    "schema",
    "pathGlobFilter",
    "includeSourceMetadata",
)
_DELIMITED_ONLY_KEYS = ("separator", "hasHeader")
_TYPE_ALIASES: dict[str, FieldType] = {
    "INT": "integer",
    "INTEGER": "integer",
    "LONG": "long",
    "BIGINT": "long",
    "DOUBLE": "double",
    "FLOAT": "double",
    "BOOLEAN": "boolean",
    "BOOL": "boolean",
    "TIMESTAMP": "timestamp",
    "STRING": "string",
}


def parse_file_format(raw_format: str) -> FileFormat:
    """Validate a declared file format name.

    Args:
        raw_format: Format name, case-insensitive.

    Returns:
        Normalized file format.

    Raises:
        InvalidOptionCombinationError: If the format is not supported.
    """
    normalized = raw_format.strip().lower()
    if normalized not in SUPPORTED_FILE_FORMATS:
        supported = ", ".join(SUPPORTED_FILE_FORMATS)
        raise InvalidOptionCombinationError(
            f"Unsupported file format '{raw_format}'. Use one of: {supported}."
        )
    return cast(FileFormat, normalized)


def parse_read_options(file_format: str, raw_options: Mapping[str, object]) -> ReadOptions:
    """Validate raw options for a file format.

    Args:
        file_format: Declared file format.
        raw_options: Option mapping using the recognized camelCase keys.

    Returns:
        Typed read options with documented defaults applied.

    Raises:
        InvalidOptionCombinationError: If keys are unknown or values conflict.
    """
    normalized_format = parse_file_format(file_format)
    unknown_keys = sorted(set(raw_options) - set(RECOGNIZED_OPTION_KEYS))
    if unknown_keys:
        raise InvalidOptionCombinationError(
            f"Unrecognized read options: {', '.join(unknown_keys)}. "
            f"Supported keys: {', '.join(RECOGNIZED_OPTION_KEYS)}."
        )
    if normalized_format != "csv":
        conflicting = [key for key in _DELIMITED_ONLY_KEYS if key in raw_options]
        if conflicting:
            raise InvalidOptionCombinationError(
                f"Options {', '.join(conflicting)} only apply to csv input, "
                f"not {normalized_format}."
            )
    declared_schema = _optional_schema(raw_options.get("schema"))
    if normalized_format == "parquet" and declared_schema is not None:
        raise InvalidOptionCombinationError(
            "Option schema cannot be used with parquet input: parquet files embed their schema."
        )
    return ReadOptions(
        separator=_parse_separator(raw_options.get("separator", DEFAULT_SEPARATOR)),
        has_header=_parse_bool("hasHeader", raw_options.get("hasHeader", False)),
        failure_mode=_parse_failure_mode(raw_options.get("failureMode", FAILURE_MODE_PERMISSIVE)),
        merge_schema=_parse_bool("mergeSchema", raw_options.get("mergeSchema", False)),
        declared_schema=declared_schema,
        path_glob_filter=_optional_string("pathGlobFilter", raw_options.get("pathGlobFilter")),
        include_source_metadata=_parse_bool(
            "includeSourceMetadata", raw_options.get("includeSourceMetadata", False)
        ),
    )


def parse_schema_ddl(ddl: str) -> TableSchema:
    """Parse ``name TYPE[ NOT NULL], ...`` text into a schema.

    Args:
        ddl: Column declaration list.

    Returns:
        Parsed schema in declaration order.

    Raises:
        InvalidOptionCombinationError: If a column declaration is invalid.
    """
    fields: list[SchemaField] = []
    for raw_column in ddl.split(","):
        tokens = raw_column.split()
        if not tokens:
            continue
        if len(tokens) not in (2, 4):
            raise InvalidOptionCombinationError(
                f"Invalid column declaration '{raw_column.strip()}': expected 'name TYPE'."
            )
        name, raw_type = tokens[0], tokens[1].upper()
        nullable = True
        if len(tokens) == 4:
            if [token.upper() for token in tokens[2:]] != ["NOT", "NULL"]:
                raise InvalidOptionCombinationError(
                    f"Invalid column declaration '{raw_column.strip()}': "
                    "only 'NOT NULL' may follow the type."
                )
            nullable = False
        field_type = _TYPE_ALIASES.get(raw_type)
        if field_type is None:
            raise InvalidOptionCombinationError(
                f"Unsupported column type '{tokens[1]}' for column '{name}'. "
                f"Use one of: {', '.join(sorted(_TYPE_ALIASES))}."
            )
        fields.append(SchemaField(name=name, field_type=field_type, nullable=nullable))
    if not fields:
        raise InvalidOptionCombinationError("Option schema must declare at least one column.")
    try:
        return TableSchema(fields=tuple(fields))
    except ValueError as error:
        raise InvalidOptionCombinationError(f"Invalid option schema: {error}.") from error


def _optional_schema(raw_value: object) -> TableSchema | None:
    if raw_value is None:
        return None
    if isinstance(raw_value, TableSchema):
        return raw_value
    if isinstance(raw_value, str):
        return parse_schema_ddl(raw_value)
    raise InvalidOptionCombinationError(
        f"Option schema must be DDL text, got {type(raw_value).__name__}."
    )


def _parse_separator(raw_value: object) -> str:
    if not isinstance(raw_value, str) or len(raw_value) != 1:
        raise InvalidOptionCombinationError(
            f"Option separator must be a single character, got {raw_value!r}."
        )
    return raw_value


def _parse_bool(key: str, raw_value: object) -> bool:
    if isinstance(raw_value, bool):
        return raw_value
    if isinstance(raw_value, str) and raw_value.strip().lower() in ("true", "false"):
        return raw_value.strip().lower() == "true"
    raise InvalidOptionCombinationError(
        f"Option {key} must be true or false, got {raw_value!r}."
    )


def _parse_failure_mode(raw_value: object) -> FailureMode:
    if isinstance(raw_value, str) and raw_value.strip().upper() in SUPPORTED_FAILURE_MODES:
        return cast(FailureMode, raw_value.strip().upper())
    raise InvalidOptionCombinationError(
        f"Option failureMode must be one of {', '.join(SUPPORTED_FAILURE_MODES)}, "
        f"got {raw_value!r}."
    )


def _optional_string(key: str, raw_value: object) -> str | None:
    if raw_value is None:
        return None
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value
    raise InvalidOptionCombinationError(f"Option {key} must be a non-empty string.")
