"""Parquet data file persistence helpers.

This module writes committed batch records to Parquet files typed by
the table schema and reads them back projected onto a later schema.
Rescue payloads travel in a reserved JSON text column.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

import pyarrow as pa
import pyarrow.parquet as pq

from core.constants import RESCUED_DATA_COLUMN
from core.errors import LakeloadStoreError, StorageWriteFailureError
from core.types import FieldType, Record, RescuePayload, TableSchema
from ingest.value_inference import coerce_value

_ARROW_TYPES: dict[str, pa.DataType] = {
    "integer": pa.int32(),
    "long": pa.int64(),
    "double": pa.float64(),
    "boolean": pa.bool_(),
    "timestamp": pa.timestamp("us", tz="UTC"),
    "string": pa.string(),
}


def field_type_to_arrow(field_type: FieldType) -> pa.DataType:
    """Map a table field type onto its Arrow storage type."""
    return _ARROW_TYPES[field_type]


def arrow_schema_for(schema: TableSchema) -> pa.Schema:
    """Build the Arrow schema of a data file for a table schema."""
    arrow_fields = [
        pa.field(schema_field.name, field_type_to_arrow(schema_field.field_type), nullable=True)
        for schema_field in schema.fields
    ]
    arrow_fields.append(pa.field(RESCUED_DATA_COLUMN, pa.string(), nullable=True))
    return pa.schema(arrow_fields)


def conform_record(record: Record, schema: TableSchema) -> dict[str, object]:
    """Convert a parsed record into a typed row of the table schema.

    Args:
        record: Parsed record.
        schema: Schema of the version being committed.

    Returns:
        Row dictionary including the rescued data column.

    Raises:
        LakeloadStoreError: If a conforming record holds a value the
            schema cannot represent.
    """
    row: dict[str, object] = {}
    for schema_field in schema.fields:
        raw_value = record.values.get(schema_field.name)
        try:
            row[schema_field.name] = coerce_value(raw_value, schema_field.field_type)
        except ValueError as error:
            if not record.is_rescued:
                raise LakeloadStoreError(
                    f"Value for column '{schema_field.name}' in {record.source_file} at "
                    f"{record.locator} does not fit type {schema_field.field_type}: {error}."
                ) from error
            row[schema_field.name] = None
    row[RESCUED_DATA_COLUMN] = _rescue_to_json(record.rescue)
    return row


def write_data_file(file_path: Path, records: Sequence[Record], schema: TableSchema) -> int:
    """Write batch records to one Parquet data file.

    Args:
        file_path: Destination file path, which must not exist.
        records: Records of the batch.
        schema: Schema of the version being committed.

    Returns:
        Number of rows written.

    Raises:
        StorageWriteFailureError: If the file cannot be written.
    """
    rows = [conform_record(record, schema) for record in records]
    try:
        table = pa.Table.from_pylist(rows, schema=arrow_schema_for(schema))
        file_path.parent.mkdir(parents=True, exist_ok=True)
        pq.write_table(table, str(file_path))
    except (OSError, pa.ArrowException) as error:
        file_path.unlink(missing_ok=True)
        raise StorageWriteFailureError(
            f"Failed to write data file {file_path}: {error}. "
            "Check write permissions and available disk space."
        ) from error
    return len(rows)


def read_data_file(file_path: Path, schema: TableSchema) -> list[dict[str, Any]]:
    """Read a data file projected onto a table schema.

    Columns added after the file was written read as null; values of
    promoted columns are widened to the current type.

    Args:
        file_path: Data file path.
        schema: Schema of the version being read.

    Returns:
        Rows keyed by schema field names plus the rescued data column.

    Raises:
        LakeloadStoreError: If the file is missing or unreadable.
    """
    try:
        stored_rows = pq.read_table(str(file_path)).to_pylist()
    except (OSError, pa.ArrowException) as error:
        raise LakeloadStoreError(
            f"Failed to read data file {file_path}: {error}. "
            "The table version references a missing or damaged file."
        ) from error
    projected: list[dict[str, Any]] = []
    for stored_row in stored_rows:
        row: dict[str, Any] = {}
        for schema_field in schema.fields:
            try:
                row[schema_field.name] = coerce_value(
                    stored_row.get(schema_field.name), schema_field.field_type
                )
            except ValueError as error:
                raise LakeloadStoreError(
                    f"Data file {file_path} holds a '{schema_field.name}' value that does not "
                    f"widen to {schema_field.field_type}: {error}."
                ) from error
        row[RESCUED_DATA_COLUMN] = stored_row.get(RESCUED_DATA_COLUMN)
        projected.append(row)
    return projected


def _rescue_to_json(rescue: RescuePayload | None) -> str | None:
    if rescue is None:
        return None
    return json.dumps(
        {
            "raw_text": rescue.raw_text,
            "reason": rescue.reason,
            "file_path": rescue.file_path,
            "locator": rescue.locator,
        },
        sort_keys=True,
    )
