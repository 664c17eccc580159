"""File format parsers.

This module converts raw file payloads into records and a per-file
schema. Delimited text is read with ``pyarrow.csv``, which infers the
column types and hands back rows of the wrong width for rescue. JSON
lines are decoded row by row. Lines that are not valid UTF-8 are
malformed in both text formats. Parquet files carry their own schema
and either decode completely or fail as corrupt.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
import json
from typing import Any, Protocol, Sequence

import pyarrow as pa
import pyarrow.compute as pc
import pyarrow.csv as pa_csv
import pyarrow.parquet as pq

from core.constants import (
    FAILURE_MODE_FAILFAST,
    HEADERLESS_COLUMN_PREFIX,
    INGESTED_AT_COLUMN,
    INT32_MAX,
    INT32_MIN,
    RESCUED_DATA_COLUMN,
    SOURCE_FILE_COLUMN,
)
from core.errors import (
    CorruptFileError,
    LakeloadIngestError,
    MalformedRecordError,
    SchemaConflictError,
)
from core.types import (
    FieldType,
    ParsedFile,
    ReadOptions,
    Record,
    RescuePayload,
    SchemaField,
    SourceFile,
    TableSchema,
)
from ingest.schema_reconciler import promote_types
from ingest.value_inference import coerce_value, convert_text, infer_python_type


class FormatParser(Protocol):
    """Parser contract shared by every supported file format."""

    def parse(self, source_file: SourceFile, payload: bytes, options: ReadOptions) -> ParsedFile:
        """Parse one file payload into records and an inferred schema."""


@dataclass(frozen=True)
class _TextLine:
    """One non-blank payload line; ``decode_error`` is set for bad UTF-8."""

    line_number: int
    text: str
    decode_error: str | None = None


@dataclass(frozen=True)
class _ParsedRow:
    line_number: int
    values: dict[str, object]
    raw_text: str
    reason: str | None = None


class DelimitedTextParser:
    """Parser for separator-delimited text with optional header row."""

    def parse(self, source_file: SourceFile, payload: bytes, options: ReadOptions) -> ParsedFile:
        """Parse delimited text rows.

        Args:
            source_file: File being parsed.
            payload: Raw file bytes.
            options: Validated read options.

        Returns:
            Parsed records and schema.

        Raises:
            MalformedRecordError: In FAILFAST mode on the first bad row.
            CorruptFileError: If the text cannot be read as delimited rows.
        """
        lines = _decode_lines(payload)
        readable = [line for line in lines if line.decode_error is None]
        declared = options.declared_schema
        table: pa.Table | None = None
        invalid_rows: list[Any] = []
        columns = list(declared.field_names) if declared else []
        if readable:
            table, invalid_rows = _read_delimited(source_file, readable, options)
            columns = _column_names(table.column_names, options)
            table = table.rename_columns(columns)
        rows = [
            _ParsedRow(line.line_number, dict.fromkeys(columns), line.text, line.decode_error)
            for line in lines
            if line.decode_error is not None
        ]
        line_numbers = [line.line_number for line in readable]
        for invalid_row in invalid_rows:
            rows.append(
                _ParsedRow(
                    line_number=_line_number(line_numbers, invalid_row.number),
                    values=_positional_values(invalid_row.text, columns, options),
                    raw_text=invalid_row.text,
                    reason=(
                        f"expected {invalid_row.expected_columns} fields, "
                        f"found {invalid_row.actual_columns}"
                    ),
                )
            )
        if table is not None:
            rows.extend(_table_rows(table, readable, invalid_rows, options))
        rows.sort(key=lambda row: row.line_number)
        records = [_to_record(source_file, row, options) for row in rows]
        if declared is not None:
            schema = declared
        elif table is None:
            schema = TableSchema()
        else:
            schema = _delimited_schema(table, sum(record.is_rescued for record in records))
        return _finish(source_file, records, schema, tuple(columns), options)


class JsonLinesParser:
    """Parser for one JSON object per line."""

    def parse(self, source_file: SourceFile, payload: bytes, options: ReadOptions) -> ParsedFile:
        """Parse JSON lines rows.

        Args:
            source_file: File being parsed.
            payload: Raw file bytes.
            options: Validated read options.

        Returns:
            Parsed records and schema.

        Raises:
            MalformedRecordError: In FAILFAST mode on the first bad row.
        """
        declared = options.declared_schema
        columns: dict[str, None] = dict.fromkeys(declared.field_names) if declared else {}
        column_types = _ColumnTypes(list(columns))
        records: list[Record] = []
        for line in _decode_lines(payload):
            if line.decode_error is None:
                values, reason = _json_values(line.text, declared)
            else:
                values = dict.fromkeys(declared.field_names) if declared else {}
                reason = line.decode_error
            row = _ParsedRow(line.line_number, values, line.text, reason)
            record = _to_record(source_file, row, options)
            if record.is_rescued:
                column_types.observe_rescued()
            else:
                if declared is None:
                    for key in values:
                        columns.setdefault(key, None)
                column_types.observe_python(values)
            records.append(record)
        schema = declared or column_types.to_schema()
        return _finish(source_file, records, schema, tuple(columns), options)


class ParquetParser:
    """Parser for self-describing Parquet files."""

    def parse(self, source_file: SourceFile, payload: bytes, options: ReadOptions) -> ParsedFile:
        """Decode a Parquet payload.

        Args:
            source_file: File being parsed.
            payload: Raw file bytes.
            options: Validated read options.

        Returns:
            Parsed records and the embedded schema.

        Raises:
            CorruptFileError: If the payload cannot be decoded.
        """
        try:
            table = pq.read_table(pa.BufferReader(payload))
        except (pa.ArrowException, OSError, ValueError) as error:
            raise CorruptFileError(
                f"Failed to decode parquet file {source_file.path}: {error}. "
                "Replace or remove the corrupt file and retry ingest.",
                file_path=source_file.path,
            ) from error
        schema = TableSchema(
            fields=tuple(
                SchemaField(arrow_field.name, arrow_to_field_type(arrow_field.type), arrow_field.nullable)
                for arrow_field in table.schema
            )
        )
        records = [
            Record(
                values={key: _normalize_arrow_value(value) for key, value in row.items()},
                source_file=source_file.path,
                locator=f"row:{row_index}",
            )
            for row_index, row in enumerate(table.to_pylist())
        ]
        return _finish(source_file, records, schema, schema.field_names, options)


def parser_for_format(file_format: str) -> FormatParser:
    """Return the parser for a validated file format.

    Raises:
        LakeloadIngestError: If no parser exists for the format.
    """
    parsers: dict[str, FormatParser] = {
        "csv": DelimitedTextParser(),
        "json": JsonLinesParser(),
        "parquet": ParquetParser(),
    }
    parser = parsers.get(file_format)
    if parser is None:
        raise LakeloadIngestError(f"No parser registered for file format '{file_format}'.")
    return parser


def arrow_to_field_type(arrow_type: pa.DataType) -> FieldType:
    """Map an Arrow type onto the table field types."""
    if pa.types.is_boolean(arrow_type):
        return "boolean"
    if pa.types.is_int8(arrow_type) or pa.types.is_int16(arrow_type) or pa.types.is_int32(arrow_type):
        return "integer"
    if pa.types.is_uint8(arrow_type) or pa.types.is_uint16(arrow_type):
        return "integer"
    if pa.types.is_integer(arrow_type):
        return "long"
    if pa.types.is_floating(arrow_type) or pa.types.is_decimal(arrow_type):
        return "double"
    if pa.types.is_timestamp(arrow_type):
        return "timestamp"
    return "string"


class _ColumnTypes:
    """Per-column type accumulator for JSON lines."""

    def __init__(self, columns: list[str]) -> None:
        self._order: dict[str, None] = dict.fromkeys(columns)
        self._types: dict[str, FieldType] = {}
        self._typed_rows: dict[str, int] = {}
        self._rows = 0

    def observe_python(self, values: dict[str, object]) -> None:
        self._rows += 1
        for name, value in values.items():
            self._observe(name, infer_python_type(value))

    def observe_rescued(self) -> None:
        # Rescued rows carry best-effort values, so every column may be null.
        self._rows += 1

    def to_schema(self) -> TableSchema:
        return TableSchema(
            fields=tuple(
                SchemaField(name, self._types[name], self._typed_rows[name] < self._rows)
                for name in self._order
                if name in self._types
            )
        )

    def _observe(self, name: str, field_type: FieldType | None) -> None:
        self._order.setdefault(name, None)
        if field_type is None:
            return
        current = self._types.get(name)
        self._types[name] = field_type if current is None else promote_types(current, field_type)
        self._typed_rows[name] = self._typed_rows.get(name, 0) + 1


def _decode_lines(payload: bytes) -> list[_TextLine]:
    """Split a payload into non-blank lines, decoding each one strictly."""
    if payload.startswith(codecs.BOM_UTF8):
        payload = payload[len(codecs.BOM_UTF8):]
    lines: list[_TextLine] = []
    for line_number, raw_line in enumerate(payload.splitlines(), 1):
        if not raw_line.strip():
            continue
        try:
            lines.append(_TextLine(line_number, raw_line.decode("utf-8")))
        except UnicodeDecodeError as error:
            lines.append(
                _TextLine(
                    line_number=line_number,
                    text=raw_line.decode("utf-8", errors="backslashreplace"),
                    decode_error=f"invalid UTF-8 at byte {error.start}",
                )
            )
    return lines


def _read_delimited(
    source_file: SourceFile,
    lines: list[_TextLine],
    options: ReadOptions,
) -> tuple[pa.Table, list[Any]]:
    """Read decoded lines with the Arrow CSV reader.

    Rows whose width differs from the header (or first row) are skipped
    by the reader and returned separately as ``InvalidRow`` tuples.
    Declared schemas read every column as text so each cell can be
    converted and checked on its own.
    """
    invalid_rows: list[Any] = []

    def _collect_invalid_row(row: Any) -> str:
        invalid_rows.append(row)
        return "skip"

    data = ("\n".join(line.text for line in lines) + "\n").encode("utf-8")
    declared = options.declared_schema
    read_options = pa_csv.ReadOptions(
        # Row numbers are only reported by the single-threaded reader.
        use_threads=False,
        # Types are inferred per block, so one block sees every row.
        block_size=max(len(data), 1 << 20),
        skip_rows=1 if declared is not None and options.has_header else 0,
        column_names=list(declared.field_names) if declared else None,
        autogenerate_column_names=declared is None and not options.has_header,
    )
    parse_options = pa_csv.ParseOptions(
        delimiter=options.separator,
        invalid_row_handler=_collect_invalid_row,
    )
    convert_options = pa_csv.ConvertOptions(
        column_types={name: pa.string() for name in declared.field_names} if declared else None,
        null_values=[""],
        strings_can_be_null=True,
    )
    try:
        table = pa_csv.read_csv(
            pa.BufferReader(data),
            read_options=read_options,
            parse_options=parse_options,
            convert_options=convert_options,
        )
    except pa.ArrowInvalid as error:
        raise CorruptFileError(
            f"Failed to read delimited file {source_file.path}: {error}. "
            "Check the separator and hasHeader options or fix the file.",
            file_path=source_file.path,
        ) from error
    return table, invalid_rows


def _column_names(arrow_names: list[str], options: ReadOptions) -> list[str]:
    """Resolve unique column names for a delimited file."""
    if options.declared_schema is not None:
        return list(options.declared_schema.field_names)
    if not options.has_header:
        return [f"{HEADERLESS_COLUMN_PREFIX}{index}" for index in range(len(arrow_names))]
    columns: list[str] = []
    for index, raw_name in enumerate(arrow_names):
        name = raw_name.strip() or f"{HEADERLESS_COLUMN_PREFIX}{index}"
        columns.append(f"{name}{index}" if name in columns else name)
    return columns


def _line_number(line_numbers: Sequence[int], row_number: int | None) -> int:
    """Map a 1-based reader row number, header included, onto a payload line."""
    if row_number is not None and 0 < row_number <= len(line_numbers):
        return line_numbers[row_number - 1]
    return row_number or 0


def _table_rows(
    table: pa.Table,
    lines: list[_TextLine],
    invalid_rows: list[Any],
    options: ReadOptions,
) -> list[_ParsedRow]:
    """Pair the rows the reader accepted with the lines they came from."""
    skipped = {invalid_row.number for invalid_row in invalid_rows}
    first_row = 2 if options.has_header else 1
    row_numbers = [number for number in range(first_row, len(lines) + 1) if number not in skipped]
    if len(row_numbers) != table.num_rows:
        row_numbers = list(range(first_row, first_row + table.num_rows))
    line_numbers = [line.line_number for line in lines]
    declared = options.declared_schema
    rows: list[_ParsedRow] = []
    for row_number, values in zip(row_numbers, table.to_pylist()):
        raw_text = lines[row_number - 1].text if row_number <= len(lines) else ""
        line_number = _line_number(line_numbers, row_number)
        if declared is not None:
            converted, reason = _convert_declared(values, declared)
            rows.append(_ParsedRow(line_number, converted, raw_text, reason))
            continue
        normalized = {name: _normalize_arrow_value(value) for name, value in values.items()}
        rows.append(_ParsedRow(line_number, normalized, raw_text))
    return rows


def _positional_values(
    raw_text: str,
    columns: list[str],
    options: ReadOptions,
) -> dict[str, object]:
    """Best-effort values for a row of the wrong width, matched by position."""
    try:
        row_table = pa_csv.read_csv(
            pa.BufferReader(raw_text.encode("utf-8")),
            read_options=pa_csv.ReadOptions(autogenerate_column_names=True),
            parse_options=pa_csv.ParseOptions(delimiter=options.separator),
            convert_options=pa_csv.ConvertOptions(null_values=[""], strings_can_be_null=True),
        )
    except pa.ArrowInvalid:
        return dict.fromkeys(columns)
    cells = list(row_table.to_pylist()[0].values()) if row_table.num_rows else []
    values: dict[str, object] = {
        name: (_normalize_arrow_value(cells[index]) if index < len(cells) else None)
        for index, name in enumerate(columns)
    }
    if options.declared_schema is None:
        return values
    return _convert_declared(values, options.declared_schema)[0]


def _delimited_schema(table: pa.Table, rescued_count: int) -> TableSchema:
    """Build the file schema from the column types the reader inferred."""
    fields: list[SchemaField] = []
    for name, column in zip(table.column_names, table.columns):
        field_type = _column_field_type(column)
        if field_type is None:
            continue
        fields.append(SchemaField(name, field_type, column.null_count > 0 or rescued_count > 0))
    return TableSchema(fields=tuple(fields))


def _column_field_type(column: pa.ChunkedArray) -> FieldType | None:
    """Return the field type of an inferred column, ``None`` when all null."""
    if pa.types.is_null(column.type):
        return None
    if pa.types.is_integer(column.type):
        bounds = pc.min_max(column).as_py()
        if INT32_MIN <= bounds["min"] and bounds["max"] <= INT32_MAX:
            return "integer"
        return "long"
    return arrow_to_field_type(column.type)


def _convert_declared(
    values: dict[str, object],
    declared: TableSchema,
) -> tuple[dict[str, object], str | None]:
    """Convert raw values onto a declared schema, nulling failed cells."""
    converted: dict[str, object] = {}
    problems: list[str] = []
    for schema_field in declared.fields:
        raw_value = values.get(schema_field.name)
        try:
            if isinstance(raw_value, str):
                value = convert_text(raw_value, schema_field.field_type)
            else:
                value = coerce_value(raw_value, schema_field.field_type)
        except ValueError as error:
            problems.append(f"{schema_field.name}: {error}")
            value = None
        if value is None and not schema_field.nullable and raw_value is None:
            problems.append(f"{schema_field.name}: null in NOT NULL column")
        converted[schema_field.name] = value
    return converted, "; ".join(problems) or None


def _json_values(
    line: str,
    declared: TableSchema | None,
) -> tuple[dict[str, object], str | None]:
    """Decode one JSON line, returning a diagnostic for bad rows."""
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as error:
        empty: dict[str, object] = dict.fromkeys(declared.field_names) if declared else {}
        return empty, f"invalid JSON: {error.msg}"
    if not isinstance(payload, dict):
        empty = dict.fromkeys(declared.field_names) if declared else {}
        return empty, f"expected a JSON object, found {type(payload).__name__}"
    if declared is None:
        return payload, None
    converted, reason = _convert_declared(payload, declared)
    unexpected = [key for key in payload if declared.get_field(key) is None]
    if unexpected:
        extra_reason = f"unexpected fields: {', '.join(unexpected)}"
        reason = f"{reason}; {extra_reason}" if reason else extra_reason
    return converted, reason


def _to_record(source_file: SourceFile, row: _ParsedRow, options: ReadOptions) -> Record:
    locator = f"line:{row.line_number}"
    if row.reason is None:
        return Record(values=row.values, source_file=source_file.path, locator=locator)
    return _malformed_record(source_file, locator, row.raw_text, row.reason, row.values, options)


def _malformed_record(
    source_file: SourceFile,
    locator: str,
    raw_text: str,
    reason: str,
    values: dict[str, object],
    options: ReadOptions,
) -> Record:
    """Rescue a malformed row, or abort the batch in FAILFAST mode."""
    if options.failure_mode == FAILURE_MODE_FAILFAST:
        raise MalformedRecordError(
            f"Malformed record in {source_file.path} at {locator}: {reason}. "
            "Fix the source row or ingest with failureMode PERMISSIVE.",
            file_path=source_file.path,
            locator=locator,
        )
    rescue = RescuePayload(
        raw_text=raw_text,
        reason=reason,
        file_path=source_file.path,
        locator=locator,
    )
    return Record(values=values, source_file=source_file.path, locator=locator, rescue=rescue)


def _check_reserved_columns(
    source_file: SourceFile,
    column_order: tuple[str, ...],
    options: ReadOptions,
) -> None:
    """Reject source columns that reuse the names of generated columns."""
    reserved = {RESCUED_DATA_COLUMN}
    if options.include_source_metadata:
        reserved.update((SOURCE_FILE_COLUMN, INGESTED_AT_COLUMN))
    clashes = [name for name in column_order if name in reserved]
    if clashes:
        raise SchemaConflictError(
            f"Columns in {source_file.path} use reserved names: {', '.join(clashes)}. "
            "Rename the source columns before ingesting."
        )


def _finish(
    source_file: SourceFile,
    records: list[Record],
    schema: TableSchema,
    column_order: tuple[str, ...],
    options: ReadOptions,
) -> ParsedFile:
    """Attach optional source metadata columns and build parser output."""
    _check_reserved_columns(source_file, column_order, options)
    if not options.include_source_metadata:
        return ParsedFile(source_file, tuple(records), schema, column_order)
    ingested_at = datetime.now(timezone.utc)
    metadata_values = {SOURCE_FILE_COLUMN: source_file.path, INGESTED_AT_COLUMN: ingested_at}
    enriched = tuple(
        Record(
            values={**record.values, **metadata_values},
            source_file=record.source_file,
            locator=record.locator,
            rescue=record.rescue,
        )
        for record in records
    )
    metadata_fields = (
        SchemaField(SOURCE_FILE_COLUMN, "string", False),
        SchemaField(INGESTED_AT_COLUMN, "timestamp", False),
    )
    return ParsedFile(
        source_file=source_file,
        records=enriched,
        schema=TableSchema(fields=schema.fields + metadata_fields),
        column_order=column_order + (SOURCE_FILE_COLUMN, INGESTED_AT_COLUMN),
    )


def _normalize_arrow_value(value: Any) -> object:
    """Convert Arrow scalars into values the table store can coerce."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    return value
