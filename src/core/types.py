"""Shared typed models.

This module defines immutable data models used by discovery, parsing,
schema reconciliation, the ledger and the table store to keep
interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Mapping

from core.constants import DEFAULT_SEPARATOR, FAILURE_MODE_PERMISSIVE

FieldType = Literal["integer", "long", "double", "boolean", "timestamp", "string"]
SUPPORTED_FIELD_TYPES: tuple[FieldType, ...] = (
    "integer",
    "long",
    "double",
    "boolean",
    "timestamp",
    "string",
)
FileFormat = Literal["csv", "json", "parquet"]
FailureMode = Literal["PERMISSIVE", "FAILFAST"]
CommitMode = Literal["append", "replace"]


@dataclass(frozen=True)
class SourceFile:
    """One observed source file.

    Attributes:
        path: Canonical local path or ``s3://bucket/key`` URI.
        size: Size in bytes at observation time.
        modified_at: Last-modified time in epoch nanoseconds.
    """

    path: str
    size: int
    modified_at: int

    @property
    def identity(self) -> str:
        """Stable identity key used by the ingestion ledger."""
        return f"{self.path}|{self.size}|{self.modified_at}"


@dataclass(frozen=True)
class SchemaField:
    """One named, typed column."""

    name: str
    field_type: FieldType
    nullable: bool = True


@dataclass(frozen=True)
class TableSchema:
    """Ordered set of uniquely named fields.

    Attributes:
        fields: Columns in table order.
    """

    fields: tuple[SchemaField, ...] = ()

    def __post_init__(self) -> None:
        names = [schema_field.name for schema_field in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field names in schema: {names}")

    @property
    def field_names(self) -> tuple[str, ...]:
        """Field names in schema order."""
        return tuple(schema_field.name for schema_field in self.fields)

    def get_field(self, name: str) -> SchemaField | None:
        """Return the named field if present."""
        for schema_field in self.fields:
            if schema_field.name == name:
                return schema_field
        return None

    def is_empty(self) -> bool:
        """Return whether the schema declares no fields."""
        return not self.fields

    def to_ddl(self) -> str:
        """Render schema as ``name TYPE, ...`` text."""
        return ", ".join(
            f"{schema_field.name} {schema_field.field_type.upper()}"
            + ("" if schema_field.nullable else " NOT NULL")
            for schema_field in self.fields
        )


@dataclass(frozen=True)
class RescuePayload:
    """Raw content and diagnostic for a row that failed to conform.

    Attributes:
        raw_text: Original row text.
        reason: Human-readable failure diagnostic.
        file_path: Source file the row came from.
        locator: Row locator within the file, e.g. ``line:3``.
    """

    raw_text: str
    reason: str
    file_path: str
    locator: str


@dataclass(frozen=True)
class Record:
    """One parsed row.

    Attributes:
        values: Field values keyed by column name.
        source_file: Path of the originating source file.
        locator: Row locator within the source file.
        rescue: Rescue payload when parsing partially failed.
    """

    values: Mapping[str, object]
    source_file: str
    locator: str
    rescue: RescuePayload | None = None

    @property
    def is_rescued(self) -> bool:
        """Whether the row carries a rescue payload."""
        return self.rescue is not None


@dataclass(frozen=True)
class ReadOptions:
    """Validated file read options.

    Attributes:
        separator: Delimiter for delimited text.
        has_header: Whether the first delimited row holds column names.
        failure_mode: PERMISSIVE rescues bad rows, FAILFAST aborts the batch.
        merge_schema: Whether new columns may be added to an existing table.
        declared_schema: Optional explicit schema rows must conform to.
        path_glob_filter: Optional ``fnmatch`` pattern for file names.
        include_source_metadata: Append source file and ingest time columns.
    """

    separator: str = DEFAULT_SEPARATOR
    has_header: bool = False
    failure_mode: FailureMode = FAILURE_MODE_PERMISSIVE
    merge_schema: bool = False
    declared_schema: TableSchema | None = None
    path_glob_filter: str | None = None
    include_source_metadata: bool = False


@dataclass(frozen=True)
class ParsedFile:
    """Parser output for one source file.

    Attributes:
        source_file: File the records were read from.
        records: Parsed rows in file order.
        schema: Inferred schema of typed columns; columns holding only
            nulls are left out.
        column_order: Every column seen, in file order.
    """

    source_file: SourceFile
    records: tuple[Record, ...]
    schema: TableSchema
    column_order: tuple[str, ...]


@dataclass(frozen=True)
class Batch:
    """Files processed and committed together in one call.

    Attributes:
        batch_id: Unique batch identifier.
        table_name: Target table.
        files: Source files in canonical path order.
        expected_version: Latest table version seen at preparation time,
            ``None`` when the table did not exist yet.
    """

    batch_id: str
    table_name: str
    files: tuple[SourceFile, ...]
    expected_version: int | None


@dataclass(frozen=True)
class LedgerEntry:
    """Durable record that a source file was committed to a table."""

    file_identity: str
    table_name: str
    batch_id: str
    committed_at: datetime


@dataclass(frozen=True)
class LedgerRegistration:
    """Result of registering a batch against the ledger.

    Attributes:
        accepted: Files newly recorded by this batch.
        already_present: Files that already had a ledger entry.
        entries: Ledger entries to persist for the accepted files.
    """

    accepted: tuple[SourceFile, ...]
    already_present: tuple[SourceFile, ...]
    entries: tuple[LedgerEntry, ...]


@dataclass(frozen=True)
class TableVersion:
    """Immutable snapshot of a table.

    Attributes:
        table_name: Table identifier.
        version: Version number, strictly increasing from zero.
        schema: Table schema at this version.
        data_files: Ordered data file names relative to the table data dir.
        committed_at: UTC commit timestamp.
        batch_id: Originating batch id.
        mode: ``append`` or ``replace``.
        parent_version: Previous version number when one exists.
        ledger_entries: Ledger entries created together with this version.
        row_count: Total rows visible in this version.
    """

    table_name: str
    version: int
    schema: TableSchema
    data_files: tuple[str, ...]
    committed_at: datetime
    batch_id: str
    mode: CommitMode
    parent_version: int | None
    ledger_entries: tuple[LedgerEntry, ...] = ()
    row_count: int = 0


@dataclass(frozen=True)
class IngestResult:
    """Counts returned by an incremental ingest call."""

    files_processed: int
    rows_inserted: int
    rows_rescued: int
    version: int | None = None


@dataclass(frozen=True)
class SourceQuery:
    """File read used as the source of a CTAS statement.

    Attributes:
        source_uri: Local path, directory, or ``s3://`` prefix.
        file_format: Declared file format.
        options: Raw read options, validated on execution.
    """

    source_uri: str
    file_format: str
    options: Mapping[str, object] = field(default_factory=dict)
