"""Python SDK for table operations.

This module exposes high-level APIs for CTAS, incremental ingest,
and version inspection backed by the table store.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

from core.config import LakeloadConfig
from core.types import IngestResult, SourceQuery, TableSchema, TableVersion
from ingest.pipeline import create_table_as_select, ingest_incremental
from store.table_store import TableStore


class LakeloadClient:
    """Primary SDK entry point for table loading workflows."""

    def __init__(self, config: LakeloadConfig | None = None) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
        """
        self._config = config or LakeloadConfig.from_env()
        self._store = TableStore(self._config)

    @property
    def config(self) -> LakeloadConfig:
        """Configuration passed into every engine call."""
        return self._config

    def create_table(self, table_name: str) -> TableVersion:
        """Create an empty table whose schema the first load will infer.

        Args:
            table_name: Table identifier.

        Returns:
            Version 0 of the new table.
        """
        return self._store.create_empty_table(table_name)

    def create_table_as_select(
        self,
        table_name: str,
        query: SourceQuery,
        replace_if_exists: bool = False,
        timeout: float | None = None,
    ) -> TableVersion:
        """Create or replace a table from a file read.

        Args:
            table_name: Table identifier.
            query: Source location, format and read options.
            replace_if_exists: Replace an existing table instead of failing.
            timeout: Optional deadline in seconds for discovery and parsing.

        Returns:
            The committed table version.

        Raises:
            TableAlreadyExistsError: If the table exists and replace is off.
        """
        return create_table_as_select(table_name, query, replace_if_exists, self._config, timeout)

    def ingest_incremental(
        self,
        table_name: str,
        source_uri: str,
        file_format: str,
        options: Mapping[str, object] | None = None,
        timeout: float | None = None,
    ) -> IngestResult:
        """Load files from a location that the table has not ingested yet.

        Args:
            table_name: Table identifier.
            source_uri: Local path, directory, or ``s3://`` prefix.
            file_format: ``csv``, ``json`` or ``parquet``.
            options: Read options keyed by their camelCase names.
            timeout: Optional deadline in seconds for discovery and parsing.

        Returns:
            Files processed and rows inserted/rescued.
        """
        return ingest_incremental(
            table_name, source_uri, file_format, options or {}, self._config, timeout
        )

    def table(self, table_name: str) -> "Table":
        """Get table handle by name.

        Args:
            table_name: Table identifier.

        Returns:
            Table handle.
        """
        return Table(table_name, self._store)

    def with_data_root(self, data_root: str) -> "LakeloadClient":
        """Clone the client with a different local data root.

        Args:
            data_root: New data root path.

        Returns:
            New SDK client instance.
        """
        resolved_root = Path(data_root).expanduser().resolve()
        return LakeloadClient(replace(self._config, data_root=resolved_root))


class Table:
    """SDK table handle for versioned reads."""

    def __init__(self, table_name: str, store: TableStore) -> None:
        self._table_name = table_name
        self._store = store

    @property
    def name(self) -> str:
        """Return table identifier."""
        return self._table_name

    def exists(self) -> bool:
        """Return whether the table has any committed version."""
        return self._store.table_exists(self._table_name)

    def list_versions(self) -> list[TableVersion]:
        """List table versions in commit order."""
        return self._store.list_versions(self._table_name)

    def schema(self, version: int | None = None) -> TableSchema:
        """Return the schema of the latest or a given version."""
        return self._store.load_version(self._table_name, version).schema

    def describe(self, version: int | None = None) -> dict[str, object]:
        """Summarize a version the way ``DESCRIBE EXTENDED`` does.

        Args:
            version: Optional version number, latest when omitted.

        Returns:
            Column list and version metadata.
        """
        table_version = self._store.load_version(self._table_name, version)
        return {
            "table_name": table_version.table_name,
            "version": table_version.version,
            "columns": [
                {
                    "name": schema_field.name,
                    "type": schema_field.field_type,
                    "nullable": schema_field.nullable,
                }
                for schema_field in table_version.schema.fields
            ],
            "data_files": len(table_version.data_files),
            "row_count": table_version.row_count,
            "last_commit_mode": table_version.mode,
            "committed_at": table_version.committed_at.isoformat(),
            "ingested_files": len(self._store.ledger.ingested_identities(self._table_name)),
        }

    def read_rows(self, version: int | None = None) -> list[dict[str, Any]]:
        """Read all rows of the latest or a given version."""
        return self._store.read_rows(self._table_name, version)

    def count(self, version: int | None = None) -> int:
        """Return the number of rows in the latest or a given version."""
        return self._store.load_version(self._table_name, version).row_count
