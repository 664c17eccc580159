"""Versioned table store.

This module materializes immutable table versions: it writes a
batch's data file, registers the batch in the ingestion ledger and
publishes the next commit file as one unit. Append versions extend the
prior data file list; replace versions supersede it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import re
import threading
from typing import Any, Sequence
import uuid

from core.config import LakeloadConfig
from core.constants import (
    COMMIT_MODE_APPEND,
    COMMIT_MODE_REPLACE,
    DATA_FILE_SUFFIX,
    FIRST_TABLE_VERSION,
)
from core.errors import (
    IngestionConflictError,
    LakeloadStoreError,
    TableAlreadyExistsError,
    TableNotFoundError,
)
from core.logging_config import get_logger
from core.types import Batch, CommitMode, Record, SourceFile, TableSchema, TableVersion
from store.commit_log import commits_dir, data_dir, publish_version, read_versions
from store.data_files import read_data_file, write_data_file
from store.ingest_ledger import IngestLedger

_LOGGER = get_logger(__name__)
_TABLE_NAME_PATTERN = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.\-]*")
_TABLE_LOCKS: dict[tuple[str, str], threading.Lock] = {}
_TABLE_LOCKS_GUARD = threading.Lock()


class TableStore:
    """Immutable table version store.

    This class owns table directories, commit files and data files
    under the configured data root. Commits to one table are serialized
    in-process by a per-table lock and across processes by exclusive
    publication of commit files.
    """

    def __init__(self, config: LakeloadConfig) -> None:
        """Initialize table store from config.

        Args:
            config: Runtime configuration.
        """
        self._config = config
        self._data_root = config.data_root
        self._ledger = IngestLedger(config.data_root)

    @property
    def ledger(self) -> IngestLedger:
        """Ingestion ledger sharing this store's data root."""
        return self._ledger

    def prepare_batch(
        self,
        table_name: str,
        files: Sequence[SourceFile],
        base_version: TableVersion | None,
    ) -> Batch:
        """Prepare a batch pinned to the version it was planned against.

        Args:
            table_name: Target table.
            files: Source files in canonical order.
            base_version: Table version read before discovery, ``None``
                when the table did not exist.

        Returns:
            Batch carrying the expected prior version number.
        """
        validate_table_name(table_name)
        return Batch(
            batch_id=uuid.uuid4().hex,
            table_name=table_name,
            files=tuple(files),
            expected_version=base_version.version if base_version else None,
        )

    def commit(
        self,
        batch: Batch,
        records: Sequence[Record],
        schema: TableSchema,
        mode: CommitMode,
    ) -> TableVersion:
        """Commit a batch as the table's next immutable version.

        Args:
            batch: Prepared batch.
            records: Every record parsed from the batch's files.
            schema: Reconciled (append) or inferred (replace) schema.
            mode: ``append`` or ``replace``.

        Returns:
            The committed table version.

        Raises:
            IngestionConflictError: If another commit won the race.
            StorageWriteFailureError: If data or metadata cannot be written.
        """
        validate_table_name(batch.table_name)
        with _table_lock(self._data_root, batch.table_name):
            committed_at = datetime.now(timezone.utc)
            registration = self._ledger.register_if_absent(batch.table_name, batch, committed_at)
            if mode == COMMIT_MODE_APPEND and registration.already_present:
                raise IngestionConflictError(
                    f"Files already ingested into '{batch.table_name}': "
                    f"{', '.join(source_file.path for source_file in registration.already_present)}. "
                    "Re-run discovery and retry the ingest."
                )
            latest = self.latest_version(batch.table_name)
            data_file_path = self._data_dir(batch.table_name) / f"{batch.batch_id}{DATA_FILE_SUFFIX}"
            new_data_files: tuple[str, ...] = ()
            if records:
                write_data_file(data_file_path, records, schema)
                new_data_files = (data_file_path.name,)
            prior_files, prior_rows = (), 0
            if latest is not None and mode == COMMIT_MODE_APPEND:
                prior_files, prior_rows = latest.data_files, latest.row_count
            version = TableVersion(
                table_name=batch.table_name,
                version=latest.version + 1 if latest else FIRST_TABLE_VERSION,
                schema=schema,
                data_files=prior_files + new_data_files,
                committed_at=committed_at,
                batch_id=batch.batch_id,
                mode=mode,
                parent_version=latest.version if latest else None,
                ledger_entries=registration.entries,
                row_count=prior_rows + len(records),
            )
            try:
                publish_version(self._commits_dir(batch.table_name), version)
            except LakeloadStoreError:
                data_file_path.unlink(missing_ok=True)
                raise
        _LOGGER.info(
            "table_version_committed",
            table_name=version.table_name,
            version=version.version,
            mode=version.mode,
            batch_id=version.batch_id,
            files_registered=len(registration.accepted),
            files_already_present=len(registration.already_present),
            row_count=version.row_count,
        )
        return version

    def create_empty_table(self, table_name: str) -> TableVersion:
        """Create a table with no columns and no data.

        Raises:
            TableAlreadyExistsError: If the table already has a version.
        """
        batch = self.prepare_batch(table_name, (), self.latest_version(table_name))
        if batch.expected_version is not None:
            raise TableAlreadyExistsError(
                f"Table '{table_name}' already exists. Drop it or load into it instead."
            )
        return self.commit(batch, (), TableSchema(), COMMIT_MODE_REPLACE)

    def table_exists(self, table_name: str) -> bool:
        """Return whether a table has at least one committed version."""
        return self.latest_version(table_name) is not None

    def latest_version(self, table_name: str) -> TableVersion | None:
        """Return the newest committed version, or ``None``."""
        versions = read_versions(self._commits_dir(table_name))
        return versions[-1] if versions else None

    def list_versions(self, table_name: str) -> list[TableVersion]:
        """List a table's versions in commit order.

        Raises:
            TableNotFoundError: If the table has no versions.
        """
        versions = read_versions(self._commits_dir(table_name))
        if not versions:
            raise TableNotFoundError(
                f"Table '{table_name}' not found under {self._data_root}. "
                "Create or ingest into the table first."
            )
        return versions

    def load_version(self, table_name: str, version: int | None = None) -> TableVersion:
        """Resolve one version, the latest when ``version`` is omitted.

        Raises:
            TableNotFoundError: If the table or version does not exist.
        """
        versions = self.list_versions(table_name)
        if version is None:
            return versions[-1]
        for table_version in versions:
            if table_version.version == version:
                return table_version
        raise TableNotFoundError(
            f"Version {version} not found for table '{table_name}'. "
            "Use list_versions to discover valid versions."
        )

    def read_rows(self, table_name: str, version: int | None = None) -> list[dict[str, Any]]:
        """Read every row visible in a table version.

        Args:
            table_name: Table identifier.
            version: Optional version number; latest when omitted.

        Returns:
            Rows projected onto the version schema, in data file order.
        """
        table_version = self.load_version(table_name, version)
        rows: list[dict[str, Any]] = []
        for file_name in table_version.data_files:
            rows.extend(read_data_file(self._data_dir(table_name) / file_name, table_version.schema))
        return rows

    def _commits_dir(self, table_name: str) -> Path:
        validate_table_name(table_name)
        return commits_dir(self._data_root, table_name)

    def _data_dir(self, table_name: str) -> Path:
        return data_dir(self._data_root, table_name)


def validate_table_name(table_name: str) -> None:
    """Reject table names that are not safe directory names.

    Raises:
        LakeloadStoreError: If the name is empty or contains path syntax.
    """
    if not _TABLE_NAME_PATTERN.fullmatch(table_name) or ".." in table_name:
        raise LakeloadStoreError(
            f"Invalid table name '{table_name}': use letters, digits, '_', '-' and '.'."
        )


def _table_lock(data_root: Path, table_name: str) -> threading.Lock:
    key = (str(data_root), table_name)
    with _TABLE_LOCKS_GUARD:
        return _TABLE_LOCKS.setdefault(key, threading.Lock())
