"""Ingestion ledger.

This module answers which source files were already committed to a
table and registers a batch's files against the optimistic version
check. Ledger entries are persisted inside the commit file of the
version that created them, so a version and its entries become visible
together and the commit log stays the single source of truth.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from core.errors import IngestionConflictError
from core.types import Batch, LedgerEntry, LedgerRegistration, SourceFile
from store.commit_log import commits_dir, read_versions


class IngestLedger:
    """Commit-log-backed record of ingested source files per table."""

    def __init__(self, data_root: Path) -> None:
        self._data_root = data_root

    def ingested_identities(self, table_name: str) -> frozenset[str]:
        """Return identities of every file committed to a table."""
        return frozenset(entry.file_identity for entry in self.entries(table_name))

    def entries(self, table_name: str) -> list[LedgerEntry]:
        """Return ledger entries of a table in commit order."""
        versions = read_versions(commits_dir(self._data_root, table_name))
        return [entry for version in versions for entry in version.ledger_entries]

    def register_if_absent(
        self,
        table_name: str,
        batch: Batch,
        committed_at: datetime,
    ) -> LedgerRegistration:
        """Register a batch's files that the table has not seen yet.

        Must run under the table's commit lock, immediately before the
        version carrying the returned entries is published.

        Args:
            table_name: Target table.
            batch: Batch prepared against ``batch.expected_version``.
            committed_at: Commit timestamp shared with the new version.

        Returns:
            Accepted and already-present files plus entries to persist.

        Raises:
            IngestionConflictError: If another batch committed to the
                table after this batch was prepared.
        """
        versions = read_versions(commits_dir(self._data_root, table_name))
        latest_number = versions[-1].version if versions else None
        if latest_number != batch.expected_version:
            raise IngestionConflictError(
                f"Table '{table_name}' moved from version {batch.expected_version} to "
                f"{latest_number} while batch {batch.batch_id} was prepared. "
                "Re-run discovery and retry the ingest."
            )
        ingested = {entry.file_identity for version in versions for entry in version.ledger_entries}
        accepted: list[SourceFile] = []
        already_present: list[SourceFile] = []
        for source_file in batch.files:
            if source_file.identity in ingested:
                already_present.append(source_file)
                continue
            ingested.add(source_file.identity)
            accepted.append(source_file)
        entries = tuple(
            LedgerEntry(
                file_identity=source_file.identity,
                table_name=table_name,
                batch_id=batch.batch_id,
                committed_at=committed_at,
            )
            for source_file in accepted
        )
        return LedgerRegistration(
            accepted=tuple(accepted),
            already_present=tuple(already_present),
            entries=entries,
        )
