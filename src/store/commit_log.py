"""Table commit log persistence helpers.

This module isolates JSON commit file IO for table versions. Every
version is one file named by its zero-padded number; a version file
is published with an exclusive hard link so it appears complete or
not at all, and two writers can never publish the same number.
"""

from __future__ import annotations

from datetime import datetime
import json
import os
from pathlib import Path
from typing import Any, cast
import uuid

from core.constants import (
    COMMIT_FILE_SUFFIX,
    COMMIT_VERSION_WIDTH,
    COMMITS_DIR_NAME,
    DATA_DIR_NAME,
    TABLES_DIR_NAME,
)
from core.errors import IngestionConflictError, LakeloadStoreError, StorageWriteFailureError
from core.types import CommitMode, FieldType, LedgerEntry, SchemaField, TableSchema, TableVersion


def table_root(data_root: Path, table_name: str) -> Path:
    """Return the directory holding one table's log and data."""
    return data_root / TABLES_DIR_NAME / table_name


def commits_dir(data_root: Path, table_name: str) -> Path:
    """Return the commit log directory of a table."""
    return table_root(data_root, table_name) / COMMITS_DIR_NAME


def data_dir(data_root: Path, table_name: str) -> Path:
    """Return the data file directory of a table."""
    return table_root(data_root, table_name) / DATA_DIR_NAME


def read_versions(log_dir: Path) -> list[TableVersion]:
    """Read every committed version of a table.

    Args:
        log_dir: Table commit log directory.

    Returns:
        Versions in ascending order; empty when the table does not exist.

    Raises:
        LakeloadStoreError: If a commit file is invalid or versions have gaps.
    """
    if not log_dir.exists():
        return []
    commit_paths = sorted(
        path
        for path in log_dir.glob(f"*{COMMIT_FILE_SUFFIX}")
        if path.stem.isdigit()
    )
    versions = [_read_commit_file(path) for path in commit_paths]
    for expected_number, version in enumerate(versions):
        if version.version != expected_number:
            raise LakeloadStoreError(
                f"Commit log at {log_dir} is missing version {expected_number}. "
                "Restore the missing commit file before reading the table."
            )
    return versions


def publish_version(log_dir: Path, version: TableVersion) -> Path:
    """Atomically publish a new version file.

    Args:
        log_dir: Table commit log directory.
        version: Version to publish.

    Returns:
        Path of the published commit file.

    Raises:
        IngestionConflictError: If the version number was already published.
        StorageWriteFailureError: If the commit file cannot be written.
    """
    commit_path = log_dir / f"{version.version:0{COMMIT_VERSION_WIDTH}d}{COMMIT_FILE_SUFFIX}"
    temp_path = log_dir / f".{uuid.uuid4().hex}{COMMIT_FILE_SUFFIX}.tmp"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(json.dumps(version_to_payload(version), indent=2) + "\n", encoding="utf-8")
        os.link(temp_path, commit_path)
    except FileExistsError as error:
        raise IngestionConflictError(
            f"Version {version.version} of table '{version.table_name}' was committed "
            "by a concurrent writer. Re-run discovery and retry the ingest."
        ) from error
    except OSError as error:
        raise StorageWriteFailureError(
            f"Failed to write commit file {commit_path}: {error}. "
            "Check write permissions and available disk space."
        ) from error
    finally:
        temp_path.unlink(missing_ok=True)
    return commit_path


def version_to_payload(version: TableVersion) -> dict[str, Any]:
    """Serialize a table version into a JSON-safe dictionary."""
    return {
        "table_name": version.table_name,
        "version": version.version,
        "schema": [
            {
                "name": schema_field.name,
                "type": schema_field.field_type,
                "nullable": schema_field.nullable,
            }
            for schema_field in version.schema.fields
        ],
        "data_files": list(version.data_files),
        "committed_at": version.committed_at.isoformat(),
        "batch_id": version.batch_id,
        "mode": version.mode,
        "parent_version": version.parent_version,
        "ledger_entries": [
            {
                "file_identity": entry.file_identity,
                "table_name": entry.table_name,
                "batch_id": entry.batch_id,
                "committed_at": entry.committed_at.isoformat(),
            }
            for entry in version.ledger_entries
        ],
        "row_count": version.row_count,
    }


def version_from_payload(payload: dict[str, Any]) -> TableVersion:
    """Deserialize a table version payload.

    Args:
        payload: Commit file dictionary.

    Returns:
        Typed table version.
    """
    schema = TableSchema(
        fields=tuple(
            SchemaField(
                name=str(item["name"]),
                field_type=cast(FieldType, str(item["type"])),
                nullable=bool(item["nullable"]),
            )
            for item in payload["schema"]
        )
    )
    parent_version = payload.get("parent_version")
    return TableVersion(
        table_name=str(payload["table_name"]),
        version=int(payload["version"]),
        schema=schema,
        data_files=tuple(str(name) for name in payload["data_files"]),
        committed_at=datetime.fromisoformat(str(payload["committed_at"])),
        batch_id=str(payload["batch_id"]),
        mode=cast(CommitMode, str(payload["mode"])),
        parent_version=int(parent_version) if parent_version is not None else None,
        ledger_entries=tuple(
            LedgerEntry(
                file_identity=str(entry["file_identity"]),
                table_name=str(entry["table_name"]),
                batch_id=str(entry["batch_id"]),
                committed_at=datetime.fromisoformat(str(entry["committed_at"])),
            )
            for entry in payload.get("ledger_entries", [])
        ),
        row_count=int(payload.get("row_count", 0)),
    )


def _read_commit_file(commit_path: Path) -> TableVersion:
    """Read and validate one commit file.

    Raises:
        LakeloadStoreError: If the file is not a valid commit payload.
    """
    try:
        payload = json.loads(commit_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise LakeloadStoreError(
            f"Failed to parse commit file at {commit_path}: {error.msg}. "
            "Restore the commit file from backup."
        ) from error
    if not isinstance(payload, dict):
        raise LakeloadStoreError(
            f"Failed to parse commit file at {commit_path}: expected JSON object at top level."
        )
    try:
        return version_from_payload(payload)
    except (KeyError, TypeError, ValueError) as error:
        raise LakeloadStoreError(
            f"Invalid commit payload at {commit_path}: {error}. Restore the commit file from backup."
        ) from error
