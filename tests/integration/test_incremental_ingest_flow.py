"""Integration tests for idempotent incremental ingest."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
import os
from pathlib import Path

import pytest

from core.config import LakeloadConfig
from core.errors import (
    CorruptFileError,
    IngestionConflictError,
    MalformedRecordError,
    SchemaConflictError,
    StorageWriteFailureError,
)
from core.types import IngestResult
import ingest.pipeline as pipeline
from ingest.pipeline import ingest_incremental
from store.table_store import TableStore

_PIPE_OPTIONS = {"separator": "|", "hasHeader": "true", "failureMode": "PERMISSIVE"}


def _config(tmp_path: Path, commit_retries: int = 0) -> LakeloadConfig:
    return replace(
        LakeloadConfig.from_env(), data_root=tmp_path / "lake", commit_retries=commit_retries
    )


def _write(directory: Path, name: str, text: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    file_path = directory / name
    file_path.write_text(text, encoding="utf-8")
    return file_path


def _counts(result: IngestResult) -> tuple[int, int, int]:
    return (result.files_processed, result.rows_inserted, result.rows_rescued)


def test_pipe_delimited_example_is_idempotent(tmp_path: Path) -> None:
    """One bad row is rescued and a repeated call is a no-op."""
    landing = tmp_path / "landing"
    _write(landing, "people.csv", "id|name|age\n1|ada|36\n2|grace\n3|linus|54\n")
    config = _config(tmp_path)

    first = ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)
    second = ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)

    assert (_counts(first), _counts(second)) == ((1, 2, 1), (0, 0, 0))
    assert len(TableStore(config).list_versions("people")) == 1


def test_rescued_row_keeps_raw_text(tmp_path: Path) -> None:
    """Rescued rows are inserted with their rescue payload attached."""
    landing = tmp_path / "landing"
    _write(landing, "people.csv", "id|name|age\n1|ada|36\n2|grace\n")
    config = _config(tmp_path)

    ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)

    rows = TableStore(config).read_rows("people")
    assert [row["_rescued_data"] is not None for row in rows] == [False, True]
    assert '"raw_text": "2|grace"' in rows[1]["_rescued_data"]


def test_only_new_files_are_ingested(tmp_path: Path) -> None:
    """Files already in the ledger are never processed again."""
    landing = tmp_path / "landing"
    config = _config(tmp_path)
    _write(landing, "a.csv", "id|name\n1|ada\n")
    ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)
    _write(landing, "b.csv", "id|name\n2|grace\n3|linus\n")

    result = ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)

    assert _counts(result) == (1, 2, 0)
    assert sorted(row["id"] for row in TableStore(config).read_rows("people")) == [1, 2, 3]


def test_rewritten_file_is_treated_as_new(tmp_path: Path) -> None:
    """A file whose size and mtime change has a new identity."""
    landing = tmp_path / "landing"
    config = _config(tmp_path)
    file_path = _write(landing, "a.csv", "id|name\n1|ada\n")
    ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)
    file_path.write_text("id|name\n1|ada\n2|grace\n", encoding="utf-8")
    stat_result = file_path.stat()
    os.utime(file_path, ns=(stat_result.st_atime_ns, stat_result.st_mtime_ns + 1_000_000_000))

    result = ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)

    assert _counts(result) == (1, 2, 0)


def test_new_column_requires_merge_schema(tmp_path: Path) -> None:
    """Schema additions fail without mergeSchema and commit nothing."""
    landing = tmp_path / "landing"
    config = _config(tmp_path)
    _write(landing, "a.json", '{"id": 1}\n')
    ingest_incremental("events", str(landing), "json", {}, config)
    _write(landing, "b.json", '{"id": 2, "email": "x@example.com"}\n')

    with pytest.raises(SchemaConflictError):
        ingest_incremental("events", str(landing), "json", {}, config)

    assert len(TableStore(config).list_versions("events")) == 1


def test_merge_schema_widens_table_with_null_history(tmp_path: Path) -> None:
    """Merged columns read as null for rows committed earlier."""
    landing = tmp_path / "landing"
    config = _config(tmp_path)
    _write(landing, "a.json", '{"id": 1}\n')
    ingest_incremental("events", str(landing), "json", {}, config)
    _write(landing, "b.json", '{"id": 2.5, "email": "x@example.com"}\n')

    ingest_incremental("events", str(landing), "json", {"mergeSchema": True}, config)

    store = TableStore(config)
    assert store.load_version("events").schema.to_ddl() == "id DOUBLE NOT NULL, email STRING"
    assert [(row["id"], row["email"]) for row in store.read_rows("events")] == [
        (1.0, None),
        (2.5, "x@example.com"),
    ]


def test_incompatible_type_change_is_rejected(tmp_path: Path) -> None:
    """Booleans cannot be written into an integer column."""
    landing = tmp_path / "landing"
    config = _config(tmp_path)
    _write(landing, "a.json", '{"id": 1}\n')
    ingest_incremental("events", str(landing), "json", {}, config)
    _write(landing, "b.json", '{"id": true}\n')

    with pytest.raises(SchemaConflictError):
        ingest_incremental("events", str(landing), "json", {"mergeSchema": True}, config)


def test_failfast_batch_is_atomic(tmp_path: Path) -> None:
    """A malformed row aborts the batch without committing any file."""
    landing = tmp_path / "landing"
    config = _config(tmp_path)
    _write(landing, "a.csv", "id|name\n1|ada\n")
    _write(landing, "b.csv", "id|name\n2|grace|extra\n")
    failfast = {**_PIPE_OPTIONS, "failureMode": "FAILFAST"}

    with pytest.raises(MalformedRecordError):
        ingest_incremental("people", str(landing), "csv", failfast, config)

    store = TableStore(config)
    assert not store.table_exists("people")
    assert store.ledger.ingested_identities("people") == frozenset()
    retry = ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)
    assert _counts(retry) == (2, 1, 1)


def test_corrupt_parquet_aborts_batch(tmp_path: Path) -> None:
    """Undecodable parquet files fail the call and commit nothing."""
    landing = tmp_path / "landing"
    config = _config(tmp_path)
    landing.mkdir()
    (landing / "bad.parquet").write_bytes(b"PAR1 but not really")

    with pytest.raises(CorruptFileError):
        ingest_incremental("events", str(landing), "parquet", {}, config)

    assert not TableStore(config).table_exists("events")


def test_lost_commit_race_raises_conflict(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A commit that lands after discovery surfaces as a conflict."""
    config = _config(tmp_path)
    landing = tmp_path / "landing"
    rival = tmp_path / "rival"
    _write(landing, "a.csv", "id|name\n1|ada\n")
    _write(rival, "r.csv", "id|name\n9|rival\n")
    _install_racing_discovery(monkeypatch, rival, config)

    with pytest.raises(IngestionConflictError):
        ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)

    assert [row["id"] for row in TableStore(config).read_rows("people")] == [9]


def test_lost_commit_race_is_retried(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """With retries configured the losing call re-plans and commits."""
    config = _config(tmp_path, commit_retries=1)
    landing = tmp_path / "landing"
    rival = tmp_path / "rival"
    _write(landing, "a.csv", "id|name\n1|ada\n")
    _write(rival, "r.csv", "id|name\n9|rival\n")
    _install_racing_discovery(monkeypatch, rival, config)

    result = ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)

    assert (_counts(result), result.version) == ((1, 1, 0), 1)
    assert sorted(row["id"] for row in TableStore(config).read_rows("people")) == [1, 9]


def test_concurrent_ingests_do_not_duplicate_files(tmp_path: Path) -> None:
    """Parallel calls over one location ingest each file exactly once."""
    landing = tmp_path / "landing"
    for index in range(5):
        _write(landing, f"part-{index}.csv", f"id|name\n{index}|row{index}\n")
    config = _config(tmp_path, commit_retries=3)

    with ThreadPoolExecutor(max_workers=4) as executor:
        futures = [
            executor.submit(
                ingest_incremental, "people", str(landing), "csv", _PIPE_OPTIONS, config
            )
            for _ in range(4)
        ]
        results = [future.result() for future in futures]

    assert sum(result.files_processed for result in results) == 5
    assert sorted(row["id"] for row in TableStore(config).read_rows("people")) == [0, 1, 2, 3, 4]


def test_string_column_accepts_boolean_values(tmp_path: Path) -> None:
    """Text columns take later values of any inferred type."""
    landing = tmp_path / "landing"
    config = _config(tmp_path)
    _write(landing, "a.csv", "id|flag\n1|yes\n")
    ingest_incremental("flags", str(landing), "csv", _PIPE_OPTIONS, config)
    _write(landing, "b.csv", "id|flag\n2|true\n")

    ingest_incremental("flags", str(landing), "csv", _PIPE_OPTIONS, config)

    store = TableStore(config)
    assert store.load_version("flags").schema.get_field("flag").field_type == "string"
    assert [row["flag"] for row in store.read_rows("flags")] == ["yes", "true"]


def test_failed_data_write_leaves_no_version_or_ledger_entry(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A storage failure during commit leaves table and ledger untouched."""
    landing = tmp_path / "landing"
    config = _config(tmp_path)
    _write(landing, "a.csv", "id|name\n1|ada\n")

    def failing_write(*args, **kwargs):
        raise StorageWriteFailureError("Failed to write data file: disk full.")

    monkeypatch.setattr("store.table_store.write_data_file", failing_write)

    with pytest.raises(StorageWriteFailureError):
        ingest_incremental("people", str(landing), "csv", _PIPE_OPTIONS, config)

    store = TableStore(config)
    assert not store.table_exists("people")
    assert store.ledger.ingested_identities("people") == frozenset()


def _install_racing_discovery(
    monkeypatch: pytest.MonkeyPatch,
    rival: Path,
    config: LakeloadConfig,
) -> None:
    """Commit a rival batch right after the first discovery returns."""
    original = pipeline.discover_source_files
    raced: list[bool] = []

    def racing_discovery(*args, **kwargs):
        files = original(*args, **kwargs)
        if not raced:
            raced.append(True)
            ingest_incremental("people", str(rival), "csv", _PIPE_OPTIONS, config)
        return files

    monkeypatch.setattr(pipeline, "discover_source_files", racing_discovery)
