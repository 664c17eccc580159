"""Unit tests for the ingestion ledger."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest

from core.config import LakeloadConfig
from core.errors import IngestionConflictError
from core.types import Record, SchemaField, SourceFile, TableSchema
from store.table_store import TableStore

_SCHEMA = TableSchema(fields=(SchemaField("id", "integer"),))


def _store(tmp_path: Path) -> TableStore:
    return TableStore(replace(LakeloadConfig.from_env(), data_root=tmp_path))


def _file(name: str) -> SourceFile:
    return SourceFile(path=f"/landing/{name}", size=3, modified_at=10)


def _record(source_file: SourceFile) -> Record:
    return Record(values={"id": "1"}, source_file=source_file.path, locator="line:1")


def test_register_if_absent_accepts_new_files(tmp_path: Path) -> None:
    """Files never seen by the table are accepted."""
    store = _store(tmp_path)
    batch = store.prepare_batch("events", [_file("a.csv"), _file("b.csv")], None)

    registration = store.ledger.register_if_absent(
        "events", batch, datetime.now(timezone.utc)
    )

    assert (len(registration.accepted), len(registration.already_present)) == (2, 0)


def test_register_if_absent_reports_already_present(tmp_path: Path) -> None:
    """Files committed earlier are reported as already present."""
    store = _store(tmp_path)
    first = store.prepare_batch("events", [_file("a.csv")], None)
    store.commit(first, [_record(_file("a.csv"))], _SCHEMA, "append")
    second = store.prepare_batch(
        "events", [_file("a.csv"), _file("b.csv")], store.latest_version("events")
    )

    registration = store.ledger.register_if_absent(
        "events", second, datetime.now(timezone.utc)
    )

    assert [source_file.path for source_file in registration.already_present] == [
        "/landing/a.csv"
    ]


def test_register_if_absent_rejects_stale_batch(tmp_path: Path) -> None:
    """Batches prepared against an older version must not register."""
    store = _store(tmp_path)
    stale = store.prepare_batch("events", [_file("b.csv")], None)
    winner = store.prepare_batch("events", [_file("a.csv")], None)
    store.commit(winner, [_record(_file("a.csv"))], _SCHEMA, "append")

    with pytest.raises(IngestionConflictError):
        store.ledger.register_if_absent("events", stale, datetime.now(timezone.utc))


def test_ledger_entries_are_scoped_per_table(tmp_path: Path) -> None:
    """A file ingested into one table is still new for another table."""
    store = _store(tmp_path)
    batch = store.prepare_batch("events", [_file("a.csv")], None)
    store.commit(batch, [_record(_file("a.csv"))], _SCHEMA, "append")

    assert (
        store.ledger.ingested_identities("events"),
        store.ledger.ingested_identities("other"),
    ) == (frozenset({_file("a.csv").identity}), frozenset())
