"""Unit tests for source file discovery."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from core.config import LakeloadConfig
from core.errors import IngestTimeoutError, SourceUnavailableError
from core.types import ReadOptions
from ingest.deadline import Deadline
from ingest.source_discovery import discover_source_files, list_source_files
from store.ingest_ledger import IngestLedger


class _FakePaginator:
    def __init__(self, pages: list[dict[str, Any]]) -> None:
        self._pages = pages

    def paginate(self, Bucket: str, Prefix: str) -> list[dict[str, Any]]:
        return self._pages


class _FakeS3Client:
    def __init__(self, pages: list[dict[str, Any]]) -> None:
        self._pages = pages

    def get_paginator(self, name: str) -> _FakePaginator:
        return _FakePaginator(self._pages)


def _config(tmp_path: Path) -> LakeloadConfig:
    return replace(LakeloadConfig.from_env(), data_root=tmp_path / "lake")


def _landing(tmp_path: Path) -> Path:
    landing = tmp_path / "landing"
    (landing / "nested").mkdir(parents=True)
    (landing / "b.csv").write_text("2\n", encoding="utf-8")
    (landing / "a.csv").write_text("1\n", encoding="utf-8")
    (landing / "nested" / "c.csv").write_text("3\n", encoding="utf-8")
    (landing / "notes.txt").write_text("skip\n", encoding="utf-8")
    (landing / ".hidden.csv").write_text("skip\n", encoding="utf-8")
    (landing / "_SUCCESS").write_text("", encoding="utf-8")
    return landing


def test_list_source_files_sorts_and_skips_hidden(tmp_path: Path) -> None:
    """Listing is recursive, path ordered and ignores hidden files."""
    landing = _landing(tmp_path)

    files = list_source_files(str(landing), ReadOptions(), _config(tmp_path))

    assert [Path(source_file.path).name for source_file in files] == [
        "a.csv",
        "b.csv",
        "c.csv",
        "notes.txt",
    ]


def test_list_source_files_applies_glob_filter(tmp_path: Path) -> None:
    """pathGlobFilter restricts file names."""
    landing = _landing(tmp_path)

    files = list_source_files(
        str(landing), ReadOptions(path_glob_filter="*.csv"), _config(tmp_path)
    )

    assert len(files) == 3


def test_list_source_files_raises_for_missing_path(tmp_path: Path) -> None:
    """Missing locations are unavailable sources."""
    with pytest.raises(SourceUnavailableError):
        list_source_files(str(tmp_path / "missing"), ReadOptions(), _config(tmp_path))


def test_list_source_files_times_out_without_side_effects(tmp_path: Path) -> None:
    """An expired deadline fails discovery before listing."""
    landing = _landing(tmp_path)

    with pytest.raises(IngestTimeoutError):
        list_source_files(str(landing), ReadOptions(), _config(tmp_path), Deadline(0))


def test_discover_source_files_returns_all_for_new_table(tmp_path: Path) -> None:
    """Without ledger entries every listed file is new."""
    landing = _landing(tmp_path)
    config = _config(tmp_path)

    files = discover_source_files(
        str(landing), "events", IngestLedger(config.data_root), ReadOptions(), config
    )

    assert len(files) == 4


def test_list_source_files_reads_s3_listing(tmp_path: Path) -> None:
    """S3 listings become s3:// files, skipping markers and hidden keys."""
    modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
    client = _FakeS3Client(
        [
            {
                "Contents": [
                    {"Key": "landing/b.csv", "Size": 4, "LastModified": modified},
                    {"Key": "landing/", "Size": 0, "LastModified": modified},
                    {"Key": "landing/_SUCCESS", "Size": 0, "LastModified": modified},
                ]
            },
            {"Contents": [{"Key": "landing/a.csv", "Size": 2, "LastModified": modified}]},
        ]
    )

    files = list_source_files(
        "s3://bucket/landing/", ReadOptions(), _config(tmp_path), s3_client=client
    )

    assert [source_file.path for source_file in files] == [
        "s3://bucket/landing/a.csv",
        "s3://bucket/landing/b.csv",
    ]


def test_list_source_files_wraps_s3_errors(tmp_path: Path) -> None:
    """Failed S3 listings surface as unavailable sources."""

    class _BrokenClient:
        def get_paginator(self, name: str) -> Any:
            raise RuntimeError("access denied")

    with pytest.raises(SourceUnavailableError):
        list_source_files(
            "s3://bucket/landing/", ReadOptions(), _config(tmp_path), s3_client=_BrokenClient()
        )
