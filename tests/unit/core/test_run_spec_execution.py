"""Unit tests for run-spec step execution."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from core.config import LakeloadConfig
from core.errors import LakeloadRunSpecError
from core.run_spec_execution import execute_run_spec_file
from store.table_sdk import LakeloadClient


def _client(tmp_path: Path) -> LakeloadClient:
    return LakeloadClient(replace(LakeloadConfig.from_env(), data_root=tmp_path / "lake"))


def test_execute_run_spec_runs_copy_into_and_versions(tmp_path: Path) -> None:
    """A copy-into step should report counts and versions should list it."""
    landing = tmp_path / "landing"
    landing.mkdir()
    (landing / "a.csv").write_text("id|name\n1|ada\n2|grace\n", encoding="utf-8")
    spec_path = tmp_path / "spec.yaml"
    spec_path.write_text(
        f"""
version: 1
defaults:
  table: people
steps:
  - command: copy-into
    source: {landing.as_posix()}
    format: csv
    options:
      separator: "|"
      hasHeader: true
  - command: versions
""",
        encoding="utf-8",
    )

    output_lines = execute_run_spec_file(_client(tmp_path), str(spec_path))

    assert output_lines[:3] == ("files_processed=1", "rows_inserted=2", "rows_rescued=0")
    assert output_lines[4].startswith("0\tappend\t2\t")


def test_execute_run_spec_requires_table(tmp_path: Path) -> None:
    """Steps without a table and without a default should fail."""
    spec_path = tmp_path / "spec.yaml"
    spec_path.write_text("version: 1\nsteps:\n  - command: versions\n", encoding="utf-8")

    with pytest.raises(LakeloadRunSpecError):
        execute_run_spec_file(_client(tmp_path), str(spec_path))


def test_execute_run_spec_uses_data_root_default(tmp_path: Path) -> None:
    """defaults.data_root should redirect where tables are created."""
    override_root = tmp_path / "override"
    spec_path = tmp_path / "spec.yaml"
    spec_path.write_text(
        f"version: 1\ndefaults:\n  data_root: {override_root.as_posix()}\n"
        "steps:\n  - command: create\n    table: empty_table\n",
        encoding="utf-8",
    )

    execute_run_spec_file(_client(tmp_path), str(spec_path))

    assert (override_root / "tables" / "empty_table").exists()
