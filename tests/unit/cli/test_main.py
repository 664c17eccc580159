"""Unit tests for CLI command handling."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from cli.main import main
from core.config import LakeloadConfig


def _data_root(tmp_path: Path) -> str:
    return str(replace(LakeloadConfig.from_env(), data_root=tmp_path / "lake").data_root)


def _landing(tmp_path: Path) -> Path:
    landing = tmp_path / "landing"
    landing.mkdir()
    (landing / "people.csv").write_text(
        "id|name|age\n1|ada|36\n2|grace\n3|linus|54\n", encoding="utf-8"
    )
    return landing


def _copy_into_args(data_root: str, landing: Path) -> list[str]:
    return [
        "--data-root",
        data_root,
        "copy-into",
        str(landing),
        "--table",
        "people",
        "--format",
        "csv",
        "--option",
        "separator=|",
        "--option",
        "hasHeader=true",
    ]


def test_cli_copy_into_prints_counts(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """CLI copy-into should print ingest counts."""
    args = _copy_into_args(_data_root(tmp_path), _landing(tmp_path))

    exit_code = main(args)
    output = capsys.readouterr().out.splitlines()

    assert exit_code == 0
    assert output[:3] == ["files_processed=1", "rows_inserted=2", "rows_rescued=1"]


def test_cli_versions_lists_versions(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """CLI versions should print one row per version."""
    data_root = _data_root(tmp_path)
    main(_copy_into_args(data_root, _landing(tmp_path)))
    capsys.readouterr()

    exit_code = main(["--data-root", data_root, "versions", "--table", "people"])
    output = capsys.readouterr().out.splitlines()

    assert exit_code == 0 and len(output) == 1 and output[0].startswith("0\tappend\t3\t")


def test_cli_describe_prints_columns(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """CLI describe should list columns before metadata."""
    data_root = _data_root(tmp_path)
    main(_copy_into_args(data_root, _landing(tmp_path)))
    capsys.readouterr()

    main(["--data-root", data_root, "describe", "--table", "people"])
    output = capsys.readouterr().out.splitlines()

    assert output[:3] == ["id\tinteger", "name\tstring", "age\tinteger"]


def test_cli_ctas_without_replace_fails_for_existing_table(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """CTAS onto an existing table should exit non-zero without replace."""
    data_root = _data_root(tmp_path)
    landing = _landing(tmp_path)
    main(["--data-root", data_root, "create", "--table", "people"])

    exit_code = main(
        ["--data-root", data_root, "ctas", str(landing), "--table", "people", "--format", "csv"]
    )

    assert exit_code == 1 and "TableAlreadyExistsError" in capsys.readouterr().err


def test_cli_rejects_malformed_option(tmp_path: Path) -> None:
    """Options must be given as key=value."""
    with pytest.raises(SystemExit):
        main(
            [
                "--data-root",
                _data_root(tmp_path),
                "copy-into",
                str(tmp_path),
                "--table",
                "people",
                "--format",
                "csv",
                "--option",
                "separator",
            ]
        )
