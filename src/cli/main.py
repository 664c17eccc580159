"""Lakeload CLI entry points.
This module exposes table creation, incremental load and inspection commands.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
import sys
from typing import Any, Sequence

from core.config import LakeloadConfig
from core.constants import SUPPORTED_FILE_FORMATS
from core.errors import LakeloadError
from core.run_spec import load_run_spec
from core.run_spec_execution import (
    execute_run_spec,
    format_description,
    format_ingest_result,
    format_version_row,
)
from core.types import SourceQuery
from store.table_sdk import LakeloadClient


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="lakeload", description="Lakeload file ingestion CLI")
    parser.add_argument("--data-root", help="Override LAKELOAD_DATA_ROOT for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_create_command(subparsers)
    _add_ctas_command(subparsers)
    _add_copy_into_command(subparsers)
    _add_versions_command(subparsers)
    _add_describe_command(subparsers)
    _add_run_spec_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Lakeload CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    client = _build_client(args.data_root)
    try:
        if args.command == "create":
            return _run_create_command(client, args)
        if args.command == "ctas":
            return _run_ctas_command(client, args, parser)
        if args.command == "copy-into":
            return _run_copy_into_command(client, args, parser)
        if args.command == "versions":
            return _run_versions_command(client, args)
        if args.command == "describe":
            return _run_describe_command(client, args)
        if args.command == "run-spec":
            return _run_run_spec_command(client, args)
    except LakeloadError as error:
        print(f"error={type(error).__name__}: {error}", file=sys.stderr)
        return 1
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_client(data_root: str | None) -> LakeloadClient:
    """Build SDK client with optional data-root override.

    Args:
        data_root: Optional override path.

    Returns:
        Configured SDK client.
    """
    config = LakeloadConfig.from_env()
    if data_root:
        config = replace(config, data_root=Path(data_root).expanduser().resolve())
    return LakeloadClient(config)


def _run_create_command(client: LakeloadClient, args: argparse.Namespace) -> int:
    """Handle create command."""
    print(format_version_row(client.create_table(args.table)))
    return 0


def _run_ctas_command(
    client: LakeloadClient,
    args: argparse.Namespace,
    parser: argparse.ArgumentParser,
) -> int:
    """Handle ctas command.

    Args:
        client: SDK client.
        args: Parsed CLI args.
        parser: Parser used to report malformed ``--option`` values.

    Returns:
        Exit code.
    """
    query = SourceQuery(
        source_uri=args.source,
        file_format=args.format,
        options=_parse_option_pairs(args.option, parser),
    )
    table_version = client.create_table_as_select(
        args.table,
        query,
        replace_if_exists=args.replace,
        timeout=args.timeout,
    )
    print(format_version_row(table_version))
    return 0


def _run_copy_into_command(
    client: LakeloadClient,
    args: argparse.Namespace,
    parser: argparse.ArgumentParser,
) -> int:
    """Handle copy-into command.

    Args:
        client: SDK client.
        args: Parsed CLI args.
        parser: Parser used to report malformed ``--option`` values.

    Returns:
        Exit code.
    """
    result = client.ingest_incremental(
        args.table,
        args.source,
        args.format,
        _parse_option_pairs(args.option, parser),
        timeout=args.timeout,
    )
    for line in format_ingest_result(result):
        print(line)
    return 0


def _run_versions_command(client: LakeloadClient, args: argparse.Namespace) -> int:
    """Handle versions command."""
    for table_version in client.table(args.table).list_versions():
        print(format_version_row(table_version))
    return 0


def _run_describe_command(client: LakeloadClient, args: argparse.Namespace) -> int:
    """Handle describe command."""
    for line in format_description(client.table(args.table).describe(args.version)):
        print(line)
    return 0


def _run_run_spec_command(client: LakeloadClient, args: argparse.Namespace) -> int:
    """Handle run-spec command; ``--check`` lists the steps without running them."""
    spec = load_run_spec(args.spec_file)
    if args.check:
        for index, step in enumerate(spec.steps, 1):
            print(f"{index}\t{step.command}\t{step.table_name(spec.defaults)}")
        return 0
    for line in execute_run_spec(client, spec):
        print(line)
    return 0


def _parse_option_pairs(
    raw_pairs: Sequence[str] | None,
    parser: argparse.ArgumentParser,
) -> dict[str, object]:
    """Turn repeated ``key=value`` arguments into a read options mapping."""
    options: dict[str, object] = {}
    for raw_pair in raw_pairs or ():
        key, separator, value = raw_pair.partition("=")
        if not separator or not key.strip():
            parser.error(f"Invalid --option '{raw_pair}'. Use key=value, e.g. separator='|'.")
        options[key.strip()] = value
    return options


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("source", help="Source file, directory, or s3://bucket/prefix")
    parser.add_argument("--table", required=True, help="Target table name")
    parser.add_argument(
        "--format",
        required=True,
        choices=SUPPORTED_FILE_FORMATS,
        help="Source file format",
    )
    parser.add_argument(
        "--option",
        action="append",
        metavar="KEY=VALUE",
        help="Read option such as separator=| or hasHeader=true; repeatable",
    )
    parser.add_argument("--timeout", type=float, help="Discovery and parse deadline in seconds")


def _add_create_command(subparsers: Any) -> None:
    """Register create subcommand."""
    parser = subparsers.add_parser("create", help="Create an empty table")
    parser.add_argument("--table", required=True, help="Table name")


def _add_ctas_command(subparsers: Any) -> None:
    """Register ctas subcommand."""
    parser = subparsers.add_parser(
        "ctas",
        help="Create or replace a table from every file at a source",
    )
    _add_source_arguments(parser)
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Replace the table if it already exists",
    )


def _add_copy_into_command(subparsers: Any) -> None:
    """Register copy-into subcommand."""
    parser = subparsers.add_parser(
        "copy-into",
        help="Load source files not yet ingested into a table",
    )
    _add_source_arguments(parser)


def _add_versions_command(subparsers: Any) -> None:
    """Register versions subcommand."""
    parser = subparsers.add_parser("versions", help="List table versions")
    parser.add_argument("--table", required=True, help="Table name")


def _add_describe_command(subparsers: Any) -> None:
    """Register describe subcommand."""
    parser = subparsers.add_parser("describe", help="Show table schema and version metadata")
    parser.add_argument("--table", required=True, help="Table name")
    parser.add_argument("--version", type=int, help="Optional specific version number")


def _add_run_spec_command(subparsers: Any) -> None:
    """Register run-spec subcommand."""
    parser = subparsers.add_parser("run-spec", help="Run the table commands listed in a YAML file")
    parser.add_argument("spec_file", help="Path to YAML run-spec file")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the file and list its steps without running them",
    )
