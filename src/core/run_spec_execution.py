"""Shared run-spec execution engine for CLI and SDK workflows.

This module maps validated run-spec steps to client operations so different
entry points can execute one declarative pipeline path without drift.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from core.errors import LakeloadRunSpecError
from core.run_spec import RunSpec, RunSpecDefaults, RunSpecStep, load_run_spec
from core.run_spec_fields import (
    optional_bool,
    optional_float,
    optional_int,
    optional_mapping,
    required_string,
)
from core.types import IngestResult, SourceQuery, TableVersion


class RunSpecClient(Protocol):
    """Client API contract required by run-spec execution."""

    def with_data_root(self, data_root: str) -> Any: ...

    def create_table(self, table_name: str) -> TableVersion: ...

    def create_table_as_select(
        self,
        table_name: str,
        query: SourceQuery,
        replace_if_exists: bool = False,
        timeout: float | None = None,
    ) -> TableVersion: ...

    def ingest_incremental(
        self,
        table_name: str,
        source_uri: str,
        file_format: str,
        options: Mapping[str, object] | None = None,
        timeout: float | None = None,
    ) -> IngestResult: ...

    def table(self, table_name: str) -> Any: ...


@dataclass(frozen=True)
class RunSpecExecutionContext:
    """In-memory context used to execute run-spec steps."""

    client: RunSpecClient
    defaults: RunSpecDefaults


def execute_run_spec_file(client: RunSpecClient, spec_file: str) -> tuple[str, ...]:
    """Load and execute a run-spec file, returning printable output lines."""
    spec = load_run_spec(spec_file)
    return execute_run_spec(client, spec)


def execute_run_spec(client: RunSpecClient, spec: RunSpec) -> tuple[str, ...]:
    """Execute a parsed run-spec object and return output lines.

    Steps run in order; the first failing step raises and later steps
    do not run.
    """
    execution_client = (
        client.with_data_root(spec.defaults.data_root) if spec.defaults.data_root else client
    )
    context = RunSpecExecutionContext(client=execution_client, defaults=spec.defaults)
    output_lines: list[str] = []
    for step in spec.steps:
        output_lines.extend(_execute_step(context, step))
    return tuple(output_lines)


def format_version_row(table_version: TableVersion) -> str:
    """Render one table version as a tab-separated row."""
    parent = "-" if table_version.parent_version is None else str(table_version.parent_version)
    return (
        f"{table_version.version}\t"
        f"{table_version.mode}\t"
        f"{table_version.row_count}\t"
        f"{table_version.committed_at.isoformat()}\t"
        f"{parent}"
    )


def format_ingest_result(result: IngestResult) -> tuple[str, ...]:
    """Render ingest counts as ``key=value`` lines."""
    return (
        f"files_processed={result.files_processed}",
        f"rows_inserted={result.rows_inserted}",
        f"rows_rescued={result.rows_rescued}",
        f"version={'-' if result.version is None else result.version}",
    )


def format_description(description: Mapping[str, Any]) -> tuple[str, ...]:
    """Render a table description as column rows followed by metadata."""
    column_rows = tuple(
        f"{column['name']}\t{column['type']}\t{'' if column['nullable'] else 'NOT NULL'}".rstrip()
        for column in description["columns"]
    )
    metadata_rows = tuple(
        f"{key}={description[key]}" for key in sorted(description) if key != "columns"
    )
    return column_rows + metadata_rows


def _execute_step(context: RunSpecExecutionContext, step: RunSpecStep) -> tuple[str, ...]:
    if step.command == "create":
        return _execute_create_step(context, step)
    if step.command == "ctas":
        return _execute_ctas_step(context, step)
    if step.command == "copy-into":
        return _execute_copy_into_step(context, step)
    if step.command == "versions":
        return _execute_versions_step(context, step)
    if step.command == "describe":
        return _execute_describe_step(context, step)
    raise LakeloadRunSpecError(f"Unsupported run-spec command '{step.command}'.")


def _execute_create_step(context: RunSpecExecutionContext, step: RunSpecStep) -> tuple[str, ...]:
    table_version = context.client.create_table(_resolve_table_name(context, step))
    return (format_version_row(table_version),)


def _execute_ctas_step(context: RunSpecExecutionContext, step: RunSpecStep) -> tuple[str, ...]:
    query = SourceQuery(
        source_uri=required_string(step.args, "source"),
        file_format=required_string(step.args, "format"),
        options=optional_mapping(step.args, "options"),
    )
    table_version = context.client.create_table_as_select(
        _resolve_table_name(context, step),
        query,
        replace_if_exists=optional_bool(step.args, "replace", default_value=False),
        timeout=optional_float(step.args, "timeout"),
    )
    return (format_version_row(table_version),)


def _execute_copy_into_step(
    context: RunSpecExecutionContext,
    step: RunSpecStep,
) -> tuple[str, ...]:
    result = context.client.ingest_incremental(
        _resolve_table_name(context, step),
        required_string(step.args, "source"),
        required_string(step.args, "format"),
        optional_mapping(step.args, "options"),
        timeout=optional_float(step.args, "timeout"),
    )
    return format_ingest_result(result)


def _execute_versions_step(
    context: RunSpecExecutionContext,
    step: RunSpecStep,
) -> tuple[str, ...]:
    versions = context.client.table(_resolve_table_name(context, step)).list_versions()
    return tuple(format_version_row(table_version) for table_version in versions)


def _execute_describe_step(
    context: RunSpecExecutionContext,
    step: RunSpecStep,
) -> tuple[str, ...]:
    table = context.client.table(_resolve_table_name(context, step))
    return format_description(table.describe(optional_int(step.args, "version")))


def _resolve_table_name(context: RunSpecExecutionContext, step: RunSpecStep) -> str:
    table_name = step.table_name(context.defaults)
    if table_name is not None:
        return table_name
    raise LakeloadRunSpecError(
        f"Run-spec command '{step.command}' requires table. "
        "Set 'table' on the step or in top-level defaults."
    )
