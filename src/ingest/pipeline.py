"""Ingest orchestration for incremental loads and CTAS.

This module coordinates discovery, parallel parsing, schema
reconciliation and the single table commit that makes a batch visible
together with its ledger entries.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from core.config import LakeloadConfig
from core.constants import COMMIT_MODE_APPEND, COMMIT_MODE_REPLACE
from core.errors import IngestionConflictError, LakeloadIngestError, TableAlreadyExistsError
from core.logging_config import get_logger
from core.s3_uri import is_s3_uri
from core.types import (
    IngestResult,
    ParsedFile,
    ReadOptions,
    Record,
    SourceFile,
    SourceQuery,
    TableVersion,
)
from ingest.deadline import Deadline, timeout_error
from ingest.format_parsers import FormatParser, parser_for_format
from ingest.read_options import parse_file_format, parse_read_options
from ingest.schema_reconciler import infer_schema, reconcile_schema, untyped_columns
from ingest.source_discovery import discover_source_files, list_source_files
from ingest.source_reader import create_s3_client, read_source_bytes
from store.table_store import TableStore

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class BatchRows:
    """Parsed batch content ready for commit."""

    parsed_files: tuple[ParsedFile, ...]
    records: tuple[Record, ...]
    rows_rescued: int


class IngestPipelineRunner:
    """Runner for one incremental ingest call against one table."""

    def __init__(
        self,
        table_name: str,
        source_uri: str,
        file_format: str,
        options: ReadOptions,
        config: LakeloadConfig,
        timeout: float | None = None,
    ) -> None:
        self._table_name = table_name
        self._source_uri = source_uri
        self._file_format = parse_file_format(file_format)
        self._options = options
        self._config = config
        self._timeout = timeout if timeout is not None else config.discovery_timeout
        self._store = TableStore(config)

    def run(self) -> IngestResult:
        """Ingest new files, retrying lost commit races as configured."""
        max_attempts = self._config.commit_retries + 1
        attempt = 1
        while True:
            try:
                return self._run_once()
            except IngestionConflictError as error:
                if attempt >= max_attempts:
                    raise
                _LOGGER.warning(
                    "commit_conflict_retry",
                    table_name=self._table_name,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(error),
                )
                attempt += 1

    def _run_once(self) -> IngestResult:
        deadline = Deadline(self._timeout)
        s3_client = _s3_client_for(self._source_uri, self._config)
        base_version = self._store.latest_version(self._table_name)
        new_files = discover_source_files(
            self._source_uri,
            self._table_name,
            self._store.ledger,
            self._options,
            self._config,
            deadline,
            s3_client,
        )
        if not new_files:
            _LOGGER.info(
                "ingest_noop",
                table_name=self._table_name,
                source_uri=self._source_uri,
            )
            return IngestResult(files_processed=0, rows_inserted=0, rows_rescued=0)
        batch = self._store.prepare_batch(self._table_name, new_files, base_version)
        batch_rows = parse_batch(
            new_files, self._file_format, self._options, self._config, deadline, s3_client
        )
        schema = reconcile_schema(
            infer_schema(batch_rows.parsed_files),
            base_version.schema if base_version else None,
            self._options.merge_schema,
            untyped_columns(batch_rows.parsed_files),
        )
        deadline.check("parsing")
        version = self._store.commit(batch, batch_rows.records, schema, COMMIT_MODE_APPEND)
        result = IngestResult(
            files_processed=len(new_files),
            rows_inserted=len(batch_rows.records) - batch_rows.rows_rescued,
            rows_rescued=batch_rows.rows_rescued,
            version=version.version,
        )
        _log_ingest_completion(self._table_name, self._source_uri, result)
        return result


def ingest_incremental(
    table_name: str,
    source_uri: str,
    file_format: str,
    options: Mapping[str, object],
    config: LakeloadConfig,
    timeout: float | None = None,
) -> IngestResult:
    """Idempotently load files not yet ingested into a table.

    Args:
        table_name: Target table, created on first load.
        source_uri: Local file, directory, or ``s3://bucket/prefix``.
        file_format: ``csv``, ``json`` or ``parquet``.
        options: Raw read options (``separator``, ``hasHeader``,
            ``failureMode``, ``mergeSchema`` and friends).
        config: Runtime configuration.
        timeout: Optional deadline in seconds for discovery and parsing.

    Returns:
        Files processed and rows inserted/rescued; all zero when no new
        files exist.

    Raises:
        InvalidOptionCombinationError: If options are invalid.
        SourceUnavailableError: If the source cannot be listed.
        MalformedRecordError: On a bad row in FAILFAST mode.
        CorruptFileError: If a parquet file cannot be decoded.
        SchemaConflictError: If the batch schema cannot be merged.
        IngestionConflictError: If a concurrent commit won every attempt.
        StorageWriteFailureError: If the commit cannot be written.
    """
    read_options = parse_read_options(file_format, options)
    runner = IngestPipelineRunner(
        table_name, source_uri, file_format, read_options, config, timeout
    )
    return runner.run()


def create_table_as_select(
    table_name: str,
    query: SourceQuery,
    replace_if_exists: bool,
    config: LakeloadConfig,
    timeout: float | None = None,
) -> TableVersion:
    """Create or replace a table from every file of a source query.

    Args:
        table_name: Target table.
        query: Source location, format and read options.
        replace_if_exists: Whether an existing table may be replaced.
        config: Runtime configuration.
        timeout: Optional deadline in seconds for discovery and parsing.

    Returns:
        The committed replace version.

    Raises:
        TableAlreadyExistsError: If the table exists and replace is off.
        LakeloadIngestError: If the source holds no files to infer from.
    """
    file_format = parse_file_format(query.file_format)
    read_options = parse_read_options(file_format, query.options)
    store = TableStore(config)
    base_version = store.latest_version(table_name)
    if base_version is not None and not replace_if_exists:
        raise TableAlreadyExistsError(
            f"Table '{table_name}' already exists. "
            "Use replace to overwrite it or choose a new table name."
        )
    deadline = Deadline(timeout if timeout is not None else config.discovery_timeout)
    s3_client = _s3_client_for(query.source_uri, config)
    source_files = list_source_files(query.source_uri, read_options, config, deadline, s3_client)
    if not source_files:
        raise LakeloadIngestError(
            f"No files found at {query.source_uri} to create table '{table_name}' from. "
            "CTAS infers the schema from data; point it at a non-empty location."
        )
    batch = store.prepare_batch(table_name, source_files, base_version)
    batch_rows = parse_batch(source_files, file_format, read_options, config, deadline, s3_client)
    schema = infer_schema(batch_rows.parsed_files)
    deadline.check("parsing")
    version = store.commit(batch, batch_rows.records, schema, COMMIT_MODE_REPLACE)
    _LOGGER.info(
        "table_created_as_select",
        table_name=table_name,
        source_uri=query.source_uri,
        file_format=file_format,
        version=version.version,
        replaced=base_version is not None,
        row_count=version.row_count,
        rows_rescued=batch_rows.rows_rescued,
    )
    return version


def parse_batch(
    files: Sequence[SourceFile],
    file_format: str,
    options: ReadOptions,
    config: LakeloadConfig,
    deadline: Deadline,
    s3_client: Any | None = None,
) -> BatchRows:
    """Parse every file of a batch in parallel.

    Files are parsed independently on a thread pool; results are
    gathered in file order, so the first failing file in that order
    aborts the whole batch.

    Args:
        files: Batch files in canonical order.
        file_format: Validated file format.
        options: Validated read options.
        config: Runtime configuration with the worker count.
        deadline: Caller deadline for parsing.
        s3_client: Optional shared boto3 S3 client.

    Returns:
        Parsed files, their records in file order and the rescued count.

    Raises:
        IngestTimeoutError: If parsing exceeds the deadline.
    """
    parser = parser_for_format(file_format)
    parsed_files: list[ParsedFile] = []
    executor = ThreadPoolExecutor(
        max_workers=max(1, min(config.parse_workers, len(files))),
        thread_name_prefix="lakeload-parse",
    )
    try:
        futures = [
            executor.submit(_parse_file, parser, source_file, options, config, s3_client)
            for source_file in files
        ]
        for future in futures:
            try:
                parsed_files.append(future.result(timeout=deadline.remaining()))
            except FutureTimeoutError as error:
                raise timeout_error("parsing", deadline.timeout) from error
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    records = tuple(record for parsed in parsed_files for record in parsed.records)
    rows_rescued = sum(1 for record in records if record.is_rescued)
    _LOGGER.info(
        "batch_parsed",
        file_count=len(parsed_files),
        row_count=len(records),
        rows_rescued=rows_rescued,
        file_format=file_format,
    )
    if rows_rescued:
        _LOGGER.warning(
            "rows_rescued",
            rows_rescued=rows_rescued,
            files=sorted({record.source_file for record in records if record.is_rescued}),
        )
    return BatchRows(parsed_files=tuple(parsed_files), records=records, rows_rescued=rows_rescued)


def _parse_file(
    parser: FormatParser,
    source_file: SourceFile,
    options: ReadOptions,
    config: LakeloadConfig,
    s3_client: Any | None,
) -> ParsedFile:
    """Read and parse one file; runs on a parse worker thread."""
    return parser.parse(source_file, read_source_bytes(source_file, config, s3_client), options)


def _s3_client_for(source_uri: str, config: LakeloadConfig) -> Any | None:
    """Build one S3 client shared by discovery and reads of an S3 source."""
    return create_s3_client(config) if is_s3_uri(source_uri) else None


def _log_ingest_completion(table_name: str, source_uri: str, result: IngestResult) -> None:
    """Log ingest completion with contextual metadata."""
    _LOGGER.info(
        "ingest_completed",
        table_name=table_name,
        source_uri=source_uri,
        files_processed=result.files_processed,
        rows_inserted=result.rows_inserted,
        rows_rescued=result.rows_rescued,
        version=result.version,
    )
