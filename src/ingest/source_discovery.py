"""Source file discovery.

This module lists files under a local path or S3 prefix in canonical
order and removes files the ingestion ledger already recorded for the
target table.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Any

from core.config import LakeloadConfig
from core.errors import SourceUnavailableError
from core.logging_config import get_logger
from core.s3_uri import S3Location, build_s3_uri, is_s3_uri, parse_s3_uri
from core.types import ReadOptions, SourceFile
from ingest.deadline import Deadline, timeout_error
from ingest.source_reader import create_s3_client
from store.ingest_ledger import IngestLedger

_LOGGER = get_logger(__name__)
_HIDDEN_PREFIXES = (".", "_")


def discover_source_files(
    source_uri: str,
    table_name: str,
    ledger: IngestLedger,
    options: ReadOptions,
    config: LakeloadConfig,
    deadline: Deadline | None = None,
    s3_client: Any | None = None,
) -> list[SourceFile]:
    """List source files not yet ingested into a table.

    Args:
        source_uri: Local file, directory, or ``s3://bucket/prefix``.
        table_name: Target table whose ledger filters the listing.
        ledger: Ingestion ledger for the data root.
        options: Read options carrying the optional file name filter.
        config: Runtime configuration.
        deadline: Optional caller deadline for the listing.
        s3_client: Optional pre-built boto3 S3 client.

    Returns:
        New files sorted by canonical path; empty when nothing is new.

    Raises:
        SourceUnavailableError: If the location cannot be listed.
        IngestTimeoutError: If listing exceeds the deadline.
    """
    listed_files = list_source_files(source_uri, options, config, deadline, s3_client)
    ingested = ledger.ingested_identities(table_name)
    new_files = [source_file for source_file in listed_files if source_file.identity not in ingested]
    _LOGGER.info(
        "files_discovered",
        table_name=table_name,
        source_uri=source_uri,
        listed_count=len(listed_files),
        new_count=len(new_files),
    )
    return new_files


def list_source_files(
    source_uri: str,
    options: ReadOptions,
    config: LakeloadConfig,
    deadline: Deadline | None = None,
    s3_client: Any | None = None,
) -> list[SourceFile]:
    """List every readable file at a source location.

    Args:
        source_uri: Local file, directory, or ``s3://bucket/prefix``.
        options: Read options carrying the optional file name filter.
        config: Runtime configuration.
        deadline: Optional caller deadline for the listing.
        s3_client: Optional pre-built boto3 S3 client.

    Returns:
        Files sorted by canonical path.

    Raises:
        SourceUnavailableError: If the location cannot be listed.
        IngestTimeoutError: If listing exceeds the deadline.
    """
    deadline = deadline or Deadline(None)
    deadline.check("discovery")
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lakeload-discovery")
    try:
        future = executor.submit(_list_files, source_uri, config, s3_client)
        try:
            listed_files = future.result(timeout=deadline.remaining())
        except FutureTimeoutError as error:
            future.cancel()
            raise timeout_error("discovery", deadline.timeout) from error
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    if options.path_glob_filter:
        listed_files = [
            source_file
            for source_file in listed_files
            if fnmatch(PurePosixPath(source_file.path).name, options.path_glob_filter)
        ]
    return sorted(listed_files, key=lambda source_file: source_file.path)


def _list_files(source_uri: str, config: LakeloadConfig, s3_client: Any | None) -> list[SourceFile]:
    if is_s3_uri(source_uri):
        location = parse_s3_uri(source_uri)
        return _list_s3_files(s3_client or create_s3_client(config), location)
    return _list_local_files(Path(source_uri).expanduser())


def _list_local_files(source_path: Path) -> list[SourceFile]:
    """List files under a local path.

    Args:
        source_path: Input file or directory.

    Returns:
        Observed files.

    Raises:
        SourceUnavailableError: If path is missing or unreadable.
    """
    if not source_path.exists():
        raise SourceUnavailableError(
            f"Failed to list source at {source_path}: path does not exist. "
            "Provide an existing file or directory."
        )
    try:
        root = source_path.resolve()
        if root.is_file():
            return [_observe_local_file(root)]
        return [
            _observe_local_file(file_path)
            for file_path in root.rglob("*")
            if file_path.is_file() and not _is_hidden(file_path.relative_to(root).parts)
        ]
    except OSError as error:
        raise SourceUnavailableError(
            f"Failed to list source at {source_path}: {error}. "
            "Check directory permissions and retry."
        ) from error


def _observe_local_file(file_path: Path) -> SourceFile:
    stat_result = file_path.stat()
    return SourceFile(
        path=file_path.as_posix(),
        size=stat_result.st_size,
        modified_at=stat_result.st_mtime_ns,
    )


def _list_s3_files(s3_client: Any, location: S3Location) -> list[SourceFile]:
    """List objects under an S3 prefix.

    Args:
        s3_client: Boto3 S3 client.
        location: Target bucket/prefix.

    Returns:
        Observed objects, skipping hidden names and directory markers.

    Raises:
        SourceUnavailableError: If the listing call fails.
    """
    files: list[SourceFile] = []
    try:
        paginator = s3_client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=location.bucket, Prefix=location.prefix):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                relative_parts = PurePosixPath(key[len(location.prefix) :].lstrip("/")).parts
                if key.endswith("/") or _is_hidden(relative_parts):
                    continue
                files.append(
                    SourceFile(
                        path=build_s3_uri(location.bucket, key),
                        size=int(obj["Size"]),
                        modified_at=int(obj["LastModified"].timestamp() * 1_000_000_000),
                    )
                )
    except Exception as error:
        raise SourceUnavailableError(
            f"Failed to list s3://{location.bucket}/{location.prefix}: {error}. "
            "Check AWS credentials, bucket name, and network access."
        ) from error
    return files


def _is_hidden(relative_parts: tuple[str, ...]) -> bool:
    """Return whether any path component is a hidden or bookkeeping name."""
    return any(part.startswith(_HIDDEN_PREFIXES) for part in relative_parts)
