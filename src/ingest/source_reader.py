"""Source file byte access.

This module reads raw file payloads from local paths or S3 objects
and creates the boto3 client shared by discovery and reads.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from core.config import LakeloadConfig
from core.errors import LakeloadDependencyError, SourceUnavailableError
from core.s3_uri import is_s3_uri, parse_s3_uri
from core.types import SourceFile


def read_source_bytes(
    source_file: SourceFile,
    config: LakeloadConfig,
    s3_client: Any | None = None,
) -> bytes:
    """Read the full payload of a discovered source file.

    Args:
        source_file: File observed by discovery.
        config: Runtime configuration for S3 session defaults.
        s3_client: Optional pre-built boto3 S3 client.

    Returns:
        Raw file bytes.

    Raises:
        SourceUnavailableError: If the file cannot be read.
    """
    if is_s3_uri(source_file.path):
        return _read_s3_bytes(source_file.path, s3_client or create_s3_client(config))
    try:
        return Path(source_file.path).read_bytes()
    except OSError as error:
        raise SourceUnavailableError(
            f"Failed to read source file {source_file.path}: {error}. "
            "Check the file still exists and is readable, then retry."
        ) from error


def create_s3_client(config: LakeloadConfig) -> Any:
    """Create a boto3 S3 client.

    Args:
        config: Runtime config containing optional profile/region.

    Returns:
        Boto3 S3 client.

    Raises:
        LakeloadDependencyError: If boto3 is missing.
    """
    try:
        import boto3
    except ImportError as error:
        raise LakeloadDependencyError(
            "S3 support requires boto3, but it is not installed. "
            "Install boto3 to ingest from s3:// sources."
        ) from error
    session_kwargs: dict[str, str] = {}
    if config.s3_profile:
        session_kwargs["profile_name"] = config.s3_profile
    if config.s3_region:
        session_kwargs["region_name"] = config.s3_region
    session = boto3.session.Session(**session_kwargs)
    return session.client("s3")


def _read_s3_bytes(uri: str, s3_client: Any) -> bytes:
    location = parse_s3_uri(uri)
    try:
        return s3_client.get_object(Bucket=location.bucket, Key=location.prefix)["Body"].read()
    except Exception as error:
        raise SourceUnavailableError(
            f"Failed to read source object {uri}: {error}. "
            "Check AWS credentials and object permissions, then retry."
        ) from error
