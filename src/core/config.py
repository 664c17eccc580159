"""Runtime configuration model for Lakeload.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import DEFAULT_COMMIT_RETRIES, DEFAULT_DATA_ROOT, DEFAULT_PARSE_WORKERS
from core.errors import LakeloadConfigError


@dataclass(frozen=True)
class LakeloadConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for table logs and data files.
        s3_region: Optional default AWS region for S3 sources.
        s3_profile: Optional AWS profile for boto3 session initialization.
        parse_workers: Number of threads used to parse files of one batch.
        commit_retries: Extra attempts after an ingestion commit conflict.
        discovery_timeout: Optional default deadline in seconds for
            discovery and parsing of one ingest call.
    """

    data_root: Path
    s3_region: str | None
    s3_profile: str | None
    parse_workers: int = DEFAULT_PARSE_WORKERS
    commit_retries: int = DEFAULT_COMMIT_RETRIES
    discovery_timeout: float | None = None

    @classmethod
    def from_env(cls) -> "LakeloadConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            LakeloadConfigError: If environment values are invalid.
        """
        data_root_value = os.getenv("LAKELOAD_DATA_ROOT", str(DEFAULT_DATA_ROOT))
        parse_workers = _parse_positive_int(
            "LAKELOAD_PARSE_WORKERS",
            os.getenv("LAKELOAD_PARSE_WORKERS", str(DEFAULT_PARSE_WORKERS)),
            minimum=1,
        )
        commit_retries = _parse_positive_int(
            "LAKELOAD_COMMIT_RETRIES",
            os.getenv("LAKELOAD_COMMIT_RETRIES", str(DEFAULT_COMMIT_RETRIES)),
            minimum=0,
        )
        return cls(
            data_root=Path(data_root_value).expanduser().resolve(),
            s3_region=os.getenv("LAKELOAD_S3_REGION"),
            s3_profile=os.getenv("LAKELOAD_S3_PROFILE"),
            parse_workers=parse_workers,
            commit_retries=commit_retries,
            discovery_timeout=_parse_timeout(os.getenv("LAKELOAD_DISCOVERY_TIMEOUT")),
        )


def _parse_positive_int(env_name: str, raw_value: str, minimum: int) -> int:
    """Parse an integer environment value with a lower bound.

    Args:
        env_name: Environment variable name for error context.
        raw_value: Raw string from environment.
        minimum: Smallest accepted value.

    Returns:
        Parsed integer.

    Raises:
        LakeloadConfigError: If value is not an integer or is too small.
    """
    try:
        value = int(raw_value)
    except ValueError as error:
        raise LakeloadConfigError(
            f"Invalid {env_name} value: expected integer, got '{raw_value}'. "
            f"Set {env_name} to a numeric value."
        ) from error
    if value < minimum:
        raise LakeloadConfigError(
            f"Invalid {env_name} value: expected >= {minimum}, got {value}."
        )
    return value


def _parse_timeout(raw_value: str | None) -> float | None:
    """Parse the optional discovery timeout in seconds."""
    if raw_value is None or not raw_value.strip():
        return None
    try:
        timeout = float(raw_value)
    except ValueError as error:
        raise LakeloadConfigError(
            f"Invalid LAKELOAD_DISCOVERY_TIMEOUT value: expected seconds, got '{raw_value}'."
        ) from error
    if timeout <= 0:
        raise LakeloadConfigError(
            "Invalid LAKELOAD_DISCOVERY_TIMEOUT value: timeout must be positive."
        )
    return timeout
