"""Lakeload exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class LakeloadError(Exception):
    """Base exception for all Lakeload failures."""


class LakeloadConfigError(LakeloadError):
    """Raised for invalid runtime configuration."""


class InvalidOptionCombinationError(LakeloadConfigError):
    """Raised for unknown read option keys or conflicting option values."""


class LakeloadDependencyError(LakeloadError):
    """Raised when an optional runtime dependency is missing."""


class LakeloadIngestError(LakeloadError):
    """Raised for source discovery and parsing failures."""


class SourceUnavailableError(LakeloadIngestError):
    """Raised when a source location cannot be listed or read."""


class MalformedRecordError(LakeloadIngestError):
    """Raised when FAILFAST parsing meets a non-conforming row."""

    def __init__(self, message: str, file_path: str, locator: str) -> None:
        super().__init__(message)
        self.file_path = file_path
        self.locator = locator


class CorruptFileError(LakeloadIngestError):
    """Raised when a file cannot be decoded at all."""

    def __init__(self, message: str, file_path: str) -> None:
        super().__init__(message)
        self.file_path = file_path


class IngestTimeoutError(LakeloadIngestError):
    """Raised when discovery or parsing exceeds the caller deadline."""


class SchemaConflictError(LakeloadError):
    """Raised for incompatible or disallowed schema changes."""


class LakeloadStoreError(LakeloadError):
    """Raised for table store and versioning failures."""


class StorageWriteFailureError(LakeloadStoreError):
    """Raised when a table version cannot be durably written."""


class TableAlreadyExistsError(LakeloadStoreError):
    """Raised when CTAS targets an existing table without replace."""


class TableNotFoundError(LakeloadStoreError):
    """Raised when a table has no committed versions."""


class IngestionConflictError(LakeloadStoreError):
    """Raised when a concurrent commit won the optimistic race.

    The failed call left no state behind; re-running discovery and the
    ingest is always safe.
    """

    retryable = True


class LakeloadRunSpecError(LakeloadError):
    """Raised for invalid or unsupported run-spec configuration."""
