"""Public SDK surface for Lakeload.

This module provides a stable import path for library users.
It re-exports the primary client, typed models and error types.
"""

from __future__ import annotations

from core.config import LakeloadConfig
from core.errors import (
    CorruptFileError,
    IngestionConflictError,
    IngestTimeoutError,
    InvalidOptionCombinationError,
    LakeloadError,
    MalformedRecordError,
    SchemaConflictError,
    SourceUnavailableError,
    StorageWriteFailureError,
    TableAlreadyExistsError,
    TableNotFoundError,
)
from core.types import IngestResult, SchemaField, SourceQuery, TableSchema, TableVersion
from store.table_sdk import LakeloadClient, Table

__all__ = [
    "CorruptFileError",
    "IngestResult",
    "IngestTimeoutError",
    "IngestionConflictError",
    "InvalidOptionCombinationError",
    "LakeloadClient",
    "LakeloadConfig",
    "LakeloadError",
    "MalformedRecordError",
    "SchemaConflictError",
    "SchemaField",
    "SourceQuery",
    "SourceUnavailableError",
    "StorageWriteFailureError",
    "Table",
    "TableAlreadyExistsError",
    "TableNotFoundError",
    "TableSchema",
    "TableVersion",
]
