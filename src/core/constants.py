"""Core constants used across Lakeload modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".lakeload")
TABLES_DIR_NAME = "tables"
COMMITS_DIR_NAME = "_commits"
DATA_DIR_NAME = "data"
COMMIT_FILE_SUFFIX = ".json"
COMMIT_VERSION_WIDTH = 20
DATA_FILE_SUFFIX = ".parquet"
RESCUED_DATA_COLUMN = "_rescued_data"
SOURCE_FILE_COLUMN = "_source_file"
INGESTED_AT_COLUMN = "_ingested_at"
FIRST_TABLE_VERSION = 0
DEFAULT_SEPARATOR = ","
DEFAULT_PARSE_WORKERS = 4
DEFAULT_COMMIT_RETRIES = 0
HEADERLESS_COLUMN_PREFIX = "_c"
SUPPORTED_FILE_FORMATS = ("csv", "json", "parquet")
FAILURE_MODE_PERMISSIVE = "PERMISSIVE"
FAILURE_MODE_FAILFAST = "FAILFAST"
SUPPORTED_FAILURE_MODES = (FAILURE_MODE_PERMISSIVE, FAILURE_MODE_FAILFAST)
COMMIT_MODE_APPEND = "append"
COMMIT_MODE_REPLACE = "replace"
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
