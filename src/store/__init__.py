"""Storage and versioning layer.

This module persists immutable table versions, their data files and the
ingestion ledger. It powers table reads and version listing for the SDK.
"""
