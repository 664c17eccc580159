"""File ingestion pipeline.

This module discovers source files, parses them into records and
reconciles their schema before the store layer commits a batch.
"""
