"""Unit tests for schema inference and reconciliation."""

from __future__ import annotations

import pytest

from core.errors import SchemaConflictError
from core.types import ParsedFile, SchemaField, SourceFile, TableSchema
from ingest.schema_reconciler import (
    infer_schema,
    promote_types,
    reconcile_schema,
    unify_schemas,
    untyped_columns,
)


def _schema(*fields: tuple[str, str]) -> TableSchema:
    return TableSchema(fields=tuple(SchemaField(name, field_type) for name, field_type in fields))


def _parsed(name: str, schema: TableSchema, column_order: tuple[str, ...]) -> ParsedFile:
    source_file = SourceFile(path=f"/data/{name}", size=1, modified_at=1)
    return ParsedFile(source_file=source_file, records=(), schema=schema, column_order=column_order)


def test_promote_types_follows_lattice() -> None:
    """Numeric types widen towards double, everything else to string."""
    assert (
        promote_types("integer", "long"),
        promote_types("long", "double"),
        promote_types("boolean", "integer"),
    ) == ("long", "double", "string")


def test_unify_schemas_is_commutative_up_to_order() -> None:
    """Unify should produce the same fields whichever side comes first."""
    left = _schema(("id", "integer"), ("name", "string"))
    right = _schema(("id", "double"), ("active", "boolean"))

    forward = {field.name: field for field in unify_schemas(left, right).fields}
    backward = {field.name: field for field in unify_schemas(right, left).fields}

    assert forward == backward


def test_infer_schema_types_all_null_columns_as_string() -> None:
    """Columns that never held a value default to string."""
    parsed = _parsed("a.csv", _schema(("id", "integer")), ("id", "note"))

    schema = infer_schema([parsed])

    assert schema.get_field("note") == SchemaField("note", "string", True)


def test_untyped_columns_lists_only_null_columns() -> None:
    """Untyped columns are those seen without any typed value."""
    parsed = _parsed("a.csv", _schema(("id", "integer")), ("id", "note"))

    assert untyped_columns([parsed]) == frozenset({"note"})


def test_reconcile_schema_promotes_existing_type() -> None:
    """Compatible types widen the table column."""
    schema = reconcile_schema(_schema(("id", "double")), _schema(("id", "integer")), False)

    assert schema.get_field("id").field_type == "double"


def test_reconcile_schema_rejects_incompatible_types() -> None:
    """Boolean data cannot land in an integer column."""
    with pytest.raises(SchemaConflictError):
        reconcile_schema(_schema(("id", "boolean")), _schema(("id", "integer")), True)


def test_reconcile_schema_rejects_new_columns_without_merge() -> None:
    """New columns need mergeSchema."""
    inferred = _schema(("id", "integer"), ("extra", "string"))

    with pytest.raises(SchemaConflictError):
        reconcile_schema(inferred, _schema(("id", "integer")), False)


def test_reconcile_schema_appends_nullable_columns_with_merge() -> None:
    """Merged columns are appended as nullable fields."""
    existing = TableSchema(fields=(SchemaField("id", "integer", nullable=False),))
    inferred = TableSchema(
        fields=(SchemaField("id", "integer", False), SchemaField("extra", "string", False))
    )

    schema = reconcile_schema(inferred, existing, True)

    assert schema.fields[-1] == SchemaField("extra", "string", True)


def test_reconcile_schema_keeps_existing_type_for_untyped_column() -> None:
    """All-null batch columns must not widen the table column to string."""
    schema = reconcile_schema(
        _schema(("id", "string")),
        _schema(("id", "long")),
        False,
        untyped=frozenset({"id"}),
    )

    assert schema.get_field("id").field_type == "long"


def test_reconcile_schema_uses_inferred_schema_for_empty_table() -> None:
    """An empty existing schema behaves like a new table."""
    inferred = _schema(("id", "integer"))

    assert reconcile_schema(inferred, TableSchema(), False) == inferred


def test_reconcile_schema_keeps_string_column_for_boolean_batch() -> None:
    """A string column accepts values of any batch type."""
    schema = reconcile_schema(_schema(("flag", "boolean")), _schema(("flag", "string")), False)

    assert schema.get_field("flag").field_type == "string"
