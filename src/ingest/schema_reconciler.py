"""Schema inference and reconciliation.

This module unifies per-file schemas of one batch with a fixed type
promotion lattice and merges the result against an existing table
schema. Conflicts surface as ``SchemaConflictError``.
"""

from __future__ import annotations

from functools import reduce
from typing import Sequence

from core.errors import SchemaConflictError
from core.types import FieldType, ParsedFile, SchemaField, TableSchema

# integer -> long -> double -> string
_PROMOTION_LATTICE: tuple[FieldType, ...] = ("integer", "long", "double", "string")


def promote_types(left: FieldType, right: FieldType) -> FieldType:
    """Return the narrowest type that holds both inputs.

    Pairs without a common promotion fall back to ``string``.
    """
    if left == right:
        return left
    if left in _PROMOTION_LATTICE and right in _PROMOTION_LATTICE:
        return max(left, right, key=_PROMOTION_LATTICE.index)
    return "string"


def is_promotable(existing: FieldType, incoming: FieldType) -> bool:
    """Return whether incoming values fit an existing column after promotion.

    A ``string`` column sits at the top of the lattice and holds any type.
    """
    if existing == incoming or existing == "string":
        return True
    return existing in _PROMOTION_LATTICE and incoming in _PROMOTION_LATTICE


def unify_schemas(left: TableSchema, right: TableSchema) -> TableSchema:
    """Merge two batch schemas.

    Shared fields take the promoted type; a field missing on either
    side becomes nullable. The operation is commutative and associative
    up to field order, which follows first appearance.
    """
    right_by_name = {schema_field.name: schema_field for schema_field in right.fields}
    merged: list[SchemaField] = []
    for left_field in left.fields:
        right_field = right_by_name.get(left_field.name)
        if right_field is None:
            merged.append(SchemaField(left_field.name, left_field.field_type, True))
            continue
        merged.append(
            SchemaField(
                name=left_field.name,
                field_type=promote_types(left_field.field_type, right_field.field_type),
                nullable=left_field.nullable or right_field.nullable,
            )
        )
    left_names = set(left.field_names)
    for right_field in right.fields:
        if right_field.name not in left_names:
            merged.append(SchemaField(right_field.name, right_field.field_type, True))
    return TableSchema(fields=tuple(merged))


def infer_schema(parsed_files: Sequence[ParsedFile]) -> TableSchema:
    """Infer one schema for every file of a batch.

    Args:
        parsed_files: Parser outputs in canonical path order.

    Returns:
        Unified schema. Columns that only ever held nulls are typed
        ``string`` and placed by first appearance.
    """
    if not parsed_files:
        return TableSchema()
    unified = reduce(unify_schemas, (parsed.schema for parsed in parsed_files))
    unified_by_name = {schema_field.name: schema_field for schema_field in unified.fields}
    ordered: list[SchemaField] = []
    for column_name in _column_order(parsed_files):
        ordered.append(unified_by_name.get(column_name) or SchemaField(column_name, "string", True))
    return TableSchema(fields=tuple(ordered))


def untyped_columns(parsed_files: Sequence[ParsedFile]) -> frozenset[str]:
    """Return columns that held only nulls across the batch."""
    typed = {name for parsed in parsed_files for name in parsed.schema.field_names}
    return frozenset(name for name in _column_order(parsed_files) if name not in typed)


def reconcile_schema(
    inferred: TableSchema,
    existing: TableSchema | None,
    merge_allowed: bool,
    untyped: frozenset[str] = frozenset(),
) -> TableSchema:
    """Merge a batch schema into an existing table schema.

    Args:
        inferred: Schema inferred from the batch.
        existing: Current table schema, ``None`` or empty for a new table.
        merge_allowed: Whether new columns may be appended.
        untyped: Batch columns without any typed value; they adopt the
            existing type instead of widening it.

    Returns:
        Schema for the next table version.

    Raises:
        SchemaConflictError: For incompatible types, or new columns when
            merging is not allowed.
    """
    if existing is None or existing.is_empty():
        return inferred
    inferred_by_name = {schema_field.name: schema_field for schema_field in inferred.fields}
    reconciled: list[SchemaField] = []
    for existing_field in existing.fields:
        batch_field = inferred_by_name.get(existing_field.name)
        if batch_field is None:
            reconciled.append(SchemaField(existing_field.name, existing_field.field_type, True))
            continue
        if existing_field.name in untyped:
            reconciled.append(SchemaField(existing_field.name, existing_field.field_type, True))
            continue
        if not is_promotable(existing_field.field_type, batch_field.field_type):
            raise SchemaConflictError(
                f"Column '{existing_field.name}' has type {existing_field.field_type} "
                f"in the table but {batch_field.field_type} in the new files. "
                "Cast the source column or load it into a new table."
            )
        reconciled.append(
            SchemaField(
                name=existing_field.name,
                field_type=promote_types(existing_field.field_type, batch_field.field_type),
                nullable=existing_field.nullable or batch_field.nullable,
            )
        )
    new_fields = [
        schema_field
        for schema_field in inferred.fields
        if existing.get_field(schema_field.name) is None
    ]
    if new_fields and not merge_allowed:
        names = ", ".join(schema_field.name for schema_field in new_fields)
        raise SchemaConflictError(
            f"New files add columns not in the table schema: {names}. "
            "Set mergeSchema to true to add them as nullable columns."
        )
    for schema_field in new_fields:
        reconciled.append(SchemaField(schema_field.name, schema_field.field_type, True))
    return TableSchema(fields=tuple(reconciled))


def _column_order(parsed_files: Sequence[ParsedFile]) -> list[str]:
    seen: dict[str, None] = {}
    for parsed in parsed_files:
        for column_name in parsed.column_order:
            seen.setdefault(column_name, None)
    return list(seen)
