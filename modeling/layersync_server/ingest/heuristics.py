"""
Foreign key inference from column names.

Many source systems carry no declared constraints. A column such as
``customer_id`` or ``CustomerId`` is taken as a reference to a table
named like ``customer`` or ``customers`` (or the last segment of a
multi-part name), provided that table has an ``id`` column or a primary key.

Everything here is pure; nothing is written.
"""

from __future__ import annotations

import re

from .sources import (
    HEURISTIC_CONSTRAINT_PREFIX,
    ForeignKeyMetadata,
    TableMetadata,
)

_NON_IDENTIFIER = re.compile(r"[^a-z0-9_]", re.IGNORECASE)


def build_table_index(tables: list[TableMetadata]) -> dict[str, TableMetadata]:
    """Index tables by lowercased name, original name and schema-qualified forms."""
    index: dict[str, TableMetadata] = {}
    for table in tables:
        display_name = table.name.lower() if table.name else None
        original_name = table.original_name.lower() if table.original_name else None
        schema = table.schema.lower() if table.schema else None

        if display_name:
            index[display_name] = table
        if original_name:
            index[original_name] = table
            if schema:
                index[f"{schema}.{original_name}"] = table
        if schema and display_name:
            index[f"{schema}.{display_name}"] = table
    return index


def build_name_candidates(base: str) -> list[str]:
    """Table names a column prefix could refer to, in lookup order."""
    trimmed = _NON_IDENTIFIER.sub("", base)
    candidates: list[str] = [trimmed]

    def add(candidate: str) -> None:
        if candidate not in candidates:
            candidates.append(candidate)

    if not trimmed.endswith("s"):
        add(f"{trimmed}s")
    if not trimmed.endswith("es"):
        add(f"{trimmed}es")
    if trimmed.endswith("s"):
        add(trimmed[:-1])
    if trimmed.endswith("ies"):
        add(f"{trimmed[:-3]}y")
    elif trimmed.endswith("y") and len(trimmed) > 1:
        add(f"{trimmed[:-1]}ies")

    if "_" in trimmed:
        segments = [segment for segment in trimmed.split("_") if segment]
        if len(segments) > 1:
            add(segments[-1])
            add("".join(segments))

    return [candidate.lower() for candidate in candidates]


def resolve_referenced_column(table: TableMetadata) -> str | None:
    """The ``id`` column, else the first primary key column."""
    for column in table.columns:
        if column.name.lower() == "id":
            return column.name
    for column in table.columns:
        if column.is_primary_key:
            return column.name
    return None


def _column_base(normalized_name: str) -> str | None:
    if normalized_name.endswith("_id"):
        return normalized_name[:-3]
    if normalized_name.endswith("id"):
        return normalized_name[:-2]
    return None


def generate_heuristic_foreign_keys(
    table: TableMetadata,
    all_tables: list[TableMetadata],
    existing_foreign_keys: list[ForeignKeyMetadata] | tuple[ForeignKeyMetadata, ...] = (),
) -> list[ForeignKeyMetadata]:
    """Infer N:1 foreign keys for ``table`` from its column names.

    Columns already covered by ``existing_foreign_keys``, primary keys,
    ``id`` itself and ``*uuid``/``*guid`` columns are never inferred. A
    table never references itself, and each (column, table) pair is
    reported once.
    """
    if not table.columns:
        return []

    index = build_table_index(all_tables)
    covered = {
        column.lower() for foreign_key in existing_foreign_keys for column in foreign_key.columns
    }
    schema_prefix = f"{table.schema.lower()}." if table.schema else None

    results: list[ForeignKeyMetadata] = []
    seen: set[tuple[str, str]] = set()

    for column in table.columns:
        if not column.name:
            continue
        normalized = column.name.lower()
        if normalized in covered or column.is_primary_key or normalized == "id":
            continue
        if normalized.endswith("uuid") or normalized.endswith("guid"):
            continue

        base = _column_base(normalized)
        if not base or len(base) < 2:
            continue

        matched: TableMetadata | None = None
        for candidate in build_name_candidates(base):
            matched = index.get(candidate)
            if matched is None and schema_prefix:
                matched = index.get(f"{schema_prefix}{candidate}")
            if matched is not None:
                break

        if matched is None or matched.name.lower() == table.name.lower():
            continue

        referenced_column = resolve_referenced_column(matched)
        if referenced_column is None:
            continue

        dedupe_key = (normalized, matched.name.lower())
        if dedupe_key in seen:
            continue
        seen.add(dedupe_key)

        results.append(
            ForeignKeyMetadata(
                constraint_name=f"{HEURISTIC_CONSTRAINT_PREFIX}{table.name}_{column.name}".lower(),
                columns=(column.name,),
                referenced_table=matched.name,
                referenced_schema=matched.schema,
                referenced_columns=(referenced_column,),
                relationship_type="N:1",
            )
        )

    return results
