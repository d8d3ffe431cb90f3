"""Reconcile a model schema against a live database schema.

Pure logic -- no I/O, no database connections. Mismatches are the output,
never exceptions.

Checks run in a fixed order: tables, then columns, then relationships.
Within each category findings for objects in the database but not in the
model come first, then findings for objects in the model but not in the
database. Findings keep the order in which the schemas list their objects.

Usage:
    from model_checker.schema.comparator import reconcile
    from model_checker.config.models import ModelCheckOptions

    errors = reconcile(model_schema, live_schema, ModelCheckOptions(database_schema_name="dbo"))
    for error in errors:
        print(error)
"""

from collections.abc import Iterable

from model_checker.config.models import ModelCheckOptions
from model_checker.schema.models import (
    LiveSchema,
    ModelSchema,
    PropertyMapping,
    RelationshipMapping,
    SqlColumn,
    SqlRelationship,
    TableMapping,
)
from model_checker.schema.types import type_name, types_match


def reconcile(
    model_schema: ModelSchema,
    live_schema: LiveSchema,
    options: ModelCheckOptions | None = None,
) -> list[str]:
    """Compare a model schema with a live schema.

    Args:
        model_schema: Canonical schema built by a mapping provider.
        live_schema: Canonical schema read from the database.
        options: Which checks to run and the optional schema filter
            (default: ``ModelCheckOptions()``).

    Returns:
        Ordered list of discrepancy messages. Empty when nothing was found
        under the selected checks.

    Examples:
        >>> from model_checker.schema.models import ModelTable, SqlTable
        >>> model = ModelSchema(tables=(ModelTable(table_name="Orders", schema_name="dbo"),))
        >>> live = LiveSchema(tables=(SqlTable(table_name="Orders", schema_name="dbo"),))
        >>> reconcile(model, live)
        []
        >>> reconcile(model, LiveSchema())
        ['The table dbo.Orders is in the model but not in the database.']
    """
    if options is None:
        options = ModelCheckOptions()

    errors: list[str] = []
    errors.extend(_check_tables(model_schema, live_schema, options))
    errors.extend(_check_columns(model_schema, live_schema, options))
    errors.extend(_check_relationships(model_schema, live_schema, options))
    return errors


# ============================================================================
# Tables
# ============================================================================


def _ordered_difference(items: Iterable[str], other: Iterable[str]) -> list[str]:
    """Items not in *other*, in first-seen order, without duplicates."""
    exclude = set(other)
    result: list[str] = []
    for item in items:
        if item not in exclude:
            result.append(item)
            exclude.add(item)
    return result


def _check_tables(
    model_schema: ModelSchema,
    live_schema: LiveSchema,
    options: ModelCheckOptions,
) -> list[str]:
    schema_name = options.database_schema_name

    sql_tables = [
        t.qualified_name
        for t in live_schema.tables
        if not schema_name or t.schema_name == schema_name
    ]
    mapped_tables = [
        t.qualified_name
        for t in model_schema.tables
        if not schema_name or t.schema_name == schema_name
    ]

    errors: list[str] = []

    if options.check_for_tables_in_database_but_not_in_model:
        for table in _ordered_difference(sql_tables, mapped_tables):
            errors.append(f"The table {table} is in the database but not in the entity model.")

    if options.check_for_tables_in_model_but_not_in_database:
        for table in _ordered_difference(mapped_tables, sql_tables):
            errors.append(f"The table {table} is in the model but not in the database.")

    return errors


# ============================================================================
# Columns
# ============================================================================


def _check_columns(
    model_schema: ModelSchema,
    live_schema: LiveSchema,
    options: ModelCheckOptions,
) -> list[str]:
    schema_name = options.database_schema_name
    errors: list[str] = []

    # Entities sharing a table (table splitting) are each checked in full.
    for entity in model_schema.entities:
        for table_mapping in entity.table_mappings:
            if schema_name and table_mapping.schema_name != schema_name:
                continue

            sql_columns = live_schema.get_columns(
                table_mapping.table_name, table_mapping.schema_name
            )

            if options.check_for_columns_in_database_but_not_in_model:
                errors.extend(_columns_not_in_model(table_mapping, sql_columns))

            if options.check_for_columns_in_model_but_not_in_database:
                for property_mapping in table_mapping.property_mappings:
                    errors.extend(
                        _compare_property(table_mapping, property_mapping, sql_columns)
                    )

    return errors


def _columns_not_in_model(
    table_mapping: TableMapping, sql_columns: list[SqlColumn]
) -> list[str]:
    column_names = set(table_mapping.column_names)
    return [
        f"The column {column.column_name} in table {table_mapping.table_name} "
        f"is not in the entity model."
        for column in sql_columns
        if column.column_name not in column_names
    ]


def _compare_property(
    table_mapping: TableMapping,
    property_mapping: PropertyMapping,
    sql_columns: list[SqlColumn],
) -> list[str]:
    """All findings for one mapped property; one message per mismatching field."""
    table = table_mapping.table_name
    column_name = property_mapping.column_name
    property_type = type_name(property_mapping.property_data_type)

    column = next((c for c in sql_columns if c.column_name == column_name), None)
    if column is None:
        return [f"The column {column_name} doesn't exist in the table {table}."]

    errors: list[str] = []

    if column.data_type is None:
        errors.append(
            f"The column {column_name} in table {table} has an unknown data type "
            f"of {property_type}."
        )
    elif not types_match(property_mapping.property_data_type, column.data_type):
        errors.append(
            f"The column {column_name} in table {table} has a data type of "
            f"{property_type} which does not match with the database "
            f"({type_name(column.data_type)})."
        )

    # No message when both sides agree.
    if column.is_nullable and not property_mapping.is_nullable:
        errors.append(
            f"The column {column_name} in table {table} is nullable, but the "
            f"{property_type} property is not nullable."
        )
    if not column.is_nullable and property_mapping.is_nullable:
        errors.append(
            f"The column {column_name} in table {table} is not nullable, but the "
            f"{property_type} property is nullable."
        )

    # Strict equality, including the -1 "unbounded" sentinel.
    if column.maximum_length != property_mapping.maximum_length:
        errors.append(
            f"The column {column_name} in table {table} has a maximum length which "
            f"does not agree with the {property_type} property."
        )

    return errors


# ============================================================================
# Relationships
# ============================================================================


def group_relationships(
    sql_relationships: Iterable[SqlRelationship],
) -> list[RelationshipMapping]:
    """Reassemble foreign key rows into one relationship per constraint.

    Rows are grouped by ``foreign_key_name`` within the dependent table
    (groups keep first-seen order) and ordered by ``ordinal_position``
    within each group, so composite keys are compared as whole ordered
    column lists.

    Example:
        >>> rows = [
        ...     SqlRelationship(foreign_key_name="FK_X", ordinal_position=2,
        ...                     primary_key_table_name="A", primary_key_column_name="k2",
        ...                     foreign_key_table_name="B", foreign_key_column_name="a_k2"),
        ...     SqlRelationship(foreign_key_name="FK_X", ordinal_position=1,
        ...                     primary_key_table_name="A", primary_key_column_name="k1",
        ...                     foreign_key_table_name="B", foreign_key_column_name="a_k1"),
        ... ]
        >>> group_relationships(rows)[0].from_properties
        ('k1', 'k2')
    """
    groups: dict[tuple[str, str, str], list[SqlRelationship]] = {}
    for row in sql_relationships:
        # Constraint names are only unique per table on PostgreSQL
        key = (row.foreign_key_schema_name, row.foreign_key_table_name, row.foreign_key_name)
        groups.setdefault(key, []).append(row)

    grouped: list[RelationshipMapping] = []
    for rows in groups.values():
        rows = sorted(rows, key=lambda r: r.ordinal_position)
        first = rows[0]
        grouped.append(
            RelationshipMapping(
                from_table=first.primary_key_table_name,
                from_properties=tuple(r.primary_key_column_name for r in rows),
                to_table=first.foreign_key_table_name,
                to_properties=tuple(r.foreign_key_column_name for r in rows),
                from_schema=first.primary_key_schema_name,
                to_schema=first.foreign_key_schema_name,
            )
        )
    return grouped


def _same_relationship(a: RelationshipMapping, b: RelationshipMapping) -> bool:
    return (
        a.from_table == b.from_table
        and a.to_table == b.to_table
        and a.from_properties == b.from_properties
        and a.to_properties == b.to_properties
    )


def _in_schema(relationship: RelationshipMapping, schema_name: str) -> bool:
    """Endpoints with an unknown schema are kept by the filter."""
    if not schema_name:
        return True
    return all(
        not endpoint or endpoint == schema_name
        for endpoint in (relationship.from_schema, relationship.to_schema)
    )


def _describe(relationship: RelationshipMapping) -> str:
    return (
        f"The relationship between {relationship.from_table} and {relationship.to_table} "
        f"from keys {','.join(relationship.from_properties)} "
        f"to {','.join(relationship.to_properties)}"
    )


def _check_relationships(
    model_schema: ModelSchema,
    live_schema: LiveSchema,
    options: ModelCheckOptions,
) -> list[str]:
    if not (
        options.check_for_relationships_in_database_but_not_in_model
        or options.check_for_relationships_in_model_but_not_in_database
    ):
        return []

    schema_name = options.database_schema_name
    sql_groups = [
        g for g in group_relationships(live_schema.relationships) if _in_schema(g, schema_name)
    ]
    model_relationships = [
        r for r in model_schema.relationships if _in_schema(r, schema_name)
    ]

    errors: list[str] = []

    if options.check_for_relationships_in_database_but_not_in_model:
        for group in sql_groups:
            if not any(_same_relationship(group, r) for r in model_relationships):
                errors.append(f"{_describe(group)} is in the database but not in the entity model.")

    if options.check_for_relationships_in_model_but_not_in_database:
        for relationship in model_relationships:
            if not any(_same_relationship(relationship, g) for g in sql_groups):
                errors.append(f"{_describe(relationship)} is not in the database.")

    return errors
