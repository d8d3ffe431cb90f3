"""Pydantic models for the canonical schemas.

This module contains the two canonical schema representations that the
reconciliation engine compares:

- Model side: ModelTable, PropertyMapping, TableMapping, ModelEntity,
  RelationshipMapping, ModelSchema
- Database side: SqlTable, SqlColumn, SqlRelationship, LiveSchema

All models are frozen -- they are built once per run and never mutated.

Check options (ModelCheckOptions) live in model_checker.config.models.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from model_checker.schema.types import NO_LENGTH, UNBOUNDED_LENGTH


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


def qualify(schema_name: str, table_name: str) -> str:
    """Qualified table name used for table-existence checks."""
    return f"{schema_name}.{table_name}"


# ============================================================================
# Model Schema (built from the ORM)
# ============================================================================


class ModelTable(_Frozen):
    """A table known to the storage part of the model.

    Example:
        >>> ModelTable(table_name="Orders", schema_name="dbo").qualified_name
        'dbo.Orders'
    """

    table_name: str
    schema_name: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.schema_name, self.table_name)

    @property
    def qualified_name(self) -> str:
        return qualify(self.schema_name, self.table_name)


class PropertyMapping(_Frozen):
    """Mapping of one entity property onto a column.

    ``maximum_length`` is ``0`` for types without a length, a positive
    bound for sized text/binary, and ``-1`` for unbounded text/binary.

    Example:
        >>> prop = PropertyMapping(column_name="Name", property_data_type=str, maximum_length=50)
        >>> prop.is_nullable
        False
    """

    column_name: str
    property_data_type: Any = None
    is_nullable: bool = False
    maximum_length: int = NO_LENGTH

    @field_validator("maximum_length")
    @classmethod
    def _check_length(cls, value: int) -> int:
        if value < UNBOUNDED_LENGTH:
            raise ValueError(f"maximum_length must be >= {UNBOUNDED_LENGTH}, got {value}")
        return value


class TableMapping(_Frozen):
    """The slice of an entity that is stored in one table."""

    table_name: str
    schema_name: str = ""
    property_mappings: tuple[PropertyMapping, ...] = ()

    @model_validator(mode="after")
    def _unique_columns(self) -> "TableMapping":
        seen: set[str] = set()
        for prop in self.property_mappings:
            if prop.column_name in seen:
                raise ValueError(
                    f"Column '{prop.column_name}' is mapped twice in table "
                    f"'{qualify(self.schema_name, self.table_name)}'"
                )
            seen.add(prop.column_name)
        return self

    @property
    def key(self) -> tuple[str, str]:
        return (self.schema_name, self.table_name)

    @property
    def column_names(self) -> list[str]:
        return [p.column_name for p in self.property_mappings]


class ModelEntity(_Frozen):
    """An application entity type and the table(s) it is stored in.

    More than one table mapping means entity splitting: the properties of a
    single type are spread over several tables.
    """

    name: str
    entity_type: Any = None
    table_mappings: tuple[TableMapping, ...] = ()

    @model_validator(mode="after")
    def _unique_tables(self) -> "ModelEntity":
        keys = [t.key for t in self.table_mappings]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Entity '{self.name}' maps the same table more than once")
        return self


class RelationshipMapping(_Frozen):
    """A primary/foreign key pairing known to the model.

    ``from_*`` is the principal (primary key) end and ``to_*`` the dependent
    (foreign key) end. Column *i* of ``from_properties`` pairs with column
    *i* of ``to_properties``.
    """

    from_table: str
    from_properties: tuple[str, ...]
    to_table: str
    to_properties: tuple[str, ...]
    from_schema: str = ""
    to_schema: str = ""

    @model_validator(mode="after")
    def _aligned(self) -> "RelationshipMapping":
        if len(self.from_properties) != len(self.to_properties):
            raise ValueError(
                f"Relationship {self.from_table} -> {self.to_table} has "
                f"{len(self.from_properties)} principal and "
                f"{len(self.to_properties)} dependent columns"
            )
        return self


class ModelSchema(_Frozen):
    """Everything the extractor knows about the model."""

    entities: tuple[ModelEntity, ...] = ()
    tables: tuple[ModelTable, ...] = ()
    relationships: tuple[RelationshipMapping, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.entities or self.tables or self.relationships)


# ============================================================================
# Live Schema (read from the database)
# ============================================================================


class SqlTable(_Frozen):
    """A base table in the database."""

    table_name: str
    schema_name: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.schema_name, self.table_name)

    @property
    def qualified_name(self) -> str:
        return qualify(self.schema_name, self.table_name)


class SqlColumn(_Frozen):
    """A column in the database.

    ``data_type`` is ``None`` when the SQL type has no known Python
    counterpart.
    """

    column_name: str
    data_type: Any = None
    is_nullable: bool = True
    maximum_length: int = NO_LENGTH


class SqlRelationship(_Frozen):
    """One column pair of a foreign key constraint.

    A composite foreign key is reported as several rows sharing
    ``foreign_key_name``, ordered by ``ordinal_position`` (1-based).
    """

    foreign_key_name: str
    ordinal_position: int = Field(default=1, ge=1)
    primary_key_table_name: str
    primary_key_column_name: str
    foreign_key_table_name: str
    foreign_key_column_name: str
    primary_key_schema_name: str = ""
    foreign_key_schema_name: str = ""


class LiveSchema(_Frozen):
    """Everything the introspector read from the database."""

    tables: tuple[SqlTable, ...] = ()
    columns: dict[tuple[str, str], tuple[SqlColumn, ...]] = Field(default_factory=dict)
    relationships: tuple[SqlRelationship, ...] = ()

    def get_columns(self, table_name: str, schema_name: str = "") -> list[SqlColumn]:
        """Columns of a table, or an empty list if the table is unknown.

        An empty *schema_name* matches the table in any schema.
        """
        if schema_name:
            return list(self.columns.get((schema_name, table_name), ()))
        found: list[SqlColumn] = []
        for (_, name), columns in self.columns.items():
            if name == table_name:
                found.extend(columns)
        return found
