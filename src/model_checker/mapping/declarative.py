"""Mapping provider for SQLAlchemy declarative models.

Walks a SQLAlchemy ``registry`` (the mapped classes) and its ``MetaData``
(every table the ORM knows about, including many-to-many association
tables that no class maps) to build the canonical ``ModelSchema``.

Usage:
    from model_checker.mapping.declarative import SqlAlchemyMappingProvider

    provider = SqlAlchemyMappingProvider(Base, default_schema="public")
    model_schema = provider.get_model_schema()
"""

import logging
from typing import Any

from sqlalchemy import Column, MetaData, Table
from sqlalchemy import Enum as SaEnum
from sqlalchemy.exc import NoReferencedColumnError, NoReferencedTableError
from sqlalchemy.orm import Mapper, registry
from sqlalchemy.sql.schema import ForeignKeyConstraint
from sqlalchemy.types import TypeEngine

from model_checker.mapping.base import ExcludePredicate, exclude_bookkeeping
from model_checker.schema.models import (
    ModelEntity,
    ModelSchema,
    ModelTable,
    PropertyMapping,
    RelationshipMapping,
    TableMapping,
)
from model_checker.schema.types import (
    LENGTH_BOUNDED_TYPES,
    NO_LENGTH,
    UNBOUNDED_LENGTH,
    enum_primitive,
    is_enum_type,
    make_optional,
)

logger = logging.getLogger(__name__)


class SqlAlchemyMappingProvider:
    """Builds a ``ModelSchema`` from SQLAlchemy mappings.

    Args:
        model: A declarative base class, a ``registry``, or a bare
            ``MetaData`` (tables and relationships only, no entities).
        default_schema: Schema reported for tables declared without one,
            normally the connection's default schema (``public``, ``dbo``).
        exclude: Predicate on class and table names; matches are skipped.

    Example:
        class Base(DeclarativeBase):
            pass

        class Order(Base):
            __tablename__ = "Orders"
            id: Mapped[int] = mapped_column("Id", primary_key=True)

        schema = SqlAlchemyMappingProvider(Base, default_schema="dbo").get_model_schema()
        schema.tables[0].qualified_name  # 'dbo.Orders'
    """

    def __init__(
        self,
        model: Any,
        default_schema: str = "",
        exclude: ExcludePredicate = exclude_bookkeeping,
    ) -> None:
        self._registry, self._metadata = self._resolve(model)
        self._default_schema = default_schema
        self._exclude = exclude

    @staticmethod
    def _resolve(model: Any) -> tuple[registry | None, MetaData]:
        if isinstance(model, registry):
            return model, model.metadata
        if isinstance(model, MetaData):
            return None, model
        reg = getattr(model, "registry", None)
        metadata = getattr(model, "metadata", None)
        if isinstance(reg, registry) and isinstance(metadata, MetaData):
            return reg, metadata
        raise TypeError(
            f"Expected a declarative base, registry or MetaData, got {type(model).__name__}"
        )

    def get_model_schema(self) -> ModelSchema:
        """Extract entities, tables and relationships."""
        mappers = self._mappers()
        if not mappers and not self._metadata.tables:
            logger.debug("No mapped classes or tables found; returning empty model schema")
            return ModelSchema()

        entities = tuple(self._entity(mapper) for mapper in mappers)
        tables = tuple(self._tables())
        relationships = tuple(self._relationships())

        logger.debug(
            "Extracted %d entities, %d tables, %d relationships",
            len(entities),
            len(tables),
            len(relationships),
        )
        return ModelSchema(entities=entities, tables=tables, relationships=relationships)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def _mappers(self) -> list[Mapper]:
        if self._registry is None:
            return []
        # registry.mappers is a frozenset; order by class for repeatable output
        mappers = sorted(
            self._registry.mappers,
            key=lambda m: (m.class_.__module__, m.class_.__qualname__),
        )
        return [
            m
            for m in mappers
            if not self._exclude(m.class_.__name__)
            and not any(self._exclude(t.name) for t in self._mapped_tables(m))
        ]

    @staticmethod
    def _mapped_tables(mapper: Mapper) -> list[Table]:
        return [t for t in mapper.tables if isinstance(t, Table)]

    def _entity(self, mapper: Mapper) -> ModelEntity:
        # One fragment per physical table: joined inheritance and classes
        # mapped to a join() span several tables.
        fragments: dict[Table, list[PropertyMapping]] = {
            table: [] for table in self._mapped_tables(mapper)
        }

        for prop in mapper.column_attrs:
            for column in prop.columns:
                if not isinstance(column, Column) or column.table not in fragments:
                    continue
                mapping = self._property_mapping(mapper, prop.key, column)
                if mapping is None:
                    continue
                bucket = fragments[column.table]
                if any(p.column_name == mapping.column_name for p in bucket):
                    continue
                bucket.append(mapping)

        table_mappings = tuple(
            TableMapping(
                table_name=table.name,
                schema_name=self._schema_of(table),
                property_mappings=tuple(props),
            )
            for table, props in fragments.items()
        )
        return ModelEntity(
            name=mapper.class_.__name__,
            entity_type=mapper.class_,
            table_mappings=table_mappings,
        )

    def _property_mapping(
        self, mapper: Mapper, key: str, column: Column
    ) -> PropertyMapping | None:
        python_type = _python_type(column.type)
        if python_type is None:
            logger.debug(
                "Skipping %s.%s: no Python type for %r",
                mapper.class_.__name__,
                key,
                column.type,
            )
            return None

        # sqlalchemy.Enum stores member names as strings (VARCHAR or a native
        # enum), whatever the enum class mixes in
        if isinstance(column.type, SaEnum):
            python_type = str
        elif is_enum_type(python_type):
            python_type = enum_primitive(python_type)

        is_nullable = bool(column.nullable)
        return PropertyMapping(
            column_name=column.name,
            property_data_type=make_optional(python_type) if is_nullable else python_type,
            is_nullable=is_nullable,
            maximum_length=_maximum_length(column.type, python_type),
        )

    # ------------------------------------------------------------------
    # Tables (includes association tables with no mapped class)
    # ------------------------------------------------------------------

    def _tables(self) -> list[ModelTable]:
        return [
            ModelTable(table_name=table.name, schema_name=self._schema_of(table))
            for table in self._metadata.tables.values()
            if not self._exclude(table.name)
        ]

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def _relationships(self) -> list[RelationshipMapping]:
        relationships = []
        for table in self._metadata.tables.values():
            if self._exclude(table.name):
                continue
            constraints = sorted(
                table.foreign_key_constraints,
                key=lambda c: (c.name or "", tuple(c.column_keys)),
            )
            for constraint in constraints:
                relationships.append(self._relationship(table, constraint))
        return relationships

    def _relationship(self, table: Table, constraint: ForeignKeyConstraint) -> RelationshipMapping:
        referred_schema, referred_table, referred_columns = "", "", []
        for element in constraint.elements:
            try:
                target = element.column
                referred_schema = self._schema_of(target.table)
                referred_table = target.table.name
                referred_columns.append(target.name)
            except (NoReferencedTableError, NoReferencedColumnError):
                # Target outside this MetaData: fall back to "[schema.]table.column"
                *qualifier, column_name = element.target_fullname.split(".")
                referred_table = qualifier[-1] if qualifier else ""
                referred_schema = ".".join(qualifier[:-1]) or self._default_schema
                referred_columns.append(column_name)

        return RelationshipMapping(
            from_table=referred_table,
            from_properties=tuple(referred_columns),
            to_table=table.name,
            to_properties=tuple(element.parent.name for element in constraint.elements),
            from_schema=referred_schema,
            to_schema=self._schema_of(table),
        )

    def _schema_of(self, table: Any) -> str:
        return getattr(table, "schema", None) or self._default_schema


def _python_type(type_: TypeEngine) -> type | None:
    """Python type of a column type, or None when SQLAlchemy can't say."""
    try:
        python_type = type_.python_type
    except NotImplementedError:
        python_type = object

    # SQLAlchemy 2.1+ reports object instead of raising
    if python_type is object:
        impl = getattr(type_, "impl_instance", None)
        if impl is not None and impl is not type_:
            return _python_type(impl)
        return None
    return python_type


def _maximum_length(type_: TypeEngine, python_type: type) -> int:
    """Length facet for text/binary columns; -1 when they are unbounded."""
    if python_type not in LENGTH_BOUNDED_TYPES:
        return NO_LENGTH
    length = getattr(type_, "length", None)
    if length is None:
        impl = getattr(type_, "impl_instance", None)
        length = getattr(impl, "length", None) if impl is not None else None
    return UNBOUNDED_LENGTH if length is None else int(length)
