"""Live database schema introspection via information_schema.

This module queries the connected database to build a ``LiveSchema``:
- Base tables (schema + name)
- Columns: Python data type, nullability, maximum length
- Foreign keys, one row per column pair with its ordinal position

The queries only use ``information_schema`` views, so they run unchanged on
PostgreSQL, SQL Server and MySQL. Statements go through SQLAlchemy
``text()`` on a caller-supplied engine, connection or session.
"""

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from model_checker.schema.models import LiveSchema, SqlColumn, SqlRelationship, SqlTable
from model_checker.schema.types import (
    LENGTH_BOUNDED_TYPES,
    NO_LENGTH,
    UNBOUNDED_LENGTH,
    python_type_for_sql,
)

logger = logging.getLogger(__name__)


class InvalidDatabaseError(Exception):
    """Raised when the database schema cannot be read."""

    pass


class SchemaIntrospector:
    """Reads the canonical live schema from a database.

    Accepts an ``Engine`` (a connection is opened on ``with`` entry and
    closed on exit), or an open ``Connection`` / ``Session`` (used as-is,
    never closed here).

    Usage:
        with SchemaIntrospector(engine) as introspector:
            live_schema = introspector.read_live_schema("dbo")

            # Or the individual reads
            tables = introspector.get_tables()
            columns = introspector.get_columns("Orders", "dbo")
            relationships = introspector.get_relationships()
    """

    # Schemas that hold the database's own catalog
    SYSTEM_SCHEMAS = frozenset({
        "information_schema",
        "pg_catalog",
        "pg_toast",
        "sys",
        "mysql",
        "performance_schema",
    })

    # Migration bookkeeping tables created by the tooling, not the model
    EXCLUDED_TABLES = frozenset({
        "alembic_version",
        "EdmMetadata",
        "__MigrationHistory",
        "__EFMigrationsHistory",
    })

    # Dialects whose key_column_usage has position_in_unique_constraint
    UNIQUE_POSITION_DIALECTS = frozenset({"postgresql", "mysql", "mariadb"})

    def __init__(
        self,
        bind: Engine | Connection | Session,
        excluded_tables: set[str] | frozenset[str] | None = None,
    ):
        """Initialize with the database to read.

        Args:
            bind: SQLAlchemy engine, connection or session
            excluded_tables: Table names to skip (default: EXCLUDED_TABLES)
        """
        self._bind = bind
        self._conn: Connection | None = None
        self._owns_connection = False
        self._excluded_tables = (
            frozenset(excluded_tables) if excluded_tables is not None else self.EXCLUDED_TABLES
        )

    def __enter__(self) -> "SchemaIntrospector":
        """Context manager entry - acquires a connection."""
        try:
            if isinstance(self._bind, Engine):
                self._conn = self._bind.connect()
                self._owns_connection = True
            elif isinstance(self._bind, Session):
                self._conn = self._bind.connection()
            else:
                self._conn = self._bind
        except SQLAlchemyError as e:
            raise InvalidDatabaseError(f"Error connecting to the database: {e}") from e
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - closes a connection opened on entry."""
        if self._conn is not None and self._owns_connection:
            self._conn.close()
        self._conn = None
        self._owns_connection = False

    def read_live_schema(self, schema_name: str = "") -> LiveSchema:
        """Read tables, their columns and all foreign keys.

        Args:
            schema_name: Only read tables in this schema. Empty reads every
                non-system schema.

        Returns:
            LiveSchema for one reconciliation run
        """
        tables = [
            t for t in self.get_tables() if not schema_name or t.schema_name == schema_name
        ]

        columns: dict[tuple[str, str], tuple[SqlColumn, ...]] = {}
        for table in tables:
            columns[table.key] = tuple(self.get_columns(table.table_name, table.schema_name))

        relationships = self.get_relationships()

        logger.debug(
            "Read %d tables and %d foreign key columns (schema filter: %r)",
            len(tables),
            len(relationships),
            schema_name,
        )
        return LiveSchema(tables=tuple(tables), columns=columns, relationships=tuple(relationships))

    def get_tables(self) -> list[SqlTable]:
        """Get all base tables outside the system schemas."""
        query = """
            SELECT table_schema, table_name
            FROM information_schema.tables
            WHERE table_type = 'BASE TABLE'
            ORDER BY table_schema, table_name
        """
        tables = []
        for schema, name in self._fetch(query):
            if schema in self.SYSTEM_SCHEMAS or name in self._excluded_tables:
                continue
            tables.append(SqlTable(table_name=name, schema_name=schema))
        return tables

    def get_columns(self, table_name: str, schema_name: str = "") -> list[SqlColumn]:
        """Get columns for a table.

        An empty *schema_name* matches the table in any schema.
        """
        query = """
            SELECT
                column_name,
                data_type,
                is_nullable,
                character_maximum_length
            FROM information_schema.columns
            WHERE table_name = :table_name
        """
        params: dict[str, Any] = {"table_name": table_name}
        if schema_name:
            query += " AND table_schema = :schema_name"
            params["schema_name"] = schema_name
        query += " ORDER BY table_schema, ordinal_position"

        columns = []
        for col_name, data_type, is_nullable, max_length in self._fetch(query, params):
            python_type = python_type_for_sql(data_type)
            columns.append(
                SqlColumn(
                    column_name=col_name,
                    data_type=python_type,
                    is_nullable=(str(is_nullable).upper() == "YES"),
                    maximum_length=self._normalize_length(python_type, max_length),
                )
            )
        return columns

    def get_relationships(self) -> list[SqlRelationship]:
        """Get every foreign key column pair.

        Composite keys come back as one row per column, sharing the
        constraint name and numbered by ``ordinal_position`` from 1.
        Foreign key columns are paired with the referenced columns by
        ``position_in_unique_constraint`` where the database reports it.
        """
        if self._dialect_name() in self.UNIQUE_POSITION_DIALECTS:
            pairing = "fk.position_in_unique_constraint"
        else:
            pairing = "fk.ordinal_position"

        # Constraint names are only unique per table on PostgreSQL, so the
        # dependent columns are tied to their table through table_constraints.
        query = f"""
            SELECT DISTINCT
                fk.constraint_name,
                fk.ordinal_position,
                pk.table_schema,
                pk.table_name,
                pk.column_name,
                fk.table_schema,
                fk.table_name,
                fk.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.referential_constraints rc
                ON rc.constraint_schema = tc.constraint_schema
                AND rc.constraint_name = tc.constraint_name
            JOIN information_schema.key_column_usage fk
                ON fk.constraint_schema = tc.constraint_schema
                AND fk.constraint_name = tc.constraint_name
                AND fk.table_schema = tc.table_schema
                AND fk.table_name = tc.table_name
            JOIN information_schema.key_column_usage pk
                ON pk.constraint_schema = rc.unique_constraint_schema
                AND pk.constraint_name = rc.unique_constraint_name
                AND pk.ordinal_position = {pairing}
            WHERE tc.constraint_type = 'FOREIGN KEY'
            ORDER BY fk.table_schema, fk.table_name, fk.constraint_name, fk.ordinal_position
        """
        relationships = []
        for row in self._fetch(query):
            (
                fk_name,
                position,
                pk_schema,
                pk_table,
                pk_column,
                fk_schema,
                fk_table,
                fk_column,
            ) = row
            relationships.append(
                SqlRelationship(
                    foreign_key_name=fk_name,
                    ordinal_position=position,
                    primary_key_schema_name=pk_schema,
                    primary_key_table_name=pk_table,
                    primary_key_column_name=pk_column,
                    foreign_key_schema_name=fk_schema,
                    foreign_key_table_name=fk_table,
                    foreign_key_column_name=fk_column,
                )
            )
        return relationships

    def _normalize_length(self, python_type: type | None, max_length: int | None) -> int:
        """Length as the model reports it: -1 unbounded, 0 when not sized.

        SQL Server already reports -1 for varchar(max); PostgreSQL reports
        NULL for text, bytea and varchar without a length.
        """
        if python_type not in LENGTH_BOUNDED_TYPES:
            return NO_LENGTH
        if max_length is None:
            return UNBOUNDED_LENGTH
        return int(max_length)

    def _dialect_name(self) -> str:
        dialect = getattr(self._conn, "dialect", None)
        name = getattr(dialect, "name", "")
        return name if isinstance(name, str) else ""

    def _fetch(self, query: str, params: dict[str, Any] | None = None) -> list[tuple]:
        if self._conn is None:
            raise RuntimeError("Introspector not connected. Use with statement.")
        try:
            result = self._conn.execute(text(query), params or {})
            return [tuple(row) for row in result.fetchall()]
        except SQLAlchemyError as e:
            raise InvalidDatabaseError(f"Error retrieving the data: {e}") from e
