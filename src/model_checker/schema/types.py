"""Type-system helpers shared by the mapping providers and the introspector.

Both sides of a comparison describe column types as Python types so that
they can be compared directly:

- Model side: ``int``, ``str``, ``Optional[int]`` (nullable), with
  enumerations already replaced by their underlying primitive.
- Database side: SQL type names from ``information_schema`` mapped through
  ``SQL_TYPE_MAP``; unknown names map to ``None``.

Usage:
    from model_checker.schema.types import python_type_for_sql, unwrap_optional

    python_type_for_sql("character varying")   # str
    unwrap_optional(Optional[int])             # (int, True)
"""

import datetime
import decimal
import enum
import types
import uuid
from typing import Any, Optional, Union, get_args, get_origin

# Length sentinel for unbounded text/binary (varchar(max), text, bytea).
UNBOUNDED_LENGTH = -1

# Length reported for types that are not length bounded (numeric, boolean).
NO_LENGTH = 0

# Kinds that carry a maximum length facet.
LENGTH_BOUNDED_TYPES = (str, bytes)


# information_schema.columns.data_type -> Python type.
# Covers the names reported by PostgreSQL, SQL Server and MySQL.
SQL_TYPE_MAP: dict[str, type] = {
    # integers
    "integer": int,
    "int": int,
    "bigint": int,
    "smallint": int,
    "tinyint": int,
    "mediumint": int,
    "serial": int,
    "bigserial": int,
    # booleans
    "boolean": bool,
    "bool": bool,
    "bit": bool,
    # exact numerics
    "numeric": decimal.Decimal,
    "decimal": decimal.Decimal,
    "money": decimal.Decimal,
    "smallmoney": decimal.Decimal,
    # approximate numerics
    "real": float,
    "float": float,
    "double": float,
    "double precision": float,
    # text
    "character varying": str,
    "varchar": str,
    "character": str,
    "char": str,
    "nvarchar": str,
    "nchar": str,
    "text": str,
    "ntext": str,
    "tinytext": str,
    "mediumtext": str,
    "longtext": str,
    "citext": str,
    "xml": str,
    # binary
    "bytea": bytes,
    "binary": bytes,
    "varbinary": bytes,
    "image": bytes,
    "blob": bytes,
    "tinyblob": bytes,
    "mediumblob": bytes,
    "longblob": bytes,
    "rowversion": bytes,
    # date/time
    "timestamp": datetime.datetime,
    "timestamp without time zone": datetime.datetime,
    "timestamp with time zone": datetime.datetime,
    "datetime": datetime.datetime,
    "datetime2": datetime.datetime,
    "smalldatetime": datetime.datetime,
    "datetimeoffset": datetime.datetime,
    "date": datetime.date,
    "time": datetime.time,
    "time without time zone": datetime.time,
    "time with time zone": datetime.time,
    "interval": datetime.timedelta,
    # other
    "uuid": uuid.UUID,
    "uniqueidentifier": uuid.UUID,
    "json": dict,
    "jsonb": dict,
}


# EDM primitive type names (conceptual model) -> Python type.
EDM_PRIMITIVE_MAP: dict[str, type] = {
    "Binary": bytes,
    "Boolean": bool,
    "Byte": int,
    "SByte": int,
    "Int16": int,
    "Int32": int,
    "Int64": int,
    "Decimal": decimal.Decimal,
    "Double": float,
    "Single": float,
    "String": str,
    "DateTime": datetime.datetime,
    "DateTimeOffset": datetime.datetime,
    "Time": datetime.timedelta,
    "Guid": uuid.UUID,
}


def python_type_for_sql(data_type: str | None) -> type | None:
    """Map a SQL type name to its Python type, or ``None`` if unknown.

    Example:
        >>> python_type_for_sql("nvarchar")
        <class 'str'>
        >>> python_type_for_sql("USER-DEFINED") is None
        True
    """
    if not data_type:
        return None
    return SQL_TYPE_MAP.get(data_type.strip().lower())


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """Split ``Optional[X]`` into ``(X, True)``; anything else is ``(tp, False)``."""
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1 and len(args) < len(get_args(tp)):
            return args[0], True
    return tp, False


def make_optional(tp: Any) -> Any:
    """Wrap *tp* in ``Optional[...]`` unless it already is."""
    _, is_optional = unwrap_optional(tp)
    if is_optional:
        return tp
    return Optional[tp]


def types_match(model_type: Any, database_type: Any) -> bool:
    """Compare two types ignoring the nullable wrapper on either side."""
    return unwrap_optional(model_type)[0] == unwrap_optional(database_type)[0]


def type_name(tp: Any) -> str:
    """Human-readable name used in discrepancy messages."""
    inner, is_optional = unwrap_optional(tp)
    if is_optional:
        return f"Optional[{type_name(inner)}]"
    if isinstance(tp, type):
        return tp.__name__
    return str(tp)


def enum_primitive(enum_class: type[enum.Enum]) -> type:
    """Return the primitive type an enumeration is stored as.

    Mixed-in enums (``IntEnum``, ``class Color(str, Enum)``) use the mixed-in
    primitive; plain ``Enum`` subclasses are stored by member name, so ``str``.
    """
    for base in enum_class.__mro__:
        if base in (int, str, float, bytes):
            return base
    return str


def is_enum_type(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, enum.Enum)
