"""Canonical schemas, live introspection, and reconciliation.

Provides the canonical schema models, live database introspection
(``SchemaIntrospector``), and the comparison of the two (``reconcile``).

Usage:
    from model_checker.schema import reconcile, SchemaIntrospector
"""

from model_checker.schema.comparator import group_relationships, reconcile
from model_checker.schema.introspector import InvalidDatabaseError, SchemaIntrospector
from model_checker.schema.models import (
    LiveSchema,
    ModelEntity,
    ModelSchema,
    ModelTable,
    PropertyMapping,
    RelationshipMapping,
    SqlColumn,
    SqlRelationship,
    SqlTable,
    TableMapping,
)

__all__ = [
    "reconcile",
    "group_relationships",
    "SchemaIntrospector",
    "InvalidDatabaseError",
    "ModelTable",
    "PropertyMapping",
    "TableMapping",
    "ModelEntity",
    "RelationshipMapping",
    "ModelSchema",
    "SqlTable",
    "SqlColumn",
    "SqlRelationship",
    "LiveSchema",
]
