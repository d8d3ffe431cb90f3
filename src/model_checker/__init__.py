"""model-checker: check an ORM model against the schema of a live database.

Builds a canonical schema from the ORM mapping (SQLAlchemy declarative
models or an EDMX mapping document), reads the live schema from the
database, and reports every table, column and foreign key on which they
disagree.

Usage:
    from model_checker import run, ModelCheckOptions

    errors = run(engine, Base, "dbo")
    errors = run(engine, Base, ModelCheckOptions.strict("dbo"))
"""

__version__ = "0.1.0"

# Entry point
from model_checker.check import ProfileNotFoundError, resolve_mapping_provider, run

# Config
from model_checker.config.loader import load_config
from model_checker.config.models import CheckerConfig, DatabaseProfile, ModelCheckOptions

# Mapping providers
from model_checker.mapping.base import MappingProvider
from model_checker.mapping.declarative import SqlAlchemyMappingProvider
from model_checker.mapping.edmx import EdmxMappingProvider, MappingDescriptionError

# Schema
from model_checker.schema.comparator import reconcile
from model_checker.schema.introspector import InvalidDatabaseError, SchemaIntrospector
from model_checker.schema.models import LiveSchema, ModelSchema

__all__ = [
    # Entry point
    "run",
    "resolve_mapping_provider",
    "ProfileNotFoundError",
    # Config
    "load_config",
    "CheckerConfig",
    "DatabaseProfile",
    "ModelCheckOptions",
    # Mapping providers
    "MappingProvider",
    "SqlAlchemyMappingProvider",
    "EdmxMappingProvider",
    "MappingDescriptionError",
    # Schema
    "reconcile",
    "SchemaIntrospector",
    "InvalidDatabaseError",
    "ModelSchema",
    "LiveSchema",
]
