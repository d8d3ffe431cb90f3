"""Mapping providers: build the canonical model schema from an ORM.

Provides the ``MappingProvider`` Protocol and two implementations: one for
SQLAlchemy declarative models and one for EDMX mapping documents.

Usage:
    from model_checker.mapping import SqlAlchemyMappingProvider, EdmxMappingProvider
"""

from model_checker.mapping.base import MappingProvider, exclude_bookkeeping
from model_checker.mapping.declarative import SqlAlchemyMappingProvider
from model_checker.mapping.edmx import EdmxMappingProvider, MappingDescriptionError

__all__ = [
    "MappingProvider",
    "exclude_bookkeeping",
    "SqlAlchemyMappingProvider",
    "EdmxMappingProvider",
    "MappingDescriptionError",
]
