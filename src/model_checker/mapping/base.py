"""Mapping provider protocol definition.

Defines the ``MappingProvider`` Protocol that every ORM-specific extractor
implements. Whatever an ORM needs to walk (mapper registries, serialized
mapping documents) stays behind this one method.

Usage:
    from model_checker.mapping.base import MappingProvider

    def check(provider: MappingProvider) -> None:
        model_schema = provider.get_model_schema()
"""

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from model_checker.schema.models import ModelSchema

# Entity sets / tables the ORM or its migration tool creates for itself.
BOOKKEEPING_NAMES = frozenset({
    "EdmMetadata",
    "EdmMetadatas",
    "alembic_version",
})

ExcludePredicate = Callable[[str], bool]


def exclude_bookkeeping(name: str) -> bool:
    """Default exclusion predicate: skip migration bookkeeping sets."""
    return name in BOOKKEEPING_NAMES


@runtime_checkable
class MappingProvider(Protocol):
    """Source of the canonical model schema.

    Implementations must not raise when the model is simply empty; they
    return an empty ``ModelSchema`` instead. Properties whose type cannot be
    resolved are left out of the result rather than failing the extraction.
    """

    def get_model_schema(self) -> ModelSchema:
        """Build the canonical model schema.

        Returns:
            ModelSchema with entities (and their table mappings), every
            table known to the storage model, and every relationship.
        """
        ...
