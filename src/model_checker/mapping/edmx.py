"""Mapping provider for serialized EDMX mapping documents.

An EDMX document carries three models:

- Conceptual model (``ConceptualModels``): entity sets, entity types and
  their properties (type, nullability, ``MaxLength``), enum types.
- Storage model (``StorageModels``): tables (entity sets with ``Table`` and
  ``Schema``) and associations with their referential constraints.
- Mappings (``Mappings``): per entity type, one ``MappingFragment`` per
  table, each listing ``ScalarProperty`` name -> column pairs.

The document is navigated by element local name and attribute name only;
it is not validated against the EDMX schemas. Property types come from an
object layer of Python classes (dataclasses, pydantic models, ...) matched
to entity types by class name.

Usage:
    from model_checker.mapping.edmx import EdmxMappingProvider

    provider = EdmxMappingProvider.from_file("Shop.edmx", types=[Order, OrderLine])
    model_schema = provider.get_model_schema()
"""

import logging
import typing
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from lxml import etree

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
    EDM_PRIMITIVE_MAP,
    NO_LENGTH,
    UNBOUNDED_LENGTH,
    enum_primitive,
    is_enum_type,
    make_optional,
    unwrap_optional,
)

logger = logging.getLogger(__name__)

# Primitive kinds that carry a MaxLength facet
_LENGTH_KINDS = frozenset({"String", "Binary"})


class MappingDescriptionError(Exception):
    """Raised when a mapping document is malformed or inconsistent."""

    pass


# ============================================================================
# Element helpers
# ============================================================================


def _local(element: etree._Element) -> str:
    return etree.QName(element).localname


def _descendants(element: etree._Element, name: str) -> Iterator[etree._Element]:
    """Descendants (not self) with the given local name, in document order."""
    for node in element.iterdescendants():
        if isinstance(node.tag, str) and _local(node) == name:
            yield node


def _children(element: etree._Element, name: str) -> Iterator[etree._Element]:
    for node in element:
        if isinstance(node.tag, str) and _local(node) == name:
            yield node


def _first(element: etree._Element | None, name: str) -> etree._Element | None:
    if element is None:
        return None
    return next(_descendants(element, name), None)


def _required(element: etree._Element, attribute: str) -> str:
    value = element.get(attribute)
    if value is None:
        raise MappingDescriptionError(
            f"<{_local(element)}> on line {element.sourceline} has no {attribute} attribute"
        )
    return value


def _short_name(qualified: str) -> str:
    """'Shop.Order' -> 'Order'; 'IsTypeOf(Shop.Order)' -> 'Order'."""
    return _strip_type_of(qualified).rsplit(".", 1)[-1]


def _strip_type_of(qualified: str) -> str:
    if qualified.startswith("IsTypeOf(") and qualified.endswith(")"):
        return qualified[len("IsTypeOf("):-1]
    return qualified


# ============================================================================
# Provider
# ============================================================================


class EdmxMappingProvider:
    """Builds a ``ModelSchema`` from an EDMX document.

    Args:
        document: Parsed document root (lxml element or tree).
        types: Object layer -- Python classes, or a mapping of entity type
            name to class. Entity types are matched by declared name.
        default_schema: Schema for storage entity sets without a
            ``Schema`` attribute.
        exclude: Predicate on entity set names; matches are skipped.
    """

    def __init__(
        self,
        document: etree._Element | etree._ElementTree,
        types: Mapping[str, type] | Iterable[type] = (),
        default_schema: str = "dbo",
        exclude: ExcludePredicate = exclude_bookkeeping,
    ) -> None:
        if isinstance(document, etree._ElementTree):
            document = document.getroot()
        self._root = document
        if isinstance(types, Mapping):
            self._types = dict(types)
        else:
            self._types = {cls.__name__: cls for cls in types}
        self._default_schema = default_schema
        self._exclude = exclude

    @classmethod
    def from_string(cls, text: str | bytes, **kwargs: Any) -> "EdmxMappingProvider":
        """Parse an EDMX document held in memory."""
        if isinstance(text, str):
            text = text.encode("utf-8")
        try:
            root = etree.fromstring(text)
        except etree.XMLSyntaxError as e:
            raise MappingDescriptionError(f"Mapping document is not well-formed XML: {e}") from e
        return cls(root, **kwargs)

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> "EdmxMappingProvider":
        """Parse an EDMX document from disk."""
        try:
            tree = etree.parse(str(path))
        except etree.XMLSyntaxError as e:
            raise MappingDescriptionError(f"Mapping document {path} is not well-formed XML: {e}") from e
        return cls(tree, **kwargs)

    def get_model_schema(self) -> ModelSchema:
        """Extract entities, tables and relationships.

        Returns an empty schema if the document has no conceptual or no
        storage entity container.
        """
        conceptual = _first(self._root, "ConceptualModels")
        storage = _first(self._root, "StorageModels")
        conceptual_container = _first(conceptual, "EntityContainer")
        storage_container = _first(storage, "EntityContainer")

        if conceptual_container is None or storage_container is None:
            logger.debug("Mapping document has no conceptual or storage container")
            return ModelSchema()

        store_sets = {
            _required(s, "Name"): s for s in _children(storage_container, "EntitySet")
        }
        mappings = _first(self._root, "Mappings")

        enum_types = self._enum_types(conceptual)
        entities = [
            self._entity(entity_set, conceptual, enum_types, store_sets, mappings)
            for entity_set in _children(conceptual_container, "EntitySet")
            if not self._exclude(_required(entity_set, "Name"))
        ]

        # The conceptual model doesn't list many-to-many join tables, so the
        # table list comes from the storage model.
        tables = [
            ModelTable(table_name=self._table_of(s), schema_name=self._schema_of(s))
            for name, s in store_sets.items()
            if not self._exclude(name)
        ]

        relationships = self._relationships(storage, storage_container, store_sets)

        logger.debug(
            "Extracted %d entities, %d tables, %d relationships",
            len(entities),
            len(tables),
            len(relationships),
        )
        return ModelSchema(
            entities=tuple(entities),
            tables=tuple(tables),
            relationships=tuple(relationships),
        )

    # ------------------------------------------------------------------
    # Storage lookups
    # ------------------------------------------------------------------

    def _table_of(self, store_set: etree._Element) -> str:
        return store_set.get("Table") or _required(store_set, "Name")

    def _schema_of(self, store_set: etree._Element) -> str:
        return store_set.get("Schema") or self._default_schema

    def _store_set(
        self, store_sets: dict[str, etree._Element], name: str, context: etree._Element
    ) -> etree._Element:
        try:
            return store_sets[name]
        except KeyError:
            raise MappingDescriptionError(
                f"<{_local(context)}> on line {context.sourceline} refers to unknown "
                f"storage entity set '{name}'"
            ) from None

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def _entity(
        self,
        entity_set: etree._Element,
        conceptual: etree._Element,
        enum_types: dict[str, str],
        store_sets: dict[str, etree._Element],
        mappings: etree._Element | None,
    ) -> ModelEntity:
        type_full_name = _strip_type_of(_required(entity_set, "EntityType"))
        type_name = _short_name(type_full_name)
        entity_type = self._conceptual_entity_type(conceptual, type_name)

        runtime_type = self._types.get(type_name)
        hints = self._type_hints(runtime_type) if runtime_type is not None else {}
        if runtime_type is None:
            logger.debug("No runtime type for entity %s; its properties are skipped", type_name)

        type_mapping = None
        if mappings is not None:
            type_mapping = next(
                (
                    m
                    for m in _descendants(mappings, "EntityTypeMapping")
                    if _strip_type_of(m.get("TypeName", "")) in (type_full_name, type_name)
                ),
                None,
            )

        table_mappings: list[TableMapping] = []
        if type_mapping is not None:
            # Several fragments when the entity is split over several tables
            for fragment in _descendants(type_mapping, "MappingFragment"):
                store_set = self._store_set(
                    store_sets, _required(fragment, "StoreEntitySet"), fragment
                )
                props = []
                for scalar in _descendants(fragment, "ScalarProperty"):
                    mapping = self._property_mapping(scalar, entity_type, enum_types, hints)
                    if mapping is not None:
                        props.append(mapping)
                table_mappings.append(
                    TableMapping(
                        table_name=self._table_of(store_set),
                        schema_name=self._schema_of(store_set),
                        property_mappings=tuple(props),
                    )
                )

        return ModelEntity(
            name=type_name,
            entity_type=runtime_type,
            table_mappings=tuple(table_mappings),
        )

    def _conceptual_entity_type(self, conceptual: etree._Element, name: str) -> etree._Element:
        for entity_type in _descendants(conceptual, "EntityType"):
            if entity_type.get("Name") == name:
                return entity_type
        raise MappingDescriptionError(f"Conceptual model has no entity type '{name}'")

    def _enum_types(self, conceptual: etree._Element) -> dict[str, str]:
        """Enum type name (short and namespace-qualified) -> underlying kind."""
        enums: dict[str, str] = {}
        for schema in _descendants(conceptual, "Schema"):
            namespace = schema.get("Namespace", "")
            for enum_type in _children(schema, "EnumType"):
                name = _required(enum_type, "Name")
                underlying = enum_type.get("UnderlyingType", "Int32")
                enums[name] = underlying
                if namespace:
                    enums[f"{namespace}.{name}"] = underlying
        return enums

    @staticmethod
    def _type_hints(runtime_type: type) -> dict[str, Any]:
        try:
            return typing.get_type_hints(runtime_type)
        except (NameError, TypeError):
            # Unresolvable forward references: fall back to raw annotations
            hints: dict[str, Any] = {}
            for klass in reversed(runtime_type.__mro__):
                hints.update(getattr(klass, "__annotations__", {}))
            return hints

    def _property_mapping(
        self,
        scalar: etree._Element,
        entity_type: etree._Element,
        enum_types: dict[str, str],
        hints: dict[str, Any],
    ) -> PropertyMapping | None:
        property_name = scalar.get("Name", "")
        column_name = scalar.get("ColumnName", "")

        declared = hints.get(property_name)
        if declared is None:
            logger.debug("Skipping property %s: not found on the runtime type", property_name)
            return None

        edm_property = next(
            (p for p in _children(entity_type, "Property") if p.get("Name") == property_name),
            None,
        )
        if edm_property is None:
            raise MappingDescriptionError(
                f"Entity type '{entity_type.get('Name')}' has no property '{property_name}'"
            )

        edm_type = _required(edm_property, "Type")
        if edm_type in enum_types:
            # Compare the enum's storage primitive, keeping the property's
            # own nullability (Optional[Status] -> Optional[int]).
            kind = enum_types[edm_type]
            inner, is_optional = unwrap_optional(declared)
            primitive = EDM_PRIMITIVE_MAP.get(kind)
            if primitive is None:
                primitive = enum_primitive(inner) if is_enum_type(inner) else inner
            property_type = make_optional(primitive) if is_optional else primitive
        else:
            kind = edm_type.rsplit(".", 1)[-1]
            property_type = declared

        max_length_facet = edm_property.get("MaxLength")
        if kind in _LENGTH_KINDS and max_length_facet is not None:
            if max_length_facet.strip().lower() == "max":
                maximum_length = UNBOUNDED_LENGTH
            else:
                try:
                    maximum_length = int(max_length_facet)
                except ValueError:
                    raise MappingDescriptionError(
                        f"Property '{property_name}' has an invalid MaxLength "
                        f"'{max_length_facet}'"
                    ) from None
        else:
            maximum_length = NO_LENGTH

        return PropertyMapping(
            column_name=column_name,
            property_data_type=property_type,
            is_nullable=edm_property.get("Nullable", "true").lower() != "false",
            maximum_length=maximum_length,
        )

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def _relationships(
        self,
        storage: etree._Element,
        storage_container: etree._Element,
        store_sets: dict[str, etree._Element],
    ) -> list[RelationshipMapping]:
        associations = {
            _required(a, "Name"): a for a in _descendants(storage, "Association")
        }

        relationships = []
        for association_set in _children(storage_container, "AssociationSet"):
            association_name = _short_name(_required(association_set, "Association"))
            association = associations.get(association_name)
            if association is None:
                raise MappingDescriptionError(
                    f"Storage model has no association '{association_name}'"
                )

            # Role -> entity set; code-first documents name roles after sets
            roles = {
                _required(end, "Role"): end.get("EntitySet", end.get("Role"))
                for end in _children(association_set, "End")
            }

            for constraint in _children(association, "ReferentialConstraint"):
                principal = next(_children(constraint, "Principal"), None)
                dependent = next(_children(constraint, "Dependent"), None)
                if principal is None or dependent is None:
                    raise MappingDescriptionError(
                        f"Referential constraint of '{association_name}' needs a "
                        f"Principal and a Dependent"
                    )
                from_set = self._store_set(
                    store_sets, roles.get(principal.get("Role"), principal.get("Role")), principal
                )
                to_set = self._store_set(
                    store_sets, roles.get(dependent.get("Role"), dependent.get("Role")), dependent
                )
                relationships.append(
                    RelationshipMapping(
                        from_table=self._table_of(from_set),
                        from_properties=tuple(
                            _required(p, "Name") for p in _children(principal, "PropertyRef")
                        ),
                        to_table=self._table_of(to_set),
                        to_properties=tuple(
                            _required(p, "Name") for p in _children(dependent, "PropertyRef")
                        ),
                        from_schema=self._schema_of(from_set),
                        to_schema=self._schema_of(to_set),
                    )
                )
        return relationships
