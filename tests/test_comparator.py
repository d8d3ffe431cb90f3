"""Tests for the reconciliation engine.

Verifies that reconcile() compares a model schema with a live schema:
- Tables, columns and relationships, each in both directions
- Message order: tables, columns, relationships; database-only first
- Composite foreign keys grouped by constraint and ordinal position
- Schema filtering, entity splitting, the unbounded length sentinel
"""

from collections import Counter
from typing import Optional

import pytest

from model_checker.config.models import ModelCheckOptions
from model_checker.schema.comparator import group_relationships, reconcile
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


# ============================================================
# Builders
# ============================================================


def _entity(name: str, *table_mappings: TableMapping) -> ModelEntity:
    return ModelEntity(name=name, table_mappings=table_mappings)


def _table_mapping(table: str, *props: PropertyMapping, schema: str = "dbo") -> TableMapping:
    return TableMapping(table_name=table, schema_name=schema, property_mappings=props)


def _prop(column: str, data_type=int, nullable: bool = False, length: int = 0) -> PropertyMapping:
    return PropertyMapping(
        column_name=column,
        property_data_type=data_type,
        is_nullable=nullable,
        maximum_length=length,
    )


def _col(column: str, data_type=int, nullable: bool = False, length: int = 0) -> SqlColumn:
    return SqlColumn(
        column_name=column,
        data_type=data_type,
        is_nullable=nullable,
        maximum_length=length,
    )


def _fk(
    name: str,
    position: int,
    pk_table: str,
    pk_column: str,
    fk_table: str,
    fk_column: str,
    schema: str = "dbo",
) -> SqlRelationship:
    return SqlRelationship(
        foreign_key_name=name,
        ordinal_position=position,
        primary_key_table_name=pk_table,
        primary_key_column_name=pk_column,
        foreign_key_table_name=fk_table,
        foreign_key_column_name=fk_column,
        primary_key_schema_name=schema,
        foreign_key_schema_name=schema,
    )


def _model(entities=(), tables=(), relationships=()) -> ModelSchema:
    return ModelSchema(
        entities=tuple(entities),
        tables=tuple(ModelTable(table_name=t, schema_name=s) for s, t in tables),
        relationships=tuple(relationships),
    )


def _live(columns: dict[tuple[str, str], list[SqlColumn]] | None = None, tables=(), relationships=()) -> LiveSchema:
    columns = columns or {}
    table_keys = list(tables) or list(columns)
    return LiveSchema(
        tables=tuple(SqlTable(table_name=t, schema_name=s) for s, t in table_keys),
        columns={key: tuple(cols) for key, cols in columns.items()},
        relationships=tuple(relationships),
    )


STRICT = ModelCheckOptions.strict()


# ============================================================
# Tables
# ============================================================


class TestTables:
    """Table existence in both directions."""

    def test_matching_tables_no_errors(self) -> None:
        model = _model(tables=[("dbo", "Orders")])
        live = _live(tables=[("dbo", "Orders")])

        assert reconcile(model, live, STRICT) == []

    def test_table_missing_from_database(self) -> None:
        model = _model(tables=[("dbo", "Orders"), ("dbo", "Lines")])
        live = _live(tables=[("dbo", "Orders")])

        assert reconcile(model, live) == [
            "The table dbo.Lines is in the model but not in the database."
        ]

    def test_table_missing_from_model_off_by_default(self) -> None:
        model = _model(tables=[("dbo", "Orders")])
        live = _live(tables=[("dbo", "Orders"), ("dbo", "Audit")])

        assert reconcile(model, live) == []

    def test_table_missing_from_model_when_enabled(self) -> None:
        model = _model(tables=[("dbo", "Orders")])
        live = _live(tables=[("dbo", "Orders"), ("dbo", "Audit")])
        options = ModelCheckOptions(check_for_tables_in_database_but_not_in_model=True)

        assert reconcile(model, live, options) == [
            "The table dbo.Audit is in the database but not in the entity model."
        ]

    def test_database_only_reported_before_model_only(self) -> None:
        model = _model(tables=[("dbo", "B"), ("dbo", "Shared")])
        live = _live(tables=[("dbo", "A"), ("dbo", "Shared")])

        assert reconcile(model, live, STRICT) == [
            "The table dbo.A is in the database but not in the entity model.",
            "The table dbo.B is in the model but not in the database.",
        ]

    def test_source_order_preserved_not_sorted(self) -> None:
        model = _model(tables=[("dbo", "Zeta"), ("dbo", "Alpha"), ("dbo", "Mid")])

        errors = reconcile(model, _live())

        assert errors == [
            "The table dbo.Zeta is in the model but not in the database.",
            "The table dbo.Alpha is in the model but not in the database.",
            "The table dbo.Mid is in the model but not in the database.",
        ]

    def test_duplicate_table_reported_once(self) -> None:
        model = _model(tables=[("dbo", "Orders"), ("dbo", "Orders")])

        assert len(reconcile(model, _live())) == 1

    def test_same_name_in_other_schema_is_a_different_table(self) -> None:
        model = _model(tables=[("sales", "Orders")])
        live = _live(tables=[("dbo", "Orders")])

        assert reconcile(model, live, STRICT) == [
            "The table dbo.Orders is in the database but not in the entity model.",
            "The table sales.Orders is in the model but not in the database.",
        ]


# ============================================================
# Columns
# ============================================================


class TestColumns:
    """Column existence and column field comparisons."""

    def test_order_scenario(self) -> None:
        """Nullable Id in the database, Total missing from it."""
        order = _entity(
            "Order",
            _table_mapping(
                "Orders",
                _prop("Id", int, nullable=False, length=0),
                _prop("Total", Optional[str], nullable=True, length=-1),
            ),
        )
        model = _model(entities=[order], tables=[("dbo", "Orders")])
        live = _live({("dbo", "Orders"): [_col("Id", int, nullable=True, length=0)]})

        errors = reconcile(model, live, ModelCheckOptions(check_for_columns_in_database_but_not_in_model=True))

        assert errors == [
            "The column Id in table Orders is nullable, but the int property is not nullable.",
            "The column Total doesn't exist in the table Orders.",
        ]

    def test_column_not_in_model(self) -> None:
        model = _model(entities=[_entity("Order", _table_mapping("Orders", _prop("Id")))])
        live = _live({("dbo", "Orders"): [_col("Id"), _col("Legacy")]})
        options = ModelCheckOptions(check_for_columns_in_database_but_not_in_model=True)

        assert reconcile(model, live, options) == [
            "The column Legacy in table Orders is not in the entity model."
        ]

    def test_column_not_in_model_off_by_default(self) -> None:
        model = _model(entities=[_entity("Order", _table_mapping("Orders", _prop("Id")))])
        live = _live({("dbo", "Orders"): [_col("Id"), _col("Legacy")]})

        assert reconcile(model, live) == []

    def test_missing_table_reports_every_column(self) -> None:
        model = _model(
            entities=[_entity("Order", _table_mapping("Orders", _prop("Id"), _prop("Ref")))]
        )

        assert reconcile(model, _live()) == [
            "The column Id doesn't exist in the table Orders.",
            "The column Ref doesn't exist in the table Orders.",
        ]

    def test_data_type_mismatch(self) -> None:
        model = _model(entities=[_entity("Order", _table_mapping("Orders", _prop("Ref", int)))])
        live = _live({("dbo", "Orders"): [_col("Ref", str)]})

        assert reconcile(model, live) == [
            "The column Ref in table Orders has a data type of int which does not "
            "match with the database (str)."
        ]

    def test_unknown_database_type_is_its_own_message(self) -> None:
        model = _model(entities=[_entity("Order", _table_mapping("Orders", _prop("Geo", str)))])
        live = _live({("dbo", "Orders"): [_col("Geo", None)]})

        assert reconcile(model, live) == [
            "The column Geo in table Orders has an unknown data type of str."
        ]

    def test_optional_wrapper_ignored_for_type_comparison(self) -> None:
        model = _model(
            entities=[_entity("Order", _table_mapping("Orders", _prop("Qty", Optional[int], nullable=True)))]
        )
        live = _live({("dbo", "Orders"): [_col("Qty", int, nullable=True)]})

        assert reconcile(model, live) == []

    def test_not_nullable_column_nullable_property(self) -> None:
        model = _model(
            entities=[_entity("Order", _table_mapping("Orders", _prop("Qty", Optional[int], nullable=True)))]
        )
        live = _live({("dbo", "Orders"): [_col("Qty", int, nullable=False)]})

        assert reconcile(model, live) == [
            "The column Qty in table Orders is not nullable, but the Optional[int] "
            "property is nullable."
        ]

    def test_nullability_agreement_gives_no_message(self) -> None:
        model = _model(
            entities=[_entity("Order", _table_mapping("Orders", _prop("A"), _prop("B", nullable=True)))]
        )
        live = _live({("dbo", "Orders"): [_col("A"), _col("B", nullable=True)]})

        assert reconcile(model, live) == []

    def test_each_mismatching_field_has_its_own_message(self) -> None:
        model = _model(
            entities=[_entity("Order", _table_mapping("Orders", _prop("Code", int, nullable=False, length=0)))]
        )
        live = _live({("dbo", "Orders"): [_col("Code", str, nullable=True, length=10)]})

        errors = reconcile(model, live)

        assert len(errors) == 3
        assert "has a data type of int" in errors[0]
        assert "is nullable, but the int property is not nullable" in errors[1]
        assert "has a maximum length which does not agree with the int property" in errors[2]

    def test_column_lookup_uses_table_schema(self) -> None:
        model = _model(
            entities=[_entity("Log", _table_mapping("Log", _prop("Id"), schema="audit"))]
        )
        live = _live({("dbo", "Log"): [_col("Other")], ("audit", "Log"): [_col("Id")]})
        options = ModelCheckOptions(check_for_columns_in_database_but_not_in_model=True)

        assert reconcile(model, live, options) == []


class TestMaximumLength:
    """The -1 sentinel stands for unbounded text/binary on both sides."""

    def _schemas(self, model_length: int, database_length: int) -> tuple[ModelSchema, LiveSchema]:
        model = _model(
            entities=[_entity("Note", _table_mapping("Notes", _prop("Body", str, length=model_length)))]
        )
        live = _live({("dbo", "Notes"): [_col("Body", str, length=database_length)]})
        return model, live

    def test_unbounded_on_both_sides_matches(self) -> None:
        assert reconcile(*self._schemas(-1, -1)) == []

    @pytest.mark.parametrize("model_length, database_length", [(-1, 100), (100, -1), (50, 100), (200, 100)])
    def test_any_difference_is_one_mismatch(self, model_length: int, database_length: int) -> None:
        errors = reconcile(*self._schemas(model_length, database_length))

        assert errors == [
            "The column Body in table Notes has a maximum length which does not "
            "agree with the str property."
        ]


class TestEntityAndTableSplitting:
    """Entities spanning tables and tables shared by entities."""

    def test_entity_split_over_two_tables(self) -> None:
        customer = _entity(
            "Customer",
            _table_mapping("T1", _prop("Id"), _prop("Name", str, length=50)),
            _table_mapping("T2", _prop("Id"), _prop("Photo", bytes, length=-1)),
        )
        model = _model(entities=[customer], tables=[("dbo", "T1"), ("dbo", "T2")])
        live = _live(
            {
                ("dbo", "T1"): [_col("Id"), _col("Name", str, length=50)],
                ("dbo", "T2"): [_col("Id")],
            }
        )

        errors = reconcile(model, live)

        assert errors == ["The column Photo doesn't exist in the table T2."]

    def test_table_shared_by_two_entities(self) -> None:
        person = _entity("Person", _table_mapping("People", _prop("Id"), _prop("Name", str, length=-1)))
        address = _entity("Address", _table_mapping("People", _prop("Id"), _prop("Street", str, length=-1)))
        model = _model(entities=[person, address], tables=[("dbo", "People")])
        live = _live({("dbo", "People"): [_col("Id"), _col("Name", str, length=-1)]})

        assert reconcile(model, live) == ["The column Street doesn't exist in the table People."]


# ============================================================
# Relationships
# ============================================================


def _composite_rows() -> list[SqlRelationship]:
    # Deliberately out of ordinal order
    return [
        _fk("FK_X", 2, "A", "k2", "B", "a_k2"),
        _fk("FK_X", 3, "A", "k3", "B", "a_k3"),
        _fk("FK_X", 1, "A", "k1", "B", "a_k1"),
    ]


class TestGroupRelationships:
    """Foreign key rows reassembled into whole constraints."""

    def test_rows_ordered_by_ordinal_position(self) -> None:
        groups = group_relationships(_composite_rows())

        assert len(groups) == 1
        assert groups[0].from_table == "A"
        assert groups[0].to_table == "B"
        assert groups[0].from_properties == ("k1", "k2", "k3")
        assert groups[0].to_properties == ("a_k1", "a_k2", "a_k3")

    def test_groups_keep_first_seen_order(self) -> None:
        rows = [
            _fk("FK_B", 1, "P", "id", "C2", "p_id"),
            _fk("FK_A", 1, "P", "id", "C1", "p_id"),
        ]

        assert [g.to_table for g in group_relationships(rows)] == ["C2", "C1"]

    def test_same_name_in_different_schemas_not_merged(self) -> None:
        rows = [
            _fk("FK_P", 1, "P", "id", "C", "p_id", schema="dbo"),
            _fk("FK_P", 1, "P", "id", "C", "p_id", schema="audit"),
        ]

        assert len(group_relationships(rows)) == 2

    def test_same_name_on_different_tables_not_merged(self) -> None:
        rows = [
            _fk("fk_parent", 1, "P", "id", "A", "p_id"),
            _fk("fk_parent", 1, "P", "id", "B", "p_id"),
        ]

        groups = group_relationships(rows)

        assert [(g.from_table, g.to_table) for g in groups] == [("P", "A"), ("P", "B")]
        assert all(g.to_properties == ("p_id",) for g in groups)


class TestRelationships:
    """Relationship comparison over grouped constraints."""

    def test_composite_key_in_matching_order(self) -> None:
        model = _model(
            relationships=[
                RelationshipMapping(
                    from_table="A",
                    from_properties=("k1", "k2", "k3"),
                    to_table="B",
                    to_properties=("a_k1", "a_k2", "a_k3"),
                )
            ]
        )
        live = _live(relationships=_composite_rows())

        assert reconcile(model, live, STRICT) == []

    def test_composite_key_in_wrong_order(self) -> None:
        model = _model(
            relationships=[
                RelationshipMapping(
                    from_table="A",
                    from_properties=("k2", "k1", "k3"),
                    to_table="B",
                    to_properties=("a_k2", "a_k1", "a_k3"),
                )
            ]
        )
        live = _live(relationships=_composite_rows())

        assert reconcile(model, live) == [
            "The relationship between A and B from keys k2,k1,k3 to a_k2,a_k1,a_k3 "
            "is not in the database."
        ]

    def test_partial_key_does_not_match(self) -> None:
        model = _model(
            relationships=[
                RelationshipMapping(
                    from_table="A", from_properties=("k1",), to_table="B", to_properties=("a_k1",)
                )
            ]
        )
        live = _live(relationships=_composite_rows())

        assert reconcile(model, live, STRICT) == [
            "The relationship between A and B from keys k1,k2,k3 to a_k1,a_k2,a_k3 "
            "is in the database but not in the entity model.",
            "The relationship between A and B from keys k1 to a_k1 is not in the database.",
        ]

    def test_database_only_relationship_off_by_default(self) -> None:
        live = _live(relationships=_composite_rows())

        assert reconcile(_model(), live) == []

    def test_reversed_direction_does_not_match(self) -> None:
        model = _model(
            relationships=[
                RelationshipMapping(
                    from_table="Orders", from_properties=("Id",), to_table="Lines", to_properties=("OrderId",)
                )
            ]
        )
        live = _live(relationships=[_fk("FK_1", 1, "Lines", "OrderId", "Orders", "Id")])

        assert len(reconcile(model, live)) == 1


# ============================================================
# Schema filter
# ============================================================


class TestSchemaFilter:
    """With a schema filter, other schemas never appear in the output."""

    def test_other_schema_never_mentioned(self) -> None:
        audit_entity = _entity("Change", _table_mapping("Changes", _prop("Id"), schema="audit"))
        order = _entity("Order", _table_mapping("Orders", _prop("Id")))
        model = _model(
            entities=[order, audit_entity],
            tables=[("dbo", "Orders"), ("audit", "Changes")],
            relationships=[
                RelationshipMapping(
                    from_table="Changes",
                    from_properties=("Id",),
                    to_table="ChangeLines",
                    to_properties=("ChangeId",),
                    from_schema="audit",
                    to_schema="audit",
                )
            ],
        )
        live = _live(
            {
                ("dbo", "Orders"): [_col("Id")],
                ("audit", "Log"): [_col("Id")],
            },
            relationships=[_fk("FK_Log", 1, "Log", "Id", "LogLines", "LogId", schema="audit")],
        )

        errors = reconcile(model, live, ModelCheckOptions.strict("dbo"))

        assert errors == []

    def test_without_filter_other_schema_reported(self) -> None:
        model = _model(tables=[("dbo", "Orders")])
        live = _live(tables=[("dbo", "Orders"), ("audit", "Log")])

        assert reconcile(model, live, STRICT) == [
            "The table audit.Log is in the database but not in the entity model."
        ]


# ============================================================
# Properties of the engine
# ============================================================


def _busy_schemas() -> tuple[ModelSchema, LiveSchema]:
    order = _entity(
        "Order",
        _table_mapping("Orders", _prop("Id"), _prop("Code", str, length=10), _prop("Gone")),
    )
    model = _model(
        entities=[order],
        tables=[("dbo", "Orders"), ("dbo", "OnlyModel")],
        relationships=[
            RelationshipMapping(
                from_table="Orders", from_properties=("Id",), to_table="Lines", to_properties=("OrderId",)
            )
        ],
    )
    live = _live(
        {
            ("dbo", "Orders"): [_col("Id", nullable=True), _col("Code", str, length=20), _col("Extra")],
            ("dbo", "OnlyDb"): [_col("Id")],
        },
        relationships=[_fk("FK_Other", 1, "OnlyDb", "Id", "Orders", "Extra")],
    )
    return model, live


FLAGS = [
    "check_for_tables_in_database_but_not_in_model",
    "check_for_tables_in_model_but_not_in_database",
    "check_for_columns_in_database_but_not_in_model",
    "check_for_columns_in_model_but_not_in_database",
    "check_for_relationships_in_database_but_not_in_model",
    "check_for_relationships_in_model_but_not_in_database",
]


class TestEngineProperties:
    """Idempotence and independence of the check categories."""

    def test_idempotent(self) -> None:
        model, live = _busy_schemas()

        assert reconcile(model, live, STRICT) == reconcile(model, live, STRICT)

    def test_every_category_finds_something(self) -> None:
        model, live = _busy_schemas()

        for flag in FLAGS:
            only = ModelCheckOptions(**{f: f == flag for f in FLAGS})
            assert reconcile(model, live, only), flag

    @pytest.mark.parametrize("disabled", FLAGS)
    def test_disabling_one_check_leaves_the_others(self, disabled: str) -> None:
        model, live = _busy_schemas()
        only_disabled = ModelCheckOptions(**{f: f == disabled for f in FLAGS})
        without = ModelCheckOptions(**{f: f != disabled for f in FLAGS})

        full = Counter(reconcile(model, live, STRICT))
        expected = full - Counter(reconcile(model, live, only_disabled))

        assert Counter(reconcile(model, live, without)) == expected

    def test_all_checks_disabled_reports_nothing(self) -> None:
        model, live = _busy_schemas()
        options = ModelCheckOptions(**{f: False for f in FLAGS})

        assert reconcile(model, live, options) == []

    def test_empty_schemas(self) -> None:
        assert reconcile(ModelSchema(), LiveSchema(), STRICT) == []
