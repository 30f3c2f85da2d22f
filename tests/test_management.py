"""Tests for relationship schema management."""

import pytest

from featuregraph.exceptions import (
    CategoryInUseError,
    ConflictingInverseError,
    InvalidDetectionModeError,
    InvalidSchemaError,
    InverseMismatchError,
    SchemaNameTakenError,
    TypeInUseError,
    UnknownTypeError,
)
from featuregraph.graph import SchemaRegistry, add_relationship
from featuregraph.management import (
    DeletePolicy,
    define_category,
    define_type,
    delete_category,
    delete_type,
    update_category,
    update_type,
)
from featuregraph.models import CycleDetection, Relationship


@pytest.fixture()
def linked(schema, make_nodes):
    nodes, f = make_nodes("A", "B", "C")
    add_relationship(schema, nodes, f["A"], "depends-on", f["B"])
    add_relationship(schema, nodes, f["C"], "depends-on", f["B"])
    add_relationship(schema, nodes, f["A"], "blocks", f["C"])
    return nodes, f


class TestDefineType:
    def test_creates_inverse(self, schema):
        result = define_type(schema, "extends", category="structural", inverse="extended-by")
        assert result.inverse_created
        types = result.schema.types
        assert types["extended-by"].inverse == "extends"
        assert types["extended-by"].category == "structural"
        assert types["extended-by"].description == "Inverse of extends"
        assert SchemaRegistry(result.schema).is_forward("extends")
        assert "extends" not in schema.types

    def test_default_category(self, schema):
        result = define_type(schema, "mentions-in-passing")
        assert result.schema.types["mentions-in-passing"].category == "informational"

    def test_category_alias(self, schema):
        schema.categories["structural"].aliases = ["core"]
        result = define_type(schema, "wraps", category="core")
        assert result.schema.types["wraps"].category == "structural"

    def test_copy_from(self, schema):
        result = define_type(schema, "builds-on", copy_from="needs")
        cfg = result.schema.types["builds-on"]
        assert cfg.category == "structural"
        assert cfg.inverse is None
        assert cfg.aliases == []
        assert cfg.description == schema.types["depends-on"].description

    def test_name_taken(self, schema):
        with pytest.raises(SchemaNameTakenError):
            define_type(schema, "needs")

    def test_bidirectional_with_inverse(self, schema):
        with pytest.raises(ConflictingInverseError):
            define_type(schema, "pairs-with", bidirectional=True, inverse="paired-by")

    def test_inverse_already_paired(self, schema):
        with pytest.raises(InverseMismatchError):
            define_type(schema, "gates", inverse="blocked-by")

    def test_custom_types_disabled(self, schema):
        schema.settings.allow_custom_types = False
        with pytest.raises(InvalidSchemaError):
            define_type(schema, "extends")


class TestUpdateType:
    """Tests for update_type."""

    def test_rename_rewrites_edges(self, schema, linked, recorder):
        nodes, f = linked
        result = update_type(schema, nodes, "depends-on", new_name="builds-on", on_save=recorder)
        assert result.renamed
        assert result.updated_relationships == 2
        assert recorder.names == ["A", "C"]
        assert f["A"].find_relationship("builds-on", f["B"].id) is not None
        types = result.schema.types
        assert "depends-on" not in types
        assert types["required-by"].inverse == "builds-on"
        assert result.schema.settings.tree_type == "builds-on"
        assert list(types)[0] == "builds-on"

    def test_rename_rewrites_alias_typed_edges(self, schema, make_nodes):
        nodes, f = make_nodes("A", "B")
        f["A"].relationships.append(Relationship.new("requires", f["B"].id, "B"))
        f["B"].relationships.append(Relationship.new("required-by", f["A"].id, "A"))
        result = update_type(schema, nodes, "depends-on", new_name="builds-on", keep_old_as_alias=True)
        assert result.updated_relationships == 1
        assert [rel.type for rel in f["A"].relationships] == ["builds-on"]

    def test_rename_keeps_alias(self, schema, linked):
        nodes, _ = linked
        result = update_type(schema, nodes, "depends-on", new_name="builds-on", keep_old_as_alias=True)
        assert result.schema.types["builds-on"].aliases == ["depends-on", "needs", "requires"]
        assert SchemaRegistry(result.schema).resolve_type("depends-on")[0] == "builds-on"

    def test_rename_with_inverse(self, schema, linked):
        nodes, f = linked
        result = update_type(schema, nodes, "depends-on", new_name="builds-on", rename_inverse="built-upon-by")
        assert result.inverse_renamed
        assert result.updated_relationships == 4
        assert f["B"].find_relationship("built-upon-by", f["A"].id) is not None
        assert result.schema.types["builds-on"].inverse == "built-upon-by"

    def test_rename_to_taken_name(self, schema, linked):
        nodes, f = linked
        before = [rel.type for rel in f["A"].relationships]
        with pytest.raises(SchemaNameTakenError):
            update_type(schema, nodes, "depends-on", new_name="contains")
        assert [rel.type for rel in f["A"].relationships] == before

    def test_settings_only(self, schema, linked):
        nodes, _ = linked
        result = update_type(
            schema,
            nodes,
            "references",
            description="Points at",
            add_aliases=["cites"],
            remove_aliases=["mentions"],
        )
        cfg = result.schema.types["references"]
        assert cfg.description == "Points at"
        assert cfg.aliases == ["cites", "uses"]
        assert result.updated_relationships == 0

    def test_make_bidirectional_unpairs(self, schema, linked):
        nodes, _ = linked
        result = update_type(schema, nodes, "tested-by", bidirectional=True)
        assert result.schema.types["tested-by"].inverse is None
        assert result.schema.types["tests"].inverse is None

    def test_unknown_type(self, schema, linked):
        nodes, _ = linked
        with pytest.raises(UnknownTypeError):
            update_type(schema, nodes, "nope", description="x")


class TestDeleteType:
    def test_refuses_in_use(self, schema, linked):
        nodes, _ = linked
        with pytest.raises(TypeInUseError) as exc:
            delete_type(schema, nodes, "depends-on")
        assert len(exc.value.usages) == 4
        assert exc.value.exit_code == 7

    def test_unused(self, schema, linked):
        nodes, _ = linked
        result = delete_type(schema, nodes, "replaces")
        assert result.inverse_type == "replaced-by"
        assert "replaces" not in result.schema.types
        assert "replaced-by" not in result.schema.types

    def test_migrate(self, schema, linked, recorder):
        nodes, f = linked
        result = delete_type(schema, nodes, "blocks", migrate_to="depends-on", on_save=recorder)
        assert result.policy == DeletePolicy.MIGRATE
        assert result.migrated_relationships == 2
        assert f["A"].find_relationship("depends-on", f["C"].id) is not None
        assert f["C"].find_relationship("required-by", f["A"].id) is not None
        assert sorted(recorder.names) == ["A", "C"]

    def test_migrate_drops_duplicates(self, schema, make_nodes):
        nodes, f = make_nodes("A", "B")
        add_relationship(schema, nodes, f["A"], "depends-on", f["B"])
        add_relationship(schema, nodes, f["A"], "contains", f["B"])
        result = delete_type(schema, nodes, "contains", migrate_to="depends-on")
        assert result.deleted_relationships == 2
        assert len(f["A"].relationships) == 1
        assert len(f["B"].relationships) == 1

    def test_alias_typed_edges_count_as_usage(self, schema, make_nodes):
        nodes, f = make_nodes("A", "B")
        f["A"].relationships.append(Relationship.new("has", f["B"].id, "B"))
        with pytest.raises(TypeInUseError):
            delete_type(schema, nodes, "contains")
        result = delete_type(schema, nodes, "contains", policy=DeletePolicy.CASCADE)
        assert result.deleted_relationships == 1
        assert f["A"].relationships == []

    def test_migrate_to_deleted_type(self, schema, linked):
        nodes, _ = linked
        with pytest.raises(InvalidSchemaError):
            delete_type(schema, nodes, "depends-on", migrate_to="required-by")

    def test_cascade(self, schema, linked):
        nodes, f = linked
        result = delete_type(schema, nodes, "needs", policy=DeletePolicy.CASCADE)
        assert result.type_name == "depends-on"
        assert result.deleted_relationships == 4
        assert result.schema.settings.tree_type is None
        assert [rel.type for rel in f["A"].relationships] == ["blocks"]


class TestCategories:
    """Tests for category definition, update and deletion."""

    def test_define(self, schema):
        result = define_category(schema, "security", cycle_detection="warn")
        category = result.schema.categories["security"]
        assert category.cycle_detection == CycleDetection.WARN
        assert "security" not in schema.categories

    def test_define_allowing_cycles_defaults_to_none(self, schema):
        result = define_category(schema, "loose", allow_cycles=True)
        assert result.schema.categories["loose"].cycle_detection == CycleDetection.NONE

    def test_invalid_detection_mode(self, schema):
        with pytest.raises(InvalidDetectionModeError) as exc:
            define_category(schema, "security", cycle_detection="sometimes")
        assert exc.value.exit_code == 4

    def test_cycles_allowed_with_strict(self, schema):
        with pytest.raises(InvalidSchemaError):
            define_category(schema, "loose", allow_cycles=True, cycle_detection="strict")

    def test_define_taken(self, schema):
        with pytest.raises(SchemaNameTakenError):
            define_category(schema, "workflow")

    def test_rename_updates_types(self, schema):
        result = update_category(schema, "structural", new_name="core", keep_old_as_alias=True)
        assert result.types_updated == 8
        assert result.schema.types["depends-on"].category == "core"
        assert list(result.schema.categories)[0] == "core"
        assert SchemaRegistry(result.schema).resolve_category("structural")[0] == "core"

    def test_rename_default_category(self, schema):
        result = update_category(schema, "informational", new_name="info")
        assert result.schema.settings.default_category == "info"

    def test_allow_cycles_switches_detection_off(self, schema):
        result = update_category(schema, "workflow", allow_cycles=True)
        assert result.schema.categories["workflow"].cycle_detection == CycleDetection.NONE

    def test_delete_in_use(self, schema, linked):
        nodes, _ = linked
        with pytest.raises(CategoryInUseError):
            delete_category(schema, nodes, "workflow")

    def test_delete_moving_types(self, schema, linked):
        nodes, f = linked
        result = delete_category(schema, nodes, "workflow", move_types_to="structural")
        assert result.moved_types == ["blocks", "blocked-by"]
        assert result.schema.types["blocks"].category == "structural"
        assert f["A"].find_relationship("blocks", f["C"].id) is not None

    def test_delete_default_category(self, schema, linked):
        nodes, _ = linked
        result = delete_category(schema, nodes, "informational", move_types_to="workflow")
        assert result.schema.settings.default_category == "workflow"

    def test_delete_cascade(self, schema, linked, recorder):
        nodes, f = linked
        result = delete_category(schema, nodes, "workflow", policy=DeletePolicy.CASCADE, on_save=recorder)
        assert result.deleted_types == ["blocks", "blocked-by"]
        assert result.deleted_relationships == 2
        assert f["A"].find_relationship("blocks", f["C"].id) is None
        assert sorted(recorder.names) == ["A", "C"]

    def test_delete_empty(self, schema, linked):
        nodes, _ = linked
        result = delete_category(schema, nodes, "compliance")
        assert "compliance" not in result.schema.categories
