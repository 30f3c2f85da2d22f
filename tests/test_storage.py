"""Tests for YAML feature and schema storage."""

from pathlib import Path

import pytest
import yaml

from featuregraph.exceptions import InvalidDetectionModeError, SchemaError, StorageError
from featuregraph.graph import NodeProvider, add_relationship
from featuregraph.models import Feature, Schema
from featuregraph.storage import FeatureStore, SchemaStore


class TestFeatureStore:
    """Tests for FeatureStore."""

    def test_save_and_load(self, tmp_path: Path, schema):
        store = FeatureStore(tmp_path / "features")
        app, lib = Feature.new("User Login", tags=["auth"]), Feature.new("Sessions")
        nodes = store.load_nodes()
        nodes.add(app)
        nodes.add(lib)
        add_relationship(schema, nodes, app, "depends-on", lib, version_constraint=">=1.2.0", on_save=store.save)

        assert (tmp_path / "features" / "user-login.yml").exists()
        loaded = FeatureStore(tmp_path / "features").load_nodes()
        again = loaded.get(app.id)
        assert again.name == "User Login"
        assert again.tags == ["auth"]
        rel = again.relationships[0]
        assert rel.type == "depends-on"
        assert str(rel.version_constraint) == ">=1.2.0"
        assert loaded.get(lib.id).relationships[0].type == "required-by"

    def test_rename_moves_file(self, tmp_path: Path):
        store = FeatureStore(tmp_path)
        feature = Feature.new("Old Name")
        store.save(feature)
        feature.name = "New Name"
        path = store.save(feature)
        assert path.name == "new-name.yml"
        assert not (tmp_path / "old-name.yml").exists()
        assert len(store.list()) == 1

    def test_name_collision(self, tmp_path: Path):
        store = FeatureStore(tmp_path)
        first, second = Feature.new("Search"), Feature.new("search")
        store.save(first)
        path = store.save(second)
        assert path.name != "search.yml"
        assert {f.id for f in store.list()} == {first.id, second.id}

    def test_delete(self, tmp_path: Path):
        store = FeatureStore(tmp_path)
        feature = Feature.new("Temp")
        store.save(feature)
        store.delete(feature)
        assert store.list() == []

    def test_version_keys_survive_yaml(self, tmp_path: Path):
        store = FeatureStore(tmp_path)
        feature = Feature.new("Versioned")
        store.save(feature)
        raw = yaml.safe_load((tmp_path / "versioned.yml").read_text())
        raw["versions"] = {1: raw["versions"]["1"], 2: raw["versions"]["1"]}
        (tmp_path / "versioned.yml").write_text(yaml.safe_dump(raw))
        assert store.list()[0].current_version_key() == "2"

    def test_bad_yaml(self, tmp_path: Path):
        (tmp_path / "broken.yml").write_text("name: [unclosed\n")
        with pytest.raises(StorageError):
            FeatureStore(tmp_path).list()

    def test_not_a_feature(self, tmp_path: Path):
        (tmp_path / "odd.yml").write_text("- just\n- a list\n")
        with pytest.raises(StorageError):
            FeatureStore(tmp_path).list()

    def test_missing_directory(self, tmp_path: Path):
        assert FeatureStore(tmp_path / "nope").list() == []


class TestSchemaStore:
    """Tests for SchemaStore."""

    def test_missing_file_gives_defaults(self, tmp_path: Path):
        schema = SchemaStore(tmp_path / "config.yml").load()
        assert schema.model_dump() == Schema.default().model_dump()

    def test_round_trip_preserves_other_keys(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text(yaml.safe_dump({"project": {"name": "demo"}}))
        store = SchemaStore(path)
        schema = store.load()
        schema.settings.tree_type = "contains"
        store.save(schema)
        data = yaml.safe_load(path.read_text())
        assert data["project"] == {"name": "demo"}
        assert store.load().settings.tree_type == "contains"

    def test_partial_settings_merge(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text(yaml.safe_dump({"relationships": {"settings": {"auto_create_inverse": False}}}))
        schema = SchemaStore(path).load()
        assert schema.settings.auto_create_inverse is False
        assert schema.settings.default_category == "informational"
        assert "depends-on" in schema.types

    def test_invalid_detection_mode(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        section = Schema.default().model_dump(mode="json")
        section["categories"]["workflow"]["cycle_detection"] = "loud"
        path.write_text(yaml.safe_dump({"relationships": section}))
        with pytest.raises(InvalidDetectionModeError):
            SchemaStore(path).load()

    def test_inconsistent_schema(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        section = Schema.default().model_dump(mode="json")
        section["types"]["required-by"]["inverse"] = "contains"
        path.write_text(yaml.safe_dump({"relationships": section}))
        with pytest.raises(SchemaError):
            SchemaStore(path).load()

    def test_bad_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("relationships: {oops\n")
        with pytest.raises(StorageError):
            SchemaStore(path).load()


def test_feature_store_is_node_provider(tmp_path: Path):
    assert isinstance(FeatureStore(tmp_path), NodeProvider)
