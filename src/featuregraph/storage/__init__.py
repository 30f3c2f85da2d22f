"""File-backed collaborators: feature records and the relationship schema."""

from .feature_store import FeatureStore, dump_feature, load_feature
from .schema_store import SchemaStore

__all__ = ["FeatureStore", "SchemaStore", "dump_feature", "load_feature"]
