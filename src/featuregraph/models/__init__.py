"""Data models for features, relationships and the relationship schema."""

from .feature import Feature, FeatureState, FeatureVersion
from .relationship import ConstraintOperator, Relationship, VersionConstraint, new_id, parse_version
from .schema import (
    CycleDetection,
    RelationshipCategory,
    RelationshipSettings,
    RelationshipTypeConfig,
    Schema,
)

__all__ = [
    "ConstraintOperator",
    "CycleDetection",
    "Feature",
    "FeatureState",
    "FeatureVersion",
    "Relationship",
    "RelationshipCategory",
    "RelationshipSettings",
    "RelationshipTypeConfig",
    "Schema",
    "VersionConstraint",
    "new_id",
    "parse_version",
]
