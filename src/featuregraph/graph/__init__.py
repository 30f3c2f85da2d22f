"""Relationship graph engine: registry, edits, cycle detection and queries."""

from .cycles import CycleCheck, CycleDetector
from .edits import (
    LinkResult,
    RemovedEdge,
    UnlinkResult,
    add_relationship,
    cleanup_incoming_relationships,
    clear_all_relationships,
    remove_relationship,
    sync_target_names,
)
from .hierarchy import TreeNode, TreeOptions, TreeResult, build_forest, build_tree, determine_hierarchy_types, find_roots
from .impact import ImpactedFeature, ImpactOptions, ImpactResult, analyze_impact, included_categories
from .nodes import NodeProvider, NodeSet, SaveCallback
from .registry import RelationshipKind, SchemaRegistry, TypeBehavior
from .traversal import (
    RecursiveRelationship,
    TraversalDirection,
    TraversalOptions,
    TraversalResult,
    traverse_relationships,
)

__all__ = [
    "CycleCheck",
    "CycleDetector",
    "ImpactOptions",
    "ImpactResult",
    "ImpactedFeature",
    "LinkResult",
    "NodeProvider",
    "NodeSet",
    "RecursiveRelationship",
    "RelationshipKind",
    "RemovedEdge",
    "SaveCallback",
    "SchemaRegistry",
    "TraversalDirection",
    "TraversalOptions",
    "TraversalResult",
    "TreeNode",
    "TreeOptions",
    "TreeResult",
    "TypeBehavior",
    "UnlinkResult",
    "add_relationship",
    "analyze_impact",
    "build_forest",
    "build_tree",
    "cleanup_incoming_relationships",
    "clear_all_relationships",
    "determine_hierarchy_types",
    "find_roots",
    "included_categories",
    "remove_relationship",
    "sync_target_names",
    "traverse_relationships",
]
