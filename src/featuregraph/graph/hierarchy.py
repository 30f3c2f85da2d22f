"""Hierarchy (tree) construction over a family of relationship types."""
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import structlog

from featuregraph.exceptions import NoHierarchyTypeError
from featuregraph.models import Feature, FeatureState, Relationship, Schema

from .nodes import NodeSet
from .registry import SchemaRegistry

logger = structlog.get_logger(__name__)


def determine_hierarchy_types(schema: Schema, explicit: list[str] | None = None) -> list[str]:
    """Pick the relationship types a tree is built from.

    Order of preference: ``explicit`` types (names or aliases), the
    configured ``tree_type``, then the first type whose category forbids
    cycles.

    Raises:
        UnknownTypeError: an explicit type does not resolve
        NoHierarchyTypeError: nothing usable is configured
    """
    registry = SchemaRegistry(schema)
    if explicit:
        resolved: list[str] = []
        for name in explicit:
            canonical = registry.resolve_type(name)[0]
            if canonical not in resolved:
                resolved.append(canonical)
        return resolved

    tree_type = schema.settings.tree_type
    if tree_type and tree_type in schema.types:
        return [tree_type]

    for name, cfg in schema.types.items():
        category = schema.categories.get(cfg.category)
        if category is not None and not category.allow_cycles:
            return [name]
    raise NoHierarchyTypeError()


def _is_hierarchy_edge(rel_type: str, wanted: set[str], registry: SchemaRegistry | None) -> bool:
    if rel_type in wanted:
        return True
    return registry is not None and registry.canonical_type(rel_type) in wanted


def find_roots(nodes: NodeSet, types: list[str], registry: SchemaRegistry | None = None) -> list[Feature]:
    """Features that no other feature points at with a hierarchy edge.

    With a ``registry``, edges stored under an alias of a hierarchy type count.
    """
    wanted = set(types)
    targeted = {
        rel.target_id
        for feature in nodes
        for rel in feature.relationships
        if rel.target_id != feature.id and _is_hierarchy_edge(rel.type, wanted, registry)
    }
    return [feature for feature in nodes if feature.id not in targeted]


@dataclass
class TreeNode:
    feature_id: str
    name: str
    state: str
    depth: int
    relationship_type: str | None = None
    children: list[TreeNode] = field(default_factory=list)
    cycle: bool = False  # edge points back to an ancestor; not expanded
    truncated: bool = False  # depth limit hit before the children

    def walk(self):
        """Yield this node and its descendants in pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self, parent_id: str | None = None) -> dict[str, Any]:
        return {
            "feature_id": self.feature_id,
            "name": self.name,
            "state": self.state,
            "depth": self.depth,
            "relationship_type": self.relationship_type,
            "parent_id": parent_id,
            "cycle": self.cycle,
            "truncated": self.truncated,
        }


@dataclass
class TreeOptions:
    types: list[str] = field(default_factory=list)
    max_depth: int = -1  # negative means unlimited
    category: str | None = None
    state: FeatureState | None = None


@dataclass
class TreeResult:
    types: list[str]
    roots: list[TreeNode] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(1 for root in self.roots for _ in root.walk())

    def to_records(self) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for root in self.roots:
            stack: list[tuple[TreeNode, str | None]] = [(root, None)]
            while stack:
                node, parent_id = stack.pop()
                records.append(node.to_dict(parent_id))
                stack.extend((child, node.feature_id) for child in reversed(node.children))
        return records


def build_tree(
    nodes: NodeSet,
    root: Feature,
    types: list[str],
    max_depth: int = -1,
    registry: SchemaRegistry | None = None,
) -> TreeNode:
    """Expand ``root`` along outgoing hierarchy edges, depth first.

    Uses an explicit stack, so chain length is not bounded by the
    interpreter's recursion limit. The features on the current path are
    tracked; an edge back into the path is marked as a cycle and not followed.
    """
    wanted = set(types)
    on_path: set[str] = set()
    # (tree node, feature id, remaining (edge, child) pairs)
    stack: list[tuple[TreeNode, str, Iterator[tuple[Relationship, Feature]]]] = []

    def enter(feature: Feature, node: TreeNode) -> None:
        children = [
            (rel, nodes.get(rel.target_id))
            for rel in feature.relationships
            if rel.target_id in nodes and _is_hierarchy_edge(rel.type, wanted, registry)
        ]
        if not children:
            return
        if max_depth >= 0 and node.depth >= max_depth:
            node.truncated = True
            return
        on_path.add(feature.id)
        stack.append((node, feature.id, iter(children)))

    top = TreeNode(root.id, root.name, root.state.value, 0)
    enter(root, top)
    while stack:
        node, feature_id, pending = stack[-1]
        step = next(pending, None)
        if step is None:
            stack.pop()
            on_path.discard(feature_id)
            continue
        rel, child = step
        child_node = TreeNode(child.id, child.name, child.state.value, node.depth + 1, rel.type)
        node.children.append(child_node)
        if child.id in on_path:
            child_node.cycle = True
            continue
        enter(child, child_node)
    return top


def build_forest(
    schema: Schema,
    nodes: NodeSet,
    options: TreeOptions | None = None,
    root: Feature | None = None,
) -> TreeResult:
    """Build hierarchy trees from every root, or from one named feature.

    Category and state filters are applied to the node set before roots are
    discovered, so a filtered-out parent promotes its children to roots.

    Raises:
        UnknownTypeError: an explicit type does not resolve
        NoHierarchyTypeError: no hierarchy type is available
    """
    options = options or TreeOptions()
    types = determine_hierarchy_types(schema, options.types)
    registry = SchemaRegistry(schema)

    scoped = nodes
    if options.category or options.state:
        category = None
        if options.category:
            # Feature categories are free-form metadata; aliases resolve when they match the schema
            category = registry.canonical_category(options.category) or options.category
        scoped = nodes.filter(
            lambda f: (category is None or f.category == category)
            and (options.state is None or f.state == options.state)
        )

    starts = [root] if root is not None else find_roots(scoped, types, registry)
    result = TreeResult(types=types)
    for start in starts:
        result.roots.append(build_tree(scoped, start, types, options.max_depth, registry))
    logger.debug("tree_built", types=types, roots=len(result.roots), nodes=result.total)
    return result
