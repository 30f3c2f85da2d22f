"""Recursive relationship traversal.

Breadth-first exploration of the relationship graph from one feature, over
outgoing edges, incoming edges or both, optionally restricted to a set of
relationship types. Unlike impact analysis this ignores categories and is
meant for ad hoc exploration.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from featuregraph.models import Feature, Relationship, Schema

from .nodes import NodeSet
from .registry import SchemaRegistry

logger = structlog.get_logger(__name__)


class TraversalDirection(str, Enum):
    """Direction to follow edges during traversal."""

    OUTGOING = "outgoing"  # edges stored on the current feature
    INCOMING = "incoming"  # edges other features hold pointing here
    BOTH = "both"


@dataclass(frozen=True)
class Hop:
    """One edge seen from the feature being expanded."""

    neighbor_id: str
    relationship: Relationship
    outgoing: bool


def incoming_index(nodes: NodeSet) -> dict[str, list[tuple[Feature, Relationship]]]:
    """Map each target id to the (holder, edge) pairs pointing at it."""
    index: dict[str, list[tuple[Feature, Relationship]]] = {}
    for feature in nodes:
        for rel in feature.relationships:
            if rel.target_id:
                index.setdefault(rel.target_id, []).append((feature, rel))
    return index


def neighbors(
    nodes: NodeSet,
    feature_id: str,
    direction: TraversalDirection,
    incoming: dict[str, list[tuple[Feature, Relationship]]],
) -> list[Hop]:
    hops: list[Hop] = []
    if direction in (TraversalDirection.OUTGOING, TraversalDirection.BOTH):
        feature = nodes.get(feature_id)
        if feature is not None:
            hops.extend(Hop(rel.target_id, rel, True) for rel in feature.relationships)
    if direction in (TraversalDirection.INCOMING, TraversalDirection.BOTH):
        hops.extend(Hop(holder.id, rel, False) for holder, rel in incoming.get(feature_id, []))
    return hops


@dataclass
class RecursiveRelationship:
    """An edge reached during traversal, with its position relative to the start."""

    source_id: str
    source_name: str
    target_id: str
    target_name: str
    type: str
    depth: int
    direction: TraversalDirection
    path: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_name": self.source_name,
            "target_id": self.target_id,
            "target_name": self.target_name,
            "type": self.type,
            "depth": self.depth,
            "direction": self.direction.value,
            "path": list(self.path),
        }


@dataclass
class TraversalOptions:
    direction: TraversalDirection = TraversalDirection.OUTGOING
    types: list[str] = field(default_factory=list)
    max_depth: int = 0  # 0 or negative means unlimited


@dataclass
class TraversalResult:
    feature: Feature
    direction: TraversalDirection
    relationships: list[RecursiveRelationship] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.relationships)

    @property
    def max_depth_reached(self) -> int:
        return max((r.depth for r in self.relationships), default=0)

    def by_depth(self) -> dict[int, list[RecursiveRelationship]]:
        grouped: dict[int, list[RecursiveRelationship]] = {}
        for rel in self.relationships:
            grouped.setdefault(rel.depth, []).append(rel)
        return grouped

    def to_records(self) -> list[dict[str, Any]]:
        return [
            {"feature_id": self.feature.id, "feature_name": self.feature.name, **rel.to_dict()}
            for rel in self.relationships
        ]


def traverse_relationships(
    schema: Schema,
    nodes: NodeSet,
    feature: Feature,
    options: TraversalOptions | None = None,
) -> TraversalResult:
    """Breadth-first traversal from ``feature``.

    Every edge passing the type filter is reported at the depth of the
    feature it was expanded from plus one, including edges that lead back to
    features already reached. Each feature is expanded at most once, and
    edges to features outside the node set are reported but not expanded.

    Args:
        schema: Relationship schema, used to resolve type aliases in the filter
        nodes: Node set to traverse
        feature: Starting feature
        options: Direction, type filter and depth bound

    Returns:
        TraversalResult with edges in breadth-first order

    Raises:
        UnknownTypeError: a type in the filter does not resolve

    Example:
        >>> options = TraversalOptions(types=["depends-on"], max_depth=2)
        >>> result = traverse_relationships(schema, nodes, auth, options)
        >>> [r.target_name for r in result.relationships]
        ['Login', 'Sessions']
    """
    options = options or TraversalOptions()
    registry = SchemaRegistry(schema)
    wanted = {registry.resolve_type(name)[0] for name in options.types}

    incoming = incoming_index(nodes)
    result = TraversalResult(feature=feature, direction=options.direction)
    visited = {feature.id}
    # stored edges already reported; with BOTH an edge is seen from each end
    reported: set[int] = set()
    paths = {feature.id: [feature.name]}
    queue: deque[tuple[str, int]] = deque([(feature.id, 0)])

    while queue:
        current_id, depth = queue.popleft()
        if options.max_depth > 0 and depth >= options.max_depth:
            continue
        for hop in neighbors(nodes, current_id, options.direction, incoming):
            rel = hop.relationship
            if wanted and registry.canonical_type(rel.type) not in wanted:
                continue
            if id(rel) in reported:
                continue
            reported.add(id(rel))

            neighbor_name = nodes.name_of(hop.neighbor_id, rel.target_name or hop.neighbor_id)
            path = [*paths[current_id], neighbor_name]
            if hop.outgoing:
                source_id, source_name = current_id, nodes.name_of(current_id, current_id)
                target_id, target_name = hop.neighbor_id, neighbor_name
            else:
                source_id, source_name = hop.neighbor_id, neighbor_name
                target_id, target_name = current_id, nodes.name_of(current_id, current_id)

            result.relationships.append(
                RecursiveRelationship(
                    source_id=source_id,
                    source_name=source_name,
                    target_id=target_id,
                    target_name=target_name,
                    type=rel.type,
                    depth=depth + 1,
                    direction=TraversalDirection.OUTGOING if hop.outgoing else TraversalDirection.INCOMING,
                    path=path,
                )
            )
            if hop.neighbor_id in nodes and hop.neighbor_id not in visited:
                visited.add(hop.neighbor_id)
                paths[hop.neighbor_id] = path
                queue.append((hop.neighbor_id, depth + 1))

    logger.debug("traversal_complete", feature=feature.id, edges=result.total, direction=options.direction.value)
    return result
