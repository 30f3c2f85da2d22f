"""Impact analysis: which features are affected when one feature changes."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any

import structlog

from featuregraph.models import Feature, Schema

from .nodes import NodeSet
from .registry import SchemaRegistry
from .traversal import TraversalDirection, incoming_index, neighbors

logger = structlog.get_logger(__name__)


@dataclass
class ImpactOptions:
    max_depth: int = 0  # 0 or negative means unlimited
    include_categories: list[str] = field(default_factory=list)
    exclude_categories: list[str] = field(default_factory=list)
    all_categories: bool = False
    direction: TraversalDirection = TraversalDirection.OUTGOING


@dataclass
class ImpactedFeature:
    """A feature reached by impact analysis, with the first path that reached it."""

    feature_id: str
    name: str
    relationship_type: str
    category: str
    depth: int
    path: list[str] = field(default_factory=list)
    state: str = ""
    origin_branch: str = ""
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature_id": self.feature_id,
            "name": self.name,
            "relationship_type": self.relationship_type,
            "category": self.category,
            "depth": self.depth,
            "path": list(self.path),
            "state": self.state,
            "origin_branch": self.origin_branch,
            "warnings": list(self.warnings),
        }


@dataclass
class ImpactResult:
    feature: Feature
    categories: list[str]
    max_depth: int
    impacted: list[ImpactedFeature] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.impacted)

    @property
    def warnings(self) -> list[str]:
        return [warning for item in self.impacted for warning in item.warnings]

    def by_depth(self) -> dict[int, list[ImpactedFeature]]:
        grouped: dict[int, list[ImpactedFeature]] = {}
        for item in self.impacted:
            grouped.setdefault(item.depth, []).append(item)
        return grouped

    def to_records(self) -> list[dict[str, Any]]:
        return [
            {"feature_id": self.feature.id, "feature_name": self.feature.name, "impacted": item.to_dict()}
            for item in self.impacted
        ]


def included_categories(schema: Schema, options: ImpactOptions) -> list[str]:
    """Categories impact analysis follows, in schema order.

    Starts from every category (``all_categories``) or those flagged
    ``include_in_impact``, adds ``include_categories`` and removes
    ``exclude_categories``.

    Raises:
        UnknownCategoryError: an include or exclude name does not resolve
    """
    registry = SchemaRegistry(schema)
    include = {registry.resolve_category(name)[0] for name in options.include_categories}
    exclude = {registry.resolve_category(name)[0] for name in options.exclude_categories}
    selected = []
    for name, category in schema.categories.items():
        if name in exclude:
            continue
        if options.all_categories or category.include_in_impact or name in include:
            selected.append(name)
    return selected


def analyze_impact(
    schema: Schema,
    nodes: NodeSet,
    feature: Feature,
    options: ImpactOptions | None = None,
) -> ImpactResult:
    """Breadth-first impact traversal from ``feature``.

    Only edges whose type belongs to an included category are followed. Each
    feature is reported once, with the first (shortest) path found. An edge
    that leads back into the current path is recorded as a warning on the
    feature it leaves from instead of being followed again; the mirror edge
    leading straight back to the parent does not count as a loop.

    Args:
        schema: Relationship schema
        nodes: Node set to analyse
        feature: Feature whose change is being assessed
        options: Depth bound, category selection and direction

    Returns:
        ImpactResult listing impacted features in breadth-first order
    """
    options = options or ImpactOptions()
    registry = SchemaRegistry(schema)
    categories = included_categories(schema, options)
    allowed = set(categories)
    result = ImpactResult(feature=feature, categories=categories, max_depth=options.max_depth)

    incoming = incoming_index(nodes) if options.direction != TraversalDirection.OUTGOING else {}
    reached: dict[str, ImpactedFeature] = {}
    parents: dict[str, str | None] = {feature.id: None}
    ancestry: dict[str, frozenset[str]] = {feature.id: frozenset({feature.id})}
    paths: dict[str, list[str]] = {feature.id: [feature.name]}
    queue: deque[tuple[str, int]] = deque([(feature.id, 0)])

    while queue:
        current_id, depth = queue.popleft()
        if options.max_depth > 0 and depth >= options.max_depth:
            continue
        current = reached.get(current_id)
        for hop in neighbors(nodes, current_id, options.direction, incoming):
            rel = hop.relationship
            category = registry.category_of(rel.type)
            if category not in allowed:
                continue

            if hop.neighbor_id in parents:
                if current is None or hop.neighbor_id not in ancestry[current_id]:
                    continue
                if hop.neighbor_id == parents[current_id] and registry.is_mirror(current.relationship_type, rel.type):
                    continue
                loop_name = nodes.name_of(hop.neighbor_id, hop.neighbor_id)
                current.warnings.append(f"cycle: '{rel.type}' leads back to '{loop_name}'")
                continue

            neighbor = nodes.get(hop.neighbor_id)
            if neighbor is None:
                continue
            parents[neighbor.id] = current_id
            ancestry[neighbor.id] = ancestry[current_id] | {neighbor.id}
            paths[neighbor.id] = [*paths[current_id], neighbor.name]
            item = ImpactedFeature(
                feature_id=neighbor.id,
                name=neighbor.name,
                relationship_type=rel.type,
                category=category,
                depth=depth + 1,
                path=paths[neighbor.id],
                state=neighbor.state.value,
                origin_branch=nodes.origin_of(neighbor.id),
            )
            constrained = neighbor if hop.outgoing else nodes.get(current_id)
            constraint = rel.version_constraint
            if constraint is not None and constrained is not None:
                version = constrained.current_version_key()
                if not constraint.is_satisfied_by(version):
                    item.warnings.append(
                        f"version constraint {constraint} not satisfied by "
                        f"'{constrained.name}' (current version {version or 'none'})"
                    )
            reached[neighbor.id] = item
            result.impacted.append(item)
            queue.append((neighbor.id, depth + 1))

    logger.debug("impact_analyzed", feature=feature.id, impacted=result.total, categories=categories)
    return result
