"""Category-scoped cycle detection for candidate edges."""
from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from featuregraph.exceptions import CycleDetectedError, SelfReferenceError
from featuregraph.models import CycleDetection, Feature, Schema

from .nodes import NodeSet
from .registry import SchemaRegistry

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CanonicalEdge:
    """An edge oriented in the forward direction of its type pair.

    ``holder_id`` is the feature whose record stores the edge, which differs
    from ``source_id`` for edges stored on the inverse side.
    """

    source_id: str
    type: str
    target_id: str
    holder_id: str
    relationship_id: str


def category_edges(registry: SchemaRegistry, nodes: NodeSet, category: str) -> dict[str, list[CanonicalEdge]]:
    """Adjacency of canonical edges whose type belongs to ``category``.

    A forward edge and its auto-created inverse collapse into one entry.
    Edges with an endpoint outside the node set are left out.
    """
    adjacency: dict[str, list[CanonicalEdge]] = {}
    seen: set[tuple[str, str, str]] = set()
    for feature in nodes:
        for rel in feature.relationships:
            if registry.category_of(rel.type) != category:
                continue
            oriented = registry.canonical_edge(feature.id, rel.type, rel.target_id)
            if oriented is None or oriented in seen:
                continue
            source_id, type_name, target_id = oriented
            if source_id not in nodes or target_id not in nodes:
                continue
            seen.add(oriented)
            adjacency.setdefault(source_id, []).append(
                CanonicalEdge(source_id, type_name, target_id, feature.id, rel.id)
            )
    return adjacency


def find_path(adjacency: dict[str, list[CanonicalEdge]], start: str, goal: str) -> list[str] | None:
    """Iterative depth-first search; returns node ids from start to goal."""
    parents: dict[str, str | None] = {start: None}
    stack = [start]
    while stack:
        node = stack.pop()
        if node == goal:
            path = [node]
            while parents[path[-1]] is not None:
                path.append(parents[path[-1]])
            return list(reversed(path))
        for edge in adjacency.get(node, []):
            if edge.target_id not in parents:
                parents[edge.target_id] = node
                stack.append(edge.target_id)
    return None


@dataclass
class CycleCheck:
    """Outcome of checking one candidate edge."""

    category: str | None
    mode: CycleDetection
    searched: bool = False
    path: list[str] = field(default_factory=list)
    warning: str | None = None

    @property
    def closes_cycle(self) -> bool:
        return bool(self.path)


class CycleDetector:
    """Decide whether a candidate edge may be added under its category's policy.

    The search follows every type in the candidate's category, not only the
    candidate's own type, because mixed types within a category can jointly
    form a cycle.
    """

    def __init__(self, schema: Schema, nodes: NodeSet, registry: SchemaRegistry | None = None):
        self.schema = schema
        self.nodes = nodes
        self.registry = registry or SchemaRegistry(schema)

    def check(self, source: Feature, type_name: str, target: Feature) -> CycleCheck:
        """Check the edge ``(source, type_name, target)``.

        Returns:
            CycleCheck carrying a warning for ``warn`` categories

        Raises:
            SelfReferenceError: the edge points at its own source
            CycleDetectedError: the edge closes a cycle in a ``strict`` category
            UnknownTypeError: ``type_name`` does not resolve
        """
        canonical, cfg = self.registry.resolve_type(type_name)
        category_name = cfg.category
        category = self.schema.categories.get(category_name)

        if source.id == target.id:
            raise SelfReferenceError(category_name, canonical, [source.name, source.name])

        if category is None or not category.checks_cycles:
            mode = CycleDetection.NONE if category is None else category.cycle_detection
            return CycleCheck(category_name, mode)

        edge_source, _, edge_target = self.registry.canonical_edge(source.id, canonical, target.id)
        adjacency = category_edges(self.registry, self.nodes, category_name)
        found = find_path(adjacency, edge_target, edge_source)
        result = CycleCheck(category_name, category.cycle_detection, searched=True)
        if found is None:
            return result

        names = [self.nodes.name_of(node_id, node_id) for node_id in [edge_source, *found]]
        result.path = names
        if category.cycle_detection == CycleDetection.STRICT:
            raise CycleDetectedError(category_name, canonical, names)

        result.warning = f"'{canonical}' creates a cycle in category '{category_name}': {' -> '.join(names)}"
        logger.warning("cycle_allowed", category=category_name, type=canonical, path=names)
        return result


def _rotation_key(cycle: list[str]) -> tuple[str, ...]:
    pivot = cycle.index(min(cycle))
    return tuple(cycle[pivot:] + cycle[:pivot])


def enumerate_cycles(adjacency: dict[str, list[CanonicalEdge]], order: list[str]) -> list[list[CanonicalEdge]]:
    """Find cycles with an iterative three-colour depth-first search.

    Every back edge yields one cycle, returned as its edges starting from the
    smallest node id. Rotations of an already reported cycle are dropped.
    ``order`` fixes the start nodes so results are deterministic.
    """
    white, gray, black = 0, 1, 2
    color: dict[str, int] = {}
    cycles: list[list[CanonicalEdge]] = []
    seen: set[tuple[str, ...]] = set()

    for start in order:
        if color.get(start, white) != white:
            continue
        color[start] = gray
        path_edges: list[CanonicalEdge] = []
        position = {start: 0}
        stack = [(start, iter(adjacency.get(start, [])))]
        while stack:
            node, edges = stack[-1]
            edge = next(edges, None)
            if edge is None:
                stack.pop()
                color[node] = black
                del position[node]
                if path_edges:
                    path_edges.pop()
                continue
            nxt = edge.target_id
            state = color.get(nxt, white)
            if state == white:
                color[nxt] = gray
                position[nxt] = len(stack)
                path_edges.append(edge)
                stack.append((nxt, iter(adjacency.get(nxt, []))))
            elif state == gray:
                loop = path_edges[position[nxt]:] + [edge]
                key = _rotation_key([e.source_id for e in loop])
                if key in seen:
                    continue
                seen.add(key)
                pivot = min(range(len(loop)), key=lambda i: loop[i].source_id)
                cycles.append(loop[pivot:] + loop[:pivot])
    return cycles
