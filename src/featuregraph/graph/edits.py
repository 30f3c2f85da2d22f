"""Relationship edit operations.

Every operation validates its input completely before touching any feature,
so a rejected edit leaves the node set unchanged. Modified features are
handed to the optional ``on_save`` callback once each; persistence itself is
the caller's business.
"""
from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from featuregraph.exceptions import (
    AmbiguousReferenceError,
    DuplicateRelationshipError,
    RelationshipNotFoundError,
    SelfReferenceError,
)
from featuregraph.models import Feature, Relationship, Schema, VersionConstraint

from .cycles import CycleDetector
from .nodes import NodeSet, SaveCallback
from .registry import RelationshipKind, SchemaRegistry

logger = structlog.get_logger(__name__)


@dataclass
class LinkResult:
    """Edges created by :func:`add_relationship`."""

    source: Feature
    target: Feature
    relationship: Relationship
    inverse: Relationship | None = None
    warnings: list[str] = field(default_factory=list)
    modified: list[Feature] = field(default_factory=list)


@dataclass
class RemovedEdge:
    holder: Feature
    relationship: Relationship


@dataclass
class UnlinkResult:
    """Edges removed from ``source`` and the inverse edges removed from targets."""

    source: Feature
    removed: list[Relationship] = field(default_factory=list)
    inverses_removed: list[RemovedEdge] = field(default_factory=list)
    modified: list[Feature] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.removed) + len(self.inverses_removed)


def _save_all(features: list[Feature], on_save: SaveCallback | None) -> None:
    if on_save is None:
        return
    for feature in features:
        on_save(feature)


def _mark(modified: list[Feature], feature: Feature) -> None:
    if all(feature is not other for other in modified):
        feature.touch()
        modified.append(feature)


def add_relationship(
    schema: Schema,
    nodes: NodeSet,
    source: Feature,
    type_name: str,
    target: Feature,
    *,
    description: str = "",
    version_constraint: VersionConstraint | str | None = None,
    on_save: SaveCallback | None = None,
) -> LinkResult:
    """Add the edge ``(source, type_name, target)`` and, when configured, its inverse.

    Args:
        schema: Relationship schema
        nodes: Node set containing both features
        source: Feature that will hold the edge
        type_name: Relationship type name or alias
        target: Feature the edge points at
        description: Free-text note stored on the edge
        version_constraint: Constraint on the target's version, e.g. ``">=2"``
        on_save: Called once per modified feature

    Returns:
        LinkResult with the created edge(s) and any cycle warning

    Raises:
        UnknownTypeError: unknown type name or alias
        InvalidVersionConstraintError: malformed constraint text
        SelfReferenceError: source and target are the same feature
        DuplicateRelationshipError: the edge already exists
        CycleDetectedError: the edge would close a cycle in a strict category
    """
    registry = SchemaRegistry(schema)
    canonical, cfg = registry.resolve_type(type_name)
    behavior = registry.behavior(canonical)

    if isinstance(version_constraint, str):
        version_constraint = VersionConstraint.parse(version_constraint)

    if source.id == target.id:
        raise SelfReferenceError(cfg.category, canonical, [source.name, source.name])

    duplicate = registry.find_edge(source, canonical, target.id)
    if duplicate is None and behavior.kind == RelationshipKind.BIDIRECTIONAL:
        duplicate = registry.find_edge(target, canonical, source.id)
    if duplicate is not None:
        raise DuplicateRelationshipError(source.name, canonical, target.name)

    check = CycleDetector(schema, nodes, registry).check(source, canonical, target)

    rel = Relationship.new(canonical, target.id, target.name, description, version_constraint)
    source.relationships.append(rel)
    result = LinkResult(source=source, target=target, relationship=rel)
    if check.warning:
        result.warnings.append(check.warning)
    _mark(result.modified, source)

    if behavior.creates_inverse and schema.settings.auto_create_inverse:
        if registry.find_edge(target, behavior.inverse, source.id) is None:
            result.inverse = Relationship.new(behavior.inverse, source.id, source.name)
            target.relationships.append(result.inverse)
            _mark(result.modified, target)

    logger.debug(
        "relationship_added",
        source=source.id,
        type=canonical,
        target=target.id,
        inverse=result.inverse.type if result.inverse else None,
    )
    _save_all(result.modified, on_save)
    return result


def _match_by_id(source: Feature, relationship_id: str) -> list[Relationship]:
    exact = [rel for rel in source.relationships if rel.id == relationship_id]
    if exact:
        return exact
    prefixed = [rel for rel in source.relationships if relationship_id and rel.id.startswith(relationship_id)]
    if len(prefixed) > 1:
        raise AmbiguousReferenceError(relationship_id, [rel.id for rel in prefixed])
    return prefixed


def _remove_inverses(
    registry: SchemaRegistry,
    nodes: NodeSet,
    source: Feature,
    removed: list[Relationship],
    result: UnlinkResult,
) -> None:
    """Best-effort removal of the reverse edges of ``removed``; absence is fine."""
    for rel in removed:
        inverse = registry.inverse_of(rel.type)
        if inverse is None or registry.behavior(rel.type).kind != RelationshipKind.DIRECTED_WITH_INVERSE:
            continue
        target = nodes.get(rel.target_id)
        if target is None:
            continue
        kept: list[Relationship] = []
        for candidate in target.relationships:
            if candidate.target_id == source.id and registry.same_type(candidate.type, inverse):
                result.inverses_removed.append(RemovedEdge(target, candidate))
            else:
                kept.append(candidate)
        if len(kept) != len(target.relationships):
            target.relationships = kept
            _mark(result.modified, target)


def remove_relationship(
    schema: Schema,
    nodes: NodeSet,
    source: Feature,
    *,
    relationship_id: str | None = None,
    target: Feature | str | None = None,
    type_name: str | None = None,
    missing_ok: bool = False,
    on_save: SaveCallback | None = None,
) -> UnlinkResult:
    """Remove edges from ``source`` by id, or by target and optional type.

    Without ``type_name`` every edge to ``target`` is removed. When
    auto-inverse is enabled the matching inverse edges on the targets are
    removed as well.

    Raises:
        RelationshipNotFoundError: nothing matched and ``missing_ok`` is False
        AmbiguousReferenceError: an id prefix matched several edges
        UnknownTypeError: ``type_name`` does not resolve
    """
    registry = SchemaRegistry(schema)
    if relationship_id:
        matches = _match_by_id(source, relationship_id)
        reference = f"id '{relationship_id}'"
    elif target is not None:
        target_id = target.id if isinstance(target, Feature) else target
        canonical = registry.resolve_type(type_name)[0] if type_name else None
        matches = [
            rel for rel in source.relationships
            if rel.target_id == target_id and (canonical is None or registry.same_type(rel.type, canonical))
        ]
        target_label = target.name if isinstance(target, Feature) else target
        reference = f"'{canonical}' to '{target_label}'" if canonical else f"target '{target_label}'"
    else:
        raise ValueError("either relationship_id or target is required")

    result = UnlinkResult(source=source)
    if not matches:
        if missing_ok:
            return result
        raise RelationshipNotFoundError(source.name, reference)

    doomed = {id(rel) for rel in matches}
    source.relationships = [rel for rel in source.relationships if id(rel) not in doomed]
    result.removed = list(matches)
    _mark(result.modified, source)

    if schema.settings.auto_create_inverse:
        _remove_inverses(registry, nodes, source, result.removed, result)

    logger.debug("relationships_removed", source=source.id, removed=len(result.removed), inverses=len(result.inverses_removed))
    _save_all(result.modified, on_save)
    return result


def clear_all_relationships(
    schema: Schema,
    nodes: NodeSet,
    source: Feature,
    *,
    on_save: SaveCallback | None = None,
) -> UnlinkResult:
    """Remove every outgoing edge of ``source`` and their inverse edges."""
    result = UnlinkResult(source=source)
    if not source.relationships:
        return result
    result.removed = list(source.relationships)
    source.relationships = []
    _mark(result.modified, source)
    if schema.settings.auto_create_inverse:
        _remove_inverses(SchemaRegistry(schema), nodes, source, result.removed, result)
    logger.debug("relationships_cleared", source=source.id, removed=len(result.removed))
    _save_all(result.modified, on_save)
    return result


def cleanup_incoming_relationships(
    nodes: NodeSet,
    feature_id: str,
    *,
    on_save: SaveCallback | None = None,
) -> list[RemovedEdge]:
    """Drop every edge on other features that points at ``feature_id``.

    Used before deleting a feature so no orphaned edges are left behind.
    """
    removed: list[RemovedEdge] = []
    modified: list[Feature] = []
    for feature in nodes:
        if feature.id == feature_id:
            continue
        incoming = [rel for rel in feature.relationships if rel.target_id == feature_id]
        if not incoming:
            continue
        feature.relationships = [rel for rel in feature.relationships if rel.target_id != feature_id]
        removed.extend(RemovedEdge(feature, rel) for rel in incoming)
        _mark(modified, feature)
    _save_all(modified, on_save)
    return removed


def sync_target_names(nodes: NodeSet, *, on_save: SaveCallback | None = None) -> int:
    """Refresh the cached ``target_name`` on every edge; returns the number updated.

    Edges to features outside the node set keep their cached name.
    """
    updated = 0
    modified: list[Feature] = []
    for feature in nodes:
        changed = False
        for rel in feature.relationships:
            target = nodes.get(rel.target_id)
            if target is not None and rel.target_name != target.name:
                rel.target_name = target.name
                updated += 1
                changed = True
        if changed:
            modified.append(feature)
    _save_all(modified, on_save)
    return updated
