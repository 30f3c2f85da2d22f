"""Batch validation of the relationship graph.

Six independent checks run over the whole node set; each emits issues with a
stable code (E001-E006). The validator only reads: it never changes a
feature, and running it twice on the same node set gives the same issues in
the same order.
"""
from __future__ import annotations

import structlog

from featuregraph.graph.cycles import category_edges, enumerate_cycles
from featuregraph.graph.nodes import NodeSet
from featuregraph.graph.registry import SchemaRegistry
from featuregraph.models import CycleDetection, Feature, Relationship, Schema

from .types import FIXABLE_CODES, IssueCode, Severity, ValidationIssue, ValidationResult

logger = structlog.get_logger(__name__)


class Validator:
    """Checks a node set against a relationship schema.

    Checks:
    - E001 edges whose target is not in the node set
    - E002 forward edges missing their inverse (auto-inverse only)
    - E003 inverse edges missing their forward edge (auto-inverse only)
    - E004 unknown types, missing fields, malformed version constraints
    - E005 cycles in categories that do not allow them
    - E006 version constraints the target does not satisfy
    """

    def __init__(self, schema: Schema):
        self.schema = schema
        self.registry = SchemaRegistry(schema)

    def validate(self, nodes: NodeSet) -> ValidationResult:
        result = ValidationResult(
            features_checked=len(nodes),
            relationships_checked=sum(len(f.relationships) for f in nodes),
        )
        self.check_orphaned(nodes, result)
        self.check_missing_inverses(nodes, result)
        self.check_dangling_inverses(nodes, result)
        self.check_schema_violations(nodes, result)
        self.check_cycles(nodes, result)
        self.check_version_constraints(nodes, result)
        logger.info(
            "validation_complete",
            features=result.features_checked,
            relationships=result.relationships_checked,
            errors=len(result.errors),
            warnings=len(result.warnings),
        )
        return result

    def _issue(
        self,
        code: IssueCode,
        feature: Feature,
        rel: Relationship | None,
        message: str,
        severity: Severity = Severity.ERROR,
        **context,
    ) -> ValidationIssue:
        return ValidationIssue(
            code=code,
            severity=severity,
            feature_id=feature.id,
            feature_name=feature.name,
            relationship_id=rel.id if rel is not None else "",
            message=message,
            fixable=code in FIXABLE_CODES,
            context=context,
        )

    def check_orphaned(self, nodes: NodeSet, result: ValidationResult) -> None:
        """E001: the target id does not resolve to a known feature."""
        for feature in nodes:
            for rel in feature.relationships:
                if rel.target_id and rel.target_id not in nodes:
                    label = rel.target_name or rel.target_id
                    result.issues.append(
                        self._issue(
                            IssueCode.ORPHANED_RELATIONSHIP,
                            feature,
                            rel,
                            f"'{feature.name}' has '{rel.type}' to missing feature '{label}'",
                            type=rel.type,
                            target_id=rel.target_id,
                        )
                    )

    def check_missing_inverses(self, nodes: NodeSet, result: ValidationResult) -> None:
        """E002: a forward edge whose target lacks the inverse edge back."""
        if not self.schema.settings.auto_create_inverse:
            return
        for feature in nodes:
            for rel in feature.relationships:
                canonical = self.registry.canonical_type(rel.type)
                if canonical is None or not self.registry.is_forward(canonical):
                    continue
                behavior = self.registry.behavior(canonical)
                target = nodes.get(rel.target_id)
                if not behavior.creates_inverse or target is None:
                    continue
                if self.registry.find_edge(target, behavior.inverse, feature.id) is None:
                    result.issues.append(
                        self._issue(
                            IssueCode.MISSING_INVERSE,
                            feature,
                            rel,
                            f"'{target.name}' is missing '{behavior.inverse}' back to '{feature.name}'",
                            type=canonical,
                            target_id=target.id,
                            inverse_type=behavior.inverse,
                        )
                    )

    def check_dangling_inverses(self, nodes: NodeSet, result: ValidationResult) -> None:
        """E003: an inverse-side edge whose forward edge is absent."""
        if not self.schema.settings.auto_create_inverse:
            return
        for feature in nodes:
            for rel in feature.relationships:
                canonical = self.registry.canonical_type(rel.type)
                if canonical is None or not self.registry.is_inverse_side(canonical):
                    continue
                forward = self.registry.behavior(canonical).inverse
                target = nodes.get(rel.target_id)
                if target is None:
                    continue
                if self.registry.find_edge(target, forward, feature.id) is None:
                    result.issues.append(
                        self._issue(
                            IssueCode.DANGLING_INVERSE,
                            feature,
                            rel,
                            f"'{feature.name}' has '{canonical}' to '{target.name}', "
                            f"but '{target.name}' has no '{forward}' to '{feature.name}'",
                            type=canonical,
                            target_id=target.id,
                            forward_type=forward,
                        )
                    )

    def check_schema_violations(self, nodes: NodeSet, result: ValidationResult) -> None:
        """E004: unknown type, missing identifying field, or malformed constraint."""
        for feature in nodes:
            for rel in feature.relationships:
                missing = rel.missing_fields()
                if missing:
                    result.issues.append(
                        self._issue(
                            IssueCode.SCHEMA_VIOLATION,
                            feature,
                            rel,
                            f"relationship on '{feature.name}' is missing {', '.join(missing)}",
                            missing_fields=missing,
                        )
                    )
                if rel.type and self.registry.canonical_type(rel.type) is None:
                    result.issues.append(
                        self._issue(
                            IssueCode.SCHEMA_VIOLATION,
                            feature,
                            rel,
                            f"relationship on '{feature.name}' has unknown type '{rel.type}'",
                            type=rel.type,
                        )
                    )
                elif rel.type and self.registry.category_of(rel.type) is None:
                    result.issues.append(
                        self._issue(
                            IssueCode.SCHEMA_VIOLATION,
                            feature,
                            rel,
                            f"type '{rel.type}' on '{feature.name}' belongs to an unknown category",
                            type=rel.type,
                        )
                    )
                if rel.version_constraint is not None and rel.version_constraint.problem():
                    result.issues.append(
                        self._issue(
                            IssueCode.SCHEMA_VIOLATION,
                            feature,
                            rel,
                            f"invalid version constraint on '{feature.name}': {rel.version_constraint.problem()}",
                            constraint=str(rel.version_constraint),
                        )
                    )

    def check_cycles(self, nodes: NodeSet, result: ValidationResult) -> None:
        """E005: cycles in categories with ``allow_cycles`` off.

        Runs the same category-scoped, canonically oriented search the edit
        path uses, exhaustively over the node set.
        """
        order = [feature.id for feature in nodes]
        for name, category in self.schema.categories.items():
            if category.allow_cycles:
                continue
            severity = Severity.WARNING if category.cycle_detection == CycleDetection.WARN else Severity.ERROR
            adjacency = category_edges(self.registry, nodes, name)
            for cycle in enumerate_cycles(adjacency, order):
                ids = [edge.source_id for edge in cycle]
                names = [nodes.name_of(node_id, node_id) for node_id in ids]
                first = nodes.get(ids[0])
                result.issues.append(
                    ValidationIssue(
                        code=IssueCode.CYCLE_VIOLATION,
                        severity=severity,
                        feature_id=first.id,
                        feature_name=first.name,
                        relationship_id=cycle[0].relationship_id,
                        message=f"cycle in category '{name}': {' -> '.join([*names, names[0]])}",
                        fixable=False,
                        context={
                            "category": name,
                            "cycle": ids,
                            "types": [edge.type for edge in cycle],
                        },
                    )
                )

    def check_version_constraints(self, nodes: NodeSet, result: ValidationResult) -> None:
        """E006: the target's current version does not satisfy the constraint."""
        for feature in nodes:
            for rel in feature.relationships:
                constraint = rel.version_constraint
                target = nodes.get(rel.target_id)
                if constraint is None or target is None or constraint.problem():
                    continue
                version = target.current_version_key()
                if not constraint.is_satisfied_by(version):
                    result.issues.append(
                        self._issue(
                            IssueCode.VERSION_CONSTRAINT_VIOLATION,
                            feature,
                            rel,
                            f"'{target.name}' is at version {version or 'none'}, "
                            f"'{feature.name}' requires {constraint}",
                            constraint=str(constraint),
                            target_id=target.id,
                            target_version=version,
                        )
                    )
