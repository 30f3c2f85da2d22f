"""Mechanical repair of fixable validator issues (E001, E002, E003)."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import structlog

from featuregraph.graph.nodes import NodeSet, SaveCallback
from featuregraph.graph.registry import SchemaRegistry
from featuregraph.models import Feature, Relationship, Schema

from .types import IssueCode, ValidationIssue

logger = structlog.get_logger(__name__)


class FixStatus(str, Enum):
    FIXED = "fixed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class FixOutcome:
    issue: ValidationIssue
    status: FixStatus
    message: str


@dataclass
class FixReport:
    dry_run: bool = False
    outcomes: list[FixOutcome] = field(default_factory=list)
    modified: list[Feature] = field(default_factory=list)

    def _count(self, status: FixStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def fixed(self) -> int:
        return self._count(FixStatus.FIXED)

    @property
    def skipped(self) -> int:
        return self._count(FixStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FixStatus.FAILED)


class AutoFixer:
    """Apply deterministic repairs to validator issues.

    - E001 removes the edge pointing at the missing feature
    - E002 adds the missing inverse edge on the target
    - E003 removes the dangling inverse edge; a forward edge is never invented

    Other codes are skipped. Re-run the validator afterwards to confirm.
    """

    def __init__(self, schema: Schema, dry_run: bool = False):
        self.schema = schema
        self.registry = SchemaRegistry(schema)
        self.dry_run = dry_run

    def apply(
        self,
        nodes: NodeSet,
        issues: list[ValidationIssue],
        on_save: SaveCallback | None = None,
    ) -> FixReport:
        """Fix what can be fixed.

        Args:
            nodes: Node set the issues were found in
            issues: Issues from :meth:`Validator.validate`
            on_save: Called once per modified feature (never in dry-run mode)

        Returns:
            FixReport with one outcome per issue
        """
        report = FixReport(dry_run=self.dry_run)
        handlers = {
            IssueCode.ORPHANED_RELATIONSHIP: self._fix_orphaned,
            IssueCode.MISSING_INVERSE: self._fix_missing_inverse,
            IssueCode.DANGLING_INVERSE: self._fix_dangling_inverse,
        }
        for issue in issues:
            handler = handlers.get(issue.code)
            if handler is None or not issue.fixable:
                report.outcomes.append(FixOutcome(issue, FixStatus.SKIPPED, "not automatically fixable"))
                continue
            feature = nodes.get(issue.feature_id)
            if feature is None:
                report.outcomes.append(FixOutcome(issue, FixStatus.FAILED, "feature no longer exists"))
                continue
            report.outcomes.append(handler(nodes, feature, issue, report))

        if not self.dry_run and on_save is not None:
            for feature in report.modified:
                on_save(feature)
        logger.info(
            "autofix_complete",
            fixed=report.fixed,
            skipped=report.skipped,
            failed=report.failed,
            dry_run=self.dry_run,
        )
        return report

    def _modified(self, report: FixReport, feature: Feature) -> None:
        if all(feature is not other for other in report.modified):
            report.modified.append(feature)

    def _locate(self, feature: Feature, issue: ValidationIssue) -> Relationship | None:
        if issue.relationship_id:
            for rel in feature.relationships:
                if rel.id == issue.relationship_id:
                    return rel
        # Fall back to type and target when the id is missing or has changed
        type_name = issue.context.get("type")
        target_id = issue.context.get("target_id")
        if type_name and target_id:
            return self.registry.find_edge(feature, type_name, target_id)
        return None

    def _remove(self, feature: Feature, issue: ValidationIssue, report: FixReport, what: str) -> FixOutcome:
        rel = self._locate(feature, issue)
        if rel is None:
            return FixOutcome(issue, FixStatus.FAILED, f"{what} no longer present on '{feature.name}'")
        if not self.dry_run:
            feature.relationships = [r for r in feature.relationships if r is not rel]
            self._modified(report, feature)
        return FixOutcome(issue, FixStatus.FIXED, f"removed {what} '{rel.type}' from '{feature.name}'")

    def _fix_orphaned(self, nodes: NodeSet, feature: Feature, issue: ValidationIssue, report: FixReport) -> FixOutcome:
        return self._remove(feature, issue, report, "orphaned relationship")

    def _fix_dangling_inverse(self, nodes: NodeSet, feature: Feature, issue: ValidationIssue, report: FixReport) -> FixOutcome:
        return self._remove(feature, issue, report, "dangling inverse")

    def _fix_missing_inverse(self, nodes: NodeSet, feature: Feature, issue: ValidationIssue, report: FixReport) -> FixOutcome:
        rel = self._locate(feature, issue)
        if rel is None:
            return FixOutcome(issue, FixStatus.FAILED, f"forward relationship no longer present on '{feature.name}'")
        target = nodes.get(rel.target_id)
        if target is None:
            return FixOutcome(issue, FixStatus.FAILED, "target feature no longer exists")
        inverse = self.registry.inverse_of(rel.type)
        if inverse is None or inverse == self.registry.canonical_type(rel.type):
            return FixOutcome(issue, FixStatus.FAILED, f"type '{rel.type}' has no inverse")
        if self.registry.find_edge(target, inverse, feature.id) is not None:
            return FixOutcome(issue, FixStatus.SKIPPED, f"'{target.name}' already has '{inverse}'")
        if not self.dry_run:
            target.relationships.append(Relationship.new(inverse, feature.id, feature.name))
            self._modified(report, target)
        return FixOutcome(issue, FixStatus.FIXED, f"added '{inverse}' from '{target.name}' to '{feature.name}'")
