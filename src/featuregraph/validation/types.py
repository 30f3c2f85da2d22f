"""Issue and result types produced by the validator."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class IssueCode(str, Enum):
    """Stable codes for structural defects."""

    ORPHANED_RELATIONSHIP = "E001"
    MISSING_INVERSE = "E002"
    DANGLING_INVERSE = "E003"
    SCHEMA_VIOLATION = "E004"
    CYCLE_VIOLATION = "E005"
    VERSION_CONSTRAINT_VIOLATION = "E006"

    @property
    def description(self) -> str:
        return ISSUE_DESCRIPTIONS[self]


ISSUE_DESCRIPTIONS = {
    IssueCode.ORPHANED_RELATIONSHIP: "Orphaned relationship: target feature does not exist",
    IssueCode.MISSING_INVERSE: "Missing inverse: target lacks the inverse relationship back",
    IssueCode.DANGLING_INVERSE: "Dangling inverse: inverse exists but the forward relationship is missing",
    IssueCode.SCHEMA_VIOLATION: "Schema violation: unknown type or missing required field",
    IssueCode.CYCLE_VIOLATION: "Cycle violation: cycle in a category that does not allow cycles",
    IssueCode.VERSION_CONSTRAINT_VIOLATION: "Version constraint violation: target version does not satisfy the constraint",
}

FIXABLE_CODES = frozenset(
    {IssueCode.ORPHANED_RELATIONSHIP, IssueCode.MISSING_INVERSE, IssueCode.DANGLING_INVERSE}
)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationIssue:
    """One defect, located by feature and relationship."""

    code: IssueCode
    severity: Severity
    feature_id: str
    feature_name: str
    relationship_id: str
    message: str
    fixable: bool = False
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "feature_id": self.feature_id,
            "feature_name": self.feature_name,
            "relationship_id": self.relationship_id,
            "message": self.message,
            "fixable": self.fixable,
            "context": dict(self.context),
        }


@dataclass
class ValidationResult:
    features_checked: int = 0
    relationships_checked: int = 0
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    def has_errors(self) -> bool:
        return any(i.severity == Severity.ERROR for i in self.issues)

    def has_warnings(self) -> bool:
        return any(i.severity == Severity.WARNING for i in self.issues)

    def has_fixable_issues(self) -> bool:
        return any(i.fixable for i in self.issues)

    def fixable(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.fixable]

    def by_code(self) -> dict[IssueCode, list[ValidationIssue]]:
        grouped: dict[IssueCode, list[ValidationIssue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.code, []).append(issue)
        return grouped

    def counts(self) -> dict[str, int]:
        return {code.value: len(items) for code, items in self.by_code().items()}

    def to_records(self) -> list[dict[str, Any]]:
        return [issue.to_dict() for issue in self.issues]
