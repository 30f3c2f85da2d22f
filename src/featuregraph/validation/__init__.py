"""Graph validation (E001-E006) and automatic repair."""

from .autofix import AutoFixer, FixOutcome, FixReport, FixStatus
from .types import FIXABLE_CODES, IssueCode, Severity, ValidationIssue, ValidationResult
from .validator import Validator

__all__ = [
    "FIXABLE_CODES",
    "AutoFixer",
    "FixOutcome",
    "FixReport",
    "FixStatus",
    "IssueCode",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "Validator",
]
