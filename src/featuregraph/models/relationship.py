"""Relationship edges and version constraints."""
from __future__ import annotations

import operator
import re
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from uuid_utils import uuid7

from featuregraph.exceptions import InvalidVersionConstraintError

_CONSTRAINT_RE = re.compile(r"^\s*(>=|<=|>|<|=)\s*(.+?)\s*$")
_SEMVER_RE = re.compile(r"^v?([0-9]+)\.([0-9]+)\.([0-9]+)$")
_DIGITS_RE = re.compile(r"[0-9]+")


def new_id() -> str:
    """Generate a time-ordered identifier for features and relationships."""
    return str(uuid7())


def parse_version(value: Any) -> tuple[int, int, int] | None:
    """Parse a simple (``3``) or semantic (``1.4.2``) version.

    Simple versions are read as ``(n, 0, 0)``. Returns None when the value is
    neither.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return (value, 0, 0) if value >= 0 else None
    text = str(value).strip()
    if _DIGITS_RE.fullmatch(text):
        return (int(text), 0, 0)
    match = _SEMVER_RE.match(text)
    if match:
        major, minor, patch = (int(g) for g in match.groups())
        return (major, minor, patch)
    return None


class ConstraintOperator(str, Enum):
    """Comparison a target version must satisfy."""

    EQ = "="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="


_COMPARATORS = {
    ConstraintOperator.EQ: operator.eq,
    ConstraintOperator.GT: operator.gt,
    ConstraintOperator.LT: operator.lt,
    ConstraintOperator.GE: operator.ge,
    ConstraintOperator.LE: operator.le,
}


class VersionConstraint(BaseModel):
    """A requirement on the target feature's current version.

    ``version`` is either a positive integer (simple versioning, compared
    against the target's major version) or an ``x.y.z`` string (compared
    component-wise).
    """

    operator: ConstraintOperator
    version: int | str
    note: str = ""

    @classmethod
    def parse(cls, text: str, note: str = "") -> VersionConstraint:
        """Parse ``">=2"`` or ``">=1.2.0"`` into a constraint.

        Raises:
            InvalidVersionConstraintError: if the operator or version is malformed
        """
        match = _CONSTRAINT_RE.match(text or "")
        if not match:
            raise InvalidVersionConstraintError(text, "expected an operator (=, >, <, >=, <=) followed by a version")
        op, raw = match.groups()
        version: int | str = int(raw) if _DIGITS_RE.fullmatch(raw) else raw
        constraint = cls(operator=ConstraintOperator(op), version=version, note=note)
        problem = constraint.problem()
        if problem:
            raise InvalidVersionConstraintError(text, problem)
        return constraint

    def is_semver(self) -> bool:
        return isinstance(self.version, str) and bool(_SEMVER_RE.match(self.version.strip()))

    def problem(self) -> str | None:
        """Describe why the constraint is unusable, or None if it is valid."""
        if self.is_semver():
            return None
        parsed = parse_version(self.version)
        if parsed is None:
            return f"version '{self.version}' is neither a positive integer nor x.y.z"
        if parsed[0] < 1:
            return "simple versions start at 1"
        return None

    def is_satisfied_by(self, target_version: Any) -> bool:
        """Check the constraint against the target's current version key."""
        target = parse_version(target_version)
        if target is None or self.problem() is not None:
            return False
        compare = _COMPARATORS[self.operator]
        if self.is_semver():
            return compare(target, parse_version(self.version))
        return compare(target[0], parse_version(self.version)[0])

    def __str__(self) -> str:
        return f"{self.operator.value}{self.version}"


class Relationship(BaseModel):
    """A typed, directed edge stored on its source feature.

    ``target_name`` is a display cache of the target's name at link time; it
    is allowed to go stale when the target is renamed.
    """

    id: str = ""
    type: str = ""
    target_id: str = ""
    target_name: str = ""
    description: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version_constraint: VersionConstraint | None = None

    @classmethod
    def new(
        cls,
        type_name: str,
        target_id: str,
        target_name: str = "",
        description: str = "",
        version_constraint: VersionConstraint | None = None,
    ) -> Relationship:
        return cls(
            id=new_id(),
            type=type_name,
            target_id=target_id,
            target_name=target_name,
            description=description,
            version_constraint=version_constraint,
        )

    def missing_fields(self) -> list[str]:
        """Names of identifying fields that are empty."""
        return [name for name in ("id", "type", "target_id") if not getattr(self, name)]
