"""Errors raised by the relationship graph engine.

Every error carries a stable ``code`` tag that callers can branch on and the
``exit_code`` the command line uses when the error escapes a command.
Schema and structural errors are raised before any mutation takes place.
"""
from __future__ import annotations

from dataclasses import dataclass, field

EXIT_GENERAL = 1
EXIT_INVALID_ARGS = 2
EXIT_NOT_FOUND = 3
EXIT_VALIDATION = 4
EXIT_CONFIG = 5
EXIT_CONFLICT = 7


def _with_suggestions(message: str, suggestions: list[str]) -> str:
    if suggestions:
        return f"{message} (did you mean: {', '.join(suggestions)}?)"
    return message


class FeatureGraphError(Exception):
    """Base class for all featuregraph errors."""

    code: str = "Error"
    exit_code: int = EXIT_GENERAL


# ---------------------- Schema errors ----------------------


class SchemaError(FeatureGraphError):
    """The relationship schema is invalid or a reference into it failed."""

    code = "InvalidSchema"
    exit_code = EXIT_CONFIG


@dataclass(eq=False)
class InvalidSchemaError(SchemaError):
    reason: str

    def __str__(self) -> str:
        return self.reason


@dataclass(eq=False)
class UnknownTypeError(SchemaError):
    """Raised when a relationship type name or alias does not resolve."""

    name: str
    suggestions: list[str] = field(default_factory=list)

    code = "UnknownType"
    exit_code = EXIT_VALIDATION

    def __str__(self) -> str:
        return _with_suggestions(f"unknown relationship type '{self.name}'", self.suggestions)


@dataclass(eq=False)
class UnknownCategoryError(SchemaError):
    """Raised when a relationship category name or alias does not resolve."""

    name: str
    suggestions: list[str] = field(default_factory=list)

    code = "UnknownCategory"
    exit_code = EXIT_VALIDATION

    def __str__(self) -> str:
        return _with_suggestions(f"unknown relationship category '{self.name}'", self.suggestions)


@dataclass(eq=False)
class InvalidDetectionModeError(SchemaError):
    mode: str
    category: str = ""

    exit_code = EXIT_VALIDATION

    def __str__(self) -> str:
        where = f" for category '{self.category}'" if self.category else ""
        return f"invalid cycle detection mode '{self.mode}'{where} (expected strict, warn or none)"


@dataclass(eq=False)
class ConflictingInverseError(SchemaError):
    """A bidirectional type may not also declare an inverse."""

    type_name: str
    inverse: str

    exit_code = EXIT_VALIDATION

    def __str__(self) -> str:
        return (
            f"relationship type '{self.type_name}' is bidirectional and cannot "
            f"declare inverse '{self.inverse}'"
        )


@dataclass(eq=False)
class InverseMismatchError(SchemaError):
    """Type A declares inverse B but B declares a different inverse."""

    type_name: str
    inverse: str
    declared: str | None

    def __str__(self) -> str:
        back = f"'{self.declared}'" if self.declared else "no inverse"
        return (
            f"relationship type '{self.type_name}' declares inverse '{self.inverse}', "
            f"but '{self.inverse}' declares {back}"
        )


@dataclass(eq=False)
class SchemaNameTakenError(SchemaError):
    kind: str
    name: str

    exit_code = EXIT_CONFLICT

    def __str__(self) -> str:
        return f"{self.kind} '{self.name}' already exists"


@dataclass(eq=False)
class NoHierarchyTypeError(SchemaError):
    """No relationship type is usable for building a hierarchy."""

    reason: str = "no hierarchy relationship type is configured and no cycle-free type exists"

    code = "NoHierarchyType"

    def __str__(self) -> str:
        return self.reason


@dataclass(eq=False)
class TypeInUseError(SchemaError):
    """A relationship type cannot be removed while edges still use it."""

    type_name: str
    usages: list[str] = field(default_factory=list)

    code = "InUse"
    exit_code = EXIT_CONFLICT

    def __str__(self) -> str:
        shown = ", ".join(self.usages[:5])
        more = f" and {len(self.usages) - 5} more" if len(self.usages) > 5 else ""
        return (
            f"relationship type '{self.type_name}' is used by {len(self.usages)} "
            f"relationship(s): {shown}{more}; use migrate or cascade"
        )


@dataclass(eq=False)
class CategoryInUseError(SchemaError):
    """A category cannot be removed while types still belong to it."""

    category: str
    types: list[str] = field(default_factory=list)

    code = "InUse"
    exit_code = EXIT_CONFLICT

    def __str__(self) -> str:
        return (
            f"category '{self.category}' still has types: {', '.join(self.types)}; "
            "move the types or cascade"
        )


# ---------------------- Structural errors ----------------------


class StructuralError(FeatureGraphError):
    """An edit would break a structural invariant of the graph."""

    exit_code = EXIT_CONFLICT


@dataclass(eq=False)
class DuplicateRelationshipError(StructuralError):
    source: str
    type_name: str
    target: str

    code = "DuplicateRelationship"

    def __str__(self) -> str:
        return f"'{self.source}' already has a '{self.type_name}' relationship to '{self.target}'"


@dataclass(eq=False)
class CycleDetectedError(StructuralError):
    """Adding the edge would close a cycle in a category that forbids them.

    ``path`` lists feature names from the source around the cycle and back
    to the source.
    """

    category: str
    type_name: str
    path: list[str] = field(default_factory=list)

    code = "CycleDetected"

    def __str__(self) -> str:
        return (
            f"adding '{self.type_name}' would create a cycle in category "
            f"'{self.category}': {' -> '.join(self.path)}"
        )


@dataclass(eq=False)
class SelfReferenceError(CycleDetectedError):
    def __str__(self) -> str:
        name = self.path[0] if self.path else "feature"
        return f"'{name}' cannot have a '{self.type_name}' relationship to itself"


# ---------------------- Lookup errors ----------------------


class NotFoundError(FeatureGraphError):
    code = "NotFound"
    exit_code = EXIT_NOT_FOUND


@dataclass(eq=False)
class FeatureNotFoundError(NotFoundError):
    identifier: str
    suggestions: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return _with_suggestions(f"feature not found: '{self.identifier}'", self.suggestions)


@dataclass(eq=False)
class RelationshipNotFoundError(NotFoundError):
    feature: str
    reference: str

    def __str__(self) -> str:
        return f"no relationship matching {self.reference} on '{self.feature}'"


@dataclass(eq=False)
class AmbiguousReferenceError(NotFoundError):
    reference: str
    candidates: list[str] = field(default_factory=list)

    code = "Ambiguous"
    exit_code = EXIT_INVALID_ARGS

    def __str__(self) -> str:
        return f"'{self.reference}' is ambiguous: matches {', '.join(self.candidates)}"


# ---------------------- Other errors ----------------------


@dataclass(eq=False)
class InvalidVersionConstraintError(FeatureGraphError):
    text: str
    reason: str

    code = "InvalidVersionConstraint"
    exit_code = EXIT_VALIDATION

    def __str__(self) -> str:
        return f"invalid version constraint '{self.text}': {self.reason}"


@dataclass(eq=False)
class StorageError(FeatureGraphError):
    path: str
    reason: str

    code = "Storage"

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"
