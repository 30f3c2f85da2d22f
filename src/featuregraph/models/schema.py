"""Relationship schema: categories, types and engine settings."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from featuregraph.exceptions import (
    ConflictingInverseError,
    InvalidDetectionModeError,
    InvalidSchemaError,
    InverseMismatchError,
    UnknownCategoryError,
    UnknownTypeError,
)


class CycleDetection(str, Enum):
    """How a category reacts to an edge that would close a cycle."""

    STRICT = "strict"  # reject the edge
    WARN = "warn"  # accept, surface a warning
    NONE = "none"  # skip the search

    @classmethod
    def parse(cls, value: str | CycleDetection, category: str = "") -> CycleDetection:
        try:
            return cls(value)
        except ValueError as exc:
            raise InvalidDetectionModeError(str(value), category) from exc


class RelationshipCategory(BaseModel):
    """A group of relationship types sharing a cycle and impact policy."""

    description: str = ""
    allow_cycles: bool = False
    cycle_detection: CycleDetection = CycleDetection.STRICT
    include_in_impact: bool = True
    aliases: list[str] = Field(default_factory=list)

    @property
    def checks_cycles(self) -> bool:
        return not self.allow_cycles and self.cycle_detection != CycleDetection.NONE


class RelationshipTypeConfig(BaseModel):
    """Configuration of one relationship type."""

    category: str
    inverse: str | None = None
    bidirectional: bool = False
    description: str = ""
    aliases: list[str] = Field(default_factory=list)


class RelationshipSettings(BaseModel):
    """System-wide relationship behaviour."""

    auto_create_inverse: bool = True
    allow_custom_types: bool = True
    allow_custom_categories: bool = True
    default_category: str = "informational"
    tree_type: str | None = "depends-on"


class Schema(BaseModel):
    """The relationship catalog passed explicitly to every engine call.

    Both maps keep insertion order; within an inverse pair the type listed
    first is the forward direction.
    """

    categories: dict[str, RelationshipCategory] = Field(default_factory=dict)
    types: dict[str, RelationshipTypeConfig] = Field(default_factory=dict)
    settings: RelationshipSettings = Field(default_factory=RelationshipSettings)

    @classmethod
    def default(cls) -> Schema:
        return cls(
            categories={name: RelationshipCategory(**cfg) for name, cfg in DEFAULT_CATEGORIES.items()},
            types={name: RelationshipTypeConfig(**cfg) for name, cfg in DEFAULT_TYPES.items()},
            settings=RelationshipSettings(),
        )

    def clone(self) -> Schema:
        return self.model_copy(deep=True)

    def validate_integrity(self) -> None:
        """Check every schema invariant, raising the first violation found.

        Raises:
            UnknownCategoryError: a type or default references a missing category
            UnknownTypeError: the configured tree type does not exist
            ConflictingInverseError: a bidirectional type declares an inverse
            InverseMismatchError: inverse declarations are not symmetric
            InvalidSchemaError: any other inconsistency
        """
        for name, category in self.categories.items():
            if category.allow_cycles and category.cycle_detection != CycleDetection.NONE:
                raise InvalidSchemaError(
                    f"category '{name}' allows cycles, so its cycle_detection must be 'none'"
                )

        for name, cfg in self.types.items():
            if cfg.category not in self.categories:
                raise UnknownCategoryError(cfg.category)
            if cfg.bidirectional and cfg.inverse:
                raise ConflictingInverseError(name, cfg.inverse)
            if cfg.inverse == name:
                raise InvalidSchemaError(f"type '{name}' cannot be its own inverse; mark it bidirectional")
            if cfg.inverse and cfg.inverse in self.types:
                declared = self.types[cfg.inverse].inverse
                if declared != name:
                    raise InverseMismatchError(name, cfg.inverse, declared)

        self._check_aliases()

        if self.settings.default_category and self.settings.default_category not in self.categories:
            raise UnknownCategoryError(self.settings.default_category)
        if self.settings.tree_type and self.settings.tree_type not in self.types:
            raise UnknownTypeError(self.settings.tree_type)

    def _check_aliases(self) -> None:
        seen: dict[str, str] = {name: name for name in self.types}
        for name, cfg in self.types.items():
            for alias in cfg.aliases:
                owner = seen.setdefault(alias, name)
                if owner != name:
                    raise InvalidSchemaError(f"alias '{alias}' of type '{name}' clashes with '{owner}'")

        seen = {name: name for name in self.categories}
        for name, category in self.categories.items():
            for alias in category.aliases:
                owner = seen.setdefault(alias, name)
                if owner != name:
                    raise InvalidSchemaError(f"alias '{alias}' of category '{name}' clashes with '{owner}'")


DEFAULT_CATEGORIES: dict[str, dict] = {
    "structural": {
        "description": "Dependencies and composition that define build order",
        "allow_cycles": False,
        "cycle_detection": CycleDetection.STRICT,
        "include_in_impact": True,
    },
    "informational": {
        "description": "Loose references that never block work",
        "allow_cycles": True,
        "cycle_detection": CycleDetection.NONE,
        "include_in_impact": False,
    },
    "workflow": {
        "description": "Ordering of work between features",
        "allow_cycles": False,
        "cycle_detection": CycleDetection.WARN,
        "include_in_impact": True,
    },
    "compliance": {
        "description": "Verification and sign-off links",
        "allow_cycles": False,
        "cycle_detection": CycleDetection.STRICT,
        "include_in_impact": False,
    },
}

# Order matters: the first type of each inverse pair is the forward direction.
DEFAULT_TYPES: dict[str, dict] = {
    "depends-on": {
        "category": "structural",
        "inverse": "required-by",
        "description": "Needs the target to be done first",
        "aliases": ["requires", "needs"],
    },
    "required-by": {
        "category": "structural",
        "inverse": "depends-on",
        "description": "The target depends on this feature",
    },
    "contains": {
        "category": "structural",
        "inverse": "contained-by",
        "description": "The target is a part of this feature",
        "aliases": ["has", "includes"],
    },
    "contained-by": {
        "category": "structural",
        "inverse": "contains",
        "description": "This feature is a part of the target",
    },
    "implements": {
        "category": "structural",
        "inverse": "implemented-by",
        "description": "Realises the target specification or epic",
    },
    "implemented-by": {
        "category": "structural",
        "inverse": "implements",
        "description": "The target realises this feature",
    },
    "replaces": {
        "category": "structural",
        "inverse": "replaced-by",
        "description": "Supersedes the target",
    },
    "replaced-by": {
        "category": "structural",
        "inverse": "replaces",
        "description": "Superseded by the target",
    },
    "references": {
        "category": "informational",
        "inverse": "referenced-by",
        "description": "Mentions the target",
        "aliases": ["uses", "mentions"],
    },
    "referenced-by": {
        "category": "informational",
        "inverse": "references",
        "description": "Mentioned by the target",
    },
    "related-to": {
        "category": "informational",
        "bidirectional": True,
        "description": "Loosely related",
        "aliases": ["relates", "associated-with"],
    },
    "conflicts-with": {
        "category": "informational",
        "bidirectional": True,
        "description": "Cannot ship together with the target",
        "aliases": ["incompatible-with"],
    },
    "tested-by": {
        "category": "informational",
        "inverse": "tests",
        "description": "Verified by the target",
    },
    "tests": {
        "category": "informational",
        "inverse": "tested-by",
        "description": "Verifies the target",
    },
    "blocks": {
        "category": "workflow",
        "inverse": "blocked-by",
        "description": "Work on the target waits for this feature",
    },
    "blocked-by": {
        "category": "workflow",
        "inverse": "blocks",
        "description": "Work on this feature waits for the target",
    },
}
