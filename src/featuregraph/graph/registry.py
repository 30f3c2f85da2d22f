"""Relationship schema registry.

Resolves type and category names (or their aliases) against a
:class:`~featuregraph.models.Schema` and answers the questions the rest of
the engine asks about a type: its category, its behaviour, and its
orientation within an inverse pair.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from rapidfuzz import process

from featuregraph.exceptions import UnknownCategoryError, UnknownTypeError
from featuregraph.models import Feature, Relationship, RelationshipCategory, RelationshipTypeConfig, Schema


class RelationshipKind(str, Enum):
    """How a relationship type behaves with respect to its reverse direction."""

    BIDIRECTIONAL = "bidirectional"  # one edge stands for both directions
    DIRECTED_WITH_INVERSE = "directed-with-inverse"  # reverse edge uses the inverse type
    DIRECTED = "directed"  # no reverse edge


@dataclass(frozen=True)
class TypeBehavior:
    kind: RelationshipKind
    inverse: str | None = None

    @property
    def creates_inverse(self) -> bool:
        return self.kind == RelationshipKind.DIRECTED_WITH_INVERSE


class SchemaRegistry:
    """Lookup layer over a schema.

    Name and alias matching is exact and case-sensitive. Suggestions attached
    to lookup errors are for display only.

    Example:
        >>> registry = SchemaRegistry(Schema.default())
        >>> registry.resolve_type("requires")[0]
        'depends-on'
    """

    def __init__(self, schema: Schema):
        self.schema = schema
        self._type_aliases: dict[str, str] = {}
        for name, cfg in schema.types.items():
            for alias in cfg.aliases:
                self._type_aliases.setdefault(alias, name)
        self._category_aliases: dict[str, str] = {}
        for name, category in schema.categories.items():
            for alias in category.aliases:
                self._category_aliases.setdefault(alias, name)
        self._order = {name: index for index, name in enumerate(schema.types)}
        self._behaviors = {name: self._classify(name, cfg) for name, cfg in schema.types.items()}

    def _classify(self, name: str, cfg: RelationshipTypeConfig) -> TypeBehavior:
        if cfg.bidirectional:
            return TypeBehavior(RelationshipKind.BIDIRECTIONAL)
        if cfg.inverse and cfg.inverse in self.schema.types and cfg.inverse != name:
            return TypeBehavior(RelationshipKind.DIRECTED_WITH_INVERSE, cfg.inverse)
        return TypeBehavior(RelationshipKind.DIRECTED)

    # ---------------------- Resolution ----------------------

    def canonical_type(self, name: str) -> str | None:
        """Canonical type name for a name or alias, None when unknown."""
        if name in self.schema.types:
            return name
        return self._type_aliases.get(name)

    def same_type(self, stored: str, type_name: str) -> bool:
        """True when ``stored`` names ``type_name`` directly or through an alias."""
        if stored == type_name:
            return True
        canonical = self.canonical_type(stored)
        return canonical is not None and canonical == self.canonical_type(type_name)

    def find_edge(self, feature: Feature, type_name: str, target_id: str) -> Relationship | None:
        """First edge on ``feature`` to ``target_id`` whose type resolves to ``type_name``."""
        for rel in feature.relationships:
            if rel.target_id == target_id and self.same_type(rel.type, type_name):
                return rel
        return None

    def resolve_type(self, name: str) -> tuple[str, RelationshipTypeConfig]:
        canonical = self.canonical_type(name)
        if canonical is None:
            choices = list(self.schema.types) + list(self._type_aliases)
            raise UnknownTypeError(name, _suggest(name, choices))
        return canonical, self.schema.types[canonical]

    def canonical_category(self, name: str) -> str | None:
        if name in self.schema.categories:
            return name
        return self._category_aliases.get(name)

    def resolve_category(self, name: str) -> tuple[str, RelationshipCategory]:
        canonical = self.canonical_category(name)
        if canonical is None:
            choices = list(self.schema.categories) + list(self._category_aliases)
            raise UnknownCategoryError(name, _suggest(name, choices))
        return canonical, self.schema.categories[canonical]

    def category_of(self, type_name: str) -> str | None:
        """Category of a type (by name or alias); None if either is unknown."""
        canonical = self.canonical_type(type_name)
        if canonical is None:
            return None
        category = self.schema.types[canonical].category
        return category if category in self.schema.categories else None

    def category_config(self, type_name: str) -> RelationshipCategory | None:
        category = self.category_of(type_name)
        return self.schema.categories[category] if category else None

    def types_in_category(self, category: str) -> list[str]:
        canonical, _ = self.resolve_category(category)
        return [name for name, cfg in self.schema.types.items() if cfg.category == canonical]

    # ---------------------- Behaviour ----------------------

    def behavior(self, type_name: str) -> TypeBehavior:
        canonical, _ = self.resolve_type(type_name)
        return self._behaviors[canonical]

    def inverse_of(self, type_name: str) -> str | None:
        """Type of the reverse edge: the inverse, the type itself when bidirectional."""
        canonical = self.canonical_type(type_name)
        if canonical is None:
            return None
        behavior = self._behaviors[canonical]
        if behavior.kind == RelationshipKind.BIDIRECTIONAL:
            return canonical
        return behavior.inverse

    def is_forward(self, type_name: str) -> bool:
        """True for the first-declared type of an inverse pair and for unpaired types."""
        canonical = self.canonical_type(type_name)
        if canonical is None:
            return False
        behavior = self._behaviors[canonical]
        if behavior.kind != RelationshipKind.DIRECTED_WITH_INVERSE:
            return True
        return self._order[canonical] < self._order[behavior.inverse]

    def is_inverse_side(self, type_name: str) -> bool:
        canonical = self.canonical_type(type_name)
        if canonical is None:
            return False
        return self._behaviors[canonical].creates_inverse and not self.is_forward(canonical)

    def forward_type_of(self, type_name: str) -> str | None:
        canonical = self.canonical_type(type_name)
        if canonical is None:
            return None
        if self.is_inverse_side(canonical):
            return self._behaviors[canonical].inverse
        return canonical

    def is_mirror(self, type_a: str, type_b: str) -> bool:
        """True when an edge of ``type_b`` is the reverse of an edge of ``type_a``."""
        inverse = self.inverse_of(type_a)
        return inverse is not None and inverse == self.canonical_type(type_b)

    def canonical_edge(self, source_id: str, type_name: str, target_id: str) -> tuple[str, str, str] | None:
        """Orient an edge in the forward direction of its type pair.

        An inverse-side edge ``(X, T', Y)`` denotes the same link as
        ``(Y, T, X)``. Returns None for unknown types.
        """
        canonical = self.canonical_type(type_name)
        if canonical is None:
            return None
        if self.is_inverse_side(canonical):
            return (target_id, self._behaviors[canonical].inverse, source_id)
        return (source_id, canonical, target_id)


def _suggest(name: str, choices: list[str], limit: int = 3, cutoff: float = 60.0) -> list[str]:
    if not name or not choices:
        return []
    return [match for match, _score, _idx in process.extract(name, choices, limit=limit, score_cutoff=cutoff)]
