"""In-memory node set the engine operates over."""
from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import Protocol, runtime_checkable

from rapidfuzz import fuzz, process

from featuregraph.exceptions import AmbiguousReferenceError, FeatureNotFoundError
from featuregraph.models import Feature

# Persistence hook called once for every feature an operation modified
SaveCallback = Callable[[Feature], None]


@runtime_checkable
class NodeProvider(Protocol):
    """Anything that can supply the full set of features."""

    def load_nodes(self) -> NodeSet:
        """Load every feature, annotated with its origin branch when known."""
        ...

    def save(self, feature: Feature) -> None:
        """Persist one modified feature."""
        ...


class NodeSet:
    """Features indexed by id, in load order.

    Features may have been merged from several branches; ``origin_of``
    reports the branch a feature was loaded from (empty for the current one).
    """

    def __init__(self, features: Iterable[Feature] = (), origins: dict[str, str] | None = None):
        self._features: dict[str, Feature] = {}
        self._origins: dict[str, str] = {}
        for feature in features:
            self.add(feature)
        for feature_id, branch in (origins or {}).items():
            if feature_id in self._features:
                self._origins[feature_id] = branch

    def add(self, feature: Feature, origin_branch: str = "") -> None:
        self._features[feature.id] = feature
        if origin_branch:
            self._origins[feature.id] = origin_branch

    def remove(self, feature_id: str) -> Feature | None:
        self._origins.pop(feature_id, None)
        return self._features.pop(feature_id, None)

    def get(self, feature_id: str) -> Feature | None:
        return self._features.get(feature_id)

    def name_of(self, feature_id: str, fallback: str = "") -> str:
        feature = self._features.get(feature_id)
        return feature.name if feature is not None else fallback

    def origin_of(self, feature_id: str) -> str:
        return self._origins.get(feature_id, "")

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._features

    def __iter__(self) -> Iterator[Feature]:
        return iter(list(self._features.values()))

    def __len__(self) -> int:
        return len(self._features)

    def filter(self, predicate: Callable[[Feature], bool]) -> NodeSet:
        """A new node set sharing the matching feature objects."""
        kept = [feature for feature in self if predicate(feature)]
        return NodeSet(kept, {f.id: self._origins[f.id] for f in kept if f.id in self._origins})

    def resolve(self, identifier: str, *, max_suggestions: int = 3, min_similarity: float = 60.0) -> Feature:
        """Find a feature by exact id, unique id prefix, or case-insensitive name.

        Args:
            identifier: Feature id, id prefix, or name
            max_suggestions: How many close names to offer on a miss
            min_similarity: rapidfuzz score cutoff (0-100) for suggestions

        Returns:
            The matching feature

        Raises:
            FeatureNotFoundError: nothing matches; carries ranked suggestions
            AmbiguousReferenceError: several features share the name or prefix
        """
        identifier = identifier.strip()
        if identifier in self._features:
            return self._features[identifier]

        lowered = identifier.lower()
        by_name = [f for f in self._features.values() if f.name.lower() == lowered]
        if len(by_name) == 1:
            return by_name[0]
        if len(by_name) > 1:
            raise AmbiguousReferenceError(identifier, [f"{f.name} ({f.id})" for f in by_name])

        if len(identifier) >= 4:
            by_prefix = [f for f in self._features.values() if f.id.startswith(identifier)]
            if len(by_prefix) == 1:
                return by_prefix[0]
            if len(by_prefix) > 1:
                raise AmbiguousReferenceError(identifier, [f.id for f in by_prefix])

        raise FeatureNotFoundError(identifier, self.suggest(identifier, max_suggestions, min_similarity))

    def suggest(self, identifier: str, limit: int = 3, min_similarity: float = 60.0) -> list[str]:
        names = [f.name for f in self._features.values()]
        if not identifier or not names or limit <= 0:
            return []
        matches = process.extract(
            identifier,
            names,
            scorer=fuzz.WRatio,
            processor=str.lower,
            limit=limit,
            score_cutoff=min_similarity,
        )
        return [name for name, _score, _idx in matches]
