"""YAML-backed feature store: one file per feature under ``features/``."""
from __future__ import annotations

import re
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from featuregraph.exceptions import StorageError
from featuregraph.fs import atomic_write_text
from featuregraph.graph.nodes import NodeSet
from featuregraph.models import Feature

logger = structlog.get_logger(__name__)


def _slug(s: str) -> str:
    s = s.strip().lower()
    s = re.sub(r"[^a-z0-9]+", "-", s)
    return re.sub(r"-+", "-", s).strip("-") or "feature"


def dump_feature(feature: Feature) -> str:
    return yaml.safe_dump(feature.model_dump(mode="json"), sort_keys=False, allow_unicode=True)


def load_feature(path: Path) -> Feature:
    """Parse one feature file.

    Raises:
        StorageError: the file is unreadable, not YAML, or not a feature
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise StorageError(str(path), str(exc)) from exc
    if not isinstance(data, dict):
        raise StorageError(str(path), "expected a mapping at the top level")
    try:
        return Feature.model_validate(data)
    except ValidationError as exc:
        raise StorageError(str(path), f"invalid feature record: {exc.error_count()} error(s)") from exc


class FeatureStore:
    """Reads and writes feature records in a directory.

    File names derive from the feature name; a feature keeps its file until
    it is renamed, at which point the old file is replaced.
    """

    def __init__(self, features_dir: Path | str, *, max_suggestions: int = 3, min_similarity: float = 60.0):
        self.features_dir = Path(features_dir)
        self.max_suggestions = max_suggestions
        self.min_similarity = min_similarity
        self._paths: dict[str, Path] = {}

    def _files(self) -> list[Path]:
        if not self.features_dir.is_dir():
            return []
        return sorted([*self.features_dir.glob("*.yml"), *self.features_dir.glob("*.yaml")])

    def list(self) -> list[Feature]:
        features = []
        for path in self._files():
            feature = load_feature(path)
            self._paths[feature.id] = path
            features.append(feature)
        return features

    def load_nodes(self) -> NodeSet:
        return NodeSet(self.list())

    def get(self, feature_id: str) -> Feature | None:
        for feature in self.list():
            if feature.id == feature_id:
                return feature
        return None

    def resolve(self, identifier: str) -> Feature:
        """Resolve by id, id prefix or case-insensitive name.

        Raises:
            FeatureNotFoundError: with ranked name suggestions
        """
        return self.load_nodes().resolve(
            identifier,
            max_suggestions=self.max_suggestions,
            min_similarity=self.min_similarity,
        )

    def path_for(self, feature: Feature) -> Path:
        slug = _slug(feature.name)
        path = self.features_dir / f"{slug}.yml"
        if not path.exists() or self._paths.get(feature.id) == path:
            return path
        owner = next((fid for fid, known in self._paths.items() if known == path), None)
        if owner is None:
            owner = load_feature(path).id
        if owner != feature.id:
            # Another feature already owns this name
            path = self.features_dir / f"{slug}-{feature.id[-8:]}.yml"
        return path

    def save(self, feature: Feature) -> Path:
        path = self.path_for(feature)
        try:
            atomic_write_text(path, dump_feature(feature))
        except OSError as exc:
            raise StorageError(str(path), str(exc)) from exc
        previous = self._paths.get(feature.id)
        if previous is not None and previous != path and previous.exists():
            previous.unlink()
        self._paths[feature.id] = path
        logger.debug("feature_saved", feature=feature.id, path=str(path))
        return path

    def delete(self, feature: Feature) -> None:
        path = self._paths.pop(feature.id, None) or self.path_for(feature)
        if path.exists():
            path.unlink()
        logger.debug("feature_deleted", feature=feature.id, path=str(path))
