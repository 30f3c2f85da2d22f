"""Process settings read from the environment.

The relationship schema itself is stored in the project's ``config.yml`` and
handled by :mod:`featuregraph.storage.schema_store`; this module only covers
knobs that belong to the running process.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _s(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value else default


def _f(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Directory holding config.yml and features/
    root_dir: Path = Path(".featuregraph")
    log_level: str = "WARNING"

    # Suggestions offered when a feature name does not resolve
    max_suggestions: int = 3
    min_similarity: float = 60.0

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            root_dir=Path(_s("FEATUREGRAPH_DIR", ".featuregraph")),
            log_level=_s("FEATUREGRAPH_LOG_LEVEL", "WARNING").upper(),
            max_suggestions=_i("FEATUREGRAPH_MAX_SUGGESTIONS", 3),
            min_similarity=_f("FEATUREGRAPH_MIN_SIMILARITY", 60.0),
        )

    @property
    def config_path(self) -> Path:
        return self.root_dir / "config.yml"

    @property
    def features_dir(self) -> Path:
        return self.root_dir / "features"
