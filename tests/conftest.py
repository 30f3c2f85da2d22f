from __future__ import annotations

from collections.abc import Callable

import pytest

from featuregraph.graph import NodeSet
from featuregraph.models import Feature, Schema


@pytest.fixture()
def schema() -> Schema:
    return Schema.default()


@pytest.fixture()
def make_nodes() -> Callable[..., tuple[NodeSet, dict[str, Feature]]]:
    """Build a node set of fresh features, returned with a name -> feature map."""

    def _make(*names: str) -> tuple[NodeSet, dict[str, Feature]]:
        features = {name: Feature.new(name) for name in names}
        return NodeSet(features.values()), features

    return _make


class SaveRecorder:
    """on_save callback that remembers which features were saved."""

    def __init__(self):
        self.saved: list[Feature] = []

    def __call__(self, feature: Feature) -> None:
        self.saved.append(feature)

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.saved]


@pytest.fixture()
def recorder() -> SaveRecorder:
    return SaveRecorder()
