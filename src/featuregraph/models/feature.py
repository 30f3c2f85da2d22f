"""Feature records - the nodes of the relationship graph."""
from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .relationship import Relationship, new_id, parse_version


class FeatureState(str, Enum):
    """Lifecycle state, derived from the current version's timestamps."""

    OPEN = "open"
    IN_PROGRESS = "in-progress"
    CLOSED = "closed"


class FeatureVersion(BaseModel):
    """One version of a feature's lifecycle."""

    created_at: datetime
    modified_at: datetime
    closed_at: datetime | None = None
    branch: str = ""
    authors: list[str] = Field(default_factory=list)
    notes: str = ""

    @classmethod
    def start(cls, branch: str = "", when: datetime | None = None) -> FeatureVersion:
        now = when or datetime.now(UTC)
        return cls(created_at=now, modified_at=now, branch=branch)


def version_sort_key(key: str) -> tuple[int, int, int]:
    parsed = parse_version(key)
    return parsed if parsed is not None else (-1, -1, -1)


class Feature(BaseModel):
    """A tracked unit of work and its outgoing relationships."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    versions: dict[str, FeatureVersion] = Field(default_factory=dict)
    relationships: list[Relationship] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("versions", mode="before")
    @classmethod
    def _stringify_version_keys(cls, value: Any) -> Any:
        # YAML reads `1:` as an int key
        if isinstance(value, dict):
            return {str(k): v for k, v in value.items()}
        return value

    @classmethod
    def new(
        cls,
        name: str,
        description: str = "",
        *,
        category: str | None = None,
        tags: list[str] | None = None,
        branch: str = "",
        priority: str | None = None,
    ) -> Feature:
        feature = cls(name=name, description=description, tags=list(tags or []))
        feature.versions["1"] = FeatureVersion.start(branch=branch)
        if category:
            feature.metadata["category"] = category
        if priority:
            feature.metadata["priority"] = priority
        return feature

    def current_version_key(self) -> str:
        """Highest version key, or an empty string when there are no versions."""
        if not self.versions:
            return ""
        return max(self.versions, key=version_sort_key)

    def current_version(self) -> FeatureVersion | None:
        key = self.current_version_key()
        return self.versions.get(key) if key else None

    @property
    def state(self) -> FeatureState:
        version = self.current_version()
        if version is None:
            return FeatureState.OPEN
        if version.closed_at is not None:
            return FeatureState.CLOSED
        if version.created_at == version.modified_at:
            return FeatureState.OPEN
        return FeatureState.IN_PROGRESS

    @property
    def category(self) -> str:
        return str(self.metadata.get("category") or "")

    @property
    def priority(self) -> str:
        return str(self.metadata.get("priority") or "")

    def touch(self, when: datetime | None = None) -> None:
        """Mark the current version as modified."""
        version = self.current_version()
        if version is not None:
            version.modified_at = when or datetime.now(UTC)

    def close(self, when: datetime | None = None) -> None:
        version = self.current_version()
        if version is not None:
            now = when or datetime.now(UTC)
            version.closed_at = now
            version.modified_at = now

    def find_relationship(self, type_name: str, target_id: str) -> Relationship | None:
        for rel in self.relationships:
            if rel.type == type_name and rel.target_id == target_id:
                return rel
        return None

    def relationships_to(self, target_id: str) -> list[Relationship]:
        return [rel for rel in self.relationships if rel.target_id == target_id]
