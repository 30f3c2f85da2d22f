"""Relationship schema persistence in ``config.yml``.

The schema lives under the ``relationships`` key. Categories or types
missing from the file fall back to the built-in catalog; other top-level
keys in the file are preserved on save.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from featuregraph.exceptions import InvalidSchemaError, StorageError
from featuregraph.fs import atomic_write_text
from featuregraph.models import CycleDetection, Schema

logger = structlog.get_logger(__name__)

SECTION = "relationships"


class SchemaStore:
    def __init__(self, config_path: Path | str):
        self.config_path = Path(config_path)

    def _read(self) -> dict[str, Any]:
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise StorageError(str(self.config_path), str(exc)) from exc
        if not isinstance(data, dict):
            raise StorageError(str(self.config_path), "expected a mapping at the top level")
        return data

    def load(self) -> Schema:
        """Load the schema, merging defaults, and check its integrity.

        Raises:
            StorageError: unreadable file
            SchemaError: the configured schema is inconsistent
        """
        section = self._read().get(SECTION) or {}
        defaults = Schema.default().model_dump(mode="json")
        for name, category in (section.get("categories") or {}).items():
            if isinstance(category, dict) and "cycle_detection" in category:
                CycleDetection.parse(category["cycle_detection"], name)
        try:
            schema = Schema.model_validate(
                {
                    "categories": section.get("categories") or defaults["categories"],
                    "types": section.get("types") or defaults["types"],
                    "settings": section.get("settings") or {},
                }
            )
        except ValidationError as exc:
            raise InvalidSchemaError(f"{self.config_path}: {exc}") from exc
        schema.validate_integrity()
        return schema

    def save(self, schema: Schema) -> Path:
        data = self._read()
        data[SECTION] = schema.model_dump(mode="json")
        try:
            atomic_write_text(self.config_path, yaml.safe_dump(data, sort_keys=False, allow_unicode=True))
        except OSError as exc:
            raise StorageError(str(self.config_path), str(exc)) from exc
        logger.debug("schema_saved", path=str(self.config_path))
        return self.config_path
