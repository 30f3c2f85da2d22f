"""Schema management: define, update and delete relationship types and categories.

Each operation works on a copy of the schema and validates the copy before
any feature edge is rewritten, so a rejected change leaves both the schema
and the node set untouched. The updated schema is returned on the result;
saving it is the caller's job, as is saving the features passed to
``on_save``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import structlog

from featuregraph.exceptions import (
    CategoryInUseError,
    ConflictingInverseError,
    InvalidSchemaError,
    InverseMismatchError,
    SchemaNameTakenError,
    TypeInUseError,
    UnknownTypeError,
)
from featuregraph.graph.nodes import NodeSet, SaveCallback
from featuregraph.graph.registry import RelationshipKind, SchemaRegistry
from featuregraph.models import (
    CycleDetection,
    Feature,
    Relationship,
    RelationshipCategory,
    RelationshipTypeConfig,
    Schema,
)

logger = structlog.get_logger(__name__)


class DeletePolicy(str, Enum):
    """What to do with references to a deleted type or category."""

    ERROR = "error"  # refuse while anything still uses it
    MIGRATE = "migrate"  # move references to a replacement
    CASCADE = "cascade"  # delete everything that depends on it


# ---------------------- Results ----------------------


@dataclass
class TypeDefinitionResult:
    schema: Schema
    name: str
    inverse: str | None = None
    inverse_created: bool = False
    inverse_updated: bool = False


@dataclass
class CategoryDefinitionResult:
    schema: Schema
    name: str


@dataclass
class TypeUpdateResult:
    schema: Schema
    old_name: str
    new_name: str
    renamed: bool = False
    old_inverse: str | None = None
    new_inverse: str | None = None
    inverse_renamed: bool = False
    kept_old_as_alias: bool = False
    updated_relationships: int = 0


@dataclass
class CategoryUpdateResult:
    schema: Schema
    old_name: str
    new_name: str
    renamed: bool = False
    kept_old_as_alias: bool = False
    types_updated: int = 0


@dataclass
class TypeDeleteResult:
    schema: Schema
    type_name: str
    inverse_type: str | None
    policy: DeletePolicy
    affected: list[str] = field(default_factory=list)
    migrated_to: str | None = None
    migrated_relationships: int = 0
    deleted_relationships: int = 0


@dataclass
class CategoryDeleteResult:
    schema: Schema
    category: str
    policy: DeletePolicy
    moved_to: str | None = None
    moved_types: list[str] = field(default_factory=list)
    deleted_types: list[str] = field(default_factory=list)
    deleted_relationships: int = 0


# ---------------------- Helpers ----------------------


def _name_in_use(schema: Schema, name: str, *, owner: str | None = None) -> bool:
    """True if ``name`` is a type or an alias of a type other than ``owner``."""
    for type_name, cfg in schema.types.items():
        if type_name == owner:
            continue
        if type_name == name or name in cfg.aliases:
            return True
    return False


def _category_name_in_use(schema: Schema, name: str, *, owner: str | None = None) -> bool:
    for category_name, category in schema.categories.items():
        if category_name == owner:
            continue
        if category_name == name or name in category.aliases:
            return True
    return False


def _rename_key(mapping: dict, old: str, new: str) -> dict:
    """Copy of ``mapping`` with ``old`` renamed to ``new`` in the same position."""
    return {(new if key == old else key): value for key, value in mapping.items()}


def _merge_aliases(current: list[str], add: list[str], remove: list[str]) -> list[str]:
    aliases = set(current) | set(add)
    aliases -= set(remove)
    return sorted(aliases)


def _save_all(features: list[Feature], on_save: SaveCallback | None) -> None:
    if on_save is None:
        return
    for feature in features:
        on_save(feature)


def _stored_type(registry: SchemaRegistry, type_name: str) -> str:
    """Canonical name of a stored edge type; unknown names pass through."""
    return registry.canonical_type(type_name) or type_name


def _rewrite_types(nodes: NodeSet, renames: dict[str, str], registry: SchemaRegistry) -> tuple[int, list[Feature]]:
    """Rename edge types in place, aliases included; returns (edges rewritten, features modified)."""
    count = 0
    modified: list[Feature] = []
    for feature in nodes:
        changed = False
        for rel in feature.relationships:
            current = _stored_type(registry, rel.type)
            if current in renames:
                rel.type = renames[current]
                count += 1
                changed = True
        if changed:
            modified.append(feature)
    return count, modified


def _delete_types(nodes: NodeSet, doomed: set[str], registry: SchemaRegistry) -> tuple[int, list[Feature]]:
    count = 0
    modified: list[Feature] = []
    for feature in nodes:
        kept = [rel for rel in feature.relationships if _stored_type(registry, rel.type) not in doomed]
        if len(kept) != len(feature.relationships):
            count += len(feature.relationships) - len(kept)
            feature.relationships = kept
            modified.append(feature)
    return count, modified


def _describe_usage(nodes: NodeSet, types: set[str], registry: SchemaRegistry) -> list[str]:
    usages = []
    for feature in nodes:
        for rel in feature.relationships:
            if _stored_type(registry, rel.type) in types:
                target = nodes.name_of(rel.target_id, rel.target_name or rel.target_id)
                usages.append(f"{feature.name} -> {target} ({rel.type})")
    return usages


def _commit(schema: Schema) -> Schema:
    schema.validate_integrity()
    return schema


def _attach_inverse(schema: Schema, name: str, inverse: str, category: str) -> tuple[bool, bool]:
    """Point ``inverse`` back at ``name``, creating it when missing.

    Returns (created, updated).

    Raises:
        ConflictingInverseError: the inverse is bidirectional
        InverseMismatchError: the inverse is already paired with another type
    """
    existing = schema.types.get(inverse)
    if existing is None:
        schema.types[inverse] = RelationshipTypeConfig(
            category=category,
            inverse=name,
            description=f"Inverse of {name}",
        )
        return True, False
    if existing.bidirectional:
        raise ConflictingInverseError(inverse, name)
    if existing.inverse and existing.inverse != name and existing.inverse in schema.types:
        raise InverseMismatchError(name, inverse, existing.inverse)
    if existing.inverse == name:
        return False, False
    existing.inverse = name
    return False, True


# ---------------------- Types ----------------------


def define_type(
    schema: Schema,
    name: str,
    *,
    category: str | None = None,
    inverse: str | None = None,
    bidirectional: bool = False,
    description: str = "",
    aliases: list[str] | None = None,
    copy_from: str | None = None,
) -> TypeDefinitionResult:
    """Add a relationship type, creating or pairing its inverse.

    Args:
        schema: Current schema (left unmodified)
        name: New type name
        category: Category name or alias; defaults to the configured default
        inverse: Inverse type; created in the same category when missing
        bidirectional: The type is its own inverse
        description: Human description
        aliases: Alternative names
        copy_from: Existing type whose settings (except its inverse) are copied

    Raises:
        SchemaNameTakenError: name already used by a type or alias
        UnknownTypeError: ``copy_from`` does not resolve
        UnknownCategoryError: category does not resolve
        ConflictingInverseError: both ``bidirectional`` and ``inverse`` given
    """
    if not schema.settings.allow_custom_types:
        raise InvalidSchemaError("custom relationship types are disabled in settings")
    if not name:
        raise InvalidSchemaError("relationship type name cannot be empty")
    if _name_in_use(schema, name):
        raise SchemaNameTakenError("relationship type", name)

    registry = SchemaRegistry(schema)
    base = RelationshipTypeConfig(category=schema.settings.default_category)
    if copy_from:
        _, source = registry.resolve_type(copy_from)
        base = source.model_copy(deep=True)
        base.inverse = None
        base.aliases = []

    if category:
        base.category = registry.resolve_category(category)[0]
    else:
        base.category = registry.resolve_category(base.category)[0]
    if bidirectional:
        base.bidirectional = True
    if description:
        base.description = description
    if aliases:
        base.aliases = sorted(set(aliases))
    if base.bidirectional and inverse:
        raise ConflictingInverseError(name, inverse)
    if inverse == name:
        raise InvalidSchemaError(f"type '{name}' cannot be its own inverse; mark it bidirectional")
    base.inverse = inverse or None

    updated = schema.clone()
    updated.types[name] = base
    result = TypeDefinitionResult(schema=updated, name=name, inverse=base.inverse)
    if base.inverse:
        result.inverse_created, result.inverse_updated = _attach_inverse(
            updated, name, base.inverse, base.category
        )
    _commit(updated)
    logger.info("type_defined", name=name, category=base.category, inverse=base.inverse)
    return result


def update_type(
    schema: Schema,
    nodes: NodeSet,
    name: str,
    *,
    new_name: str | None = None,
    rename_inverse: str | None = None,
    keep_old_as_alias: bool = False,
    category: str | None = None,
    inverse: str | None = None,
    description: str | None = None,
    bidirectional: bool | None = None,
    add_aliases: list[str] | None = None,
    remove_aliases: list[str] | None = None,
    on_save: SaveCallback | None = None,
) -> TypeUpdateResult:
    """Change a relationship type's settings and optionally rename it.

    Renaming rewrites every edge of the type (and of its inverse, when that
    is renamed too) in every feature; the rewritten count is reported.

    Raises:
        UnknownTypeError: ``name`` does not resolve
        SchemaNameTakenError: the new name (or new inverse name) is in use
        UnknownCategoryError: ``category`` does not resolve
        SchemaError: the resulting schema is inconsistent
    """
    registry = SchemaRegistry(schema)
    canonical, _ = registry.resolve_type(name)
    updated = schema.clone()
    cfg = updated.types[canonical]
    old_inverse = cfg.inverse if cfg.inverse in updated.types else None
    renaming = bool(new_name) and new_name != canonical
    result = TypeUpdateResult(
        schema=updated,
        old_name=canonical,
        new_name=new_name if renaming else canonical,
        renamed=renaming,
        old_inverse=cfg.inverse,
        new_inverse=cfg.inverse,
    )

    if renaming and _name_in_use(updated, new_name, owner=canonical):
        raise SchemaNameTakenError("relationship type", new_name)

    if category:
        cfg.category = registry.resolve_category(category)[0]

    if bidirectional is True:
        cfg.bidirectional = True
        if old_inverse and updated.types[old_inverse].inverse == canonical:
            updated.types[old_inverse].inverse = None
        cfg.inverse = None
        old_inverse = None
    elif bidirectional is False:
        cfg.bidirectional = False

    if inverse and inverse != cfg.inverse:
        if cfg.bidirectional:
            raise ConflictingInverseError(canonical, inverse)
        if old_inverse and updated.types[old_inverse].inverse == canonical:
            updated.types[old_inverse].inverse = None
        cfg.inverse = inverse
        _attach_inverse(updated, canonical, inverse, cfg.category)
        old_inverse = inverse

    if description is not None:
        cfg.description = description

    removed = list(remove_aliases or [])
    added = [a for a in (add_aliases or []) if a != canonical]
    if renaming:
        removed.append(new_name)
        if keep_old_as_alias:
            added.append(canonical)
            result.kept_old_as_alias = True
    for alias in added:
        if _name_in_use(updated, alias, owner=canonical):
            raise SchemaNameTakenError("relationship type alias", alias)
    cfg.aliases = _merge_aliases(cfg.aliases, added, removed)

    renames: dict[str, str] = {}
    if renaming:
        updated.types = _rename_key(updated.types, canonical, new_name)
        renames[canonical] = new_name
        if old_inverse:
            inverse_cfg = updated.types[old_inverse]
            inverse_cfg.inverse = new_name
            if rename_inverse and rename_inverse != old_inverse:
                if _name_in_use(updated, rename_inverse, owner=old_inverse):
                    raise SchemaNameTakenError("relationship type", rename_inverse)
                updated.types = _rename_key(updated.types, old_inverse, rename_inverse)
                cfg.inverse = rename_inverse
                renames[old_inverse] = rename_inverse
                result.inverse_renamed = True
        for old, new in renames.items():
            if updated.settings.tree_type == old:
                updated.settings.tree_type = new
    result.new_inverse = cfg.inverse

    _commit(updated)

    if renames:
        count, modified = _rewrite_types(nodes, renames, registry)
        result.updated_relationships = count
        _save_all(modified, on_save)
    logger.info(
        "type_updated",
        name=canonical,
        new_name=result.new_name,
        updated_relationships=result.updated_relationships,
    )
    return result


def delete_type(
    schema: Schema,
    nodes: NodeSet,
    name: str,
    *,
    policy: DeletePolicy = DeletePolicy.ERROR,
    migrate_to: str | None = None,
    on_save: SaveCallback | None = None,
) -> TypeDeleteResult:
    """Delete a relationship type together with its inverse.

    Policies:
    - ERROR: refuse while any edge uses the type or its inverse
    - MIGRATE: rewrite those edges to ``migrate_to`` (and its inverse)
    - CASCADE: delete those edges

    Raises:
        UnknownTypeError: ``name`` or ``migrate_to`` does not resolve
        TypeInUseError: policy is ERROR and edges use the type
        InvalidSchemaError: invalid migration target
    """
    if migrate_to and policy == DeletePolicy.ERROR:
        policy = DeletePolicy.MIGRATE
    if policy == DeletePolicy.MIGRATE and not migrate_to:
        raise InvalidSchemaError("migrating a relationship type needs a replacement type")
    if migrate_to and policy == DeletePolicy.CASCADE:
        raise InvalidSchemaError("cannot both migrate and cascade")

    registry = SchemaRegistry(schema)
    canonical, cfg = registry.resolve_type(name)
    inverse = cfg.inverse if cfg.inverse in schema.types else None
    doomed = {canonical} | ({inverse} if inverse else set())

    updated = schema.clone()
    result = TypeDeleteResult(
        schema=updated,
        type_name=canonical,
        inverse_type=inverse,
        policy=policy,
        affected=_describe_usage(nodes, doomed, registry),
    )
    if result.affected and policy == DeletePolicy.ERROR:
        raise TypeInUseError(canonical, result.affected)

    replacement = replacement_inverse = None
    if policy == DeletePolicy.MIGRATE:
        replacement = registry.canonical_type(migrate_to)
        if replacement is None:
            raise UnknownTypeError(migrate_to)
        if replacement in doomed:
            raise InvalidSchemaError(f"cannot migrate '{canonical}' to a type that is being deleted")
        behavior = registry.behavior(replacement)
        if behavior.kind == RelationshipKind.DIRECTED_WITH_INVERSE:
            replacement_inverse = behavior.inverse
        result.migrated_to = replacement

    for type_name in doomed:
        del updated.types[type_name]
    if updated.settings.tree_type in doomed:
        updated.settings.tree_type = replacement
    _commit(updated)

    modified: list[Feature] = []
    if policy == DeletePolicy.MIGRATE:
        result.migrated_relationships, result.deleted_relationships, modified = _migrate_edges(
            nodes, registry, canonical, replacement, inverse, replacement_inverse
        )
    elif policy == DeletePolicy.CASCADE:
        result.deleted_relationships, modified = _delete_types(nodes, doomed, registry)
    _save_all(modified, on_save)
    logger.info(
        "type_deleted",
        name=canonical,
        inverse=inverse,
        policy=policy.value,
        migrated=result.migrated_relationships,
        deleted=result.deleted_relationships,
    )
    return result


def _migrate_edges(
    nodes: NodeSet,
    registry: SchemaRegistry,
    old: str,
    new: str,
    old_inverse: str | None,
    new_inverse: str | None,
) -> tuple[int, int, list[Feature]]:
    """Move edges of ``old``/``old_inverse`` onto ``new``/``new_inverse``.

    Inverse edges are dropped when the replacement has no inverse, and an
    edge that would duplicate one already present is dropped too.
    """
    migrated = deleted = 0
    modified: list[Feature] = []
    for feature in nodes:
        kept: list[Relationship] = []
        present = {(_stored_type(registry, rel.type), rel.target_id) for rel in feature.relationships}
        changed = False
        for rel in feature.relationships:
            current = _stored_type(registry, rel.type)
            if current == old:
                target_type = new
            elif old_inverse and current == old_inverse:
                target_type = new_inverse
            else:
                kept.append(rel)
                continue
            changed = True
            if target_type is None or (target_type, rel.target_id) in present:
                deleted += 1
                continue
            rel.type = target_type
            present.add((target_type, rel.target_id))
            kept.append(rel)
            migrated += 1
        if changed:
            feature.relationships = kept
            modified.append(feature)
    return migrated, deleted, modified


# ---------------------- Categories ----------------------


def define_category(
    schema: Schema,
    name: str,
    *,
    description: str = "",
    allow_cycles: bool = False,
    cycle_detection: str | CycleDetection | None = None,
    include_in_impact: bool = True,
) -> CategoryDefinitionResult:
    """Add a relationship category.

    Cycle detection defaults to ``strict``, or ``none`` when cycles are allowed.

    Raises:
        SchemaNameTakenError: name already used by a category or alias
        InvalidDetectionModeError: unknown detection mode
        InvalidSchemaError: cycles allowed with a detection mode other than none
    """
    if not schema.settings.allow_custom_categories:
        raise InvalidSchemaError("custom relationship categories are disabled in settings")
    if not name:
        raise InvalidSchemaError("category name cannot be empty")
    if _category_name_in_use(schema, name):
        raise SchemaNameTakenError("category", name)

    if cycle_detection is None:
        mode = CycleDetection.NONE if allow_cycles else CycleDetection.STRICT
    else:
        mode = CycleDetection.parse(cycle_detection, name)

    updated = schema.clone()
    updated.categories[name] = RelationshipCategory(
        description=description,
        allow_cycles=allow_cycles,
        cycle_detection=mode,
        include_in_impact=include_in_impact,
    )
    _commit(updated)
    logger.info("category_defined", name=name, cycle_detection=mode.value)
    return CategoryDefinitionResult(schema=updated, name=name)


def update_category(
    schema: Schema,
    name: str,
    *,
    new_name: str | None = None,
    keep_old_as_alias: bool = False,
    description: str | None = None,
    allow_cycles: bool | None = None,
    cycle_detection: str | CycleDetection | None = None,
    include_in_impact: bool | None = None,
) -> CategoryUpdateResult:
    """Change a category's policy and optionally rename it.

    Renaming updates the ``category`` of every type in it and the default
    category setting; no feature edges change.

    Raises:
        UnknownCategoryError: ``name`` does not resolve
        SchemaNameTakenError: the new name is in use
        InvalidDetectionModeError: unknown detection mode
        InvalidSchemaError: the resulting policy is inconsistent
    """
    registry = SchemaRegistry(schema)
    canonical, _ = registry.resolve_category(name)
    updated = schema.clone()
    category = updated.categories[canonical]
    renaming = bool(new_name) and new_name != canonical
    result = CategoryUpdateResult(
        schema=updated,
        old_name=canonical,
        new_name=new_name if renaming else canonical,
        renamed=renaming,
    )
    if renaming and _category_name_in_use(updated, new_name, owner=canonical):
        raise SchemaNameTakenError("category", new_name)

    if description is not None:
        category.description = description
    if include_in_impact is not None:
        category.include_in_impact = include_in_impact
    if cycle_detection is not None:
        category.cycle_detection = CycleDetection.parse(cycle_detection, canonical)
    if allow_cycles is not None:
        category.allow_cycles = allow_cycles
        if allow_cycles and cycle_detection is None:
            category.cycle_detection = CycleDetection.NONE
        elif not allow_cycles and cycle_detection is None and category.cycle_detection == CycleDetection.NONE:
            category.cycle_detection = CycleDetection.STRICT

    if renaming:
        aliases = [a for a in category.aliases if a != new_name]
        if keep_old_as_alias:
            aliases.append(canonical)
            result.kept_old_as_alias = True
        category.aliases = sorted(set(aliases))
        updated.categories = _rename_key(updated.categories, canonical, new_name)
        for cfg in updated.types.values():
            if cfg.category == canonical:
                cfg.category = new_name
                result.types_updated += 1
        if updated.settings.default_category == canonical:
            updated.settings.default_category = new_name

    _commit(updated)
    logger.info("category_updated", name=canonical, new_name=result.new_name, types_updated=result.types_updated)
    return result


def delete_category(
    schema: Schema,
    nodes: NodeSet,
    name: str,
    *,
    policy: DeletePolicy = DeletePolicy.ERROR,
    move_types_to: str | None = None,
    on_save: SaveCallback | None = None,
) -> CategoryDeleteResult:
    """Delete a category.

    Policies:
    - ERROR: refuse while any type belongs to the category
    - MIGRATE: move its types to ``move_types_to``; no edges change
    - CASCADE: delete its types, their inverses, and every edge of them

    Raises:
        UnknownCategoryError: ``name`` or ``move_types_to`` does not resolve
        CategoryInUseError: policy is ERROR and types belong to the category
        InvalidSchemaError: invalid move target
    """
    if move_types_to and policy == DeletePolicy.ERROR:
        policy = DeletePolicy.MIGRATE
    if policy == DeletePolicy.MIGRATE and not move_types_to:
        raise InvalidSchemaError("moving types needs a destination category")
    if move_types_to and policy == DeletePolicy.CASCADE:
        raise InvalidSchemaError("cannot both move types and cascade")

    registry = SchemaRegistry(schema)
    canonical, _ = registry.resolve_category(name)
    members = [type_name for type_name, cfg in schema.types.items() if cfg.category == canonical]
    updated = schema.clone()
    result = CategoryDeleteResult(schema=updated, category=canonical, policy=policy)

    if members and policy == DeletePolicy.ERROR:
        raise CategoryInUseError(canonical, members)

    doomed: set[str] = set()
    if policy == DeletePolicy.MIGRATE:
        destination, _ = registry.resolve_category(move_types_to)
        if destination == canonical:
            raise InvalidSchemaError(f"cannot move types of '{canonical}' into itself")
        for type_name in members:
            updated.types[type_name].category = destination
        result.moved_to = destination
        result.moved_types = members
    elif policy == DeletePolicy.CASCADE:
        for type_name in members:
            doomed.add(type_name)
            inverse = schema.types[type_name].inverse
            if inverse and inverse in schema.types:
                doomed.add(inverse)
        result.deleted_types = [type_name for type_name in schema.types if type_name in doomed]
        for type_name in doomed:
            del updated.types[type_name]
        if updated.settings.tree_type in doomed:
            updated.settings.tree_type = None

    del updated.categories[canonical]
    if updated.settings.default_category == canonical:
        updated.settings.default_category = result.moved_to or next(iter(updated.categories), "")
    _commit(updated)

    if doomed:
        result.deleted_relationships, modified = _delete_types(nodes, doomed, registry)
        _save_all(modified, on_save)
    logger.info(
        "category_deleted",
        name=canonical,
        policy=policy.value,
        moved_types=len(result.moved_types),
        deleted_types=len(result.deleted_types),
        deleted_relationships=result.deleted_relationships,
    )
    return result
