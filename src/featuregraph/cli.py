"""CLI interface for featuregraph."""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from .config import Settings
from .exceptions import EXIT_VALIDATION, FeatureGraphError
from .graph import (
    ImpactOptions,
    NodeSet,
    TraversalDirection,
    TraversalOptions,
    TreeNode,
    TreeOptions,
    add_relationship,
    analyze_impact,
    build_forest,
    cleanup_incoming_relationships,
    clear_all_relationships,
    remove_relationship,
    sync_target_names,
    traverse_relationships,
)
from .logging import configure_logging
from .management import (
    DeletePolicy,
    define_category,
    define_type,
    delete_category,
    delete_type,
    update_category,
    update_type,
)
from .models import Feature, FeatureState, Schema
from .storage import FeatureStore, SchemaStore
from .validation import AutoFixer, Validator

app = typer.Typer(
    name="featuregraph",
    help="Relationship graph for file-backed feature tracking",
    add_completion=False,
)
types_app = typer.Typer(help="Manage relationship types", add_completion=False)
categories_app = typer.Typer(help="Manage relationship categories", add_completion=False)
app.add_typer(types_app, name="types")
app.add_typer(categories_app, name="categories")
console = Console()


class OutputFormat(str, Enum):
    TEXT = "text"
    JSONL = "jsonl"


def get_settings() -> Settings:
    """Load settings from the environment (and .env) and set up logging."""
    from dotenv import load_dotenv

    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return settings


class Workspace:
    """Schema and feature stores rooted at the configured directory."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.schema_store = SchemaStore(settings.config_path)
        self.feature_store = FeatureStore(
            settings.features_dir,
            max_suggestions=settings.max_suggestions,
            min_similarity=settings.min_similarity,
        )
        self._schema: Schema | None = None
        self._nodes: NodeSet | None = None

    @property
    def schema(self) -> Schema:
        if self._schema is None:
            self._schema = self.schema_store.load()
        return self._schema

    @property
    def nodes(self) -> NodeSet:
        if self._nodes is None:
            self._nodes = self.feature_store.load_nodes()
        return self._nodes

    def resolve(self, identifier: str) -> Feature:
        return self.nodes.resolve(
            identifier,
            max_suggestions=self.settings.max_suggestions,
            min_similarity=self.settings.min_similarity,
        )

    def commit_schema(self, schema: Schema, pending: list[Feature]) -> None:
        """Persist a schema change, then the features it rewrote."""
        self.schema_store.save(schema)
        for feature in pending:
            self.feature_store.save(feature)


@contextmanager
def _workspace() -> Iterator[Workspace]:
    """Yield a workspace; featuregraph errors become a message and exit code."""
    try:
        yield Workspace(get_settings())
    except FeatureGraphError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(exc.exit_code) from exc


def _emit_records(records: list[dict]) -> None:
    for record in records:
        typer.echo(json.dumps(record, default=str))


# ---------------------- Features ----------------------


@app.command()
def init():
    """Create the feature directory and a default relationship schema."""
    with _workspace() as ws:
        ws.settings.features_dir.mkdir(parents=True, exist_ok=True)
        if not ws.settings.config_path.exists():
            ws.schema_store.save(Schema.default())
        console.print(f"[green]Initialized {ws.settings.root_dir}[/green]")


@app.command()
def create(
    name: str = typer.Argument(..., help="Feature name"),
    description: str = typer.Option("", "--description", "-d", help="Feature description"),
    category: str = typer.Option(None, "--category", "-c", help="Feature category"),
    priority: str = typer.Option(None, "--priority", "-p", help="Feature priority"),
    tags: list[str] = typer.Option(None, "--tag", help="Tag (repeatable)"),
):
    """Create a new feature."""
    with _workspace() as ws:
        feature = Feature.new(name, description, category=category, tags=tags or [], priority=priority)
        ws.feature_store.save(feature)
        console.print(f"[green]Created[/green] {escape(feature.name)} ({feature.id})")


@app.command("list")
def list_features(
    fmt: OutputFormat = typer.Option(OutputFormat.TEXT, "--format", help="Output format"),
):
    """List features."""
    with _workspace() as ws:
        features = list(ws.nodes)
        if fmt == OutputFormat.JSONL:
            _emit_records([
                {"id": f.id, "name": f.name, "state": f.state.value, "category": f.category,
                 "priority": f.priority, "relationships": len(f.relationships)}
                for f in features
            ])
            return
        table = Table(title=f"Features ({len(features)})")
        table.add_column("Name", style="cyan")
        table.add_column("State")
        table.add_column("Category")
        table.add_column("Links", justify="right")
        table.add_column("ID", style="dim")
        for f in features:
            table.add_row(f.name, f.state.value, f.category, str(len(f.relationships)), f.id)
        console.print(table)


@app.command()
def delete(
    feature: str = typer.Argument(..., help="Feature id or name"),
):
    """Delete a feature and every relationship pointing at it."""
    with _workspace() as ws:
        target = ws.resolve(feature)
        removed = cleanup_incoming_relationships(ws.nodes, target.id, on_save=ws.feature_store.save)
        ws.feature_store.delete(target)
        ws.nodes.remove(target.id)
        console.print(
            f"[green]Deleted[/green] {escape(target.name)} "
            f"and {len(removed)} incoming relationship(s)"
        )


# ---------------------- Relationship edits ----------------------


@app.command()
def link(
    source: str = typer.Argument(..., help="Source feature id or name"),
    type_name: str = typer.Argument(..., metavar="TYPE", help="Relationship type or alias"),
    target: str = typer.Argument(..., help="Target feature id or name"),
    description: str = typer.Option("", "--description", "-d", help="Relationship description"),
    version_constraint: str = typer.Option(None, "--version-constraint", "-v", help="e.g. '>=2' or '>=1.2.0'"),
):
    """Create a relationship (and its inverse when configured)."""
    with _workspace() as ws:
        src = ws.resolve(source)
        dst = ws.resolve(target)
        result = add_relationship(
            ws.schema,
            ws.nodes,
            src,
            type_name,
            dst,
            description=description,
            version_constraint=version_constraint,
            on_save=ws.feature_store.save,
        )
        console.print(
            f"[green]Linked[/green] {escape(src.name)} --{result.relationship.type}--> {escape(dst.name)}"
        )
        if result.inverse is not None:
            console.print(f"  inverse: {escape(dst.name)} --{result.inverse.type}--> {escape(src.name)}")
        for warning in result.warnings:
            console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")


@app.command()
def unlink(
    source: str = typer.Argument(..., help="Source feature id or name"),
    target: str = typer.Argument(None, help="Target feature id or name"),
    type_name: str = typer.Option(None, "--type", "-t", help="Only remove this relationship type"),
    relationship_id: str = typer.Option(None, "--id", help="Relationship id or unique prefix"),
    missing_ok: bool = typer.Option(False, "--missing-ok", help="Succeed when nothing matches"),
):
    """Remove relationships by target (and type) or by id."""
    if not target and not relationship_id:
        console.print("[red]Error: give a TARGET or --id[/red]")
        raise typer.Exit(2)
    with _workspace() as ws:
        src = ws.resolve(source)
        dst = None if relationship_id else ws.resolve(target)
        result = remove_relationship(
            ws.schema,
            ws.nodes,
            src,
            relationship_id=relationship_id,
            target=dst,
            type_name=type_name,
            missing_ok=missing_ok,
            on_save=ws.feature_store.save,
        )
        for rel in result.removed:
            name = ws.nodes.name_of(rel.target_id, rel.target_name)
            console.print(f"[green]Removed[/green] {escape(src.name)} --{rel.type}--> {escape(name)}")
        for edge in result.inverses_removed:
            console.print(f"  inverse: {escape(edge.holder.name)} --{edge.relationship.type}--> {escape(src.name)}")
        if not result.removed:
            console.print("Nothing to remove")


@app.command()
def clear(
    source: str = typer.Argument(..., help="Feature id or name"),
):
    """Remove every outgoing relationship of a feature."""
    with _workspace() as ws:
        src = ws.resolve(source)
        result = clear_all_relationships(ws.schema, ws.nodes, src, on_save=ws.feature_store.save)
        for rel in result.removed:
            name = ws.nodes.name_of(rel.target_id, rel.target_name)
            console.print(f"[green]Removed[/green] {escape(src.name)} --{rel.type}--> {escape(name)}")
        console.print(f"Removed {len(result.removed)} relationship(s), {len(result.inverses_removed)} inverse(s)")


@app.command("sync-names")
def sync_names():
    """Refresh cached target names on every relationship."""
    with _workspace() as ws:
        updated = sync_target_names(ws.nodes, on_save=ws.feature_store.save)
        console.print(f"Updated {updated} relationship name(s)")


# ---------------------- Queries ----------------------


@app.command()
def relationships(
    feature: str = typer.Argument(..., help="Feature id or name"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Follow relationships transitively"),
    direction: TraversalDirection = typer.Option(TraversalDirection.OUTGOING, "--direction", help="Edge direction"),
    types: list[str] = typer.Option(None, "--type", "-t", help="Only these types (repeatable)"),
    depth: int = typer.Option(0, "--depth", help="Maximum depth (0 or negative = unlimited)"),
    fmt: OutputFormat = typer.Option(OutputFormat.TEXT, "--format", help="Output format"),
):
    """Show a feature's relationships."""
    with _workspace() as ws:
        start = ws.resolve(feature)
        options = TraversalOptions(direction=direction, types=types or [], max_depth=0 if recursive else 1)
        if recursive:
            options.max_depth = depth
        result = traverse_relationships(ws.schema, ws.nodes, start, options)
        if fmt == OutputFormat.JSONL:
            _emit_records(result.to_records())
            return
        table = Table(title=f"Relationships of {start.name} ({result.total})")
        table.add_column("Depth", justify="right")
        table.add_column("Source", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Target", style="cyan")
        for rel in result.relationships:
            table.add_row(str(rel.depth), rel.source_name, rel.type, rel.target_name)
        console.print(table)


@app.command()
def impacts(
    feature: str = typer.Argument(..., help="Feature id or name"),
    depth: int = typer.Option(0, "--depth", help="Maximum depth (0 or negative = unlimited)"),
    include: list[str] = typer.Option(None, "--include-category", help="Also follow this category"),
    exclude: list[str] = typer.Option(None, "--exclude-category", help="Never follow this category"),
    all_categories: bool = typer.Option(False, "--all-categories", help="Follow every category"),
    direction: TraversalDirection = typer.Option(TraversalDirection.OUTGOING, "--direction", help="Edge direction"),
    fmt: OutputFormat = typer.Option(OutputFormat.TEXT, "--format", help="Output format"),
):
    """Show features affected by a change to FEATURE."""
    with _workspace() as ws:
        start = ws.resolve(feature)
        options = ImpactOptions(
            max_depth=depth,
            include_categories=include or [],
            exclude_categories=exclude or [],
            all_categories=all_categories,
            direction=direction,
        )
        result = analyze_impact(ws.schema, ws.nodes, start, options)
        if fmt == OutputFormat.JSONL:
            _emit_records(result.to_records())
            return
        console.print(f"[bold]Impact of {escape(start.name)}[/bold] (categories: {', '.join(result.categories)})")
        for level, items in sorted(result.by_depth().items()):
            console.print(f"[bold]Depth {level}[/bold]")
            for item in items:
                console.print(f"  {escape(item.name)} [dim]via {item.relationship_type}: {escape(' -> '.join(item.path))}[/dim]")
                for warning in item.warnings:
                    console.print(f"    [yellow]Warning:[/yellow] {escape(warning)}")
        console.print(f"Total impacted: {result.total}")


def _add_branch(parent: Tree, node: TreeNode) -> None:
    label = f"{escape(node.name)} [dim]({node.state})[/dim]"
    if node.cycle:
        label += " [yellow](cycle)[/yellow]"
    elif node.truncated:
        label += " [dim]...[/dim]"
    branch = parent.add(label)
    for child in node.children:
        _add_branch(branch, child)


@app.command()
def tree(
    feature: str = typer.Argument(None, help="Start from this feature instead of all roots"),
    types: list[str] = typer.Option(None, "--type", "-t", help="Hierarchy type (repeatable)"),
    depth: int = typer.Option(-1, "--depth", help="Maximum depth (-1 = unlimited)"),
    category: str = typer.Option(None, "--category", help="Only features in this category"),
    state: FeatureState = typer.Option(None, "--state", help="Only features in this state"),
    fmt: OutputFormat = typer.Option(OutputFormat.TEXT, "--format", help="Output format"),
):
    """Render the feature hierarchy."""
    with _workspace() as ws:
        root = ws.resolve(feature) if feature else None
        options = TreeOptions(types=types or [], max_depth=depth, category=category, state=state)
        result = build_forest(ws.schema, ws.nodes, options, root=root)
        if fmt == OutputFormat.JSONL:
            _emit_records(result.to_records())
            return
        view = Tree(f"[bold]Hierarchy ({', '.join(result.types)})[/bold]")
        for node in result.roots:
            _add_branch(view, node)
        console.print(view)


# ---------------------- Validation ----------------------


@app.command()
def validate(
    fix: bool = typer.Option(False, "--fix", help="Repair fixable issues"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what --fix would change"),
    fmt: OutputFormat = typer.Option(OutputFormat.TEXT, "--format", help="Output format"),
):
    """Check relationship integrity (E001-E006)."""
    with _workspace() as ws:
        validator = Validator(ws.schema)
        result = validator.validate(ws.nodes)
        report = None
        if (fix or dry_run) and result.has_fixable_issues():
            fixer = AutoFixer(ws.schema, dry_run=dry_run)
            report = fixer.apply(ws.nodes, result.fixable(), on_save=ws.feature_store.save)
            if not dry_run:
                result = validator.validate(ws.nodes)

        if fmt == OutputFormat.JSONL:
            _emit_records(result.to_records())
        else:
            if report is not None:
                verb = "Would fix" if report.dry_run else "Fixed"
                for outcome in report.outcomes:
                    console.print(f"[green]{verb}[/green] {outcome.issue.code.value}: {escape(outcome.message)}")
                console.print(f"{verb} {report.fixed}, skipped {report.skipped}, failed {report.failed}")
            if not result.issues:
                console.print(
                    f"[green]No issues[/green] in {result.features_checked} feature(s), "
                    f"{result.relationships_checked} relationship(s)"
                )
            else:
                table = Table(title=f"Issues ({len(result.issues)})")
                table.add_column("Code")
                table.add_column("Severity")
                table.add_column("Feature", style="cyan")
                table.add_column("Message")
                table.add_column("Fixable")
                for issue in result.issues:
                    table.add_row(
                        issue.code.value,
                        issue.severity.value,
                        issue.feature_name,
                        issue.message,
                        "yes" if issue.fixable else "no",
                    )
                console.print(table)
        if result.has_errors() and not dry_run:
            raise typer.Exit(EXIT_VALIDATION)


# ---------------------- Relationship types ----------------------


@types_app.command("list")
def list_types(
    category: str = typer.Option(None, "--category", "-c", help="Only types in this category"),
):
    """List relationship types."""
    with _workspace() as ws:
        schema = ws.schema
        table = Table(title="Relationship types")
        table.add_column("Type", style="cyan")
        table.add_column("Category")
        table.add_column("Inverse")
        table.add_column("Aliases")
        for name, cfg in schema.types.items():
            if category and cfg.category != category:
                continue
            inverse = "(bidirectional)" if cfg.bidirectional else (cfg.inverse or "")
            table.add_row(name, cfg.category, inverse, ", ".join(cfg.aliases))
        console.print(table)


@types_app.command("define")
def define_type_cmd(
    name: str = typer.Argument(..., help="New type name"),
    category: str = typer.Option(None, "--category", "-c", help="Category (default from settings)"),
    inverse: str = typer.Option(None, "--inverse", help="Inverse type, created if missing"),
    bidirectional: bool = typer.Option(False, "--bidirectional", help="Type is its own inverse"),
    description: str = typer.Option("", "--description", "-d", help="Description"),
    aliases: list[str] = typer.Option(None, "--alias", help="Alias (repeatable)"),
    copy_from: str = typer.Option(None, "--copy-from", help="Copy settings from an existing type"),
):
    """Define a relationship type."""
    with _workspace() as ws:
        result = define_type(
            ws.schema,
            name,
            category=category,
            inverse=inverse,
            bidirectional=bidirectional,
            description=description,
            aliases=aliases or [],
            copy_from=copy_from,
        )
        ws.schema_store.save(result.schema)
        console.print(f"[green]Defined type[/green] {name}")
        if result.inverse_created:
            console.print(f"  created inverse {result.inverse}")


@types_app.command("update")
def update_type_cmd(
    name: str = typer.Argument(..., help="Type name or alias"),
    rename: str = typer.Option(None, "--rename", help="New name"),
    rename_inverse: str = typer.Option(None, "--rename-inverse", help="New name for the inverse type"),
    keep_alias: bool = typer.Option(False, "--keep-alias", help="Keep the old name as an alias"),
    category: str = typer.Option(None, "--category", "-c", help="Move to this category"),
    inverse: str = typer.Option(None, "--inverse", help="Set the inverse type"),
    description: str = typer.Option(None, "--description", "-d", help="Description"),
    bidirectional: bool = typer.Option(None, "--bidirectional/--directed", help="Change direction behaviour"),
    add_aliases: list[str] = typer.Option(None, "--add-alias", help="Add alias (repeatable)"),
    remove_aliases: list[str] = typer.Option(None, "--remove-alias", help="Remove alias (repeatable)"),
):
    """Update or rename a relationship type."""
    with _workspace() as ws:
        pending: list[Feature] = []
        result = update_type(
            ws.schema,
            ws.nodes,
            name,
            new_name=rename,
            rename_inverse=rename_inverse,
            keep_old_as_alias=keep_alias,
            category=category,
            inverse=inverse,
            description=description,
            bidirectional=bidirectional,
            add_aliases=add_aliases or [],
            remove_aliases=remove_aliases or [],
            on_save=pending.append,
        )
        ws.commit_schema(result.schema, pending)
        if result.renamed:
            console.print(
                f"[green]Renamed[/green] {result.old_name} -> {result.new_name}, "
                f"{result.updated_relationships} relationship(s) updated"
            )
        else:
            console.print(f"[green]Updated type[/green] {result.new_name}")


@types_app.command("delete")
def delete_type_cmd(
    name: str = typer.Argument(..., help="Type name or alias"),
    migrate_to: str = typer.Option(None, "--migrate-to", help="Move relationships to this type"),
    cascade: bool = typer.Option(False, "--cascade", help="Delete relationships of this type"),
):
    """Delete a relationship type and its inverse."""
    if migrate_to and cascade:
        console.print("[red]Error: --migrate-to and --cascade are mutually exclusive[/red]")
        raise typer.Exit(2)
    policy = DeletePolicy.CASCADE if cascade else DeletePolicy.MIGRATE if migrate_to else DeletePolicy.ERROR
    with _workspace() as ws:
        pending: list[Feature] = []
        result = delete_type(
            ws.schema, ws.nodes, name, policy=policy, migrate_to=migrate_to, on_save=pending.append
        )
        ws.commit_schema(result.schema, pending)
        deleted = result.type_name + (f" and {result.inverse_type}" if result.inverse_type else "")
        console.print(f"[green]Deleted type[/green] {deleted}")
        if result.migrated_to:
            console.print(f"  migrated {result.migrated_relationships} relationship(s) to {result.migrated_to}")
        if result.deleted_relationships:
            console.print(f"  deleted {result.deleted_relationships} relationship(s)")


# ---------------------- Relationship categories ----------------------


@categories_app.command("list")
def list_categories():
    """List relationship categories."""
    with _workspace() as ws:
        schema = ws.schema
        table = Table(title="Relationship categories")
        table.add_column("Category", style="cyan")
        table.add_column("Cycles")
        table.add_column("Detection")
        table.add_column("Impact")
        table.add_column("Types", justify="right")
        for name, category in schema.categories.items():
            count = sum(1 for cfg in schema.types.values() if cfg.category == name)
            table.add_row(
                name,
                "allowed" if category.allow_cycles else "forbidden",
                category.cycle_detection.value,
                "yes" if category.include_in_impact else "no",
                str(count),
            )
        console.print(table)


@categories_app.command("define")
def define_category_cmd(
    name: str = typer.Argument(..., help="New category name"),
    description: str = typer.Option("", "--description", "-d", help="Description"),
    allow_cycles: bool = typer.Option(False, "--allow-cycles", help="Allow cycles among its types"),
    detection: str = typer.Option(None, "--detection", help="strict, warn or none"),
    impact: bool = typer.Option(True, "--impact/--no-impact", help="Include in impact analysis"),
):
    """Define a relationship category."""
    with _workspace() as ws:
        result = define_category(
            ws.schema,
            name,
            description=description,
            allow_cycles=allow_cycles,
            cycle_detection=detection,
            include_in_impact=impact,
        )
        ws.schema_store.save(result.schema)
        console.print(f"[green]Defined category[/green] {name}")


@categories_app.command("update")
def update_category_cmd(
    name: str = typer.Argument(..., help="Category name or alias"),
    rename: str = typer.Option(None, "--rename", help="New name"),
    keep_alias: bool = typer.Option(False, "--keep-alias", help="Keep the old name as an alias"),
    description: str = typer.Option(None, "--description", "-d", help="Description"),
    allow_cycles: bool = typer.Option(None, "--allow-cycles/--forbid-cycles", help="Cycle policy"),
    detection: str = typer.Option(None, "--detection", help="strict, warn or none"),
    impact: bool = typer.Option(None, "--impact/--no-impact", help="Include in impact analysis"),
):
    """Update or rename a relationship category."""
    with _workspace() as ws:
        result = update_category(
            ws.schema,
            name,
            new_name=rename,
            keep_old_as_alias=keep_alias,
            description=description,
            allow_cycles=allow_cycles,
            cycle_detection=detection,
            include_in_impact=impact,
        )
        ws.schema_store.save(result.schema)
        if result.renamed:
            console.print(
                f"[green]Renamed[/green] {result.old_name} -> {result.new_name}, "
                f"{result.types_updated} type(s) updated"
            )
        else:
            console.print(f"[green]Updated category[/green] {result.new_name}")


@categories_app.command("delete")
def delete_category_cmd(
    name: str = typer.Argument(..., help="Category name or alias"),
    move_types_to: str = typer.Option(None, "--move-types-to", help="Move its types to this category"),
    cascade: bool = typer.Option(False, "--cascade", help="Delete its types and their relationships"),
):
    """Delete a relationship category."""
    if move_types_to and cascade:
        console.print("[red]Error: --move-types-to and --cascade are mutually exclusive[/red]")
        raise typer.Exit(2)
    policy = DeletePolicy.CASCADE if cascade else DeletePolicy.MIGRATE if move_types_to else DeletePolicy.ERROR
    with _workspace() as ws:
        pending: list[Feature] = []
        result = delete_category(
            ws.schema, ws.nodes, name, policy=policy, move_types_to=move_types_to, on_save=pending.append
        )
        ws.commit_schema(result.schema, pending)
        console.print(f"[green]Deleted category[/green] {result.category}")
        if result.moved_types:
            console.print(f"  moved {len(result.moved_types)} type(s) to {result.moved_to}")
        if result.deleted_types:
            console.print(
                f"  deleted type(s) {', '.join(result.deleted_types)} "
                f"and {result.deleted_relationships} relationship(s)"
            )


def main():
    app()


if __name__ == "__main__":
    main()
