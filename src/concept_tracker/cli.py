#!/usr/bin/env python3
"""
ct: CLI for the concept tracker knowledge base

Usage:
    ct list --category=library       # List concepts
    ct get <id>                      # Show one concept
    ct add "useState" -c library -e "..." --parent "React Hooks"
    ct reparent <id> "React Hooks"   # Move a concept in the hierarchy
    ct tree                          # Browse the hierarchy
    ct scan ./my-project             # Link concepts to source lines
    ct export --format=markdown      # Render the knowledge base
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
from click.exceptions import ClickException

from . import __version__ as CONCEPT_TRACKER_VERSION
from .config import DEFAULT_LIST_LIMIT, SCAN_SUMMARY_LOCATIONS, ConfigurationError, load_config
from .errors import ConceptTrackerError, NotFoundError, format_error_json
from .models import CATEGORY_ORDER, Concept, ExtractedConcept
from .repository import ConceptRepository
from .storage import StoreRegistry

CATEGORY_CHOICE = click.Choice(list(CATEGORY_ORDER))


# ─────────────────────────────────────────────────────────────────────────────
# Output helpers
# ─────────────────────────────────────────────────────────────────────────────


def format_table(rows: list[dict], columns: list[str], max_widths: dict | None = None) -> str:
    """Format rows as a simple table."""
    if not rows:
        return ""

    max_widths = max_widths or {}

    def cell(row: dict, col: str) -> str:
        val = str(row.get(col) or "")
        limit = max_widths.get(col, 50)
        if len(val) > limit:
            val = val[: limit - 3] + "..."
        return val

    widths = {col: max(len(col), *(len(cell(row, col)) for row in rows)) for col in columns}
    lines = [
        "  ".join(col.upper().ljust(widths[col]) for col in columns),
        "  ".join("-" * widths[col] for col in columns),
    ]
    for row in rows:
        lines.append("  ".join(cell(row, col).ljust(widths[col]) for col in columns).rstrip())
    return "\n".join(lines)


def _dump(concept: Concept) -> dict[str, Any]:
    return concept.model_dump(mode="json", by_alias=True, exclude_none=True)


def output_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _handle_error(ctx: click.Context, error: Exception) -> NoReturn:
    """Print an error (plain or JSON, per --json-errors) and exit 1."""
    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if isinstance(error, ConceptTrackerError):
        if json_errors:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error.message}", err=True)
    elif json_errors:
        code = "CONFIGURATION_ERROR" if isinstance(error, ConfigurationError) else "INTERNAL_ERROR"
        click.echo(format_error_json(code, str(error)), err=True)
    else:
        click.echo(f"Error: {error}", err=True)

    sys.exit(1)


class JsonErrorGroup(click.Group):
    """Click group that formats usage errors as JSON when --json-errors is set."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except ClickException as e:
            if ctx.params.get("json_errors"):
                click.echo(format_json_usage_error(e), err=True)
                raise SystemExit(1)
            raise


def format_json_usage_error(exc: ClickException) -> str:
    code = "INVALID_ARGUMENT" if isinstance(exc, click.BadParameter) else "USAGE_ERROR"
    return format_error_json(code, exc.format_message())


def _repository(ctx: click.Context) -> ConceptRepository:
    registry: StoreRegistry = ctx.obj["registry"]
    return ConceptRepository(registry.get(ctx.obj["namespace"]))


def _resolve_id(repo: ConceptRepository, ref: str) -> str:
    """Accept either a concept id or an exact (case-insensitive) name."""
    if repo.get(ref) is not None:
        return ref
    concept = repo.find_by_name(ref)
    return concept.id if concept is not None else ref


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=CONCEPT_TRACKER_VERSION, prog_name="ct")
@click.option(
    "--storage-path",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="CONCEPT_TRACKER_STORAGE_PATH",
    help="Directory holding the concept store (default: ~/.concept-tracker)",
)
@click.option(
    "--namespace",
    "-n",
    envvar="CONCEPT_TRACKER_NAMESPACE",
    help="Tenant namespace; each namespace has its own isolated store",
)
@click.option("--json-errors", "json_errors", is_flag=True, help="Output errors as JSON")
@click.option("--quiet", "-q", is_flag=True, envvar="CONCEPT_TRACKER_QUIET", help="Only log errors")
@click.pass_context
def cli(
    ctx: click.Context,
    storage_path: Path | None,
    namespace: str | None,
    json_errors: bool,
    quiet: bool,
):
    """ct: browse and curate technical concepts extracted from conversations.

    \b
    Concepts form a hierarchy through their parent *name*:
      ct add "React Hooks" -c library -e "Functions that hook into React"
      ct add useState -c library -e "State hook" --parent "React Hooks"
      ct tree
    """
    from ._logging import set_quiet_mode
    from .config import get_storage_root

    ctx.ensure_object(dict)
    ctx.obj["json_errors"] = json_errors
    ctx.obj["namespace"] = namespace or None
    ctx.obj["registry"] = StoreRegistry(storage_path or get_storage_root())

    if quiet:
        set_quiet_mode(True)


# ─────────────────────────────────────────────────────────────────────────────
# Queries
# ─────────────────────────────────────────────────────────────────────────────


@cli.command("list")
@click.option("--category", "-c", type=CATEGORY_CHOICE, help="Filter by category")
@click.option("--search", "-s", "query", default="", help="Substring of name or explanation")
@click.option("--limit", "-l", default=DEFAULT_LIST_LIMIT, type=click.IntRange(min=1), help="Max results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_cmd(ctx: click.Context, category: str | None, query: str, limit: int, as_json: bool):
    """List concepts, optionally filtered."""
    repo = _repository(ctx)
    matches = repo.search(query, category)
    shown = matches[:limit]

    if as_json:
        output_json({"total": len(matches), "returned": len(shown), "concepts": [_dump(c) for c in shown]})
        return

    if not shown:
        click.echo("No concepts found.")
        return

    rows = [
        {"id": c.id[:8], "name": c.name, "category": c.category, "parent": c.parent}
        for c in shown
    ]
    click.echo(format_table(rows, ["id", "name", "category", "parent"], {"name": 40, "parent": 30}))
    if len(matches) > len(shown):
        click.echo(f"\n({len(matches) - len(shown)} more; use --limit)")


@cli.command()
@click.argument("ref")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def get(ctx: click.Context, ref: str, as_json: bool):
    """Show a concept by id or name."""
    repo = _repository(ctx)
    try:
        concept = repo.require(_resolve_id(repo, ref))
        ancestors = repo.ancestors(concept.id)
    except ConceptTrackerError as e:
        _handle_error(ctx, e)

    if as_json:
        output_json({"concept": _dump(concept), "ancestors": [a.name for a in ancestors]})
        return

    click.echo(f"{concept.name}  [{concept.category}]")
    click.echo(f"id: {concept.id}")
    if ancestors:
        click.echo("path: " + " > ".join([a.name for a in reversed(ancestors)] + [concept.name]))
    elif concept.parent:
        click.echo(f"parent: {concept.parent} (not found)")
    click.echo(f"first seen: {concept.first_seen.isoformat()}")
    click.echo(f"last seen: {concept.last_seen.isoformat()}")
    click.echo("")
    click.echo(concept.explanation)
    if concept.code_locations:
        click.echo("\nCode locations:")
        for location in concept.code_locations:
            click.echo(f"  {location}")
    if concept.chat_snippets:
        click.echo(f"\nReferences: {len(concept.chat_snippets)}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def tree(ctx: click.Context, as_json: bool):
    """Show the concept hierarchy."""
    from .hierarchy import build_forest, walk_forest

    forest = build_forest(_repository(ctx).all())
    if as_json:
        output_json([node.to_dict() for node in forest])
        return

    if not forest:
        click.echo("No concepts yet.")
        return

    for node, depth in walk_forest(forest):
        click.echo(f"{'  ' * depth}{node.concept.name} ({node.concept.category})")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def orphans(ctx: click.Context, as_json: bool):
    """List concepts whose parent no longer exists."""
    found = _repository(ctx).orphans()
    if as_json:
        output_json([_dump(c) for c in found])
        return
    if not found:
        click.echo("No orphaned concepts.")
        return
    for concept in found:
        click.echo(f"{concept.name}: parent '{concept.parent}' not found")


# ─────────────────────────────────────────────────────────────────────────────
# Mutations
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("name")
@click.option("--category", "-c", type=CATEGORY_CHOICE, required=True, help="Concept category")
@click.option("--explanation", "-e", required=True, help="What the concept is")
@click.option("--parent", "-p", help="Name of the parent concept")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def add(ctx: click.Context, name: str, category: str, explanation: str, parent: str | None, as_json: bool):
    """Add a new concept (fails if the name exists)."""
    repo = _repository(ctx)
    try:
        extracted = ExtractedConcept(name=name, category=category, explanation=explanation, parent=parent)
        concept = repo.create(extracted)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="NAME") from e
    except ConceptTrackerError as e:
        _handle_error(ctx, e)

    if as_json:
        output_json(_dump(concept))
    else:
        click.echo(f"Added concept: {concept.name} ({concept.id})")


@cli.command()
@click.argument("ref")
@click.option("--name", help="New name")
@click.option("--explanation", "-e", help="New explanation")
@click.option("--snippet", help="Append a provenance snippet")
@click.option("--location", "locations", multiple=True, help="Add a file:line location (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def update(
    ctx: click.Context,
    ref: str,
    name: str | None,
    explanation: str | None,
    snippet: str | None,
    locations: tuple[str, ...],
    as_json: bool,
):
    """Update a concept's name, explanation, snippets or locations."""
    fields: dict[str, Any] = {}
    if name is not None:
        fields["name"] = name
    if explanation is not None:
        fields["explanation"] = explanation
    if snippet is not None:
        fields["snippet"] = snippet
    if locations:
        fields["code_locations"] = list(locations)

    repo = _repository(ctx)
    try:
        concept = repo.update(_resolve_id(repo, ref), **fields)
    except ConceptTrackerError as e:
        _handle_error(ctx, e)

    if as_json:
        output_json(_dump(concept))
    else:
        click.echo(f"Updated concept: {concept.name}")


@cli.command()
@click.argument("ref")
@click.pass_context
def delete(ctx: click.Context, ref: str):
    """Delete a concept. Its children keep a dangling parent name."""
    repo = _repository(ctx)
    try:
        if not repo.delete(_resolve_id(repo, ref)):
            raise NotFoundError.concept(ref)
    except ConceptTrackerError as e:
        _handle_error(ctx, e)
    click.echo("Concept deleted successfully")


@cli.command()
@click.argument("ref")
@click.argument("parent", required=False)
@click.option("--detach", is_flag=True, help="Make the concept a root")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def reparent(ctx: click.Context, ref: str, parent: str | None, detach: bool, as_json: bool):
    """Move a concept under PARENT (by name), or to the root with --detach."""
    if bool(parent) == detach:
        raise click.UsageError("Give either PARENT or --detach")

    repo = _repository(ctx)
    try:
        concept = repo.reparent(_resolve_id(repo, ref), None if detach else parent)
    except ConceptTrackerError as e:
        _handle_error(ctx, e)

    if as_json:
        output_json(_dump(concept))
    elif concept.parent:
        click.echo(f"Moved {concept.name} under {concept.parent}")
    else:
        click.echo(f"Moved {concept.name} to the root")


# ─────────────────────────────────────────────────────────────────────────────
# Scan / Export / Ingest
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("root", type=click.Path(path_type=Path))
@click.option("--concept", "concept_ref", help="Only scan for this concept (id or name)")
@click.option("--ext", "extensions", multiple=True, help="File extension to include (repeatable)")
@click.option("--exclude", "excludes", multiple=True, help="Directory/file name to skip (repeatable)")
@click.option("--replace", is_flag=True, help="Replace stored locations instead of adding to them")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def scan(
    ctx: click.Context,
    root: Path,
    concept_ref: str | None,
    extensions: tuple[str, ...],
    excludes: tuple[str, ...],
    replace: bool,
    as_json: bool,
):
    """Scan a codebase for concept mentions and store their locations."""
    from .scanner import ScanOptions, scan_concepts

    registry: StoreRegistry = ctx.obj["registry"]
    repo = _repository(ctx)
    try:
        config = load_config(registry.root)
        if concept_ref:
            concepts = [repo.require(_resolve_id(repo, concept_ref))]
        else:
            concepts = repo.all()

        options = ScanOptions(
            root_path=root,
            include_extensions=list(extensions) or config.include_extensions,
            exclude_names=list(excludes) or config.exclude_names,
        )
        results = scan_concepts(concepts, options)
        outcome = repo.record_scan(results, replace=replace)
    except (ConceptTrackerError, ConfigurationError) as e:
        _handle_error(ctx, e)

    names = {c.id: c.name for c in concepts}
    summary = {
        names[concept_id]: {
            "count": len(locations),
            "locations": [str(loc) for loc in locations[:SCAN_SUMMARY_LOCATIONS]],
        }
        for concept_id, locations in results.items()
    }

    if as_json:
        output_json(
            {
                "scanned": len(concepts),
                "matched": len(results),
                "updated": len(outcome.updated),
                "results": summary,
            }
        )
        return

    click.echo(f"Scanned {len(concepts)} concept(s), found matches for {len(results)}")
    for name, info in summary.items():
        click.echo(f"  {name}: {info['count']} location(s)")
        for location in info["locations"]:
            click.echo(f"    {location}")


@cli.command()
@click.option("--format", "-f", "fmt", type=click.Choice(["json", "markdown"]), default="json")
@click.option("--id", "concept_ids", multiple=True, help="Only export this concept id (repeatable)")
@click.option("--no-snippets", is_flag=True, help="Leave out chat snippets")
@click.option("--no-locations", is_flag=True, help="Leave out code locations")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write to file")
@click.pass_context
def export(
    ctx: click.Context,
    fmt: str,
    concept_ids: tuple[str, ...],
    no_snippets: bool,
    no_locations: bool,
    output: Path | None,
):
    """Export concepts as JSON or Markdown."""
    from .exporter import ExportOptions, export_concepts

    options = ExportOptions(
        format=fmt,  # type: ignore[arg-type]
        concept_ids=list(concept_ids) or None,
        include_snippets=not no_snippets,
        include_code_locations=not no_locations,
    )
    content = export_concepts(_repository(ctx).all(), options)

    if output is None:
        click.echo(content)
        return

    try:
        output.write_text(content, encoding="utf-8")
    except OSError as e:
        _handle_error(ctx, e)
    click.echo(f"Exported to {output}")


@cli.command()
@click.argument("payload", type=click.File("r", encoding="utf-8"), default="-")
@click.option(
    "--conversation",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Conversation text the payload was extracted from (stored as provenance)",
)
@click.option("--no-context", is_flag=True, help="Do not store the conversation as provenance")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def ingest(ctx: click.Context, payload, conversation: Path | None, no_context: bool, as_json: bool):
    """Store concepts from an extraction payload ({"concepts": [...]}).

    PAYLOAD is a JSON file, or '-' for stdin. Concepts whose names already
    exist are merged: the conversation is added as a new reference.
    """
    from .extraction import PayloadExtractor, ingest_conversation

    registry: StoreRegistry = ctx.obj["registry"]
    try:
        config = load_config(registry.root)
        text = conversation.read_text(encoding="utf-8") if conversation else ""
        result = ingest_conversation(
            _repository(ctx),
            PayloadExtractor(payload.read()),
            text,
            save_context=bool(text) and not no_context,
            min_length=config.min_conversation_length if text else 0,
            context_limit=config.context_limit,
        )
    except (ConceptTrackerError, ConfigurationError, OSError) as e:
        _handle_error(ctx, e)

    if as_json:
        output_json(result.model_dump(mode="json", by_alias=True, exclude_none=True))
        return

    if not result.concepts and not result.skipped:
        click.echo("No technical concepts found in the payload.")
        return
    click.echo(f"Saved {len(result.concepts)} concept(s).")
    for concept in result.concepts:
        click.echo(f"  {concept.name} ({concept.category})")
    for skipped in result.skipped:
        click.echo(f"  skipped {skipped.name}: {skipped.reason}")


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main():
    """Entry point for ct CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()
