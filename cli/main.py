from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.markup import escape

from promptshelf import get_version
from promptshelf.models import BaseItem, FilterConfig, ItemType
from promptshelf.scoring import SORT_KEYS, highlight_search_term
from promptshelf.search import get_search_engine
from promptshelf.suggestions import TagSuggester

from cli.utils import (
    _check_type,
    _configure_logging,
    _emit_json,
    _load_or_exit,
    _preview,
    _select,
)

LIBRARY_ENV_VAR = "PROMPTSHELF_LIBRARY"

app = typer.Typer(help="Search, filter and tag suggestions for a prompt library")
history_app = typer.Typer(help="Recent search queries")
app.add_typer(history_app, name="history")

TYPE_ICONS = {
    ItemType.TEMPLATE: "📄",
    ItemType.WORKFLOW: "🔁",
    ItemType.SNIPPET: "📋",
}


def _version_callback(value: bool):
    if value:
        typer.echo(f"promptshelf {get_version()}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """promptshelf command line interface."""
    _configure_logging(verbose)


def _merged(library: dict) -> List[BaseItem]:
    items: List[BaseItem] = []
    for collection in library.values():
        items.extend(collection)
    return items


def _type_label(item: BaseItem) -> str:
    return f"{TYPE_ICONS.get(item.item_type, '•')} {item.item_type.value}"


@app.command("search")
def search_command(
    query: str = typer.Argument(..., help="Search query"),
    library: Path = typer.Option(
        ..., "--library", "-l", envvar=LIBRARY_ENV_VAR, help="Library JSON file"
    ),
    item_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="Restrict to: template, workflow, snippet"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of results"),
    min_score: Optional[float] = typer.Option(
        None, "--min-score", "-s", help="Minimum relevance score"
    ),
    sort_by: str = typer.Option("relevance", "--sort", help="Sort by: relevance, name, date"),
    record: bool = typer.Option(True, "--record/--no-record", help="Save the query to history"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Rank library items against a free-text query."""
    console = Console()
    if sort_by not in SORT_KEYS:
        console.print(f"[red]Invalid sort key '{escape(sort_by)}'. Valid keys: {', '.join(SORT_KEYS)}[/red]")
        raise typer.Exit(code=1)

    collections = _select(_load_or_exit(library, console), item_type)
    engine = get_search_engine()
    results = engine.search_collections(
        collections,
        query,
        min_score=min_score,
        max_results=limit,
        sort_by=sort_by,
        record=record,
    )

    if json_output:
        _emit_json(
            {
                "query": query,
                "total_results": len(results),
                "results": [r.to_dict() for r in results],
            }
        )
        return

    if not results:
        console.print(f"[yellow]No results found for:[/yellow] [bold]{escape(query)}[/bold]")
        console.print("[dim]Try a different query or lower --min-score[/dim]")
        return

    table = Table(
        title=f"Search Results for '{escape(query)}' ({len(results)} found)",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Type", style="yellow", width=12)
    table.add_column("Score", justify="right", style="green", width=6)
    table.add_column("Name", style="cyan")
    table.add_column("Description", style="dim")

    for result in results:
        table.add_row(
            _type_label(result.item),
            f"{result.relevance_score:.2f}",
            highlight_search_term(result.name, query),
            highlight_search_term(_preview(result.item.description), query),
        )

    console.print(table)


@app.command("filter")
def filter_command(
    library: Path = typer.Option(
        ..., "--library", "-l", envvar=LIBRARY_ENV_VAR, help="Library JSON file"
    ),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-T", help="Tag to filter by (repeatable)"),
    mode: str = typer.Option("OR", "--mode", "-m", help="Tag semantics: AND or OR"),
    category: str = typer.Option("all", "--category", "-c", help="Category to keep"),
    favorite_only: bool = typer.Option(False, "--favorite", help="Only favorites"),
    has_content: bool = typer.Option(False, "--has-content", help="Only items with content"),
    item_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="Only this kind: template, workflow, snippet"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Apply tag, category, favorite, content and type filters."""
    console = Console()
    if mode.strip().upper() not in ("AND", "OR"):
        console.print(f"[red]Invalid mode '{escape(mode)}'. Use AND or OR[/red]")
        raise typer.Exit(code=1)
    _check_type(item_type)

    library_items = _load_or_exit(library, console)
    config = FilterConfig(
        selected_tags=tags or [],
        filter_mode=mode,
        category=category,
        favorite_only=favorite_only,
        has_content=has_content,
        type=item_type or "all",
    )
    engine = get_search_engine()
    filtered = {
        name: engine.filter_items(items, config, ItemType.coerce(name))
        for name, items in library_items.items()
    }
    total = sum(len(items) for items in filtered.values())

    if json_output:
        _emit_json(
            {
                "filters": config.to_payload(),
                "total_results": total,
                "results": {
                    name: [item.model_dump(mode="json") for item in items]
                    for name, items in filtered.items()
                },
            }
        )
        return

    if not total:
        console.print("[yellow]No items match the current filters[/yellow]")
        return

    table = Table(title=f"Filtered Items ({total})", show_header=True, header_style="bold cyan")
    table.add_column("Type", style="yellow", width=12)
    table.add_column("Name", style="cyan")
    table.add_column("Category", style="magenta")
    table.add_column("Tags", style="dim")
    table.add_column("★", justify="center", width=3)

    for items in filtered.values():
        for item in items:
            table.add_row(
                _type_label(item),
                escape(item.name),
                escape(item.category) or "—",
                escape(", ".join(item.tags)),
                "★" if item.favorite else "",
            )

    console.print(table)


@app.command("tags")
def tags_command(
    query: Optional[str] = typer.Argument(None, help="Partial tag to complete"),
    library: Path = typer.Option(
        ..., "--library", "-l", envvar=LIBRARY_ENV_VAR, help="Library JSON file"
    ),
    item_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="Restrict to: template, workflow, snippet"
    ),
    exclude: Optional[List[str]] = typer.Option(
        None, "--exclude", "-x", help="Already selected tag to leave out (repeatable)"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of tags"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show tag usage, or tag suggestions for a partial tag."""
    console = Console()
    collections = _select(_load_or_exit(library, console), item_type)
    engine = get_search_engine()

    suggester = TagSuggester(
        _merged(collections),
        engine.analytics,
        current_tags=exclude or [],
        max_suggestions=limit or engine.settings.max_tag_suggestions,
        debounce_ms=engine.settings.debounce_ms,
    )
    try:
        records = suggester.suggestions_for(query)
    finally:
        suggester.close()

    if json_output:
        _emit_json([r.model_dump() for r in records])
        return

    if not records:
        console.print("[yellow]No matching tags[/yellow]")
        return

    table = Table(title="Tags", show_header=True, header_style="bold cyan")
    table.add_column("Tag", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_column("Usage", justify="right", style="yellow")
    for record in records:
        table.add_row(
            highlight_search_term(record.tag, query or ""),
            str(record.count),
            f"{record.percentage}%",
        )
    console.print(table)


@app.command("suggest")
def suggest_command(
    partial: str = typer.Argument(..., help="Partially typed query"),
    library: Path = typer.Option(
        ..., "--library", "-l", envvar=LIBRARY_ENV_VAR, help="Library JSON file"
    ),
    item_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="Restrict to: template, workflow, snippet"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of suggestions"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Complete a partially typed search query."""
    console = Console()
    collections = _select(_load_or_exit(library, console), item_type)
    suggestions = get_search_engine().suggest(_merged(collections), partial, limit)

    if json_output:
        _emit_json(suggestions)
        return

    if not suggestions:
        console.print(f"[yellow]No suggestions for:[/yellow] [bold]{escape(partial)}[/bold]")
        return
    for suggestion in suggestions:
        console.print(f"  • {highlight_search_term(suggestion, partial)}")


@app.command("stats")
def stats_command(
    library: Path = typer.Option(
        ..., "--library", "-l", envvar=LIBRARY_ENV_VAR, help="Library JSON file"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Tag statistics per collection."""
    console = Console()
    library_items = _load_or_exit(library, console)
    stats = get_search_engine().session.tag_stats(library_items)

    if json_output:
        _emit_json({name: s.to_dict() for name, s in stats.items()})
        return

    for name, s in stats.items():
        console.print(
            f"\n[bold cyan]{name.title()}[/bold cyan] "
            f"[dim]({s.total_items} items, {s.total_tags} unique tags)[/dim]"
        )
        for usage in s.most_used_tags:
            console.print(f"  • [cyan]{escape(usage.tag)}[/cyan] {usage.count} [dim]({usage.percentage}%)[/dim]")


@history_app.command("list")
def history_list(
    limit: int = typer.Option(10, help="Number of entries to show"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    List recent search queries
    """
    console = Console()
    entries = get_search_engine().history.get_history(limit)

    if json_output:
        _emit_json(entries)
        return

    if not entries:
        console.print("[yellow]No search history[/yellow]")
        return

    console.print("\n[bold cyan]Recent Searches[/bold cyan]\n")
    for index, term in enumerate(entries, 1):
        console.print(f"  [dim]{index:>2}.[/dim] {escape(term)}")


@history_app.command("clear")
def history_clear(force: bool = typer.Option(False, "--force", help="Skip confirmation")):
    """
    Clear search history
    """
    console = Console()

    if not force:
        confirm = typer.confirm("Clear search history?")
        if not confirm:
            typer.echo("Cancelled")
            raise typer.Exit()

    get_search_engine().history.clear_history()
    console.print("[green]✓ Search history cleared[/green]")


# Entry point
if __name__ == "__main__":  # pragma: no cover
    app()
