#!/usr/bin/env python3
"""
nexusrag CLI - index sources and query them from the terminal.
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import click
from rich.console import Console
from rich.table import Table

from nexusrag import __version__
from nexusrag.core.config import Settings
from nexusrag.core.exceptions import NexusRAGError
from nexusrag.core.logging import logger
from nexusrag.models.chunk import SourceType
from nexusrag.models.search import SearchResult
from nexusrag.services.retrieval_service import RetrievalService

T = TypeVar("T")

console = Console()


def _run(ctx: click.Context, action: Callable[[RetrievalService], Awaitable[T]]) -> T:
    """Build the service, run one async action, and always close it."""
    settings: Settings = ctx.obj["settings"]

    async def _main() -> T:
        service = RetrievalService(settings)
        try:
            return await action(service)
        finally:
            await service.close()

    try:
        return asyncio.run(_main())
    except NexusRAGError as e:
        logger.error("CLI command failed", code=e.code, error=e.message)
        console.print(f"[bold red]✗ {e.code}: {e.message}[/bold red]")
        for suggestion in e.suggestions:
            console.print(f"  [dim]→ {suggestion}[/dim]")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="nexusrag")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML configuration file (default: $NEXUSRAG_CONFIG or ./.nexusrag.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]):
    """nexusrag - hybrid retrieval and indexing core"""
    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = Settings(config_path)
    except NexusRAGError as e:
        console.print(f"[bold red]✗ Invalid configuration: {e.message}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--source-id", help="Source identifier (default: file name)")
@click.option("--owner", "owner_id", help="Owner used for search filtering")
@click.option("--title", help="Title stored in chunk metadata")
@click.pass_context
def index(
    ctx: click.Context,
    file: Path,
    source_id: Optional[str],
    owner_id: Optional[str],
    title: Optional[str],
):
    """Index a plain-text document"""
    text = file.read_text(encoding="utf-8")
    metadata = {"title": title or file.stem, "url": str(file.resolve())}

    result = _run(
        ctx,
        lambda service: service.index(
            source_id or file.name, SourceType.DOCUMENT, text, owner_id, metadata
        ),
    )
    console.print(
        f"[bold green]✓ Indexed {result.source_id}[/bold green] "
        f"({result.chunks_written} chunks)"
    )


@cli.command("index-chat")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--conversation-id", help="Conversation identifier (default: file name)")
@click.option("--owner", "owner_id", help="Owner used for search filtering")
@click.pass_context
def index_chat(
    ctx: click.Context, file: Path, conversation_id: Optional[str], owner_id: Optional[str]
):
    """Index a JSON transcript: [{"role": "user", "content": "..."}, ...]"""
    try:
        turns = json.loads(file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[bold red]✗ Invalid JSON: {e}[/bold red]")
        sys.exit(1)
    if not isinstance(turns, list):
        console.print("[bold red]✗ Transcript must be a JSON list of turns[/bold red]")
        sys.exit(1)

    result = _run(
        ctx,
        lambda service: service.index_conversation(conversation_id or file.stem, turns, owner_id),
    )
    console.print(
        f"[bold green]✓ Indexed conversation {result.source_id}[/bold green] "
        f"({result.chunks_written} chunks)"
    )


@cli.command()
@click.argument("query")
@click.option("-k", "--top-k", type=int, default=None, help="Number of results")
@click.option(
    "--type",
    "source_types",
    type=click.Choice([t.value for t in SourceType]),
    multiple=True,
    help="Restrict to a source type (repeatable)",
)
@click.option("--owner", "owner_id", help="Restrict to one owner's chunks")
@click.option("--context", "conversation_context", help="Conversation context for rewriting")
@click.option(
    "--metrics", "show_metrics", is_flag=True, help="Print in-process counters afterwards"
)
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    top_k: Optional[int],
    source_types: tuple,
    owner_id: Optional[str],
    conversation_context: Optional[str],
    show_metrics: bool,
):
    """Hybrid search over indexed chunks"""

    async def _search(service: RetrievalService) -> Any:
        found = await service.search(
            query,
            top_k=top_k,
            source_types=list(source_types) or None,
            owner_id=owner_id,
            conversation_context=conversation_context,
        )
        return found, service.counters()

    results, counters = _run(ctx, _search)

    if not results:
        console.print("[yellow]No results[/yellow]")
    else:
        _print_results(query, results)

    if show_metrics:
        console.print("[bold]Counters[/bold]")
        for name, value in sorted(counters.items()):
            console.print(f"  {name}: {value:g}")


def _print_results(query: str, results: List[SearchResult]) -> None:
    table = Table(title=f"Results for: {query}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    reranked = any(result.rerank_score is not None for result in results)
    if reranked:
        table.add_column("Rerank", justify="right")
    table.add_column("Origin", style="cyan")
    table.add_column("Source")
    table.add_column("Content", overflow="fold")
    for position, result in enumerate(results, 1):
        snippet = result.content if len(result.content) <= 200 else result.content[:197] + "..."
        row = [str(position), f"{result.score:.5f}"]
        if reranked:
            row.append("-" if result.rerank_score is None else f"{result.rerank_score:.3f}")
        row += [str(result.origin), f"{result.source_id} ({result.source_type})", snippet]
        table.add_row(*row)
    console.print(table)


@cli.command()
@click.argument("name")
@click.option("--link", "entity_id", help="Also link the tag to this entity")
@click.option("--confidence", type=click.FloatRange(0.0, 1.0), default=1.0, show_default=True)
@click.pass_context
def tag(ctx: click.Context, name: str, entity_id: Optional[str], confidence: float):
    """Resolve a tag name (reuse, merge, or create)"""

    async def _tag(service: RetrievalService) -> Any:
        resolution = await service.resolve_or_create_tag(name)
        link = None
        if entity_id:
            link = await service.link_tag(entity_id, resolution.tag_id, confidence)
        return resolution, link

    resolution, link = _run(ctx, _tag)
    console.print(
        f"[bold green]✓ {resolution.name}[/bold green] "
        f"match={resolution.match} usage={resolution.usage_count} id={resolution.tag_id}"
    )
    if resolution.distance is not None:
        console.print(f"  [dim]distance {resolution.distance:.4f}[/dim]")
    if link is not None:
        console.print(f"  linked to {link.entity_id} ({link.status})")


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show store counts and circuit breaker state"""

    async def _status(service: RetrievalService) -> Any:
        return await service.stats(), service.breaker_status()

    stats, breakers = _run(ctx, _status)

    console.print("[bold cyan]📊 nexusrag status[/bold cyan]")
    for key, value in stats.items():
        console.print(f"  {key}: {value}")

    table = Table(title="Circuit breakers")
    table.add_column("Provider")
    table.add_column("State")
    table.add_column("Failures", justify="right")
    for name, breaker in breakers.items():
        table.add_row(name, breaker["state"], str(breaker["failures"]))
    console.print(table)


def main():
    """Main entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user.")
        sys.exit(0)
    except Exception as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        if os.environ.get("NEXUSRAG_DEBUG"):
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
