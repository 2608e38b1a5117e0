"""
CLI for the box cache.

Commands:
    boxcache add URL... --cache NAME [--box BOX]   - Cache URLs in a box
    boxcache get URL --cache NAME                  - Show a stored response
    boxcache list [--box BOX]                      - Show every response in a box
    boxcache remove URL --cache NAME [--box BOX]   - Remove a URL from a box
    boxcache purge [--box BOX]                     - Remove a box and its URLs
    boxcache validate [URL] [--box BOX]            - Check ledger against store
    boxcache heal [--box BOX | --all]              - Re-cache invalid URLs
    boxcache tidy NAME                             - Prune unreferenced entries
    boxcache boxes                                 - List registered boxes
    boxcache config                                - Show current configuration
    boxcache version                               - Print version
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Awaitable, Callable, Optional, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from boxcache import __version__
from boxcache.config import Settings, clear_settings_cache, get_settings
from boxcache.coordinator import CacheCoordinator
from boxcache.exceptions import BoxCacheError, ConfigurationError, ContentStoreError
from boxcache.logging import setup_logging
from boxcache.types import CachedResponse, CacheStatus

T = TypeVar("T")

app = typer.Typer(
    name="boxcache",
    help="Box cache - reference-counted URL response cache backed by a durable ledger",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

STATUS_STYLES = {
    CacheStatus.VALID: "[green]VALID[/green]",
    CacheStatus.INVALID: "[yellow]INVALID[/yellow]",
    CacheStatus.NOT_CACHED: "[dim]NOT_CACHED[/dim]",
}

CacheOption = Annotated[str, typer.Option("--cache", "-c", help="Cache namespace")]
BoxOption = Annotated[
    Optional[str],
    typer.Option("--box", "-b", help="Box name (default: configured default box)"),
]


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        error_console.print(f"[red]Configuration is invalid:[/red] {e}")
        return None


def _run(operation: Callable[[CacheCoordinator], Awaitable[T]]) -> T:
    """Open a coordinator from settings, run one operation and close it."""
    settings = _get_settings_safe()
    if settings is None:
        raise typer.Exit(1)

    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    async def runner() -> T:
        coordinator = await CacheCoordinator.from_settings(settings)
        async with coordinator:
            return await operation(coordinator)

    try:
        return asyncio.run(runner())
    except ConfigurationError as e:
        error_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)
    except ContentStoreError as e:
        error_console.print(f"[red]Content store error:[/red] {e}")
        raise typer.Exit(2)
    except BoxCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _response_table(title: str, urls: list[str], responses: list[CachedResponse | None]) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("URL", style="cyan")
    table.add_column("Status")
    table.add_column("Type")
    table.add_column("Size", justify="right")

    for url, response in zip(urls, responses):
        if response is None:
            table.add_row(url, "[yellow]missing[/yellow]", "", "")
        else:
            table.add_row(url, str(response.status_code), response.content_type, f"{response.size:,}")
    return table


@app.command()
def add(
    urls: Annotated[list[str], typer.Argument(help="URLs to cache")],
    cache: CacheOption,
    box: BoxOption = None,
) -> None:
    """Track URLs in a box and cache any that are not stored yet."""

    async def operation(coordinator: CacheCoordinator) -> tuple[list[str], list[CachedResponse | None]]:
        responses = await coordinator.add_to_box(cache, urls, box_name=box)
        return [coordinator.canonicalize(url) for url in urls], responses

    canonical, responses = _run(operation)
    console.print(_response_table(f"Added to {box or 'default box'} ({cache})", canonical, responses))

    if any(response is None for response in responses):
        console.print("[yellow]Some URLs could not be cached; run 'boxcache heal' later.[/yellow]")


@app.command()
def get(
    url: Annotated[str, typer.Argument(help="URL to look up")],
    cache: CacheOption,
    body: Annotated[bool, typer.Option("--body", help="Print the response body")] = False,
) -> None:
    """Show the stored response for a URL."""
    response = _run(lambda coordinator: coordinator.get_from_cache(cache, url))

    if response is None:
        error_console.print(f"[yellow]Not cached:[/yellow] {url}")
        raise typer.Exit(1)

    if body:
        console.print(response.text, markup=False, highlight=False)
        return

    console.print(_response_table(cache, [response.url], [response]))


@app.command("list")
def list_box(box: BoxOption = None) -> None:
    """Show the stored response for every URL in a box."""

    async def operation(coordinator: CacheCoordinator) -> tuple[list[str], list[CachedResponse | None]]:
        record = await coordinator.boxes.load(box or coordinator.default_box)
        responses = await coordinator.get_all_in_box(box)
        return list(record.urls) if record else [], responses

    urls, responses = _run(operation)
    if not urls:
        console.print("[dim]Box is empty or does not exist.[/dim]")
        return
    console.print(_response_table(box or "default box", urls, responses))


@app.command()
def remove(
    url: Annotated[str, typer.Argument(help="URL to remove")],
    cache: CacheOption,
    box: BoxOption = None,
) -> None:
    """Remove a URL from a box, deleting it from the store if no box needs it."""
    removed = _run(lambda coordinator: coordinator.remove_from_box(cache, url, box_name=box))

    if removed:
        console.print(f"[green]Removed[/green] {url}")
    else:
        console.print(f"[dim]Kept in store[/dim] {url}")


@app.command()
def purge(box: BoxOption = None) -> None:
    """Remove every URL of a box and delete the box."""
    results = _run(lambda coordinator: coordinator.remove_by_box(box))

    if not results:
        console.print("[dim]Box is empty or does not exist.[/dim]")
        return

    table = Table(title=f"Purged {box or 'default box'}", show_header=True)
    table.add_column("URL", style="cyan")
    table.add_column("Removed")
    for result in results:
        table.add_row(result.url, "[green]yes[/green]" if result.removed else "[dim]no[/dim]")
    console.print(table)


@app.command()
def validate(
    url: Annotated[Optional[str], typer.Argument(help="URL to validate (default: whole box)")] = None,
    box: BoxOption = None,
    cache: Annotated[
        Optional[str],
        typer.Option("--cache", "-c", help="Cache namespace (default: the box's namespace)"),
    ] = None,
) -> None:
    """Compare a box's ledger entries with the content store."""

    async def operation(coordinator: CacheCoordinator) -> list[tuple[str, CacheStatus]]:
        if url is None:
            return [(r.url, r.status) for r in await coordinator.validate_by_box(box)]

        cache_name = cache or await coordinator.get_cache_name_for_box(box)
        if cache_name is None:
            return [(url, CacheStatus.NOT_CACHED)]
        return [(url, await coordinator.validate(cache_name, url, box_name=box))]

    results = _run(operation)
    if not results:
        console.print("[dim]Box is empty or does not exist.[/dim]")
        return

    table = Table(title=f"Validation of {box or 'default box'}", show_header=True)
    table.add_column("URL", style="cyan")
    table.add_column("Status")
    for result_url, status in results:
        table.add_row(result_url, STATUS_STYLES[status])
    console.print(table)


@app.command()
def heal(
    box: BoxOption = None,
    all_boxes: Annotated[bool, typer.Option("--all", help="Heal every registered box")] = False,
) -> None:
    """Re-cache URLs whose store entries have gone missing."""
    if all_boxes and box:
        error_console.print("[red]Error:[/red] --box and --all are mutually exclusive.")
        raise typer.Exit(1)

    if all_boxes:
        healed = _run(lambda coordinator: coordinator.heal_all())
    else:
        healed = {box or "default box": _run(lambda coordinator: coordinator.heal_by_box(box))}

    total = sum(len(urls) for urls in healed.values())
    for name, urls in healed.items():
        for healed_url in urls:
            console.print(f"[green]Healed[/green] {name}: {healed_url}")
    console.print(f"[bold]{total}[/bold] URL(s) re-cached.")


@app.command()
def tidy(cache: Annotated[str, typer.Argument(help="Cache namespace to prune")]) -> None:
    """Delete entries no box references from a namespace."""
    _run(lambda coordinator: coordinator.tidy(cache))
    console.print(f"Tidied [cyan]{cache}[/cyan].")


@app.command()
def boxes() -> None:
    """List registered boxes."""
    registered = _run(lambda coordinator: coordinator.list_boxes())

    if not registered:
        console.print("[dim]No boxes registered.[/dim]")
        return

    table = Table(title="Boxes", show_header=True)
    table.add_column("Box", style="magenta")
    table.add_column("Cache", style="cyan")
    table.add_column("URLs", justify="right")
    for name, record in registered.items():
        table.add_row(name, record.cache_name, str(len(record.urls)))
    console.print(table)


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]Box Cache Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()
    if settings is None:
        error_console.print("Check BOXCACHE_* environment variables or your .env file.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"boxcache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
