"""vaultindex CLI entry point."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from vaultindex import __version__
from vaultindex.errors import VaultIndexError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from vaultindex.context import StartupResult, VaultIndex
    from vaultindex.sync import PathState, VaultEvent

_VAULT_OPTION = click.option(
    "--vault",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Vault root (default: current directory).",
)


def setup_logging(*, verbose: bool, debug: bool, quiet: bool) -> None:
    """Route package logs through rich; library logs stay at WARNING."""
    from rich.console import Console
    from rich.logging import RichHandler

    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[
            RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=debug)
        ],
        force=True,
    )
    logging.getLogger("vaultindex").setLevel(level)
    logging.getLogger("watchfiles").setLevel(logging.WARNING)
    logging.getLogger("pdfminer").setLevel(logging.ERROR)


def _notify(message: str) -> None:
    from rich.console import Console

    Console(stderr=True).print(f"[yellow]{message}[/yellow]")


def _run(vault: Path | None, func: Callable[[VaultIndex], Awaitable[Any]]) -> Any:
    """Open the vault context, run *func* on it, and always close it."""
    from vaultindex.context import VaultIndex

    async def _main() -> Any:
        index = VaultIndex.open(vault or Path.cwd(), notify=_notify)
        try:
            return await func(index)
        finally:
            await index.close()

    try:
        return asyncio.run(_main())
    except VaultIndexError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _print_startup(result: StartupResult) -> None:
    click.echo(f"Mode:    {result.mode}")
    click.echo(f"Indexed: {result.documents_indexed}")
    click.echo(f"Removed: {result.documents_removed}")
    click.echo(f"Time:    {result.elapsed:.2f}s")
    if result.failed:
        click.echo("")
        for path in result.failed:
            click.echo(f"  [warn] not indexed: {path}")


@click.group()
@click.version_option(version=__version__, prog_name="vaultindex")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--debug", is_flag=True, help="Debug logging.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
def main(*, verbose: bool, debug: bool, quiet: bool) -> None:
    """vaultindex - incremental full-text search over a vault."""
    setup_logging(verbose=verbose, debug=debug, quiet=quiet)


@main.command()
@_VAULT_OPTION
@click.option(
    "--full",
    is_flag=True,
    default=False,
    help="Ignore the stored snapshot and re-extract every file.",
)
def index(*, vault: Path | None, full: bool) -> None:
    """Bring the index up to date and write a snapshot.

    By default the stored snapshot is reused and only changed files are
    re-extracted.  Use --full to force a complete rebuild.
    """

    async def _index(idx: VaultIndex) -> StartupResult:
        result = await idx.start(full=full)
        await idx.save()
        return result

    _print_startup(_run(vault, _index))


@main.command()
@click.argument("query")
@click.option("--limit", default=None, type=int, help="Max results.")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@_VAULT_OPTION
def search(query: str, *, limit: int | None, output_json: bool, vault: Path | None) -> None:
    """Search the vault by keyword.

    Starts from the stored snapshot; run `vaultindex index` first for a
    fast start.
    """

    async def _search(idx: VaultIndex) -> list[dict[str, Any]]:
        await idx.start()
        results = await idx.search(query, limit=limit)
        return [
            {
                "path": r.path,
                "score": round(r.score, 4),
                "excerpt": r.excerpt,
                "ghost": r.ghost,
            }
            for r in results
        ]

    results = _run(vault, _search)
    if output_json:
        click.echo(json.dumps(results, ensure_ascii=False, indent=2))
        return
    if not results:
        click.echo("No results found.")
        return
    for r in results:
        marker = " (missing)" if r["ghost"] else ""
        click.echo(f"  {r['path']}{marker}  [{r['score']:.2f}]")
        if r["excerpt"]:
            click.echo(f"    {r['excerpt']}")


@main.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@click.option("--clear", is_flag=True, help="Forget all recorded queries.")
@_VAULT_OPTION
def history(*, output_json: bool, clear: bool, vault: Path | None) -> None:
    """Show recent search queries, newest first."""

    async def _history(idx: VaultIndex) -> list[str]:
        if clear:
            await idx.history.clear()
        return await idx.history.history()

    queries = _run(vault, _history)
    if output_json:
        click.echo(json.dumps(queries, ensure_ascii=False))
        return
    if not queries:
        click.echo("No searches recorded.")
    for i, query in enumerate(queries, 1):
        click.echo(f"{i:2d}. {query}")


@main.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@_VAULT_OPTION
def status(*, output_json: bool, vault: Path | None) -> None:
    """Show the stored snapshot's date and size."""

    async def _status(idx: VaultIndex) -> dict[str, Any]:
        snapshot = await idx.snapshots.load()
        info: dict[str, Any] = {
            "schema_version": await idx.meta("schema_version"),
            "last_snapshot_at": await idx.meta("last_snapshot_at"),
            "snapshot": None,
            "documents": 0,
            "bytes": 0,
        }
        if snapshot is not None:
            info["snapshot"] = snapshot.date
            info["documents"] = len(snapshot.manifest)
            info["bytes"] = len(snapshot.data)
        return info

    info = _run(vault, _status)
    if output_json:
        click.echo(json.dumps(info, ensure_ascii=False, indent=2))
        return
    if info["snapshot"] is None:
        click.echo("No snapshot stored. Run `vaultindex index` first.")
        return
    click.echo(f"Snapshot:  {info['snapshot']}")
    click.echo(f"Documents: {info['documents']}")
    click.echo(f"Size:      {info['bytes']} bytes")
    click.echo(f"Schema:    v{info['schema_version']}")


@main.command("watch")
@click.option("--debounce", default=None, type=int, help="Debounce delay in ms.")
@_VAULT_OPTION
def watch_cmd(*, debounce: int | None, vault: Path | None) -> None:
    """Watch the vault and keep the index up to date.

    Creates, edits, deletions and renames are applied as they happen; the
    snapshot is saved periodically and on exit.
    Requires watchfiles: pip install vaultindex[watch]
    """
    try:
        from vaultindex.watcher import watch
    except ImportError:
        click.echo(
            "Error: watch requires 'watchfiles'. Install with: pip install vaultindex[watch]",
            err=True,
        )
        sys.exit(1)

    from rich.console import Console

    console = Console()

    def _echo(event: VaultEvent, state: PathState | None) -> None:
        label = state.value if state is not None else "queued"
        console.print(f"[dim]{event.kind.value:6s}[/dim] {event.path} -> {label}")

    async def _watch(idx: VaultIndex) -> None:
        watcher = asyncio.create_task(watch(idx, debounce_ms=debounce, callback=_echo))
        result = await idx.start()
        await idx.save()
        console.print(
            f"[bold blue]Watching:[/bold blue] {idx.vault.root} "
            f"({result.mode}, {result.documents_indexed} indexed)"
        )
        console.print("[dim]Press Ctrl+C to stop[/dim]")
        await watcher

    try:
        _run(vault, _watch)
    except KeyboardInterrupt:
        click.echo("Stopped.")
    except ImportError:
        click.echo(
            "Error: watch requires 'watchfiles'. Install with: pip install vaultindex[watch]",
            err=True,
        )
        sys.exit(1)
