"""
Command-Line Interface

Maintenance commands for a hybrid-rag knowledge base.

Commands:
    hybrid-rag info       - Display document, status and triple counts
    hybrid-rag neighbors  - List one-hop neighbours of a node
    hybrid-rag path       - Find paths between two nodes
    hybrid-rag drain      - Run one pending-embedding drain pass

Usage:
    hybrid-rag info --kb ./my_kb
    hybrid-rag neighbors doc1 --predicate related --kb ./my_kb
    hybrid-rag path doc1 doc3 --depth 4 --kb ./my_kb
    hybrid-rag drain --kb ./my_kb --config rag.toml
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

__all__ = ["main", "app"]

app = typer.Typer(
    name="hybrid-rag",
    help="Embedded hybrid retrieval (vector, full-text, graph) over DuckDB",
    no_args_is_help=True,
)
console = Console()


def _open(kb: Path, config_file: Optional[Path]):
    from hybrid_rag.api.knowledge_base import KnowledgeBase
    from hybrid_rag.config import RAGConfig

    config = RAGConfig.from_file(config_file) if config_file else RAGConfig()
    return KnowledgeBase(kb, config=config, create=False)


@app.command()
def info(
    kb: Path = typer.Option(
        Path("./kb"),
        "--kb", "-k",
        help="Knowledge base directory",
        exists=True,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="TOML configuration file",
        exists=True,
    ),
) -> None:
    """Display knowledge base information."""

    async def _run() -> None:
        rag = _open(kb, config)

        try:
            stats = await rag.stats()

            table = Table(title=f"Knowledge Base: {kb}")
            table.add_column("Metric", style="cyan")
            table.add_column("Count", justify="right", style="green")

            table.add_row("Documents", str(stats["documents"]))
            for status in ("pending", "processing", "completed", "failed"):
                table.add_row(f"  {status}", str(stats[status]))
            table.add_row("Triples", str(stats["triples"]))

            console.print(table)

        finally:
            await rag.close()

    asyncio.run(_run())


@app.command()
def neighbors(
    node: str = typer.Argument(..., help="Node id"),
    predicate: str = typer.Option(
        "",
        "--predicate", "-p",
        help="Only follow edges with this predicate",
    ),
    incoming: bool = typer.Option(
        False,
        "--incoming/--outgoing",
        help="Follow edges into the node instead of out of it",
    ),
    kb: Path = typer.Option(
        Path("./kb"),
        "--kb", "-k",
        help="Knowledge base directory",
        exists=True,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="TOML configuration file",
        exists=True,
    ),
) -> None:
    """List one-hop neighbours of a node."""

    async def _run() -> None:
        rag = _open(kb, config)

        try:
            found = await rag.neighbors(node, predicate, incoming=incoming)
            if not found:
                console.print(f"[yellow]No neighbours for '{node}'[/]")
                return
            for neighbor in found:
                console.print(neighbor)
        finally:
            await rag.close()

    asyncio.run(_run())


@app.command()
def path(
    source: str = typer.Argument(..., help="Start node"),
    target: str = typer.Argument(..., help="End node"),
    depth: int = typer.Option(
        0,
        "--depth", "-d",
        help="Maximum nodes per path (0 for the configured default)",
    ),
    predicate: str = typer.Option(
        "",
        "--predicate", "-p",
        help="Only follow edges with this predicate",
    ),
    kb: Path = typer.Option(
        Path("./kb"),
        "--kb", "-k",
        help="Knowledge base directory",
        exists=True,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="TOML configuration file",
        exists=True,
    ),
) -> None:
    """Find simple paths between two nodes."""

    async def _run() -> None:
        rag = _open(kb, config)

        try:
            paths = await rag.find_path(source, target, max_depth=depth, predicate=predicate)
            if not paths:
                console.print(f"[yellow]No path from '{source}' to '{target}'[/]")
                return

            table = Table(title=f"Paths: {source} -> {target}")
            table.add_column("Hops", justify="right", style="cyan")
            table.add_column("Path")
            for found in paths:
                table.add_row(str(len(found) - 1), " -> ".join(found))
            console.print(table)
        finally:
            await rag.close()

    asyncio.run(_run())


@app.command()
def drain(
    kb: Path = typer.Option(
        Path("./kb"),
        "--kb", "-k",
        help="Knowledge base directory",
        exists=True,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="TOML configuration file",
        exists=True,
    ),
) -> None:
    """Embed documents waiting in the pending state (one pass)."""

    async def _run() -> None:
        rag = _open(kb, config)

        try:
            report = await rag.process_pending_embeddings()
            if report.skipped:
                console.print("[yellow]Another drain is running; skipped.[/]")
                return

            console.print(Panel(
                f"  Completed: {len(report.completed)}\n"
                f"  Failed: {len(report.failed)}",
                title="Drain Complete",
                border_style="green" if not report.failed else "yellow",
            ))
        finally:
            await rag.close()

    asyncio.run(_run())


def main() -> None:
    """Entry point for the CLI."""
    app()
