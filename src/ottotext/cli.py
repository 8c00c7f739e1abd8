"""Command line interface for ottotext."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ottotext.config import AppConfig
from ottotext.embedding.encoder import EmbeddingError
from ottotext.generation.assembler import ContextAssembler
from ottotext.index.indexer import IndexStats, warm_from_config
from ottotext.index.search import score_records
from ottotext.web.app import app as web_app


console = Console()
app = typer.Typer(help="ottotext - Ottoman Turkish scribe with retrieval-augmented context")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(corpus: Optional[Path], cache: Optional[Path]) -> AppConfig:
    config = AppConfig.from_env(corpus_path=corpus, cache_path=cache)
    if config.corpus_path is not None and not Path(config.corpus_path).is_file():
        raise typer.BadParameter(f"Corpus not found: {config.corpus_path}")
    return config


async def _warm(
    config: AppConfig, assembler: ContextAssembler, *, force: bool = False
) -> IndexStats:
    return await warm_from_config(config, assembler.embedder, assembler.index, force=force)


@app.command()
def build(
    corpus: Path = typer.Option(None, "--corpus", help="Reference corpus text file"),
    cache: Path = typer.Option(None, "--cache", help="Embedding cache file"),
    force: bool = typer.Option(False, "--force", help="Discard the cache and regenerate"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Load the embedding cache, regenerating it when missing or unreadable."""
    _setup_logging(verbose)
    config = _load_config(corpus, cache)
    if config.corpus_path is None:
        raise typer.BadParameter("No corpus given; pass --corpus or set OTTOTEXT_CORPUS")

    assembler = ContextAssembler.from_config(config)
    console.print(f"Embedding cache: [bold]{config.resolve_cache_path(Path.cwd())}[/bold]")
    stats = asyncio.run(_warm(config, assembler, force=force))

    if stats.source == "failed":
        console.print("[red]Embedding generation failed; no cache written.[/red]")
        raise typer.Exit(code=1)
    console.print(
        f"Source: {stats.source}, records: {stats.records}, "
        f"segments: {stats.segments}, dropped: {stats.dropped}"
    )
    if stats.source == "generated" and not stats.saved:
        console.print("[yellow]Warning: the cache could not be written to disk.[/yellow]")


@app.command()
def ask(
    query: str = typer.Argument(..., help="Text to convert"),
    corpus: Path = typer.Option(None, "--corpus", help="Reference corpus text file"),
    cache: Path = typer.Option(None, "--cache", help="Embedding cache file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Answer one query with retrieved context."""
    _setup_logging(verbose)
    config = _load_config(corpus, cache)
    assembler = ContextAssembler.from_config(config)

    async def _run() -> str:
        await _warm(config, assembler)
        return await assembler.answer(query)

    console.print(asyncio.run(_run()))


@app.command()
def rank(
    query: str = typer.Argument(..., help="Query text"),
    corpus: Path = typer.Option(None, "--corpus", help="Reference corpus text file"),
    cache: Path = typer.Option(None, "--cache", help="Embedding cache file"),
    top_k: int = typer.Option(3, help="Number of segments to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show the corpus segments closest to a query."""
    _setup_logging(verbose)
    config = _load_config(corpus, cache)
    assembler = ContextAssembler.from_config(config)

    async def _run():
        await _warm(config, assembler)
        if not assembler.index.records:
            return []
        vector = await assembler.embedder.embed_query(query)
        return score_records(vector, assembler.index.records)[:top_k]

    try:
        results = asyncio.run(_run())
    except EmbeddingError as exc:
        console.print(f"[red]Could not embed the query: {exc}[/red]")
        raise typer.Exit(code=1)
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Similarity")
    table.add_column("Segment")
    table.add_column("Snippet")

    for result in results:
        snippet = result.text.replace("\n", " ")
        table.add_row(f"{result.similarity:.4f}", str(result.ordinal), snippet[:180])

    console.print(table)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the HTTP chat endpoint."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    console.print(f"Starting chat endpoint on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
