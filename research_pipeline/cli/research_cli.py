"""Typer-based developer CLI for running the research pipeline."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent.parent
from dotenv import load_dotenv

load_dotenv(_project_root / ".env")
load_dotenv(_project_root / ".env.local")

import asyncio
from typing import List

import typer

from research_pipeline.config import get_settings
from research_pipeline.logging_config import setup_logfire
from research_pipeline.models.pipeline_models import ProcessingResult
from research_pipeline.services.content_processor import (
    InvalidPipelineInputError,
    get_content_processor,
)
from research_pipeline.services.progress import ProgressCallbacks
from research_pipeline.services.search_service import SearchError, get_search_client
from research_pipeline.services.semantic_scorer import NeutralScorer

app = typer.Typer(help="Scrape, clean, chunk and rank web content for a query.")


def _progress_callbacks() -> ProgressCallbacks:
    """Progress hooks that report to stderr, keeping stdout for JSON."""
    return ProgressCallbacks(
        on_scraping_start=lambda urls: typer.echo(f"Scraping {len(urls)} URL(s)...", err=True),
        on_scraping_progress=lambda done, total, url: typer.echo(
            f"  [{done}/{total}] {url}", err=True
        ),
        on_processing_start=lambda count: typer.echo(
            f"Cleaning and chunking {count} document(s)...", err=True
        ),
        on_analysis_start=lambda: typer.echo("Scoring chunks...", err=True),
        on_error=lambda message, stage: typer.echo(
            typer.style(f"  [{stage}] {message}", fg=typer.colors.YELLOW), err=True
        ),
    )


def _run_pipeline(urls: List[str], query: str, neutral: bool) -> ProcessingResult:
    settings = get_settings()
    processor = get_content_processor(
        settings, scorer=NeutralScorer() if neutral else None
    )
    try:
        return asyncio.run(processor.process(urls, query, _progress_callbacks()))
    except InvalidPipelineInputError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)


def _emit(result: ProcessingResult) -> None:
    typer.echo(result.model_dump_json(indent=2))
    if not result.has_relevant_content:
        typer.echo(
            typer.style(
                f"No sufficiently relevant content found ({result.outcome.value}).",
                fg=typer.colors.YELLOW,
            ),
            err=True,
        )


@app.callback()
def _configure() -> None:
    """Configure logging before any command runs."""
    setup_logfire()


@app.command()
def process(
    query: str = typer.Argument(..., help="Research query"),
    url: List[str] = typer.Option(..., "--url", "-u", help="URL to process (repeatable)"),
    neutral: bool = typer.Option(
        False, "--neutral", help="Skip the LLM scorer and rank with neutral scores"
    ),
) -> None:
    """Process the given URLs for QUERY and print the JSON result."""
    _emit(_run_pipeline(url, query, neutral))


@app.command()
def research(
    query: str = typer.Argument(..., help="Research query"),
    neutral: bool = typer.Option(
        False, "--neutral", help="Skip the LLM scorer and rank with neutral scores"
    ),
) -> None:
    """Search the web for QUERY, process the top results and print the JSON result."""
    client = get_search_client()
    try:
        results = asyncio.run(client.search(query))
    except SearchError as e:
        typer.echo(f"Search failed: {e}", err=True)
        raise typer.Exit(1)

    if not results:
        typer.echo("Search returned no results.", err=True)
        raise typer.Exit(1)

    for position, result in enumerate(results, start=1):
        typer.echo(f"{position}. {result.title} - {result.link}", err=True)
    _emit(_run_pipeline([result.link for result in results], query, neutral))


if __name__ == "__main__":
    app()
