"""Command-line interface for building and querying documentation indexes."""

import logging
import subprocess
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from refdocs_index import __version__
from refdocs_index.config import get_settings
from refdocs_index.database import IndexDatabase
from refdocs_index.exceptions import MalformedDocument
from refdocs_index.indexer import BuildReport, DocsIndexer
from refdocs_index.ranker import Ranker
from refdocs_index.retrieval import RetrievalService
from refdocs_index.schemas import QueryResponse

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_MALFORMED_DOCUMENT = 2
EXIT_INVALID_QUERY = 3

console = Console()
err_console = Console(stderr=True)


def echo_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[red]✗[/red] {message}")


def echo_warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[yellow]![/yellow] {message}")


def echo_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


@click.group()
@click.version_option(__version__, "-V", "--version", prog_name="refdocs-index")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Build section indexes of reference documentation and query them within a token budget.

    Examples:
        refdocs-index build docs/ docs.idx
        refdocs-index query docs.idx --q "circuit breaking" --budget 800
    """
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _finish_build(report: BuildReport, index_out: Path) -> None:
    IndexDatabase(index_out).save(report.index)

    table = Table(title="Index build", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Documents", str(report.document_count))
    table.add_row("Sections", str(report.index.total_sections))
    table.add_row("Terms", str(len(report.index.postings)))
    table.add_row("Tokens", str(report.index.total_tokens))
    table.add_row("Skipped", str(len(report.failures)))
    console.print(table)

    for failure in report.failures:
        echo_warning(f"Skipped malformed document {failure}")

    echo_success(f"Index written to {index_out}")
    if report.failures:
        sys.exit(EXIT_MALFORMED_DOCUMENT)


@cli.command()
@click.argument("source_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("index_out", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--strict", is_flag=True, help="Abort on the first malformed document")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Parser worker threads")
@click.option("--stem/--no-stem", default=None, help="Apply suffix stemming to terms")
def build(source_dir: Path, index_out: Path, strict: bool, workers: int | None, stem: bool | None) -> None:
    """Index every documentation file under SOURCE_DIR into INDEX_OUT.

    Malformed documents are skipped and reported (exit code 2); with
    --strict the build stops at the first one and no index is written.
    """
    settings = get_settings()
    overrides = {}
    if workers is not None:
        overrides["build_workers"] = workers
    if stem is not None:
        overrides["stem_tokens"] = stem
    indexer = DocsIndexer(settings.model_copy(update=overrides))

    try:
        report = indexer.index_from_path(source_dir, strict=strict)
    except ValueError as e:
        echo_error(str(e))
        sys.exit(EXIT_FAILURE)
    except MalformedDocument as e:
        echo_error(f"Malformed document {e}")
        sys.exit(EXIT_MALFORMED_DOCUMENT)

    _finish_build(report, index_out)


@cli.command("build-git")
@click.argument("repo_url")
@click.argument("index_out", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--branch", default="main", show_default=True, help="Branch to clone")
@click.option("--docs-path", default="docs", show_default=True, help="Documentation directory in the repository")
@click.option("--full-clone", is_flag=True, help="Clone the whole repository instead of a sparse checkout")
@click.option("--strict", is_flag=True, help="Abort on the first malformed document")
def build_git(repo_url: str, index_out: Path, branch: str, docs_path: str, full_clone: bool, strict: bool) -> None:
    """Clone REPO_URL and index its documentation directory into INDEX_OUT."""
    indexer = DocsIndexer()
    try:
        report = indexer.index_from_git(repo_url, branch=branch, docs_path=docs_path, shallow=not full_clone, strict=strict)
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode(errors="replace").strip() if e.stderr else ""
        echo_error(f"git failed: {stderr or e}")
        sys.exit(EXIT_FAILURE)
    except ValueError as e:
        echo_error(str(e))
        sys.exit(EXIT_FAILURE)
    except MalformedDocument as e:
        echo_error(f"Malformed document {e}")
        sys.exit(EXIT_MALFORMED_DOCUMENT)

    _finish_build(report, index_out)


def _display_results(response: QueryResponse) -> None:
    if not response.results:
        console.print("[dim]No relevant sections found[/dim]")
        return

    for rank, result in enumerate(response.results, start=1):
        heading = " › ".join(result.heading_path) or "(untitled)"
        console.print(
            Panel(
                Markdown(result.text),
                title=f"{rank}. {heading}",
                subtitle=f"{result.path} · score {result.score:.3f} · {result.token_count} tokens",
                title_align="left",
            )
        )
    console.print(f"[dim]{len(response.results)} sections, {response.total_tokens} tokens[/dim]")


@cli.command()
@click.argument("index_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--q", "-q", "query", required=True, help="Query text")
@click.option("--budget", "-b", type=int, default=None, help="Maximum tokens to return")
@click.option("--json", "as_json", is_flag=True, help="Print the response as JSON")
def query(index_file: Path, query: str, budget: int | None, as_json: bool) -> None:
    """Return the sections of INDEX_FILE most relevant to a query."""
    settings = get_settings()
    try:
        index = IndexDatabase(index_file).load()
    except (FileNotFoundError, ValueError) as e:
        echo_error(str(e))
        sys.exit(EXIT_FAILURE)

    service = RetrievalService(Ranker(heading_boost=settings.heading_boost), ready_timeout=settings.ready_timeout)
    service.publish(index)
    response = service.handle(
        {"query": query, "max_tokens": settings.default_budget if budget is None else budget}
    )

    if as_json:
        click.echo(response.model_dump_json(indent=2))
    elif response.error is None:
        _display_results(response)

    if response.error is not None:
        if not as_json:
            message = response.error.message
            if response.error.min_budget is not None:
                message += f" (try --budget {response.error.min_budget})"
            echo_error(message)
        sys.exit(EXIT_INVALID_QUERY)


def main() -> None:
    """Entry point for the refdocs-index command."""
    cli()


if __name__ == "__main__":
    main()
