"""Typer-based CLI for gqlmap GraphQL operation mapping."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import load_settings
from .engine import AnalysisSession
from .models import AnalysisResult, CoverageMetrics

console = Console()

app = typer.Typer(
    help="gqlmap: map GraphQL operations to the files that declare and use them.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"gqlmap v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """gqlmap: static GraphQL usage analysis for TypeScript/JavaScript repositories."""
    pass


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _run(
    repo_path: Path,
    hooks: Optional[List[str]] = None,
    max_pattern_names: Optional[int] = None,
    batch_size: Optional[int] = None,
    concurrency: Optional[int] = None,
) -> AnalysisResult:
    overrides = {
        "max_pattern_names": max_pattern_names,
        "batch_size": batch_size,
        "concurrency": concurrency,
    }
    settings = load_settings(repo_path, overrides)
    if hooks:
        settings.extra_hook_patterns.extend(hooks)
    return AnalysisSession(repo_path, settings).run()


def _coverage_table(metrics: CoverageMetrics) -> Table:
    table = Table(title="Coverage", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in metrics.to_dict().items():
        table.add_row(key, str(value))
    return table


@app.command("analyze")
def analyze(
    repo_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Repository root."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSON result to this file."),
    hook: Optional[List[str]] = typer.Option(
        None, "--hook", help="Extra GraphQL hook name or regex (repeatable)."
    ),
    max_pattern_names: Optional[int] = typer.Option(
        None, "--max-pattern-names", help="Skip the combined-name pass above this many names."
    ),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Files per read batch."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Concurrent file reads."),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging."),
):
    """Analyze a repository and report GraphQL operations with their consumers."""
    _configure_logging(verbose)
    result = _run(repo_path, hook, max_pattern_names, batch_size, concurrency)

    if output is not None:
        output.write_text(result.to_json(), encoding="utf-8")
        typer.echo(f"Wrote {len(result.operations)} operations to {output}")
        return

    table = Table(title=f"GraphQL operations in {repo_path}", show_header=True)
    table.add_column("Operation", style="bold")
    table.add_column("Type", style="cyan")
    table.add_column("Defined in")
    table.add_column("Used in", justify="right")
    for op in sorted(result.operations, key=lambda o: o.name):
        table.add_row(op.name, op.kind, op.definition_file, str(len(op.used_in)))
    console.print(table)
    console.print(_coverage_table(result.coverage))


@app.command("operations")
def operations(
    repo_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Repository root."),
    unused: bool = typer.Option(False, "--unused", help="Only operations no file uses."),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging."),
):
    """List operations and the files that use them."""
    _configure_logging(verbose)
    result = _run(repo_path)

    ops = sorted(result.operations, key=lambda o: o.name)
    if unused:
        ops = [op for op in ops if not op.used_in]
    if not ops:
        typer.echo("No operations found.")
        return
    for op in ops:
        typer.echo(f"{op.name} ({op.kind})")
        for path in sorted(op.used_in):
            marker = " [ssr]" if path in op.ssr_used_in else ""
            typer.echo(f"  - {path}{marker}")


@app.command("coverage")
def coverage(
    repo_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Repository root."),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging."),
):
    """Print only the coverage counters of an analysis run."""
    _configure_logging(verbose)
    result = _run(repo_path)
    console.print(_coverage_table(result.coverage))


if __name__ == "__main__":
    app()
