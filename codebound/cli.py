"""Typer-based CLI for codebound module boundary discovery."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__, config
from .discovery import BoundaryDiscoveryEngine
from .errors import BoundaryFileError, InvalidRootError
from .export import export_dot, export_json, export_markdown, render_markdown
from .dependency import build_facts
from .models import DiscoveryResult, NodeArena
from .parser import extract_file
from .scanner import SourceScanner, sampler_for

app = typer.Typer(
    help="🧭 Codebound — discover module boundaries in existing codebases.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
config_app = typer.Typer(
    help="⚙️  Inspect and persist discovery defaults.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(config_app, name="config")

console = Console()

OUTPUT_FORMATS = ("table", "json", "markdown")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"codebound v{__version__}")
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
    """Codebound: propose module boundaries from structure, names and data access."""
    pass


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _resolve_config(project_path: Path, overrides: Dict[str, Any]) -> config.DiscoveryConfig:
    try:
        return config.load_config(project_path, overrides=overrides)
    except (TypeError, ValueError) as exc:
        raise typer.BadParameter(str(exc))


def _score_color(value: float) -> str:
    if value >= 0.75:
        return "green"
    if value >= 0.5:
        return "yellow"
    return "red"


def _print_table(result: DiscoveryResult) -> None:
    metrics = result.confidence_metrics
    color = _score_color(metrics.overall_confidence)
    console.print(
        Panel.fit(
            f"[bold {color}]{metrics.overall_confidence * 100:.0f}%[/bold {color}] overall confidence  "
            f"· {len(result.discovered_boundaries)} boundaries  "
            f"· {result.files_analyzed}/{result.files_scanned} files analyzed",
            title="[bold]Boundary Discovery[/bold]",
            border_style=color,
        )
    )
    if result.partial:
        console.print("[yellow]⚠️  Discovery hit its time limit; the result is partial.[/yellow]")

    if not result.discovered_boundaries:
        console.print("No module boundaries found.")
        return

    table = Table(title="Discovered Boundaries", show_header=True, show_lines=False)
    table.add_column("Boundary", style="cyan")
    table.add_column("Confidence", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Elements", justify="right")
    table.add_column("Tables")
    for boundary in result.discovered_boundaries:
        name = boundary.name + (" [dim](declared)[/dim]" if boundary.user_declared else "")
        c = _score_color(boundary.confidence)
        table.add_row(
            name,
            f"[{c}]{boundary.confidence * 100:.1f}%[/{c}]",
            str(len(boundary.files)),
            str(boundary.element_count),
            ", ".join(boundary.database_tables) or "-",
        )
    console.print(table)

    if result.recommendations:
        console.print(
            Panel(
                "\n".join(
                    f"  • [bold]{rec.type}[/bold] {', '.join(rec.boundaries)}: {rec.reason}"
                    for rec in result.recommendations
                ),
                title="[bold yellow]📋 Recommendations[/bold yellow]",
                border_style="yellow",
            )
        )

    orphans = result.clustering_analysis.orphaned_files
    if orphans:
        console.print(f"[dim]{len(orphans)} file(s) belong to no boundary.[/dim]")


def _write_report(result: DiscoveryResult, output: Path) -> None:
    suffix = output.suffix.lower()
    if suffix in (".md", ".markdown"):
        export_markdown(result, output)
    elif suffix in (".dot", ".gv"):
        export_dot(result, output)
    else:
        export_json(result, output)


@app.command("discover")
def discover_boundaries(
    project_path: Path = typer.Argument(..., help="Root of the project to analyze."),
    include: Optional[List[str]] = typer.Option(None, "--include", "-i", help="Only analyze files matching this glob (repeatable)."),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", "-e", help="Skip files matching this glob (repeatable)."),
    boundaries: Optional[Path] = typer.Option(None, "--boundaries", "-b", help="TOML/JSON file of user-declared modules."),
    sampling: Optional[str] = typer.Option(None, help="File sampling: none, stride, importance."),
    max_files: Optional[int] = typer.Option(None, min=1, help="Maximum number of files to analyze."),
    min_confidence: Optional[float] = typer.Option(None, min=0.0, max=1.0, help="Drop boundaries below this confidence."),
    workers: Optional[int] = typer.Option(None, min=1, help="Parallel extraction workers."),
    timeout: Optional[float] = typer.Option(None, min=0.0, help="Time budget in seconds."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report (.json, .md or .dot)."),
    fmt: str = typer.Option("table", "--format", "-f", help="Console output: table, json, markdown."),
    verbose: bool = typer.Option(False, "--verbose", help="Log stage progress."),
):
    """Discover candidate module boundaries in a project."""
    _setup_logging(verbose)
    if fmt not in OUTPUT_FORMATS:
        raise typer.BadParameter(f"Unknown format '{fmt}'. Choose one of: {', '.join(OUTPUT_FORMATS)}")

    settings = _resolve_config(project_path, {
        "include": include or None,
        "exclude": exclude or None,
        "sampling": sampling,
        "max_files": max_files,
        "min_confidence": min_confidence,
        "workers": workers,
        "timeout_seconds": timeout,
    })

    engine = BoundaryDiscoveryEngine(settings)
    try:
        result = engine.discover(project_path, boundary_file=boundaries)
    except InvalidRootError as exc:
        raise typer.BadParameter(str(exc))
    except BoundaryFileError as exc:
        raise typer.BadParameter(str(exc))

    if fmt == "json":
        typer.echo(result.to_json())
    elif fmt == "markdown":
        typer.echo(render_markdown(result))
    else:
        _print_table(result)

    if output:
        _write_report(result, output)
        if fmt == "table":
            console.print(f"Report written to [bold]{output}[/bold]")


@app.command("scan")
def scan_project(
    project_path: Path = typer.Argument(..., help="Root of the project to scan."),
    include: Optional[List[str]] = typer.Option(None, "--include", "-i", help="Only list files matching this glob."),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", "-e", help="Skip files matching this glob."),
    facts: bool = typer.Option(False, "--facts", help="Also list reference and call facts between declarations."),
):
    """List the files discovery would analyze, with declaration counts."""
    _setup_logging(False)
    settings = _resolve_config(project_path, {"include": include or None, "exclude": exclude or None})
    scanner = SourceScanner.from_config(project_path, settings)
    try:
        root = scanner.validate_root()
        scanned = scanner.scan()
    except InvalidRootError as exc:
        raise typer.BadParameter(str(exc))

    files = sampler_for(settings).sample(scanned, root)
    if not files:
        typer.echo("No supported source files found.")
        raise typer.Exit(code=0)

    table = Table(title=f"Source files ({len(files)} of {len(scanned)} analyzed)", show_lines=False)
    table.add_column("File", style="cyan")
    table.add_column("Structs", justify="right")
    table.add_column("Interfaces", justify="right")
    table.add_column("Functions", justify="right")
    table.add_column("Tables")
    extractions = []
    for rel in files:
        extraction = extract_file(root, rel)
        extractions.append(extraction)
        tables = sorted({fact.table for fact in extraction.database_access})
        table.add_row(
            rel.as_posix(),
            str(len(extraction.structs)),
            str(len(extraction.interfaces)),
            str(len(extraction.functions)),
            ", ".join(tables) or "-",
        )
    console.print(table)

    if facts:
        arena = NodeArena.build(node for extraction in extractions for node in extraction.nodes)
        edges = [fact for fact in build_facts(arena) if fact.kind in ("reference", "call")]
        fact_table = Table(title=f"Dependency facts ({len(edges)})")
        fact_table.add_column("Source", style="cyan")
        fact_table.add_column("Target", style="cyan")
        fact_table.add_column("Kind")
        fact_table.add_column("Weight", justify="right")
        for fact in edges:
            fact_table.add_row(fact.source, fact.target, fact.kind, f"{fact.weight:.1f}")
        console.print(fact_table)


@config_app.command("show")
def config_show():
    """Show the effective discovery defaults."""
    settings = config.load_config()
    table = Table(title="Discovery Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        if isinstance(value, list):
            value = ", ".join(value) or "(none)"
        table.add_row(key, str(value))
    console.print(table)
    console.print(f"[dim]Config file: {config.CONFIG_FILE}[/dim]")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name, e.g. max_files."),
    value: str = typer.Argument(..., help="New value (comma-separated for lists)."),
):
    """Persist a discovery default to the global config file."""
    try:
        coerced = config.coerce_value(key, value)
        saved = config.save_config(key, coerced)
    except (TypeError, ValueError) as exc:
        raise typer.BadParameter(str(exc))
    if not saved:
        typer.echo(f"❌ Could not write {config.CONFIG_FILE}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Set {key} = {coerced!r}")


if __name__ == "__main__":
    app()
