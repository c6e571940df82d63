"""Typer-based CLI for check-timeline."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .aggregator import Aggregator
from .config import CheckTimelineConfig
from .renderers import HtmlRenderer
from .sources import CheckFileSource, ChecksApiSource, RaygunFileSource
from .timeline import Timeline

app = typer.Typer(
    name="check-timeline",
    help="Reconstruct the lifecycle of a check from the Checks API, saved documents and Raygun reports",
    add_completion=False,
)

console = Console()


@app.callback()
def configure(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
):
    """Configure logging before any command runs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_sources(
    check_id: Optional[str],
    check_file: Optional[Path],
    payments_file: Optional[Path],
    raygun: Optional[list[str]],
    config: CheckTimelineConfig,
) -> list:
    """Source list in priority order: live API, saved check file, Raygun files."""
    sources = []
    if check_id:
        sources.append(ChecksApiSource(check_id, config=config.checks_api))
    if check_file:
        sources.append(CheckFileSource(check_id, check_file=check_file, payments_file=payments_file))
    if raygun:
        sources.append(RaygunFileSource(check_id, files=raygun))
    return sources


def print_summary(timeline: Timeline) -> None:
    table = Table(title=f"Check {timeline.check_id or 'unknown'}")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")

    table.add_row("Events", str(timeline.count))
    table.add_row("Errors", str(timeline.error_count))
    table.add_row("Sources", ", ".join(timeline.sources) or "-")
    table.add_row("Started", timeline.started_at.isoformat() if timeline.started_at else "-")
    table.add_row("Ended", timeline.ended_at.isoformat() if timeline.ended_at else "-")
    table.add_row("Duration", timeline.duration)
    table.add_row("Final value", timeline.formatted_final_value)
    for severity, count in timeline.severity_counts.items():
        if count:
            table.add_row(f"  {severity}", str(count))

    console.print(table)


@app.command()
def build(
    check_id: Optional[str] = typer.Argument(
        None,
        help="Check UUID (optional when --check-file contains data.id)",
    ),
    check_file: Optional[Path] = typer.Option(
        None,
        "--check-file",
        "-c",
        help="Saved check JSON:API document",
    ),
    payments_file: Optional[Path] = typer.Option(
        None,
        "--payments-file",
        "-p",
        help="Saved payments document (used with --check-file)",
    ),
    raygun: Optional[list[str]] = typer.Option(
        None,
        "--raygun",
        "-r",
        help="Raygun exception JSON file or glob (repeatable)",
    ),
    parallel: Optional[bool] = typer.Option(
        None,
        "--parallel/--sequential",
        help="Fetch sources concurrently (default: CHECK_TIMELINE_PARALLEL)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress progress output",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file (default: timeline_<check id>.html in CHECK_TIMELINE_OUTPUT_DIR)",
    ),
    no_open: bool = typer.Option(
        False,
        "--no-open",
        help="Do not open the HTML timeline in a browser",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Write the timeline as JSON (to stdout unless --output is given)",
    ),
):
    """Collect events for a check from every configured source and render the timeline."""
    if not check_id and not check_file:
        console.print("[red]Error: provide a CHECK_ID or --check-file[/red]")
        raise typer.Exit(code=1)

    config = CheckTimelineConfig.from_env()
    json_to_stdout = as_json and output is None
    # Progress would corrupt JSON written to stdout
    quiet = quiet or json_to_stdout

    try:
        sources = build_sources(check_id, check_file, payments_file, raygun, config)
        aggregator = Aggregator(
            check_id,
            sources,
            parallel=config.parallel if parallel is None else parallel,
            console=console,
        )
        timeline = aggregator.run(quiet=quiet)

        if as_json:
            payload = json.dumps(timeline.to_dict(), indent=2, ensure_ascii=False)
            if json_to_stdout:
                typer.echo(payload)
                return
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(payload, encoding="utf-8")
            if not quiet:
                console.print(f"[green]✓[/green] Timeline JSON written to: {output}")
            return

        if not quiet:
            console.print()
            print_summary(timeline)

        renderer = HtmlRenderer(timeline)
        path = renderer.render(
            output_path=output or config.output_dir / renderer.default_output_path().name,
            open_browser=not no_open,
        )
        if not quiet:
            console.print(f"[green]✓[/green] Timeline written to: {path}")

    except OSError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)
    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def version():
    """Show check-timeline version."""
    from . import __version__
    console.print(f"check-timeline v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
