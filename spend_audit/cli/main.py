"""
CLI interface for Spend Audit.

Provides command-line access to usage export analysis.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from spend_audit.config.loader import load_catalog_config
from spend_audit.core.aggregator import AnalysisResult
from spend_audit.core.catalog import DEFAULT_CATALOG, ModelCatalog
from spend_audit.core.csv_normalizer import MalformedCsvError
from spend_audit.core.pipeline import (
    NoValidRowsError,
    UploadTooLargeError,
    analyze_csv,
    read_csv_file,
)
from spend_audit.core.recommendations import Severity, sort_by_severity
from spend_audit.core.scoring import EfficiencyScore
from spend_audit.storage.db import DEFAULT_DB_PATH
from spend_audit.storage.models import UploadStatus
from spend_audit.storage.repository import get_repository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_INVALID_INPUT = 2

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_catalog(catalog_path: Optional[str]) -> ModelCatalog:
    if catalog_path is None:
        return DEFAULT_CATALOG
    return load_catalog_config(catalog_path)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Spend Audit CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Spend Audit - Use --help to see available commands")


@app.command()
def init(
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the SQLite database"),
):
    """Initialize the Spend Audit database."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def analyze(
    csv_path: str = typer.Argument(..., help="OpenAI usage export (CSV)"),
    catalog_path: Optional[str] = typer.Option(
        None,
        "--catalog",
        "-c",
        help="YAML model catalog to price against"
    ),
    save: bool = typer.Option(
        False,
        "--save/--no-save",
        help="Store the upload and its analysis in the database"
    ),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the SQLite database"),
    as_json: bool = typer.Option(False, "--json", help="Print the analysis as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress logging"),
):
    """
    Analyze an OpenAI usage export.

    Computes spend by model and day, cost recommendations and an
    efficiency score.
    """
    _configure_logging(verbose)
    try:
        catalog = _load_catalog(catalog_path)
        csv_text = read_csv_file(csv_path)
        report = analyze_csv(csv_text, catalog)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_INVALID_INPUT)
    except MalformedCsvError as e:
        console.print(f"[red]Invalid file:[/] {str(e)}")
        sys.exit(EXIT_CODE_INVALID_INPUT)
    except (NoValidRowsError, UploadTooLargeError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_INVALID_INPUT)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    upload_id = None
    if save:
        repository = get_repository(db)
        upload = None
        try:
            initialize_schema(db)
            path = Path(csv_path)
            upload = repository.create_upload(path.name, path.stat().st_size)
            repository.update_status(upload.id, UploadStatus.ANALYZING)
            repository.save_analysis(upload.id, report)
            upload_id = upload.id
        except Exception as e:
            if upload is not None:
                try:
                    repository.update_status(upload.id, UploadStatus.FAILED)
                except Exception as status_error:
                    console.print(f"[red]Could not mark upload as failed:[/] {str(status_error)}")
            console.print(f"[red]Error saving analysis:[/] {str(e)}")
            sys.exit(EXIT_CODE_FAIL)

    if as_json:
        record = report.to_record()
        if upload_id:
            record["upload_id"] = upload_id
        typer.echo(json.dumps(record, indent=2))
        sys.exit(EXIT_CODE_PASS)

    _display_analysis(report.result, report.score)
    diagnostics = report.diagnostics
    if diagnostics.invalid_rows or diagnostics.unknown_model_rows:
        console.print(
            f"\n[dim]{diagnostics.valid_rows:,} of {diagnostics.total_rows:,} rows analyzed; "
            f"{diagnostics.invalid_rows:,} skipped, "
            f"{diagnostics.unknown_model_rows:,} with models missing from the catalog[/]"
        )
    if upload_id:
        console.print(f"\n[green]✓[/] Saved as upload [bold]{upload_id}[/]")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def show(
    upload_id: str = typer.Argument(..., help="Upload id printed by 'analyze --save'"),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the SQLite database"),
):
    """Show a stored analysis."""
    try:
        stored = get_repository(db).get_analysis(upload_id)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if stored is None:
        console.print(f"[yellow]No analysis found for upload {upload_id}[/]")
        sys.exit(EXIT_CODE_FAIL)

    _display_analysis(stored.result, stored.score)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def catalog(
    catalog_path: Optional[str] = typer.Option(
        None,
        "--catalog",
        "-c",
        help="YAML model catalog to list instead of the built-in one"
    ),
):
    """List the models and prices in the catalog."""
    try:
        model_catalog = _load_catalog(catalog_path)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Model Catalog (USD per 1M tokens)")
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Thinking", justify="right")
    table.add_column("Legacy tax", justify="right")
    table.add_column("Alternative")
    for spec in model_catalog:
        table.add_row(
            spec.display_name,
            f"{spec.cost_per_million_input:.2f}",
            f"{spec.cost_per_million_output:.2f}",
            f"{spec.cost_per_million_thinking:.2f}" if spec.has_thinking else "-",
            f"{spec.legacy_tax_ratio:.0%}" if spec.is_legacy else "-",
            spec.alternative_model_id or "-",
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _display_analysis(result: AnalysisResult, score: Optional[EfficiencyScore]):
    """Display analysis results in a clean, financial format."""
    console.print("\n[bold]OpenAI Spend Audit[/bold]")
    console.print("-" * 40)
    console.print(f"Total spend: {_format_currency(result.total_spend)}")
    console.print(f"Total requests: {result.total_requests:,}")

    if score is None:
        console.print("Efficiency score: [dim]n/a (no spend)[/]")
    else:
        console.print(
            f"Efficiency score: [bold]{score.score}[/]/100 ({score.grade.value}) - "
            f"potential savings {_format_currency(score.potential_savings)}"
        )

    if result.top_models:
        table = Table(title="Top Models")
        table.add_column("Model")
        table.add_column("Cost", justify="right")
        table.add_column("Tokens", justify="right")
        for model in result.top_models:
            table.add_row(model.display_name, _format_currency(model.cost), f"{model.tokens:,}")
        console.print(table)

    if result.spend_by_day:
        table = Table(title="Spend by Day")
        table.add_column("Date")
        table.add_column("Cost", justify="right")
        for day in result.spend_by_day:
            table.add_row(day.date, _format_currency(day.cost))
        console.print(table)

    if not result.recommendations:
        console.print("\n[green]No recommendations - usage looks efficient.[/]")
        return

    console.print("\n[bold]Recommendations[/bold]")
    for rec in sort_by_severity(result.recommendations):
        style = SEVERITY_STYLES[rec.severity]
        console.print(f"\n[{style}]{rec.severity.value.upper()}[/] [bold]{rec.title}[/bold]")
        console.print(f"  {rec.description}")
        console.print(f"  Impact: {rec.impact}")
        console.print(f"  Action: {rec.action}")


if __name__ == "__main__":
    app()
