"""CLI for StatementRecon using Typer."""

import logging
import sys

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .models import BatchValidationResult, Inconsistency
from .service import ReconciliationService

app = typer.Typer(
    name="statement-recon",
    help="Check and repair the declared account of bank statement CSV files",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def _build_service() -> ReconciliationService:
    return ReconciliationService(load_settings())


def _fail(error: Exception, verbose: bool):
    console.print(f"\n[bold red]Error:[/bold red] {error}")
    if verbose:
        raise error
    sys.exit(1)


def display_inconsistencies(inconsistencies: list[Inconsistency], title: str):
    """Display inconsistencies in a table."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("File", style="dim")
    table.add_column("Line", justify="right", width=6)
    table.add_column("Source", style="cyan")
    table.add_column("Found", style="yellow")
    table.add_column("Expected", style="green")

    for item in inconsistencies:
        expected = (
            f"[red]{item.compte_expected}[/red]"
            if item.is_invalid_prefix
            else item.compte_expected
        )
        table.add_row(
            item.file_name,
            str(item.line_index),
            item.source,
            item.compte_found or "[dim]empty[/dim]",
            expected,
        )

    console.print(table)


def display_batch(batch: BatchValidationResult):
    """Display a per-file summary of a batch validation."""
    table = Table(title="Statement Files", show_header=True, header_style="bold magenta")
    table.add_column("File", style="cyan")
    table.add_column("Lines", justify="right")
    table.add_column("Inconsistent", justify="right")
    table.add_column("Status", justify="center")

    for file_name, result in batch.results.items():
        status = "[green]✓[/green]" if result.is_valid else "[red]✗[/red]"
        table.add_row(
            file_name,
            str(result.total_lines),
            str(result.inconsistent_lines),
            status,
        )
    for file_name in batch.failed_files:
        table.add_row(file_name, "-", "-", "[yellow]failed[/yellow]")

    console.print(table)


@app.command()
def validate(
    file_name: str = typer.Argument(..., help="Statement file name in the data folder"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Check that each row's Compte matches the account implied by its Source.
    """
    setup_logging(verbose)

    try:
        service = _build_service()
        result = service.validate_file(file_name)

        if result.is_valid:
            console.print(
                f"\n[bold green]✓ {file_name} is consistent "
                f"({result.total_lines} line(s))[/bold green]\n"
            )
            return

        console.print()
        display_inconsistencies(result.inconsistencies, title=f"Inconsistencies in {file_name}")
        console.print(
            f"\n[yellow]{result.inconsistent_lines} of {result.total_lines} "
            f"line(s) inconsistent[/yellow]"
        )
        console.print(
            f"\n[bold]To fix them, run:[/bold]\n"
            f"  [cyan]statement-recon correct {file_name}[/cyan]\n"
        )

    except Exception as e:
        _fail(e, verbose)


@app.command()
def check(
    details: bool = typer.Option(
        False, "--details", "-d", help="List every inconsistency"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Validate every statement file of the data folder.
    """
    setup_logging(verbose)

    try:
        service = _build_service()
        batch = service.detect_all_inconsistencies()

        if not batch.results and not batch.failed_files:
            console.print("[yellow]No statement files found.[/yellow]")
            return

        console.print()
        display_batch(batch)

        if details and batch.inconsistencies:
            console.print()
            display_inconsistencies(batch.inconsistencies, title="Inconsistencies")

        console.print()
        if batch.is_valid and not batch.failed_files:
            console.print("[bold green]✓ All statement files are consistent[/bold green]")
        else:
            console.print(
                f"[yellow]{len(batch.inconsistencies)} inconsistency(ies), "
                f"{len(batch.failed_files)} file(s) could not be checked[/yellow]"
            )

    except Exception as e:
        _fail(e, verbose)


@app.command()
def correct(
    file_name: str = typer.Argument(..., help="Statement file name in the data folder"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show what would change without writing"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Rewrite each row's Compte from the account implied by its Source.
    """
    setup_logging(verbose)

    try:
        service = _build_service()
        result = service.correct_file(file_name, dry_run=dry_run)

        console.print(f"\n[bold]Correction of {file_name}:[/bold]")
        console.print(f"  Corrected lines: {result.corrected}")
        console.print(f"  Invalid prefixes: {result.errors}")

        if result.written:
            console.print("\n[bold green]✓ File updated[/bold green]\n")
        elif result.corrected and dry_run:
            console.print("\n[yellow]Dry run: file left unchanged[/yellow]\n")
        else:
            console.print("\n[dim]Nothing to correct[/dim]\n")

    except Exception as e:
        _fail(e, verbose)


@app.command()
def split(
    file_name: str = typer.Argument(..., help="Statement file name in the data folder"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Split a statement holding several accounts into one file per account.

    The original file is kept; remove it yourself once the result is checked.
    """
    setup_logging(verbose)

    try:
        service = _build_service()
        result = service.split_file(file_name)

        if not result.groups and not result.errors:
            console.print(
                f"\n[dim]{file_name} holds a single account, no split needed[/dim]\n"
            )
            return

        if result.groups:
            table = Table(title="Created Files", show_header=True, header_style="bold magenta")
            table.add_column("File", style="cyan")
            table.add_column("Account", style="yellow")
            table.add_column("Lines", justify="right")
            for group in result.groups:
                table.add_row(group.file_name, group.compte, str(len(group.rows)))
            console.print()
            console.print(table)

        if result.errors:
            console.print(
                f"\n[yellow]{result.errors} account(s) without a matching code "
                f"were skipped[/yellow]"
            )

        for skipped in result.skipped_files:
            console.print(
                f"[yellow]{skipped} was not written: it would replace the original "
                f"and lose the skipped lines[/yellow]"
            )

        if file_name in result.created_files:
            console.print(
                f"\n[dim]Original file {file_name} now holds the lines of its own "
                f"account.[/dim]\n"
            )
        else:
            console.print(f"\n[dim]Original file {file_name} was kept.[/dim]\n")

    except Exception as e:
        _fail(e, verbose)


@app.command()
def accounts(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    List the configured accounts.
    """
    setup_logging(verbose)

    try:
        service = _build_service()
        entries = service.accounts.snapshot()

        if not entries:
            console.print("[yellow]No accounts configured.[/yellow]")
            return

        table = Table(title="Accounts", show_header=True, header_style="bold magenta")
        table.add_column("Code", style="cyan")
        table.add_column("Name")
        table.add_column("Color", style="dim")
        for code, account in entries.items():
            table.add_row(code, account.name, account.color)

        console.print(table)

    except Exception as e:
        _fail(e, verbose)


if __name__ == "__main__":
    app()
