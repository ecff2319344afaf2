#!/usr/bin/env python3
"""
Site Test Matrix CLI

Commands:
- configure a site/phase inventory and expand it into status entries
- show the reconciled matrix of a site
- record test results, volumes and cell hardening days
- register or retire catalog templates
- report execution statistics and export site results
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

# Allow running as a script from a checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from testmatrix import __version__
from testmatrix.engine.coverage import parse_driveway_config
from testmatrix.engine.volumes import volume_summary
from testmatrix.entities.records import TemplateIdentity
from testmatrix.services import TestMatrixService
from testmatrix.stores import StoreFactory
from testmatrix.utils.config_loader import get_config_loader
from testmatrix.utils.error_handler import OperationResult, run_operation
from testmatrix.utils.logger import setup_logger

app = typer.Typer(help="Site Test Matrix - expand, track and reconcile site test coverage")
console = Console()

state: Dict[str, Any] = {"data_dir": None, "verbose": False}


@app.callback()
def main(
    data_dir: Optional[str] = typer.Option(None, "--data-dir", "-d", help="Workbook directory (overrides settings)"),
    config_dir: Optional[str] = typer.Option(None, "--config-dir", help="Directory holding settings.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Detailed output"),
):
    """Site Test Matrix"""
    state["data_dir"] = data_dir
    state["verbose"] = verbose

    get_config_loader(Path(config_dir) if config_dir else None)
    setup_logger(level="DEBUG" if verbose else None, console=verbose)


def get_service() -> TestMatrixService:
    bundle = StoreFactory.create_stores("excel", data_dir=state["data_dir"])
    return TestMatrixService.from_bundle(bundle)


def parse_cells(values: List[str]) -> List[Dict[str, Any]]:
    """
    Parse ``TYPE:QTY[:NAME,NAME...]`` selections.

    A quantity that is not a number is passed through so that the service
    reports it as a validation error.
    """
    selections = []
    for value in values:
        parts = value.split(":", 2)
        if len(parts) < 2:
            raise typer.BadParameter(f"Expected TYPE:QTY[:NAMES], got {value!r}", param_hint="--cells")

        quantity = parts[1].strip()
        selection: Dict[str, Any] = {
            "cell_type": parts[0].strip(),
            "quantity": int(quantity) if quantity.isdigit() else quantity,
        }
        if len(parts) == 3 and parts[2].strip():
            selection["cell_names"] = [name.strip() for name in parts[2].split(",") if name.strip()]
        selections.append(selection)
    return selections


def parse_driveways(values: List[str], selections: List[Dict[str, Any]]) -> None:
    """
    Attach ``TYPE:N=KEY: VALUE; KEY: VALUE`` driveway assignments to selections.

    ``N`` is the cell number within the type, counting from 1.
    """
    by_type = {selection["cell_type"]: selection for selection in selections}
    for value in values:
        target, sep, assignments = value.partition("=")
        cell_type, _, number = target.rpartition(":")
        cell_type, number = cell_type.strip(), number.strip()
        config = parse_driveway_config(assignments)
        if not sep or not cell_type or not number.isdigit() or int(number) < 1 or not config:
            raise typer.BadParameter(
                f"Expected TYPE:N=KEY: VALUE[; KEY: VALUE], got {value!r}", param_hint="--driveway"
            )
        if cell_type not in by_type:
            raise typer.BadParameter(f"No --cells selection for {cell_type}", param_hint="--driveway")
        by_type[cell_type].setdefault("driveway_config", {})[int(number) - 1] = config


def report(result: OperationResult) -> Any:
    """Print the outcome and exit non-zero on failure."""
    if not result.success:
        console.print(f"[bold red]✗ {result.message}[/bold red]")
        if state["verbose"] and result.error and result.error != result.message:
            console.print(f"  {result.error_type}: {result.error}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] {result.message}")
    return result.data


def run(func: Callable[[], Any], success_message: str, failure_message: str) -> Any:
    return report(run_operation(func, success_message, failure_message))


@app.command()
def configure(
    site: str = typer.Argument(..., help="Site label, e.g. 'CityA - DC1'"),
    phase: str = typer.Argument(..., help="Phase, e.g. 'Phase 1'"),
    cells: List[str] = typer.Option(..., "--cells", "-c", help="TYPE:QTY[:NAME,NAME] (repeatable)"),
    driveways: Optional[List[str]] = typer.Option(
        None, "--driveway", help="TYPE:N=KEY: VALUE; KEY: VALUE for cell N of a multi-driveway type (repeatable)"
    ),
    user: str = typer.Option("", "--user", "-u", help="Modifying user"),
):
    """
    Expand a site/phase inventory into status entries.

    Example:
        testmatrix configure "CityA - DC1" "Phase 1" --cells FLIB:2 --cells ASRS:2:North,South
        testmatrix configure "CityA - DC1" "Phase 1" --cells ASRS:1 --driveway "ASRS:1=Driveway 1: Inbound"
    """
    selections = parse_cells(cells)
    parse_driveways(driveways or [], selections)
    service = get_service()
    added = run(
        lambda: service.create_configuration(site, phase, selections, user=user),
        f"Configured {site} / {phase}",
        "Failed to create configuration",
    )
    console.print(f"  - Entries created: {len(added)}")


@app.command()
def matrix(
    site: str = typer.Argument(..., help="Site label"),
    phase: Optional[str] = typer.Option(None, "--phase", "-p", help="Restrict to one phase"),
):
    """Show the reconciled test matrix of a site."""
    service = get_service()
    groups = run(
        lambda: service.get_matrix_for_site(site, phase),
        f"Matrix for {site}",
        "Failed to load matrix",
    )
    if not groups:
        console.print("[yellow]![/yellow] No configured tests found")
        return

    for group in groups:
        table = Table(title=group.label, show_lines=False)
        table.add_column("Unique Key", style="cyan")
        table.add_column("Cell")
        table.add_column("Test ID")
        table.add_column("Test Case")
        table.add_column("Status")
        table.add_column("Hardening")
        table.add_column("Volumes")
        for row in group.rows:
            table.add_row(
                row.unique_key, row.cell, row.test_id, row.test_case, row.status,
                row.hardening_status, volume_summary(row) or "",
            )
        console.print(table)


@app.command("set-status")
def set_status(
    unique_key: str = typer.Argument(..., help="Unique key of the entry"),
    status: str = typer.Argument(..., help="NOT RUN, PASS, FAIL or BLOCKED"),
    user: str = typer.Option("", "--user", "-u", help="Modifying user"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Notes"),
    driveway1: Optional[str] = typer.Option(None, "--driveway1", help="Driveway 1 status"),
    driveway2: Optional[str] = typer.Option(None, "--driveway2", help="Driveway 2 status"),
):
    """Record the execution status of one test."""
    service = get_service()
    entry = run(
        lambda: service.update_test_status(unique_key, status, user, notes, driveway1, driveway2),
        f"Status updated: {unique_key}",
        "Failed to update status",
    )
    console.print(f"  - Status: {entry.status}")


@app.command("hardening-set")
def hardening_set(
    site: str = typer.Argument(..., help="Site label"),
    cell_type: str = typer.Argument(..., help="Cell type"),
    cell: str = typer.Argument(..., help="Cell name, e.g. FLIB1"),
    day: int = typer.Option(..., "--day", help="Hardening day (1-3)"),
    date: str = typer.Option(..., "--date", help="Date, YYYY-MM-DD"),
    production: float = typer.Option(..., "--production", help="Production count"),
    notes: str = typer.Option("", "--notes", help="Notes"),
    user: str = typer.Option("", "--user", "-u", help="Modifying user"),
):
    """Record one hardening day of a physical cell."""
    service = get_service()
    entries = run(
        lambda: service.record_hardening_day(site, cell_type, cell, day, date, production, notes, user),
        f"Day {day} recorded for {cell}",
        "Failed to record hardening day",
    )
    console.print(f"  - Hardening: {entries[0].hardening_status} ({len(entries)} entries)")


@app.command("hardening-update")
def hardening_update(
    site: str = typer.Argument(..., help="Site label"),
    cell_type: str = typer.Argument(..., help="Cell type"),
    cell: str = typer.Argument(..., help="Cell name"),
    day: int = typer.Option(..., "--day", help="Hardening day (1-3)"),
    production: float = typer.Option(..., "--production", help="Production count"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Notes"),
    user: str = typer.Option("", "--user", "-u", help="Modifying user"),
):
    """Change the production of a recorded hardening day."""
    service = get_service()
    entries = run(
        lambda: service.update_hardening_day(site, cell_type, cell, day, production, notes, user),
        f"Day {day} updated for {cell}",
        "Failed to update hardening day",
    )
    console.print(f"  - Hardening: {entries[0].hardening_status}")


@app.command("hardening-clear")
def hardening_clear(
    site: str = typer.Argument(..., help="Site label"),
    cell_type: str = typer.Argument(..., help="Cell type"),
    cell: str = typer.Argument(..., help="Cell name"),
    day: int = typer.Option(..., "--day", help="Hardening day (1-3)"),
    user: str = typer.Option("", "--user", "-u", help="Modifying user"),
):
    """Clear one hardening day of a physical cell."""
    service = get_service()
    entries = run(
        lambda: service.clear_hardening_day(site, cell_type, cell, day, user),
        f"Day {day} cleared for {cell}",
        "Failed to clear hardening day",
    )
    console.print(f"  - Hardening: {entries[0].hardening_status}")


@app.command("hardening-summary")
def hardening_summary(
    site: Optional[str] = typer.Option(None, "--site", help="Filter by site"),
    cell_type: Optional[str] = typer.Option(None, "--cell-type", help="Filter by cell type"),
    cell: Optional[str] = typer.Option(None, "--cell", help="Filter by cell"),
):
    """Show hardening progress and production per cell."""
    service = get_service()
    summaries = run(
        lambda: service.get_hardening_summary(site, cell_type, cell),
        "Hardening summary",
        "Failed to load hardening summary",
    )

    table = Table(title="Cell Hardening")
    table.add_column("Site", style="cyan")
    table.add_column("Cell Type")
    table.add_column("Cell")
    table.add_column("Status")
    table.add_column("Days", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Average", justify="right")
    for summary in summaries:
        table.add_row(
            summary.site,
            summary.cell_type,
            summary.cell,
            summary.hardening_status,
            str(summary.day_count),
            f"{summary.total_production:g}",
            str(summary.average_production),
        )
    console.print(table)


@app.command("register-template")
def register_template(
    cell_type: str = typer.Option(..., "--cell-type", help="Cell type, or 'General'"),
    test_id: str = typer.Option(..., "--test-id", help="Test ID"),
    test_case: str = typer.Option("", "--test-case", help="Test case title"),
    scope: str = typer.Option("", "--scope", help="Scope"),
    phase: str = typer.Option("All", "--phase", help="Phase, or 'All'"),
    coverage: str = typer.Option("All", "--coverage", help="System, First or All"),
    dc_type: str = typer.Option("", "--dc-type", help="DC type (blank for any)"),
    sub_type: str = typer.Option("", "--sub-type", help="Sub type (blank for any)"),
    user: str = typer.Option("", "--user", "-u", help="Modifying user"),
):
    """Add a template to the catalog and propagate it to existing sites."""
    service = get_service()
    template = {
        "cell_type": cell_type,
        "test_id": test_id,
        "test_case": test_case,
        "scope": scope,
        "phase": phase,
        "coverage": coverage,
        "dc_type": dc_type,
        "sub_type": sub_type,
    }
    count = run(
        lambda: service.register_template(template, user=user),
        f"Template {test_id} registered",
        "Failed to register template",
    )
    console.print(f"  - Entries propagated: {count}")


@app.command("retire-template")
def retire_template(
    cell_type: str = typer.Option(..., "--cell-type", help="Cell type"),
    test_id: str = typer.Option(..., "--test-id", help="Test ID"),
    test_case: str = typer.Option("", "--test-case", help="Test case title"),
    dc_type: str = typer.Option("", "--dc-type", help="DC type (blank for any)"),
    sub_type: str = typer.Option("", "--sub-type", help="Sub type (blank for any)"),
):
    """Delete the status entries created from a retired template."""
    service = get_service()
    identity = TemplateIdentity(dc_type, sub_type, cell_type, test_case, test_id)
    removed = run(
        lambda: service.retire_template(identity),
        f"Template {test_id} retired",
        "Failed to retire template",
    )
    console.print(f"  - Entries removed: {removed}")


@app.command("set-volumes")
def set_volumes(
    unique_key: str = typer.Argument(..., help="Unique key of the entry"),
    vt_volume: Optional[str] = typer.Option(None, "--vt-volume", help="Volume Test volume ('' clears)"),
    vt_start: Optional[str] = typer.Option(None, "--vt-start", help="Volume Test start, YYYY-MM-DD HH:MM"),
    vt_end: Optional[str] = typer.Option(None, "--vt-end", help="Volume Test end, YYYY-MM-DD HH:MM"),
    ch_volume: Optional[str] = typer.Option(None, "--ch-volume", help="Cell Hardening volume ('' clears)"),
    ch_date: Optional[str] = typer.Option(None, "--ch-date", help="Cell Hardening date, YYYY-MM-DD"),
    user: str = typer.Option("", "--user", "-u", help="Modifying user"),
):
    """Record Volume Test / Cell Hardening measurements on one test."""
    service = get_service()
    entry = run(
        lambda: service.record_volumes(unique_key, vt_volume, vt_start, vt_end, ch_volume, ch_date, user),
        f"Volumes updated: {unique_key}",
        "Failed to record volumes",
    )
    console.print(f"  - Volumes: {volume_summary(entry) or 'none'}")


@app.command("export-results")
def export_results(
    site: str = typer.Argument(..., help="Site label"),
    output_dir: Optional[str] = typer.Option(None, "--output", "-o", help="Output directory (defaults to the data directory)"),
    user: str = typer.Option("", "--user", "-u", help="Submitting user"),
):
    """Write a results workbook for one site."""
    service = get_service()
    target = output_dir or state["data_dir"] or get_config_loader().data_dir
    path = run(
        lambda: service.export_results(site, target, submitted_by=user),
        f"Results exported for {site}",
        "Failed to export results",
    )
    console.print(f"  - File: {path}")


@app.command()
def stats():
    """Show execution statistics."""
    service = get_service()
    statistics = run(service.get_statistics, "Test statistics", "Failed to compute statistics")

    overall = statistics.overall
    console.print(f"  - Total: {overall.total}")
    console.print(f"  - Pass: {overall.passed}  Fail: {overall.failed}  Blocked: {overall.blocked}  Not run: {overall.not_run}")
    console.print(f"  - Completion: {statistics.completion_rate}%  Pass rate: {statistics.pass_rate}%")

    for title, groups in (
        ("By Site", statistics.by_site),
        ("By Phase", statistics.by_phase),
        ("By Cell Type", statistics.by_cell_type),
    ):
        if not groups:
            continue
        table = Table(title=title)
        table.add_column("Name", style="cyan")
        for column in ("Total", "Pass", "Fail", "Blocked", "Not Run"):
            table.add_column(column, justify="right")
        for name, counts in groups.items():
            table.add_row(
                name, str(counts.total), str(counts.passed), str(counts.failed),
                str(counts.blocked), str(counts.not_run),
            )
        console.print(table)


@app.command()
def sites():
    """List configured sites and their phases."""
    service = get_service()
    configured = run(service.list_configured_sites, "Configured sites", "Failed to list sites")
    if not configured:
        console.print("[yellow]![/yellow] No sites configured")
        return
    for site, phases in configured.items():
        console.print(f"  • {site}: {', '.join(phases)}")


@app.command()
def version():
    """Show version information."""
    console.print("[bold cyan]Site Test Matrix[/bold cyan]")
    console.print(f"Version: {__version__}")


if __name__ == "__main__":
    app()
