"""Tables summarizing collected targets and provisioned services."""

from typing import Iterable

from rich.markup import escape
from rich.table import Table

from ..materialize import ServiceResult
from ..output import console
from ..targets import Target


def display_targets_table(targets: Iterable[Target], title: str = "Selected Models") -> None:
    """Display collected targets in a formatted table.

    Args:
        targets: Targets in collection order.
        title: Table title to display.
    """
    targets = list(targets)
    if not targets:
        console.print("[yellow]No models selected.[/yellow]")
        return

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Service ID", style="cyan", no_wrap=True)
    table.add_column("Kind", style="blue")
    table.add_column("Model", style="green")
    table.add_column("Port", justify="right")

    for target in targets:
        table.add_row(escape(target.service_id), target.kind.value, escape(target.model_ref), str(target.port))

    console.print(table)


def display_service_table(results: Iterable[ServiceResult], title: str = "OpenLLM Services") -> None:
    """Display the unit and state of every materialized service."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Service ID", style="cyan", no_wrap=True)
    table.add_column("Unit", style="blue")
    table.add_column("Port", justify="right")
    table.add_column("Status", justify="center")

    for result in results:
        status = "[green]started[/green]" if result.started else "[bold red]failed[/bold red]"
        table.add_row(escape(result.target.service_id), result.unit_name, str(result.target.port), status)

    console.print(table)
