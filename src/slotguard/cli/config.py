"""
CLI: ``slotguard config``: configuration inspection.
"""

from __future__ import annotations

import typer
from rich.table import Table

from slotguard.cli.utils import console, handle_errors, print_json
from slotguard.config import get_settings
from slotguard.config.loader import load_project_config

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json, env"),
) -> None:
    """Show the resolved configuration."""
    with handle_errors():
        settings = get_settings()
        project = {key.replace("-", "_") for key in load_project_config(settings.project_root)}

    values = settings.model_dump(mode="json")

    if format == "json":
        print_json(values)
        return

    if format == "env":
        for key, value in sorted(values.items()):
            typer.echo(f"SLOTGUARD_{key.upper()}={value}")
        return

    console.print(f"[bold]Project Root:[/bold] {settings.project_root}")
    table = Table()
    table.add_column("Setting")
    table.add_column("Value")
    table.add_column("Source")
    for key, value in sorted(values.items()):
        source = "project" if key in project else "default/env"
        table.add_row(key, str(value), source)
    console.print(table)
