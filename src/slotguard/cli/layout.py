"""
CLI: ``slotguard layout`` and ``slotguard namespace``.
"""

from __future__ import annotations

from pathlib import Path

import typer
import yaml

from slotguard.cli.utils import console, handle_errors, layout_table, load_target, namespace_tables, print_json
from slotguard.layout.calculator import LayoutCalculator
from slotguard.layout.namespace import erc7201_slot
from slotguard.layout.solc import layout_to_solc

LAYOUT_FORMATS = ("table", "json", "yaml", "solc")


def layout_cmd(
    ref: str = typer.Argument(..., help="Contract reference: path/to/File.sol:Contract"),
    fmt: str = typer.Option("table", "--format", "-f", help="Output format: table, json, yaml, solc."),
    include_path: list[Path] = typer.Option([], "--include-path", "-I", help="Extra import root."),
    remap: list[str] = typer.Option([], "--remap", "-r", help="Import remapping prefix=target."),
) -> None:
    """Print the storage layout of a contract.

    Example:
        slotguard layout contracts/Vault.sol:Vault
        slotguard layout contracts/Vault.sol:Vault --format solc > layout.json
    """
    if fmt not in LAYOUT_FORMATS:
        raise typer.BadParameter(f"choose one of {', '.join(LAYOUT_FORMATS)}", param_hint="--format")

    with handle_errors():
        sources, target = load_target(ref, include_paths=include_path, remappings=remap)
        layout = LayoutCalculator(sources).compute(target)

    if fmt == "json":
        print_json(layout.to_dict())
    elif fmt == "yaml":
        typer.echo(yaml.safe_dump(layout.to_dict(), sort_keys=False), nl=False)
    elif fmt == "solc":
        print_json(layout_to_solc(layout))
    else:
        console.print(layout_table(layout))
        for table in namespace_tables(layout):
            console.print(table)
        console.print(f"[dim]{len(layout.items)} variables, {layout.end_slot} slots[/dim]")


def namespace_cmd(
    namespace_id: str = typer.Argument(..., help="Namespace id, e.g. example.main"),
    json_out: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """Print the ERC-7201 base slot of a namespace id.

    Example:
        slotguard namespace example.main
    """
    slot = erc7201_slot(namespace_id)
    if json_out:
        print_json({"id": namespace_id, "formula": "erc7201", "slot": f"{slot:#066x}"})
        return
    typer.echo(f"{slot:#066x}")
