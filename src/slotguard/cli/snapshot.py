"""
CLI: ``slotguard snapshot``: save, list and check layout snapshots.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from slotguard.cli.check import print_layout_report
from slotguard.cli.utils import EXIT_UNSAFE, console, handle_errors, load_target, print_json
from slotguard.compare.comparator import compare_layouts
from slotguard.config import get_settings
from slotguard.layout.calculator import LayoutCalculator
from slotguard.snapshots.store import LayoutStore

app = typer.Typer(no_args_is_help=True)


def _store(directory: Path | None) -> LayoutStore:
    return LayoutStore(directory or get_settings().snapshot_path)


@app.command("save")
def save_cmd(
    ref: str = typer.Argument(..., help="Contract reference: path/to/File.sol:Contract"),
    version: str = typer.Option(..., "--version", help="Release version to record, e.g. 1.2.0"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing snapshot."),
    directory: Path | None = typer.Option(None, "--dir", help="Snapshot directory."),
    include_path: list[Path] = typer.Option([], "--include-path", "-I", help="Extra import root."),
    remap: list[str] = typer.Option([], "--remap", "-r", help="Import remapping prefix=target."),
) -> None:
    """Record the current layout of a contract as a released version."""
    store = _store(directory)
    with handle_errors():
        sources, target = load_target(ref, include_paths=include_path, remappings=remap)
        layout = LayoutCalculator(sources).compute(target)
        entry = store.save(layout, version, overwrite=overwrite)
    console.print(f"[green]✓[/green] Saved {entry.contract}@{entry.version} ({entry.sha256[:12]})")


@app.command("list")
def list_cmd(
    contract: str | None = typer.Argument(None, help="Only list versions of this contract."),
    directory: Path | None = typer.Option(None, "--dir", help="Snapshot directory."),
    json_out: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """List saved snapshots, oldest first."""
    store = _store(directory)
    with handle_errors():
        names = [contract] if contract else store.contracts()
        rows = [entry for name in names for entry in store.entries(name)]

    if json_out:
        print_json([{"contract": e.contract, **e.to_dict()} for e in rows])
        return
    if not rows:
        console.print("[dim]No snapshots.[/dim]")
        return
    table = Table(pad_edge=False)
    table.add_column("Contract")
    table.add_column("Version")
    table.add_column("Saved at")
    table.add_column("SHA-256")
    for entry in rows:
        table.add_row(entry.contract, entry.version, entry.saved_at, entry.sha256[:12])
    console.print(table)


@app.command("check")
def check_cmd(
    ref: str = typer.Argument(..., help="Contract reference: path/to/File.sol:Contract"),
    against: str | None = typer.Option(None, "--against", help="Snapshot version (default: latest)."),
    snapshot_contract: str | None = typer.Option(
        None,
        "--contract",
        help="Snapshot contract name, when it differs from the new contract's name.",
    ),
    allow_renames: bool = typer.Option(False, "--allow-renames", help="Accept renamed variables."),
    directory: Path | None = typer.Option(None, "--dir", help="Snapshot directory."),
    include_path: list[Path] = typer.Option([], "--include-path", "-I", help="Extra import root."),
    remap: list[str] = typer.Option([], "--remap", "-r", help="Import remapping prefix=target."),
    json_out: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """Compare the current layout of a contract with a saved snapshot."""
    settings = get_settings()
    store = _store(directory)
    with handle_errors():
        sources, target = load_target(ref, include_paths=include_path, remappings=remap, settings=settings)
        previous = store.load(snapshot_contract or target.name, against)
        updated = LayoutCalculator(sources).compute(target)
        report = compare_layouts(
            previous,
            updated,
            allow_renames=allow_renames or settings.unsafe_allow_renames,
        )

    if json_out:
        print_json(report.to_dict())
    else:
        print_layout_report(report)
    if not report.passed:
        raise typer.Exit(code=EXIT_UNSAFE)
