"""
CLI utility helpers: source loading, error reporting and rich output.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from slotguard.config import SlotGuardSettings, get_settings
from slotguard.core.errors import SlotGuardError, SourceError
from slotguard.layout.model import StorageLayout
from slotguard.solidity.model import ContractDefinition
from slotguard.solidity.sources import SourceSet

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_UNSAFE = 1
EXIT_USAGE = 2


# ── Errors ───────────────────────────────────────────────────────────────


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn slotguard errors into a red message and exit code 2."""
    try:
        yield
    except SlotGuardError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc}")
        raise typer.Exit(code=EXIT_USAGE) from exc


# ── Sources ──────────────────────────────────────────────────────────────


def split_ref(ref: str) -> tuple[Path, str | None]:
    """``path/to/File.sol:Name`` → ``(Path, "Name")``; the name is optional."""
    path, sep, name = ref.rpartition(":")
    if sep and name and not name.startswith(("/", "\\")):
        return Path(path), name
    return Path(ref), None


def parse_remappings(entries: list[str]) -> dict[str, str]:
    remaps: dict[str, str] = {}
    for entry in entries:
        prefix, sep, target = entry.partition("=")
        if not sep or not prefix or not target:
            raise typer.BadParameter(f"remapping must look like prefix=target, got {entry!r}")
        remaps[prefix] = target
    return remaps


def load_target(
    ref: str,
    *,
    include_paths: list[Path] | None = None,
    remappings: list[str] | None = None,
    settings: SlotGuardSettings | None = None,
) -> tuple[SourceSet, ContractDefinition]:
    """Load the file named by *ref* with its imports and pick the contract."""
    settings = settings or get_settings()
    path, name = split_ref(ref)
    remaps = settings.remapping_table
    remaps.update(parse_remappings(remappings or []))
    sources = SourceSet.load(
        [path],
        include_paths=[*settings.resolved_include_paths, *(include_paths or [])],
        remappings=remaps,
    )
    if name is not None:
        return sources, sources.find_contract(f"{path.as_posix()}:{name}")

    unit = sources.entry_unit()
    candidates = [c for c in unit.contracts if c.kind == "contract"] if unit is not None else []
    if len(candidates) != 1:
        raise SourceError(
            f"{path} declares {len(candidates)} contracts; use {path}:<Contract>"
        ).with_context(source_path=str(path))
    return sources, candidates[0]


def load_layout_file(path: Path, contract: str | None = None) -> StorageLayout:
    """Read a layout JSON file in slotguard or solc ``storageLayout`` format."""
    from slotguard.layout.solc import load_solc_layout

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"cannot read layout file {path}: {exc}") from exc
    if isinstance(data, dict) and "contract" in data and "storage" in data:
        return StorageLayout.from_dict(data)
    return load_solc_layout(data, contract)


# ── Output ───────────────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def layout_table(layout: StorageLayout) -> Table:
    table = Table(title=f"Storage layout: {layout.contract}", pad_edge=False)
    table.add_column("Slot", justify="right")
    table.add_column("Offset", justify="right")
    table.add_column("Bytes", justify="right")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Contract")
    for item in layout.items:
        info = layout.type_of(item)
        table.add_row(
            str(item.slot),
            str(item.offset),
            str(info.number_of_bytes),
            item.label,
            info.label,
            item.contract,
        )
    return table


def namespace_tables(layout: StorageLayout) -> list[Table]:
    tables = []
    for namespace in layout.namespaces:
        table = Table(
            title=f"erc7201:{namespace.id} @ {namespace.base_slot:#066x}",
            pad_edge=False,
        )
        table.add_column("Slot", justify="right")
        table.add_column("Offset", justify="right")
        table.add_column("Name")
        table.add_column("Type")
        for item in namespace.items:
            table.add_row(f"+{item.slot}", str(item.offset), item.label, layout.type_of(item).label)
        tables.append(table)
    return tables
