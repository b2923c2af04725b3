"""
CLI: ``slotguard validate`` and ``slotguard compare``.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from slotguard.cli.utils import (
    EXIT_UNSAFE,
    console,
    handle_errors,
    load_layout_file,
    load_target,
    print_json,
)
from slotguard.compare.comparator import LayoutReport, compare_layouts
from slotguard.config import get_settings
from slotguard.layout.calculator import LayoutCalculator
from slotguard.layout.model import StorageLayout
from slotguard.validation.model import UNSAFE_ALLOW_KINDS, ProxyKind, Severity, UpgradeSafetyReport
from slotguard.validation.validator import upgrades_from, validate_contract, validate_upgrade

_SEVERITY_STYLE = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}


def _previous_layout(reference: str, include_path: list[Path], remap: list[str]) -> StorageLayout:
    """``--from`` value: a layout JSON file or a contract reference."""
    path = Path(reference)
    if path.suffix == ".json":
        return load_layout_file(path)
    sources, contract = load_target(reference, include_paths=include_path, remappings=remap)
    return LayoutCalculator(sources).compute(contract)


def print_layout_report(report: LayoutReport) -> None:
    if report.passed:
        console.print(f"[green]✓[/green] {report.explain()}")
        return
    console.print(f"[bold red]✗ Storage layout of {report.updated} is incompatible with {report.original}[/bold red]")
    table = Table(pad_edge=False)
    table.add_column("Kind")
    table.add_column("Location")
    table.add_column("Problem", overflow="fold")
    for op in report.errors:
        problem = op.message
        if op.change is not None:
            problem += "\n" + op.change.explain()
        if op.suggestion:
            problem += f"\n[dim]{op.suggestion}[/dim]"
        table.add_row(op.kind, op.src or (op.namespace or ""), problem)
    console.print(table)


def _print_report(report: UpgradeSafetyReport) -> None:
    style = "green" if report.passed else "bold red"
    console.print(f"[{style}]{report.summary()}[/{style}]")
    if report.findings:
        table = Table(pad_edge=False)
        table.add_column("Code")
        table.add_column("Severity")
        table.add_column("Location")
        table.add_column("Message", overflow="fold")
        for finding in report.findings:
            color = _SEVERITY_STYLE.get(finding.severity, "white")
            message = finding.message
            if finding.suggestion:
                message += f"\n[dim]{finding.suggestion}[/dim]"
            table.add_row(
                finding.code,
                f"[{color}]{finding.severity.value}[/{color}]",
                finding.src,
                message,
            )
        console.print(table)
    if report.layout_report is not None:
        print_layout_report(report.layout_report)


def validate_cmd(
    ref: str = typer.Argument(..., help="Implementation: path/to/File.sol:Contract"),
    kind: ProxyKind | None = typer.Option(None, "--kind", "-k", help="Proxy kind."),
    unsafe_allow: list[str] = typer.Option([], "--unsafe-allow", help="Finding kind to allow (repeatable)."),
    reference: str | None = typer.Option(
        None,
        "--from",
        help="Previous version (contract reference or layout JSON) to check the upgrade against.",
    ),
    allow_renames: bool = typer.Option(False, "--allow-renames", help="Accept renamed variables."),
    include_path: list[Path] = typer.Option([], "--include-path", "-I", help="Extra import root."),
    remap: list[str] = typer.Option([], "--remap", "-r", help="Import remapping prefix=target."),
    json_out: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
    strict: bool = typer.Option(False, "--strict", help="Exit non-zero on warnings too."),
) -> None:
    """Validate an implementation contract for use behind a proxy.

    With ``--from`` (or a ``@custom:oz-upgrades-from`` annotation on the
    contract) the storage layout is also compared with the previous version.

    Example:
        slotguard validate contracts/Vault.sol:Vault --kind uups
        slotguard validate contracts/VaultV2.sol:VaultV2 --from contracts/Vault.sol:Vault
    """
    settings = get_settings()
    unknown = sorted(set(unsafe_allow) - UNSAFE_ALLOW_KINDS)
    if unknown:
        raise typer.BadParameter(f"unknown kinds: {', '.join(unknown)}", param_hint="--unsafe-allow")
    allowed = [*settings.unsafe_allow, *unsafe_allow]
    proxy_kind = kind or settings.kind

    with handle_errors():
        sources, target = load_target(ref, include_paths=include_path, remappings=remap, settings=settings)
        if reference is not None or target.natspec.upgrades_from is not None:
            previous = _previous_layout(reference, include_path, remap) if reference is not None else None
            report = validate_upgrade(
                previous,
                sources,
                target,
                kind=proxy_kind,
                unsafe_allow=allowed,
                allow_renames=allow_renames or settings.unsafe_allow_renames,
                skip_storage_check=settings.unsafe_skip_storage_check,
            )
        else:
            report = validate_contract(sources, target, kind=proxy_kind, unsafe_allow=allowed)

    if json_out:
        print_json(report.to_dict())
    else:
        _print_report(report)

    if not report.passed:
        raise typer.Exit(code=EXIT_UNSAFE)
    if (strict or settings.strict) and report.warnings:
        raise typer.Exit(code=EXIT_UNSAFE)


def compare_cmd(
    ref: str = typer.Argument(..., help="New version: path/to/File.sol:Contract"),
    reference: str | None = typer.Option(
        None,
        "--from",
        help="Previous version: contract reference or layout JSON (slotguard or solc format).",
    ),
    allow_renames: bool = typer.Option(False, "--allow-renames", help="Accept renamed variables."),
    include_path: list[Path] = typer.Option([], "--include-path", "-I", help="Extra import root."),
    remap: list[str] = typer.Option([], "--remap", "-r", help="Import remapping prefix=target."),
    json_out: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """Compare the storage layout of a new version with the previous one.

    Example:
        slotguard compare contracts/VaultV2.sol:VaultV2 --from contracts/Vault.sol:Vault
        slotguard compare contracts/VaultV2.sol:VaultV2 --from build/Vault.layout.json
    """
    settings = get_settings()
    with handle_errors():
        sources, target = load_target(ref, include_paths=include_path, remappings=remap, settings=settings)
        if reference is not None:
            previous = _previous_layout(reference, include_path, remap)
        else:
            previous = LayoutCalculator(sources).compute(upgrades_from(sources, target))
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
