"""
Root Typer application for the slotguard CLI.

Sub-commands live in their own modules; this one wires them together and
configures logging from the global flags and settings.
"""

from __future__ import annotations

import typer
from typer import Typer

from slotguard.config import get_settings
from slotguard.core.errors import ConfigError
from slotguard.core.logging import configure_logging

app = Typer(
    name="slotguard",
    help="slotguard: upgrade-safety checks for contract storage layouts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from slotguard import __version__

        typer.echo(f"slotguard {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
    log_format: str | None = typer.Option(
        None,
        "--log-format",
        help="Log format: console, json or auto.",
    ),
) -> None:
    """slotguard: check that contract upgrades keep storage and initializers safe."""
    try:
        settings = get_settings()
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    fmt = (log_format or settings.log_format).lower()
    if fmt not in {"console", "json", "auto"}:
        raise typer.BadParameter(f"unknown log format {fmt!r}", param_hint="--log-format")
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_format=None if fmt == "auto" else fmt == "json",
    )


# ── Sub-command registration ─────────────────────────────────────────────

from slotguard.cli.check import compare_cmd, validate_cmd  # noqa: E402
from slotguard.cli.config import app as config_app  # noqa: E402
from slotguard.cli.layout import layout_cmd, namespace_cmd  # noqa: E402
from slotguard.cli.snapshot import app as snapshot_app  # noqa: E402

app.command("layout")(layout_cmd)
app.command("namespace")(namespace_cmd)
app.command("validate")(validate_cmd)
app.command("compare")(compare_cmd)
app.add_typer(snapshot_app, name="snapshot", help="Versioned layout snapshots.")
app.add_typer(config_app, name="config", help="Configuration inspection.")
