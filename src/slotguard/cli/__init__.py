"""
CLI layer for slotguard.

Provides a Typer application whose commands delegate to the library
packages (``slotguard.layout``, ``slotguard.compare``,
``slotguard.validation``, ``slotguard.snapshots``). This package handles
only terminal transport: argument parsing, exit codes and rich output.

Entry point::

    slotguard --help
"""

from slotguard.cli.app import app

__all__ = ["app"]
