"""
Project configuration discovery and loading.

Manifesto:
    Configuration cascading must be predictable and debuggable.  Values
    come from exactly three places and later ones always win:

    defaults  →  project TOML  →  real env vars

Project TOML is either ``slotguard.toml`` (top-level keys) or the
``[tool.slotguard]`` table of ``pyproject.toml``.  When both exist,
``slotguard.toml`` wins.

Tags:
    slotguard, configuration, toml, loader

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

from slotguard.core.errors import ConfigError

ENV_PREFIX = "SLOTGUARD_"
CONFIG_FILENAME = "slotguard.toml"


def find_project_root(start: Path | None = None) -> Path:
    """Walk upward from *start* to find the project root.

    Recognised root markers (checked in order):

    * ``slotguard.toml``
    * ``pyproject.toml``
    * ``foundry.toml`` / ``hardhat.config.js`` / ``hardhat.config.ts``
    * ``.git`` directory

    Falls back to *start* (or cwd) when no marker is found.
    """
    current = (start or Path.cwd()).resolve()
    markers = (
        CONFIG_FILENAME,
        "pyproject.toml",
        "foundry.toml",
        "hardhat.config.js",
        "hardhat.config.ts",
        ".git",
    )
    for directory in (current, *current.parents):
        if any((directory / marker).exists() for marker in markers):
            return directory
    return current


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}", cause=exc).with_context(
            source_path=str(path)
        )


def load_project_config(project_root: Path | None = None) -> dict[str, Any]:
    """Return the slotguard settings declared by the project, if any."""
    root = (project_root or find_project_root()).resolve()

    own = root / CONFIG_FILENAME
    if own.is_file():
        data = _read_toml(own)
        # Allow an optional [slotguard] table as well as top-level keys
        return dict(data.get("slotguard", data))

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        data = _read_toml(pyproject)
        return dict(data.get("tool", {}).get("slotguard", {}))

    return {}


def to_env_value(value: Any) -> str:
    """Serialise a TOML value the way pydantic-settings parses env vars."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def project_env(project_root: Path | None = None) -> dict[str, str]:
    """Project TOML values rendered as ``SLOTGUARD_*`` environment entries."""
    config = load_project_config(project_root)
    return {
        f"{ENV_PREFIX}{key.replace('-', '_').upper()}": to_env_value(value)
        for key, value in config.items()
    }
