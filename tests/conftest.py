"""
Shared pytest fixtures for slotguard tests.

This module provides:
- Paths to the Solidity fixture project under ``tests/fixtures/contracts``
- In-memory source helpers for small, focused contracts
- Settings and logging isolation between tests

Usage:
    def test_layout(vault_sources):
        layout = compute_layout(vault_sources, "Vault")
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

# Ensure slotguard package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from slotguard.config import clear_settings_cache
from slotguard.core.logging import clear_context
from slotguard.solidity.sources import SourceSet
from slotguard.validation.rules import clear_custom_rules

FIXTURES = Path(__file__).parent / "fixtures"
CONTRACTS = FIXTURES / "contracts"


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if test_path.parts[0] == "cli":
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_state(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Reset caches, registries, root log handlers and bound log context around every test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    for var in [name for name in os.environ if name.startswith("SLOTGUARD_")]:
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()
    clear_custom_rules()
    clear_context()
    yield
    clear_settings_cache()
    clear_custom_rules()
    clear_context()
    structlog.reset_defaults()
    for handler in root.handlers[:]:
        if type(handler) is logging.StreamHandler and handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


# =============================================================================
# Sources
# =============================================================================


@pytest.fixture
def contracts_dir() -> Path:
    return CONTRACTS


@pytest.fixture
def load_fixture() -> Callable[..., SourceSet]:
    """Load fixture files (and their imports) relative to the fixture directory."""

    def _load(*names: str) -> SourceSet:
        return SourceSet.load([CONTRACTS / name for name in names], base_dir=CONTRACTS)

    return _load


@pytest.fixture
def vault_sources(load_fixture: Callable[..., SourceSet]) -> SourceSet:
    return load_fixture("Vault.sol", "VaultV2.sol", "VaultV2Broken.sol")


@pytest.fixture
def solidity() -> Callable[..., SourceSet]:
    """Build a SourceSet from one in-memory file (``Main.sol``) or several."""

    def _build(text: str | None = None, files: dict[str, str] | None = None) -> SourceSet:
        sources = dict(files or {})
        if text is not None:
            sources["Main.sol"] = text
        return SourceSet.from_sources(sources)

    return _build


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Empty project root (with a pyproject.toml marker) as the working directory."""
    (tmp_path / "pyproject.toml").write_text('[project]\nname = "demo"\n')
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def upgradeable(solidity: Callable[..., SourceSet]) -> Callable[[str], SourceSet]:
    """In-memory ``Main.sol`` importing the fixture ``Upgradeable.sol`` base contracts."""
    base = (CONTRACTS / "Upgradeable.sol").read_text(encoding="utf-8")

    def _build(text: str) -> SourceSet:
        return solidity('import "./Upgradeable.sol";\n' + text, files={"Upgradeable.sol": base})

    return _build
