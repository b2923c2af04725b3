"""Load Solidity files, follow imports, and look up declarations.

Stability: stable
Tags: solidity, sources, imports, resolution

A :class:`SourceSet` is the unit every analysis works on: all files reachable
from the requested entry points, parsed once each, with name lookup for
contracts, user-defined types and integer constants.

Usage::

    sources = SourceSet.load([Path("contracts/VaultV2.sol")], include_paths=[Path("lib")])
    vault = sources.find_contract("contracts/VaultV2.sol:VaultV2")
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Union

from slotguard.core.errors import (
    AmbiguousContractError,
    ContractNotFoundError,
    SolidityParseError,
    SourceLoadError,
)
from slotguard.core.logging import get_logger

from .constexpr import evaluate_int
from .model import (
    ContractDefinition,
    EnumDefinition,
    SourceUnit,
    StructDefinition,
    UserValueType,
)
from .parser import parse_source

logger = get_logger(__name__)

Declaration = Union[StructDefinition, EnumDefinition, UserValueType, ContractDefinition]


class SourceSet:
    """Parsed source units keyed by normalised path."""

    def __init__(self, units: Iterable[SourceUnit] = ()):
        self.units: dict[str, SourceUnit] = {}
        self._import_edges: dict[str, list[str]] = {}
        self.entry_paths: list[str] = []
        for unit in units:
            self.units[unit.path] = unit

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_sources(cls, sources: dict[str, str]) -> SourceSet:
        """Build from in-memory ``{path: text}``; imports resolve among the given paths."""
        source_set = cls(parse_source(text, _normalise(path)) for path, text in sources.items())
        source_set.entry_paths = list(source_set.units)
        for path, unit in source_set.units.items():
            edges = []
            for directive in unit.imports:
                target = _normalise(_join_import(path, directive.path))
                if target not in source_set.units:
                    raise SourceLoadError(f"Cannot resolve import '{directive.path}'").with_context(
                        source_path=path, line=directive.line
                    )
                edges.append(target)
            source_set._import_edges[path] = edges
        return source_set

    @classmethod
    def load(
        cls,
        paths: Iterable[Path],
        *,
        include_paths: Iterable[Path] = (),
        remappings: dict[str, str] | None = None,
        base_dir: Path | None = None,
    ) -> SourceSet:
        """Parse *paths* and every file they import, transitively."""
        base = (base_dir or Path.cwd()).resolve()
        roots = [base, *(Path(p).resolve() for p in include_paths)]
        remaps = sorted((remappings or {}).items(), key=lambda kv: len(kv[0]), reverse=True)

        source_set = cls()
        queue: list[Path] = [Path(p).resolve() for p in paths]
        source_set.entry_paths = [_display_path(p, base) for p in queue]
        seen: set[Path] = set()

        while queue:
            file_path = queue.pop(0)
            if file_path in seen:
                continue
            seen.add(file_path)

            display = _display_path(file_path, base)
            try:
                text = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise SourceLoadError(f"Cannot read {display}", cause=exc).with_context(source_path=display)

            unit = parse_source(text, display)
            source_set.units[display] = unit
            edges: list[str] = []
            for directive in unit.imports:
                target = _resolve_import(directive.path, file_path, roots, remaps)
                if target is None:
                    raise SourceLoadError(f"Cannot resolve import '{directive.path}'").with_context(
                        source_path=display, line=directive.line
                    )
                edges.append(_display_path(target, base))
                queue.append(target)
            source_set._import_edges[display] = edges

        logger.debug("sources.loaded", files=len(source_set.units))
        return source_set

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def entry_unit(self) -> SourceUnit | None:
        """The first file passed to :meth:`load`."""
        return self.units.get(self.entry_paths[0]) if self.entry_paths else None

    def contracts(self) -> Iterator[ContractDefinition]:
        for unit in self.units.values():
            yield from unit.contracts

    def find_contract(self, ref: str) -> ContractDefinition:
        """Look up ``Name`` or ``path/to/File.sol:Name``."""
        path, sep, name = ref.rpartition(":")
        if not sep:
            candidates = [c for c in self.contracts() if c.name == name]
            if not candidates:
                raise ContractNotFoundError(name)
            if len(candidates) > 1:
                raise AmbiguousContractError(name, [c.source_path for c in candidates])
            return candidates[0]

        wanted = _normalise(path)
        for unit_path, unit in self.units.items():
            if unit_path == wanted or unit_path.endswith("/" + wanted) or wanted.endswith("/" + unit_path):
                contract = unit.find_contract(name)
                if contract is not None:
                    return contract
        raise ContractNotFoundError(name).with_context(source_path=path)

    def scope_of(self, source_path: str) -> list[SourceUnit]:
        """The unit at *source_path* plus every unit it imports, transitively."""
        ordered: list[SourceUnit] = []
        seen: set[str] = set()
        stack = [source_path]
        while stack:
            current = stack.pop(0)
            if current in seen or current not in self.units:
                continue
            seen.add(current)
            ordered.append(self.units[current])
            stack.extend(self._import_edges.get(current, []))
        return ordered

    def contract_named(self, name: str, *, near: str | None = None) -> ContractDefinition:
        """Resolve a contract referenced by name from the file *near*."""
        candidates = [c for c in self.contracts() if c.name == name]
        if not candidates:
            raise ContractNotFoundError(name).with_context(source_path=near)
        if len(candidates) == 1:
            return candidates[0]
        if near is not None:
            for unit in self.scope_of(near):
                found = unit.find_contract(name)
                if found is not None:
                    return found
        raise AmbiguousContractError(name, [c.source_path for c in candidates])

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def resolve_type(
        self,
        path: tuple[str, ...],
        scope: list[ContractDefinition],
    ) -> tuple[Declaration, str | None]:
        """Resolve a user-defined type name seen inside ``scope[0]``.

        *scope* is the linearization of the contract the name appears in
        (most derived first). Returns the declaration and the name of the
        contract that declares it (None for file-level declarations).
        """
        context = scope[0]
        if len(path) > 1:
            owner = self.contract_named(path[-2], near=context.source_path)
            found = _local_declaration(owner, path[-1])
            if found is None:
                raise ContractNotFoundError(".".join(path)).with_context(source_path=context.source_path)
            return found, owner.name

        name = path[0]
        for contract in scope:
            found = _local_declaration(contract, name)
            if found is not None:
                return found, contract.name

        for unit in self.scope_of(context.source_path):
            for collection in (unit.structs, unit.enums, unit.value_types, unit.contracts):
                for declaration in collection:
                    if declaration.name == name:
                        return declaration, None

        return self.contract_named(name, near=context.source_path), None

    def constant_value(
        self,
        name: str,
        scope: list[ContractDefinition],
        _visiting: frozenset[str] = frozenset(),
    ) -> int | None:
        """Integer value of the constant *name* visible from ``scope[0]``."""
        if name in _visiting:
            raise SolidityParseError(f"Constant '{name}' is defined in terms of itself")
        visiting = _visiting | {name}
        context = scope[0]

        raw: str | None = None
        owner_scope = scope
        if "." in name:
            owner_name, _, const_name = name.rpartition(".")
            owner = self.contract_named(owner_name, near=context.source_path)
            raw = next((c.value for c in owner.constants if c.name == const_name), None)
            owner_scope = [owner]
        else:
            for contract in scope:
                raw = next((c.value for c in contract.constants if c.name == name), None)
                if raw is not None:
                    break
            if raw is None:
                for unit in self.scope_of(context.source_path):
                    raw = next((c.value for c in unit.constants if c.name == name), None)
                    if raw is not None:
                        break
        if raw is None:
            return None

        return evaluate_int(raw, lambda ref: self.constant_value(ref, owner_scope, visiting))


def _local_declaration(contract: ContractDefinition, name: str) -> Declaration | None:
    return contract.find_struct(name) or contract.find_enum(name) or contract.find_value_type(name)


def _normalise(path: str) -> str:
    return posixpath.normpath(path.replace("\\", "/"))


def _join_import(importer: str, target: str) -> str:
    if target.startswith("./") or target.startswith("../"):
        return posixpath.join(posixpath.dirname(importer), target)
    return target


def _display_path(path: Path, base: Path) -> str:
    try:
        return path.relative_to(base).as_posix()
    except ValueError:
        return path.as_posix()


def _resolve_import(
    target: str,
    importer: Path,
    roots: list[Path],
    remaps: list[tuple[str, str]],
) -> Path | None:
    if target.startswith("./") or target.startswith("../"):
        candidate = (importer.parent / target).resolve()
        return candidate if candidate.is_file() else None

    for prefix, replacement in remaps:
        if target.startswith(prefix):
            target = replacement + target[len(prefix):]
            break

    direct = Path(target)
    if direct.is_absolute():
        return direct if direct.is_file() else None
    for root in roots:
        candidate = (root / target).resolve()
        if candidate.is_file():
            return candidate
    return None
