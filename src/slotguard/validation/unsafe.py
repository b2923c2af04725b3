"""Built-in rules for code that is unsafe behind a proxy.

Each rule walks the linearization of the target and attributes findings to
the contract that declares the offending node, so a problem in a shared
base is reported once per base rather than once per child.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator

from slotguard.core.errors import SourceError
from slotguard.solidity.model import (
    ArrayTypeName,
    ContractDefinition,
    FunctionTypeName,
    MappingTypeName,
    TypeName,
)

from .initializers import has_initializers
from .model import Finding, ProxyKind
from .rules import Rule, RuleContext

DISABLE_INITIALIZERS = "_disableInitializers"

_TRIVIAL_CONSTRUCTOR_BODIES = frozenset({"", f"{DISABLE_INITIALIZERS}();"})

UPGRADE_FUNCTIONS = ("upgradeToAndCall", "upgradeTo")


def _check_constructor(ctx: RuleContext) -> Iterator[Finding | None]:
    """E001: Constructor with logic; proxies never run it."""
    for contract in ctx.contracts():
        constructor = contract.constructor
        if constructor is None:
            continue
        runs_base_constructors = any(m.arguments for m in constructor.modifiers)
        if constructor.body in _TRIVIAL_CONSTRUCTOR_BODIES and not runs_base_constructors:
            continue
        yield ctx.finding(
            "constructor",
            contract,
            f"Contract `{contract.name}` has a constructor",
            line=constructor.line,
            natspec=constructor.natspec,
            suggestion="Define an initializer instead",
        )


def _check_state_variable_assignment(ctx: RuleContext) -> Iterator[Finding | None]:
    """E002: State variable assigned at declaration; only the implementation sees the value."""
    for contract in ctx.contracts():
        for variable in contract.state_variables:
            if variable.initial_value is None or variable.constant or variable.immutable:
                continue
            yield ctx.finding(
                "state-variable-assignment",
                contract,
                f"Variable `{variable.name}` is assigned an initial value",
                line=variable.line,
                natspec=variable.natspec,
                suggestion="Move the assignment to the initializer, or declare it constant",
            )


def _check_state_variable_immutable(ctx: RuleContext) -> Iterator[Finding | None]:
    """E003: Immutable variable; its value lives in the implementation's bytecode."""
    for contract in ctx.contracts():
        for variable in contract.state_variables:
            if not variable.immutable:
                continue
            yield ctx.finding(
                "state-variable-immutable",
                contract,
                f"Variable `{variable.name}` is immutable and will be initialized on the implementation",
                line=variable.line,
                natspec=variable.natspec,
                suggestion="Use a constant or a regular state variable set in the initializer",
            )


def _check_call(ctx: RuleContext, name: str, kind: str, message: str) -> Iterator[Finding | None]:
    for contract in ctx.contracts():
        for function in contract.functions:
            for call in function.calls_named(name):
                yield ctx.finding(
                    kind,
                    contract,
                    f"{message} in `{contract.name}.{function.name}`",
                    line=call.line,
                    natspec=function.natspec,
                )


def _check_selfdestruct(ctx: RuleContext) -> Iterator[Finding | None]:
    """E004: selfdestruct could destroy the implementation."""
    yield from _check_call(ctx, "selfdestruct", "selfdestruct", "Use of selfdestruct is not allowed")


def _check_delegatecall(ctx: RuleContext) -> Iterator[Finding | None]:
    """E005: delegatecall could run selfdestruct on the implementation."""
    yield from _check_call(ctx, "delegatecall", "delegatecall", "Use of delegatecall is not allowed")


def _library(ctx: RuleContext, contract: ContractDefinition, name: str) -> ContractDefinition | None:
    try:
        found = ctx.sources.contract_named(name, near=contract.source_path)
    except SourceError:
        return None
    return found if found.kind == "library" else None


def _check_external_library_linking(ctx: RuleContext) -> Iterator[Finding | None]:
    """E006: Calls to public library functions need linked (external) libraries."""
    for contract in ctx.contracts():
        for function in contract.functions:
            for call in function.calls:
                if call.qualifier is None or len(call.path) != 2:
                    continue
                library = _library(ctx, contract, call.qualifier)
                if library is None:
                    continue
                if any(fn.is_public for fn in library.functions_named(call.name)):
                    yield ctx.finding(
                        "external-library-linking",
                        contract,
                        f"Linked library `{library.name}` is called from `{contract.name}.{function.name}`",
                        line=call.line,
                        natspec=function.natspec,
                        suggestion="Make the library functions internal",
                    )


def _holds_internal_function(type_name: TypeName) -> bool:
    if isinstance(type_name, FunctionTypeName):
        return type_name.visibility == "internal"
    if isinstance(type_name, MappingTypeName):
        return _holds_internal_function(type_name.value)
    if isinstance(type_name, ArrayTypeName):
        return _holds_internal_function(type_name.base)
    return False


def _check_internal_function_storage(ctx: RuleContext) -> Iterator[Finding | None]:
    """E007: Internal function pointers are code offsets that change with every build."""
    for contract in ctx.contracts():
        for variable in contract.state_variables:
            if not variable.takes_storage or not _holds_internal_function(variable.type_name):
                continue
            yield ctx.finding(
                "internal-function-storage",
                contract,
                f"Variable `{variable.name}` stores an internal function pointer",
                line=variable.line,
                natspec=variable.natspec,
                suggestion="Store an external function or a selector instead",
            )


def _check_public_upgrade_function(ctx: RuleContext) -> Iterator[Finding | None]:
    """E008: UUPS implementations must expose their own upgrade function."""
    if ctx.kind != ProxyKind.UUPS or not ctx.is_concrete:
        return
    for contract in ctx.contracts():
        for name in UPGRADE_FUNCTIONS:
            if any(fn.is_public for fn in contract.functions_named(name)):
                return
    yield ctx.finding(
        "missing-public-upgradeto",
        ctx.target,
        f"Implementation `{ctx.target.name}` is missing a public upgradeToAndCall function",
        suggestion="Inherit UUPSUpgradeable",
    )


def _check_duplicate_namespace(ctx: RuleContext) -> Iterator[Finding | None]:
    """E009: Two namespaced structs with the same id overlap in storage."""
    if ctx.layout is None:
        return
    counts = Counter(ns.id for ns in ctx.layout.namespaces)
    by_name = {c.name: c for c in ctx.chain}
    reported: set[str] = set()
    for namespace in ctx.layout.namespaces:
        if counts[namespace.id] < 2 or namespace.id in reported:
            continue
        reported.add(namespace.id)
        owners = sorted({ns.contract for ns in ctx.layout.namespaces if ns.id == namespace.id})
        yield ctx.finding(
            "duplicate-namespace",
            by_name.get(namespace.contract, ctx.target),
            f"Namespace `{namespace.id}` is defined more than once (in {', '.join(owners)})",
            suggestion="Give each namespaced struct a unique id",
        )


def _check_missing_disable_initializers(ctx: RuleContext) -> Iterator[Finding | None]:
    """W001: Implementation can be initialized directly by anyone."""
    if not ctx.is_concrete or not any(has_initializers(c) for c in ctx.contracts()):
        return
    for contract in ctx.contracts():
        constructor = contract.constructor
        if constructor is not None and constructor.calls_named(DISABLE_INITIALIZERS):
            return
    yield ctx.finding(
        "missing-disable-initializers",
        ctx.target,
        f"Implementation `{ctx.target.name}` does not call {DISABLE_INITIALIZERS}() in its constructor",
        line=ctx.target.line,
        suggestion="Add `constructor() { _disableInitializers(); }`",
    )


BUILT_IN_RULES: list[tuple[str, Rule]] = [
    ("check_constructor", _check_constructor),
    ("check_state_variable_assignment", _check_state_variable_assignment),
    ("check_state_variable_immutable", _check_state_variable_immutable),
    ("check_selfdestruct", _check_selfdestruct),
    ("check_delegatecall", _check_delegatecall),
    ("check_external_library_linking", _check_external_library_linking),
    ("check_internal_function_storage", _check_internal_function_storage),
    ("check_public_upgrade_function", _check_public_upgrade_function),
    ("check_duplicate_namespace", _check_duplicate_namespace),
    ("check_missing_disable_initializers", _check_missing_disable_initializers),
]
