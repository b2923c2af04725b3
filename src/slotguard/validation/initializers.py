"""
Initializer call-graph validation.

Manifesto:
    A proxied contract has no constructor run on its behalf. The public
    initializer must stand in for the whole constructor chain: call the
    initializer of every parent that has one, exactly once, most base
    first, and be protected so that it only ever runs once.

Architecture:
    ::

        entry points: public/external initializers of the target
              │
              ▼
        CallGraph.walk(entry)            depth first, call order
              │  plain call  f()        → most derived f in the linearization
              │  super.f()              → next f after the caller's contract
              │  Base.f()               → f at or after Base
              ▼
        parent initializations, in order
              │
              ├─ missing-initializer-call      parent never initialized
              ├─ duplicate-initializer-call    parent initialized twice
              ├─ incorrect-initializer-order   not most base first
              └─ initializer-in-parent         parent init uses `initializer`

Tags:
    validation, initializers, call-graph, linearization

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

from slotguard.solidity.model import ContractDefinition, FunctionCall, FunctionDefinition

from .model import Finding
from .rules import Rule, RuleContext

INITIALIZER_MODIFIERS = frozenset({"initializer", "reinitializer"})
ONLY_INITIALIZING = "onlyInitializing"

_INTERNAL_INIT = re.compile(r"^__\w+_init(_unchained)?$")
_PUBLIC_INIT = re.compile(r"^initialize(?![a-z])\w*$")


def _named_initializer(function: FunctionDefinition) -> bool:
    """Public, state-changing function named like ``initialize`` or ``initializeV2``."""
    return (
        function.is_public
        and function.mutability not in {"view", "pure"}
        and bool(_PUBLIC_INIT.match(function.name))
    )


def is_initializer(function: FunctionDefinition) -> bool:
    """Whether *function* takes part in initialization."""
    if function.kind != "function":
        return False
    if function.modifier_names & (INITIALIZER_MODIFIERS | {ONLY_INITIALIZING}):
        return True
    if _named_initializer(function):
        return True
    return bool(_INTERNAL_INIT.match(function.name))


def is_public_initializer(function: FunctionDefinition) -> bool:
    """Whether *function* is an externally callable entry point for initialization."""
    if function.kind != "function" or not function.is_public or not function.has_body:
        return False
    return bool(function.modifier_names & INITIALIZER_MODIFIERS) or _named_initializer(function)


def has_initializers(contract: ContractDefinition) -> bool:
    return any(is_initializer(fn) and fn.has_body for fn in contract.functions)


@dataclass(frozen=True)
class Initialization:
    """A call from one contract into another contract's initializer."""

    contract: ContractDefinition  # contract being initialized
    function: FunctionDefinition
    caller: ContractDefinition
    call: FunctionCall


class CallGraph:
    """Internal call resolution within one linearization."""

    def __init__(self, chain: list[ContractDefinition]):
        self.chain = chain
        self._position = {id(c): i for i, c in enumerate(chain)}
        self._names = {c.name: i for i, c in enumerate(chain)}

    def first_defining(self, name: str, start: int) -> tuple[ContractDefinition, list[FunctionDefinition]] | None:
        for contract in self.chain[start:]:
            functions = [f for f in contract.functions_named(name) if f.has_body]
            if functions:
                return contract, functions
        return None

    def resolve(
        self,
        caller: ContractDefinition,
        call: FunctionCall,
    ) -> tuple[ContractDefinition, list[FunctionDefinition]] | None:
        if len(call.path) == 1:
            return self.first_defining(call.name, 0)
        if len(call.path) != 2:
            return None
        qualifier = call.qualifier or ""
        if qualifier == "super":
            return self.first_defining(call.name, self._position[id(caller)] + 1)
        if qualifier in self._names:
            return self.first_defining(call.name, self._names[qualifier])
        return None

    def walk(
        self,
        contract: ContractDefinition,
        function: FunctionDefinition,
    ) -> list[Initialization]:
        """Initializations reached from *function*, in call order."""
        found: list[Initialization] = []
        visited: set[tuple[int, int]] = set()

        def visit(owner: ContractDefinition, fn: FunctionDefinition) -> None:
            key = (id(owner), id(fn))
            if key in visited:
                return
            visited.add(key)
            for call in fn.calls:
                resolved = self.resolve(owner, call)
                if resolved is None:
                    continue
                target, functions = resolved
                for callee in functions:
                    if target is not owner and is_initializer(callee):
                        found.append(Initialization(target, callee, owner, call))
                    visit(target, callee)

        visit(contract, function)
        return found


def _parents_needing_init(ctx: RuleContext) -> list[ContractDefinition]:
    return [c for c in ctx.chain[1:] if c.kind == "contract" and has_initializers(c)]


def _entry_points(ctx: RuleContext) -> list[tuple[ContractDefinition, FunctionDefinition]]:
    own = [(ctx.target, fn) for fn in ctx.target.functions if is_public_initializer(fn)]
    if own:
        return own
    graph = CallGraph(ctx.chain)
    seen: set[str] = set()
    inherited = []
    for contract in ctx.chain[1:]:
        for fn in contract.functions:
            if is_public_initializer(fn) and fn.name not in seen:
                seen.add(fn.name)
                resolved = graph.first_defining(fn.name, 0)
                if resolved is not None and resolved[0] is contract:
                    inherited.append((contract, fn))
    return inherited


def _check_missing_initializer(ctx: RuleContext) -> Iterator[Finding | None]:
    """E101: Parents must be initialized but the contract has no initializer."""
    if not ctx.is_concrete or not _parents_needing_init(ctx) or _entry_points(ctx):
        return
    yield ctx.finding(
        "missing-initializer",
        ctx.target,
        f"Contract `{ctx.target.name}` has parents with initializers but no initializer of its own",
        line=ctx.target.line,
        suggestion="Add a public initializer that calls the parent initializers",
    )


def _check_initializer_calls(ctx: RuleContext) -> Iterator[Finding | None]:
    """E102, E103, W101, W102: Parent initializers called once each, most base first."""
    if not ctx.is_concrete:
        return
    graph = CallGraph(ctx.chain)
    parents = _parents_needing_init(ctx)
    base_first = list(reversed(ctx.chain))

    for owner, entry in _entry_points(ctx):
        calls = graph.walk(owner, entry)
        initialized = [init.contract for init in calls]
        owner_index = ctx.chain.index(owner)
        # a reinitializer only sets up what the new version adds
        reinitializing = "reinitializer" in entry.modifier_names and "initializer" not in entry.modifier_names
        expected = [] if reinitializing else [p for p in parents if ctx.chain.index(p) > owner_index]

        for parent in expected:
            if not any(c is parent for c in initialized):
                yield ctx.finding(
                    "missing-initializer-call",
                    owner,
                    f"Missing initializer call for parent `{parent.name}` in `{owner.name}.{entry.name}`",
                    line=entry.line,
                    natspec=entry.natspec,
                    suggestion=f"Call __{parent.name}_init() from the initializer",
                )

        reported: set[int] = set()
        for parent in initialized:
            if id(parent) in reported or sum(1 for c in initialized if c is parent) < 2:
                continue
            reported.add(id(parent))
            yield ctx.finding(
                "duplicate-initializer-call",
                owner,
                f"Parent `{parent.name}` is initialized more than once from `{owner.name}.{entry.name}`",
                line=entry.line,
                natspec=entry.natspec,
                suggestion=f"Call __{parent.name}_init_unchained() where the parent is already initialized",
            )

        first_seen: list[ContractDefinition] = []
        for parent in initialized:
            if not any(c is parent for c in first_seen):
                first_seen.append(parent)
        in_order = sorted(first_seen, key=lambda c: base_first.index(c))
        if not reinitializing and [c.name for c in first_seen] != [c.name for c in in_order]:
            yield ctx.finding(
                "incorrect-initializer-order",
                owner,
                f"Parent initializers in `{owner.name}.{entry.name}` are not called in linearization order",
                line=entry.line,
                natspec=entry.natspec,
                suggestion="Expected order: " + ", ".join(c.name for c in in_order),
            )

        for init in calls:
            if "initializer" in init.function.modifier_names:
                yield ctx.finding(
                    "initializer-in-parent",
                    init.contract,
                    f"`{init.contract.name}.{init.function.name}` uses the `initializer` modifier"
                    f" but is called from `{init.caller.name}`",
                    line=init.function.line,
                    natspec=init.function.natspec,
                    suggestion="Use `onlyInitializing` for initializers meant to be called by children",
                )


def _check_unprotected_initializer(ctx: RuleContext) -> Iterator[Finding | None]:
    """E104: A public initializer without the initializer modifier can be called again."""
    for contract in ctx.contracts():
        for function in contract.functions:
            if function.kind != "function" or not function.is_public or not function.has_body:
                continue
            if not _named_initializer(function):
                continue
            if function.modifier_names & (INITIALIZER_MODIFIERS | {ONLY_INITIALIZING}):
                continue
            yield ctx.finding(
                "unprotected-initializer",
                contract,
                f"Initializer `{contract.name}.{function.name}` is not protected by the `initializer` modifier",
                line=function.line,
                natspec=function.natspec,
                suggestion="Add the `initializer` or `reinitializer(n)` modifier",
            )


BUILT_IN_RULES: list[tuple[str, Rule]] = [
    ("check_missing_initializer", _check_missing_initializer),
    ("check_initializer_calls", _check_initializer_calls),
    ("check_unprotected_initializer", _check_unprotected_initializer),
]
