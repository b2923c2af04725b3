"""Rule registry for upgrade-safety validation.

Built-in rules cover unsafe code (``unsafe``) and initializer structure
(``initializers``). Teams can register extra rules; each rule receives a
:class:`RuleContext` and returns findings.

Architecture::

    run_rules(ctx)
    │
    ├── built-in rules (unsafe.BUILT_IN_RULES + initializers.BUILT_IN_RULES)
    └── (custom rules via register_rule)
    │
    ▼
    list[Finding]   (kinds silenced by unsafe-allow are dropped)

Example::

    from slotguard.validation.rules import register_rule

    def no_payable_fallback(ctx):
        return [
            ctx.finding("delegatecall", contract, "payable fallback", line=fn.line)
            for contract in ctx.chain
            for fn in contract.functions
            if fn.kind == "fallback" and fn.mutability == "payable"
        ]

    register_rule("no_payable_fallback", no_payable_fallback)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from slotguard.layout.model import StorageLayout
from slotguard.solidity.model import ContractDefinition, NatSpec
from slotguard.solidity.sources import SourceSet

from .model import RULE_ERROR_CODE, Finding, ProxyKind, Severity

logger = logging.getLogger(__name__)


@dataclass
class RuleContext:
    """Everything a rule may inspect about the validated contract.

    Attributes:
        target: The implementation contract being validated.
        chain: Its C3 linearization, most derived first.
        sources: All loaded sources, for resolving names.
        kind: Proxy pattern the implementation is used with.
        layout: Storage layout of the target.
        unsafe_allow: Kinds silenced for every contract.
    """

    target: ContractDefinition
    chain: list[ContractDefinition]
    sources: SourceSet
    kind: ProxyKind = ProxyKind.TRANSPARENT
    layout: StorageLayout | None = None
    unsafe_allow: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_concrete(self) -> bool:
        return self.target.kind == "contract" and not self.target.abstract

    def contracts(self) -> Iterable[ContractDefinition]:
        """Contracts of the chain that can hold code run by the proxy."""
        return (c for c in self.chain if c.kind == "contract")

    def allowed(self, kind: str, contract: ContractDefinition, natspec: NatSpec | None = None) -> bool:
        if kind in self.unsafe_allow or kind in contract.natspec.unsafe_allow:
            return True
        return natspec is not None and kind in natspec.unsafe_allow

    def finding(
        self,
        kind: str,
        contract: ContractDefinition,
        message: str,
        *,
        line: int | None = None,
        natspec: NatSpec | None = None,
        suggestion: str | None = None,
    ) -> Finding | None:
        """Build a finding, or ``None`` when the kind is allowed at this node."""
        if self.allowed(kind, contract, natspec):
            logger.debug("finding %s silenced in %s", kind, contract.name)
            return None
        return Finding.of(
            kind,
            message,
            contract=contract.name,
            src=contract.src(line),
            suggestion=suggestion,
        )


Rule = Callable[[RuleContext], Iterable[Finding | None]]

_RULES: list[tuple[str, Rule]] = []


def register_rule(name: str, rule: Rule) -> None:
    """Register a custom validation rule.

    Parameters
    ----------
    name
        Human-readable rule name (e.g. ``"check_payable_fallback"``).
    rule
        Callable that takes a ``RuleContext`` and returns findings.
    """
    _RULES.append((name, rule))
    logger.debug("registered validation rule: %s", name)


def _built_in_rules() -> list[tuple[str, Rule]]:
    from . import initializers, unsafe

    return list(unsafe.BUILT_IN_RULES) + list(initializers.BUILT_IN_RULES)


def list_rules() -> list[str]:
    """Return names of all registered rules (built-in + custom)."""
    return [name for name, _ in _built_in_rules()] + [name for name, _ in _RULES]


def clear_custom_rules() -> None:
    """Remove all custom rules (built-in rules are preserved)."""
    _RULES.clear()


def run_rules(ctx: RuleContext, extra_rules: list[Rule] | None = None) -> list[Finding]:
    """Run every rule against *ctx*; a failing rule becomes an X001 warning."""
    all_rules = _built_in_rules() + list(_RULES)
    if extra_rules:
        all_rules.extend((f"extra_rule_{i}", rule) for i, rule in enumerate(extra_rules))

    findings: list[Finding] = []
    for rule_name, rule in all_rules:
        try:
            findings.extend(f for f in rule(ctx) if f is not None)
        except Exception:
            logger.warning("validation rule %s raised an exception", rule_name, exc_info=True)
            findings.append(Finding(
                code=RULE_ERROR_CODE,
                kind="rule-error",
                severity=Severity.WARNING,
                message=f"Validation rule '{rule_name}' raised an exception.",
                contract=ctx.target.name,
            ))
    return findings
