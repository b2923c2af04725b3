"""
Upgrade-safety validation entry points.

Manifesto:
    A storage layout diff says nothing about a constructor that never runs
    or an initializer that can be called twice; a rule pass says nothing
    about a slot that moved. An upgrade is only safe when both agree, so
    ``validate_upgrade`` runs the rules on the new implementation and then
    compares its layout with the previous version.

Architecture:
    ::

        validate_upgrade(original, sources, "VaultV2.sol:VaultV2")
              │
              ├─ validate_contract(...)            rules over the linearization
              │     ├─ LayoutCalculator.compute()
              │     └─ run_rules(RuleContext)
              │
              ├─ original layout:
              │     StorageLayout  → as given
              │     "File.sol:V1"  → computed from the same sources
              │     None           → @custom:oz-upgrades-from on the target
              │
              └─ compare_layouts(original, updated) ─► report.layout_report

Examples:
    >>> report = validate_upgrade("VaultV1", sources, "VaultV2")
    >>> report.passed
    True

Tags:
    validation, upgrades, proxies, initializers, storage-layout

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Iterable

from slotguard.compare.comparator import compare_layouts
from slotguard.core.errors import UpgradeReferenceError
from slotguard.core.logging import LogContext, get_logger
from slotguard.layout.calculator import LayoutCalculator
from slotguard.layout.model import StorageLayout
from slotguard.solidity.model import ContractDefinition
from slotguard.solidity.sources import SourceSet

from .model import ProxyKind, UpgradeSafetyReport
from .rules import Rule, RuleContext, run_rules

logger = get_logger(__name__)


def _target(sources: SourceSet, ref: str | ContractDefinition) -> ContractDefinition:
    return sources.find_contract(ref) if isinstance(ref, str) else ref


def validate_contract(
    sources: SourceSet,
    ref: str | ContractDefinition,
    *,
    kind: ProxyKind | str = ProxyKind.TRANSPARENT,
    unsafe_allow: Iterable[str] = (),
    extra_rules: list[Rule] | None = None,
) -> UpgradeSafetyReport:
    """Run every upgrade-safety rule against one implementation contract.

    Args:
        sources: Loaded sources containing the contract and its bases.
        ref: ``Name`` or ``path/to/File.sol:Name``, or a parsed definition.
        kind: Proxy pattern the implementation is deployed behind.
        unsafe_allow: Finding kinds silenced for every contract.
        extra_rules: Additional rules for this run only.

    Raises:
        SourceError: The contract cannot be found.
        LayoutError: Its storage layout cannot be computed.
    """
    target = _target(sources, ref)
    calculator = LayoutCalculator(sources)

    with LogContext(contract=target.name):
        chain = calculator.linearize(target)
        layout = calculator.compute(target)
        ctx = RuleContext(
            target=target,
            chain=chain,
            sources=sources,
            kind=ProxyKind(kind),
            layout=layout,
            unsafe_allow=frozenset(unsafe_allow),
        )
        findings = run_rules(ctx, extra_rules)
        report = UpgradeSafetyReport(target=target.name, findings=findings, layout=layout)
        logger.info(
            "upgrade.validated",
            kind=ctx.kind.value,
            passed=report.passed,
            errors=len(report.errors),
            warnings=len(report.warnings),
        )
    return report


def upgrades_from(sources: SourceSet, target: ContractDefinition) -> ContractDefinition:
    """The previous version named by *target*'s ``@custom:oz-upgrades-from`` tag.

    Raises:
        UpgradeReferenceError: The contract carries no such annotation.
    """
    reference = target.natspec.upgrades_from
    if reference is None:
        raise UpgradeReferenceError(
            f"No previous version given for '{target.name}' and no @custom:oz-upgrades-from annotation"
        ).with_context(contract=target.name, source_path=target.source_path, line=target.line)
    if ":" in reference:
        return sources.find_contract(reference)
    return sources.contract_named(reference, near=target.source_path)


def _original_layout(
    original: StorageLayout | str | ContractDefinition | None,
    sources: SourceSet,
    target: ContractDefinition,
) -> StorageLayout:
    if isinstance(original, StorageLayout):
        return original
    if original is None:
        previous = upgrades_from(sources, target)
    else:
        previous = _target(sources, original)
    return LayoutCalculator(sources).compute(previous)


def validate_upgrade(
    original: StorageLayout | str | ContractDefinition | None,
    sources: SourceSet,
    ref: str | ContractDefinition,
    *,
    kind: ProxyKind | str = ProxyKind.TRANSPARENT,
    unsafe_allow: Iterable[str] = (),
    allow_renames: bool = False,
    skip_storage_check: bool = False,
    extra_rules: list[Rule] | None = None,
) -> UpgradeSafetyReport:
    """Validate *ref* as an upgrade of *original*.

    *original* is a layout (from a snapshot or solc output), a contract
    reference resolved in *sources*, or ``None`` to use the target's
    ``@custom:oz-upgrades-from`` annotation.

    Raises:
        UpgradeReferenceError: No previous version can be determined.
    """
    target = _target(sources, ref)
    report = validate_contract(
        sources,
        target,
        kind=kind,
        unsafe_allow=unsafe_allow,
        extra_rules=extra_rules,
    )
    if skip_storage_check:
        logger.warning("upgrade.storage_check_skipped", contract=target.name)
        return report

    previous = _original_layout(original, sources, target)
    updated = report.layout if report.layout is not None else LayoutCalculator(sources).compute(target)
    report.layout_report = compare_layouts(previous, updated, allow_renames=allow_renames)
    logger.info(
        "upgrade.compared",
        contract=target.name,
        original=previous.contract,
        passed=report.passed,
    )
    return report
