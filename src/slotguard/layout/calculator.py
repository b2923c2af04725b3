"""
Storage layout extractor.

Manifesto:
    The compiler decides where every state variable lives; an upgrade is
    only safe if the new version agrees with the old one about those
    places. This module reproduces the compiler's placement from source so
    that layouts can be checked without running the compiler.

Architecture:
    ::

        compute_layout(sources, "Vault.sol:VaultV2")
              │
              ├─ Linearizer.linearize()      C3, most derived first
              │
              ├─ for contract in reversed(linearization):      most base first
              │     for variable in contract.state_variables:
              │         skip constant / immutable / transient
              │         TypeRegistry.resolve() ─► TypeInfo
              │         SlotAllocator.place()  ─► (slot, offset)
              │     for struct with @custom:storage-location erc7201:<id>:
              │         NamespaceLayout(id, erc7201_slot(id), members)
              │
              └─► StorageLayout(items, types, namespaces)

Examples:
    >>> sources = SourceSet.from_sources({"A.sol": "contract A { uint128 a; uint128 b; bool c; }"})
    >>> [(i.label, i.slot, i.offset) for i in compute_layout(sources, "A").items]
    [('a', 0, 0), ('b', 0, 16), ('c', 1, 0)]

Tags:
    layout, storage, slots, packing, erc7201, linearization

Doc-Types:
    api-reference
"""

from __future__ import annotations

from slotguard.core.errors import SlotGuardError
from slotguard.core.logging import get_logger
from slotguard.solidity.model import ContractDefinition, StateVariable
from slotguard.solidity.sources import SourceSet

from .inheritance import Linearizer
from .model import NamespaceLayout, StorageItem, StorageLayout
from .namespace import erc7201_slot, parse_storage_location
from .types import SlotAllocator, TypeRegistry

logger = get_logger(__name__)


def _with_location(exc: SlotGuardError, contract: ContractDefinition, line: int) -> SlotGuardError:
    if exc.context.line is None:
        exc.with_context(source_path=contract.source_path, line=line)
    if exc.context.contract is None:
        exc.with_context(contract=contract.name)
    return exc


class LayoutCalculator:
    """Computes layouts for contracts of one :class:`SourceSet`."""

    def __init__(self, sources: SourceSet):
        self.sources = sources
        self.linearizer = Linearizer(sources)

    def linearize(self, contract: ContractDefinition) -> list[ContractDefinition]:
        return self.linearizer.linearize(contract)

    def compute(self, target: ContractDefinition) -> StorageLayout:
        registry = TypeRegistry(self.sources, self.linearizer)
        allocator = SlotAllocator()
        items: list[StorageItem] = []
        namespaces: list[NamespaceLayout] = []

        for contract in reversed(self.linearize(target)):
            scope = self.linearize(contract)
            for variable in contract.state_variables:
                if not variable.takes_storage:
                    continue
                items.append(self._place(registry, allocator, contract, scope, variable))
            namespaces.extend(self._namespaces(registry, contract, scope))

        layout = StorageLayout(
            contract=target.name,
            items=items,
            types=dict(registry.types),
            namespaces=namespaces,
            source=target.source_path,
        )
        logger.debug(
            "layout.computed",
            contract=target.name,
            items=len(items),
            end_slot=layout.end_slot,
            namespaces=len(namespaces),
        )
        return layout

    def _place(
        self,
        registry: TypeRegistry,
        allocator: SlotAllocator,
        contract: ContractDefinition,
        scope: list[ContractDefinition],
        variable: StateVariable,
    ) -> StorageItem:
        try:
            info = registry.resolve(variable.type_name, scope)
        except SlotGuardError as exc:
            raise _with_location(exc, contract, variable.line)
        slot, offset = allocator.place(info)
        return StorageItem(
            label=variable.name,
            contract=contract.name,
            type_id=info.id,
            slot=slot,
            offset=offset,
            src=contract.src(variable.line),
            renamed_from=variable.natspec.renamed_from,
            retyped_from=variable.natspec.retyped_from,
        )

    def _namespaces(
        self,
        registry: TypeRegistry,
        contract: ContractDefinition,
        scope: list[ContractDefinition],
    ) -> list[NamespaceLayout]:
        found: list[NamespaceLayout] = []
        for struct in contract.structs:
            location = struct.natspec.storage_location
            if location is None:
                continue
            try:
                formula, namespace_id = parse_storage_location(location)
                info = registry.struct(struct, contract.name, scope)
            except SlotGuardError as exc:
                raise _with_location(exc, contract, struct.line)
            found.append(NamespaceLayout(
                id=namespace_id,
                formula=formula,
                base_slot=erc7201_slot(namespace_id),
                items=info.members or (),
                struct=info.label,
                contract=contract.name,
            ))
        return found


def compute_layout(sources: SourceSet, contract: str | ContractDefinition) -> StorageLayout:
    """Compute the storage layout of *contract* (a reference or a definition)."""
    target = sources.find_contract(contract) if isinstance(contract, str) else contract
    return LayoutCalculator(sources).compute(target)
