"""C3 linearization of contract inheritance graphs.

Solidity lists bases from "most base-like" to "most derived", the reverse of
Python's MRO convention, so base lists are reversed before merging. The
result is ordered most derived first, like ``type.__mro__``.
"""

from __future__ import annotations

from slotguard.core.errors import LinearizationError
from slotguard.solidity.model import ContractDefinition
from slotguard.solidity.sources import SourceSet

_Key = tuple[str, str]


def _key(contract: ContractDefinition) -> _Key:
    return (contract.source_path, contract.name)


class Linearizer:
    """Memoising linearizer bound to one :class:`SourceSet`."""

    def __init__(self, sources: SourceSet):
        self.sources = sources
        self._cache: dict[_Key, list[ContractDefinition]] = {}

    def bases_of(self, contract: ContractDefinition) -> list[ContractDefinition]:
        return [self.sources.contract_named(b.name, near=contract.source_path) for b in contract.bases]

    def linearize(
        self,
        contract: ContractDefinition,
        _visiting: tuple[_Key, ...] = (),
    ) -> list[ContractDefinition]:
        key = _key(contract)
        if key in self._cache:
            return self._cache[key]
        if key in _visiting:
            raise LinearizationError(f"Contract '{contract.name}' inherits from itself").with_context(
                contract=contract.name, source_path=contract.source_path
            )

        bases = list(reversed(self.bases_of(contract)))
        sequences = [list(self.linearize(base, _visiting + (key,))) for base in bases]
        sequences.append(bases)

        result = [contract]
        while True:
            sequences = [seq for seq in sequences if seq]
            if not sequences:
                break
            for seq in sequences:
                head = seq[0]
                if not any(_key(head) in {_key(c) for c in other[1:]} for other in sequences):
                    break
            else:
                raise LinearizationError(
                    f"Linearization of inheritance graph impossible for '{contract.name}'"
                ).with_context(contract=contract.name, source_path=contract.source_path)
            result.append(head)
            for other in sequences:
                if _key(other[0]) == _key(head):
                    del other[0]

        self._cache[key] = result
        return result


def linearize(contract: ContractDefinition, sources: SourceSet) -> list[ContractDefinition]:
    """Return the C3 linearization of *contract*, most derived first."""
    return Linearizer(sources).linearize(contract)
