"""Tests for C3 linearization."""

import pytest

from slotguard.core.errors import LinearizationError
from slotguard.layout.inheritance import Linearizer, linearize


def _names(sources, name):
    return [c.name for c in linearize(sources.find_contract(name), sources)]


class TestLinearize:
    def test_single_contract(self, solidity):
        assert _names(solidity("contract A {}"), "A") == ["A"]

    def test_rightmost_base_is_most_derived(self, solidity):
        sources = solidity("contract A {} contract B {} contract C is A, B {}")
        assert _names(sources, "C") == ["C", "B", "A"]

    def test_diamond(self, solidity):
        sources = solidity(
            """
            contract A {}
            contract B is A {}
            contract C is A {}
            contract D is B, C {}
            """
        )
        assert _names(sources, "D") == ["D", "C", "B", "A"]

    def test_vault_fixture(self, load_fixture):
        sources = load_fixture("Vault.sol")
        assert _names(sources, "Vault") == [
            "Vault",
            "PausableUpgradeable",
            "OwnableUpgradeable",
            "Initializable",
        ]

    def test_impossible_order(self, solidity):
        sources = solidity("contract A {} contract B is A {} contract C is B, A {}")
        with pytest.raises(LinearizationError, match="impossible"):
            linearize(sources.find_contract("C"), sources)

    def test_cycle(self, solidity):
        sources = solidity("contract A is B {} contract B is A {}")
        with pytest.raises(LinearizationError, match="inherits from itself") as exc_info:
            linearize(sources.find_contract("A"), sources)
        assert exc_info.value.context.source_path == "Main.sol"

    def test_results_are_memoised(self, solidity):
        sources = solidity("contract A {} contract B is A {}")
        linearizer = Linearizer(sources)
        b = sources.find_contract("B")
        assert linearizer.linearize(b) is linearizer.linearize(b)
