"""Tests for slotguard.layout.calculator and slot packing."""

import pytest

from slotguard.core.errors import ContractNotFoundError, UnsupportedTypeError
from slotguard.layout.calculator import LayoutCalculator, compute_layout
from slotguard.layout.namespace import erc7201_slot


def _positions(layout):
    return [(item.label, item.slot, item.offset) for item in layout.items]


class TestPacking:
    def test_small_values_share_a_slot(self, solidity):
        layout = compute_layout(solidity("contract A { uint128 a; uint128 b; bool c; }"), "A")
        assert _positions(layout) == [("a", 0, 0), ("b", 0, 16), ("c", 1, 0)]

    def test_fills_slot_exactly(self, solidity):
        layout = compute_layout(
            solidity("contract A { address owner; bool flag; uint88 x; uint8 y; }"), "A"
        )
        assert _positions(layout) == [("owner", 0, 0), ("flag", 0, 20), ("x", 0, 21), ("y", 1, 0)]
        assert layout.end_slot == 2

    def test_value_types(self, solidity):
        sources = solidity(
            """
            interface IToken {}
            type Price is uint64;
            contract A {
                enum Status { Open, Closed }
                Status status;
                IToken token;
                Price price;
                address payable wallet;
            }
            """
        )
        layout = compute_layout(sources, "A")
        assert [(i.type_id, i.slot, i.offset) for i in layout.items] == [
            ("t_enum(A.Status)", 0, 0),
            ("t_contract(IToken)", 0, 1),
            ("t_userDefinedValueType(Price)", 0, 21),
            ("t_address_payable", 1, 0),
        ]
        assert layout.types["t_enum(A.Status)"].enum_members == ("Open", "Closed")
        assert layout.types["t_userDefinedValueType(Price)"].underlying == "t_uint64"

    def test_non_storage_variables_are_skipped(self, solidity):
        sources = solidity(
            """
            contract A {
                uint256 constant MAX = 1;
                address immutable deployer = msg.sender;
                uint256 transient lock;
                uint256 value;
            }
            """
        )
        assert _positions(compute_layout(sources, "A")) == [("value", 0, 0)]


class TestCompositeTypes:
    def test_struct_occupies_whole_slots(self, solidity):
        sources = solidity(
            """
            contract A {
                struct Pair { uint8 x; uint256 y; }
                bool a;
                Pair pair;
                bool b;
            }
            """
        )
        layout = compute_layout(sources, "A")
        assert _positions(layout) == [("a", 0, 0), ("pair", 1, 0), ("b", 3, 0)]
        pair = layout.types["t_struct(A.Pair)_storage"]
        assert pair.number_of_bytes == 64
        assert [(m.label, m.slot, m.offset) for m in pair.members] == [("x", 0, 0), ("y", 1, 0)]

    def test_static_arrays(self, solidity):
        sources = solidity(
            """
            contract A {
                bool flag;
                uint8[40] small;
                uint128[3] mid;
                uint256[3] big;
                bool tail;
            }
            """
        )
        layout = compute_layout(sources, "A")
        assert _positions(layout) == [
            ("flag", 0, 0),
            ("small", 1, 0),
            ("mid", 3, 0),
            ("big", 5, 0),
            ("tail", 8, 0),
        ]
        small = layout.types["t_array(t_uint8)40_storage"]
        assert (small.number_of_bytes, small.length, small.base) == (64, 40, "t_uint8")
        assert layout.end_slot == 9

    def test_dynamic_types_take_one_slot(self, solidity):
        sources = solidity(
            """
            contract A {
                uint8 a;
                mapping(address => uint256) balances;
                uint8 b;
                address[] holders;
                string name;
                bytes data;
            }
            """
        )
        layout = compute_layout(sources, "A")
        assert _positions(layout) == [
            ("a", 0, 0),
            ("balances", 1, 0),
            ("b", 2, 0),
            ("holders", 3, 0),
            ("name", 4, 0),
            ("data", 5, 0),
        ]
        mapping = layout.types["t_mapping(t_address,t_uint256)"]
        assert (mapping.encoding, mapping.key, mapping.value) == ("mapping", "t_address", "t_uint256")
        assert layout.types["t_array(t_address)dyn_storage"].encoding == "dynamic_array"
        assert layout.types["t_string_storage"].encoding == "bytes"

    def test_string_mapping_key(self, solidity):
        layout = compute_layout(solidity("contract A { mapping(string => bool) seen; }"), "A")
        assert layout.items[0].type_id == "t_mapping(t_string_memory_ptr,t_bool)"

    def test_array_length_from_constants(self, solidity):
        sources = solidity(
            """
            uint256 constant WORDS = 3;
            contract A { uint256 constant EXTRA = 1; uint256[WORDS * 2 + EXTRA] data; bool after_; }
            """
        )
        layout = compute_layout(sources, "A")
        assert layout.items[0].type_id == "t_array(t_uint256)7_storage"
        assert layout.items[1].slot == 7

    def test_recursive_struct_through_mapping(self, solidity):
        sources = solidity(
            """
            contract A {
                struct Node { uint256 value; mapping(uint256 => Node) children; Node[] list; }
                Node root;
            }
            """
        )
        layout = compute_layout(sources, "A")
        node = layout.types["t_struct(A.Node)_storage"]
        assert node.number_of_bytes == 96
        assert "t_mapping(t_uint256,t_struct(A.Node)_storage)" in layout.types

    def test_recursive_struct_in_place(self, solidity):
        sources = solidity("contract A { struct Bad { uint256 v; Bad inner; } Bad bad; }")
        with pytest.raises(UnsupportedTypeError, match="Recursive"):
            compute_layout(sources, "A")

    def test_zero_length_array(self, solidity):
        with pytest.raises(UnsupportedTypeError, match="positive"):
            compute_layout(solidity("contract A { uint256[0] none; }"), "A")


class TestInheritedLayout:
    def test_vault_layout(self, load_fixture):
        layout = compute_layout(load_fixture("Vault.sol"), "Vault")
        assert [(i.label, i.slot, i.offset, i.contract) for i in layout.items] == [
            ("_owner", 0, 0, "OwnableUpgradeable"),
            ("__gap", 1, 0, "OwnableUpgradeable"),
            ("_paused", 50, 0, "PausableUpgradeable"),
            ("totalDeposits", 51, 0, "Vault"),
            ("balances", 52, 0, "Vault"),
            ("__gap", 53, 0, "Vault"),
        ]
        assert layout.end_slot == 101
        assert layout.source == "Vault.sol"
        assert layout.items[1].is_gap

    def test_namespaced_struct_from_base(self, load_fixture):
        layout = compute_layout(load_fixture("Vault.sol"), "Vault")
        namespace = layout.namespace("openzeppelin.storage.Initializable")
        assert namespace is not None
        assert namespace.contract == "Initializable"
        assert namespace.base_slot == 0xF0C57E16840DF040F15088DC2F81FE391C3923BEC73E23A9662EFC9C229C6A00
        assert [(i.label, i.slot, i.offset) for i in namespace.items] == [
            ("_initialized", 0, 0),
            ("_initializing", 0, 8),
        ]

    def test_namespaced_contract_has_no_plain_storage(self, load_fixture):
        layout = compute_layout(load_fixture("Namespaced.sol"), "Namespaced")
        assert layout.items == []
        (namespace,) = layout.namespaces
        assert namespace.base_slot == erc7201_slot("example.main")
        assert [i.label for i in namespace.items] == ["x", "y"]

    def test_struct_declared_in_base_keeps_base_qualifier(self, solidity):
        sources = solidity(
            """
            contract Base { struct Config { uint64 a; } }
            contract Child is Base { Config config; }
            """
        )
        layout = compute_layout(sources, "Child")
        assert layout.items[0].type_id == "t_struct(Base.Config)_storage"

    def test_annotations_are_copied(self, solidity):
        sources = solidity(
            """
            contract A {
                /// @custom:oz-renamed-from total
                uint256 supply;
                /// @custom:oz-retyped-from uint128
                uint256 cap;
            }
            """
        )
        supply, cap = compute_layout(sources, "A").items
        assert supply.renamed_from == "total"
        assert cap.retyped_from == "uint128"

    def test_unknown_type_reports_location(self, solidity):
        sources = solidity("contract A {\n    Missing value;\n}")
        with pytest.raises(ContractNotFoundError) as exc_info:
            compute_layout(sources, "A")
        assert exc_info.value.context.line == 2
        assert exc_info.value.context.source_path == "Main.sol"

    def test_calculator_reuses_linearization(self, vault_sources):
        calculator = LayoutCalculator(vault_sources)
        target = vault_sources.find_contract("VaultV2")
        assert calculator.linearize(target) is calculator.linearize(target)
