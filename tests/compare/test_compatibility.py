"""Tests for storage type compatibility."""

import pytest

from slotguard.compare.compatibility import TypeChange, check_type_compatibility, normalize_label
from slotguard.layout.calculator import compute_layout


@pytest.fixture
def check(solidity):
    """Compare the type of variable ``v`` between two versions of contract ``A``."""

    def _check(before, after, prefix=""):
        original = compute_layout(solidity(prefix + before), "A")
        updated = compute_layout(solidity(prefix + after), "A")
        return check_type_compatibility(
            original.type_of(original.items[0]),
            updated.type_of(updated.items[0]),
            original,
            updated,
        )

    return _check


class TestNormalizeLabel:
    @pytest.mark.parametrize(
        "label, expected",
        [
            ("uint", "uint256"),
            ("int", "int256"),
            ("address payable", "address"),
            ("contract IERC20", "address"),
            ("mapping(address  => uint256)", "mapping(address => uint256)"),
        ],
    )
    def test_labels(self, label, expected):
        assert normalize_label(label) == expected


class TestValueTypes:
    def test_same_type(self, check):
        assert check("contract A { uint256 v; }", "contract A { uint v; }") is None

    def test_address_aliases(self, check):
        prefix = "interface IToken {}\n"
        assert check("contract A { address v; }", "contract A { IToken v; }", prefix) is None
        assert check("contract A { address v; }", "contract A { address payable v; }") is None

    def test_value_type_unwraps(self, check):
        prefix = "type Price is uint128;\n"
        assert check("contract A { uint128 v; }", "contract A { Price v; }", prefix) is None

    def test_widening_is_a_mismatch(self, check):
        change = check("contract A { uint128 v; }", "contract A { uint256 v; }")
        assert change == TypeChange("mismatch", "uint128", "uint256")

    def test_string_and_bytes(self, check):
        change = check("contract A { string v; }", "contract A { bytes v; }")
        assert change.kind == "mismatch"


class TestEnums:
    def test_appending_members(self, check):
        assert check(
            "contract A { enum E { One, Two } E v; }",
            "contract A { enum E { One, Two, Three } E v; }",
        ) is None

    def test_removing_members(self, check):
        change = check(
            "contract A { enum E { One, Two } E v; }",
            "contract A { enum E { One } E v; }",
        )
        assert change.kind == "enum members"
        assert change.detail == "removed Two"

    def test_reordering_members(self, check):
        change = check(
            "contract A { enum E { One, Two } E v; }",
            "contract A { enum E { Two, One } E v; }",
        )
        assert change.detail == "members reordered or renamed"


class TestStructs:
    def test_append_inline_is_rejected(self, check):
        change = check(
            "contract A { struct S { uint256 a; } S v; }",
            "contract A { struct S { uint256 a; uint256 b; } S v; }",
        )
        assert change.kind == "struct members"
        assert change.detail == "added b in place"

    def test_append_in_mapping_value(self, check):
        assert check(
            "contract A { struct S { uint256 a; } mapping(address => S) v; }",
            "contract A { struct S { uint256 a; uint256 b; } mapping(address => S) v; }",
        ) is None

    def test_append_in_dynamic_array(self, check):
        assert check(
            "contract A { struct S { uint256 a; } S[] v; }",
            "contract A { struct S { uint256 a; uint256 b; } S[] v; }",
        ) is None

    def test_renamed_member(self, check):
        change = check(
            "contract A { struct S { uint256 a; } mapping(address => S) v; }",
            "contract A { struct S { uint256 z; } mapping(address => S) v; }",
        )
        assert change.inner.detail == "'a' replaced by 'z'"

    def test_member_type_change_is_explained(self, check):
        change = check(
            "contract A { struct S { uint64 a; } S v; }",
            "contract A { struct S { int64 a; } S v; }",
        )
        assert change.detail == "type of 'a' changed"
        assert change.explain().splitlines() == [
            "Members of struct A.S changed: type of 'a' changed",
            "  - Bad upgrade from uint64 to int64",
        ]

    def test_self_referencing_struct(self, check):
        text = "contract A { struct N { uint256 v; mapping(uint256 => N) next; } N v; }"
        assert check(text, text) is None


class TestContainers:
    def test_static_array_length(self, check):
        change = check("contract A { uint256[3] v; }", "contract A { uint256[4] v; }")
        assert change.kind == "array length"
        assert change.explain() == "Length of uint256[3] changed to uint256[4]"

    def test_static_to_dynamic(self, check):
        change = check("contract A { uint256[3] v; }", "contract A { uint256[] v; }")
        assert change.kind == "array kind"

    def test_mapping_key(self, check):
        change = check(
            "contract A { mapping(address => bool) v; }",
            "contract A { mapping(uint256 => bool) v; }",
        )
        assert change.kind == "mapping key"
        assert change.inner.kind == "mismatch"

    def test_mapping_value(self, check):
        change = check(
            "contract A { mapping(address => uint8) v; }",
            "contract A { mapping(address => bool) v; }",
        )
        assert change.kind == "mismatch"
        assert change.inner == TypeChange("mismatch", "uint8", "bool")

    def test_mapping_to_value(self, check):
        change = check("contract A { mapping(address => bool) v; }", "contract A { uint256 v; }")
        assert change.kind == "mismatch"
