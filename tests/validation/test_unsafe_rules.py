"""Tests for the built-in unsafe-code rules."""

import pytest

from slotguard.validation.model import ProxyKind
from slotguard.validation.validator import validate_contract


def _codes(report):
    return [f.code for f in report.findings]


class TestUnsafeFixture:
    def test_all_expected_findings(self, load_fixture):
        report = validate_contract(load_fixture("Unsafe.sol"), "Unsafe")
        assert _codes(report) == ["E001", "E002", "E003", "E004", "W001", "E104"]
        assert not report.passed

    def test_findings_point_at_source(self, load_fixture):
        report = validate_contract(load_fixture("Unsafe.sol"), "Unsafe")
        by_code = {f.code: f for f in report.findings}
        assert by_code["E002"].src == "Unsafe.sol:7"
        assert by_code["E002"].message == "Variable `limit` is assigned an initial value"
        assert by_code["E004"].contract == "Unsafe"


class TestConstructor:
    def test_disable_initializers_only(self, solidity):
        report = validate_contract(solidity("contract A { constructor() { _disableInitializers(); } }"), "A")
        assert report.findings == []

    def test_empty_constructor_calling_base_constructor(self, solidity):
        sources = solidity("contract B { constructor(uint256 x) {} } contract A is B { constructor() B(1) {} }")
        report = validate_contract(sources, "A")
        assert [(f.code, f.contract) for f in report.findings] == [("E001", "A")]

    def test_allowed_on_contract(self, solidity):
        sources = solidity(
            """
            /// @custom:oz-upgrades-unsafe-allow constructor
            contract A { uint256 x; constructor() { x = 1; } }
            """
        )
        assert validate_contract(sources, "A").findings == []

    def test_allowed_on_constructor(self, solidity):
        sources = solidity(
            """
            contract A {
                uint256 x;
                /// @custom:oz-upgrades-unsafe-allow constructor
                constructor() { x = 1; }
            }
            """
        )
        assert validate_contract(sources, "A").findings == []


class TestStateVariables:
    def test_constants_may_be_assigned(self, solidity):
        report = validate_contract(solidity("contract A { uint256 constant X = 1; }"), "A")
        assert report.findings == []

    def test_immutable_allowed_on_variable(self, solidity):
        sources = solidity(
            """
            contract A {
                /// @custom:oz-upgrades-unsafe-allow state-variable-immutable
                address immutable token;
                /// @custom:oz-upgrades-unsafe-allow constructor
                constructor(address t) { token = t; }
            }
            """
        )
        assert validate_contract(sources, "A").findings == []

    def test_internal_function_pointers(self, solidity):
        sources = solidity(
            """
            contract A {
                function (uint256) internal returns (uint256) hook;
                mapping(uint256 => function () internal) hooks;
                function (uint256) external callback;
            }
            """
        )
        report = validate_contract(sources, "A")
        assert _codes(report) == ["E007", "E007"]
        assert "`hook`" in report.findings[0].message
        assert "`hooks`" in report.findings[1].message


class TestCalls:
    def test_delegatecall(self, solidity):
        sources = solidity(
            "contract A { function run(address t, bytes memory d) external { t.delegatecall(d); } }"
        )
        report = validate_contract(sources, "A")
        assert _codes(report) == ["E005"]
        assert report.findings[0].message == "Use of delegatecall is not allowed in `A.run`"

    def test_selfdestruct_allowed_on_function(self, solidity):
        sources = solidity(
            """
            contract A {
                /// @custom:oz-upgrades-unsafe-allow selfdestruct
                function kill() external { selfdestruct(payable(msg.sender)); }
            }
            """
        )
        assert validate_contract(sources, "A").findings == []

    def test_globally_allowed_kind(self, solidity):
        sources = solidity("contract A { function run(address t) external { t.delegatecall(''); } }")
        report = validate_contract(sources, "A", unsafe_allow=["delegatecall"])
        assert report.findings == []

    def test_external_library(self, solidity):
        sources = solidity(
            """
            library Ext { function double(uint256 x) public pure returns (uint256) { return x * 2; } }
            library Inl { function triple(uint256 x) internal pure returns (uint256) { return x * 3; } }
            contract A {
                function run(uint256 x) external pure returns (uint256) { return Ext.double(Inl.triple(x)); }
            }
            """
        )
        report = validate_contract(sources, "A")
        assert _codes(report) == ["E006"]
        assert "`Ext`" in report.findings[0].message


class TestProxyKind:
    def test_uups_requires_upgrade_function(self, solidity):
        report = validate_contract(solidity("contract A {}"), "A", kind="uups")
        assert _codes(report) == ["E008"]

    def test_uups_with_upgrade_function(self, solidity):
        sources = solidity(
            """
            abstract contract UUPS {
                function upgradeToAndCall(address impl, bytes memory data) public payable virtual {}
            }
            contract A is UUPS {}
            """
        )
        assert validate_contract(sources, "A", kind=ProxyKind.UUPS).findings == []

    @pytest.mark.parametrize("kind", ["transparent", "beacon"])
    def test_other_kinds_do_not_need_it(self, solidity, kind):
        assert validate_contract(solidity("contract A {}"), "A", kind=kind).findings == []


class TestNamespaces:
    def test_duplicate_namespace(self, solidity):
        sources = solidity(
            """
            contract A {
                /// @custom:storage-location erc7201:app.main
                struct S1 { uint256 a; }
            }
            contract B is A {
                /// @custom:storage-location erc7201:app.main
                struct S2 { uint256 b; }
            }
            """
        )
        report = validate_contract(sources, "B")
        assert _codes(report) == ["E009"]
        assert report.findings[0].message == "Namespace `app.main` is defined more than once (in A, B)"


class TestDisableInitializers:
    def test_warning_is_not_fatal(self, upgradeable):
        sources = upgradeable(
            """
            contract C is Initializable {
                function initialize() public initializer {}
            }
            """
        )
        report = validate_contract(sources, "C")
        assert _codes(report) == ["W001"]
        assert report.passed
        assert report.warnings[0].suggestion == "Add `constructor() { _disableInitializers(); }`"
