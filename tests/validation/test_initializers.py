"""Tests for initializer call-graph validation."""

from slotguard.layout.inheritance import linearize
from slotguard.validation.initializers import CallGraph, is_initializer, is_public_initializer
from slotguard.validation.validator import validate_contract

PARENTS = """
abstract contract P1 is Initializable {
    uint256 private a;
    function __P1_init() internal onlyInitializing { a = 1; }
}
abstract contract P2 is Initializable {
    uint256 private b;
    function __P2_init() internal onlyInitializing { b = 2; }
}
"""


def _kinds(report):
    return [f.kind for f in report.findings]


class TestClassification:
    def test_initializer_detection(self, upgradeable):
        sources = upgradeable(
            """
            contract C is Initializable {
                function initialize() public initializer {}
                function initializeV2() external reinitializer(2) {}
                function __C_init_unchained() internal {}
                function setUp() public onlyInitializing {}
                function run() public {}
            }
            """
        )
        functions = {f.name: f for f in sources.find_contract("C").functions}
        assert is_public_initializer(functions["initialize"])
        assert is_public_initializer(functions["initializeV2"])
        assert is_initializer(functions["__C_init_unchained"])
        assert not is_public_initializer(functions["__C_init_unchained"])
        assert is_initializer(functions["setUp"])
        assert not is_initializer(functions["run"])

    def test_call_graph_resolves_super_and_qualified_calls(self, upgradeable):
        sources = upgradeable(
            PARENTS
            + """
            contract C is Initializable, P1, P2 {
                function initialize() public initializer { P1.__P1_init(); helper(); }
                function helper() internal { __P2_init(); }
            }
            """
        )
        c = sources.find_contract("C")
        graph = CallGraph(linearize(c, sources))
        inits = graph.walk(c, c.functions_named("initialize")[0])
        assert [(i.contract.name, i.function.name, i.caller.name) for i in inits] == [
            ("P1", "__P1_init", "C"),
            ("P2", "__P2_init", "C"),
        ]


class TestInitializerRules:
    def test_vault_is_clean(self, load_fixture):
        assert validate_contract(load_fixture("Vault.sol"), "Vault").findings == []

    def test_missing_initializer(self, upgradeable):
        sources = upgradeable(
            PARENTS
            + """
            contract C is Initializable, P1 {
                constructor() { _disableInitializers(); }
            }
            """
        )
        report = validate_contract(sources, "C")
        assert _kinds(report) == ["missing-initializer"]
        assert report.findings[0].code == "E101"

    def test_missing_parent_call(self, upgradeable):
        sources = upgradeable(
            PARENTS
            + """
            contract C is Initializable, P1, P2 {
                constructor() { _disableInitializers(); }
                function initialize() public initializer { __P1_init(); }
            }
            """
        )
        report = validate_contract(sources, "C")
        assert _kinds(report) == ["missing-initializer-call"]
        assert report.findings[0].message == "Missing initializer call for parent `P2` in `C.initialize`"

    def test_duplicate_parent_call(self, upgradeable):
        sources = upgradeable(
            """
            abstract contract P1 is Initializable {
                function __P1_init() internal onlyInitializing {}
            }
            abstract contract P2 is Initializable, P1 {
                function __P2_init() internal onlyInitializing { __P1_init(); }
            }
            contract C is Initializable, P1, P2 {
                constructor() { _disableInitializers(); }
                function initialize() public initializer { __P1_init(); __P2_init(); }
            }
            """
        )
        report = validate_contract(sources, "C")
        assert _kinds(report) == ["duplicate-initializer-call"]
        assert "`P1` is initialized more than once" in report.findings[0].message

    def test_wrong_order(self, upgradeable):
        sources = upgradeable(
            PARENTS
            + """
            contract C is Initializable, P1, P2 {
                constructor() { _disableInitializers(); }
                function initialize() public initializer { __P2_init(); __P1_init(); }
            }
            """
        )
        report = validate_contract(sources, "C")
        assert _kinds(report) == ["incorrect-initializer-order"]
        assert report.findings[0].suggestion == "Expected order: P1, P2"
        assert report.passed

    def test_parent_uses_initializer_modifier(self, upgradeable):
        sources = upgradeable(
            """
            abstract contract P1 is Initializable {
                function __P1_init() internal initializer {}
            }
            contract C is Initializable, P1 {
                constructor() { _disableInitializers(); }
                function initialize() public initializer { __P1_init(); }
            }
            """
        )
        report = validate_contract(sources, "C")
        assert _kinds(report) == ["initializer-in-parent"]
        assert report.findings[0].contract == "P1"

    def test_unprotected_initializer(self, upgradeable):
        sources = upgradeable(
            """
            contract C is Initializable {
                constructor() { _disableInitializers(); }
                function initialize() external {}
            }
            """
        )
        report = validate_contract(sources, "C")
        assert _kinds(report) == ["unprotected-initializer"]

    def test_inherited_public_initializer(self, upgradeable):
        sources = upgradeable(
            PARENTS
            + """
            contract Base is Initializable, P1 {
                function initialize() public initializer { __P1_init(); }
            }
            contract C is Base {
                constructor() { _disableInitializers(); }
            }
            """
        )
        assert validate_contract(sources, "C").findings == []

    def test_abstract_targets_skip_structure_checks(self, upgradeable):
        sources = upgradeable(PARENTS + "abstract contract C is Initializable, P1 {}")
        assert validate_contract(sources, "C").findings == []


class TestNamedInitializers:
    def test_getters_are_not_initializers(self, upgradeable):
        sources = upgradeable(
            """
            contract G is Initializable {
                bool private ready;
                constructor() { _disableInitializers(); }
                function initialize() public initializer { ready = true; }
                function initialized() public view returns (bool) { return ready; }
                function initializeFee() public pure returns (uint256) { return 1; }
            }
            """
        )
        functions = {f.name: f for f in sources.find_contract("G").functions}
        assert not is_initializer(functions["initialized"])
        assert not is_public_initializer(functions["initialized"])
        assert not is_initializer(functions["initializeFee"])
        assert validate_contract(sources, "G").findings == []

    def test_lowercase_suffix_is_not_an_initializer(self, upgradeable):
        sources = upgradeable("contract G { function initialized() public returns (bool) { return true; } }")
        (function,) = sources.find_contract("G").functions
        assert not is_initializer(function)
        assert validate_contract(sources, "G").findings == []

    def test_unguarded_versioned_initializer_still_reported(self, upgradeable):
        sources = upgradeable(
            """
            contract G is Initializable {
                constructor() { _disableInitializers(); }
                function initialize() public initializer {}
                function initializeV2() public {}
            }
            """
        )
        report = validate_contract(sources, "G")
        assert _kinds(report) == ["unprotected-initializer"]


class TestReinitializers:
    def test_reinitializer_sets_up_only_new_parents(self, upgradeable):
        sources = upgradeable(
            PARENTS
            + """
            contract V2 is Initializable, P1, P2 {
                constructor() { _disableInitializers(); }
                function initialize() public initializer { __P1_init(); __P2_init(); }
                function initializeV2() public reinitializer(2) { __P2_init(); }
            }
            """
        )
        assert validate_contract(sources, "V2").findings == []

    def test_reinitializer_duplicate_call(self, upgradeable):
        sources = upgradeable(
            PARENTS
            + """
            contract V2 is Initializable, P1, P2 {
                constructor() { _disableInitializers(); }
                function initialize() public initializer { __P1_init(); __P2_init(); }
                function initializeV2() public reinitializer(2) { __P2_init(); __P2_init(); }
            }
            """
        )
        report = validate_contract(sources, "V2")
        assert _kinds(report) == ["duplicate-initializer-call"]
        assert "`V2.initializeV2`" in report.findings[0].message
