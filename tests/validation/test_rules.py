"""Tests for the validation rule registry."""

from slotguard.validation.model import RULE_ERROR_CODE, Severity
from slotguard.validation.rules import clear_custom_rules, list_rules, register_rule
from slotguard.validation.validator import validate_contract


def _no_fallback(ctx):
    for contract in ctx.contracts():
        for function in contract.functions:
            if function.kind == "fallback":
                yield ctx.finding(
                    "delegatecall",
                    contract,
                    "Fallback forwards calls",
                    line=function.line,
                    natspec=function.natspec,
                )


class TestRegistry:
    def test_builtins_listed(self):
        names = list_rules()
        assert names[0] == "check_constructor"
        assert "check_initializer_calls" in names
        assert len(names) == 13

    def test_register_and_clear(self):
        register_rule("check_no_fallback", _no_fallback)
        assert list_rules()[-1] == "check_no_fallback"
        clear_custom_rules()
        assert "check_no_fallback" not in list_rules()

    def test_custom_rule_runs(self, solidity):
        register_rule("check_no_fallback", _no_fallback)
        sources = solidity("contract A {\n    fallback() external {}\n}")
        report = validate_contract(sources, "A")
        assert [(f.message, f.src) for f in report.findings] == [("Fallback forwards calls", "Main.sol:2")]

    def test_custom_rule_respects_unsafe_allow(self, solidity):
        register_rule("check_no_fallback", _no_fallback)
        sources = solidity(
            "contract A {\n    /// @custom:oz-upgrades-unsafe-allow delegatecall\n    fallback() external {}\n}"
        )
        assert validate_contract(sources, "A").findings == []


class TestFailingRules:
    def test_exception_becomes_warning(self, solidity):
        def broken(ctx):
            raise RuntimeError("boom")

        register_rule("check_broken", broken)
        report = validate_contract(solidity("contract A {}"), "A")
        (finding,) = report.findings
        assert finding.code == RULE_ERROR_CODE
        assert finding.severity == Severity.WARNING
        assert finding.message == "Validation rule 'check_broken' raised an exception."
        assert report.passed
