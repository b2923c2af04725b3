"""Upgrade-safety validation: unsafe code rules and initializer checks."""

from .initializers import CallGraph, Initialization, has_initializers, is_initializer, is_public_initializer
from .model import (
    FINDING_KINDS,
    RULE_ERROR_CODE,
    UNSAFE_ALLOW_KINDS,
    Finding,
    ProxyKind,
    Severity,
    UpgradeSafetyReport,
)
from .rules import Rule, RuleContext, clear_custom_rules, list_rules, register_rule, run_rules
from .validator import upgrades_from, validate_contract, validate_upgrade

__all__ = [
    "FINDING_KINDS",
    "RULE_ERROR_CODE",
    "UNSAFE_ALLOW_KINDS",
    "CallGraph",
    "Finding",
    "Initialization",
    "ProxyKind",
    "Rule",
    "RuleContext",
    "Severity",
    "UpgradeSafetyReport",
    "clear_custom_rules",
    "has_initializers",
    "is_initializer",
    "is_public_initializer",
    "list_rules",
    "register_rule",
    "run_rules",
    "upgrades_from",
    "validate_contract",
    "validate_upgrade",
]
