"""
slotguard - upgrade-safety checks for contract storage layouts.

Public entry points:
- slotguard.solidity: parse sources into contract definitions
- slotguard.layout: compute storage layouts (incl. ERC-7201 namespaces)
- slotguard.compare: compare layouts across versions
- slotguard.validation: upgrade-safety rules and initializer checks
- slotguard.snapshots: versioned layout store
"""

__version__ = "0.3.0"

from slotguard.compare import compare_layouts
from slotguard.layout import compute_layout, erc7201_slot
from slotguard.solidity import SourceSet, parse_source
from slotguard.validation import validate_contract, validate_upgrade

__all__ = [
    "__version__",
    "SourceSet",
    "parse_source",
    "compute_layout",
    "erc7201_slot",
    "compare_layouts",
    "validate_contract",
    "validate_upgrade",
]
