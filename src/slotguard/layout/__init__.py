"""Storage layout extraction: linearization, slot packing and ERC-7201 namespaces."""

from .calculator import LayoutCalculator, compute_layout
from .inheritance import Linearizer, linearize
from .model import GAP_PREFIX, SLOT_SIZE, NamespaceLayout, StorageItem, StorageLayout, TypeInfo
from .namespace import erc7201_slot, keccak256, parse_storage_location
from .solc import layout_to_solc, load_solc_layout

__all__ = [
    "GAP_PREFIX",
    "SLOT_SIZE",
    "LayoutCalculator",
    "Linearizer",
    "NamespaceLayout",
    "StorageItem",
    "StorageLayout",
    "TypeInfo",
    "compute_layout",
    "erc7201_slot",
    "keccak256",
    "layout_to_solc",
    "linearize",
    "load_solc_layout",
    "parse_storage_location",
]
