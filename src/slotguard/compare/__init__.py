"""Compare storage layouts across contract versions."""

from .comparator import OPERATION_KINDS, LayoutReport, StorageOperation, compare_layouts
from .compatibility import TypeChange, check_type_compatibility, normalize_label
from .levenshtein import EditOp, edit_script, levenshtein

__all__ = [
    "OPERATION_KINDS",
    "EditOp",
    "LayoutReport",
    "StorageOperation",
    "TypeChange",
    "check_type_compatibility",
    "compare_layouts",
    "edit_script",
    "levenshtein",
    "normalize_label",
]
