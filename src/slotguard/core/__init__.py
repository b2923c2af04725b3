"""
Core primitives shared by every slotguard module: errors and logging.
"""

from slotguard.core.errors import (
    AmbiguousContractError,
    ConfigError,
    ContractNotFoundError,
    ErrorCategory,
    ErrorContext,
    LayoutError,
    LinearizationError,
    SlotGuardError,
    SnapshotError,
    SnapshotExistsError,
    SnapshotIntegrityError,
    SnapshotNotFoundError,
    SolidityParseError,
    SourceError,
    SourceLoadError,
    UnsupportedTypeError,
    UpgradeReferenceError,
)
from slotguard.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "AmbiguousContractError",
    "ConfigError",
    "ContractNotFoundError",
    "ErrorCategory",
    "ErrorContext",
    "LayoutError",
    "LinearizationError",
    "SlotGuardError",
    "SnapshotError",
    "SnapshotExistsError",
    "SnapshotIntegrityError",
    "SnapshotNotFoundError",
    "SolidityParseError",
    "SourceError",
    "SourceLoadError",
    "UnsupportedTypeError",
    "UpgradeReferenceError",
    "LogContext",
    "configure_logging",
    "get_logger",
]
