"""
Structured error types for slotguard.

Every failure that stops an analysis (unreadable sources, unknown contracts,
impossible inheritance graphs, corrupt snapshots, bad configuration) is raised
as a SlotGuardError subclass. Unsafe upgrades are *not* errors: they are
reported as findings so that a single run can surface every problem at once.

Each SlotGuardError carries:
- **Category:** What kind of failure (parse, source, layout, config, ...)
- **Context:** Contract, source path, line and free-form metadata
- **Cause:** Chained underlying exception for root cause analysis

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different stages
    - **Rich Context:** Errors point at the contract and line involved
    - **Error Chaining:** Preserve original exceptions while adding context
    - **Findings are not exceptions:** Unsafe code is data, not a crash

Architecture:
    ::

        ┌────────────────────────────────────────────────────────────────┐
        │                        SlotGuardError                          │
        │              (category, context, cause)                        │
        ├────────────────────────────────────────────────────────────────┤
        │                                                                │
        │  SourceError            LayoutError          ConfigError       │
        │  (SOURCE)               (LAYOUT)             (CONFIG)          │
        │      │                      │                                  │
        │  SolidityParseError     LinearizationError                     │
        │  SourceLoadError        UnsupportedTypeError                   │
        │  ContractNotFoundError                                         │
        │  AmbiguousContractError                                        │
        │                                                                │
        │  UpgradeReferenceError (VALIDATION)                            │
        │                                                                │
        │  SnapshotError (STORAGE)                                       │
        │      │                                                         │
        │  SnapshotExistsError  SnapshotNotFoundError                    │
        │  SnapshotIntegrityError                                        │
        └────────────────────────────────────────────────────────────────┘

Examples:
    Adding context to an error:

    >>> error = LayoutError("Cannot size type")
    >>> error.with_context(contract="Vault", line=12)
    LayoutError('Cannot size type', category=LAYOUT)
    >>> error.context.contract
    'Vault'

    Chaining errors for root cause:

    >>> try:
    ...     open("missing.sol")
    ... except OSError as e:
    ...     raise SourceLoadError("Cannot read source", cause=e)
    Traceback (most recent call last):
    ...
    SourceLoadError: Cannot read source

Guardrails:
    ❌ DON'T: Raise for an unsafe storage change
    ✅ DO: Emit a Finding / StorageOperation and keep going

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, error-context, slotguard
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and reporting.

    Attributes:
        PARSE: Solidity syntax the parser cannot handle
        SOURCE: Missing files, unresolved imports, unknown contracts
        LAYOUT: Storage layout computation failures
        VALIDATION: Malformed validation input (not unsafe code)
        CONFIG: Missing or invalid settings
        STORAGE: Snapshot store failures
        INTERNAL: Bugs, unexpected state
    """

    PARSE = "PARSE"
    SOURCE = "SOURCE"
    LAYOUT = "LAYOUT"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    STORAGE = "STORAGE"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        contract: Contract being processed
        source_path: Source file involved
        line: 1-based line number, when known
        column: 1-based column number, when known
        namespace: ERC-7201 namespace id, when relevant
        metadata: Additional key-value pairs
    """

    contract: str | None = None
    source_path: str | None = None
    line: int | None = None
    column: int | None = None
    namespace: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["contract", "source_path", "line", "column", "namespace"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result

    def location(self) -> str | None:
        """Return ``path:line[:column]`` if a source path is known."""
        if not self.source_path:
            return None
        loc = self.source_path
        if self.line is not None:
            loc += f":{self.line}"
            if self.column is not None:
                loc += f":{self.column}"
        return loc


class SlotGuardError(Exception):
    """
    Base exception for all slotguard errors.

    Subclasses set ``default_category`` to classify themselves; callers can
    override it per instance.

    Examples:
        >>> error = SlotGuardError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["error_type"]
        'SlotGuardError'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SlotGuardError:
        """
        Add context to this error (fluent API).

        Usage:
            raise LayoutError("Unknown struct").with_context(
                contract="Vault",
                source_path="contracts/Vault.sol",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __str__(self) -> str:
        loc = self.context.location()
        return f"{loc}: {self.message}" if loc else self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# SOURCE ERRORS
# =============================================================================


class SourceError(SlotGuardError):
    """Error reading or resolving Solidity sources."""

    default_category = ErrorCategory.SOURCE


class SolidityParseError(SourceError):
    """Source text the parser cannot make sense of."""

    default_category = ErrorCategory.PARSE

    def __init__(
        self,
        message: str,
        *,
        source_path: str | None = None,
        line: int | None = None,
        column: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        if source_path is not None:
            self.context.source_path = source_path
        if line is not None:
            self.context.line = line
        if column is not None:
            self.context.column = column


class SourceLoadError(SourceError):
    """A file or import could not be read or resolved."""


class ContractNotFoundError(SourceError):
    """No contract with the requested name exists in the loaded sources."""

    def __init__(self, name: str, **kwargs: Any):
        super().__init__(f"Contract '{name}' not found", **kwargs)
        self.name = name
        self.context.contract = name


class AmbiguousContractError(SourceError):
    """A bare contract name matches contracts in several files."""

    def __init__(self, name: str, paths: list[str], **kwargs: Any):
        joined = ", ".join(sorted(paths))
        super().__init__(
            f"Contract name '{name}' is ambiguous (found in {joined}); use 'path:{name}'",
            **kwargs,
        )
        self.name = name
        self.paths = sorted(paths)
        self.context.contract = name


# =============================================================================
# LAYOUT ERRORS
# =============================================================================


class LayoutError(SlotGuardError):
    """Storage layout could not be computed."""

    default_category = ErrorCategory.LAYOUT


class LinearizationError(LayoutError):
    """Inheritance graph has no valid C3 linearization."""


class UnsupportedTypeError(LayoutError):
    """A type cannot be stored or resolved."""


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class UpgradeReferenceError(SlotGuardError):
    """No previous version to compare an upgrade against."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# CONFIG / STORAGE ERRORS
# =============================================================================


class ConfigError(SlotGuardError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


class SnapshotError(SlotGuardError):
    """Layout snapshot store failure."""

    default_category = ErrorCategory.STORAGE


class SnapshotExistsError(SnapshotError):
    """A snapshot for this contract and version already exists."""


class SnapshotNotFoundError(SnapshotError):
    """No snapshot matches the requested contract or version."""


class SnapshotIntegrityError(SnapshotError):
    """A snapshot file no longer matches the digest in the manifest."""


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SlotGuardError",
    "SourceError",
    "SolidityParseError",
    "SourceLoadError",
    "ContractNotFoundError",
    "AmbiguousContractError",
    "LayoutError",
    "LinearizationError",
    "UnsupportedTypeError",
    "UpgradeReferenceError",
    "ConfigError",
    "SnapshotError",
    "SnapshotExistsError",
    "SnapshotNotFoundError",
    "SnapshotIntegrityError",
]
