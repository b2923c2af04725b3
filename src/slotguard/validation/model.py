"""Findings and reports produced by upgrade-safety validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from slotguard.compare.comparator import LayoutReport
    from slotguard.layout.model import StorageLayout


class ProxyKind(str, Enum):
    """Proxy pattern the implementation is deployed behind."""

    TRANSPARENT = "transparent"
    UUPS = "uups"
    BEACON = "beacon"


class Severity(str, Enum):
    """Severity level for a finding."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# kind -> (code, severity)
FINDING_KINDS: dict[str, tuple[str, Severity]] = {
    "constructor": ("E001", Severity.ERROR),
    "state-variable-assignment": ("E002", Severity.ERROR),
    "state-variable-immutable": ("E003", Severity.ERROR),
    "selfdestruct": ("E004", Severity.ERROR),
    "delegatecall": ("E005", Severity.ERROR),
    "external-library-linking": ("E006", Severity.ERROR),
    "internal-function-storage": ("E007", Severity.ERROR),
    "missing-public-upgradeto": ("E008", Severity.ERROR),
    "duplicate-namespace": ("E009", Severity.ERROR),
    "missing-disable-initializers": ("W001", Severity.WARNING),
    "missing-initializer": ("E101", Severity.ERROR),
    "missing-initializer-call": ("E102", Severity.ERROR),
    "duplicate-initializer-call": ("E103", Severity.ERROR),
    "unprotected-initializer": ("E104", Severity.ERROR),
    "incorrect-initializer-order": ("W101", Severity.WARNING),
    "initializer-in-parent": ("W102", Severity.WARNING),
}

UNSAFE_ALLOW_KINDS = frozenset(FINDING_KINDS)

RULE_ERROR_CODE = "X001"


@dataclass(frozen=True)
class Finding:
    """A single upgrade-safety problem.

    Attributes:
        code: Short identifier (e.g. ``"E001"``).
        kind: Finding kind, as accepted by ``@custom:oz-upgrades-unsafe-allow``.
        severity: ``error``, ``warning`` or ``info``.
        message: Human-readable description.
        contract: Contract that declares the offending node.
        src: ``path:line`` of the offending node.
        suggestion: Recommended fix (optional).
    """

    code: str
    kind: str
    severity: Severity
    message: str
    contract: str | None = None
    src: str = ""
    suggestion: str | None = None

    @classmethod
    def of(cls, kind: str, message: str, **kwargs: Any) -> Finding:
        code, severity = FINDING_KINDS[kind]
        return cls(code=code, kind=kind, severity=severity, message=message, **kwargs)

    def __str__(self) -> str:
        prefix = f"[{self.code}] {self.severity.value.upper()}"
        location = f" {self.src}" if self.src else ""
        hint = f" ({self.suggestion})" if self.suggestion else ""
        return f"{prefix}{location}: {self.message}{hint}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "code": self.code,
            "kind": self.kind,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.contract:
            data["contract"] = self.contract
        if self.src:
            data["src"] = self.src
        if self.suggestion:
            data["suggestion"] = self.suggestion
        return data


@dataclass
class UpgradeSafetyReport:
    """Aggregated result of validating one implementation contract.

    Attributes:
        target: Name of the validated contract.
        findings: All findings from all rules.
        layout: Storage layout of the target, when computed.
        layout_report: Comparison against the previous version, for upgrades.
    """

    target: str
    findings: list[Finding] = field(default_factory=list)
    layout: StorageLayout | None = None
    layout_report: LayoutReport | None = None

    @property
    def passed(self) -> bool:
        """True if there are no error-level findings and the layout is compatible."""
        if self.layout_report is not None and not self.layout_report.passed:
            return False
        return not self.errors

    @property
    def errors(self) -> list[Finding]:
        return [f for f in self.findings if f.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Finding]:
        return [f for f in self.findings if f.severity == Severity.WARNING]

    @property
    def infos(self) -> list[Finding]:
        return [f for f in self.findings if f.severity == Severity.INFO]

    def summary(self) -> str:
        """One-line summary of the report."""
        status = "PASS" if self.passed else "FAIL"
        parts = [f"{status}: {self.target}"]
        for label, count in (
            ("errors", len(self.errors)),
            ("warnings", len(self.warnings)),
            ("infos", len(self.infos)),
        ):
            if count:
                parts.append(f"{count} {label}")
        if self.layout_report is not None and self.layout_report.errors:
            parts.append(f"{len(self.layout_report.errors)} storage layout errors")
        return " | ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "target": self.target,
            "passed": self.passed,
            "summary": self.summary(),
            "findings": [f.to_dict() for f in self.findings],
        }
        if self.layout_report is not None:
            data["layout"] = self.layout_report.to_dict()
        return data

    def __str__(self) -> str:
        lines = [self.summary()]
        for finding in self.findings:
            lines.append(f"  {finding}")
        if self.layout_report is not None and self.layout_report.errors:
            lines.extend(f"  {line}" for line in self.layout_report.explain().splitlines())
        return "\n".join(lines)
