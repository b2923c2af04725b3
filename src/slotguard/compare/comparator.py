"""
Storage layout comparator.

Manifesto:
    A proxy keeps its storage when its implementation changes. Every
    variable the old implementation wrote must be found by the new one at
    the same slot and offset, with a type that reads the old bytes the same
    way. The comparator aligns the two variable lists, explains each
    difference and decides whether it is safe.

Architecture:
    ::

        compare_layouts(original, updated)
              │
              ├─ edit_script(original.items, updated.items, match)
              │      equal │ insert │ delete │ replace
              │
              ├─ classify each operation
              │      insert   → append (after end) / insert (inside a gap)
              │      delete   → finishgap (gap consumed) / delete
              │      replace  → rename / typechange / replace / shrinkgap
              │      equal    → layoutchange when the position moved
              │
              ├─ same steps per ERC-7201 namespace (slots relative to the base)
              │
              └─► LayoutReport(operations)

Examples:
    >>> report = compare_layouts(v1, v2)
    >>> report.passed
    False
    >>> print(report.explain())
    contracts/VaultV2.sol:12: Inserted `fee`
      > New variables should be placed after all existing inherited variables

Guardrails:
    ❌ DON'T: Report an unsafe change as an exception
    ✅ DO: Return it as a StorageOperation with safe=False

Tags:
    compare, storage, upgrade-safety, levenshtein

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from slotguard.core.logging import get_logger
from slotguard.layout.model import SLOT_SIZE, StorageItem, StorageLayout

from .compatibility import TypeChange, check_type_compatibility, normalize_label
from .levenshtein import (
    DELETION_COST,
    INSERTION_COST,
    PARTIAL_SUBSTITUTION_COST,
    SUBSTITUTION_COST,
    EditOp,
    edit_script,
)

logger = get_logger(__name__)

OPERATION_KINDS = (
    "append",
    "insert",
    "delete",
    "typechange",
    "rename",
    "replace",
    "layoutchange",
    "shrinkgap",
    "finishgap",
    "namespace-delete",
)


@dataclass(frozen=True)
class StorageOperation:
    """One difference between two layouts."""

    kind: str
    safe: bool
    message: str
    original: StorageItem | None = None
    updated: StorageItem | None = None
    change: TypeChange | None = None
    namespace: str | None = None
    suggestion: str | None = None

    @property
    def src(self) -> str:
        item = self.updated or self.original
        return item.src if item is not None else ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind, "safe": self.safe, "message": self.message}
        if self.src:
            data["src"] = self.src
        if self.original is not None:
            data["original"] = self.original.to_dict()
        if self.updated is not None:
            data["updated"] = self.updated.to_dict()
        if self.change is not None:
            data["change"] = self.change.explain()
        if self.namespace is not None:
            data["namespace"] = self.namespace
        if self.suggestion:
            data["suggestion"] = self.suggestion
        return data


@dataclass
class LayoutReport:
    """Result of comparing an original layout with an updated one."""

    original: str
    updated: str
    operations: list[StorageOperation] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> list[StorageOperation]:
        return [op for op in self.operations if not op.safe]

    def explain(self) -> str:
        if not self.errors:
            return f"Storage layout of {self.updated} is compatible with {self.original}"
        lines = []
        for op in self.errors:
            where = f"{op.src}: " if op.src else ""
            scope = f"[{op.namespace}] " if op.namespace else ""
            lines.append(f"{where}{scope}{op.message}")
            if op.change is not None:
                lines.extend(f"  - {line.strip()}" for line in op.change.explain().splitlines())
            if op.suggestion:
                lines.append(f"  > {op.suggestion}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "original": self.original,
            "updated": self.updated,
            "passed": self.passed,
            "operations": [op.to_dict() for op in self.operations],
        }


@dataclass(frozen=True)
class _Match:
    """Why two aligned items differ."""

    renamed: bool
    type_change: TypeChange | None
    retyped_ok: bool
    gap_consumed: bool = False


class _ItemComparator:
    def __init__(
        self,
        original: StorageLayout,
        updated: StorageLayout,
        original_items: list[StorageItem],
        updated_items: list[StorageItem],
        allow_renames: bool,
        namespace: str | None = None,
    ):
        self.original = original
        self.updated = updated
        self.original_items = original_items
        self.updated_items = updated_items
        self.allow_renames = allow_renames
        self.namespace = namespace
        self.original_end = max((original.byte_range(i)[1] for i in original_items), default=0)
        self.gaps = [original.byte_range(i) for i in original_items if self._is_gap(original, i)]

    @staticmethod
    def _is_gap(layout: StorageLayout, item: StorageItem) -> bool:
        return item.is_gap and layout.type_of(item).is_static_array

    def match(self, original: StorageItem, updated: StorageItem) -> _Match | None:
        type_change = check_type_compatibility(
            self.original.type_of(original),
            self.updated.type_of(updated),
            self.original,
            self.updated,
        )
        renamed = updated.label != original.label
        if not renamed and type_change is None:
            return None
        return _Match(
            renamed=renamed,
            type_change=type_change,
            retyped_ok=self._retyped_ok(original, updated),
            gap_consumed=self._is_gap(self.original, original) and not self._is_gap(self.updated, updated),
        )

    def _retyped_ok(self, original: StorageItem, updated: StorageItem) -> bool:
        if updated.retyped_from is None:
            return False
        expected = normalize_label(self.original.type_of(original).label)
        declared = normalize_label(updated.retyped_from)
        return declared in (expected, expected.split(" ", 1)[-1])

    @staticmethod
    def cost(change: _Match) -> int:
        # A gap taken over by new variables aligns as delete + inserts
        if change.gap_consumed:
            return DELETION_COST + INSERTION_COST + 1
        if change.renamed and change.type_change is not None:
            return SUBSTITUTION_COST
        return PARTIAL_SUBSTITUTION_COST

    def run(self) -> list[StorageOperation]:
        operations: list[StorageOperation] = []
        script = edit_script(self.original_items, self.updated_items, self.match, self.cost)
        for op in script:
            result = self.classify(op, operations)
            if result is not None:
                operations.append(result)
        return operations

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def op(self, kind: str, safe: bool, message: str, **kwargs: Any) -> StorageOperation:
        return StorageOperation(kind=kind, safe=safe, message=message, namespace=self.namespace, **kwargs)

    def classify(self, edit: EditOp[StorageItem], done: list[StorageOperation]) -> StorageOperation | None:
        if edit.updated is None:
            return self.deleted(edit.original) if edit.original is not None else None
        if edit.original is None:
            return self.inserted(edit.updated)
        if edit.kind == "replace":
            return self.replaced(edit.original, edit.updated, edit.change)
        return self.kept(edit.original, edit.updated, done)

    def inserted(self, item: StorageItem) -> StorageOperation:
        start, end = self.updated.byte_range(item)
        if start >= self.original_end:
            return self.op("append", True, f"Appended `{item.label}`", updated=item)
        if any(gap_start <= start and end <= gap_end for gap_start, gap_end in self.gaps):
            return self.op("insert", True, f"Inserted `{item.label}` into a storage gap", updated=item)
        return self.op(
            "insert",
            False,
            f"Inserted `{item.label}`",
            updated=item,
            suggestion="New variables should be placed after all existing inherited variables",
        )

    def deleted(self, item: StorageItem) -> StorageOperation:
        if self._is_gap(self.original, item) and self._gap_finished(item):
            return self.op("finishgap", True, f"Storage gap `{item.label}` fully used", original=item)
        return self.op(
            "delete",
            False,
            f"Deleted `{item.label}`",
            original=item,
            suggestion="Keep the variable even if unused",
        )

    def _gap_finished(self, gap: StorageItem) -> bool:
        gap_start, gap_end = self.original.byte_range(gap)
        filled = [
            self.updated.byte_range(item)[1]
            for item in self.updated_items
            if gap_start <= self.updated.byte_range(item)[0] < gap_end
        ]
        if not filled:
            return False
        return -(-max(filled) // SLOT_SIZE) * SLOT_SIZE == gap_end

    def replaced(self, original: StorageItem, updated: StorageItem, change: _Match) -> StorageOperation:
        original_range = self.original.byte_range(original)
        updated_range = self.updated.byte_range(updated)

        if self._is_gap(self.original, original) and self._is_gap(self.updated, updated) and not change.renamed:
            return self._gap_resized(original, updated, change, original_range, updated_range)

        moved = (original.slot, original.offset) != (updated.slot, updated.offset)
        rename_ok = not change.renamed or self.allow_renames or updated.renamed_from == original.label
        type_ok = change.type_change is None or change.retyped_ok

        if change.renamed and change.type_change is not None:
            kind = "replace"
            message = f"Replaced `{original.label}` with `{updated.label}` of incompatible type"
            suggestion = "Do not change the type or name of existing variables"
        elif change.renamed:
            kind = "rename"
            message = f"Renamed `{original.label}` to `{updated.label}`"
            suggestion = f"Annotate the new variable with `@custom:oz-renamed-from {original.label}`"
        else:
            kind = "typechange"
            message = f"Upgraded `{updated.label}` to an incompatible type"
            suggestion = (
                f"Annotate the variable with `@custom:oz-retyped-from {self.original.type_of(original).label}`"
                " if the stored data remains valid"
            )

        if rename_ok and type_ok and moved:
            return self.op(
                "layoutchange",
                False,
                f"Layout of `{updated.label}` changed from slot {original.slot} offset {original.offset}"
                f" to slot {updated.slot} offset {updated.offset}",
                original=original,
                updated=updated,
            )
        safe = rename_ok and type_ok
        return self.op(
            kind,
            safe,
            message,
            original=original,
            updated=updated,
            change=None if type_ok else change.type_change,
            suggestion=None if safe else suggestion,
        )

    def _gap_resized(
        self,
        original: StorageItem,
        updated: StorageItem,
        change: _Match,
        original_range: tuple[int, int],
        updated_range: tuple[int, int],
    ) -> StorageOperation:
        same_end = original_range[1] == updated_range[1]
        shrank = updated_range[1] - updated_range[0] < original_range[1] - original_range[0]
        if change.type_change is not None and change.type_change.kind == "array length" and shrank and same_end:
            return self.op(
                "shrinkgap",
                True,
                f"Storage gap `{updated.label}` shrank",
                original=original,
                updated=updated,
            )
        return self.op(
            "layoutchange",
            False,
            f"Storage gap `{updated.label}` no longer ends at slot {-(-original_range[1] // SLOT_SIZE)}",
            original=original,
            updated=updated,
            change=change.type_change,
            suggestion="Reduce the gap by the number of slots used by new variables",
        )

    def kept(
        self,
        original: StorageItem,
        updated: StorageItem,
        done: list[StorageOperation],
    ) -> StorageOperation | None:
        if (original.slot, original.offset) == (updated.slot, updated.offset):
            return None
        if any(not op.safe for op in done):
            # Already explained by an earlier unsafe operation
            return None
        return self.op(
            "layoutchange",
            False,
            f"Layout of `{updated.label}` changed from slot {original.slot} offset {original.offset}"
            f" to slot {updated.slot} offset {updated.offset}",
            original=original,
            updated=updated,
            suggestion="Storage gaps must shrink by the space taken by new variables",
        )


def compare_layouts(
    original: StorageLayout,
    updated: StorageLayout,
    *,
    allow_renames: bool = False,
) -> LayoutReport:
    """Compare *updated* against *original* and classify every difference."""
    report = LayoutReport(original=original.contract, updated=updated.contract)
    report.operations.extend(
        _ItemComparator(original, updated, original.items, updated.items, allow_renames).run()
    )

    for namespace in original.namespaces:
        counterpart = updated.namespace(namespace.id)
        if counterpart is None:
            report.operations.append(StorageOperation(
                kind="namespace-delete",
                safe=False,
                message=f"Deleted namespace `{namespace.id}`",
                namespace=namespace.id,
                suggestion="Keep the namespaced struct even if unused",
            ))
            continue
        report.operations.extend(_ItemComparator(
            original,
            updated,
            list(namespace.items),
            list(counterpart.items),
            allow_renames,
            namespace=namespace.id,
        ).run())

    logger.debug(
        "layout.compared",
        original=original.contract,
        updated=updated.contract,
        operations=len(report.operations),
        errors=len(report.errors),
    )
    return report
