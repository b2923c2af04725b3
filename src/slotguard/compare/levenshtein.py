"""Minimal edit scripts between two sequences.

``match(a, b)`` returns ``None`` when two elements are the same and a
change description otherwise. Changes cost less than a deletion plus an
insertion, so a changed element is reported as one ``replace`` instead of
being split into two operations. Tracing back prefers the diagonal on
ties, so trailing elements are paired first and edits land early.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")

INSERTION_COST = 2
DELETION_COST = 2
SUBSTITUTION_COST = 3
PARTIAL_SUBSTITUTION_COST = 1


@dataclass(frozen=True)
class EditOp(Generic[T]):
    kind: str  # equal | insert | delete | replace
    original: T | None = None
    updated: T | None = None
    original_index: int | None = None
    updated_index: int | None = None
    change: Any = None


Matcher = Callable[[T, T], Any]
Coster = Callable[[Any], int]


def _default_cost(change: Any) -> int:
    return SUBSTITUTION_COST


def edit_script(
    a: Sequence[T],
    b: Sequence[T],
    match: Matcher,
    cost: Coster = _default_cost,
) -> list[EditOp[T]]:
    """Full alignment of *a* and *b*, including ``equal`` pairs."""
    rows, cols = len(a), len(b)
    changes: dict[tuple[int, int], Any] = {}

    def change_at(i: int, j: int) -> Any:
        key = (i, j)
        if key not in changes:
            changes[key] = match(a[i], b[j])
        return changes[key]

    table = [[0] * (cols + 1) for _ in range(rows + 1)]
    for i in range(1, rows + 1):
        table[i][0] = i * DELETION_COST
    for j in range(1, cols + 1):
        table[0][j] = j * INSERTION_COST

    for i in range(1, rows + 1):
        for j in range(1, cols + 1):
            change = change_at(i - 1, j - 1)
            substitution = table[i - 1][j - 1] + (0 if change is None else cost(change))
            table[i][j] = min(
                substitution,
                table[i - 1][j] + DELETION_COST,
                table[i][j - 1] + INSERTION_COST,
            )

    ops: list[EditOp[T]] = []
    i, j = rows, cols
    while i > 0 or j > 0:
        if i > 0 and j > 0:
            change = change_at(i - 1, j - 1)
            substitution = table[i - 1][j - 1] + (0 if change is None else cost(change))
            if table[i][j] == substitution:
                ops.append(EditOp(
                    kind="equal" if change is None else "replace",
                    original=a[i - 1],
                    updated=b[j - 1],
                    original_index=i - 1,
                    updated_index=j - 1,
                    change=change,
                ))
                i -= 1
                j -= 1
                continue
        if i > 0 and table[i][j] == table[i - 1][j] + DELETION_COST:
            ops.append(EditOp(kind="delete", original=a[i - 1], original_index=i - 1))
            i -= 1
        else:
            ops.append(EditOp(kind="insert", updated=b[j - 1], updated_index=j - 1))
            j -= 1

    ops.reverse()
    return ops


def levenshtein(
    a: Sequence[T],
    b: Sequence[T],
    match: Matcher,
    cost: Coster = _default_cost,
) -> list[EditOp[T]]:
    """Edit operations turning *a* into *b*; equal elements yield no op."""
    return [op for op in edit_script(a, b, match, cost) if op.kind != "equal"]
