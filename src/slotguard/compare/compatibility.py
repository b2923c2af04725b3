"""Storage compatibility of a variable's type across two layouts.

Two types are compatible when existing data keeps its meaning under the
new type. Compatibility is structural: a struct keeps its type id across
versions even when members are added, so definitions are compared member
by member rather than by id.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from slotguard.layout.model import StorageLayout, TypeInfo


@dataclass(frozen=True)
class TypeChange:
    """Why an updated type cannot hold the original type's data."""

    kind: str
    original: str
    updated: str
    detail: str = ""
    inner: TypeChange | None = None

    def explain(self) -> str:
        message = {
            "mismatch": f"Bad upgrade from {self.original} to {self.updated}",
            "resize": f"Size of {self.original} changed in {self.updated}",
            "enum members": f"Members of {self.original} changed",
            "enum resize": f"{self.updated} no longer fits in {self.original}'s size",
            "struct members": f"Members of {self.original} changed",
            "array length": f"Length of {self.original} changed to {self.updated}",
            "array kind": f"Array {self.original} changed between fixed and dynamic length",
            "mapping key": f"Key of {self.original} changed",
        }.get(self.kind, f"{self.original} changed to {self.updated}")
        if self.detail:
            message += f": {self.detail}"
        if self.inner is not None:
            message += f"\n  - {self.inner.explain()}"
        return message


_CONTRACT = re.compile(r"^contract \S+$")


def normalize_label(label: str) -> str:
    """Canonical label used to compare value types."""
    label = " ".join(label.split())
    if label == "address payable" or _CONTRACT.match(label):
        return "address"
    if label == "uint":
        return "uint256"
    if label == "int":
        return "int256"
    return label


def _kind(info: TypeInfo) -> str:
    if info.is_struct:
        return "struct"
    if info.is_enum:
        return "enum"
    if info.is_mapping:
        return "mapping"
    if info.encoding == "dynamic_array":
        return "dynamic_array"
    if info.is_static_array:
        return "static_array"
    if info.encoding == "bytes":
        return "bytes"
    return "value"


def _unwrap(info: TypeInfo, layout: StorageLayout) -> TypeInfo:
    while info.underlying is not None and info.underlying in layout.types:
        info = layout.type_of(info.underlying)
    return info


def check_type_compatibility(
    original: TypeInfo,
    updated: TypeInfo,
    original_layout: StorageLayout,
    updated_layout: StorageLayout,
    allow_append: bool = False,
    _visiting: frozenset[tuple[str, str]] = frozenset(),
) -> TypeChange | None:
    """Return ``None`` when *updated* can hold data stored as *original*.

    *allow_append* permits growth that does not move other data: extra
    struct members where the struct is not laid out inline (mapping values,
    dynamic array elements).
    """
    orig = _unwrap(original, original_layout)
    upd = _unwrap(updated, updated_layout)
    pair = (orig.id, upd.id)
    if pair in _visiting:
        return None
    visiting = _visiting | {pair}
    orig_kind, upd_kind = _kind(orig), _kind(upd)

    if orig_kind != upd_kind:
        if {orig_kind, upd_kind} == {"static_array", "dynamic_array"}:
            return TypeChange("array kind", original.label, updated.label)
        return TypeChange("mismatch", original.label, updated.label)

    if orig_kind == "value":
        if normalize_label(orig.label) != normalize_label(upd.label):
            return TypeChange("mismatch", original.label, updated.label)
        if orig.number_of_bytes != upd.number_of_bytes:
            return TypeChange("resize", original.label, updated.label)
        return None

    if orig_kind == "bytes":
        if orig.label != upd.label:
            return TypeChange("mismatch", original.label, updated.label)
        return None

    if orig_kind == "enum":
        return _enum_change(original, updated, orig, upd)

    if orig_kind == "struct":
        return _struct_change(
            original, updated, orig, upd, original_layout, updated_layout, allow_append, visiting
        )

    if orig_kind == "mapping":
        key_change = check_type_compatibility(
            original_layout.type_of(orig.key or ""),
            updated_layout.type_of(upd.key or ""),
            original_layout,
            updated_layout,
            _visiting=visiting,
        )
        if key_change is not None:
            return TypeChange("mapping key", original.label, updated.label, inner=key_change)
        value_change = check_type_compatibility(
            original_layout.type_of(orig.value or ""),
            updated_layout.type_of(upd.value or ""),
            original_layout,
            updated_layout,
            allow_append=True,
            _visiting=visiting,
        )
        if value_change is not None:
            return TypeChange("mismatch", original.label, updated.label, inner=value_change)
        return None

    base_change = check_type_compatibility(
        original_layout.type_of(orig.base or ""),
        updated_layout.type_of(upd.base or ""),
        original_layout,
        updated_layout,
        allow_append=orig_kind == "dynamic_array",
        _visiting=visiting,
    )
    if orig_kind == "static_array" and orig.length != upd.length:
        return TypeChange("array length", original.label, updated.label, inner=base_change)
    if base_change is not None:
        return TypeChange("mismatch", original.label, updated.label, inner=base_change)
    return None


def _enum_change(original: TypeInfo, updated: TypeInfo, orig: TypeInfo, upd: TypeInfo) -> TypeChange | None:
    if orig.enum_members is None or upd.enum_members is None:
        if orig.number_of_bytes != upd.number_of_bytes:
            return TypeChange("enum resize", original.label, updated.label)
        return None
    kept = upd.enum_members[:len(orig.enum_members)]
    if kept != orig.enum_members:
        removed = [m for m in orig.enum_members if m not in upd.enum_members]
        detail = f"removed {', '.join(removed)}" if removed else "members reordered or renamed"
        return TypeChange("enum members", original.label, updated.label, detail=detail)
    if upd.number_of_bytes != orig.number_of_bytes:
        return TypeChange("enum resize", original.label, updated.label)
    return None


def _struct_change(
    original: TypeInfo,
    updated: TypeInfo,
    orig: TypeInfo,
    upd: TypeInfo,
    original_layout: StorageLayout,
    updated_layout: StorageLayout,
    allow_append: bool,
    visiting: frozenset[tuple[str, str]],
) -> TypeChange | None:
    orig_members = orig.members or ()
    upd_members = upd.members or ()

    for index, member in enumerate(orig_members):
        if index >= len(upd_members):
            return TypeChange("struct members", original.label, updated.label, detail=f"deleted '{member.label}'")
        new = upd_members[index]
        if new.label != member.label:
            return TypeChange(
                "struct members",
                original.label,
                updated.label,
                detail=f"'{member.label}' replaced by '{new.label}'",
            )
        inner = check_type_compatibility(
            original_layout.type_of(member),
            updated_layout.type_of(new),
            original_layout,
            updated_layout,
            _visiting=visiting,
        )
        if inner is not None:
            return TypeChange(
                "struct members",
                original.label,
                updated.label,
                detail=f"type of '{member.label}' changed",
                inner=inner,
            )
        if (new.slot, new.offset) != (member.slot, member.offset):
            return TypeChange(
                "struct members",
                original.label,
                updated.label,
                detail=f"'{member.label}' moved",
            )

    if len(upd_members) > len(orig_members) and not allow_append:
        added = ", ".join(m.label for m in upd_members[len(orig_members):])
        return TypeChange("struct members", original.label, updated.label, detail=f"added {added} in place")
    return None
