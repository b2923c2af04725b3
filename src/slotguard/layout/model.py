"""
Storage layout data model.

Manifesto:
    A storage layout is plain data: which label lives at which slot and
    offset, and what type it has. Comparing two versions, saving
    snapshots and exchanging layouts with the Solidity compiler all work
    on this one representation, so it serialises losslessly to a dict.

Type ids follow the compiler's ``storageLayout`` output, minus AST ids:

    ==============================  ===========================
    Declaration                     Type id
    ==============================  ===========================
    ``uint256``                     ``t_uint256``
    ``address payable``             ``t_address_payable``
    ``string``                      ``t_string_storage``
    ``mapping(address => uint)``    ``t_mapping(t_address,t_uint256)``
    ``uint256[50]``                 ``t_array(t_uint256)50_storage``
    ``address[]``                   ``t_array(t_address)dyn_storage``
    ``Vault.Config``                ``t_struct(Vault.Config)_storage``
    ``Vault.Status``                ``t_enum(Vault.Status)``
    ``IERC20``                      ``t_contract(IERC20)``
    ``Price``                       ``t_userDefinedValueType(Price)``
    ==============================  ===========================

Tags:
    layout, storage, slots, model, serialization

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from slotguard.core.errors import LayoutError

SLOT_SIZE = 32

GAP_PREFIX = "__gap"


@dataclass(frozen=True)
class StorageItem:
    """One variable (or struct member) placed in storage."""

    label: str
    contract: str
    type_id: str
    slot: int
    offset: int = 0
    src: str = ""
    renamed_from: str | None = None
    retyped_from: str | None = None

    @property
    def is_gap(self) -> bool:
        return self.label.startswith(GAP_PREFIX)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "label": self.label,
            "contract": self.contract,
            "type": self.type_id,
            "slot": str(self.slot),
            "offset": self.offset,
        }
        if self.src:
            data["src"] = self.src
        if self.renamed_from:
            data["renamedFrom"] = self.renamed_from
        if self.retyped_from:
            data["retypedFrom"] = self.retyped_from
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StorageItem:
        return cls(
            label=data["label"],
            contract=data.get("contract", ""),
            type_id=data["type"],
            slot=int(data["slot"]),
            offset=int(data.get("offset", 0)),
            src=data.get("src", ""),
            renamed_from=data.get("renamedFrom"),
            retyped_from=data.get("retypedFrom"),
        )


@dataclass(frozen=True)
class TypeInfo:
    """Size, encoding and structure of one storage type."""

    id: str
    label: str
    number_of_bytes: int
    encoding: str = "inplace"  # inplace | mapping | dynamic_array | bytes
    members: tuple[StorageItem, ...] | None = None  # structs
    enum_members: tuple[str, ...] | None = None
    key: str | None = None  # mappings
    value: str | None = None  # mappings
    base: str | None = None  # arrays
    length: int | None = None  # static arrays
    underlying: str | None = None  # user-defined value types

    @property
    def is_struct(self) -> bool:
        return self.members is not None

    @property
    def is_enum(self) -> bool:
        return self.enum_members is not None or self.id.startswith("t_enum(")

    @property
    def is_static_array(self) -> bool:
        return self.base is not None and self.encoding == "inplace"

    @property
    def is_mapping(self) -> bool:
        return self.encoding == "mapping"

    @property
    def starts_new_slot(self) -> bool:
        """Structs and static arrays occupy whole slots of their own."""
        return self.is_struct or self.is_static_array

    @property
    def slot_count(self) -> int:
        return max(1, -(-self.number_of_bytes // SLOT_SIZE))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "label": self.label,
            "numberOfBytes": str(self.number_of_bytes),
            "encoding": self.encoding,
        }
        if self.members is not None:
            data["members"] = [m.to_dict() for m in self.members]
        if self.enum_members is not None:
            data["enumMembers"] = list(self.enum_members)
        for key, value in (
            ("key", self.key),
            ("value", self.value),
            ("base", self.base),
            ("length", self.length),
            ("underlying", self.underlying),
        ):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, type_id: str, data: dict[str, Any]) -> TypeInfo:
        members = data.get("members")
        enum_members = data.get("enumMembers")
        return cls(
            id=type_id,
            label=data["label"],
            number_of_bytes=int(data["numberOfBytes"]),
            encoding=data.get("encoding", "inplace"),
            members=tuple(StorageItem.from_dict(m) for m in members) if members is not None else None,
            enum_members=tuple(enum_members) if enum_members is not None else None,
            key=data.get("key"),
            value=data.get("value"),
            base=data.get("base"),
            length=int(data["length"]) if data.get("length") is not None else None,
            underlying=data.get("underlying"),
        )


@dataclass(frozen=True)
class NamespaceLayout:
    """Members of an ERC-7201 namespaced storage struct."""

    id: str
    base_slot: int
    items: tuple[StorageItem, ...] = ()
    formula: str = "erc7201"
    struct: str = ""
    contract: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "formula": self.formula,
            "baseSlot": hex(self.base_slot),
            "struct": self.struct,
            "contract": self.contract,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NamespaceLayout:
        return cls(
            id=data["id"],
            formula=data.get("formula", "erc7201"),
            base_slot=int(data["baseSlot"], 0),
            struct=data.get("struct", ""),
            contract=data.get("contract", ""),
            items=tuple(StorageItem.from_dict(i) for i in data.get("items", [])),
        )


@dataclass
class StorageLayout:
    """Complete storage layout of one contract."""

    contract: str
    items: list[StorageItem] = field(default_factory=list)
    types: dict[str, TypeInfo] = field(default_factory=dict)
    namespaces: list[NamespaceLayout] = field(default_factory=list)
    source: str = ""

    def type_of(self, item: StorageItem | str) -> TypeInfo:
        type_id = item if isinstance(item, str) else item.type_id
        try:
            return self.types[type_id]
        except KeyError:
            raise LayoutError(f"Layout of {self.contract} has no type '{type_id}'").with_context(
                contract=self.contract
            ) from None

    def byte_range(self, item: StorageItem) -> tuple[int, int]:
        """Absolute ``[start, end)`` byte positions occupied by *item*."""
        start = item.slot * SLOT_SIZE + item.offset
        return start, start + self.type_of(item).number_of_bytes

    def item_end_slot(self, item: StorageItem) -> int:
        """First slot after *item* that it does not touch."""
        _, end = self.byte_range(item)
        return -(-end // SLOT_SIZE)

    @property
    def end_slot(self) -> int:
        """First slot not used by any top-level item."""
        return max((self.item_end_slot(item) for item in self.items), default=0)

    def namespace(self, namespace_id: str) -> NamespaceLayout | None:
        return next((ns for ns in self.namespaces if ns.id == namespace_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract": self.contract,
            "source": self.source,
            "storage": [item.to_dict() for item in self.items],
            "types": {type_id: info.to_dict() for type_id, info in sorted(self.types.items())},
            "namespaces": [ns.to_dict() for ns in self.namespaces],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StorageLayout:
        try:
            return cls(
                contract=data["contract"],
                source=data.get("source", ""),
                items=[StorageItem.from_dict(i) for i in data.get("storage", [])],
                types={k: TypeInfo.from_dict(k, v) for k, v in data.get("types", {}).items()},
                namespaces=[NamespaceLayout.from_dict(n) for n in data.get("namespaces", [])],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise LayoutError(f"Malformed layout document: {exc}", cause=exc) from exc
