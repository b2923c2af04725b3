"""Resolve Solidity type names into sized storage types.

``TypeRegistry.resolve`` turns a parsed ``TypeName`` into a ``TypeInfo``
registered under its type id, recursively registering mapping keys and
values, array bases, struct members and value type underlyings so that a
finished layout carries every type it references.
"""

from __future__ import annotations

from slotguard.core.errors import SolidityParseError, UnsupportedTypeError
from slotguard.solidity.constexpr import evaluate_int
from slotguard.solidity.model import (
    ArrayTypeName,
    ContractDefinition,
    ElementaryTypeName,
    EnumDefinition,
    FunctionTypeName,
    MappingTypeName,
    StructDefinition,
    TypeName,
    UserDefinedTypeName,
    UserValueType,
)
from slotguard.solidity.sources import SourceSet

from .inheritance import Linearizer
from .model import SLOT_SIZE, StorageItem, TypeInfo


def elementary_size(name: str) -> int:
    """Byte size of an elementary value type stored in place."""
    if name == "bool":
        return 1
    if name == "address":
        return 20
    if name.startswith("uint"):
        return int(name[4:]) // 8
    if name.startswith("int"):
        return int(name[3:]) // 8
    if name.startswith("bytes") and name != "bytes":
        return int(name[5:])
    if name.startswith("fixed") or name.startswith("ufixed"):
        bits = name.lstrip("u")[5:].split("x")[0]
        return int(bits) // 8
    raise UnsupportedTypeError(f"Unknown elementary type '{name}'")


class SlotAllocator:
    """Places items one after another following the compiler's packing rules."""

    def __init__(self) -> None:
        self.slot = 0
        self.offset = 0

    def place(self, info: TypeInfo) -> tuple[int, int]:
        if info.starts_new_slot or info.encoding != "inplace":
            if self.offset:
                self.slot += 1
                self.offset = 0
            position = (self.slot, 0)
            self.slot += info.slot_count
            return position

        size = info.number_of_bytes
        if self.offset + size > SLOT_SIZE:
            self.slot += 1
            self.offset = 0
        position = (self.slot, self.offset)
        self.offset += size
        return position

    @property
    def used_slots(self) -> int:
        return self.slot + (1 if self.offset else 0)


class TypeRegistry:
    """Collects the ``TypeInfo`` of every type reachable from a layout."""

    def __init__(self, sources: SourceSet, linearizer: Linearizer | None = None):
        self.sources = sources
        self.linearizer = linearizer or Linearizer(sources)
        self.types: dict[str, TypeInfo] = {}
        self._pending: set[str] = set()

    def scope_for(self, contract: ContractDefinition) -> list[ContractDefinition]:
        return self.linearizer.linearize(contract)

    def register(self, info: TypeInfo) -> TypeInfo:
        self.types.setdefault(info.id, info)
        return self.types[info.id]

    def resolve(self, type_name: TypeName, scope: list[ContractDefinition]) -> TypeInfo:
        if isinstance(type_name, ElementaryTypeName):
            return self.register(self._elementary(type_name))
        if isinstance(type_name, FunctionTypeName):
            size = 24 if type_name.visibility == "external" else 8
            return self.register(TypeInfo(
                id=f"t_function_{type_name.visibility}",
                label=f"function {type_name.visibility}",
                number_of_bytes=size,
            ))
        if isinstance(type_name, MappingTypeName):
            return self._mapping(type_name, scope)
        if isinstance(type_name, ArrayTypeName):
            return self._array(type_name, scope)
        if isinstance(type_name, UserDefinedTypeName):
            return self._user_defined(type_name, scope)
        raise UnsupportedTypeError(f"Cannot store type '{type_name}'")

    def _elementary(self, type_name: ElementaryTypeName) -> TypeInfo:
        name = type_name.name
        if name == "string":
            return TypeInfo(id="t_string_storage", label="string", number_of_bytes=32, encoding="bytes")
        if name == "bytes":
            return TypeInfo(id="t_bytes_storage", label="bytes", number_of_bytes=32, encoding="bytes")
        if name == "address" and type_name.payable:
            return TypeInfo(id="t_address_payable", label="address payable", number_of_bytes=20)
        return TypeInfo(id=f"t_{name}", label=name, number_of_bytes=elementary_size(name))

    def _mapping(self, type_name: MappingTypeName, scope: list[ContractDefinition]) -> TypeInfo:
        key_name = type_name.key
        if isinstance(key_name, ElementaryTypeName) and key_name.name in ("string", "bytes"):
            key = self.register(TypeInfo(
                id=f"t_{key_name.name}_memory_ptr",
                label=key_name.name,
                number_of_bytes=32,
                encoding="bytes",
            ))
        else:
            key = self.resolve(key_name, scope)
            if key.is_struct or key.base is not None or key.is_mapping:
                raise UnsupportedTypeError(f"Invalid mapping key type '{key.label}'")
        value = self.resolve(type_name.value, scope)
        return self.register(TypeInfo(
            id=f"t_mapping({key.id},{value.id})",
            label=f"mapping({key.label} => {value.label})",
            number_of_bytes=32,
            encoding="mapping",
            key=key.id,
            value=value.id,
        ))

    def _array(self, type_name: ArrayTypeName, scope: list[ContractDefinition]) -> TypeInfo:
        base = self.resolve(type_name.base, scope)
        if type_name.length is None:
            return self.register(TypeInfo(
                id=f"t_array({base.id})dyn_storage",
                label=f"{base.label}[]",
                number_of_bytes=32,
                encoding="dynamic_array",
                base=base.id,
            ))

        if base.id in self._pending:
            raise UnsupportedTypeError(f"Recursive type '{base.label}' cannot be stored in place")
        length = self._array_length(type_name.length, scope)
        if base.number_of_bytes <= 16 and not base.starts_new_slot and base.encoding == "inplace":
            per_slot = SLOT_SIZE // base.number_of_bytes
            slots = -(-length // per_slot)
        else:
            slots = length * base.slot_count
        return self.register(TypeInfo(
            id=f"t_array({base.id}){length}_storage",
            label=f"{base.label}[{length}]",
            number_of_bytes=slots * SLOT_SIZE,
            base=base.id,
            length=length,
        ))

    def _array_length(self, expr: str, scope: list[ContractDefinition]) -> int:
        try:
            length = evaluate_int(expr, lambda name: self.sources.constant_value(name, scope))
        except SolidityParseError as exc:
            raise exc.with_context(contract=scope[0].name, source_path=scope[0].source_path)
        if length <= 0:
            raise UnsupportedTypeError(f"Array length must be positive, got {length}").with_context(
                contract=scope[0].name
            )
        return length

    def _user_defined(self, type_name: UserDefinedTypeName, scope: list[ContractDefinition]) -> TypeInfo:
        declaration, owner = self.sources.resolve_type(type_name.path, scope)
        qualified = f"{owner}.{declaration.name}" if owner else declaration.name

        if isinstance(declaration, ContractDefinition):
            return self.register(TypeInfo(
                id=f"t_contract({declaration.name})",
                label=f"contract {declaration.name}",
                number_of_bytes=20,
            ))
        if isinstance(declaration, EnumDefinition):
            return self.register(TypeInfo(
                id=f"t_enum({qualified})",
                label=f"enum {qualified}",
                number_of_bytes=1 if len(declaration.members) <= 256 else 2,
                enum_members=declaration.members,
            ))
        if isinstance(declaration, UserValueType):
            underlying = self.register(self._elementary(declaration.underlying))
            return self.register(TypeInfo(
                id=f"t_userDefinedValueType({qualified})",
                label=qualified,
                number_of_bytes=underlying.number_of_bytes,
                underlying=underlying.id,
            ))
        return self.struct(declaration, owner, scope)

    def struct(
        self,
        declaration: StructDefinition,
        owner: str | None,
        scope: list[ContractDefinition],
    ) -> TypeInfo:
        qualified = f"{owner}.{declaration.name}" if owner else declaration.name
        type_id = f"t_struct({qualified})_storage"
        if type_id in self.types:
            return self.types[type_id]
        if type_id in self._pending:
            # Self reference through a mapping or dynamic array; only the id is needed
            return TypeInfo(id=type_id, label=f"struct {qualified}", number_of_bytes=0, members=())

        # Members resolve in the scope of the declaring contract
        member_scope = scope
        if owner is not None:
            owner_contract = self.sources.contract_named(owner, near=scope[0].source_path)
            member_scope = self.scope_for(owner_contract)

        self._pending.add(type_id)
        try:
            members, slots = self.place_members(declaration, qualified, member_scope)
        finally:
            self._pending.discard(type_id)
        if not members:
            raise UnsupportedTypeError(f"Struct '{qualified}' has no members")
        return self.register(TypeInfo(
            id=type_id,
            label=f"struct {qualified}",
            number_of_bytes=slots * SLOT_SIZE,
            members=tuple(members),
        ))

    def place_members(
        self,
        declaration: StructDefinition,
        qualified: str,
        scope: list[ContractDefinition],
    ) -> tuple[list[StorageItem], int]:
        allocator = SlotAllocator()
        members: list[StorageItem] = []
        for member in declaration.members:
            info = self.resolve(member.type_name, scope)
            if info.id in self._pending and info.is_struct:
                raise UnsupportedTypeError(f"Recursive struct '{qualified}' cannot be stored in place")
            slot, offset = allocator.place(info)
            members.append(StorageItem(
                label=member.name,
                contract=qualified,
                type_id=info.id,
                slot=slot,
                offset=offset,
                src=f"{scope[0].source_path}:{member.line}",
            ))
        return members, allocator.used_slots
