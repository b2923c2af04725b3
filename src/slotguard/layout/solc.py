"""Pydantic models for the compiler's ``storageLayout`` JSON.

Lets layouts produced by ``solc --storage-layout`` (or by Foundry/Hardhat
build info) be compared against source-derived layouts, and exports
slotguard layouts in the same shape.

Usage::

    from slotguard.layout.solc import load_solc_layout

    layout = load_solc_layout(json.loads(path.read_text()), "contracts/Vault.sol:Vault")

Accepted inputs:

* a bare ``{"storage": [...], "types": {...}}`` document
* a contract output object holding a ``storageLayout`` key
* standard-JSON output (``{"contracts": {file: {name: {"storageLayout": ...}}}}``)

Tags:
    layout, solc, json, interop, pydantic

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from slotguard.core.errors import ContractNotFoundError, LayoutError

from .model import StorageItem, StorageLayout, TypeInfo


class SolcStorageEntry(BaseModel):
    """One entry of ``storage`` or of a struct's ``members``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    ast_id: int | None = Field(default=None, alias="astId")
    contract: str = Field(default="", description="'path:Name' of the declaring contract")
    label: str = Field(..., min_length=1)
    offset: int = Field(default=0, ge=0, lt=32)
    slot: str = Field(..., description="Decimal slot number as a string")
    type: str = Field(..., min_length=1)


class SolcTypeEntry(BaseModel):
    """One entry of ``types``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    encoding: str = Field(default="inplace", pattern="^(inplace|mapping|dynamic_array|bytes)$")
    label: str
    number_of_bytes: str = Field(..., alias="numberOfBytes")
    members: list[SolcStorageEntry] | None = None
    key: str | None = None
    value: str | None = None
    base: str | None = None


class SolcStorageLayout(BaseModel):
    """The ``storageLayout`` output selection of one contract."""

    model_config = ConfigDict(extra="ignore")

    storage: list[SolcStorageEntry] = Field(default_factory=list)
    types: dict[str, SolcTypeEntry] | None = None


def _contract_name(qualified: str) -> str:
    return qualified.rpartition(":")[2]


def _array_length(type_id: str) -> int | None:
    if not type_id.startswith("t_array(") or type_id.endswith("dyn_storage"):
        return None
    suffix = type_id[type_id.rfind(")") + 1:]
    digits = suffix.split("_", 1)[0]
    return int(digits) if digits.isdigit() else None


def _item(entry: SolcStorageEntry) -> StorageItem:
    return StorageItem(
        label=entry.label,
        contract=_contract_name(entry.contract),
        type_id=entry.type,
        slot=int(entry.slot),
        offset=entry.offset,
    )


def _type(type_id: str, entry: SolcTypeEntry) -> TypeInfo:
    return TypeInfo(
        id=type_id,
        label=entry.label,
        number_of_bytes=int(entry.number_of_bytes),
        encoding=entry.encoding,
        members=tuple(_item(m) for m in entry.members) if entry.members is not None else None,
        key=entry.key,
        value=entry.value,
        base=entry.base,
        length=_array_length(type_id),
    )


def _select(data: dict[str, Any], contract: str | None) -> tuple[dict[str, Any], str]:
    if "storage" in data:
        return data, _contract_name(contract or "")
    if "storageLayout" in data:
        return data["storageLayout"], _contract_name(contract or "")

    contracts = data.get("contracts")
    if not isinstance(contracts, dict):
        raise LayoutError("Document holds no storage layout")
    if contract is None:
        raise LayoutError("A contract name is required to select from compiler output")

    path, _, name = contract.rpartition(":")
    matches = [
        (file_name, output)
        for file_name, outputs in contracts.items()
        if not path or file_name == path or file_name.endswith("/" + path)
        for contract_name, output in outputs.items()
        if contract_name == name
    ]
    if not matches:
        raise ContractNotFoundError(name)
    if len(matches) > 1:
        raise LayoutError(f"Contract '{name}' appears in several files; use 'path:{name}'")
    output = matches[0][1]
    if "storageLayout" not in output:
        raise LayoutError(f"Compiler output for '{name}' has no storageLayout").with_context(contract=name)
    return output["storageLayout"], name


def load_solc_layout(data: dict[str, Any], contract: str | None = None) -> StorageLayout:
    """Convert compiler ``storageLayout`` JSON into a :class:`StorageLayout`."""
    raw, name = _select(data, contract)
    try:
        parsed = SolcStorageLayout.model_validate(raw)
    except ValidationError as exc:
        raise LayoutError(f"Invalid storageLayout document: {exc}", cause=exc) from exc

    items = [_item(entry) for entry in parsed.storage]
    if not name and parsed.storage:
        name = _contract_name(parsed.storage[-1].contract)
    types = {type_id: _type(type_id, entry) for type_id, entry in (parsed.types or {}).items()}
    missing = sorted({item.type_id for item in items} - types.keys())
    if missing:
        raise LayoutError(f"storageLayout references undefined types: {', '.join(missing)}")
    return StorageLayout(contract=name, items=items, types=types)


def layout_to_solc(layout: StorageLayout) -> dict[str, Any]:
    """Export *layout* as compiler-shaped ``storageLayout`` JSON."""
    source = layout.source

    def entry(item: StorageItem) -> SolcStorageEntry:
        return SolcStorageEntry(
            contract=f"{source}:{item.contract}" if source else item.contract,
            label=item.label,
            offset=item.offset,
            slot=str(item.slot),
            type=item.type_id,
        )

    document = SolcStorageLayout(
        storage=[entry(item) for item in layout.items],
        types={
            type_id: SolcTypeEntry(
                encoding=info.encoding,
                label=info.label,
                number_of_bytes=str(info.number_of_bytes),
                members=[entry(m) for m in info.members] if info.members is not None else None,
                key=info.key,
                value=info.value,
                base=info.base,
            )
            for type_id, info in sorted(layout.types.items())
        },
    )
    return document.model_dump(by_alias=True, exclude_none=True)
