"""ERC-7201 namespaced storage locations."""

from __future__ import annotations

from Crypto.Hash import keccak

from slotguard.core.errors import LayoutError

ERC7201 = "erc7201"

_WORD = 2**256


def keccak256(data: bytes) -> bytes:
    digest = keccak.new(digest_bits=256)
    digest.update(data)
    return digest.digest()


def erc7201_slot(namespace_id: str) -> int:
    """Base slot of the namespace *namespace_id*.

    ``keccak256(abi.encode(uint256(keccak256(id)) - 1)) & ~bytes32(uint256(0xff))``

    >>> hex(erc7201_slot("example.main"))
    '0x183a6125c38840424c4a85fa12bab2ab606c4b6d0e7cc73c0c06ba5300eab500'
    """
    inner = (int.from_bytes(keccak256(namespace_id.encode("utf-8")), "big") - 1) % _WORD
    outer = int.from_bytes(keccak256(inner.to_bytes(32, "big")), "big")
    return outer & ~0xFF


def parse_storage_location(value: str) -> tuple[str, str]:
    """Split ``erc7201:my.namespace`` into ``("erc7201", "my.namespace")``."""
    formula, sep, namespace_id = value.strip().partition(":")
    if not sep or not namespace_id:
        raise LayoutError(f"Malformed storage location '{value}', expected '<formula>:<id>'")
    if formula != ERC7201:
        raise LayoutError(f"Unsupported storage location formula '{formula}'").with_context(
            namespace=namespace_id
        )
    return formula, namespace_id
