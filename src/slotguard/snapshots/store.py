"""
Versioned storage layout snapshots.

Manifesto:
    The layout that matters for an upgrade is the one that was deployed,
    not whatever the previous commit happens to compute. Snapshots pin a
    layout per released version so later upgrades compare against what is
    actually on chain.

    - **Content-addressed:** every entry records a SHA-256 of its canonical JSON
    - **Append-only by default:** re-saving a version needs ``overwrite=True``
    - **Ordered:** versions are listed in the order they were saved

Architecture:
    ::

        <root>/
        ├── manifest.json
        │     {"format": 1,
        │      "contracts": {"Vault": [{"version": "1.0.0",
        │                               "file": "Vault@1.0.0.json",
        │                               "sha256": "…", "saved_at": "…"}]}}
        ├── Vault@1.0.0.json
        └── Vault@1.1.0.json

Examples:
    >>> store = LayoutStore(tmp_path)
    >>> store.save(layout, "1.0.0")
    >>> store.load("Vault").contract
    'Vault'

Tags:
    snapshots, storage-layout, versioning, integrity

Doc-Types:
    api-reference
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from slotguard.core.errors import (
    LayoutError,
    SnapshotError,
    SnapshotExistsError,
    SnapshotIntegrityError,
    SnapshotNotFoundError,
)
from slotguard.core.logging import get_logger
from slotguard.layout.model import StorageLayout

logger = get_logger(__name__)

MANIFEST_NAME = "manifest.json"
MANIFEST_FORMAT = 1

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def compute_digest(data: Any) -> str:
    """SHA-256 hex digest of the canonical JSON encoding of *data*."""
    return hashlib.sha256(canonical_json(data).encode()).hexdigest()


@dataclass(frozen=True)
class SnapshotEntry:
    """One saved layout, as recorded in the manifest."""

    contract: str
    version: str
    file: str
    sha256: str
    saved_at: str

    def to_dict(self) -> dict[str, str]:
        return {
            "version": self.version,
            "file": self.file,
            "sha256": self.sha256,
            "saved_at": self.saved_at,
        }


class LayoutStore:
    """Directory of layout snapshots indexed by ``manifest.json``."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_NAME

    # ------------------------------------------------------------------
    # Manifest
    # ------------------------------------------------------------------

    def _read_manifest(self) -> dict[str, list[SnapshotEntry]]:
        if not self.manifest_path.exists():
            return {}
        try:
            raw = json.loads(self.manifest_path.read_text(encoding="utf-8"))
            contracts = raw["contracts"]
            return {
                name: [SnapshotEntry(contract=name, **entry) for entry in entries]
                for name, entries in contracts.items()
            }
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise SnapshotError(
                f"Cannot read snapshot manifest {self.manifest_path}: {exc}",
                cause=exc,
            ).with_context(source_path=str(self.manifest_path)) from exc

    def _write_manifest(self, manifest: dict[str, list[SnapshotEntry]]) -> None:
        data = {
            "format": MANIFEST_FORMAT,
            "contracts": {
                name: [entry.to_dict() for entry in entries]
                for name, entries in sorted(manifest.items())
            },
        }
        self.root.mkdir(parents=True, exist_ok=True)
        self.manifest_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    @staticmethod
    def _file_name(contract: str, version: str) -> str:
        safe_contract = _UNSAFE_FILENAME_CHARS.sub("_", contract)
        safe_version = _UNSAFE_FILENAME_CHARS.sub("_", version)
        return f"{safe_contract}@{safe_version}.json"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def contracts(self) -> list[str]:
        return sorted(self._read_manifest())

    def versions(self, contract: str) -> list[str]:
        """Saved versions of *contract*, oldest first."""
        return [entry.version for entry in self._read_manifest().get(contract, [])]

    def entries(self, contract: str) -> list[SnapshotEntry]:
        return list(self._read_manifest().get(contract, []))

    def save(self, layout: StorageLayout, version: str, *, overwrite: bool = False) -> SnapshotEntry:
        """Store *layout* as *version* of its contract.

        Raises:
            SnapshotExistsError: The version exists and *overwrite* is false.
        """
        manifest = self._read_manifest()
        entries = manifest.setdefault(layout.contract, [])
        existing = [e for e in entries if e.version == version]
        if existing and not overwrite:
            raise SnapshotExistsError(
                f"Snapshot {layout.contract}@{version} already exists"
            ).with_context(contract=layout.contract, version=version)

        file_name = self._file_name(layout.contract, version)
        owner = next(
            (
                e
                for contract_entries in manifest.values()
                for e in contract_entries
                if e.file == file_name and (e.contract, e.version) != (layout.contract, version)
            ),
            None,
        )
        if owner is not None:
            raise SnapshotExistsError(
                f"Snapshot file {file_name} already holds {owner.contract}@{owner.version}"
            ).with_context(contract=layout.contract, version=version, source_path=str(self.root / file_name))

        data = layout.to_dict()
        entry = SnapshotEntry(
            contract=layout.contract,
            version=version,
            file=file_name,
            sha256=compute_digest(data),
            saved_at=datetime.now(UTC).isoformat(),
        )
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / entry.file).write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

        # re-saving moves the version to the end
        manifest[layout.contract] = [e for e in entries if e.version != version] + [entry]
        self._write_manifest(manifest)
        logger.info(
            "snapshot.saved",
            contract=layout.contract,
            version=version,
            overwritten=bool(existing),
        )
        return entry

    def load(self, contract: str, version: str | None = None) -> StorageLayout:
        """Load a snapshot of *contract*; the latest one when *version* is omitted.

        Raises:
            SnapshotNotFoundError: No such contract or version.
            SnapshotIntegrityError: The file no longer matches its digest.
        """
        entries = self._read_manifest().get(contract, [])
        if not entries:
            raise SnapshotNotFoundError(
                f"No snapshots for contract '{contract}' in {self.root}"
            ).with_context(contract=contract)
        if version is None:
            entry = entries[-1]
        else:
            matches = [e for e in entries if e.version == version]
            if not matches:
                raise SnapshotNotFoundError(
                    f"No snapshot {contract}@{version}; saved versions: {', '.join(e.version for e in entries)}"
                ).with_context(contract=contract, version=version)
            entry = matches[0]

        path = self.root / entry.file
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise SnapshotIntegrityError(
                f"Cannot read snapshot {path}: {exc}", cause=exc
            ).with_context(contract=contract, source_path=str(path)) from exc

        digest = compute_digest(data)
        if digest != entry.sha256:
            raise SnapshotIntegrityError(
                f"Snapshot {contract}@{entry.version} was modified after it was saved"
            ).with_context(
                contract=contract,
                source_path=str(path),
                expected=entry.sha256,
                actual=digest,
            )
        try:
            layout = StorageLayout.from_dict(data)
        except LayoutError as exc:
            raise SnapshotIntegrityError(
                f"Snapshot {contract}@{entry.version} is not a valid layout: {exc.message}",
                cause=exc,
            ).with_context(contract=contract, source_path=str(path)) from exc
        logger.debug("snapshot.loaded", contract=contract, version=entry.version)
        return layout
