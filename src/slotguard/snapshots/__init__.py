"""Versioned store of deployed storage layouts."""

from .store import LayoutStore, SnapshotEntry, canonical_json, compute_digest

__all__ = ["LayoutStore", "SnapshotEntry", "canonical_json", "compute_digest"]
