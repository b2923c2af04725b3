"""
Centralized settings for slotguard.

Manifesto:
    One validated, cached settings object instead of every CLI command
    re-reading flags, environment variables and project files on its own.
    ``SlotGuardSettings`` cooperates with the project TOML loader to
    resolve values in a single place.

All fields can be set via ``SLOTGUARD_*`` environment variables (e.g.
``SLOTGUARD_KIND=uups``), a ``.env`` file, ``slotguard.toml`` or the
``[tool.slotguard]`` table of ``pyproject.toml``.

Tags:
    slotguard, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from slotguard.core.errors import ConfigError
from slotguard.validation.model import UNSAFE_ALLOW_KINDS, ProxyKind


class SlotGuardSettings(BaseSettings):
    """slotguard configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SLOTGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="WARNING")
    log_format: str = Field(default="auto", description="console, json or auto (json when not a tty)")

    # ── Validation ───────────────────────────────────────────────
    kind: ProxyKind = Field(default=ProxyKind.TRANSPARENT)
    unsafe_allow: list[str] = Field(default_factory=list)
    unsafe_allow_renames: bool = Field(default=False)
    unsafe_skip_storage_check: bool = Field(default=False)
    strict: bool = Field(default=False, description="Treat warnings as failures")

    # ── Sources ──────────────────────────────────────────────────
    include_paths: list[str] = Field(default_factory=list)
    remappings: list[str] = Field(default_factory=list, description="solc-style prefix=target entries")

    # ── Snapshots ────────────────────────────────────────────────
    snapshot_dir: str = Field(default=".slotguard")

    # ── Populated by get_settings ────────────────────────────────
    project_root: Path = Field(default_factory=Path.cwd, exclude=True)

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return upper

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        lower = value.lower()
        if lower not in {"console", "json", "auto"}:
            raise ValueError(f"unknown log format {value!r}")
        return lower

    @field_validator("unsafe_allow")
    @classmethod
    def _check_unsafe_allow(cls, value: list[str]) -> list[str]:
        unknown = sorted(set(value) - UNSAFE_ALLOW_KINDS)
        if unknown:
            raise ValueError(f"unknown unsafe-allow kinds: {', '.join(unknown)}")
        return value

    @field_validator("remappings")
    @classmethod
    def _check_remappings(cls, value: list[str]) -> list[str]:
        for entry in value:
            prefix, sep, target = entry.partition("=")
            if not sep or not prefix or not target:
                raise ValueError(f"remapping must look like prefix=target, got {entry!r}")
        return value

    # ── Derived values ───────────────────────────────────────────

    def resolve_path(self, value: str | Path) -> Path:
        """Resolve *value* relative to the project root."""
        path = Path(value)
        return path if path.is_absolute() else (self.project_root / path).resolve()

    @property
    def snapshot_path(self) -> Path:
        return self.resolve_path(self.snapshot_dir)

    @property
    def resolved_include_paths(self) -> list[Path]:
        return [self.resolve_path(p) for p in self.include_paths]

    @property
    def remapping_table(self) -> dict[str, str]:
        return dict(entry.split("=", 1) for entry in self.remappings)

    @property
    def json_logs(self) -> bool | None:
        if self.log_format == "auto":
            return None
        return self.log_format == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, SlotGuardSettings] = {}


def get_settings(
    *,
    project_root: Path | None = None,
    _force_reload: bool = False,
) -> SlotGuardSettings:
    """Load, validate, and cache a :class:`SlotGuardSettings` instance.

    Parameters
    ----------
    project_root:
        Override the auto-detected project root.
    _force_reload:
        Bypass cache and reload from disk.
    """
    from .loader import find_project_root, project_env

    root = (project_root or find_project_root()).resolve()
    cache_key = str(root)

    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    # Inject project TOML values into os.environ temporarily
    # (Pydantic reads them during init); real env vars keep priority.
    original_env: dict[str, str | None] = {}
    for key, value in project_env(root).items():
        if key not in os.environ:
            original_env[key] = os.environ.get(key)
            os.environ[key] = value

    try:
        settings = SlotGuardSettings(
            _env_file=root / ".env",  # type: ignore[call-arg]
            project_root=root,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid slotguard configuration: {exc}", cause=exc).with_context(
            source_path=str(root)
        )
    finally:
        for key, orig_value in original_env.items():
            if orig_value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = orig_value

    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
