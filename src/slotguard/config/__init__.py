"""
Configuration: project TOML discovery and validated, cached settings.
"""

from .loader import find_project_root, load_project_config, project_env
from .settings import SlotGuardSettings, clear_settings_cache, get_settings

__all__ = [
    "SlotGuardSettings",
    "get_settings",
    "clear_settings_cache",
    "find_project_root",
    "load_project_config",
    "project_env",
]
