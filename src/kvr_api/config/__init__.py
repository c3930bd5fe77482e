"""
Config package export.

Keeps import sites clean and stable:
    from kvr_api.config import get_settings, Settings
"""

from __future__ import annotations

from .settings import AuthMode, Environment, Settings, get_settings

__all__ = ["AuthMode", "Environment", "Settings", "get_settings"]
