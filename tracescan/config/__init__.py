"""
==============================================================================
Configuration Package
==============================================================================

Centralized configuration management using Pydantic Settings.

Usage:
------
    from tracescan.config import get_settings, Settings

    settings = get_settings()
    print(settings.journeys_file)
    print(settings.scan_interval_seconds)

==============================================================================
"""

from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
