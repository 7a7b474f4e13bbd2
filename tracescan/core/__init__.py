"""
==============================================================================
Core Package
==============================================================================

Core infrastructure for the application.

Modules:
--------
- exceptions: AppException hierarchy and error factory functions

Usage:
------
    from tracescan.core import AppException, CameraPermissionError

    # Or use exception factory functions via module
    from tracescan.core import exceptions
    raise exceptions.journey_not_found("PROD-999")

==============================================================================
"""

from .exceptions import (
    AppException,
    CameraPermissionError,
    JourneyLookupError,
    register_exception_handlers,
)

__all__ = [
    "AppException",
    "CameraPermissionError",
    "JourneyLookupError",
    "register_exception_handlers",
]
