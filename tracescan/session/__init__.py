"""
==============================================================================
Session Package - Scan/Track State Machine
==============================================================================

Classes:
--------
- ScanSession: Coordinates camera, scan loop and journey lookups
- SessionSnapshot: Immutable state view for presentation
- ScanState / CameraPermission: State enums

==============================================================================
"""

from .session import ScanSession
from .state import CameraPermission, ScanState, SessionSnapshot

__all__ = [
    "ScanSession",
    "SessionSnapshot",
    "ScanState",
    "CameraPermission",
]
