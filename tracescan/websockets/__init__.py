"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers.

Handlers:
---------
- scanner: QR scanning and journey tracking session

==============================================================================
"""

from .scanner import router as scanner_router

__all__ = ["scanner_router"]
