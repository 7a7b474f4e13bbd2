"""
==============================================================================
Scanner Package - QR Frame Pipeline
==============================================================================

Camera frame acquisition and per-frame QR decoding with OpenCV and pyzbar.

Classes:
--------
- SymbolDecoder: Frame to payload decoding
- CameraFrameSource / PushedFrameSource / ImageFrameSource: Frame source owners
- ScanLoopController: Self-terminating per-frame decode loop

==============================================================================
"""

from .decoder import SymbolDecoder
from .frame_source import (
    CameraFrameSource,
    FrameSource,
    ImageFrameSource,
    PushedFrameSource,
    StreamHandle,
)
from .loop import ScanLoopController, asyncio_scheduler

__all__ = [
    "SymbolDecoder",
    "FrameSource",
    "CameraFrameSource",
    "PushedFrameSource",
    "ImageFrameSource",
    "StreamHandle",
    "ScanLoopController",
    "asyncio_scheduler",
]
