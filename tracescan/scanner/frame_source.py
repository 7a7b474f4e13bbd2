"""
==============================================================================
Frame Source Module
==============================================================================

Owners of a live camera stream.

A frame source binds one camera for the lifetime of a scanning session and
hands out the most recent frame on request.

Implementations:
---------------
- CameraFrameSource: local camera opened through OpenCV
- PushedFrameSource: frames pushed by a remote client (browser getUserMedia)
  that also reports the user's camera permission verdict
- ImageFrameSource: a still image file, for offline scans

Lifecycle:
---------
    source = CameraFrameSource("environment")
    async with source:              # acquire(), raises CameraPermissionError
        frame = source.current_frame()
    # release() has run, whatever happened inside the block

release() is idempotent and may be called before acquire(), after a failed
acquire() or any number of times after a successful one.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import cv2
import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from tracescan.config import Settings, get_settings
from tracescan.core import exceptions
from tracescan.core.exceptions import CameraPermissionError


# Module logger
logger = logging.getLogger(__name__)


class StreamHandle(BaseModel):
    """Binding of a camera stream to a frame source."""

    model_config = ConfigDict(frozen=True)

    facing: str
    device: Optional[int] = None
    opened_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FrameSource:
    """
    Base class for camera frame sources.

    Subclasses implement _open() and _close(); this class keeps the
    acquire/release bookkeeping and the async context manager protocol.
    """

    def __init__(self, facing: str = "environment") -> None:
        self._facing = facing
        self._handle: Optional[StreamHandle] = None
        self._frame: Optional[np.ndarray] = None

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @property
    def facing(self) -> str:
        return self._facing

    @property
    def is_acquired(self) -> bool:
        """True while a camera stream is bound."""
        return self._handle is not None

    @property
    def handle(self) -> Optional[StreamHandle]:
        return self._handle

    async def acquire(self) -> StreamHandle:
        """
        Bind the camera stream.

        Returns:
            StreamHandle of the bound stream

        Raises:
            CameraPermissionError: If access is refused or no camera exists
        """
        if self._handle is not None:
            return self._handle

        try:
            handle = await self._open()
        except CameraPermissionError as e:
            logger.warning(f"📷 Camera unavailable ({self._facing}): {e.message}")
            self._close()
            raise
        except BaseException:
            self._close()
            raise

        self._handle = handle
        logger.info(f"📷 Camera acquired ({handle.facing}, device={handle.device})")
        return handle

    def current_frame(self) -> Optional[np.ndarray]:
        """Latest frame, or None until the stream has buffered one."""
        if self._handle is None:
            return None
        return self._frame

    def release(self) -> None:
        """Free the camera stream. Safe to call in any state."""
        was_acquired = self._handle is not None
        self._close()
        self._handle = None
        self._frame = None

        if was_acquired:
            logger.info(f"📷 Camera released ({self._facing})")

    async def __aenter__(self) -> "FrameSource":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    # =========================================================================
    # SUBCLASS HOOKS
    # =========================================================================

    async def _open(self) -> StreamHandle:
        raise NotImplementedError

    def _close(self) -> None:
        raise NotImplementedError


class CameraFrameSource(FrameSource):
    """
    Frame source reading a local camera through OpenCV.

    Example:
        >>> source = CameraFrameSource("environment")
        >>> await source.acquire()
        >>> frame = source.current_frame()
        >>> source.release()
    """

    def __init__(
        self,
        facing: str = "environment",
        settings: Optional[Settings] = None,
        capture_factory: Callable[[int], Any] = cv2.VideoCapture,
    ) -> None:
        """
        Args:
            facing: "environment" (rear) or "user" (front) camera
            settings: Settings used to map facing to a device index
            capture_factory: Callable opening a device index (cv2.VideoCapture)
        """
        super().__init__(facing)
        self._settings = settings or get_settings()
        self._capture_factory = capture_factory
        self._cap = None

    # =========================================================================
    # CAMERA CAPABILITY
    # =========================================================================

    def request_stream(self, facing: str) -> StreamHandle:
        """
        Open the camera for a facing mode.

        Raises:
            CameraPermissionError: If the device cannot be opened
        """
        device = self._settings.camera_index_for(facing)

        try:
            self._cap = self._capture_factory(device)
        except Exception as e:
            logger.error(f"Cannot open camera {device}: {e}")
            raise exceptions.camera_unavailable(facing, device) from e

        if self._cap is None or not self._cap.isOpened():
            raise exceptions.camera_unavailable(facing, device)

        return StreamHandle(facing=facing, device=device)

    def stop_stream(self, handle: Optional[StreamHandle] = None) -> None:
        """Release the OpenCV capture if one is open."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    # =========================================================================
    # FRAME SOURCE HOOKS
    # =========================================================================

    async def _open(self) -> StreamHandle:
        return self.request_stream(self._facing)

    def _close(self) -> None:
        self.stop_stream(self._handle)

    def current_frame(self) -> Optional[np.ndarray]:
        """Read the next frame from the device, keeping the last good one."""
        if self._handle is None or self._cap is None:
            return None

        ok, frame = self._cap.read()
        if ok and frame is not None:
            self._frame = frame
        else:
            logger.debug("Failed to read frame")

        return self._frame


class PushedFrameSource(FrameSource):
    """
    Frame source fed by a remote client.

    The client captures the camera itself and reports whether the user
    allowed it (grant/deny), then pushes frames with push_frame().
    acquire() waits for that verdict.

    Example:
        >>> source = PushedFrameSource(timeout_seconds=30)
        >>> source.grant()
        >>> await source.acquire()
        >>> source.push_frame(frame)
    """

    def __init__(self, facing: str = "environment", timeout_seconds: float = 30.0) -> None:
        super().__init__(facing)
        self._timeout_seconds = timeout_seconds
        self._verdict: Optional[bool] = None
        self._verdict_event = asyncio.Event()

    def grant(self) -> None:
        """Record that the client obtained camera access."""
        self._set_verdict(True)

    def deny(self) -> None:
        """Record that the client was refused camera access."""
        self._set_verdict(False)

    def push_frame(self, frame: Optional[np.ndarray]) -> None:
        """Buffer the latest client frame. Ignored while not acquired."""
        if self._handle is None or frame is None:
            return
        self._frame = frame

    def _set_verdict(self, granted: bool) -> None:
        # The first verdict wins; permission is never re-queried.
        if self._verdict is None:
            self._verdict = granted
            self._verdict_event.set()

    async def _open(self) -> StreamHandle:
        try:
            await asyncio.wait_for(self._verdict_event.wait(), self._timeout_seconds)
        except asyncio.TimeoutError:
            raise exceptions.CameraPermissionError(
                "No camera permission verdict received",
                {"timeout_seconds": self._timeout_seconds}
            )

        if not self._verdict:
            raise exceptions.camera_permission_denied()

        return StreamHandle(facing=self._facing)

    def _close(self) -> None:
        self._frame = None


class ImageFrameSource(FrameSource):
    """
    Frame source serving a single still image, for offline scans.

    A missing or unreadable image is treated like an absent camera.
    """

    def __init__(self, image_path: Path) -> None:
        super().__init__(facing="file")
        self._image_path = image_path

    async def _open(self) -> StreamHandle:
        frame = cv2.imread(str(self._image_path))
        if frame is None:
            raise exceptions.CameraPermissionError(
                f"Could not read image: {self._image_path}",
                {"path": str(self._image_path)}
            )
        self._frame = frame
        return StreamHandle(facing=self._facing)

    def _close(self) -> None:
        self._frame = None
