"""
==============================================================================
Scan Session Module
==============================================================================

State machine coordinating the camera, the scan loop and journey lookups.

Transitions:
-----------
    IDLE ──start(), camera granted──▶ SCANNING
    IDLE/SCANNING ──camera refused──▶ PERMISSION_DENIED
    SCANNING ──symbol decoded──▶ RESOLVING
    any state ──submit_manual(id)──▶ RESOLVING
    RESOLVING ──latest lookup settles──▶ FOUND / NOT_FOUND
    RESOLVING ──latest lookup fails──▶ IDLE (error set, retryable)
    FOUND/NOT_FOUND/IDLE ──scan_another()──▶ SCANNING
    SCANNING ──stop_scanning()──▶ IDLE

Only the most recently issued lookup can move the session out of
RESOLVING; results and failures of superseded lookups are dropped.
There is no RESOLVING timeout.

A session owns exactly one frame source. close() is the single teardown
routine: it stops the loop, supersedes any lookup and releases the camera.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set

from tracescan.config import Settings, get_settings
from tracescan.core.exceptions import CameraPermissionError, JourneyLookupError
from tracescan.journey.models import Found, Resolution
from tracescan.journey.resolver import JourneyResolver
from tracescan.scanner.decoder import SymbolDecoder
from tracescan.scanner.frame_source import FrameSource
from tracescan.scanner.loop import ScanLoopController, Scheduler

from .state import CameraPermission, ScanState, SessionSnapshot


# Module logger
logger = logging.getLogger(__name__)

Listener = Callable[[SessionSnapshot], None]

_RESCAN_SOURCES = {ScanState.IDLE, ScanState.FOUND, ScanState.NOT_FOUND}


class ScanSession:
    """
    One operator's scan/track session.

    Attributes:
        snapshot: Current SessionSnapshot
        state: Current ScanState

    Example:
        >>> async with ScanSession(CameraFrameSource(), JourneyResolver(repo)) as session:
        ...     session.subscribe(render)
        ...     await session.start()
        ...     session.submit_manual("PROD-001")
        ...     await session.wait_idle()
    """

    def __init__(
        self,
        frame_source: FrameSource,
        resolver: JourneyResolver,
        decoder: Optional[SymbolDecoder] = None,
        settings: Optional[Settings] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        """
        Args:
            frame_source: Camera stream owned by this session
            resolver: Journey resolver (one per session)
            decoder: Symbol decoder (pyzbar QR decoder by default)
            settings: Application settings
            scheduler: Tick scheduling primitive for the scan loop
        """
        self._settings = settings or get_settings()
        self._source = frame_source
        self._resolver = resolver
        self._scan_loop = ScanLoopController(
            frame_source,
            decoder or SymbolDecoder(qr_only=self._settings.qr_only),
            self._on_payload,
            interval=self._settings.scan_interval_seconds,
            scheduler=scheduler,
        )

        self._snapshot = SessionSnapshot()
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def state(self) -> ScanState:
        return self._snapshot.state

    @property
    def scan_loop(self) -> ScanLoopController:
        return self._scan_loop

    @property
    def frame_source(self) -> FrameSource:
        return self._source

    @property
    def is_closed(self) -> bool:
        return self._closed

    # =========================================================================
    # PRESENTATION SINK
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for state snapshots.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes) -> None:
        previous = self._snapshot.state
        self._snapshot = self._snapshot.model_copy(update=changes)

        if self._snapshot.state is not previous:
            logger.info(f"Session state: {previous.value} → {self._snapshot.state.value}")

        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception:
                logger.exception("Session listener failed")

    # =========================================================================
    # CAMERA PATH
    # =========================================================================

    async def start(self) -> SessionSnapshot:
        """
        Acquire the camera and begin scanning.

        Camera refusal moves the session to PERMISSION_DENIED; manual entry
        keeps working. After a refusal the camera is not asked again.
        """
        if self._closed:
            return self._snapshot

        if self._snapshot.permission is CameraPermission.UNKNOWN:
            try:
                await self._source.acquire()
            except CameraPermissionError as e:
                if self._closed:
                    return self._snapshot
                self._on_permission_denied(e)
                return self._snapshot

            if self._closed:
                self._source.release()
                return self._snapshot

            self._update(permission=CameraPermission.GRANTED)

        if self._snapshot.permission is CameraPermission.GRANTED and self.state is ScanState.IDLE:
            self._arm_scanner()

        return self._snapshot

    def _on_permission_denied(self, error: CameraPermissionError) -> None:
        logger.warning(f"🚫 Camera permission denied: {error.message}")
        self._scan_loop.stop()

        if self.state in (ScanState.IDLE, ScanState.SCANNING):
            self._update(permission=CameraPermission.DENIED, state=ScanState.PERMISSION_DENIED)
        else:
            self._update(permission=CameraPermission.DENIED)

    def _arm_scanner(self) -> None:
        self._update(state=ScanState.SCANNING, product_id=None, journey=None, error=None)
        self._scan_loop.start()

    def scan_another(self) -> bool:
        """
        Re-arm the scanner after a result.

        Returns:
            True if the session moved to SCANNING
        """
        if self._closed or not self._snapshot.can_scan:
            return False

        if self.state not in _RESCAN_SOURCES:
            return False

        self._arm_scanner()
        return True

    def stop_scanning(self) -> None:
        """Stop the scan loop and return to IDLE."""
        self._scan_loop.stop()

        if self.state is ScanState.SCANNING:
            self._update(state=ScanState.IDLE)

    def _on_payload(self, payload: str) -> None:
        if self._closed or self.state is not ScanState.SCANNING:
            logger.debug(f"Ignoring decoded payload in state {self.state.value}")
            return

        self._begin_resolution(payload)

    # =========================================================================
    # MANUAL PATH
    # =========================================================================

    def submit_manual(self, product_id: str) -> bool:
        """
        Resolve a manually entered identifier.

        The identifier is used exactly as given. Empty input is rejected.

        Returns:
            True if a lookup was issued
        """
        if self._closed:
            return False

        if not product_id:
            logger.debug("Rejected empty manual product ID")
            return False

        self._scan_loop.stop()
        self._begin_resolution(product_id)
        return True

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def _begin_resolution(self, product_id: str) -> None:
        # Raises RuntimeError outside an event loop, before any state changes
        loop = asyncio.get_running_loop()

        pending = self._resolver.resolve(product_id)
        self._update(state=ScanState.RESOLVING, product_id=product_id, journey=None, error=None)

        task = loop.create_task(self._settle(pending))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _settle(self, pending: Awaitable[Resolution]) -> None:
        try:
            resolution = await pending
        except JourneyLookupError as e:
            if self._closed or not self._resolver.is_current(e.request_id):
                logger.debug(f"Dropping stale lookup failure (request {e.request_id})")
                return
            self._update(state=ScanState.IDLE, journey=None, error=e.message)
            return

        if self._closed or not self._resolver.is_current(resolution):
            logger.debug(f"Dropping stale resolution (request {resolution.request_id})")
            return

        if isinstance(resolution, Found):
            self._update(state=ScanState.FOUND, journey=resolution.journey)
        else:
            self._update(state=ScanState.NOT_FOUND, journey=None)

    async def wait_idle(self) -> SessionSnapshot:
        """Wait until no lookup task is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return self._snapshot

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    async def close(self) -> None:
        """Stop scanning, drop pending lookups and release the camera."""
        if self._closed:
            return

        self._closed = True
        self._scan_loop.stop()
        self._resolver.supersede()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._source.release()
        self._listeners.clear()
        logger.info("✅ Scan session closed")

    async def __aenter__(self) -> "ScanSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
