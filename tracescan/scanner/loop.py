"""
==============================================================================
Scan Loop Controller Module
==============================================================================

Per-frame decode loop that stops itself on the first decoded symbol.

Ticks are scheduled through a cooperative scheduler (by default the running
asyncio loop's call_later) at the display cadence. Each tick runs
synchronously on the event loop, so ticks never overlap, and at most one
tick is pending at any time.

Guarantees:
----------
- A decoded payload is delivered exactly once per start(); the loop is
  already stopped when the callback runs.
- start() while running and stop() while stopped are no-ops.
- A decoder that raises or returns junk only costs that frame.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from .decoder import SymbolDecoder
from .frame_source import FrameSource


# Module logger
logger = logging.getLogger(__name__)

# scheduler(delay_seconds, callback) -> handle with cancel()
Scheduler = Callable[[float, Callable[[], None]], Any]


def asyncio_scheduler(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    """Schedule a callback on the running event loop."""
    return asyncio.get_running_loop().call_later(delay, callback)


class ScanLoopController:
    """
    Drives decode attempts against a frame source.

    Attributes:
        is_running: True while a tick chain is active
        tick_count: Number of ticks executed so far

    Example:
        >>> loop = ScanLoopController(source, decoder, on_payload=print)
        >>> loop.start()
        >>> ...             # first decoded payload is printed, loop stops
    """

    def __init__(
        self,
        source: FrameSource,
        decoder: SymbolDecoder,
        on_payload: Callable[[str], None],
        interval: float = 1 / 30,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        """
        Args:
            source: Frame source to sample
            decoder: Symbol decoder applied to each frame
            on_payload: Receives the first decoded payload
            interval: Seconds between ticks
            scheduler: Scheduling primitive (defaults to asyncio call_later)
        """
        self._source = source
        self._decoder = decoder
        self._on_payload = on_payload
        self._interval = interval
        self._scheduler = scheduler or asyncio_scheduler
        self._running = False
        self._pending = None
        self._tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tick_count(self) -> int:
        return self._tick_count

    # =========================================================================
    # CONTROL
    # =========================================================================

    def start(self) -> None:
        """Start the tick chain unless one is already active."""
        if self._running:
            logger.debug("Scan loop already running")
            return

        self._running = True
        self._schedule_next()
        logger.debug("Scan loop started")

    def stop(self) -> None:
        """Stop the loop and cancel the pending tick."""
        if not self._running and self._pending is None:
            return

        self._running = False
        self._cancel_pending()
        logger.debug("Scan loop stopped")

    # =========================================================================
    # TICKS
    # =========================================================================

    def _schedule_next(self) -> None:
        self._cancel_pending()
        self._pending = self._scheduler(self._interval, self._tick)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _tick(self) -> None:
        self._pending = None
        if not self._running:
            return

        self._tick_count += 1

        frame = self._source.current_frame()
        payload = self._try_decode(frame) if frame is not None else None

        if payload is None:
            self._schedule_next()
            return

        self._running = False
        logger.info(f"📦 Symbol decoded: {payload!r}")

        try:
            self._on_payload(payload)
        except Exception:
            logger.exception("Scan result handler failed")

    def _try_decode(self, frame) -> Optional[str]:
        try:
            payload = self._decoder.decode(frame)
        except Exception as e:
            logger.debug(f"Decode attempt failed: {e}")
            return None

        if not isinstance(payload, str) or not payload:
            return None

        return payload
