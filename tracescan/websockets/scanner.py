"""
==============================================================================
Scanner WebSocket Module
==============================================================================

Real-time QR scanning and journey tracking over a WebSocket connection.

The browser owns the camera (getUserMedia) and streams frames; the server
runs one ScanSession per connection and reports every state transition.

Protocol:
---------
Client → server:
    {"type": "permission", "granted": true|false}
    {"type": "frame", "frame": "<base64 JPEG/PNG>"}
    {"type": "track", "product_id": "PROD-001"}
    {"type": "scan_another"}
    {"type": "stop"}

Server → client:
    {"type": "state", "state": ..., "permission": ..., "product_id": ...,
     "journey": ..., "error": ...}
    {"type": "error", "code": ..., "message": ...}

==============================================================================
"""

import asyncio
import base64
import binascii
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tracescan.config import get_settings
from tracescan.core import exceptions
from tracescan.core.exceptions import AppException
from tracescan.journey.repository import get_repository
from tracescan.journey.resolver import JourneyResolver
from tracescan.scanner.decoder import SymbolDecoder
from tracescan.scanner.frame_source import PushedFrameSource
from tracescan.session import ScanSession, ScanState, SessionSnapshot


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()


class ScannerWebSocketHandler:
    """
    Handler for scan/track WebSocket connections.

    Manages the lifecycle of a scanning session including:
    - Camera permission relay
    - Frame intake
    - Manual tracking
    - State reporting
    """

    def __init__(self, websocket: WebSocket):
        self._websocket = websocket
        self._settings = get_settings()
        self._source = PushedFrameSource(
            facing=self._settings.camera_facing,
            timeout_seconds=self._settings.permission_timeout_seconds,
        )
        self._outbox: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
        self._session: Optional[ScanSession] = None
        self._frame_count = 0

    def _build_session(self) -> ScanSession:
        repository = get_repository()
        if repository is None:
            raise exceptions.repository_not_loaded()

        return ScanSession(
            self._source,
            JourneyResolver(repository),
            decoder=SymbolDecoder(qr_only=self._settings.qr_only),
            settings=self._settings,
        )

    # =========================================================================
    # OUTGOING
    # =========================================================================

    def _queue_error(self, error: AppException) -> None:
        self._outbox.put_nowait({
            "type": "error",
            "code": error.code,
            "message": error.message
        })

    def _on_snapshot(self, snapshot: SessionSnapshot) -> None:
        self._outbox.put_nowait(snapshot.to_message())

        if snapshot.state is ScanState.IDLE and snapshot.error:
            self._outbox.put_nowait({
                "type": "error",
                "code": "LOOKUP_FAILED",
                "message": snapshot.error
            })

    async def _send_loop(self) -> None:
        while True:
            message = await self._outbox.get()
            if message is None:
                return
            await self._websocket.send_json(message)

    # =========================================================================
    # INCOMING
    # =========================================================================

    async def handle_message(self, data: Dict[str, Any]) -> bool:
        """
        Dispatch one client message.

        Returns:
            False when the client asked to stop
        """
        message_type = data.get("type")

        if message_type == "frame":
            self.handle_frame(data)
        elif message_type == "permission":
            if data.get("granted") is True:
                self._source.grant()
            else:
                self._source.deny()
        elif message_type == "track":
            product_id = data.get("product_id")
            if not isinstance(product_id, str) or not self._session.submit_manual(product_id):
                self._queue_error(exceptions.invalid_product_id())
        elif message_type == "scan_another":
            if not self._session.scan_another():
                self._outbox.put_nowait(self._session.snapshot.to_message())
        elif message_type == "stop":
            logger.info("🛑 Client requested stop")
            return False
        else:
            self._queue_error(exceptions.invalid_message(f"Unknown message type: {message_type!r}"))

        return True

    def handle_frame(self, data: Dict[str, Any]) -> None:
        """Decode a pushed base64 frame into the frame source."""
        try:
            img_data = base64.b64decode(data["frame"], validate=True)
        except (KeyError, TypeError, binascii.Error):
            self._queue_error(exceptions.invalid_message("Frame must be base64 image data"))
            return

        frame = SymbolDecoder.frame_from_bytes(img_data)
        if frame is None:
            logger.debug("Discarding undecodable frame")
            return

        self._frame_count += 1
        self._source.push_frame(frame)

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info("📱 Scanner WebSocket connected")

        try:
            self._session = self._build_session()
        except AppException as e:
            await self._websocket.send_json({"type": "error", "code": e.code, "message": e.message})
            await self._websocket.close()
            return

        sender = asyncio.create_task(self._send_loop())

        async with self._session as session:
            session.subscribe(self._on_snapshot)
            self._on_snapshot(session.snapshot)
            starter = asyncio.create_task(session.start())
            connected = True

            try:
                while True:
                    text = await self._websocket.receive_text()
                    try:
                        data = json.loads(text)
                    except json.JSONDecodeError:
                        self._queue_error(exceptions.invalid_message("Message must be valid JSON"))
                        continue
                    if not isinstance(data, dict):
                        self._queue_error(exceptions.invalid_message("Message must be a JSON object"))
                        continue
                    if not await self.handle_message(data):
                        break

            except WebSocketDisconnect:
                logger.info("📱 Client disconnected")
                connected = False
            except Exception as e:
                logger.error(f"WebSocket error: {e}")
                self._queue_error(exceptions.internal_error(str(e)))
            finally:
                starter.cancel()
                await asyncio.gather(starter, return_exceptions=True)

        self._outbox.put_nowait(None)
        await asyncio.gather(sender, return_exceptions=True)

        if connected:
            await self._websocket.close()
        logger.info(f"✅ Scanner WebSocket closed ({self._frame_count} frames received)")


@router.websocket("/ws/scan")
async def websocket_scan(websocket: WebSocket):
    """Real-time QR scanning and journey tracking via WebSocket."""
    handler = ScannerWebSocketHandler(websocket)
    await handler.run()
