"""
==============================================================================
Symbol Decoder Module
==============================================================================

QR symbol decoding with OpenCV and pyzbar.

A frame that holds no readable symbol is the normal case, not an error:
decode() returns None for empty frames, decoder failures and payloads that
are not UTF-8 text.

==============================================================================
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np
from pyzbar.pyzbar import ZBarSymbol, decode


# Module logger
logger = logging.getLogger(__name__)


class SymbolDecoder:
    """
    Extracts the payload of the first symbol found in a frame.

    Attributes:
        qr_only: Restrict decoding to QR codes

    Example:
        >>> decoder = SymbolDecoder()
        >>> decoder.decode(frame)
        'PROD-001'
    """

    def __init__(self, qr_only: bool = True) -> None:
        self._symbols = [ZBarSymbol.QRCODE] if qr_only else None

    def decode(self, frame: Optional[np.ndarray]) -> Optional[str]:
        """
        Decode a single frame.

        Args:
            frame: OpenCV image (numpy array)

        Returns:
            Payload text or None if no symbol was read
        """
        if frame is None or frame.size == 0:
            return None

        try:
            symbols = decode(frame, symbols=self._symbols)
        except Exception as e:
            logger.debug(f"Decode error: {e}")
            return None

        for symbol in symbols:
            try:
                payload = symbol.data.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug(f"Skipping non-UTF-8 {symbol.type} payload")
                continue

            if payload:
                logger.debug(f"Decoded {symbol.type}: {payload!r}")
                return payload

        return None

    def decode_bytes(self, data: bytes) -> Optional[str]:
        """Decode an encoded image (JPEG/PNG bytes)."""
        frame = self.frame_from_bytes(data)
        if frame is None:
            return None
        return self.decode(frame)

    def decode_file(self, image_path: Path) -> Optional[str]:
        """Decode a static image file."""
        if not image_path.exists():
            logger.error(f"Image not found: {image_path}")
            return None

        frame = cv2.imread(str(image_path))
        if frame is None:
            logger.error(f"Could not read image: {image_path}")
            return None

        return self.decode(frame)

    @staticmethod
    def frame_from_bytes(data: bytes) -> Optional[np.ndarray]:
        """Turn encoded image bytes into an OpenCV frame, or None."""
        if not data:
            return None
        nparr = np.frombuffer(data, np.uint8)
        return cv2.imdecode(nparr, cv2.IMREAD_COLOR)
