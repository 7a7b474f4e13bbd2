"""
==============================================================================
Session State Module
==============================================================================

States of a scan/track session and the snapshot handed to presentation.

==============================================================================
"""

from __future__ import annotations

import enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from tracescan.journey.models import ProductJourney


class ScanState(str, enum.Enum):
    """Top-level state of a scan/track session."""

    IDLE = "idle"
    SCANNING = "scanning"
    RESOLVING = "resolving"
    FOUND = "found"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"


class CameraPermission(str, enum.Enum):
    """Outcome of the session's single camera permission request."""

    UNKNOWN = "unknown"
    GRANTED = "granted"
    DENIED = "denied"


class SessionSnapshot(BaseModel):
    """
    Immutable view of a session after a transition.

    Attributes:
        state: Active ScanState
        permission: Camera permission outcome
        product_id: Identifier being resolved or shown
        journey: Resolved journey (only in FOUND)
        error: Retryable lookup failure message (after a transport error)
    """

    model_config = ConfigDict(frozen=True)

    state: ScanState = ScanState.IDLE
    permission: CameraPermission = CameraPermission.UNKNOWN
    product_id: Optional[str] = None
    journey: Optional[ProductJourney] = None
    error: Optional[str] = Field(default=None)

    @property
    def can_scan(self) -> bool:
        """Whether the camera path is usable."""
        return self.permission is CameraPermission.GRANTED

    def to_message(self) -> Dict[str, Any]:
        """WebSocket state message."""
        return {"type": "state", **self.model_dump(mode="json")}
