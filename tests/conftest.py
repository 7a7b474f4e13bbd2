"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides journey data, fake camera/decoder/scheduler doubles, a manual
tick scheduler and the API test client.

==============================================================================
"""

import asyncio
import os
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional

import pytest

# Point the application at the bundled journeys before it is imported.
DATA_DIR = Path(__file__).resolve().parent.parent / "data"
os.environ.setdefault("JOURNEYS_FILE", str(DATA_DIR / "journeys.json"))
os.environ.setdefault("LOOKUP_DELAY_SECONDS", "0")
os.environ.setdefault("PERMISSION_TIMEOUT_SECONDS", "5")

import cv2
import numpy as np
from fastapi.testclient import TestClient

from tracescan.config import Settings
from tracescan.core import exceptions
from tracescan.journey.models import ProductJourney
from tracescan.journey.repository import JsonJourneyRepository
from tracescan.scanner.frame_source import FrameSource, StreamHandle


# ============================================================================
# JOURNEY FIXTURES
# ============================================================================

@pytest.fixture
def journeys_file() -> Path:
    """Bundled journey document (PROD-001, PROD-002)."""
    return DATA_DIR / "journeys.json"


@pytest.fixture
def repository(journeys_file: Path) -> JsonJourneyRepository:
    """JSON repository without simulated latency."""
    return JsonJourneyRepository(journeys_file)


@pytest.fixture
def settings(journeys_file: Path) -> Settings:
    """Settings isolated from the environment's .env file."""
    return Settings(_env_file=None, journeys_file=str(journeys_file), scan_fps=30)


# ============================================================================
# SCHEDULER
# ============================================================================

class _Handle:
    def __init__(self, callback: Callable[[], None]):
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Tick scheduler advanced explicitly by the test."""

    def __init__(self):
        self.handles: List[_Handle] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> _Handle:
        handle = _Handle(callback)
        self.handles.append(handle)
        return handle

    @property
    def active(self) -> int:
        return sum(1 for h in self.handles if not h.cancelled)

    def run_pending(self) -> int:
        """Run every live tick scheduled so far; return how many ran."""
        due, self.handles = self.handles, []
        ran = 0
        for handle in due:
            if not handle.cancelled:
                handle.callback()
                ran += 1
        return ran


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


# ============================================================================
# CAMERA AND DECODER DOUBLES
# ============================================================================

class FakeFrameSource(FrameSource):
    """Frame source with scripted permission and frames."""

    def __init__(self, granted: bool = True):
        super().__init__("environment")
        self.granted = granted
        self.open_calls = 0
        self.close_calls = 0

    def show(self, frame: Any) -> None:
        self._frame = frame

    async def _open(self) -> StreamHandle:
        self.open_calls += 1
        if not self.granted:
            raise exceptions.camera_permission_denied()
        return StreamHandle(facing=self._facing)

    def _close(self) -> None:
        self.close_calls += 1

    def current_frame(self):
        if self._handle is None:
            return None
        return self._frame


class FakeDecoder:
    """Decodes string frames of the form 'qr:<payload>'; 'boom' raises."""

    def __init__(self):
        self.calls = 0

    def decode(self, frame: Any) -> Optional[str]:
        self.calls += 1
        if frame == "boom":
            raise RuntimeError("decoder crashed")
        if isinstance(frame, str) and frame.startswith("qr:"):
            return frame[3:]
        return None


@pytest.fixture
def fake_source() -> FakeFrameSource:
    return FakeFrameSource(granted=True)


@pytest.fixture
def denied_source() -> FakeFrameSource:
    return FakeFrameSource(granted=False)


@pytest.fixture
def fake_decoder() -> FakeDecoder:
    return FakeDecoder()


class FakeCapture:
    """Stand-in for cv2.VideoCapture."""

    def __init__(self, opened: bool = True, frames: Optional[List[Any]] = None):
        self.opened = opened
        self.frames = list(frames or [])
        self.released = 0

    def isOpened(self) -> bool:
        return self.opened

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self) -> None:
        self.released += 1


@pytest.fixture
def capture_factory():
    """Factory fixture: returns (factory, captures) for CameraFrameSource."""
    def build(opened: bool = True, frames: Optional[List[Any]] = None):
        captures: List[FakeCapture] = []

        def factory(device: int) -> FakeCapture:
            capture = FakeCapture(opened=opened, frames=frames)
            captures.append(capture)
            return capture

        return factory, captures

    return build


# ============================================================================
# GATED REPOSITORY
# ============================================================================

class GatedRepository:
    """Repository whose lookups complete only when the test releases them."""

    def __init__(self, journeys: Dict[str, ProductJourney]):
        self.journeys = journeys
        self.gates: Dict[str, List[asyncio.Future]] = {}

    async def lookup(self, identifier: str) -> Optional[ProductJourney]:
        gate = asyncio.get_running_loop().create_future()
        self.gates.setdefault(identifier, []).append(gate)
        failure = await gate
        if failure is not None:
            raise failure
        return self.journeys.get(identifier)

    def release(self, identifier: str, failure: Optional[Exception] = None) -> None:
        self.gates[identifier].pop(0).set_result(failure)


@pytest.fixture
def gated_repository(repository: JsonJourneyRepository) -> GatedRepository:
    journeys = {}
    for identifier in repository.identifiers():
        journeys[identifier] = asyncio.run(repository.lookup(identifier))
    return GatedRepository(journeys)


class BrokenRepository:
    """Repository that is always unreachable."""

    async def lookup(self, identifier: str) -> Optional[ProductJourney]:
        raise ConnectionError("repository unreachable")


@pytest.fixture
def broken_repository() -> BrokenRepository:
    return BrokenRepository()


# ============================================================================
# QR IMAGES
# ============================================================================

@pytest.fixture
def make_qr_frame() -> Callable[[str], np.ndarray]:
    """Render a payload as a BGR frame holding a QR code."""
    if not hasattr(cv2, "QRCodeEncoder"):
        pytest.skip("OpenCV build without QRCodeEncoder")

    def render(payload: str) -> np.ndarray:
        encoder = cv2.QRCodeEncoder.create()
        qr = encoder.encode(payload)
        qr = cv2.resize(qr, None, fx=8, fy=8, interpolation=cv2.INTER_NEAREST)
        qr = cv2.copyMakeBorder(qr, 40, 40, 40, 40, cv2.BORDER_CONSTANT, value=255)
        return cv2.cvtColor(qr, cv2.COLOR_GRAY2BGR)

    return render


# ============================================================================
# API CLIENT
# ============================================================================

@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client running the application lifespan."""
    from tracescan.main import app

    with TestClient(app) as test_client:
        yield test_client
