"""
==============================================================================
Local Scanner Runner
==============================================================================

Runs one scan/track session against a local camera, a still image or a
manually entered product ID, and prints the resolved journey.

Usage:
------
    python -m tracescan.local_scanner
    python -m tracescan.local_scanner --facing user --timeout 60
    python -m tracescan.local_scanner --image label.png
    python -m tracescan.local_scanner --product-id PROD-001

Exit codes: 0 journey found, 1 product not found, 2 camera unavailable,
lookup failure or nothing decoded before the timeout.

==============================================================================
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from tracescan.config import Settings, get_settings
from tracescan.journey.models import ProductJourney
from tracescan.journey.repository import JourneyRepository, JsonJourneyRepository
from tracescan.journey.resolver import JourneyResolver
from tracescan.scanner.decoder import SymbolDecoder
from tracescan.scanner.frame_source import CameraFrameSource, FrameSource, ImageFrameSource
from tracescan.session import ScanSession, ScanState, SessionSnapshot


# Module logger
logger = logging.getLogger(__name__)

_SETTLED_STATES = {ScanState.FOUND, ScanState.NOT_FOUND, ScanState.PERMISSION_DENIED}


def _is_settled(snapshot: SessionSnapshot) -> bool:
    if snapshot.state in _SETTLED_STATES:
        return True
    return snapshot.state is ScanState.IDLE and snapshot.error is not None


async def run_local_scan(
    frame_source: FrameSource,
    repository: JourneyRepository,
    settings: Settings,
    product_id: Optional[str] = None,
    timeout: Optional[float] = None,
    decoder: Optional[SymbolDecoder] = None,
) -> Optional[SessionSnapshot]:
    """
    Run a session until it settles.

    Args:
        frame_source: Camera or image to scan
        repository: Journey repository
        settings: Application settings
        product_id: Skip the camera and track this ID
        timeout: Seconds to wait for a result (None waits forever)
        decoder: Symbol decoder override

    Returns:
        Settled snapshot, or None if the timeout expired first
    """
    settled = asyncio.Event()

    def on_snapshot(snapshot: SessionSnapshot) -> None:
        if _is_settled(snapshot):
            settled.set()

    async with ScanSession(frame_source, JourneyResolver(repository), decoder=decoder, settings=settings) as session:
        session.subscribe(on_snapshot)

        if product_id is not None:
            if not session.submit_manual(product_id):
                logger.error("Product ID is required")
                return None
        else:
            await session.start()

        try:
            await asyncio.wait_for(settled.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"No result within {timeout} seconds")
            return None

        return session.snapshot


def format_journey(product_id: str, journey: ProductJourney) -> str:
    """Render a journey as plain text."""
    separator = "=" * 60
    lines = [
        separator,
        f"PRODUCT JOURNEY: {journey.product.name}",
        f"ID: {product_id}",
        separator,
        "",
    ]

    for step in journey.steps:
        marker = {"Completed": "[✓]", "Current": "[●]"}.get(step.status.value, "[ ]")
        lines.extend([
            f"{marker} {step.title}",
            f"    {step.location}",
            f"    {step.date}",
            ""
        ])

    lines.append(separator)
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scan a product QR code and show its journey")
    parser.add_argument("--facing", choices=["environment", "user"], default=None,
                        help="Camera to use (default from settings)")
    parser.add_argument("--image", type=Path, default=None,
                        help="Decode a still image instead of the camera")
    parser.add_argument("--product-id", default=None,
                        help="Track this product ID without scanning")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Give up after this many seconds")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    repository = JsonJourneyRepository(settings.journeys_path, settings.lookup_delay_seconds)

    if args.image is not None:
        source: FrameSource = ImageFrameSource(args.image)
        timeout = args.timeout if args.timeout is not None else 5.0
    else:
        source = CameraFrameSource(args.facing or settings.camera_facing, settings)
        timeout = args.timeout

    snapshot = asyncio.run(run_local_scan(source, repository, settings, args.product_id, timeout))

    if snapshot is None:
        print("No product identified.")
        return 2

    if snapshot.state is ScanState.FOUND:
        print(format_journey(snapshot.product_id, snapshot.journey))
        return 0

    if snapshot.state is ScanState.NOT_FOUND:
        print(f"No journey information found for product ID: {snapshot.product_id}")
        return 1

    if snapshot.state is ScanState.PERMISSION_DENIED:
        print("Camera access is required to scan. You can still track by ID with --product-id.")
        return 2

    print(snapshot.error or "Lookup failed.")
    return 2


if __name__ == "__main__":
    sys.exit(main())
