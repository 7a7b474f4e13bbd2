"""
==============================================================================
Journey Repository Module
==============================================================================

Lookup of product journeys by exact product identifier.

The repository is the boundary to wherever journeys are actually stored.
Any object with an async ``lookup(identifier)`` method satisfies
JourneyRepository; JsonJourneyRepository serves journeys from a JSON
document.

JSON Structure:
--------------
{
  "PROD-001": {
    "product": {"name": "Organic Tomatoes", "image_ref": "...", "image_hint": "..."},
    "steps": [
      {"title": "Harvested", "location": "Green Valley Farms",
       "date": "2023-10-20", "status": "Completed", "stage": "harvested"},
      ...
    ]
  }
}

==============================================================================
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from .models import ProductJourney


# Module logger
logger = logging.getLogger(__name__)


class JourneyRepository(Protocol):
    """Asynchronous, side-effect-free journey lookup."""

    async def lookup(self, identifier: str) -> Optional[ProductJourney]:
        ...


class JsonJourneyRepository:
    """
    Journey repository backed by a JSON file.

    Identifiers are matched exactly; no trimming or case folding is applied.

    Attributes:
        journeys_file: Path to journeys.json
        delay_seconds: Simulated latency added to every lookup

    Example:
        >>> repo = JsonJourneyRepository(Path("data/journeys.json"))
        >>> journey = await repo.lookup("PROD-001")
        >>> len(journey.steps)
        5
    """

    def __init__(self, journeys_file: Path, delay_seconds: float = 0.0) -> None:
        """
        Initialize repository from JSON file.

        Args:
            journeys_file: Path to journeys.json
            delay_seconds: Simulated latency for each lookup
        """
        self._journeys_file = journeys_file
        self._delay_seconds = delay_seconds
        self._journeys: Dict[str, ProductJourney] = {}

        self._load()

    # =========================================================================
    # LOADING
    # =========================================================================

    def _load(self) -> None:
        """Load journeys from JSON file."""
        try:
            with self._journeys_file.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.error(f"Journeys file not found: {self._journeys_file}")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON: {e}")
            raise

        if not isinstance(data, dict):
            logger.error(f"Journeys file must hold a JSON object: {self._journeys_file}")
            raise ValueError(f"Journeys file must hold a JSON object, got {type(data).__name__}")

        journeys: Dict[str, ProductJourney] = {}

        for identifier, record in data.items():
            if not identifier or not isinstance(record, dict):
                logger.warning(f"Skipping invalid journey entry: {identifier!r}")
                continue

            try:
                journeys[identifier] = ProductJourney.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Skipping malformed journey {identifier!r}: {e.error_count()} errors")

        self._journeys = journeys
        logger.info(f"✅ Loaded {len(self._journeys)} journeys from {self._journeys_file}")

    def reload(self) -> None:
        """Reload journeys from file."""
        logger.info("Reloading journey repository...")
        self._load()

    # =========================================================================
    # LOOKUP
    # =========================================================================

    async def lookup(self, identifier: str) -> Optional[ProductJourney]:
        """
        Find the journey for a product identifier.

        Args:
            identifier: Exact product identifier

        Returns:
            ProductJourney or None if the identifier is unknown
        """
        if self._delay_seconds:
            await asyncio.sleep(self._delay_seconds)

        return self._journeys.get(identifier)

    def identifiers(self) -> List[str]:
        """All known product identifiers, in file order."""
        return list(self._journeys.keys())

    def __len__(self) -> int:
        return len(self._journeys)


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

_repository_instance: Optional[JsonJourneyRepository] = None


def get_repository() -> Optional[JsonJourneyRepository]:
    """Get the global repository instance."""
    return _repository_instance


def init_repository(journeys_file: Path, delay_seconds: float = 0.0) -> JsonJourneyRepository:
    """
    Initialize the global repository instance.

    Args:
        journeys_file: Path to journeys.json
        delay_seconds: Simulated latency for each lookup

    Returns:
        JsonJourneyRepository instance
    """
    global _repository_instance
    _repository_instance = JsonJourneyRepository(journeys_file, delay_seconds)
    return _repository_instance
