"""
==============================================================================
Journey Package - Product Journey Resolution
==============================================================================

Product journeys, their repository and the superseding resolver.

Classes:
--------
- ProductJourney / JourneyStep / ProductInfo: immutable journey models
- Found / NotFound: resolution outcomes
- JsonJourneyRepository: JSON-backed journey lookup
- JourneyResolver: last-issued-wins identifier resolution

==============================================================================
"""

from .models import (
    Found,
    JourneyStep,
    NotFound,
    ProductInfo,
    ProductJourney,
    Resolution,
    StepStatus,
)
from .repository import (
    JourneyRepository,
    JsonJourneyRepository,
    get_repository,
    init_repository,
)
from .resolver import JourneyResolver

__all__ = [
    "Found",
    "JourneyStep",
    "NotFound",
    "ProductInfo",
    "ProductJourney",
    "Resolution",
    "StepStatus",
    "JourneyRepository",
    "JsonJourneyRepository",
    "get_repository",
    "init_repository",
    "JourneyResolver",
]
