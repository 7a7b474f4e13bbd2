"""
==============================================================================
Journey Models Module
==============================================================================

Pydantic models for product supply-chain journeys.

Journeys are immutable snapshots: every model here is frozen, and a session
replaces its journey wholesale rather than editing it.

==============================================================================
"""

from __future__ import annotations

import enum
from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class StepStatus(str, enum.Enum):
    """Custody status of a journey step."""

    COMPLETED = "Completed"
    CURRENT = "Current"
    PENDING = "Pending"


class JourneyStep(BaseModel):
    """
    One custody or location event in a product journey.

    Attributes:
        title: Event title (e.g., "Harvested")
        location: Where the event happened
        date: Display date string (e.g., "2023-10-20")
        status: Completed, Current or Pending
        stage: Optional kind of event used to pick a display icon
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1, description="Event title")
    location: str = Field(..., description="Event location")
    date: str = Field(..., description="Display date")
    status: StepStatus = Field(..., description="Custody status")
    stage: Optional[str] = Field(default=None, description="Event kind")


class ProductInfo(BaseModel):
    """Product header shown above a journey."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Product name")
    image_ref: str = Field(default="", description="Product image reference")
    image_hint: Optional[str] = Field(default=None, description="Image search hint")


class ProductJourney(BaseModel):
    """
    Ordered journey of a product batch.

    Steps keep the repository's chronological order. The repository is
    trusted to supply at most one Current step with Completed steps before
    it and Pending steps after it.
    """

    model_config = ConfigDict(frozen=True)

    product: ProductInfo
    steps: Tuple[JourneyStep, ...] = Field(default_factory=tuple)

    @property
    def current_step(self) -> Optional[JourneyStep]:
        """The step currently holding custody, if any."""
        for step in self.steps:
            if step.status is StepStatus.CURRENT:
                return step
        return None


# =============================================================================
# RESOLUTION OUTCOMES
# =============================================================================

class Found(BaseModel):
    """A resolution that located a journey."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    request_id: int
    journey: ProductJourney


class NotFound(BaseModel):
    """A resolution for an identifier the repository does not know."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    request_id: int


Resolution = Union[Found, NotFound]
