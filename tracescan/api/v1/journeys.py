"""
==============================================================================
Journey Tracking Endpoints
==============================================================================

Manual product tracking: look up a journey by product identifier.

==============================================================================
"""

from fastapi import APIRouter

from tracescan.core import exceptions
from tracescan.journey.models import Found
from tracescan.journey.repository import get_repository
from tracescan.journey.resolver import JourneyResolver


router = APIRouter(prefix="/journeys", tags=["Journeys"])


class JourneyController:
    """Controller for journey lookups."""

    def __init__(self):
        self._repository = get_repository()
        if not self._repository:
            raise exceptions.repository_not_loaded()
        self._resolver = JourneyResolver(self._repository)

    def list_products(self) -> dict:
        """List trackable product identifiers."""
        identifiers = self._repository.identifiers()
        return {
            "success": True,
            "total": len(identifiers),
            "product_ids": identifiers
        }

    async def get_journey(self, product_id: str) -> dict:
        """Resolve one product journey."""
        resolution = await self._resolver.resolve(product_id)

        if not isinstance(resolution, Found):
            raise exceptions.journey_not_found(product_id)

        journey = resolution.journey
        current = journey.current_step

        return {
            "success": True,
            "product_id": product_id,
            "journey": journey.model_dump(mode="json"),
            "current_step": current.model_dump(mode="json") if current else None
        }


@router.get("")
async def list_products():
    """List product identifiers with a recorded journey."""
    controller = JourneyController()
    return controller.list_products()


@router.get("/{product_id}")
async def get_journey(product_id: str):
    """Get the verified journey of a product."""
    controller = JourneyController()
    return await controller.get_journey(product_id)
