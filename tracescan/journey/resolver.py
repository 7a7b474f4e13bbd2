"""
==============================================================================
Journey Resolver Module
==============================================================================

Turns a product identifier into a Found or NotFound resolution.

Supersession:
------------
Every resolve() call is numbered. Only the most recently issued request is
current; a result from an older request may still arrive afterwards and the
caller must drop it (check with is_current). Nothing is interrupted: a
superseded lookup simply runs to completion and is ignored.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Awaitable, Optional

from tracescan.core.exceptions import JourneyLookupError

from .models import Found, NotFound, Resolution
from .repository import JourneyRepository


# Module logger
logger = logging.getLogger(__name__)


class JourneyResolver:
    """
    Resolves product identifiers against a journey repository.

    Example:
        >>> resolver = JourneyResolver(repository)
        >>> resolution = await resolver.resolve("PROD-001")
        >>> if resolver.is_current(resolution):
        ...     show(resolution)
    """

    def __init__(self, repository: JourneyRepository) -> None:
        self._repository = repository
        self._issued = 0
        self._latest: Optional[int] = None

    @property
    def latest_request_id(self) -> Optional[int]:
        """Id of the most recently issued request, or None once superseded."""
        return self._latest

    def supersede(self) -> None:
        """Invalidate the in-flight request without issuing a new one."""
        if self._latest is not None:
            logger.debug(f"Request {self._latest} superseded")
        self._latest = None

    def is_current(self, resolution_or_id) -> bool:
        """Check whether a resolution (or request id) is still the latest one."""
        request_id = getattr(resolution_or_id, "request_id", resolution_or_id)
        return request_id is not None and request_id == self._latest

    def resolve(self, product_id: str) -> Awaitable[Resolution]:
        """
        Look up the journey for a product identifier.

        The request is issued (and any earlier one superseded) as soon as
        this method is called, before the returned awaitable runs.

        Args:
            product_id: Exact product identifier

        Returns:
            Awaitable of Found with the journey, or NotFound

        Raises:
            JourneyLookupError: If the repository fails (when awaited)
        """
        self._issued += 1
        request_id = self._issued
        self._latest = request_id

        logger.info(f"🔎 Resolving {product_id!r} (request {request_id})")
        return self._lookup(product_id, request_id)

    async def _lookup(self, product_id: str, request_id: int) -> Resolution:
        try:
            journey = await self._repository.lookup(product_id)
        except Exception as e:
            reason = e.details.get("reason", e.message) if isinstance(e, JourneyLookupError) else str(e)
            logger.error(f"❌ Lookup failed for {product_id!r}: {reason}")
            raise JourneyLookupError(product_id, reason, request_id) from e

        if journey is None:
            logger.info(f"Product {product_id!r} not found (request {request_id})")
            return NotFound(product_id=product_id, request_id=request_id)

        logger.info(f"✅ Resolved {product_id!r}: {len(journey.steps)} steps (request {request_id})")
        return Found(product_id=product_id, request_id=request_id, journey=journey)
