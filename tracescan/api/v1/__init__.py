"""
==============================================================================
API v1 Endpoints
==============================================================================

Version 1 of the REST API.

Routers:
--------
- health: Health check endpoints
- journeys: Product journey tracking

==============================================================================
"""

from . import health, journeys

__all__ = ["health", "journeys"]
