"""
==============================================================================
Health Check Endpoints
==============================================================================

System health status endpoints for monitoring and orchestration.

==============================================================================
"""

from fastapi import APIRouter

from tracescan.journey.repository import get_repository


router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Controller for health check operations."""

    def check_repository(self) -> dict:
        """Check journey repository status."""
        repository = get_repository()
        if repository is not None:
            return {"status": "healthy", "journeys": len(repository)}
        return {"status": "not_loaded", "journeys": 0}

    def get_health(self) -> dict:
        """Get full health status."""
        repository_info = self.check_repository()

        overall = "healthy" if repository_info["status"] == "healthy" else "degraded"

        return {
            "status": overall,
            "components": {
                "api": "healthy",
                "repository": repository_info["status"]
            },
            "details": {
                "journeys_loaded": repository_info["journeys"]
            }
        }


@router.get("")
async def health_check():
    """
    Health check endpoint.

    Returns system status including API and journey repository.
    """
    controller = HealthController()
    return controller.get_health()


@router.get("/ready")
async def readiness_check():
    """Readiness probe for container orchestration."""
    return {"ready": get_repository() is not None}


@router.get("/live")
async def liveness_check():
    """Liveness probe for container orchestration."""
    return {"alive": True}
