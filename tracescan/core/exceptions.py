"""
Application Exception Handling

AppException is the root of all application errors and carries the error
response format used by the FastAPI handler and the WebSocket error messages.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppException(Exception):
    """
    Unified application exception for all error scenarios.

    Usage:
        raise AppException("Journey not found", "JOURNEY_NOT_FOUND", 404)

    Error Codes:
        Camera:
            - CAMERA_PERMISSION_DENIED (403)

        Journey:
            - INVALID_PRODUCT_ID (400)
            - JOURNEY_NOT_FOUND (404)
            - LOOKUP_FAILED (503)
            - REPOSITORY_NOT_LOADED (500)

        General:
            - INVALID_MESSAGE (400)
            - INTERNAL_ERROR (500)
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "JOURNEY_NOT_FOUND")
            status_code: HTTP status code (default: 400)
            details: Additional error context (optional)
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


class CameraPermissionError(AppException):
    """Camera access was refused or no camera device is available."""

    def __init__(self, reason: str = "Camera access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(reason, "CAMERA_PERMISSION_DENIED", 403, details)


class JourneyLookupError(AppException):
    """The journey repository could not be reached or failed."""

    def __init__(self, product_id: str, reason: str, request_id: Optional[int] = None):
        details: Dict[str, Any] = {"product_id": product_id, "reason": reason}
        if request_id is not None:
            details["request_id"] = request_id
        super().__init__(
            f"Journey lookup failed for '{product_id}'",
            "LOOKUP_FAILED",
            503,
            details
        )
        self.product_id = product_id
        self.request_id = request_id


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    FastAPI exception handler for AppException.

    Converts AppException to consistent JSON error response.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)


# ============================================
# CONVENIENCE FACTORY FUNCTIONS
# ============================================

def camera_unavailable(facing: str, device: Optional[int] = None) -> CameraPermissionError:
    """Create camera unavailable exception."""
    details: Dict[str, Any] = {"facing": facing}
    if device is not None:
        details["device"] = device
    return CameraPermissionError(f"No {facing} camera available", details)


def camera_permission_denied() -> CameraPermissionError:
    """Create camera permission denied exception."""
    return CameraPermissionError("Camera access denied by the client")


def invalid_product_id() -> AppException:
    """Create invalid (empty) product identifier exception."""
    return AppException("Product ID is required", "INVALID_PRODUCT_ID", 400)


def journey_not_found(product_id: str) -> AppException:
    """Create journey not found exception."""
    return AppException(
        f"No journey information found for product ID: {product_id}",
        "JOURNEY_NOT_FOUND",
        404,
        {"product_id": product_id}
    )


def repository_not_loaded() -> AppException:
    """Create repository not loaded exception."""
    return AppException(
        "Journey repository not loaded",
        "REPOSITORY_NOT_LOADED",
        500
    )


def invalid_message(reason: str) -> AppException:
    """Create malformed client message exception."""
    return AppException(reason, "INVALID_MESSAGE", 400)


def internal_error(message: str = "Internal server error") -> AppException:
    """Create internal server error exception."""
    return AppException(message, "INTERNAL_ERROR", 500)
