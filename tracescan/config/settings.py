"""
==============================================================================
Application Settings Module
==============================================================================

Configuration management using Pydantic Settings.

A single cached Settings instance is shared by the web application, the
scanning sessions and the local camera runner.

Configuration Priority (highest to lowest):
------------------------------------------
1. Environment variables
2. .env file
3. Default values

Scanning Settings:
-----------------
- scan_fps controls the tick cadence of the scan loop
- camera_facing selects which camera the local runner opens
- permission_timeout_seconds bounds how long a pushed-frame session waits
  for the browser's camera verdict

==============================================================================
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Display name for the application
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        cors_origins: Allowed CORS origins (JSON array string)
        journeys_file: Path to the product journey JSON document
        lookup_delay_seconds: Simulated latency of each journey lookup
        scan_fps: Decode attempts per second while scanning
        camera_facing: Camera used by the local runner (environment/user)
        environment_camera_index: OpenCV index of the rear camera
        user_camera_index: OpenCV index of the front camera
        permission_timeout_seconds: Wait for a remote camera verdict
        qr_only: Restrict decoding to QR symbols

    Example:
        >>> settings = Settings()
        >>> settings.scan_interval_seconds
        0.03333333333333333
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    # =========================================================================
    # APPLICATION SETTINGS
    # =========================================================================
    app_name: str = Field(
        default="TraceScan Journey API",
        description="Display name for the application"
    )

    app_env: str = Field(
        default="development",
        description="Environment mode: development, staging, production"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode for verbose logging"
    )

    # =========================================================================
    # SERVER SETTINGS
    # =========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Server bind address"
    )

    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port number"
    )

    cors_origins: str = Field(
        default='["*"]',
        description="Allowed CORS origins as JSON array string"
    )

    # =========================================================================
    # JOURNEY REPOSITORY SETTINGS
    # =========================================================================
    journeys_file: str = Field(
        default="data/journeys.json",
        description="Path to product journey JSON"
    )

    lookup_delay_seconds: float = Field(
        default=0.0,
        ge=0.0,
        le=30.0,
        description="Simulated latency added to every journey lookup"
    )

    # =========================================================================
    # SCANNER SETTINGS
    # =========================================================================
    scan_fps: int = Field(
        default=30,
        ge=1,
        le=120,
        description="Decode attempts per second while scanning"
    )

    camera_facing: str = Field(
        default="environment",
        description="Camera used by the local runner: environment or user"
    )

    environment_camera_index: int = Field(
        default=0,
        ge=0,
        description="OpenCV device index of the rear camera"
    )

    user_camera_index: int = Field(
        default=1,
        ge=0,
        description="OpenCV device index of the front camera"
    )

    permission_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="How long a pushed-frame session waits for camera permission"
    )

    qr_only: bool = Field(
        default=True,
        description="Only decode QR symbols"
    )

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """
        Validate and normalize application environment.

        Unknown values fall back to 'development' with a warning.
        """
        valid_envs = {"development", "staging", "production"}
        normalized = value.lower().strip()

        if normalized not in valid_envs:
            logger.warning(
                f"Unknown environment '{value}', defaulting to 'development'"
            )
            return "development"

        return normalized

    @field_validator("camera_facing")
    @classmethod
    def validate_camera_facing(cls, value: str) -> str:
        """
        Validate camera facing mode.

        Raises:
            ValueError: If facing is neither 'environment' nor 'user'
        """
        normalized = value.lower().strip()

        if normalized not in {"environment", "user"}:
            raise ValueError(
                f"Unsupported camera facing: {value}. "
                "Supported: environment, user"
            )

        return normalized

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def journeys_path(self) -> Path:
        """Journey document as Path object."""
        return Path(self.journeys_file)

    @property
    def scan_interval_seconds(self) -> float:
        """Delay between two scan loop ticks."""
        return 1.0 / self.scan_fps

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS origins from JSON string to list.

        Returns:
            List of allowed origin strings
        """
        try:
            origins = json.loads(self.cors_origins)
            if isinstance(origins, list):
                return origins
            return ["*"]
        except json.JSONDecodeError:
            logger.warning(
                f"Invalid CORS origins JSON: {self.cors_origins}, "
                "defaulting to ['*']"
            )
            return ["*"]

    def camera_index_for(self, facing: str) -> int:
        """Map a facing mode to an OpenCV device index."""
        if facing == "user":
            return self.user_camera_index
        return self.environment_camera_index

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Settings(app_name={self.app_name!r}, "
            f"app_env={self.app_env!r}, "
            f"debug={self.debug})"
        )


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the global Settings instance (singleton pattern).

    Returns:
        Global Settings instance
    """
    settings = Settings()

    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings
