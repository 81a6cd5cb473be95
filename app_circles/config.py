"""
DadCircles matching settings.

Extends the base settings with email and matching configuration.
"""

from typing import Optional

from common.config import BaseAppSettings
from app_circles.schemas.group import LifeStage
from app_circles.schemas.matching import MatchingConfig


class Settings(BaseAppSettings):
    """Matching-engine settings."""

    # ==========================================================================
    # Email Settings (group introductions)
    # ==========================================================================
    EMAIL_MODE: str = "console"
    RESEND_API_KEY: Optional[str] = None
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 465
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: str = "noreply@dadcircles.com"
    SMTP_FROM_NAME: str = "DadCircles"

    # Frontend URL (for email links)
    APP_URL: str = "http://localhost:3000"

    # ==========================================================================
    # Matching
    # ==========================================================================
    MATCHING_MIN_GROUP_SIZE: int = 4
    MATCHING_MAX_GROUP_SIZE: int = 6

    # Max spread between youngest and oldest child in a group, in months
    MATCHING_MAX_GAP_MONTHS_EXPECTING: float = 6
    MATCHING_MAX_GAP_MONTHS_NEWBORN: float = 3
    MATCHING_MAX_GAP_MONTHS_INFANT: float = 6
    MATCHING_MAX_GAP_MONTHS_TODDLER: float = 12

    MATCHING_BUCKET_CONCURRENCY: int = 4
    MATCHING_REPOSITORY_TIMEOUT_SECONDS: float = 10
    MATCHING_DISPATCH_TIMEOUT_SECONDS: float = 15
    MATCHING_LEASE_TTL_SECONDS: int = 900

    def matching_config(self) -> MatchingConfig:
        """Build the immutable matching configuration."""
        return MatchingConfig(
            min_size=self.MATCHING_MIN_GROUP_SIZE,
            max_size=self.MATCHING_MAX_GROUP_SIZE,
            max_gap_months={
                LifeStage.EXPECTING: self.MATCHING_MAX_GAP_MONTHS_EXPECTING,
                LifeStage.NEWBORN: self.MATCHING_MAX_GAP_MONTHS_NEWBORN,
                LifeStage.INFANT: self.MATCHING_MAX_GAP_MONTHS_INFANT,
                LifeStage.TODDLER: self.MATCHING_MAX_GAP_MONTHS_TODDLER,
            },
        )

    def validate_required(self) -> None:
        """
        Fail fast on settings the engine cannot run with.

        Raises:
            ValueError: If sizes, timeouts or concurrency are out of range
        """
        if self.MATCHING_MIN_GROUP_SIZE < 1:
            raise ValueError("MATCHING_MIN_GROUP_SIZE must be at least 1")
        if self.MATCHING_MIN_GROUP_SIZE > self.MATCHING_MAX_GROUP_SIZE:
            raise ValueError("MATCHING_MIN_GROUP_SIZE cannot exceed MATCHING_MAX_GROUP_SIZE")
        if self.MATCHING_BUCKET_CONCURRENCY < 1:
            raise ValueError("MATCHING_BUCKET_CONCURRENCY must be at least 1")
        if self.MATCHING_REPOSITORY_TIMEOUT_SECONDS <= 0 or self.MATCHING_DISPATCH_TIMEOUT_SECONDS <= 0:
            raise ValueError("Matching timeouts must be positive")
        if self.EMAIL_MODE not in ("console", "smtp", "resend"):
            raise ValueError(f"Unknown EMAIL_MODE: {self.EMAIL_MODE}")


# Global settings instance
settings = Settings()
