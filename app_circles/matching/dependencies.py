"""
FastAPI dependencies for the matching system.

Provides dependency injection for matching and group lifecycle services.
"""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app_circles.clock import Clock, SystemClock
from app_circles.config import Settings
from app_circles.matching.services.age_model import AgeModel
from app_circles.matching.services.lifecycle_service import GroupLifecycleService
from app_circles.matching.services.matching_service import MatchingService
from app_circles.notifications.dispatcher import EmailIntroductionDispatcher
from app_circles.notifications.email_service import EmailService
from app_circles.repositories import GroupRepository, LeaseRepository, ProfileRepository


_matching_service: Optional[MatchingService] = None
_lifecycle_service: Optional[GroupLifecycleService] = None


def build_email_service(settings: Settings) -> EmailService:
    """Create the email service from settings."""
    return EmailService(
        mode=settings.EMAIL_MODE,
        resend_api_key=settings.RESEND_API_KEY,
        from_email=settings.SMTP_FROM_EMAIL,
        from_name=settings.SMTP_FROM_NAME,
        app_url=settings.APP_URL,
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        smtp_user=settings.SMTP_USER,
        smtp_password=settings.SMTP_PASSWORD,
        timeout=settings.MATCHING_DISPATCH_TIMEOUT_SECONDS,
    )


def build_matching_service(
    db: AsyncIOMotorDatabase,
    settings: Settings,
    clock: Optional[Clock] = None,
) -> MatchingService:
    """Create a MatchingService wired to MongoDB."""
    return MatchingService(
        profile_repository=ProfileRepository(db),
        group_repository=GroupRepository(db),
        lease_repository=LeaseRepository(db),
        clock=clock or SystemClock(),
        config=settings.matching_config(),
        bucket_concurrency=settings.MATCHING_BUCKET_CONCURRENCY,
        repository_timeout=settings.MATCHING_REPOSITORY_TIMEOUT_SECONDS,
        lease_ttl_seconds=settings.MATCHING_LEASE_TTL_SECONDS,
    )


def init_matching_services(
    db: AsyncIOMotorDatabase,
    settings: Settings,
    email_service: Optional[EmailService] = None,
    clock: Optional[Clock] = None,
) -> None:
    """
    Initialize matching services with database connection.

    Called once at application startup.

    Args:
        db: MongoDB database connection
        settings: Application settings
        email_service: Optional pre-built email service
        clock: Optional clock (system UTC clock by default)
    """
    global _matching_service, _lifecycle_service

    clock = clock or SystemClock()
    profile_repository = ProfileRepository(db)
    group_repository = GroupRepository(db)

    dispatcher = EmailIntroductionDispatcher(
        profile_repository=profile_repository,
        email_service=email_service or build_email_service(settings),
        age_model=AgeModel(clock),
    )

    _matching_service = build_matching_service(db, settings, clock=clock)
    _lifecycle_service = GroupLifecycleService(
        group_repository=group_repository,
        profile_repository=profile_repository,
        dispatcher=dispatcher,
        clock=clock,
        repository_timeout=settings.MATCHING_REPOSITORY_TIMEOUT_SECONDS,
        dispatch_timeout=settings.MATCHING_DISPATCH_TIMEOUT_SECONDS,
    )


async def ensure_matching_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes the matching queries rely on."""
    await ProfileRepository(db).ensure_indexes()
    await GroupRepository(db).ensure_indexes()


def get_matching_service() -> MatchingService:
    """Get matching service instance."""
    if _matching_service is None:
        raise RuntimeError("Matching services not initialized.")
    return _matching_service


def get_lifecycle_service() -> GroupLifecycleService:
    """Get group lifecycle service instance."""
    if _lifecycle_service is None:
        raise RuntimeError("Matching services not initialized.")
    return _lifecycle_service
