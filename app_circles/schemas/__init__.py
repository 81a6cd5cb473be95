"""
Record types for the matching engine.

Profiles and groups are validated here, at the repository boundary, so the
matching services only ever see well-formed records.
"""

from app_circles.schemas.profile import Location, Child, UserRecord
from app_circles.schemas.group import LifeStage, GroupStatus, Group
from app_circles.schemas.matching import (
    MatchingConfig,
    BucketError,
    MatchingSummary,
    DispatchResult,
    ApproveResult,
    DeleteResult,
)

__all__ = [
    "Location",
    "Child",
    "UserRecord",
    "LifeStage",
    "GroupStatus",
    "Group",
    "MatchingConfig",
    "BucketError",
    "MatchingSummary",
    "DispatchResult",
    "ApproveResult",
    "DeleteResult",
]
