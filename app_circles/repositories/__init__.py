"""
MongoDB repositories for profiles, groups and the matching run lease.
"""

from app_circles.repositories.profile_repository import ProfileRepository
from app_circles.repositories.group_repository import GroupRepository
from app_circles.repositories.lease_repository import LeaseRepository

__all__ = [
    "ProfileRepository",
    "GroupRepository",
    "LeaseRepository",
]
