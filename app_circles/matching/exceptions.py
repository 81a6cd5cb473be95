"""
Matching-specific API exceptions.

All of these are 409s: the caller asked for something the current state of a
group or of the matching run does not allow.
"""

from typing import Optional

from common.utils.exceptions import ConflictException
from app_circles.schemas.group import GroupStatus


class InvalidTransitionException(ConflictException):
    """approve/delete/resend requested from a status that forbids it. Nothing is mutated."""

    def __init__(self, group_id: str, status: GroupStatus, action: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"Cannot {action} a group that is {status.value}",
            code="INVALID_GROUP_TRANSITION",
            details={"groupId": group_id, "status": status.value, "action": action},
        )
        self.group_id = group_id
        self.status = status
        self.action = action


class ConcurrentModificationException(ConflictException):
    """Optimistic version check failed; retry the specific operation."""

    def __init__(self, group_id: str, expected_version: int):
        super().__init__(
            message="Group was modified concurrently, please retry",
            code="CONCURRENT_MODIFICATION",
            details={"groupId": group_id, "expectedVersion": expected_version},
        )
        self.group_id = group_id
        self.expected_version = expected_version


class MatchingInProgressException(ConflictException):
    """Another matching run holds the run lease."""

    def __init__(self):
        super().__init__(
            message="A matching run is already in progress",
            code="MATCHING_IN_PROGRESS",
        )
