"""
Notification dispatch for approved groups.
"""

import asyncio
import logging
from typing import Dict, List, Protocol, Tuple

from app_circles.matching.services.age_model import AgeModel
from app_circles.notifications.email_service import EmailService
from app_circles.repositories.profile_repository import ProfileRepository
from app_circles.schemas.group import Group
from app_circles.schemas.matching import DispatchResult
from app_circles.schemas.profile import UserRecord

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def send_group_introduction(self, member_id: str, group: Group) -> DispatchResult:
        ...


class EmailIntroductionDispatcher:
    """
    Sends each member an introduction email listing the whole group.

    Never raises: every problem, including a missing profile or email
    address, comes back as a failed DispatchResult. The roster is loaded
    once per group version and shared by every member's send.
    """

    MAX_CACHED_ROSTERS = 32

    def __init__(
        self,
        profile_repository: ProfileRepository,
        email_service: EmailService,
        age_model: AgeModel,
    ):
        self._profiles = profile_repository
        self._email_service = email_service
        self._age_model = age_model
        self._rosters: Dict[Tuple[str, int], "asyncio.Future[List[UserRecord]]"] = {}

    async def send_group_introduction(self, member_id: str, group: Group) -> DispatchResult:
        try:
            members = await self._load_members(group)
            recipient = next((m for m in members if m.id == member_id), None)

            if recipient is None:
                return self._failed(member_id, "Profile not found")
            if not recipient.email:
                return self._failed(member_id, "No email address on profile")

            roster = [
                {
                    "name": member.display_name,
                    "email": member.email or "",
                    "child_info": self._age_model.describe_child(member.primary_child),
                }
                for member in members
            ]

            result = await self._email_service.send_group_introduction_email(
                to_email=recipient.email,
                recipient_name=recipient.display_name,
                group_name=group.name,
                roster=roster,
            )
        except Exception as e:
            logger.error(f"Introduction for {member_id} in group {group.id} failed: {e}")
            return self._failed(member_id, str(e))

        if not result.get("success"):
            return self._failed(member_id, result.get("error") or "Email send failed")

        return DispatchResult(member_id=member_id, success=True)

    async def _load_members(self, group: Group) -> List[UserRecord]:
        key = (group.id, group.version)
        roster = self._rosters.get(key)
        if roster is None:
            # Older versions of this group are never sent again
            for stale in [k for k in self._rosters if k[0] == group.id]:
                del self._rosters[stale]
            roster = asyncio.ensure_future(self._profiles.get_profiles(group.member_ids))
            self._rosters[key] = roster
            while len(self._rosters) > self.MAX_CACHED_ROSTERS:
                del self._rosters[next(iter(self._rosters))]

        try:
            # Shielded so one member's dispatch timeout does not cancel the shared load
            return await asyncio.shield(roster)
        except Exception:
            if self._rosters.get(key) is roster:
                del self._rosters[key]
            raise

    def _failed(self, member_id: str, error: str) -> DispatchResult:
        logger.warning(f"Could not notify {member_id}: {error}")
        return DispatchResult(member_id=member_id, success=False, error=error)
