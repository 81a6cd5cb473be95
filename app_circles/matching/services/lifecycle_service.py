"""
Group lifecycle: approval, introduction resends and deletion.
"""

import asyncio
import logging
from typing import Optional, List, Awaitable, TypeVar

from common.utils.exceptions import NotFoundException
from app_circles.clock import Clock
from app_circles.matching.exceptions import InvalidTransitionException
from app_circles.notifications.dispatcher import NotificationDispatcher
from app_circles.repositories.group_repository import GroupRepository
from app_circles.repositories.profile_repository import ProfileRepository
from app_circles.schemas.group import Group, GroupStatus
from app_circles.schemas.matching import ApproveResult, DeleteResult, DispatchResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GroupLifecycleService:
    """
    Moves groups through PENDING -> ACTIVE -> DELETED.

    Status writes are version-checked, so a concurrent approve and delete on
    the same group cannot both win; the loser gets ConcurrentModificationException.
    A member is never sent the introduction twice: only ids missing from
    ``notified_member_ids`` are dispatched to, and each successful send is
    recorded as soon as it completes.
    """

    NOTIFIED_WRITE_ATTEMPTS = 3

    def __init__(
        self,
        group_repository: GroupRepository,
        profile_repository: ProfileRepository,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        repository_timeout: float = 10.0,
        dispatch_timeout: float = 15.0,
    ):
        self._groups = group_repository
        self._profiles = profile_repository
        self._dispatcher = dispatcher
        self._clock = clock
        self._repository_timeout = repository_timeout
        self._dispatch_timeout = dispatch_timeout

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    async def get_group(self, group_id: str) -> Group:
        group = await self._bounded(self._groups.get(group_id))
        if not group:
            raise NotFoundException(message="Group not found", code="GROUP_NOT_FOUND")
        return group

    async def list_groups(self, status: Optional[GroupStatus] = None, limit: int = 100) -> List[Group]:
        return await self._bounded(self._groups.list(status=status, limit=limit))

    # ─────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────

    async def approve(self, group_id: str) -> ApproveResult:
        """
        Approve a group and send introductions.

        PENDING groups become ACTIVE. On an ACTIVE group this only retries
        members who have not been notified yet; if there are none the call
        is rejected.

        Raises:
            NotFoundException: If the group does not exist
            InvalidTransitionException: If the group is DELETED, or ACTIVE
                with every member already notified
            ConcurrentModificationException: If the group changed underneath us
        """
        group = await self.get_group(group_id)

        if group.status == GroupStatus.PENDING:
            group = await self._bounded(
                self._groups.update(
                    group.id,
                    {"status": GroupStatus.ACTIVE, "approvedAt": self._clock.now()},
                    expected_version=group.version,
                )
            )
            logger.info(f"Approved group {group.id} ({group.name})")
            return await self._send_introductions(group)

        if group.status == GroupStatus.ACTIVE:
            return await self._resend_active(group, action="approve")

        raise InvalidTransitionException(group.id, group.status, "approve")

    async def resend(self, group_id: str) -> ApproveResult:
        """Retry introductions for the still-unnotified members of an ACTIVE group."""
        group = await self.get_group(group_id)

        if group.status != GroupStatus.ACTIVE:
            raise InvalidTransitionException(group.id, group.status, "resend")

        return await self._resend_active(group, action="resend")

    async def delete(self, group_id: str) -> DeleteResult:
        """
        Delete a group and return its members to the eligible pool.

        The group record is kept with status DELETED and its member_ids.
        A member is only released if their profile still points at this group.

        Raises:
            NotFoundException: If the group does not exist
            InvalidTransitionException: If the group is already DELETED
            ConcurrentModificationException: If the group changed underneath us
        """
        group = await self.get_group(group_id)

        if group.status == GroupStatus.DELETED:
            raise InvalidTransitionException(group.id, group.status, "delete")

        now = self._clock.now()
        group = await self._bounded(
            self._groups.update(
                group.id,
                {"status": GroupStatus.DELETED, "deletedAt": now},
                expected_version=group.version,
            )
        )

        result = DeleteResult(group_id=group.id)
        for member_id in group.member_ids:
            try:
                released = await self._bounded(
                    self._profiles.set_group_assignment(
                        member_id, None, expected_group_id=group.id, at=now
                    )
                )
            except Exception as e:
                logger.error(f"Failed to release {member_id} from deleted group {group.id}: {e}")
                result.skipped.append(member_id)
                continue

            if released:
                result.returned_to_pool.append(member_id)
            else:
                logger.warning(
                    f"User {member_id} no longer belongs to group {group.id}; leaving their assignment alone"
                )
                result.skipped.append(member_id)

        logger.info(
            f"Deleted group {group.id}: {len(result.returned_to_pool)} returned to pool, "
            f"{len(result.skipped)} skipped"
        )
        return result

    # ─────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────

    async def _resend_active(self, group: Group, action: str) -> ApproveResult:
        if not group.unnotified_member_ids():
            raise InvalidTransitionException(
                group.id,
                group.status,
                action,
                message="Every member of this group has already been notified",
            )

        # Version bump so two concurrent resends cannot both dispatch
        group = await self._bounded(
            self._groups.update(
                group.id,
                {"status": GroupStatus.ACTIVE},
                expected_version=group.version,
            )
        )
        return await self._send_introductions(group)

    async def _send_introductions(self, group: Group) -> ApproveResult:
        pending = group.unnotified_member_ids()
        result = ApproveResult(group_id=group.id, status=group.status)
        if not pending:
            return result

        outcomes = await asyncio.gather(
            *(self._notify_member(member_id, group) for member_id in pending)
        )

        for outcome in outcomes:
            if outcome.success:
                result.notified.append(outcome.member_id)
            else:
                result.failed.append(outcome.member_id)

        logger.info(
            f"Introductions for group {group.id}: {len(result.notified)} notified, "
            f"{len(result.failed)} failed"
        )
        return result

    async def _notify_member(self, member_id: str, group: Group) -> DispatchResult:
        """Send one introduction and record the member as notified right away."""
        outcome = await self._dispatch_one(member_id, group)
        if outcome.success:
            await self._record_notified(member_id, group)
        return outcome

    async def _record_notified(self, member_id: str, group: Group) -> None:
        for attempt in range(1, self.NOTIFIED_WRITE_ATTEMPTS + 1):
            try:
                await self._bounded(
                    self._groups.add_notified_members(group.id, [member_id], self._clock.now())
                )
                return
            except Exception as e:
                reason = str(e) or type(e).__name__
                logger.warning(
                    f"Recording {member_id} as notified in group {group.id} failed "
                    f"(attempt {attempt}/{self.NOTIFIED_WRITE_ATTEMPTS}): {reason}"
                )

        # The email went out; a later resend would contact this member again
        logger.error(f"Gave up recording {member_id} as notified in group {group.id}")

    async def _dispatch_one(self, member_id: str, group: Group) -> DispatchResult:
        try:
            return await asyncio.wait_for(
                self._dispatcher.send_group_introduction(member_id, group),
                timeout=self._dispatch_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Introduction to {member_id} timed out after {self._dispatch_timeout}s")
            return DispatchResult(member_id=member_id, success=False, error="Dispatch timed out")
        except Exception as e:
            logger.error(f"Dispatcher raised for {member_id}: {e}")
            return DispatchResult(member_id=member_id, success=False, error=str(e))

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._repository_timeout)
