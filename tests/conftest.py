"""Shared test fixtures for DadCircles matching tests."""

import asyncio
from datetime import datetime, timezone, timedelta
from typing import Optional, List, Dict, Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from common.utils.exceptions import NotFoundException
from app_circles.clock import FixedClock
from app_circles.matching.exceptions import ConcurrentModificationException
from app_circles.schemas.group import Group, GroupStatus
from app_circles.schemas.matching import DispatchResult
from app_circles.schemas.profile import UserRecord

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


# ─────────────────────────────────────────────────────────────────
# In-memory repositories
#
# Same conditional-write semantics as the Mongo repositories; every call
# yields to the event loop so concurrent runs actually interleave.
# ─────────────────────────────────────────────────────────────────


class InMemoryProfileRepository:
    def __init__(self, users: Optional[List[UserRecord]] = None):
        self.users: Dict[str, UserRecord] = {u.id: u for u in (users or [])}
        self.before_claim: Optional[Callable[[str, Optional[str]], None]] = None
        self.fail_release_for: set = set()
        self.list_delay: float = 0
        self.batch_reads: int = 0

    def add(self, *users: UserRecord) -> None:
        for user in users:
            self.users[user.id] = user

    async def list_eligible_unmatched(self, city=None, region_code=None) -> List[UserRecord]:
        await asyncio.sleep(self.list_delay)
        result = []
        for user in self.users.values():
            if not user.in_pool:
                continue
            if city and region_code:
                if user.location is None or user.location.key != (city, region_code):
                    continue
            result.append(user.model_copy())
        return result

    async def get_profile(self, profile_id: str) -> Optional[UserRecord]:
        await asyncio.sleep(0)
        user = self.users.get(profile_id)
        return user.model_copy() if user else None

    async def get_profiles(self, profile_ids: List[str]) -> List[UserRecord]:
        self.batch_reads += 1
        await asyncio.sleep(0)
        return [self.users[pid].model_copy() for pid in profile_ids if pid in self.users]

    async def set_group_assignment(self, profile_id, group_id, expected_group_id, at) -> bool:
        await asyncio.sleep(0)
        if self.before_claim is not None:
            self.before_claim(profile_id, group_id)
        if group_id is None and profile_id in self.fail_release_for:
            raise RuntimeError("profile store unavailable")

        user = self.users.get(profile_id)
        if user is None or user.group_id != expected_group_id:
            return False

        self.users[profile_id] = user.model_copy(
            update={"group_id": group_id, "matched_at": at if group_id else None}
        )
        return True

    def group_of(self, profile_id: str) -> Optional[str]:
        return self.users[profile_id].group_id


class InMemoryGroupRepository:
    def __init__(self):
        self.groups: Dict[str, Group] = {}
        self.fail_create: Optional[Exception] = None
        self.create_delay: float = 0
        self.fail_notified_writes: int = 0
        self.created: List[str] = []

    async def create(self, group: Group) -> Group:
        await asyncio.sleep(0)
        if self.fail_create is not None:
            raise self.fail_create
        self.groups[group.id] = group
        self.created.append(group.id)
        # Stored, but the acknowledgement is slow
        await asyncio.sleep(self.create_delay)
        return group

    async def get(self, group_id: str) -> Optional[Group]:
        await asyncio.sleep(0)
        group = self.groups.get(group_id)
        return group.model_copy(deep=True) if group else None

    async def list(self, status=None, limit=100) -> List[Group]:
        groups = [g for g in self.groups.values() if status is None or g.status == status]
        groups.sort(key=lambda g: g.created_at, reverse=True)
        return groups[:limit]

    async def update(self, group_id: str, patch: Dict[str, Any], expected_version: int) -> Group:
        await asyncio.sleep(0)
        group = self.groups.get(group_id)
        if group is None:
            raise NotFoundException(message="Group not found", code="GROUP_NOT_FOUND")
        if group.version != expected_version:
            raise ConcurrentModificationException(group_id, expected_version)

        document = group.to_document()
        document.update({k: getattr(v, "value", v) for k, v in patch.items()})
        document["version"] = group.version + 1
        updated = Group.model_validate(document)
        self.groups[group_id] = updated
        return updated.model_copy(deep=True)

    async def add_notified_members(self, group_id: str, member_ids: List[str], notified_at: datetime) -> Group:
        await asyncio.sleep(0)
        if self.fail_notified_writes:
            self.fail_notified_writes -= 1
            raise RuntimeError("write failed")
        group = self.groups[group_id]
        notified = list(group.notified_member_ids)
        notified.extend(m for m in member_ids if m not in notified)
        self.groups[group_id] = group.model_copy(
            update={"notified_member_ids": notified, "notified_at": notified_at}
        )
        return self.groups[group_id]


class InMemoryLeaseRepository:
    def __init__(self):
        self.leases: Dict[str, Dict[str, Any]] = {}
        self.releases: List[str] = []

    async def acquire(self, name: str, holder: str, now: datetime, ttl_seconds: int) -> bool:
        await asyncio.sleep(0)
        lease = self.leases.get(name)
        if lease and lease["holder"] is not None and lease["expiresAt"] > now:
            return False
        self.leases[name] = {"holder": holder, "expiresAt": now + timedelta(seconds=ttl_seconds)}
        return True

    async def release(self, name: str, holder: str) -> bool:
        await asyncio.sleep(0)
        lease = self.leases.get(name)
        if not lease or lease["holder"] != holder:
            return False
        lease["holder"] = None
        self.releases.append(holder)
        return True

    def is_held(self, name: str) -> bool:
        lease = self.leases.get(name)
        return bool(lease and lease["holder"])


class RecordingDispatcher:
    """Dispatcher that records calls and fails, raises or hangs for chosen members."""

    def __init__(self):
        self.calls: List[str] = []
        self.fail_for: set = set()
        self.raise_for: set = set()
        self.hang_for: set = set()

    async def send_group_introduction(self, member_id: str, group: Group) -> DispatchResult:
        self.calls.append(member_id)
        if member_id in self.hang_for:
            await asyncio.sleep(3600)
        if member_id in self.raise_for:
            raise RuntimeError("smtp exploded")
        if member_id in self.fail_for:
            return DispatchResult(member_id=member_id, success=False, error="mailbox unavailable")
        return DispatchResult(member_id=member_id, success=True)


# ─────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def make_user(clock):
    """Build a UserRecord whose child is ``months_old`` at the fixed clock (negative = due)."""

    def _make(
        user_id: str,
        months_old: Optional[int] = 0,
        city: str = "Springfield",
        region_code: str = "IL",
        email: Optional[str] = None,
        eligible: bool = True,
        group_id: Optional[str] = None,
    ) -> UserRecord:
        now = clock.now()
        document: Dict[str, Any] = {
            "_id": user_id,
            "email": email if email is not None else f"{user_id}@example.com",
            "location": {"city": city, "regionCode": region_code},
            "children": [],
            "matchingEligible": eligible,
            "groupId": group_id,
        }
        if months_old is not None:
            index = now.year * 12 + (now.month - 1) - months_old
            document["children"] = [{"birthYear": index // 12, "birthMonth": index % 12 + 1}]
        return UserRecord.model_validate(document)

    return _make


@pytest.fixture
def profile_repo():
    return InMemoryProfileRepository()


@pytest.fixture
def group_repo():
    return InMemoryGroupRepository()


@pytest.fixture
def lease_repo():
    return InMemoryLeaseRepository()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def mock_collection():
    collection = AsyncMock()
    # Motor's find() returns a cursor synchronously (not a coroutine),
    # so use MagicMock for it. Async methods like find_one, update_one
    # etc. stay as AsyncMock.
    collection.find = MagicMock()
    return collection


@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__ = MagicMock(return_value=mock_collection)
    return db


@pytest.fixture
def sample_group(clock):
    return Group(
        id="group-1",
        name="Springfield Newborn Dads - Group 1",
        location={"city": "Springfield", "regionCode": "IL"},
        life_stage="Newborn",
        member_ids=["u1", "u2", "u3", "u4"],
        status=GroupStatus.PENDING,
        created_at=clock.now(),
    )
