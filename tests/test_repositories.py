"""Unit tests for the MongoDB repositories (mocked Motor collections)."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from common.utils.exceptions import ConflictException, NotFoundException
from app_circles.matching.exceptions import ConcurrentModificationException
from app_circles.repositories import GroupRepository, LeaseRepository, ProfileRepository
from app_circles.schemas.group import GroupStatus, LifeStage


def cursor_returning(documents):
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=documents)
    cursor.sort = MagicMock(return_value=cursor)
    return cursor


def profile_doc(profile_id, **overrides):
    document = {
        "_id": profile_id,
        "email": f"{profile_id}@example.com",
        "location": {"city": "Ann Arbor", "regionCode": "MI"},
        "children": [{"birthYear": 2026, "birthMonth": 3, "gender": "boy"}],
        "matchingEligible": True,
        "groupId": None,
        "onboardingStep": 7,
    }
    document.update(overrides)
    return document


# ─────────────────────────────────────────────────────────────────
# ProfileRepository
# ─────────────────────────────────────────────────────────────────


class TestProfileRepository:
    @pytest.mark.asyncio
    async def test_list_eligible_unmatched_queries_pool(self, mock_db, mock_collection):
        mock_collection.find.return_value = cursor_returning([profile_doc("a"), profile_doc("b")])
        repo = ProfileRepository(mock_db)

        records = await repo.list_eligible_unmatched()

        mock_collection.find.assert_called_once_with({"matchingEligible": True, "groupId": None})
        assert [r.id for r in records] == ["a", "b"]
        assert records[0].location.region_code == "MI"

    @pytest.mark.asyncio
    async def test_list_eligible_unmatched_with_location_filter(self, mock_db, mock_collection):
        mock_collection.find.return_value = cursor_returning([])
        repo = ProfileRepository(mock_db)

        await repo.list_eligible_unmatched(city="Austin", region_code="TX")

        mock_collection.find.assert_called_once_with({
            "matchingEligible": True,
            "groupId": None,
            "location.city": "Austin",
            "location.regionCode": "TX",
        })

    @pytest.mark.asyncio
    async def test_malformed_profiles_are_skipped(self, mock_db, mock_collection):
        bad = profile_doc("bad", children=[{"birthYear": "soon"}])
        mock_collection.find.return_value = cursor_returning([bad, profile_doc("good")])
        repo = ProfileRepository(mock_db)

        records = await repo.list_eligible_unmatched()

        assert [r.id for r in records] == ["good"]

    @pytest.mark.asyncio
    async def test_object_ids_are_stringified(self, mock_db, mock_collection):
        oid = ObjectId()
        mock_collection.find_one.return_value = profile_doc(oid)
        repo = ProfileRepository(mock_db)

        record = await repo.get_profile(str(oid))

        assert record.id == str(oid)
        query = mock_collection.find_one.call_args[0][0]
        assert query == {"_id": {"$in": [str(oid), oid]}}

    @pytest.mark.asyncio
    async def test_get_profile_missing(self, mock_db, mock_collection):
        mock_collection.find_one.return_value = None
        repo = ProfileRepository(mock_db)

        assert await repo.get_profile("nobody") is None

    @pytest.mark.asyncio
    async def test_get_profiles_preserves_requested_order(self, mock_db, mock_collection):
        mock_collection.find.return_value = cursor_returning([profile_doc("b"), profile_doc("a")])
        repo = ProfileRepository(mock_db)

        records = await repo.get_profiles(["a", "missing", "b"])

        assert [r.id for r in records] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_set_group_assignment_is_conditional(self, mock_db, mock_collection, clock):
        mock_collection.update_one.return_value = MagicMock(matched_count=1)
        repo = ProfileRepository(mock_db)

        applied = await repo.set_group_assignment("a", "g1", expected_group_id=None, at=clock.now())

        assert applied is True
        query, update = mock_collection.update_one.call_args[0]
        assert query == {"_id": "a", "groupId": None}
        assert update["$set"]["groupId"] == "g1"
        assert update["$set"]["matchedAt"] == clock.now()

    @pytest.mark.asyncio
    async def test_clearing_assignment_clears_matched_at(self, mock_db, mock_collection, clock):
        mock_collection.update_one.return_value = MagicMock(matched_count=0)
        repo = ProfileRepository(mock_db)

        applied = await repo.set_group_assignment("a", None, expected_group_id="g1", at=clock.now())

        assert applied is False
        query, update = mock_collection.update_one.call_args[0]
        assert query == {"_id": "a", "groupId": "g1"}
        assert update["$set"]["groupId"] is None
        assert update["$set"]["matchedAt"] is None


# ─────────────────────────────────────────────────────────────────
# GroupRepository
# ─────────────────────────────────────────────────────────────────


class TestGroupRepository:
    @pytest.mark.asyncio
    async def test_create_serializes_with_aliases(self, mock_db, mock_collection, sample_group):
        repo = GroupRepository(mock_db)

        await repo.create(sample_group)

        document = mock_collection.insert_one.call_args[0][0]
        assert document["_id"] == "group-1"
        assert document["lifeStage"] == "Newborn"
        assert document["status"] == "pending"
        assert document["memberIds"] == ["u1", "u2", "u3", "u4"]
        assert document["location"] == {"city": "Springfield", "regionCode": "IL"}
        assert document["version"] == 0

    @pytest.mark.asyncio
    async def test_create_duplicate_id(self, mock_db, mock_collection, sample_group):
        mock_collection.insert_one.side_effect = DuplicateKeyError("dup")
        repo = GroupRepository(mock_db)

        with pytest.raises(ConflictException) as exc_info:
            await repo.create(sample_group)

        assert exc_info.value.code == "GROUP_ID_CONFLICT"

    @pytest.mark.asyncio
    async def test_get_parses_document(self, mock_db, mock_collection, sample_group):
        mock_collection.find_one.return_value = sample_group.to_document()
        repo = GroupRepository(mock_db)

        group = await repo.get("group-1")

        assert group.life_stage == LifeStage.NEWBORN
        assert group.status == GroupStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_is_version_checked(self, mock_db, mock_collection, sample_group, clock):
        updated = sample_group.to_document()
        updated.update({"status": "active", "version": 1, "approvedAt": clock.now()})
        mock_collection.find_one_and_update.return_value = updated
        repo = GroupRepository(mock_db)

        group = await repo.update(
            "group-1",
            {"status": GroupStatus.ACTIVE, "approvedAt": clock.now()},
            expected_version=0,
        )

        query, update = mock_collection.find_one_and_update.call_args[0]
        assert query == {"_id": "group-1", "version": 0}
        assert update == {
            "$set": {"status": "active", "approvedAt": clock.now()},
            "$inc": {"version": 1},
        }
        assert mock_collection.find_one_and_update.call_args[1]["return_document"] == ReturnDocument.AFTER
        assert group.status == GroupStatus.ACTIVE
        assert group.version == 1

    @pytest.mark.asyncio
    async def test_update_with_stale_version(self, mock_db, mock_collection):
        mock_collection.find_one_and_update.return_value = None
        mock_collection.find_one.return_value = {"_id": "group-1"}
        repo = GroupRepository(mock_db)

        with pytest.raises(ConcurrentModificationException):
            await repo.update("group-1", {"status": GroupStatus.DELETED}, expected_version=3)

    @pytest.mark.asyncio
    async def test_update_missing_group(self, mock_db, mock_collection):
        mock_collection.find_one_and_update.return_value = None
        mock_collection.find_one.return_value = None
        repo = GroupRepository(mock_db)

        with pytest.raises(NotFoundException):
            await repo.update("nope", {"status": GroupStatus.DELETED}, expected_version=0)

    @pytest.mark.asyncio
    async def test_add_notified_members_uses_add_to_set(self, mock_db, mock_collection, sample_group, clock):
        mock_collection.find_one_and_update.return_value = sample_group.to_document()
        repo = GroupRepository(mock_db)

        await repo.add_notified_members("group-1", ["u1", "u2"], clock.now())

        query, update = mock_collection.find_one_and_update.call_args[0]
        assert query == {"_id": "group-1"}
        assert update["$addToSet"] == {"notifiedMemberIds": {"$each": ["u1", "u2"]}}
        assert update["$set"] == {"notifiedAt": clock.now()}

    @pytest.mark.asyncio
    async def test_list_filters_and_sorts(self, mock_db, mock_collection, sample_group):
        cursor = cursor_returning([sample_group.to_document()])
        mock_collection.find.return_value = cursor
        repo = GroupRepository(mock_db)

        groups = await repo.list(status=GroupStatus.PENDING, limit=10)

        mock_collection.find.assert_called_once_with({"status": "pending"})
        cursor.sort.assert_called_once_with("createdAt", -1)
        cursor.to_list.assert_awaited_once_with(length=10)
        assert [g.id for g in groups] == ["group-1"]


# ─────────────────────────────────────────────────────────────────
# LeaseRepository
# ─────────────────────────────────────────────────────────────────


class TestLeaseRepository:
    @pytest.mark.asyncio
    async def test_acquire_upserts_free_or_expired_lease(self, mock_db, mock_collection, clock):
        repo = LeaseRepository(mock_db)

        acquired = await repo.acquire("matching-run", "holder-1", clock.now(), ttl_seconds=60)

        assert acquired is True
        query, update = mock_collection.update_one.call_args[0]
        assert query == {
            "_id": "matching-run",
            "$or": [{"holder": None}, {"expiresAt": {"$lte": clock.now()}}],
        }
        assert update["$set"]["holder"] == "holder-1"
        assert update["$set"]["expiresAt"] == clock.now() + timedelta(seconds=60)
        assert mock_collection.update_one.call_args[1]["upsert"] is True

    @pytest.mark.asyncio
    async def test_acquire_held_lease(self, mock_db, mock_collection, clock):
        mock_collection.update_one.side_effect = DuplicateKeyError("held")
        repo = LeaseRepository(mock_db)

        assert await repo.acquire("matching-run", "holder-2", clock.now(), ttl_seconds=60) is False

    @pytest.mark.asyncio
    async def test_release_only_by_holder(self, mock_db, mock_collection):
        mock_collection.update_one.return_value = MagicMock(matched_count=0)
        repo = LeaseRepository(mock_db)

        released = await repo.release("matching-run", "not-me")

        assert released is False
        query = mock_collection.update_one.call_args[0][0]
        assert query == {"_id": "matching-run", "holder": "not-me"}
