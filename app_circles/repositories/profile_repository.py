"""
Profile repository.

Reads the eligible pool and performs conditional group-assignment writes on
profile documents. Documents are validated into UserRecord here so the
matching services never see raw dicts.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from app_circles.schemas.profile import UserRecord

logger = logging.getLogger(__name__)


class ProfileRepository:
    """Access to the ``profiles`` collection."""

    COLLECTION = "profiles"

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        Initialize ProfileRepository.

        Args:
            db: MongoDB database connection
        """
        self._db = db
        self._collection = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("matchingEligible", 1), ("groupId", 1)])
        await self._collection.create_index([("location.city", 1), ("location.regionCode", 1)])

    async def list_eligible_unmatched(
        self,
        city: Optional[str] = None,
        region_code: Optional[str] = None
    ) -> List[UserRecord]:
        """
        Load the eligible pool.

        Args:
            city: Optional city filter (only applied together with region_code)
            region_code: Optional region filter

        Returns:
            Users with matchingEligible == true and no group
        """
        query: Dict[str, Any] = {"matchingEligible": True, "groupId": None}
        if city and region_code:
            query["location.city"] = city
            query["location.regionCode"] = region_code

        cursor = self._collection.find(query)
        documents = await cursor.to_list(length=None)

        records = []
        for document in documents:
            record = self._to_record(document)
            if record is not None:
                records.append(record)

        logger.info(f"Loaded {len(records)} eligible unmatched profiles")
        return records

    async def get_profile(self, profile_id: str) -> Optional[UserRecord]:
        """Get a profile by ID, or None if it does not exist."""
        document = await self._collection.find_one(self._id_filter(profile_id))
        if not document:
            return None
        return self._to_record(document)

    async def get_profiles(self, profile_ids: List[str]) -> List[UserRecord]:
        """Get several profiles, returned in the order of ``profile_ids``. Missing ones are omitted."""
        if not profile_ids:
            return []

        id_values: List[Any] = list(profile_ids)
        id_values.extend(ObjectId(pid) for pid in profile_ids if ObjectId.is_valid(pid))

        cursor = self._collection.find({"_id": {"$in": id_values}})
        documents = await cursor.to_list(length=len(id_values))

        by_id = {}
        for document in documents:
            record = self._to_record(document)
            if record is not None:
                by_id[record.id] = record

        return [by_id[pid] for pid in profile_ids if pid in by_id]

    async def set_group_assignment(
        self,
        profile_id: str,
        group_id: Optional[str],
        expected_group_id: Optional[str],
        at: datetime,
    ) -> bool:
        """
        Compare-and-set the profile's group pointer.

        Args:
            profile_id: Profile to update
            group_id: New group ID, or None to return the user to the pool
            expected_group_id: Value groupId must currently hold
            at: Timestamp for matchedAt / lastUpdated

        Returns:
            True if the write applied, False if the profile is missing or its
            groupId no longer equals expected_group_id
        """
        query = self._id_filter(profile_id)
        query["groupId"] = expected_group_id

        result = await self._collection.update_one(
            query,
            {
                "$set": {
                    "groupId": group_id,
                    "matchedAt": at if group_id else None,
                    "lastUpdated": at,
                }
            }
        )

        applied = result.matched_count == 1
        if not applied:
            logger.debug(
                f"Assignment of profile {profile_id} to {group_id} rejected "
                f"(expected groupId {expected_group_id})"
            )
        return applied

    @staticmethod
    def _id_filter(profile_id: str) -> Dict[str, Any]:
        # Session-id strings and legacy ObjectIds share the collection
        if ObjectId.is_valid(profile_id):
            return {"_id": {"$in": [profile_id, ObjectId(profile_id)]}}
        return {"_id": profile_id}

    @staticmethod
    def _to_record(document: Dict[str, Any]) -> Optional[UserRecord]:
        try:
            return UserRecord.model_validate(document)
        except ValidationError as e:
            logger.warning(
                f"Skipping malformed profile {document.get('_id')}: "
                f"{e.error_count()} validation errors"
            )
            return None
