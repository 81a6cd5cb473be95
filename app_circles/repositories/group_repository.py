"""
Group repository.

Groups are never physically removed; deletion is a status change. Status
writes are guarded by the ``version`` field.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from common.utils.exceptions import ConflictException, NotFoundException
from app_circles.matching.exceptions import ConcurrentModificationException
from app_circles.schemas.group import Group, GroupStatus

logger = logging.getLogger(__name__)


class GroupRepository:
    """Access to the ``circleGroups`` collection."""

    COLLECTION = "circleGroups"

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        Initialize GroupRepository.

        Args:
            db: MongoDB database connection
        """
        self._db = db
        self._collection = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("status", 1), ("createdAt", -1)])
        await self._collection.create_index("memberIds")

    async def create(self, group: Group) -> Group:
        """
        Insert a new group.

        Raises:
            ConflictException: If the group ID is already taken
        """
        try:
            await self._collection.insert_one(group.to_document())
        except DuplicateKeyError:
            raise ConflictException(
                message=f"Group {group.id} already exists",
                code="GROUP_ID_CONFLICT"
            )

        logger.info(f"Group created: {group.id}")
        return group

    async def get(self, group_id: str) -> Optional[Group]:
        """Get group by ID, or None."""
        document = await self._collection.find_one({"_id": group_id})
        if not document:
            return None
        return Group.model_validate(document)

    async def list(
        self,
        status: Optional[GroupStatus] = None,
        limit: int = 100
    ) -> List[Group]:
        """List groups, newest first."""
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status.value

        cursor = self._collection.find(query).sort("createdAt", -1)
        documents = await cursor.to_list(length=limit)
        return [Group.model_validate(document) for document in documents]

    async def update(
        self,
        group_id: str,
        patch: Dict[str, Any],
        expected_version: int
    ) -> Group:
        """
        Apply a patch if the stored version still equals ``expected_version``.

        Args:
            group_id: Group to update
            patch: camelCase fields to $set
            expected_version: Version read by the caller

        Returns:
            Updated group

        Raises:
            NotFoundException: If the group does not exist
            ConcurrentModificationException: If the version moved on
        """
        fields = {
            key: value.value if isinstance(value, Enum) else value
            for key, value in patch.items()
        }

        document = await self._collection.find_one_and_update(
            {"_id": group_id, "version": expected_version},
            {"$set": fields, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )

        if document is None:
            exists = await self._collection.find_one({"_id": group_id}, {"_id": 1})
            if not exists:
                raise NotFoundException(message="Group not found", code="GROUP_NOT_FOUND")
            raise ConcurrentModificationException(group_id, expected_version)

        return Group.model_validate(document)

    async def add_notified_members(
        self,
        group_id: str,
        member_ids: List[str],
        notified_at: datetime
    ) -> Group:
        """
        Append members to notifiedMemberIds.

        The list is append-only, so this write is not version-checked.
        """
        document = await self._collection.find_one_and_update(
            {"_id": group_id},
            {
                "$addToSet": {"notifiedMemberIds": {"$each": member_ids}},
                "$set": {"notifiedAt": notified_at},
            },
            return_document=ReturnDocument.AFTER,
        )

        if document is None:
            raise NotFoundException(message="Group not found", code="GROUP_NOT_FOUND")

        return Group.model_validate(document)
