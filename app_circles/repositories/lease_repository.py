"""
Run lease for the matching job.

A single document per lease name. Acquisition is an upsert that only matches
a free or expired lease; if another holder owns a live lease the upsert
collides on ``_id`` and acquisition fails.
"""

import logging
from datetime import datetime, timedelta

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

logger = logging.getLogger(__name__)


class LeaseRepository:
    """Access to the ``matchingLeases`` collection."""

    COLLECTION = "matchingLeases"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._collection = db[self.COLLECTION]

    async def acquire(
        self,
        name: str,
        holder: str,
        now: datetime,
        ttl_seconds: int
    ) -> bool:
        """
        Try to take the lease.

        Returns:
            True if ``holder`` now owns the lease, False if someone else does
        """
        try:
            await self._collection.update_one(
                {
                    "_id": name,
                    "$or": [
                        {"holder": None},
                        {"expiresAt": {"$lte": now}},
                    ],
                },
                {
                    "$set": {
                        "holder": holder,
                        "acquiredAt": now,
                        "expiresAt": now + timedelta(seconds=ttl_seconds),
                    }
                },
                upsert=True,
            )
        except DuplicateKeyError:
            logger.info(f"Lease {name} is held by another run")
            return False

        logger.info(f"Lease {name} acquired by {holder}")
        return True

    async def release(self, name: str, holder: str) -> bool:
        """Release the lease if ``holder`` still owns it."""
        result = await self._collection.update_one(
            {"_id": name, "holder": holder},
            {"$set": {"holder": None, "expiresAt": None}},
        )
        released = result.matched_count == 1
        if released:
            logger.info(f"Lease {name} released by {holder}")
        else:
            logger.warning(f"Lease {name} was no longer held by {holder} at release")
        return released
