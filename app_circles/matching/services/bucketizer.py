"""
Splits the eligible pool into (location, life stage) buckets.
"""

import logging
from typing import Dict, Iterable, List, NamedTuple

from app_circles.matching.services.age_model import AgeModel
from app_circles.schemas.group import LifeStage
from app_circles.schemas.profile import Location, UserRecord

logger = logging.getLogger(__name__)


class BucketKey(NamedTuple):
    city: str
    region_code: str
    life_stage: LifeStage

    @property
    def location(self) -> Location:
        return Location(city=self.city, region_code=self.region_code)

    def __str__(self) -> str:
        return f"{self.city}, {self.region_code} / {self.life_stage.value}"


class Bucketizer:
    """
    Groups users by exact (city, region_code) and primary-child life stage.

    Users without a location, without children, or whose child has aged out
    are skipped for this cycle.
    """

    def __init__(self, age_model: AgeModel):
        self._age_model = age_model

    def bucketize(self, users: Iterable[UserRecord]) -> Dict[BucketKey, List[UserRecord]]:
        buckets: Dict[BucketKey, List[UserRecord]] = {}
        skipped = 0

        for user in users:
            if user.location is None:
                logger.info(f"Skipping user {user.id}: no location")
                skipped += 1
                continue

            life_stage = self._age_model.classify(user.primary_child)
            if life_stage is None:
                reason = "no children" if user.primary_child is None else "child aged out"
                logger.info(f"Skipping user {user.id}: {reason}")
                skipped += 1
                continue

            key = BucketKey(user.location.city, user.location.region_code, life_stage)
            buckets.setdefault(key, []).append(user)

        logger.debug(f"Bucketized pool into {len(buckets)} buckets, skipped {skipped} users")
        return buckets
