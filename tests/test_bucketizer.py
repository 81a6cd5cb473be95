"""Unit tests for Bucketizer."""

import pytest

from app_circles.matching.services.age_model import AgeModel
from app_circles.matching.services.bucketizer import Bucketizer, BucketKey
from app_circles.schemas.group import LifeStage
from app_circles.schemas.profile import UserRecord


@pytest.fixture
def bucketizer(clock):
    return Bucketizer(AgeModel(clock))


class TestBucketize:
    def test_groups_by_location_and_stage(self, bucketizer, make_user):
        users = [
            make_user("a", -3),
            make_user("b", -2),
            make_user("c", 2),
            make_user("d", -3, city="Austin", region_code="TX"),
        ]

        buckets = bucketizer.bucketize(users)

        assert set(buckets) == {
            BucketKey("Springfield", "IL", LifeStage.EXPECTING),
            BucketKey("Springfield", "IL", LifeStage.NEWBORN),
            BucketKey("Austin", "TX", LifeStage.EXPECTING),
        }
        assert [u.id for u in buckets[BucketKey("Springfield", "IL", LifeStage.EXPECTING)]] == ["a", "b"]

    def test_same_city_in_different_regions_is_split(self, bucketizer, make_user):
        buckets = bucketizer.bucketize([
            make_user("a", 2, city="Portland", region_code="OR"),
            make_user("b", 2, city="Portland", region_code="ME"),
        ])
        assert len(buckets) == 2

    def test_skips_users_without_location_children_or_stage(self, bucketizer, make_user):
        no_location = UserRecord.model_validate({
            "_id": "x",
            "children": [{"birthYear": 2026, "birthMonth": 3}],
            "matchingEligible": True,
        })
        users = [
            no_location,
            make_user("no-kids", None),
            make_user("aged-out", 40),
            make_user("ok", 10),
        ]

        buckets = bucketizer.bucketize(users)

        assert list(buckets) == [BucketKey("Springfield", "IL", LifeStage.INFANT)]
        assert [u.id for u in buckets[BucketKey("Springfield", "IL", LifeStage.INFANT)]] == ["ok"]

    def test_only_first_child_counts(self, bucketizer, make_user):
        user = make_user("a", 2)
        user.children.append(user.children[0].model_copy(update={"birth_year": 2024}))

        buckets = bucketizer.bucketize([user])

        assert list(buckets)[0].life_stage == LifeStage.NEWBORN

    def test_empty_pool(self, bucketizer):
        assert bucketizer.bucketize([]) == {}
