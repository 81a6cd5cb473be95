"""
Matching run orchestration.

Loads the eligible pool, buckets it, partitions each bucket and persists the
resulting groups as PENDING. No notification is sent here; members are only
contacted when an admin approves a group.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, List, Set, Awaitable, TypeVar

from common.utils.exceptions import (
    ConflictException,
    NotFoundException,
    ServiceUnavailableException,
)
from app_circles.clock import Clock
from app_circles.matching.exceptions import MatchingInProgressException
from app_circles.matching.services.age_model import AgeModel
from app_circles.matching.services.bucketizer import Bucketizer, BucketKey
from app_circles.matching.services.partitioner import (
    CandidateGroup,
    GroupPartitioner,
    PartitionStrategy,
)
from app_circles.repositories.group_repository import GroupRepository
from app_circles.repositories.lease_repository import LeaseRepository
from app_circles.repositories.profile_repository import ProfileRepository
from app_circles.schemas.group import Group, GroupStatus
from app_circles.schemas.matching import BucketError, MatchingConfig, MatchingSummary
from app_circles.schemas.profile import UserRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _BucketOutcome:
    groups: List[Group] = field(default_factory=list)
    errors: List[BucketError] = field(default_factory=list)


class MatchingService:
    """
    Runs one matching cycle over the eligible pool.

    Two guards prevent double assignment: a run lease held for the whole of
    ``run()``, and a compare-and-set on each profile's groupId when members
    are claimed for a group.
    """

    LEASE_NAME = "matching-run"

    def __init__(
        self,
        profile_repository: ProfileRepository,
        group_repository: GroupRepository,
        lease_repository: LeaseRepository,
        clock: Clock,
        config: Optional[MatchingConfig] = None,
        partitioner: Optional[PartitionStrategy] = None,
        bucket_concurrency: int = 4,
        repository_timeout: float = 10.0,
        lease_ttl_seconds: int = 900,
    ):
        """
        Initialize MatchingService.

        Args:
            profile_repository: Profile reads and conditional assignment writes
            group_repository: Group persistence
            lease_repository: Run-level mutual exclusion
            clock: Source of "now"
            config: Group size and age-gap thresholds
            partitioner: Bucket partitioning strategy (greedy by default)
            bucket_concurrency: Max buckets processed at once
            repository_timeout: Seconds allowed per repository call
            lease_ttl_seconds: Lease lifetime if a run dies without releasing
        """
        self._profiles = profile_repository
        self._groups = group_repository
        self._leases = lease_repository
        self._clock = clock
        self._config = config or MatchingConfig()
        self._age_model = AgeModel(clock)
        self._bucketizer = Bucketizer(self._age_model)
        self._partitioner = partitioner or GroupPartitioner(self._age_model, self._config)
        self._bucket_concurrency = bucket_concurrency
        self._repository_timeout = repository_timeout
        self._lease_ttl_seconds = lease_ttl_seconds

    async def run(
        self,
        city: Optional[str] = None,
        region_code: Optional[str] = None
    ) -> MatchingSummary:
        """
        Run the matching algorithm.

        Args:
            city: Restrict the run to one city (requires region_code)
            region_code: Region of the city filter

        Returns:
            MatchingSummary for the run

        Raises:
            MatchingInProgressException: If another run holds the lease
            ServiceUnavailableException: If the pool could not be loaded in time
        """
        holder = str(uuid.uuid4())
        acquired = await self._bounded(
            self._leases.acquire(
                self.LEASE_NAME, holder, self._clock.now(), self._lease_ttl_seconds
            )
        )
        if not acquired:
            raise MatchingInProgressException()

        try:
            return await self._run_locked(city, region_code)
        finally:
            await self._release_lease(holder)

    async def _run_locked(
        self,
        city: Optional[str],
        region_code: Optional[str]
    ) -> MatchingSummary:
        logger.info(f"Running matching algorithm (city={city}, region={region_code})")

        try:
            loaded = await self._bounded(
                self._profiles.list_eligible_unmatched(city=city, region_code=region_code)
            )
        except asyncio.TimeoutError:
            raise ServiceUnavailableException(
                message="Timed out loading the eligible pool",
                code="POOL_LOAD_TIMEOUT"
            )

        pool = [user for user in loaded if user.in_pool]
        if not pool:
            logger.info("No unmatched users found")
            return MatchingSummary()

        buckets = self._bucketizer.bucketize(pool)
        semaphore = asyncio.Semaphore(self._bucket_concurrency)
        in_flight: Set[asyncio.Future] = set()

        async def process(key: BucketKey, users: List[UserRecord]) -> _BucketOutcome:
            async with semaphore:
                # A started bucket always runs to completion, even if the run is cancelled
                task = asyncio.ensure_future(self._process_bucket(key, users))
                in_flight.add(task)
                return await asyncio.shield(task)

        try:
            outcomes = await asyncio.gather(
                *(process(key, users) for key, users in buckets.items())
            )
        except asyncio.CancelledError:
            pending = [task for task in in_flight if not task.done()]
            logger.warning(
                f"Matching run cancelled; waiting for {len(pending)} in-flight buckets to commit"
            )
            if pending:
                await asyncio.wait(pending)
            raise

        groups: List[Group] = []
        errors: List[BucketError] = []
        for outcome in outcomes:
            groups.extend(outcome.groups)
            errors.extend(outcome.errors)

        matched = sum(len(group.member_ids) for group in groups)
        summary = MatchingSummary(
            groups_created=groups,
            users_matched=matched,
            users_unmatched=len(pool) - matched,
            per_bucket_errors=errors,
            summary=f"Created {len(groups)} groups, matched {matched} users",
        )

        logger.info(
            f"Matching completed. {summary.summary}, "
            f"{summary.users_unmatched} unmatched, {len(errors)} bucket errors"
        )
        return summary

    async def _process_bucket(self, key: BucketKey, users: List[UserRecord]) -> _BucketOutcome:
        """Partition one bucket and commit each candidate group in order."""
        outcome = _BucketOutcome()

        try:
            candidates = self._partitioner.partition(users, key.life_stage)
        except Exception as e:
            logger.error(f"Partitioning failed for bucket {key}: {e}")
            outcome.errors.append(self._bucket_error(key, f"Partitioning failed: {e}"))
            return outcome

        for candidate in candidates:
            try:
                group = await self._commit_candidate(key, candidate)
            except Exception as e:
                reason = str(e) or type(e).__name__
                logger.error(f"Failed to create group {candidate.sequence} for bucket {key}: {reason}")
                outcome.errors.append(
                    self._bucket_error(key, f"Group {candidate.sequence}: {reason}")
                )
                continue

            if group is not None:
                outcome.groups.append(group)

        return outcome

    async def _commit_candidate(self, key: BucketKey, candidate: CandidateGroup) -> Optional[Group]:
        """
        Claim members, then persist the group.

        Members are claimed with a compare-and-set (groupId None -> new id);
        users that lost a race are left out. If fewer than min_size members
        could be claimed, or anything fails, every claim made here is released
        so no profile points at a group that was never stored.

        A failed or timed-out insert may still have landed. That record is
        retired to DELETED before the claims are released, so the members
        never return to the pool while a PENDING group still lists them.
        """
        group_id = str(uuid.uuid4())
        now = self._clock.now()
        claimed: List[str] = []
        insert_attempted = False

        try:
            for member in candidate.members:
                won = await self._bounded(
                    self._profiles.set_group_assignment(
                        member.id, group_id, expected_group_id=None, at=now
                    )
                )
                if won:
                    claimed.append(member.id)
                else:
                    logger.warning(
                        f"User {member.id} was assigned elsewhere before group {group_id} could claim them"
                    )

            if len(claimed) < self._config.min_size:
                logger.info(
                    f"Only {len(claimed)} of {len(candidate.members)} members could be claimed "
                    f"for {key}; skipping group {candidate.sequence}"
                )
                await self._release_claims(group_id, claimed)
                return None

            group = Group(
                id=group_id,
                name=self._group_name(key, candidate.sequence),
                location=key.location,
                life_stage=key.life_stage,
                member_ids=claimed,
                status=GroupStatus.PENDING,
                created_at=now,
            )
            insert_attempted = True
            created = await self._bounded(self._groups.create(group))

        except Exception as e:
            # A conflicting id means the stored record belongs to another group
            retire = insert_attempted and not isinstance(e, ConflictException)
            if retire and not await self._retire_unconfirmed_group(group_id):
                # Members keep pointing at the group, which is safe either way
                raise
            await self._release_claims(group_id, claimed)
            raise

        logger.info(f"Created group {created.id} ({created.name}) with {len(claimed)} members")
        return created

    async def _retire_unconfirmed_group(self, group_id: str) -> bool:
        """
        Mark a group whose insert was not confirmed as DELETED.

        Returns True when it is safe to release the claims: the group was
        never stored, or it is now DELETED.
        """
        try:
            await self._bounded(
                self._groups.update(
                    group_id,
                    {"status": GroupStatus.DELETED, "deletedAt": self._clock.now()},
                    expected_version=0,
                )
            )
        except NotFoundException:
            return True
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.error(
                f"Could not retire unconfirmed group {group_id}: {reason}; "
                f"keeping member claims so nobody is matched twice"
            )
            return False

        logger.warning(f"Insert of group {group_id} landed after failing; marked it DELETED")
        return True

    async def _release_claims(self, group_id: str, member_ids: List[str]) -> None:
        """Point claimed profiles back at no group. Failures are logged per member."""
        if not member_ids:
            return

        at = self._clock.now()
        stuck = []
        for member_id in member_ids:
            try:
                await self._bounded(
                    self._profiles.set_group_assignment(
                        member_id, None, expected_group_id=group_id, at=at
                    )
                )
            except Exception as e:
                logger.error(f"Could not release user {member_id} from group {group_id}: {e}")
                stuck.append(member_id)

        if stuck:
            logger.error(
                f"Users {stuck} still reference unpersisted group {group_id}; "
                f"clear their groupId manually"
            )
        else:
            logger.info(f"Released {len(member_ids)} claims for group {group_id}")

    async def _release_lease(self, holder: str) -> None:
        try:
            await self._bounded(self._leases.release(self.LEASE_NAME, holder))
        except Exception as e:
            # The lease expires on its own after the TTL
            logger.error(f"Failed to release matching lease {holder}: {e}")

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._repository_timeout)

    @staticmethod
    def _group_name(key: BucketKey, sequence: int) -> str:
        return f"{key.city} {key.life_stage.value} Dads - Group {sequence}"

    @staticmethod
    def _bucket_error(key: BucketKey, message: str) -> BucketError:
        return BucketError(
            city=key.city,
            region_code=key.region_code,
            life_stage=key.life_stage,
            message=message,
        )
